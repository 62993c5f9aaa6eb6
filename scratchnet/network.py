"""
Neural Network Main Class
=========================

This is the class that ties the layers together:
- Layer stacking (insert and remove at any position)
- Forward pass (inference and training)
- Backward pass (backpropagation)
- Parameter export/import
- Model saving/loading

Example:
    >>> from scratchnet import NeuralNetwork, Conv2D, Flatten, Dense, CrossEntropy
    >>> net = NeuralNetwork([
    ...     Conv2D((28, 28, 1), 8, (3, 3), 'relu', rng=0),
    ...     Flatten((26, 26, 8)),
    ...     Dense(26 * 26 * 8, 10, 'softmax', rng=1),
    ... ], CrossEntropy())
    >>> net.summary()
"""

import weakref

import numpy as np

from .errors import ShapeMismatch
from .layers import Layer
from .losses import get_loss
from .utils import make_rng


class NeuralNetwork:
    """
    Sequential neural network.

    An ordered list of layers plus the error function used to train them.
    The training loop drives it through forward(), backpropagate() and
    update_parameters(); predict() is for inference.

    Args:
        layers: Optional list of layers, appended in order
        error_function: ErrorFunction instance or registry name
    """

    def __init__(self, layers=None, error_function=None):
        self.layers = []
        self.error_function = None

        if error_function is not None:
            self.set_error_function(error_function)

        for layer in layers or []:
            self.add_layer(layer)

    @property
    def depth(self):
        return len(self.layers)

    def add_layer(self, layer, index=None):
        """
        Insert a layer.

        Args:
            layer: Layer instance
            index: 0-based position; None appends at the end
        """
        if not isinstance(layer, Layer):
            raise TypeError(f"Invalid layer type: {type(layer).__name__}")

        if index is None:
            index = self.depth
        if not 0 <= index <= self.depth:
            raise IndexError(f"Invalid position: {index} (network has {self.depth} layers)")

        owner = layer.network
        if owner is not None:
            raise ValueError(f"{layer!r} already belongs to a network; remove it first")

        layer._network = weakref.ref(self)
        self.layers.insert(index, layer)

    def remove_layer(self, index):
        """Remove and return the layer at the given 0-based position."""
        if not 0 <= index < self.depth:
            raise IndexError(f"Invalid position: {index} (network has {self.depth} layers)")

        layer = self.layers.pop(index)
        layer._network = None
        return layer

    def set_error_function(self, error_function):
        self.error_function = get_loss(error_function)

    def validate(self):
        """
        Check that the network can be trained.

        Raises:
            ValueError: no layers or no error function
            ShapeMismatch: a layer's output shape differs from the next
                layer's input shape
        """
        if not self.layers:
            raise ValueError("The network has no layers")
        if self.error_function is None:
            raise ValueError("The network has no error function")

        for i in range(self.depth - 1):
            out_shape = tuple(self.layers[i].output_shape)
            in_shape = tuple(self.layers[i + 1].input_shape)
            if out_shape != in_shape:
                raise ShapeMismatch(
                    f"Layer {i} ({self.layers[i].name}) outputs {out_shape} but layer "
                    f"{i + 1} ({self.layers[i + 1].name}) expects {in_shape}")

    def get_parameters(self):
        """
        Export all parameters.

        Returns:
            (weights, biases): lists with one array per layer (copies)
        """
        weights, biases = [], []
        for layer in self.layers:
            W, b = layer.get_parameters()
            weights.append(W)
            biases.append(b)
        return weights, biases

    def set_parameters(self, weights, biases):
        """Import parameters exported by get_parameters()."""
        if len(weights) != self.depth:
            raise ShapeMismatch(f"Got weights for {len(weights)} layers, network has {self.depth}")
        if len(biases) != self.depth:
            raise ShapeMismatch(f"Got biases for {len(biases)} layers, network has {self.depth}")

        for layer, W, b in zip(self.layers, weights, biases):
            layer.set_parameters(W, b)

    def reinitialize(self, rng=None):
        """
        Draw new random parameters for every layer.

        When rng is given, all layers draw from it in order, so the same
        seed always gives the same network.
        """
        if rng is not None:
            rng = make_rng(rng)
        for layer in self.layers:
            layer.reinitialize(rng)

    def predict(self, X):
        """
        Forward pass for inference.

        Args:
            X: Input batch, shape (N, *input_shape of the first layer)

        Returns:
            Network outputs, shape (N, *output_shape of the last layer)
        """
        Z = np.asarray(X, dtype=np.float64)
        for layer in self.layers:
            Z = layer.predict(Z)
        return Z

    def forward(self, X):
        """Forward pass for training; every layer caches its A and Z."""
        Z = np.asarray(X, dtype=np.float64)
        for layer in self.layers:
            Z = layer.forward(Z)
        return Z

    def backpropagate(self, X, T):
        """
        Backward pass.

        Must follow forward(X). The last layer starts from the error
        function, middle layers receive the gradient of the layer above and
        the first layer only computes its parameter gradients.

        Args:
            X: Input batch given to forward()
            T: Targets, same shape as the network output

        Returns:
            (dW, db): gradient lists with one array per layer
        """
        if self.error_function is None:
            raise ValueError("The network has no error function")

        X = np.asarray(X, dtype=np.float64)
        depth = self.depth
        dW = [None] * depth
        db = [None] * depth

        if depth == 1:
            Z = X
        else:
            Z = self.layers[depth - 2].Z

        # Start from last layer
        dX, dW[-1], db[-1] = self.layers[-1].output_backward(self.error_function, Z, T)

        # Backward up to the second layer
        for l in range(depth - 2, 0, -1):
            Z = self.layers[l - 1].Z
            dX, dW[l], db[l] = self.layers[l].backward(dX, Z)

        if depth > 1:
            dW[0], db[0] = self.layers[0].input_backward(dX, X)

        return dW, db

    def update_parameters(self, delta_W, delta_b):
        """Add the optimizer deltas to every layer's parameters."""
        for layer, dW, db in zip(self.layers, delta_W, delta_b):
            layer.update_parameters(dW, db)

    @property
    def num_parameters(self):
        return sum(layer.num_parameters for layer in self.layers)

    def topology(self):
        """Layer names in order, e.g. 'Conv -> Flatten -> FC -> Y'."""
        return ' -> '.join([layer.name for layer in self.layers] + ['Y'])

    def summary(self):
        """Print model summary."""
        print("\n" + "=" * 70)
        print("Neural Network Summary")
        print("=" * 70)
        print(self.topology())
        print(f"Error function: {self.error_function!r}")
        print("-" * 70)

        for i, layer in enumerate(self.layers):
            print(f"{i:3d}. {layer.name:<14} {str(tuple(layer.output_shape)):<18} "
                  f"Params: {layer.num_parameters:,}")

        total_params = self.num_parameters
        print("-" * 70)
        print(f"Total trainable parameters: {total_params:,}")
        print("=" * 70 + "\n")

        return total_params

    def save(self, filepath):
        """
        Save parameters to file.

        Args:
            filepath: Path to save file (.npz)
        """
        params = {'depth': np.array(self.depth)}

        for i, layer in enumerate(self.layers):
            W, b = layer.get_parameters()
            params[f'layer_{i}_weight'] = W
            params[f'layer_{i}_bias'] = b

        np.savez(filepath, **params)
        print(f"Model saved to {filepath}")

    def load(self, filepath):
        """
        Load parameters saved by save() into this network.

        The network must have the same layers as the saved one.

        Args:
            filepath: Path to saved model (.npz)
        """
        with np.load(filepath) as data:
            depth = int(data['depth'])
            if depth != self.depth:
                raise ShapeMismatch(f"Checkpoint has {depth} layers, network has {self.depth}")

            for i, layer in enumerate(self.layers):
                layer.set_parameters(data[f'layer_{i}_weight'], data[f'layer_{i}_bias'])

        print(f"Model loaded from {filepath}")

    def __len__(self):
        return self.depth

    def __iter__(self):
        return iter(self.layers)

    def __getitem__(self, index):
        return self.layers[index]

    def __repr__(self):
        return f"NeuralNetwork({self.topology()}, error_function={self.error_function!r})"
