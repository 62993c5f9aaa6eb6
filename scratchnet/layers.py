"""
Network Layers - From Scratch Implementation
=============================================

This module contains the layers of the engine implemented using only NumPy.
Every layer follows the same contract so that a network can hold any mix
of them:

- predict(X): forward pass for inference, nothing is cached
- forward(X): forward pass for training, caches A (pre-activation) and
  Z (post-activation)
- backward(dZ, X): gradients w.r.t. input, weights and biases
- output_backward(error_fn, X, T): same, for the last layer of a network
- input_backward(dZ, X): same, for the first layer (no input gradient)
- update_parameters(delta_W, delta_b): in-place parameter update

Layers implemented:
- Dense: Fully connected layer
- Flatten: Reshape multi-dimensional samples to vectors
- Conv2D: 2D Convolution with a direct patch loop
- UnrolledConv2D: Conv2D computed with patch matrices (im2col)
- ConvAsDense: Convolution expressed as a dense layer over patches

Images are laid out as (batch, height, width, channels) and filter banks as
(filters, height, width, channels).
"""

import time

import numpy as np

from .activations import Identity, Sigmoid, Softmax, get_activation
from .errors import ChannelMismatch, InvalidShape, ShapeMismatch
from .losses import CrossEntropy
from .utils import make_rng, uniform_parameters


class Layer:
    """Base class for all layers."""

    name = 'Layer'

    def __init__(self, activation=None):
        self.params = {}    # Trainable parameters
        self.cache = {}     # Values cached by forward()
        self.input_shape = None
        self.output_shape = None
        self.activation = get_activation(activation)
        self.activation.bind(self)
        self._network = None

    @property
    def network(self):
        """The network holding this layer, if any."""
        if self._network is None:
            return None
        return self._network()

    @property
    def A(self):
        """Pre-activation values cached by the last forward()."""
        return self.cache.get('A')

    @property
    def Z(self):
        """Output values cached by the last forward()."""
        return self.cache.get('Z')

    @property
    def num_parameters(self):
        return sum(param.size for param in self.params.values())

    def get_parameters(self):
        """Return copies of (weights, biases)."""
        return self.params['weight'].copy(), self.params['bias'].copy()

    def set_parameters(self, W, b):
        """Replace weights and biases; shapes must match the current ones."""
        W = np.asarray(W, dtype=np.float64)
        b = np.asarray(b, dtype=np.float64)
        self._check_parameter_shapes(W, b)
        self.params['weight'] = W.copy()
        self.params['bias'] = b.copy()

    def update_parameters(self, delta_W, delta_b):
        """Add optimizer deltas to the parameters in place."""
        delta_W = np.asarray(delta_W, dtype=np.float64)
        delta_b = np.asarray(delta_b, dtype=np.float64)
        self._check_parameter_shapes(delta_W, delta_b)
        self.params['weight'] += delta_W
        self.params['bias'] += delta_b

    def reinitialize(self, rng=None):
        """Draw new random parameters."""

    def predict(self, X):
        """Forward pass without caching."""
        raise NotImplementedError

    def forward(self, X):
        """Forward pass caching A and Z for backpropagation."""
        raise NotImplementedError

    def backward(self, dZ, X):
        """Return (dX, dW, db) given dE/dZ and the layer's input."""
        raise NotImplementedError

    def output_backward(self, error_fn, X, T):
        """Return (dX, dW, db) when this is the network's last layer."""
        raise NotImplementedError

    def input_backward(self, dZ, X):
        """Return (dW, db) when this is the network's first layer."""
        raise NotImplementedError

    def __call__(self, X):
        return self.predict(X)

    def _check_parameter_shapes(self, W, b):
        expected_W, expected_b = self.get_parameters()
        if W.shape != expected_W.shape:
            raise ShapeMismatch(
                f"{self.name}: weights of shape {W.shape} given, expected {expected_W.shape}")
        if b.shape != expected_b.shape:
            raise ShapeMismatch(
                f"{self.name}: biases of shape {b.shape} given, expected {expected_b.shape}")

    def _check_input(self, X):
        X = np.asarray(X, dtype=np.float64)
        if X.shape[1:] != tuple(self.input_shape):
            raise ShapeMismatch(
                f"{self.name}: input samples of shape {X.shape[1:]} given, "
                f"expected {tuple(self.input_shape)}")
        return X

    def _output_delta(self, error_fn, T):
        """
        Derivative of the error w.r.t. the cached pre-activation A.

        Cross-entropy on a softmax or sigmoid output simplifies to Z - T.
        That form is used instead of composing -T/Z with the activation
        derivative, which divides by outputs that can be tiny.
        """
        Z = self.Z
        if Z is None:
            raise RuntimeError(f"{self.name}: call forward() before output_backward()")
        T = np.asarray(T, dtype=np.float64)
        if T.shape != Z.shape:
            if T.size != Z.size:
                raise ShapeMismatch(
                    f"{self.name}: targets of shape {T.shape} given for outputs of shape {Z.shape}")
            T = T.reshape(Z.shape)

        if isinstance(error_fn, CrossEntropy) and isinstance(self.activation, (Sigmoid, Softmax)):
            return Z - T

        dY = error_fn.derive(Z, T)
        return self.activation.derive(dY)


class Dense(Layer):
    """
    Fully Connected (Dense) Layer.

    Each output is connected to every input.

    Args:
        input_shape: Number of input features (int or shape tuple)
        output_size: Number of output features
        activation: Activation instance or name (default: identity)
        rng: Generator or seed for parameter initialization

    Parameters:
        weight: (output_size, input_size), uniform in [-1, 1]
        bias: (output_size,), uniform in [-1, 1]

    Forward: A = X @ W.T + b, Z = activation(A)
    """

    name = 'FC'

    def __init__(self, input_shape, output_size, activation=None, rng=None):
        super().__init__(activation)

        input_size = int(np.prod(input_shape))
        output_size = int(output_size)
        if input_size <= 0 or output_size <= 0:
            raise InvalidShape(
                f"Dense layer needs positive sizes, got {input_size} -> {output_size}")

        self.input_shape = (input_size,)
        self.output_size = output_size
        self.output_shape = (output_size,)

        self.rng = make_rng(rng)
        self.reinitialize()

    def reinitialize(self, rng=None):
        if rng is not None:
            self.rng = make_rng(rng)
        self.params['weight'] = uniform_parameters(self.rng, (self.output_size, self.input_shape[0]))
        self.params['bias'] = uniform_parameters(self.rng, (self.output_size,))

    def _linear(self, X):
        return X @ self.params['weight'].T + self.params['bias']

    def predict(self, X):
        X = self._check_input(X)
        return self.activation.eval(self._linear(X))

    def forward(self, X):
        X = self._check_input(X)
        self.cache['A'] = self._linear(X)
        self.cache['Z'] = self.activation.eval(self.cache['A'])
        return self.cache['Z']

    def backward(self, dZ, X):
        """
        Backward pass.

        dA = activation'(dZ)
        dW = dA.T @ X
        db = sum(dA) over the batch
        dX = dA @ W
        """
        dA = self.activation.derive(dZ)
        dW, db = self._gradients(dA, X)
        return dA @ self.params['weight'], dW, db

    def output_backward(self, error_fn, X, T):
        dA = self._output_delta(error_fn, T)
        dW, db = self._gradients(dA, X)
        return dA @ self.params['weight'], dW, db

    def input_backward(self, dZ, X):
        dA = self.activation.derive(dZ)
        return self._gradients(dA, X)

    def _gradients(self, dA, X):
        return dA.T @ X, np.sum(dA, axis=0)

    def __repr__(self):
        return f"Dense({self.input_shape[0]}, {self.output_size}, activation={self.activation!r})"


class Flatten(Layer):
    """
    Flatten layer: reshapes each sample to a vector.

    Input: (batch, *input_shape)
    Output: (batch, prod(input_shape))

    Used to connect convolutional layers to dense layers. It has no
    parameters and an identity activation.
    """

    name = 'Flatten'

    def __init__(self, input_shape):
        super().__init__(Identity())
        self.input_shape = tuple(int(d) for d in np.atleast_1d(input_shape))
        self.output_shape = (int(np.prod(self.input_shape)),)
        self.params['weight'] = np.zeros(0)
        self.params['bias'] = np.zeros(0)

    def predict(self, X):
        X = self._check_input(X)
        return X.reshape(len(X), -1)

    def forward(self, X):
        Z = self.predict(X)
        self.cache['A'] = Z
        self.cache['Z'] = Z
        return Z

    def backward(self, dZ, X):
        """Reshape gradient back to the input shape."""
        return self._unflatten(dZ), np.zeros(0), np.zeros(0)

    def output_backward(self, error_fn, X, T):
        """Apply the error derivative and reshape it to the input shape."""
        dY = self._output_delta(error_fn, T)
        return self._unflatten(dY), np.zeros(0), np.zeros(0)

    def input_backward(self, dZ, X):
        return np.zeros(0), np.zeros(0)

    def _unflatten(self, dZ):
        return dZ.reshape((len(dZ),) + self.input_shape)

    def __repr__(self):
        return f"Flatten({self.input_shape})"


# ============================================================================
# Convolution helpers
# ============================================================================

def _pair(value, what):
    """Expand an int or a sequence into a (vertical, horizontal) pair."""
    if np.isscalar(value):
        pair = (int(value), int(value))
    else:
        pair = tuple(int(v) for v in value)[:2]
    if len(pair) != 2:
        raise InvalidShape(f"Invalid {what}: {value!r}")
    return pair


def get_output_shape(input_shape, filter_shape, num_filters, stride, padding):
    """
    Output shape of a convolution.

        out = floor((in - filter + 2 * padding) / stride) + 1

    Returns:
        (out_height, out_width, num_filters)
    """
    out = [
        (input_shape[i] - filter_shape[i] + 2 * padding[i]) // stride[i] + 1
        for i in range(2)
    ]
    return out[0], out[1], num_filters


def im2col(X, fH, fW, stride, oH, oW):
    """
    Extract every receptive field into the rows of a matrix.

    Uses numpy stride tricks to create a view of all patches, then reshapes
    it. Row n * oH * oW + h * oW + w holds the patch at output position
    (h, w) of sample n, linearized in (height, width, channel) order, which
    is the order of a filter reshaped with F.reshape(K, -1).

    Args:
        X: Padded input, shape (N, H, W, C)

    Returns:
        Matrix of shape (N * oH * oW, fH * fW * C)
    """
    X = np.ascontiguousarray(X)
    N, _, _, C = X.shape
    sH, sW = stride

    shape = (N, oH, oW, fH, fW, C)
    strides = (
        X.strides[0],          # sample
        X.strides[1] * sH,     # output row (strided)
        X.strides[2] * sW,     # output column (strided)
        X.strides[1],          # filter row
        X.strides[2],          # filter column
        X.strides[3],          # channel
    )
    patches = np.lib.stride_tricks.as_strided(X, shape=shape, strides=strides, writeable=False)

    return patches.reshape(N * oH * oW, fH * fW * C)


def col2im(cols, padded_shape, fH, fW, stride, oH, oW):
    """
    Scatter patch rows back to image positions (inverse of im2col).

    Overlapping patches accumulate, which is what the gradient w.r.t. the
    input needs.
    """
    N, _, _, C = padded_shape
    sH, sW = stride

    cols = cols.reshape(N, oH, oW, fH, fW, C)
    X = np.zeros(padded_shape, dtype=cols.dtype)

    for h in range(oH):
        for w in range(oW):
            h_start = h * sH
            w_start = w * sW
            X[:, h_start:h_start + fH, w_start:w_start + fW, :] += cols[:, h, w]

    return X


class _ConvGeometry:
    """
    Shape bookkeeping shared by the convolutional layers.

    Resolves input/filter shapes, stride and padding, validates them and
    computes the output shape.
    """

    def _init_geometry(self, input_shape, num_filters, filter_shape, stride, padding):
        input_shape = tuple(int(d) for d in input_shape)
        if len(input_shape) == 2:
            input_shape = input_shape + (1,)
        filter_shape = tuple(int(d) for d in filter_shape)
        if len(filter_shape) == 2:
            filter_shape = filter_shape + (input_shape[-1],)

        if len(input_shape) != 3 or len(filter_shape) != 3:
            raise InvalidShape(
                f"Expected (height, width[, channels]) shapes, got input {input_shape} "
                f"and filters {filter_shape}")
        if not float(num_filters).is_integer() or num_filters <= 0:
            raise InvalidShape(f"num_filters must be a positive integer, got {num_filters!r}")
        if filter_shape[2] != input_shape[2]:
            raise ChannelMismatch(
                f"Input and filters have different channels: {input_shape[2]} vs {filter_shape[2]}")

        self.input_shape = input_shape
        self.filter_shape = filter_shape
        self.num_filters = int(num_filters)

        self.stride = _pair(stride, 'stride')
        if min(self.stride) <= 0:
            raise InvalidShape(f"Stride must be positive, got {self.stride}")

        self.padding_mode = padding
        self.padding = self._resolve_padding(padding)
        if min(self.padding) < 0:
            raise InvalidShape(f"Padding must be non-negative, got {self.padding}")

        self.output_shape = get_output_shape(
            self.input_shape, self.filter_shape, self.num_filters, self.stride, self.padding)
        if min(self.output_shape) <= 0:
            raise InvalidShape(
                f"Output shape {self.output_shape} is invalid for input {self.input_shape}, "
                f"filters {self.filter_shape}, stride {self.stride}, padding {self.padding}")

    def _resolve_padding(self, padding):
        if isinstance(padding, str):
            if padding == 'valid':
                return (0, 0)
            if padding == 'same':
                # Same padding allowed only for odd filters
                if any(f % 2 == 0 for f in self.filter_shape[:2]):
                    raise InvalidShape(
                        f"'same' padding needs odd filter sizes, got {self.filter_shape[:2]}")
                return tuple(
                    int(np.ceil(((self.input_shape[i] - 1) * self.stride[i]
                                 + self.filter_shape[i] - self.input_shape[i]) / 2))
                    for i in range(2)
                )
            raise InvalidShape(f"Given padding is not valid: {padding!r}")
        return _pair(padding, 'padding')

    def _pad(self, X):
        """Apply zero padding to the spatial axes."""
        if self.padding == (0, 0):
            return X

        pH, pW = self.padding
        return np.pad(X, ((0, 0), (pH, pH), (pW, pW), (0, 0)), mode='constant')

    def _unpad(self, X):
        pH, pW = self.padding
        H, W, _ = self.input_shape
        return X[:, pH:pH + H, pW:pW + W, :]

    @property
    def _weight_shape(self):
        return (self.num_filters,) + self.filter_shape

    def _describe(self):
        return (f"filters={self.num_filters}, filter_shape={self.filter_shape}, "
                f"stride={self.stride}, padding={self.padding_mode!r}, "
                f"activation={self.activation!r}")


class Conv2D(_ConvGeometry, Layer):
    """
    2D Convolutional Layer.

    Performs spatial convolution over input by sliding every filter over
    every receptive field of the zero-padded input.

    Args:
        input_shape: (height, width, channels); (height, width) means 1 channel
        num_filters: Number of filters (output channels)
        filter_shape: (height, width, channels); (height, width) takes the
            input's channels
        activation: Activation instance or name (default: identity)
        stride: int or (vertical, horizontal) stride (default: 1)
        padding: int, (vertical, horizontal), 'valid' (no padding) or
            'same' (output at least as large as input, odd filters only)
        rng: Generator or seed for parameter initialization

    Input shape: (batch, height, width, channels)
    Output shape: (batch, out_height, out_width, num_filters)

    Where:
        out_height = (height + 2*pad - filter_height) // stride + 1
        out_width = (width + 2*pad - filter_width) // stride + 1

    The backward pass computes:
    1. dE/dW: the padded input convolved with the stride-dilated gradient
    2. dE/db: the gradient summed over batch and positions
    3. dE/dX: the full correlation of the dilated gradient with the
       filters rotated by 180 degrees
    """

    name = 'Conv'

    def __init__(self, input_shape, num_filters, filter_shape, activation=None,
                 stride=1, padding=0, rng=None):
        Layer.__init__(self, activation)
        self._init_geometry(input_shape, num_filters, filter_shape, stride, padding)

        self.rng = make_rng(rng)
        self.reinitialize()

    def reinitialize(self, rng=None):
        if rng is not None:
            self.rng = make_rng(rng)
        self.params['weight'] = uniform_parameters(self.rng, self._weight_shape)
        self.params['bias'] = uniform_parameters(self.rng, (self.num_filters,))

    def _convolve(self, X, F, stride):
        """
        Convolve a 4D tensor with a 4D filter bank.

        X is (N, H, W, C) with any padding already applied and F is
        (K, fH, fW, C). The result is (N, oH, oW, K).

        For every output position the patch of every sample is extracted
        and multiplied with every filter at once.
        """
        N, xH, xW, _ = X.shape
        K, fH, fW, _ = F.shape
        sH, sW = stride
        oH = (xH - fH) // sH + 1
        oW = (xW - fW) // sW + 1

        F_mat = F.reshape(K, -1)
        H = np.zeros((N, oH, oW, K))

        for h in range(oH):
            for w in range(oW):
                h_start = h * sH
                w_start = w * sW
                patches = X[:, h_start:h_start + fH, w_start:w_start + fW, :].reshape(N, -1)
                H[:, h, w, :] = patches @ F_mat.T

        return H

    def _activation_values(self, X):
        A = self._convolve(self._pad(X), self.params['weight'], self.stride)
        return A + self.params['bias']

    def predict(self, X):
        X = self._check_input(X)
        return self.activation.eval(self._activation_values(X))

    def forward(self, X):
        X = self._check_input(X)
        self.cache['A'] = self._activation_values(X)
        self.cache['Z'] = self.activation.eval(self.cache['A'])
        return self.cache['Z']

    def backward(self, dZ, X):
        dA = self.activation.derive(dZ)
        dW, db = self._parameter_gradients(dA, X)
        return self._input_gradients(dA), dW, db

    def output_backward(self, error_fn, X, T):
        dA = self._output_delta(error_fn, T)
        dW, db = self._parameter_gradients(dA, X)
        return self._input_gradients(dA), dW, db

    def input_backward(self, dZ, X):
        dA = self.activation.derive(dZ)
        return self._parameter_gradients(dA, X)

    def _dilate(self, dA):
        """Interleave zeros between gradient positions to undo the stride."""
        N, oH, oW, K = dA.shape
        sH, sW = self.stride
        dilated = np.zeros((N, (oH - 1) * sH + 1, (oW - 1) * sW + 1, K))
        dilated[:, ::sH, ::sW, :] = dA
        return dilated

    def _stride_remainder(self):
        """Rows and columns of the padded input that no filter position reaches."""
        H, W, _ = self.input_shape
        pH, pW = self.padding
        fH, fW, _ = self.filter_shape
        sH, sW = self.stride
        return (H + 2 * pH - fH) % sH, (W + 2 * pW - fW) % sW

    def _parameter_gradients(self, dA, X):
        padded = self._pad(np.asarray(X, dtype=np.float64))
        crop_h, crop_w = self._stride_remainder()
        _, xH, xW, _ = padded.shape
        padded = padded[:, :xH - crop_h, :xW - crop_w, :]

        # Samples play the role of channels: (C, H, W, N) * (K, dH, dW, N) -> (C, fH, fW, K)
        dW = self._convolve(padded.transpose(3, 1, 2, 0),
                            self._dilate(dA).transpose(3, 1, 2, 0), (1, 1))
        dW = dW.transpose(3, 1, 2, 0)

        db = np.sum(dA, axis=(0, 1, 2))
        return dW, db

    def _input_gradients(self, dA):
        fH, fW, _ = self.filter_shape
        crop_h, crop_w = self._stride_remainder()

        dilated = np.pad(self._dilate(dA),
                         ((0, 0), (fH - 1, fH - 1), (fW - 1, fW - 1), (0, 0)), mode='constant')
        # (K, fH, fW, C) rotated in space, then channels become filters: (C, fH, fW, K)
        rotated = self.params['weight'][:, ::-1, ::-1, :].transpose(3, 1, 2, 0)

        dX = self._convolve(dilated, rotated, (1, 1))
        # Give back the rows/columns skipped by the stride, then remove padding
        dX = np.pad(dX, ((0, 0), (0, crop_h), (0, crop_w), (0, 0)), mode='constant')
        return self._unpad(dX)

    def __repr__(self):
        return f"{type(self).__name__}({self.input_shape}, {self._describe()})"


class UnrolledConv2D(Conv2D):
    """
    Conv2D computed with patch matrices.

    Every convolution (forward, weight gradient and input gradient) is
    reduced to one matrix multiplication: patches are linearized into the
    rows of a matrix (im2col) and filters into its columns. Results are the
    same as Conv2D up to floating point rounding; memory grows with the
    number of patches.
    """

    name = 'UnrolledConv'

    def _convolve(self, X, F, stride):
        N, xH, xW, _ = X.shape
        K, fH, fW, _ = F.shape
        sH, sW = stride
        oH = (xH - fH) // sH + 1
        oW = (xW - fW) // sW + 1

        # (N * oH * oW, fH * fW * C) @ (fH * fW * C, K) = (N * oH * oW, K)
        cols = im2col(X, fH, fW, stride, oH, oW)
        H = cols @ F.reshape(K, -1).T

        return H.reshape(N, oH, oW, K)


class ConvAsDense(_ConvGeometry, Layer):
    """
    Convolution expressed as a fully connected layer over patches.

    Every receptive field of the padded input becomes a row of a patch
    matrix, and an inner Dense layer with one output per filter is applied
    to it. The filter bank is the Dense weight matrix, so parameters are
    exchanged in the convolutional layout (filters, height, width,
    channels) and can be copied to and from a Conv2D.

    Arguments are the same as Conv2D. The activation is applied on the
    reconstructed (batch, out_height, out_width, filters) tensor.
    """

    name = 'Fc-Conv-Equiv'

    def __init__(self, input_shape, num_filters, filter_shape, activation=None,
                 stride=1, padding=0, rng=None):
        Layer.__init__(self, activation)
        self._init_geometry(input_shape, num_filters, filter_shape, stride, padding)

        self.dense = Dense(self.filter_shape, self.num_filters, Identity(), rng=rng)

    @property
    def num_parameters(self):
        return self.dense.num_parameters

    def reinitialize(self, rng=None):
        self.dense.reinitialize(rng)

    def get_parameters(self):
        W, b = self.dense.get_parameters()
        return W.reshape(self._weight_shape), b

    def set_parameters(self, W, b):
        W = np.asarray(W, dtype=np.float64)
        b = np.asarray(b, dtype=np.float64)
        self._check_parameter_shapes(W, b)
        self.dense.set_parameters(W.reshape(self.num_filters, -1), b)

    def update_parameters(self, delta_W, delta_b):
        delta_W = np.asarray(delta_W, dtype=np.float64)
        delta_b = np.asarray(delta_b, dtype=np.float64)
        self._check_parameter_shapes(delta_W, delta_b)
        self.dense.update_parameters(delta_W.reshape(self.num_filters, -1), delta_b)

    def _linearize(self, X):
        """Patch matrix of the padded input, one row per output position."""
        oH, oW, _ = self.output_shape
        fH, fW, _ = self.filter_shape
        return im2col(self._pad(X), fH, fW, self.stride, oH, oW)

    def _reconstruct(self, M, N):
        """Reshape (N * oH * oW, K) rows back to (N, oH, oW, K)."""
        return M.reshape((N,) + tuple(self.output_shape))

    def predict(self, X):
        X = self._check_input(X)
        A = self._reconstruct(self.dense.predict(self._linearize(X)), len(X))
        return self.activation.eval(A)

    def forward(self, X):
        X = self._check_input(X)
        self.cache['A'] = self._reconstruct(self.dense.forward(self._linearize(X)), len(X))
        self.cache['Z'] = self.activation.eval(self.cache['A'])
        return self.cache['Z']

    def backward(self, dZ, X):
        dA = self.activation.derive(dZ)
        return self._backward_from_activation(dA, X)

    def output_backward(self, error_fn, X, T):
        dA = self._output_delta(error_fn, T)
        return self._backward_from_activation(dA, X)

    def input_backward(self, dZ, X):
        dA = self.activation.derive(dZ)
        dW, db = self.dense.input_backward(dA.reshape(-1, self.num_filters), self._linearize(X))
        return dW.reshape(self._weight_shape), db

    def _backward_from_activation(self, dA, X):
        X = np.asarray(X, dtype=np.float64)
        dcols, dW, db = self.dense.backward(dA.reshape(-1, self.num_filters), self._linearize(X))
        return self._input_gradients(dcols, len(X)), dW.reshape(self._weight_shape), db

    def _input_gradients(self, dcols, N):
        oH, oW, _ = self.output_shape
        fH, fW, C = self.filter_shape
        pH, pW = self.padding
        H, W, _ = self.input_shape
        padded_shape = (N, H + 2 * pH, W + 2 * pW, C)

        dX = col2im(dcols, padded_shape, fH, fW, self.stride, oH, oW)
        return self._unpad(dX)

    def __repr__(self):
        return f"ConvAsDense({self.input_shape}, {self._describe()})"


# ============================================================================
# Comparison of the convolution implementations
# ============================================================================

CONV_IMPLEMENTATIONS = (Conv2D, UnrolledConv2D, ConvAsDense)


def benchmark_convolutions(X, num_filters, filter_shape, activation='relu', stride=1,
                           padding=0, n_runs=10, rng=None):
    """
    Time Conv2D, UnrolledConv2D and ConvAsDense on the same batch.

    The three layers share the parameters of a randomly initialized Conv2D.
    One run is a training forward pass followed by a backward pass with an
    all-ones output gradient.

    Args:
        X: Input batch, shape (N, height, width, channels)
        num_filters, filter_shape, stride, padding: As for Conv2D
        activation: Activation name
        n_runs: Number of timed runs per layer
        rng: Generator or seed for the shared parameters

    Returns:
        Dictionary keyed by layer name with timing statistics (ms) and
        'max_abs_diff', the largest deviation of the output, dX, dW and db
        from those of Conv2D
    """
    X = np.asarray(X, dtype=np.float64)
    layers = [cls(X.shape[1:], num_filters, filter_shape, activation, stride, padding, rng=rng)
              for cls in CONV_IMPLEMENTATIONS]

    W, b = layers[0].get_parameters()
    for layer in layers[1:]:
        layer.set_parameters(W, b)

    def run(layer):
        Z = layer.forward(X)
        return (Z,) + layer.backward(np.ones_like(Z), X)

    expected = run(layers[0])
    stats = {}

    for layer in layers:
        # Warmup, also gives the values to compare
        outputs = run(layer)

        times = []
        for _ in range(n_runs):
            start = time.perf_counter()
            run(layer)
            times.append(time.perf_counter() - start)

        times = np.array(times) * 1000  # Convert to ms

        stats[layer.name] = {
            'mean_ms': np.mean(times),
            'std_ms': np.std(times),
            'min_ms': np.min(times),
            'max_ms': np.max(times),
            'per_sample_ms': np.mean(times) / len(X),
            'max_abs_diff': max(float(np.max(np.abs(out - ref)))
                                for out, ref in zip(outputs, expected)),
        }

    return stats
