"""
Activation Functions
====================

Element-wise non-linearities applied at the end of every layer.

Each activation is bound to exactly one layer. Derivatives don't take the
activation input as an argument: they read the values the layer cached
during its training forward pass (A = pre-activation, Z = post-activation)
and multiply them with the gradient coming from the next layer.

    dA = activation.derive(dZ)

The back-reference to the layer is a weak reference: the layer owns the
activation, never the other way around.
"""

import weakref

import numpy as np


class Activation:
    """Base class for all activation functions."""

    def __init__(self):
        self._layer = None

    def bind(self, layer):
        """
        Attach the activation to the layer whose caches it reads.

        An activation instance can only serve one layer, otherwise two
        layers would overwrite each other's cached values.
        """
        current = self.layer
        if current is not None and current is not layer:
            raise ValueError(
                f"{type(self).__name__} is already bound to {current!r}; "
                "create a new activation for each layer")
        self._layer = weakref.ref(layer)

    @property
    def layer(self):
        if self._layer is None:
            return None
        return self._layer()

    def _cached(self, name):
        layer = self.layer
        if layer is None:
            raise RuntimeError(f"{type(self).__name__} is not bound to a layer")
        value = getattr(layer, name)
        if value is None:
            raise RuntimeError(
                f"Layer {layer!r} has no cached {name}: call forward() before backward()")
        return value

    def eval(self, A):
        """Apply activation function."""
        raise NotImplementedError

    def derive(self, dZ):
        """Gradient w.r.t. the pre-activation, given the gradient w.r.t. the output."""
        raise NotImplementedError

    def __call__(self, A):
        return self.eval(A)

    def __repr__(self):
        return f"{type(self).__name__}()"


class Identity(Activation):
    """
    Identity: f(a) = a

    Used for regression outputs and wherever a layer should stay linear.
    """

    def eval(self, A):
        return A

    def derive(self, dZ):
        return dZ


class Sigmoid(Activation):
    """
    Sigmoid: f(a) = 1 / (1 + exp(-a))

    Derivative uses the cached output:
        f'(a) = z * (1 - z)
    """

    def eval(self, A):
        # Clip to keep exp() from overflowing
        A_clipped = np.clip(A, -500, 500)
        return 1.0 / (1.0 + np.exp(-A_clipped))

    def derive(self, dZ):
        Z = self._cached('Z')
        return dZ * Z * (1 - Z)


class ReLU(Activation):
    """
    Rectified Linear Unit: f(a) = max(0, a)

    Derivative uses the cached pre-activation. The gradient passes for
    a >= 0 (the sub-gradient at zero is taken as 1).
    """

    def eval(self, A):
        return np.maximum(0, A)

    def derive(self, dZ):
        A = self._cached('A')
        return dZ * (A >= 0)


class Tanh(Activation):
    """
    Hyperbolic Tangent: f(a) = tanh(a)

    Derivative:
        f'(a) = 1 - z^2
    """

    def eval(self, A):
        return np.tanh(A)

    def derive(self, dZ):
        Z = self._cached('Z')
        return dZ * (1 - Z ** 2)


class Softmax(Activation):
    """
    Softmax, normalized per sample.

    Every sample (axis 0) is normalized over all its remaining axes. The
    per-sample maximum is subtracted before exp for numerical stability;
    this doesn't change the result since s(a) = s(a + c).

    Derivative, with delta = dZ * z:
        dE/da_i = delta_i - z_i * sum_k(delta_k)

    Note: with cross-entropy on the output layer the layer uses the fused
    derivative z - t instead (see Layer.output_backward).
    """

    def eval(self, A):
        axes = tuple(range(1, A.ndim))
        exp_A = np.exp(A - np.max(A, axis=axes, keepdims=True))
        return exp_A / np.sum(exp_A, axis=axes, keepdims=True)

    def derive(self, dZ):
        Z = self._cached('Z')
        axes = tuple(range(1, dZ.ndim))
        delta = dZ * Z
        return delta - Z * np.sum(delta, axis=axes, keepdims=True)


# ====================================
# Activation Registry
# ====================================

ACTIVATIONS = {
    'identity': Identity,
    'linear': Identity,
    'none': Identity,
    'sigmoid': Sigmoid,
    'relu': ReLU,
    'tanh': Tanh,
    'softmax': Softmax,
}


def get_activation(name):
    """
    Get activation function by name.

    Args:
        name: String name ('relu', 'sigmoid', etc.), Activation instance or None

    Returns:
        Activation instance (a fresh one for strings and None)

    Example:
        >>> act = get_activation('relu')
        >>> act(np.array([-1, 0, 1]))
        array([0, 0, 1])
    """
    if isinstance(name, Activation):
        return name

    if name is None:
        return Identity()

    name_lower = name.lower().replace('-', '_')
    if name_lower not in ACTIVATIONS:
        available = ', '.join(ACTIVATIONS.keys())
        raise ValueError(f"Unknown activation '{name}'. Available: {available}")

    return ACTIVATIONS[name_lower]()
