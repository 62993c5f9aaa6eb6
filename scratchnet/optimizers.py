"""
Optimizers
==========

Optimizers turn the gradients of a batch into parameter deltas.
The network adds the deltas to its parameters (see
NeuralNetwork.update_parameters).

Every optimizer implements:
- evaluate_deltas(dW_list, db_list, n_samples): one delta per parameter
  array, in the same order as the gradients
- clear(): forget any state kept between calls

This module implements:
- SGD: Plain gradient descent with a fixed learning rate
- RProp: Resilient backpropagation, per-parameter adaptive step sizes
"""

import numpy as np

from .errors import InvalidHyperparameter, ShapeMismatch


class Optimizer:
    """Base class for optimizers."""

    def evaluate_deltas(self, dW_list, db_list, n_samples):
        """
        Compute the parameter deltas for one batch.

        Args:
            dW_list: Weight gradients, one array per layer
            db_list: Bias gradients, one array per layer
            n_samples: Number of samples the gradients are summed over

        Returns:
            (delta_W_list, delta_b_list)
        """
        raise NotImplementedError

    def clear(self):
        """Reset optimizer state."""

    def __repr__(self):
        return f"{type(self).__name__}()"


class SGD(Optimizer):
    """
    Stochastic Gradient Descent.

    Gradients are summed over the batch, so they are averaged before
    scaling by the learning rate:

        delta = -eta * gradient / n_samples

    Args:
        eta: Learning rate, must be positive (default: 0.01)
    """

    DEFAULT_ETA = 0.01

    def __init__(self, eta=DEFAULT_ETA):
        if eta <= 0:
            raise InvalidHyperparameter(f"SGD learning rate must be positive, got {eta}")
        self.eta = eta

    def evaluate_deltas(self, dW_list, db_list, n_samples):
        scale = -self.eta / n_samples
        delta_W = [scale * np.asarray(dW) for dW in dW_list]
        delta_b = [scale * np.asarray(db) for db in db_list]
        return delta_W, delta_b

    def __repr__(self):
        return f"SGD(eta={self.eta})"


class RProp(Optimizer):
    """
    Resilient backpropagation.

    Only the sign of each gradient is used. Every parameter has its own
    step size, which grows while the gradient keeps its sign and shrinks
    when it flips:

        same sign:     step = min(delta_max, step * eta_plus)
        opposite sign: step = max(delta_min, step * eta_minus)
        zero product:  step unchanged

        delta = -sign(gradient) * step

    The first call after construction or clear() uses delta_zero as the
    step of every parameter. Since only signs matter the batch size has no
    influence on the deltas.

    Args:
        eta_minus: Shrink factor, 0 < eta_minus < 1 (default: 0.5)
        eta_plus: Growth factor, eta_plus >= 1 (default: 1.2)
        delta_zero: Initial step size, > 0 (default: 0.125)
        delta_min: Lower bound of the step size (default: 1e-9)
        delta_max: Upper bound of the step size (default: 50)
    """

    DEFAULT_ETA_MINUS = 0.5
    DEFAULT_ETA_PLUS = 1.2
    DEFAULT_DELTA_ZERO = 0.125
    DEFAULT_DELTA_MIN = 1e-9
    DEFAULT_DELTA_MAX = 50.0

    def __init__(self, eta_minus=DEFAULT_ETA_MINUS, eta_plus=DEFAULT_ETA_PLUS,
                 delta_zero=DEFAULT_DELTA_ZERO, delta_min=DEFAULT_DELTA_MIN,
                 delta_max=DEFAULT_DELTA_MAX):
        if eta_plus < 1:
            raise InvalidHyperparameter(f"eta_plus must be >= 1, got {eta_plus}")
        if not 0 < eta_minus < 1:
            raise InvalidHyperparameter(f"eta_minus must be in (0, 1), got {eta_minus}")
        if delta_zero <= 0:
            raise InvalidHyperparameter(f"delta_zero must be positive, got {delta_zero}")
        if not 0 <= delta_min < delta_max:
            raise InvalidHyperparameter(
                f"Need 0 <= delta_min < delta_max, got {delta_min} and {delta_max}")

        self.eta_minus = eta_minus
        self.eta_plus = eta_plus
        self.delta_zero = delta_zero
        self.delta_min = delta_min
        self.delta_max = delta_max

        self._initialized = False
        self._cache = {}

    def clear(self):
        self._initialized = False
        self._cache = {}

    def evaluate_deltas(self, dW_list, db_list, n_samples):
        gradients = {'weight': list(dW_list), 'bias': list(db_list)}

        if self._initialized and len(self._cache) != len(gradients['weight']):
            raise ShapeMismatch(
                f"RProp state holds {len(self._cache)} layers, got gradients for "
                f"{len(gradients['weight'])}; call clear() after changing the network")

        deltas = {'weight': [], 'bias': []}

        for name, grads in gradients.items():
            for i, grad in enumerate(grads):
                grad = np.asarray(grad, dtype=np.float64)
                layer_cache = self._cache.setdefault(i, {})

                if self._initialized:
                    step = self._adapt_step(layer_cache, name, grad)
                else:
                    step = np.full(grad.shape, self.delta_zero)

                deltas[name].append(-np.sign(grad) * step)

                # Store state for the next call
                layer_cache[f'step_{name}'] = step
                layer_cache[f'grad_{name}'] = grad.copy()

        self._initialized = True
        return deltas['weight'], deltas['bias']

    def _adapt_step(self, layer_cache, name, grad):
        prev_step = layer_cache[f'step_{name}']
        prev_grad = layer_cache[f'grad_{name}']
        if prev_grad.shape != grad.shape:
            raise ShapeMismatch(
                f"RProp state for {name} has shape {prev_grad.shape}, got {grad.shape}")

        direction = np.sign(grad * prev_grad)
        grown = np.minimum(self.delta_max, prev_step * self.eta_plus)
        shrunk = np.maximum(self.delta_min, prev_step * self.eta_minus)

        return np.where(direction > 0, grown, np.where(direction < 0, shrunk, prev_step))

    def __repr__(self):
        return (f"RProp(eta_minus={self.eta_minus}, eta_plus={self.eta_plus}, "
                f"delta_zero={self.delta_zero}, delta_min={self.delta_min}, "
                f"delta_max={self.delta_max})")


# Optimizer registry
OPTIMIZERS = {
    'sgd': SGD,
    'rprop': RProp,
}


def get_optimizer(name, **kwargs):
    """
    Get optimizer by name.

    Args:
        name: 'sgd', 'rprop' or an Optimizer instance
        **kwargs: Arguments to pass to optimizer

    Returns:
        Optimizer instance
    """
    if isinstance(name, Optimizer):
        return name

    name_lower = name.lower()
    if name_lower not in OPTIMIZERS:
        raise ValueError(f"Unknown optimizer '{name}'. Available: {list(OPTIMIZERS.keys())}")

    return OPTIMIZERS[name_lower](**kwargs)
