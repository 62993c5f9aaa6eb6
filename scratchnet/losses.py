"""
Error Functions
===============

Error (loss) functions measure how far the network's output Y is from the
targets T. Each one implements:
- eval(Y, T): error summed over the whole batch
- derive(Y, T): dE/dY for every sample and output, same shape as Y

Errors are sums, not means: the training loop divides by the number of
samples when it reports comparable values for sets of different size.
"""

import numpy as np


class ErrorFunction:
    """Base class for error functions."""

    name = 'Error'

    def eval(self, Y, T):
        """Compute error value."""
        raise NotImplementedError

    def derive(self, Y, T):
        """Compute gradient of the error w.r.t. the network's output."""
        raise NotImplementedError

    def __call__(self, Y, T):
        return self.eval(Y, T)

    def __repr__(self):
        return f"{type(self).__name__}()"


class SumOfSquares(ErrorFunction):
    """
    Sum-of-Squares error, used for regression.

    Formula: E = 0.5 * sum((t - y)^2)

    Gradient: dE/dy = y - t
    """

    name = 'Sum of Squares'

    def eval(self, Y, T):
        diff = T - Y
        return 0.5 * np.sum(diff * diff)

    def derive(self, Y, T):
        return Y - T


class CrossEntropy(ErrorFunction):
    """
    Cross-Entropy error for classification.

    Formula: E = -sum(t * log(max(y, epsilon)))

    Gradient: dE/dy = -t / y

    When the output layer uses softmax or sigmoid the layer skips this
    derivative and uses the fused one, z - t.
    """

    name = 'Cross-Entropy'
    EPSILON = 1e-6

    def eval(self, Y, T):
        return -np.sum(T * np.log(np.maximum(Y, self.EPSILON)))

    def derive(self, Y, T):
        return -T / Y


# ============================================================================
# Error Function Registry
# ============================================================================

LOSSES = {
    'cross_entropy': CrossEntropy,
    'crossentropy': CrossEntropy,
    'ce': CrossEntropy,
    'sum_of_squares': SumOfSquares,
    'sse': SumOfSquares,
    'sos': SumOfSquares,
}


def get_loss(name):
    """
    Get error function by name.

    Args:
        name: String name or ErrorFunction instance

    Returns:
        ErrorFunction instance
    """
    if isinstance(name, ErrorFunction):
        return name

    name_lower = name.lower().replace('-', '_').replace(' ', '_')
    if name_lower not in LOSSES:
        available = ', '.join(sorted(set(LOSSES.keys())))
        raise ValueError(f"Unknown loss '{name}'. Available: {available}")

    return LOSSES[name_lower]()
