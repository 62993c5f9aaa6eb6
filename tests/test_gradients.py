"""
Gradient Checking Tests
=======================

Verify analytical gradients match numerical approximations.
This is THE most important test for ensuring backpropagation is correct.

Method: Centered finite differences
    f'(x) ≈ (f(x + ε) - f(x - ε)) / (2ε)

We compare:
    - Analytical gradient: computed by backward()
    - Numerical gradient: finite difference approximation

Each layer is checked on the scalar loss sum(Z * G) for a random G, so
dE/dZ = G. Smooth activations (tanh, sigmoid) are used to stay away from
the ReLU kink.
"""

import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from scratchnet.layers import Conv2D, UnrolledConv2D, ConvAsDense, Dense, Flatten
from scratchnet.losses import CrossEntropy, SumOfSquares
from scratchnet.utils import one_hot_encode


def numerical_gradient(f, x, epsilon=1e-5):
    """
    Compute numerical gradient using centered finite differences.

    Args:
        f: Function that takes x and returns scalar loss
        x: Point at which to compute gradient
        epsilon: Small perturbation

    Returns:
        Numerical gradient, same shape as x
    """
    grad = np.zeros_like(x)

    it = np.nditer(x, flags=['multi_index'])
    while not it.finished:
        idx = it.multi_index

        # f(x + epsilon)
        x[idx] += epsilon
        loss_plus = f(x)

        # f(x - epsilon)
        x[idx] -= 2 * epsilon
        loss_minus = f(x)

        # Restore
        x[idx] += epsilon

        # Centered difference
        grad[idx] = (loss_plus - loss_minus) / (2 * epsilon)

        it.iternext()

    return grad


def relative_error(analytical, numerical):
    """
    Compute relative error between analytical and numerical gradients.

    Returns:
        Maximum relative error across all elements
    """
    diff = np.abs(analytical - numerical)
    denom = np.maximum(np.abs(analytical) + np.abs(numerical), 1e-8)
    return np.max(diff / denom)


def check_layer_gradients(layer, x, grad_output, tolerance=1e-5):
    """Compare backward() with finite differences for input, weights and bias."""
    layer.forward(x)
    analytical_dx, analytical_dW, analytical_db = layer.backward(grad_output, x)

    def loss_input(x_in):
        return np.sum(layer.predict(x_in) * grad_output)

    W, b = layer.get_parameters()

    def loss_weight(W_in):
        layer.set_parameters(W_in, b)
        return np.sum(layer.predict(x) * grad_output)

    def loss_bias(b_in):
        layer.set_parameters(W, b_in)
        return np.sum(layer.predict(x) * grad_output)

    numerical_dx = numerical_gradient(loss_input, x.copy())
    numerical_dW = numerical_gradient(loss_weight, W.copy())
    numerical_db = numerical_gradient(loss_bias, b.copy())
    layer.set_parameters(W, b)

    error = relative_error(analytical_dx, numerical_dx)
    assert error < tolerance, f"Input gradient error too large: {error}"
    error = relative_error(analytical_dW, numerical_dW)
    assert error < tolerance, f"Weight gradient error too large: {error}"
    error = relative_error(analytical_db, numerical_db)
    assert error < tolerance, f"Bias gradient error too large: {error}"


CONV_CONFIGS = [
    # input_shape, num_filters, filter_shape, stride, padding
    ((6, 6, 2), 3, (3, 3), 1, 'same'),
    ((7, 6, 1), 2, (3, 2), (2, 1), 0),
    ((7, 8, 2), 2, (2, 3), (2, 3), 1),
    ((5, 5, 3), 2, (3, 3), 2, (2, 1)),
]


class TestConvGradients:
    """Gradient tests for the convolutional layers."""

    @pytest.mark.parametrize('layer_cls', [Conv2D, UnrolledConv2D, ConvAsDense])
    @pytest.mark.parametrize('input_shape,num_filters,filter_shape,stride,padding', CONV_CONFIGS)
    def test_gradients(self, layer_cls, input_shape, num_filters, filter_shape, stride, padding):
        """Test gradients w.r.t. input, weights and biases."""
        rng = np.random.default_rng(42)

        conv = layer_cls(input_shape, num_filters, filter_shape, 'tanh',
                         stride=stride, padding=padding, rng=rng)
        x = rng.standard_normal((2,) + conv.input_shape)
        grad_output = rng.standard_normal((2,) + tuple(conv.output_shape))

        check_layer_gradients(conv, x, grad_output, tolerance=1e-4)

    def test_input_backward_matches_backward(self):
        """input_backward returns the same parameter gradients as backward."""
        rng = np.random.default_rng(0)

        conv = Conv2D((6, 6, 2), 3, (3, 3), 'sigmoid', stride=2, padding=1, rng=rng)
        x = rng.standard_normal((3, 6, 6, 2))
        grad_output = rng.standard_normal((3,) + tuple(conv.output_shape))

        conv.forward(x)
        _, dW, db = conv.backward(grad_output, x)
        dW_first, db_first = conv.input_backward(grad_output, x)

        np.testing.assert_allclose(dW_first, dW)
        np.testing.assert_allclose(db_first, db)


class TestDenseGradients:
    """Gradient tests for Dense layer."""

    @pytest.mark.parametrize('activation', ['identity', 'sigmoid', 'tanh', 'softmax'])
    def test_gradients(self, activation):
        """Test gradients w.r.t. input, weights and biases."""
        rng = np.random.default_rng(42)

        dense = Dense(16, 8, activation, rng=rng)
        x = rng.standard_normal((4, 16))
        grad_output = rng.standard_normal((4, 8))

        check_layer_gradients(dense, x, grad_output)


class TestOutputGradients:
    """Gradient tests for output_backward (error function included)."""

    def _check(self, layer, error_fn, x, t):
        layer.forward(x)
        _, analytical_dW, analytical_db = layer.output_backward(error_fn, x, t)
        W, b = layer.get_parameters()

        def loss_weight(W_in):
            layer.set_parameters(W_in, b)
            return error_fn.eval(layer.predict(x), t)

        numerical_dW = numerical_gradient(loss_weight, W.copy())
        layer.set_parameters(W, b)

        error = relative_error(analytical_dW, numerical_dW)
        assert error < 1e-5, f"Weight gradient error too large: {error}"

        def loss_bias(b_in):
            layer.set_parameters(W, b_in)
            return error_fn.eval(layer.predict(x), t)

        numerical_db = numerical_gradient(loss_bias, b.copy())
        layer.set_parameters(W, b)

        error = relative_error(analytical_db, numerical_db)
        assert error < 1e-5, f"Bias gradient error too large: {error}"

    def test_softmax_cross_entropy(self):
        """Fused softmax + cross-entropy gradient is the true gradient."""
        rng = np.random.default_rng(1)
        dense = Dense(5, 4, 'softmax', rng=rng)
        x = rng.standard_normal((6, 5))
        t = one_hot_encode(rng.integers(0, 4, size=6), 4)

        self._check(dense, CrossEntropy(), x, t)

    def test_sigmoid_sum_of_squares(self):
        """Unfused path: error derivative composed with activation derivative."""
        rng = np.random.default_rng(2)
        dense = Dense(5, 3, 'sigmoid', rng=rng)
        x = rng.standard_normal((6, 5))
        t = rng.uniform(size=(6, 3))

        self._check(dense, SumOfSquares(), x, t)

    def test_conv_softmax_cross_entropy(self):
        """Softmax over a whole feature map with cross-entropy."""
        rng = np.random.default_rng(3)
        conv = Conv2D((4, 4, 1), 2, (3, 3), 'softmax', rng=rng)
        x = rng.standard_normal((3, 4, 4, 1))
        t = np.zeros((3, 2, 2, 2))
        t[0, 0, 1, 0] = t[1, 1, 1, 1] = t[2, 0, 0, 1] = 1.0

        self._check(conv, CrossEntropy(), x, t)


class TestFlattenGradients:
    """Flatten only reshapes the gradient."""

    def test_backward(self):
        flatten = Flatten((3, 2, 2))
        x = np.random.default_rng(0).standard_normal((4, 3, 2, 2))
        grad_output = np.arange(48, dtype=float).reshape(4, 12)

        flatten.forward(x)
        dx, dW, db = flatten.backward(grad_output, x)

        assert dx.shape == x.shape
        np.testing.assert_array_equal(dx.reshape(4, -1), grad_output)
        assert dW.size == 0 and db.size == 0
