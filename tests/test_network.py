"""
Integration Tests for NeuralNetwork
===================================

End-to-end tests for layer management, backpropagation through several
layers, parameter export and checkpoints.
"""

import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from scratchnet.errors import ShapeMismatch
from scratchnet.layers import Conv2D, ConvAsDense, Dense, Flatten, UnrolledConv2D
from scratchnet.losses import CrossEntropy, SumOfSquares
from scratchnet.network import NeuralNetwork
from scratchnet.utils import one_hot_encode

from test_gradients import numerical_gradient, relative_error


def conv_network(conv_cls=Conv2D, seed=0):
    rng = np.random.default_rng(seed)
    return NeuralNetwork([
        conv_cls((6, 6, 1), 3, (3, 3), 'tanh', stride=1, padding='same', rng=rng),
        Conv2D((6, 6, 3), 2, (3, 3), 'sigmoid', stride=2, rng=rng),
        Flatten((2, 2, 2)),
        Dense(8, 3, 'softmax', rng=rng),
    ], CrossEntropy())


class TestNetworkConstruction:
    """Tests for adding and removing layers."""

    def test_append_and_insert(self):
        net = NeuralNetwork()
        first = Dense(4, 3, rng=0)
        last = Dense(2, 1, rng=0)
        middle = Dense(3, 2, rng=0)

        net.add_layer(first)
        net.add_layer(last)
        net.add_layer(middle, 1)

        assert list(net) == [first, middle, last]
        assert len(net) == 3
        assert net[1] is middle

    def test_insert_at_start(self):
        net = NeuralNetwork([Dense(3, 2, rng=0)])
        layer = Dense(4, 3, rng=0)

        net.add_layer(layer, 0)

        assert net[0] is layer

    @pytest.mark.parametrize('index', [-1, 2])
    def test_invalid_insert_position(self, index):
        net = NeuralNetwork([Dense(3, 2, rng=0)])

        with pytest.raises(IndexError):
            net.add_layer(Dense(2, 2, rng=0), index)

    def test_remove(self):
        layers = [Dense(4, 3, rng=0), Dense(3, 2, rng=0)]
        net = NeuralNetwork(layers)

        removed = net.remove_layer(0)

        assert removed is layers[0]
        assert list(net) == [layers[1]]
        assert removed.network is None

    @pytest.mark.parametrize('index', [-1, 1])
    def test_invalid_remove_position(self, index):
        net = NeuralNetwork([Dense(3, 2, rng=0)])

        with pytest.raises(IndexError):
            net.remove_layer(index)

    def test_layer_belongs_to_one_network(self):
        layer = Dense(3, 2, rng=0)
        net = NeuralNetwork([layer])

        assert layer.network is net
        with pytest.raises(ValueError):
            NeuralNetwork([layer])

        net.remove_layer(0)
        NeuralNetwork().add_layer(layer)

    def test_invalid_layer_type(self):
        with pytest.raises(TypeError):
            NeuralNetwork().add_layer('dense')

    def test_error_function_by_name(self):
        net = NeuralNetwork(error_function='cross_entropy')

        assert isinstance(net.error_function, CrossEntropy)

    def test_topology(self):
        net = conv_network()

        assert net.topology() == 'Conv -> Conv -> Flatten -> FC -> Y'


class TestValidation:

    def test_valid(self):
        conv_network().validate()

    def test_shape_mismatch(self):
        net = NeuralNetwork([Dense(4, 3, rng=0), Dense(2, 1, rng=0)], SumOfSquares())

        with pytest.raises(ShapeMismatch):
            net.validate()

    def test_no_error_function(self):
        with pytest.raises(ValueError):
            NeuralNetwork([Dense(4, 3, rng=0)]).validate()

    def test_empty(self):
        with pytest.raises(ValueError):
            NeuralNetwork(error_function=SumOfSquares()).validate()


class TestForward:

    def test_output_shape(self):
        net = conv_network()
        x = np.random.default_rng(0).standard_normal((5, 6, 6, 1))

        y = net.predict(x)

        assert y.shape == (5, 3)
        np.testing.assert_allclose(y.sum(axis=1), np.ones(5))

    def test_forward_matches_predict(self):
        net = conv_network()
        x = np.random.default_rng(0).standard_normal((2, 6, 6, 1))

        np.testing.assert_allclose(net.forward(x), net.predict(x))
        np.testing.assert_allclose(net[-1].Z, net.predict(x))


class TestBackpropagation:
    """Network gradients match finite differences of the error."""

    @pytest.mark.parametrize('conv_cls', [Conv2D, UnrolledConv2D, ConvAsDense])
    def test_conv_network(self, conv_cls):
        net = conv_network(conv_cls)
        rng = np.random.default_rng(1)
        x = rng.standard_normal((3, 6, 6, 1))
        t = one_hot_encode([0, 2, 1], 3)

        net.forward(x)
        dW, db = net.backpropagate(x, t)

        weights, biases = net.get_parameters()
        for l in range(len(net)):
            if weights[l].size == 0:
                assert dW[l].size == 0 and db[l].size == 0
                continue

            def loss_weight(W):
                weights[l] = W
                net.set_parameters(weights, biases)
                return net.error_function.eval(net.predict(x), t)

            numerical = numerical_gradient(loss_weight, weights[l].copy())
            net.set_parameters(weights, biases)
            error = relative_error(dW[l], numerical)
            assert error < 1e-4, f"Layer {l} weight gradient error too large: {error}"

            def loss_bias(b):
                biases[l] = b
                net.set_parameters(weights, biases)
                return net.error_function.eval(net.predict(x), t)

            numerical = numerical_gradient(loss_bias, biases[l].copy())
            error = relative_error(db[l], numerical)
            assert error < 1e-4, f"Layer {l} bias gradient error too large: {error}"

    def test_single_layer(self):
        rng = np.random.default_rng(2)
        net = NeuralNetwork([Dense(3, 2, 'sigmoid', rng=rng)], SumOfSquares())
        x = rng.standard_normal((4, 3))
        t = rng.uniform(size=(4, 2))

        net.forward(x)
        dW, db = net.backpropagate(x, t)

        W, b = net.get_parameters()

        def loss_weight(W_in):
            net.set_parameters([W_in], b)
            return net.error_function.eval(net.predict(x), t)

        numerical = numerical_gradient(loss_weight, W[0].copy())
        assert relative_error(dW[0], numerical) < 1e-5

    def test_update_parameters(self):
        net = NeuralNetwork([Dense(2, 2, rng=0), Dense(2, 1, rng=0)], SumOfSquares())
        weights, biases = net.get_parameters()

        net.update_parameters([np.ones((2, 2)), np.ones((1, 2))], [np.ones(2), np.ones(1)])
        new_weights, new_biases = net.get_parameters()

        for before, after in zip(weights + biases, new_weights + new_biases):
            np.testing.assert_allclose(after, before + 1)


class TestParameters:

    def test_round_trip(self):
        """Exported parameters reproduce predictions on a fresh network."""
        source = conv_network(seed=0)
        target = conv_network(seed=1)
        x = np.random.default_rng(0).standard_normal((4, 6, 6, 1))
        assert not np.allclose(source.predict(x), target.predict(x))

        target.set_parameters(*source.get_parameters())

        np.testing.assert_array_equal(target.predict(x), source.predict(x))

    def test_wrong_layer_count(self):
        net = conv_network()
        weights, biases = net.get_parameters()

        with pytest.raises(ShapeMismatch):
            net.set_parameters(weights[:-1], biases[:-1])

    def test_wrong_shape(self):
        net = conv_network()
        weights, biases = net.get_parameters()
        weights[-1] = weights[-1].T

        with pytest.raises(ShapeMismatch):
            net.set_parameters(weights, biases)

    def test_reinitialize_with_seed(self):
        a, b = conv_network(seed=0), conv_network(seed=1)

        a.reinitialize(42)
        b.reinitialize(42)

        for Wa, Wb in zip(a.get_parameters()[0], b.get_parameters()[0]):
            np.testing.assert_array_equal(Wa, Wb)

    def test_num_parameters(self):
        net = conv_network()

        assert net.num_parameters == (3 * 9 + 3) + (2 * 27 + 2) + 0 + (3 * 8 + 3)
        assert net.summary() == net.num_parameters


class TestCheckpoint:

    def test_save_load(self, tmp_path):
        source = conv_network(seed=0)
        target = conv_network(seed=1)
        path = tmp_path / 'model.npz'

        source.save(path)
        target.load(path)

        x = np.random.default_rng(0).standard_normal((2, 6, 6, 1))
        np.testing.assert_array_equal(target.predict(x), source.predict(x))

    def test_load_into_different_network(self, tmp_path):
        path = tmp_path / 'model.npz'
        conv_network().save(path)
        net = NeuralNetwork([Dense(4, 3, rng=0)], SumOfSquares())

        with pytest.raises(ShapeMismatch):
            net.load(path)
