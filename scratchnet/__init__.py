"""
Neural Networks from Scratch
============================

A feed-forward and convolutional neural network engine using only NumPy.
This library demonstrates the mechanics of:
- Forward and backward propagation through dense and convolutional layers
- 2D Convolution with stride and padding, computed directly or with
  patch matrices
- SGD and RProp parameter updates
- Epoch-based training with a validation split and best-epoch restore
"""

from .activations import Identity, Sigmoid, ReLU, Tanh, Softmax, get_activation
from .errors import ScratchNetError, ShapeMismatch, InvalidShape, ChannelMismatch
from .errors import InvalidHyperparameter
from .layers import Layer, Dense, Flatten, Conv2D, UnrolledConv2D, ConvAsDense
from .layers import benchmark_convolutions
from .losses import SumOfSquares, CrossEntropy, get_loss
from .optimizers import SGD, RProp, get_optimizer
from .network import NeuralNetwork
from .training import Training, TrainingReport, evaluate, repeat_training
from .dataset import Dataset
from .utils import make_rng, one_hot_encode, create_batches, accuracy_score
from . import visualizations

__version__ = "1.0.0"
__all__ = [
    # Activations
    'Identity', 'Sigmoid', 'ReLU', 'Tanh', 'Softmax', 'get_activation',
    # Errors
    'ScratchNetError', 'ShapeMismatch', 'InvalidShape', 'ChannelMismatch',
    'InvalidHyperparameter',
    # Layers
    'Layer', 'Dense', 'Flatten', 'Conv2D', 'UnrolledConv2D', 'ConvAsDense',
    'benchmark_convolutions',
    # Error functions
    'SumOfSquares', 'CrossEntropy', 'get_loss',
    # Optimizers
    'SGD', 'RProp', 'get_optimizer',
    # Network and training
    'NeuralNetwork',
    'Training', 'TrainingReport', 'evaluate', 'repeat_training',
    'Dataset',
    # Utilities
    'make_rng', 'one_hot_encode', 'create_batches', 'accuracy_score',
]
