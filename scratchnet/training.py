"""
Training Loop
=============

Epoch-based mini-batch training of a NeuralNetwork on a Dataset:

1. The training samples are split: the last floor(N * validation_split)
   of them form the validation subset.
2. Metrics of the untrained network are recorded as epoch 0.
3. Every epoch runs forward -> backpropagate -> optimizer -> update on each
   batch, then records loss and accuracy on both subsets.
4. The parameters of the best epoch are restored when training ends.

Losses are divided by the number of samples so training and validation
values are comparable.
"""

import numbers
import time

import numpy as np
from tqdm import tqdm

from .errors import InvalidHyperparameter, ShapeMismatch
from .optimizers import Optimizer, get_optimizer
from .utils import accuracy_score, create_batches, make_rng, num_batches, split_validation

METRICS = ('loss', 'val_loss', 'accuracy', 'val_accuracy')


def _format_time(seconds):
    return f"{int(seconds // 60)}:{seconds % 60:06.3f}s"


def evaluate(network, X, T):
    """
    Evaluate a network on a set of samples.

    Returns:
        Tuple of (loss per sample, accuracy)
    """
    Y = network.predict(X)
    T = np.asarray(T, dtype=np.float64)
    if T.shape != Y.shape:
        if T.size != Y.size:
            raise ShapeMismatch(f"Targets of shape {T.shape} given for outputs of shape {Y.shape}")
        T = T.reshape(Y.shape)

    loss = network.error_function.eval(Y, T) / len(Y)
    return float(loss), accuracy_score(Y, T)


class TrainingReport:
    """
    Outcome of Training.train().

    Attributes:
        history: Dict with 'loss', 'val_loss', 'accuracy', 'val_accuracy'
            arrays of length epochs + 1; index 0 is the untrained network
        best_epoch: Epoch whose parameters were restored (0 = untrained)
        monitor: Metric used to pick best_epoch ('val_accuracy', or 'loss'
            when there is no validation subset)
        best_parameters: (weights, biases) of best_epoch
        elapsed: Seconds spent training each epoch
    """

    def __init__(self, history, best_epoch, monitor, best_parameters, elapsed):
        self.history = history
        self.best_epoch = best_epoch
        self.monitor = monitor
        self.best_parameters = best_parameters
        self.elapsed = elapsed

    @property
    def epochs(self):
        return len(self.elapsed)

    @property
    def total_time(self):
        return float(np.sum(self.elapsed))

    def best(self, metric):
        """Value of a metric at the best epoch."""
        return float(self.history[metric][self.best_epoch])

    def __repr__(self):
        return (f"TrainingReport(epochs={self.epochs}, best_epoch={self.best_epoch}, "
                f"monitor={self.monitor!r}, total_time={_format_time(self.total_time)})")


class Training:
    """
    Trains networks with a fixed optimizer and batching policy.

    Args:
        optimizer: Optimizer instance or registry name ('sgd', 'rprop')
        batch_size: Positive integer
        validation_split: Fraction of training samples kept for validation,
            in [0, 1)
        shuffle: Permute training samples at every epoch (default: False)
        rng: Generator or seed used when shuffling
        verbose: Show progress bars and per-epoch summaries

    Example:
        >>> training = Training(RProp(), batch_size=64, validation_split=0.2)
        >>> report = training.train(50, network, dataset)
        >>> report.best_epoch
    """

    def __init__(self, optimizer, batch_size, validation_split=0.0, shuffle=False,
                 rng=None, verbose=True):
        if isinstance(optimizer, str):
            optimizer = get_optimizer(optimizer)
        if not isinstance(optimizer, Optimizer):
            raise InvalidHyperparameter(f"Invalid optimizer type: {type(optimizer).__name__}")

        if isinstance(batch_size, bool) or not isinstance(batch_size, numbers.Real) \
                or batch_size <= 0 or int(batch_size) != batch_size:
            raise InvalidHyperparameter(f"Invalid batch size: {batch_size!r}")

        if isinstance(validation_split, bool) or not isinstance(validation_split, numbers.Real) \
                or not 0 <= validation_split < 1:
            raise InvalidHyperparameter(f"Invalid validation split factor: {validation_split!r}")

        self.optimizer = optimizer
        self.batch_size = int(batch_size)
        self.validation_split = validation_split
        self.shuffle = shuffle
        self.rng = make_rng(rng)
        self.verbose = verbose

        self.optimizer.clear()

    def train(self, epochs, network, dataset, verbose=None):
        """
        Train the network.

        Args:
            epochs: Number of training epochs
            network: NeuralNetwork to train (modified in place)
            dataset: Dataset providing the training samples
            verbose: Overrides the verbose flag given at construction

        Returns:
            TrainingReport
        """
        verbose = self.verbose if verbose is None else verbose

        network.validate()
        self.optimizer.clear()

        X, T = dataset.training_set()
        train_X, train_T, val_X, val_T = split_validation(X, T, self.validation_split)

        history = {metric: np.zeros(epochs + 1) for metric in METRICS}
        elapsed = np.zeros(epochs)

        # Untrained network
        self._record(history, 0, network, train_X, train_T, val_X, val_T)
        if verbose:
            print(f"Training on {len(train_X)} samples, validating on "
                  f"{0 if val_X is None else len(val_X)} samples")
            print(f"epoch 0: {self._format_metrics(history, 0)}")

        # Without validation data the best epoch is the one with lowest loss
        monitor = 'val_accuracy' if val_X is not None else 'loss'
        best_parameters = network.get_parameters()
        best_epoch = 0
        best_value = history[monitor][0]

        n_batches = num_batches(len(train_X), self.batch_size)

        for epoch in range(1, epochs + 1):
            start = time.perf_counter()

            batches = create_batches(train_X, train_T, self.batch_size,
                                     shuffle=self.shuffle, rng=self.rng)
            if verbose:
                batches = tqdm(batches, total=n_batches, desc=f"Epoch {epoch}/{epochs}",
                               leave=False)

            for X_batch, T_batch in batches:
                loss = self._training_step(network, X_batch, T_batch)

                if verbose:
                    batches.set_postfix({'loss': f'{loss:.4f}'})

            elapsed[epoch - 1] = time.perf_counter() - start

            self._record(history, epoch, network, train_X, train_T, val_X, val_T)
            if verbose:
                print(f"epoch {epoch}: {self._format_metrics(history, epoch)} "
                      f"- elapsed: {_format_time(elapsed[epoch - 1])}")

            if self._improved(monitor, history[monitor][epoch], best_value):
                best_parameters = network.get_parameters()
                best_epoch = epoch
                best_value = history[monitor][epoch]

        self.optimizer.clear()
        network.set_parameters(*best_parameters)

        if verbose:
            print(f"Best epoch: {best_epoch} ({monitor}: {best_value:.4f})")
            print(f"Total training time: {_format_time(np.sum(elapsed))}")

        return TrainingReport(history, best_epoch, monitor, best_parameters, elapsed)

    def evaluate_on_test_set(self, network, dataset):
        """
        Loss and accuracy on the dataset's test set.

        Returns:
            Tuple of (loss per sample, accuracy)
        """
        X, T = dataset.test_set()
        if len(X) == 0:
            raise ValueError("The dataset has no test samples")
        return evaluate(network, X, T)

    def _training_step(self, network, X, T):
        """Forward, backpropagate and update on one batch; returns the batch loss."""
        Y = network.forward(X)
        dW, db = network.backpropagate(X, T)

        delta_W, delta_b = self.optimizer.evaluate_deltas(dW, db, len(X))
        network.update_parameters(delta_W, delta_b)

        return network.error_function.eval(Y, T.reshape(Y.shape)) / len(X)

    def _record(self, history, epoch, network, train_X, train_T, val_X, val_T):
        history['loss'][epoch], history['accuracy'][epoch] = evaluate(network, train_X, train_T)

        # Empty validation subset: metrics stay at zero
        if val_X is not None:
            history['val_loss'][epoch], history['val_accuracy'][epoch] = \
                evaluate(network, val_X, val_T)

    @staticmethod
    def _improved(monitor, value, best_value):
        if monitor == 'loss':
            return value < best_value
        return value > best_value

    @staticmethod
    def _format_metrics(history, epoch):
        return (f"err: {history['loss'][epoch]:.4f} - val_err: {history['val_loss'][epoch]:.4f} "
                f"- acc: {history['accuracy'][epoch] * 100:.2f} "
                f"- val_acc: {history['val_accuracy'][epoch] * 100:.2f}")

    def __repr__(self):
        return (f"Training(optimizer={self.optimizer!r}, batch_size={self.batch_size}, "
                f"validation_split={self.validation_split})")


def repeat_training(training, network, dataset, epochs, repetitions, rng=None, verbose=True):
    """
    Train the same network several times from fresh parameters.

    Every repetition reinitializes the network, trains it silently and
    evaluates it on the test set.

    Args:
        training: Training instance
        network: NeuralNetwork, reinitialized before each repetition
        dataset: Dataset with training and test samples
        epochs: Epochs per repetition
        repetitions: Number of repetitions
        rng: Generator or seed for the reinitializations
        verbose: Show a progress bar over repetitions

    Returns:
        Dictionary with per-repetition 'loss', 'accuracy' and 'elapsed'
        arrays, and their 'mean' and 'median'
    """
    rng = make_rng(rng)
    results = {
        'loss': np.zeros(repetitions),
        'accuracy': np.zeros(repetitions),
        'elapsed': np.zeros(repetitions),
    }

    runs = range(repetitions)
    if verbose:
        runs = tqdm(runs, desc="Repetitions")

    for n in runs:
        network.reinitialize(rng)
        report = training.train(epochs, network, dataset, verbose=False)
        results['elapsed'][n] = report.total_time
        results['loss'][n], results['accuracy'][n] = training.evaluate_on_test_set(network, dataset)

    results['mean'] = {key: float(np.mean(results[key])) for key in ('loss', 'accuracy', 'elapsed')}
    results['median'] = {key: float(np.median(results[key])) for key in ('loss', 'accuracy', 'elapsed')}

    if verbose:
        print(f"Test loss: mean {results['mean']['loss']:.4f} - median {results['median']['loss']:.4f}")
        print(f"Test accuracy: mean {results['mean']['accuracy'] * 100:.2f} "
              f"- median {results['median']['accuracy'] * 100:.2f}")

    return results
