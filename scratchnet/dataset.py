"""
In-memory dataset
=================

Holds training and test samples with their labels. Samples have the sample
index on axis 0; labels are always two-dimensional, (N, 1) for numeric
labels or (N, classes) for one-hot ones.
"""

import numpy as np

from .errors import ShapeMismatch
from .utils import make_rng, one_hot_encode


def _as_labels(labels):
    labels = np.asarray(labels, dtype=np.float64)
    if labels.ndim == 1:
        labels = labels[:, np.newaxis]
    return labels.reshape(len(labels), int(np.prod(labels.shape[1:])))


class Dataset:
    """
    Training and test sets.

    Args:
        train_samples: Training samples, shape (N, *sample_shape)
        train_labels: Training labels, shape (N,), (N, 1) or (N, classes)
        test_samples: Test samples, defaults to an empty set
        test_labels: Test labels
        label_names: Optional descriptive names of the classes

    Example:
        >>> data = Dataset(X_train, y_train, X_test, y_test)
        >>> data.normalize()
        >>> data.to_categorical()
        >>> data.shuffle(rng=0)
    """

    def __init__(self, train_samples, train_labels, test_samples=None, test_labels=None,
                 label_names=None):
        self.train_samples = np.asarray(train_samples, dtype=np.float64)
        self.train_labels = _as_labels(train_labels)

        if test_samples is None:
            test_samples = np.zeros((0,) + self.train_samples.shape[1:])
            test_labels = np.zeros((0, self.train_labels.shape[1]))
        self.test_samples = np.asarray(test_samples, dtype=np.float64)
        self.test_labels = _as_labels(test_labels)

        self.label_names = label_names

        if len(self.train_samples) != len(self.train_labels):
            raise ShapeMismatch(
                f"{len(self.train_samples)} training samples but {len(self.train_labels)} labels")
        if len(self.test_samples) != len(self.test_labels):
            raise ShapeMismatch(
                f"{len(self.test_samples)} test samples but {len(self.test_labels)} labels")
        if self.test_samples.shape[1:] != self.train_samples.shape[1:]:
            raise ShapeMismatch(
                f"Test samples have shape {self.test_samples.shape[1:]}, "
                f"training samples {self.train_samples.shape[1:]}")

    @property
    def sample_shape(self):
        return self.train_samples.shape[1:]

    @property
    def label_shape(self):
        return self.train_labels.shape[1:]

    @property
    def training_n(self):
        return len(self.train_samples)

    @property
    def test_n(self):
        return len(self.test_samples)

    def training_set(self):
        return self.train_samples, self.train_labels

    def test_set(self):
        return self.test_samples, self.test_labels

    def shuffle(self, rng=None):
        """Apply the same random permutation to training samples and labels."""
        perm = make_rng(rng).permutation(self.training_n)
        self.train_samples = self.train_samples[perm]
        self.train_labels = self.train_labels[perm]

    def to_categorical(self, num_classes=None):
        """Expand numeric labels into one-hot vectors (both sets)."""
        if self.train_labels.shape[1] != 1:
            raise ShapeMismatch(f"Labels are already categorical: {self.label_shape}")

        if num_classes is None:
            labels = np.concatenate([self.train_labels, self.test_labels])
            num_classes = int(labels.max()) + 1

        self.train_labels = one_hot_encode(self.train_labels, num_classes)
        self.test_labels = one_hot_encode(self.test_labels, num_classes)

    def flatten(self):
        """Reshape every sample into a vector."""
        size = int(np.prod(self.sample_shape))
        self.train_samples = self.train_samples.reshape(self.training_n, size)
        self.test_samples = self.test_samples.reshape(self.test_n, size)

    def normalize(self, scale=255.0):
        """Divide samples by scale (pixel values to [0, 1] by default)."""
        self.train_samples = self.train_samples / scale
        self.test_samples = self.test_samples / scale

    def __repr__(self):
        return (f"Dataset(training_n={self.training_n}, test_n={self.test_n}, "
                f"sample_shape={self.sample_shape}, label_shape={self.label_shape})")
