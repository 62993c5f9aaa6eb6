"""
Utility Functions
=================

Helper functions for:
- Random generators
- Label encoding
- Batching and validation splits
- Metrics
"""

import numpy as np


def make_rng(seed=None):
    """
    Normalize a seed into a NumPy Generator.

    Args:
        seed: None, an integer seed or an existing np.random.Generator

    Returns:
        np.random.Generator (the same object if one was given)
    """
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def uniform_parameters(rng, shape):
    """Independent uniform values in [-1, 1]."""
    return rng.uniform(-1.0, 1.0, size=shape)


def one_hot_encode(labels, num_classes=None):
    """
    Convert integer labels to one-hot encoded vectors.

    Args:
        labels: Integer labels, shape (N,) or (N, 1)
        num_classes: Number of classes (inferred if None)

    Returns:
        One-hot matrix, shape (N, num_classes)
    """
    labels = np.asarray(labels).reshape(-1).astype(int)

    if num_classes is None:
        num_classes = labels.max() + 1

    one_hot = np.zeros((len(labels), num_classes), dtype=np.float64)
    one_hot[np.arange(len(labels)), labels] = 1.0

    return one_hot


def create_batches(X, T, batch_size, shuffle=False, rng=None):
    """
    Create mini-batches for training.

    Batches follow the sample order unless shuffle is set; the last batch
    holds the remainder and may be shorter.

    Args:
        X: Samples, shape (N, ...)
        T: Labels, shape (N, ...)
        batch_size: Batch size
        shuffle: Whether to permute samples first
        rng: Generator (or seed) used when shuffling

    Yields:
        (X_batch, T_batch) tuples
    """
    n_samples = len(X)

    if shuffle:
        indices = make_rng(rng).permutation(n_samples)
        X = X[indices]
        T = T[indices]

    for start_idx in range(0, n_samples, batch_size):
        end_idx = min(start_idx + batch_size, n_samples)
        yield X[start_idx:end_idx], T[start_idx:end_idx]


def num_batches(n_samples, batch_size):
    """Number of batches create_batches yields."""
    return (n_samples + batch_size - 1) // batch_size


def split_validation(X, T, validation_split):
    """
    Split samples into a training and a validation subset.

    The validation subset is made of the last floor(N * validation_split)
    samples. When that is zero the validation subset is None.

    Returns:
        X_train, T_train, X_val, T_val
    """
    n_samples = len(X)
    n_val = int(np.floor(n_samples * validation_split))
    n_train = n_samples - n_val

    if n_val == 0:
        return X, T, None, None

    return X[:n_train], T[:n_train], X[n_train:], T[n_train:]


def accuracy_score(Y, T):
    """
    Compute accuracy between network outputs and targets.

    Single-column outputs are numeric labels: a sample is correct when the
    output rounded to the nearest integer equals the target. Otherwise the
    labels are categorical and arg-max indices are compared.

    Args:
        Y: Network outputs, shape (N, outputs)
        T: Targets, same shape as Y

    Returns:
        Accuracy as float in [0, 1]
    """
    Y = Y.reshape(len(Y), -1)
    T = T.reshape(len(T), -1)

    if Y.shape[1] == 1:
        correct = np.round(Y) == T
    else:
        correct = np.argmax(Y, axis=1) == np.argmax(T, axis=1)

    return float(np.mean(correct))
