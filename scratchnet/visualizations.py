"""
Visualization Utilities
=======================

This module provides functions for visualizing:
- Training progress (loss/accuracy curves, best epoch)
- Convolutional filters
"""

import numpy as np
import matplotlib.pyplot as plt


def plot_training_history(history, best_epoch=None, title='Training History',
                          figsize=(14, 5), save_path=None, show=True):
    """
    Plot training history (loss and accuracy curves).

    Curves start at epoch 0, the untrained network. The best epoch is marked
    on the validation accuracy curve.

    Args:
        history: TrainingReport, or dictionary with 'loss', 'accuracy',
            'val_loss', 'val_accuracy'
        best_epoch: Epoch to mark; taken from the report when not given
        title: Figure title
        figsize: Figure size
        save_path: Path to save figure
        show: Call plt.show() (disable for scripts and tests)
    """
    if hasattr(history, 'history'):
        if best_epoch is None:
            best_epoch = history.best_epoch
        history = history.history

    fig, axes = plt.subplots(1, 2, figsize=figsize)

    epochs = np.arange(len(history['loss']))

    # Loss plot
    axes[0].plot(epochs, history['loss'], 'b-', label='Training Loss', linewidth=2)
    axes[0].plot(epochs, history['val_loss'], 'r-', label='Validation Loss', linewidth=2)
    axes[0].set_xlabel('Epoch', fontsize=12)
    axes[0].set_ylabel('Loss', fontsize=12)
    axes[0].set_title('Training and Validation Loss', fontsize=14)
    axes[0].legend(fontsize=10)
    axes[0].grid(True, alpha=0.3)

    # Accuracy plot
    axes[1].plot(epochs, history['accuracy'], 'b-', label='Training Accuracy', linewidth=2)
    axes[1].plot(epochs, history['val_accuracy'], 'r-', label='Validation Accuracy', linewidth=2)
    if best_epoch is not None:
        axes[1].plot(best_epoch, history['val_accuracy'][best_epoch], 'r*',
                     markersize=12, label=f'Best Epoch ({best_epoch})')
    axes[1].set_xlabel('Epoch', fontsize=12)
    axes[1].set_ylabel('Accuracy', fontsize=12)
    axes[1].set_title('Training and Validation Accuracy', fontsize=14)
    axes[1].legend(fontsize=10)
    axes[1].grid(True, alpha=0.3)

    fig.suptitle(title, fontsize=14)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Training history plot saved to {save_path}")

    if show:
        plt.show()
    return fig


def visualize_filters(filters, max_filters=32, figsize=(12, 8), save_path=None, show=True):
    """
    Visualize convolutional filter weights.

    Args:
        filters: Filter weights, shape (num_filters, height, width, channels)
        max_filters: Maximum number of filters to display
        figsize: Figure size
        save_path: Path to save figure
        show: Call plt.show()
    """
    filters = np.asarray(filters)
    n_filters = min(filters.shape[0], max_filters)

    n_cols = int(np.ceil(np.sqrt(n_filters)))
    n_rows = int(np.ceil(n_filters / n_cols))

    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize)
    axes = np.array(axes).flatten()

    for i in range(n_filters):
        # For multi-channel filters, average across channels
        filter_img = np.mean(filters[i], axis=-1)

        # Normalize for visualization
        filter_img = (filter_img - filter_img.min()) / (filter_img.max() - filter_img.min() + 1e-8)

        axes[i].imshow(filter_img, cmap='gray')
        axes[i].set_title(f'Filter {i}', fontsize=8)
        axes[i].axis('off')

    for i in range(n_filters, len(axes)):
        axes[i].axis('off')

    plt.suptitle('Convolutional Filters', fontsize=14)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Filters visualization saved to {save_path}")

    if show:
        plt.show()
    return fig
