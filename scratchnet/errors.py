"""
Exceptions raised by the engine
===============================

All of them are configuration or structural errors: they are raised once,
where the problem is detected, and never retried.

They subclass ValueError so callers that only care about "bad argument"
can keep catching ValueError.
"""


class ScratchNetError(ValueError):
    """Base class for all engine errors."""


class ShapeMismatch(ScratchNetError):
    """Parameter or tensor shapes disagree."""


class InvalidShape(ScratchNetError):
    """A layer configuration yields a non-positive output dimension."""


class ChannelMismatch(ScratchNetError):
    """Filter channels differ from input channels."""


class InvalidHyperparameter(ScratchNetError):
    """An optimizer or training hyperparameter is out of range."""
