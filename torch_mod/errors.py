"""Exceptions raised while loading and evaluating TorchScript models.

All errors subclass a builtin exception so that a host can catch them without
importing this module.
"""


class LoadError(RuntimeError):
    """A model file is missing, unreadable or not a valid TorchScript archive."""


class ShapeMismatchError(ValueError):
    """A forward pass returned a different number of outputs than declared."""


class ReentrantBackwardError(RuntimeError):
    """A backward pass was requested on an output that can no longer be evaluated.

    Raised when an output is evaluated twice in one step, out of ascending order,
    or after the computation graph was released by the final output.
    """
