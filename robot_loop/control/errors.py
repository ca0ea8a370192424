"""
Error types shared by the control package.
"""


class ConfigurationError(ValueError):
    """
    Raised when a model, observer, controller or loop cannot be built from
    the given parameters.

    These are not recoverable at runtime: fix the parameters and rebuild.
    """


class NumericalWarning(RuntimeWarning):
    """Emitted when a control cycle fails numerically and the last command is held."""
