"""Errors raised by the backoff controller and its configuration layer"""


class ConfigurationError(ValueError):
    """Invalid operation or configuration. Never retried."""

    pass


class ControllerStateError(RuntimeError):
    """Controller used outside its lifecycle (already running or finished)."""

    pass
