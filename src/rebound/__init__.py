"""rebound - retry an operation with exponential backoff and full jitter"""

from rebound.application.backoff_controller import BackoffController, run
from rebound.domain.config import ControllerConfig
from rebound.domain.errors import ConfigurationError, ControllerStateError
from rebound.domain.models.outcome import Cancelled, GaveUp, GiveUpReason, Outcome, Success

__all__ = [
    "BackoffController",
    "Cancelled",
    "ConfigurationError",
    "ControllerConfig",
    "ControllerStateError",
    "GaveUp",
    "GiveUpReason",
    "Outcome",
    "Success",
    "run",
]
