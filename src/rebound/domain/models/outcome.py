"""Outcome models - terminal results of a retry sequence"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class GiveUpReason(str, Enum):
    """Which ceiling ended the sequence"""

    MAX_ATTEMPTS_EXCEEDED = "max_attempts_exceeded"
    MAX_ELAPSED_TIME_EXCEEDED = "max_elapsed_time_exceeded"


@dataclass(frozen=True)
class Success:
    """The operation completed without raising"""

    attempts_made: int
    elapsed_millis: float
    result: Any = None  # Return value of the successful attempt

    @property
    def is_success(self) -> bool:
        return True


@dataclass(frozen=True)
class GaveUp:
    """A give-up ceiling was reached before the operation succeeded

    elapsed_millis is the time at give-up. For MAX_ELAPSED_TIME_EXCEEDED it is
    usually below max_elapsed_millis: the ceiling is checked against the time
    the next attempt would start (elapsed plus the drawn delay), so the
    controller gives up instead of sleeping past the ceiling.
    """

    reason: GiveUpReason
    attempts_made: int
    elapsed_millis: float
    last_error: Optional[BaseException] = None  # Failure of the final attempt

    @property
    def is_success(self) -> bool:
        return False

    def describe(self) -> str:
        """Human readable summary of why the sequence stopped"""
        if self.reason == GiveUpReason.MAX_ATTEMPTS_EXCEEDED:
            ceiling = "max attempts"
        else:
            ceiling = "max elapsed time"
        text = (
            f"Gave up after {self.attempts_made} attempt(s) in "
            f"{self.elapsed_millis:.0f}ms: {ceiling} reached"
        )
        if self.last_error is not None:
            text += f" (last error: {self.last_error})"
        return text


@dataclass(frozen=True)
class Cancelled:
    """The caller cancelled the sequence"""

    attempts_made: int
    elapsed_millis: float

    @property
    def is_success(self) -> bool:
        return False


Outcome = Union[Success, GaveUp, Cancelled]
