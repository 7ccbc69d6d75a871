"""Backoff controller configuration model."""

from pydantic import BaseModel, ConfigDict, Field


class ControllerConfig(BaseModel):
    """Configuration for a single retry sequence.

    Attributes:
        base_backoff_millis: Base unit scaled by 2^attempt to get the delay ceiling
        max_attempts: Maximum number of attempts before giving up
        max_elapsed_millis: Wall-clock ceiling measured from the first attempt
        jitter_percent: Share of the exponential delay used as the jitter ceiling
    """

    base_backoff_millis: float = Field(50, ge=0.0)
    max_attempts: int = Field(10, gt=0)
    max_elapsed_millis: float = Field(10000, ge=0.0)
    jitter_percent: float = Field(100, ge=0.0)  # >100 stretches the ceiling

    model_config = ConfigDict(frozen=True, extra="forbid")
