"""Main application configuration model."""

from pydantic import BaseModel, ConfigDict, Field

from rebound.domain.config.command import CommandConfig
from rebound.domain.config.controller import ControllerConfig


class AppConfig(BaseModel):
    """Main application configuration.

    Root model aggregating all configuration sections. Validation is
    performed at load time to fail fast on configuration errors.

    Attributes:
        controller: Backoff controller configuration
        command: Command wrapper configuration
    """

    controller: ControllerConfig = Field(default_factory=ControllerConfig)
    command: CommandConfig = Field(default_factory=CommandConfig)

    model_config = ConfigDict(
        validate_assignment=True,  # Validate on attribute assignment
        extra="forbid",  # Reject unknown fields
        json_schema_extra={
            "example": {
                "controller": {
                    "base_backoff_millis": 50,
                    "max_attempts": 10,
                    "max_elapsed_millis": 10000,
                    "jitter_percent": 100,
                },
                "command": {
                    "shell": False,
                    "timeout_seconds": None,
                },
            }
        },
    )
