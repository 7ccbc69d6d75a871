"""Configuration models with Pydantic validation."""

from rebound.domain.config.app import AppConfig
from rebound.domain.config.command import CommandConfig
from rebound.domain.config.controller import ControllerConfig

__all__ = [
    "AppConfig",
    "CommandConfig",
    "ControllerConfig",
]
