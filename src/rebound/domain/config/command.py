"""Command wrapper configuration model."""

from typing import Optional

from pydantic import BaseModel, Field


class CommandConfig(BaseModel):
    """Configuration for commands retried from the CLI.

    Attributes:
        shell: Run the command through the system shell
        timeout_seconds: Per-attempt timeout (None = wait forever)
    """

    shell: bool = False
    timeout_seconds: Optional[float] = Field(None, gt=0.0)
