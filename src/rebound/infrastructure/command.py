"""Shell command operation for retrying external processes"""

from __future__ import annotations

import logging
import subprocess
from typing import List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 500


class CommandFailedError(Exception):
    """Command exited with a non-zero status or timed out"""

    def __init__(self, command: str, returncode: Optional[int], stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        if returncode is None:
            message = f"Command timed out: {command}"
        else:
            message = f"Command exited with status {returncode}: {command}"
        if stderr:
            message += f"\n{stderr}"
        super().__init__(message)


class CommandOperation:
    """Zero-argument callable running one command per attempt.

    Raises CommandFailedError on non-zero exit or timeout, so a
    BackoffController treats it as a failed attempt.
    """

    def __init__(
        self,
        argv: Union[Sequence[str], str],
        shell: bool = False,
        timeout_seconds: Optional[float] = None,
    ):
        if not argv:
            raise ValueError("Command must not be empty")
        self.shell = shell
        self.timeout_seconds = timeout_seconds
        if isinstance(argv, str):
            self.argv: Union[List[str], str] = argv if shell else [argv]
        else:
            # The shell receives a single command line
            self.argv = " ".join(argv) if shell else list(argv)

    @property
    def display(self) -> str:
        if isinstance(self.argv, str):
            return self.argv
        return " ".join(self.argv)

    def __repr__(self) -> str:
        return f"CommandOperation({self.display!r})"

    def __call__(self) -> subprocess.CompletedProcess:
        logger.debug(f"Running command: {self.display}")
        try:
            completed = subprocess.run(
                self.argv,
                shell=self.shell,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandFailedError(self.display, None) from e

        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip()[-STDERR_TAIL_CHARS:]
            raise CommandFailedError(self.display, completed.returncode, stderr)
        return completed
