"""Shared fixtures"""

import sys

import pytest


@pytest.fixture
def flaky_command(tmp_path):
    """Build a Python command that fails `failures` times before exiting 0.

    Attempts are counted in a file so they survive across processes.
    """

    def _build(failures: int, counter_name: str = "counter") -> list:
        counter_path = tmp_path / counter_name
        code = (
            "import pathlib, sys\n"
            f"p = pathlib.Path({str(counter_path)!r})\n"
            "n = int(p.read_text()) if p.exists() else 0\n"
            "p.write_text(str(n + 1))\n"
            "print('attempt', n + 1)\n"
            f"sys.exit(0 if n >= {failures} else 1)\n"
        )
        return [sys.executable, "-c", code]

    return _build
