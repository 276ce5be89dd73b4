"""Centered console output on two channels: normal (stdout) and error (stderr)."""

from __future__ import annotations

import shutil
import sys
from typing import TextIO

DEFAULT_WIDTH = 80


class Console:
    """Prints messages centered to the terminal width.

    Streams are looked up at print time unless given explicitly, so pytest's
    capsys sees the output.
    """

    def __init__(
        self,
        width: int | None = None,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        self._width = width
        self._out = out
        self._err = err

    @property
    def width(self) -> int:
        if self._width is not None:
            return self._width
        return shutil.get_terminal_size((DEFAULT_WIDTH, 24)).columns

    def print_centered(self, message: str) -> None:
        self._write(message, self._out or sys.stdout)

    def print_error_centered(self, message: str) -> None:
        self._write(message, self._err or sys.stderr)

    def print_result(self, message: str, success: bool) -> None:
        """Print on the normal channel on success, the error channel otherwise."""
        if success:
            self.print_centered(message)
        else:
            self.print_error_centered(message)

    def _write(self, message: str, stream: TextIO) -> None:
        width = self.width
        for line in message.splitlines() or [""]:
            print(line.center(width).rstrip(), file=stream)
