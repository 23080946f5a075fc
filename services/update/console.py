"""User-facing console output for the update commands."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TextIO

_YELLOW = "\033[33m"
_RESET = "\033[0m"
_WARNING_ICON = "⚠️"


class Console:
    """Print progress and operator notices.

    Diagnostics go to :mod:`logging`; this class only carries what the person
    running the command is meant to read.
    """

    def __init__(self, stream: TextIO | None = None, *, colorize: bool = False) -> None:
        self._stream = stream
        self._colorize = colorize

    @property
    def colorize(self) -> bool:
        return self._colorize

    def info(self, message: str = "") -> None:
        print(message, file=self._stream or sys.stdout)

    def warn(self, message: str) -> None:
        if self._colorize:
            self.info(f"{_WARNING_ICON}  {self.highlight(message)}")
        else:
            self.info(message.upper())

    def highlight(self, message: str) -> str:
        if not self._colorize:
            return message
        return f"{_YELLOW}{message}{_RESET}"

    def tree(self, root: Path, title: str | None = None) -> None:
        """Print every path below ``root``, directories suffixed with ``/``."""

        if title:
            self.info()
            self.info(self.highlight(title))
        self.info(str(root))
        for line in render_tree(root):
            self.info(line)


def render_tree(root: Path) -> list[str]:
    lines: list[str] = []
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root)
        indent = "    " * (len(relative.parts) - 1)
        suffix = "/" if path.is_dir() else ""
        lines.append(f"{indent}{path.name}{suffix}")
    return lines


__all__ = ["Console", "render_tree"]
