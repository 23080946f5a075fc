"""Platform capabilities used by the updater: hidden paths and ANSI output."""

from __future__ import annotations

import ctypes
import logging
import os
import sys
from pathlib import Path
from typing import Protocol

_LOGGER = logging.getLogger(__name__)

FILE_ATTRIBUTE_HIDDEN = 0x2
ENABLE_VIRTUAL_TERMINAL_PROCESSING = 0x0004
_STD_OUTPUT_HANDLE = -11


class PlatformCapabilities(Protocol):
    def hide_path(self, path: Path) -> bool:
        """Mark ``path`` hidden; return ``False`` when that is not possible."""

    def enable_ansi_output(self) -> bool:
        """Enable ANSI escape rendering; return ``True`` when colours are safe."""


class WindowsCapabilities:
    """Use kernel32 directly, mirroring what ``attrib +h`` and ``SetConsoleMode`` do."""

    def hide_path(self, path: Path) -> bool:  # pragma: no cover - requires Windows
        kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        attributes = kernel32.GetFileAttributesW(str(path))
        if attributes == -1 or attributes == 0xFFFFFFFF:
            _LOGGER.warning("Unable to read attributes of %s", path)
            return False
        if not kernel32.SetFileAttributesW(str(path), attributes | FILE_ATTRIBUTE_HIDDEN):
            _LOGGER.warning(
                "Failed to set hidden attribute on %s (error %s)",
                path,
                ctypes.GetLastError(),  # type: ignore[attr-defined]
            )
            return False
        _LOGGER.debug("Marked %s hidden", path)
        return True

    def enable_ansi_output(self) -> bool:  # pragma: no cover - requires Windows
        kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        handle = kernel32.GetStdHandle(_STD_OUTPUT_HANDLE)
        mode = ctypes.c_uint32()
        if not kernel32.GetConsoleMode(handle, ctypes.byref(mode)):
            _LOGGER.debug("Standard output is not a console; disabling colours")
            return False
        if not kernel32.SetConsoleMode(handle, mode.value | ENABLE_VIRTUAL_TERMINAL_PROCESSING):
            _LOGGER.debug("Console refused virtual terminal processing")
            return False
        return True


class PosixCapabilities:
    """Dot-prefixed names are already hidden; colours need an interactive stdout."""

    def hide_path(self, path: Path) -> bool:
        hidden = path.name.startswith(".")
        if not hidden:
            _LOGGER.debug("Cannot hide %s on this platform without renaming it", path)
        return hidden

    def enable_ansi_output(self) -> bool:
        if os.environ.get("NO_COLOR"):
            return False
        is_tty = getattr(sys.stdout, "isatty", None)
        return bool(callable(is_tty) and is_tty())


def get_platform_capabilities() -> PlatformCapabilities:
    if sys.platform == "win32":
        return WindowsCapabilities()
    return PosixCapabilities()


__all__ = [
    "PlatformCapabilities",
    "PosixCapabilities",
    "WindowsCapabilities",
    "get_platform_capabilities",
]
