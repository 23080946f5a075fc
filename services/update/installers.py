"""Launch the detached replacement helper and hand control over to it."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable, Protocol

from services.update.constants import HANDOFF_RECORD_NAME, HELPER_DIR_PREFIX, HELPER_SUBCOMMAND
from services.update.models import FilesystemError, PendingReplacement

_LOGGER = logging.getLogger(__name__)

DETACHED_PROCESS = 0x00000008
CREATE_NEW_PROCESS_GROUP = 0x00000200


class Launcher(Protocol):
    """Protocol describing how the replacement helper is started."""

    def launch(self, replacement: PendingReplacement) -> None:
        """Start the helper for ``replacement``; may not return."""


def build_helper_command(record_path: Path, handoff_dir: Path) -> list[str]:
    """Return the command line that runs the helper for ``record_path``.

    A frozen build is copied into ``handoff_dir`` first so the helper never
    executes the image it is about to overwrite.
    """

    if getattr(sys, "frozen", False):
        running = Path(sys.executable)
        helper_binary = handoff_dir / running.name
        shutil.copy2(running, helper_binary)
        return [str(helper_binary), HELPER_SUBCOMMAND, str(record_path)]
    return [sys.executable, "-m", "app", HELPER_SUBCOMMAND, str(record_path)]


def detached_popen_kwargs() -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
    }
    if os.name == "nt":  # pragma: no cover - exercised on Windows
        kwargs["creationflags"] = DETACHED_PROCESS | CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True
    return kwargs


class HelperLauncher:
    """Write the handoff record, start the helper detached and exit."""

    def __init__(
        self,
        *,
        exit_after_launch: bool = True,
        popen: Callable[..., Any] = subprocess.Popen,
    ) -> None:
        self._exit_after_launch = exit_after_launch
        self._popen = popen

    def launch(self, replacement: PendingReplacement) -> None:
        handoff_dir = Path(tempfile.mkdtemp(prefix=HELPER_DIR_PREFIX))
        try:
            record = replacement.write(handoff_dir / HANDOFF_RECORD_NAME)
            command = build_helper_command(handoff_dir / HANDOFF_RECORD_NAME, handoff_dir)
        except OSError as exc:
            shutil.rmtree(handoff_dir, ignore_errors=True)
            raise FilesystemError(f"error creating updater helper: {exc}") from exc

        _LOGGER.info(
            "Starting replacement helper for %s (waiting on pid %s)",
            record.live_executable,
            record.parent_pid,
        )
        _LOGGER.debug("Helper command: %s", command)
        working_dir = record.live_executable.parent
        try:
            self._popen(command, cwd=str(working_dir), **detached_popen_kwargs())
        except OSError as exc:
            shutil.rmtree(handoff_dir, ignore_errors=True)
            raise FilesystemError(f"error starting updater helper: {exc}") from exc
        if self._exit_after_launch:  # pragma: no cover - terminates the interpreter
            logging.shutdown()
            os._exit(0)


__all__ = [
    "HelperLauncher",
    "Launcher",
    "build_helper_command",
    "detached_popen_kwargs",
]
