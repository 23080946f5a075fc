"""Deferred removal of the update directory once the retention window ends."""

from __future__ import annotations

import datetime
import json
import logging
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Callable, Protocol, Sequence

from services.update.constants import (
    CLEANUP_MARKER_NAME,
    CLEANUP_SCRIPT_SUFFIX,
    SCHTASKS_MAX_ACTION_LENGTH,
)
from services.update.models import FilesystemError

_LOGGER = logging.getLogger(__name__)

Runner = Callable[[Sequence[str]], "subprocess.CompletedProcess[str]"]


class CleanupScheduler(Protocol):
    """Register and cancel a one-time removal of a directory."""

    def register(self, name: str, run_at: datetime.datetime, target: Path) -> None:
        ...

    def cancel(self, name: str) -> bool:
        ...


def _run_quietly(command: Sequence[str]) -> "subprocess.CompletedProcess[str]":
    kwargs: dict[str, object] = {}
    if sys.platform == "win32":  # pragma: no cover - exercised on Windows
        kwargs["creationflags"] = getattr(subprocess, "CREATE_NO_WINDOW", 0)
    return subprocess.run(
        list(command),
        capture_output=True,
        text=True,
        check=False,
        **kwargs,
    )


class WindowsTaskScheduler:
    """Drive ``schtasks`` with a one-shot task that removes itself."""

    def __init__(self, runner: Runner = _run_quietly, script_dir: Path | None = None) -> None:
        self._runner = runner
        self._script_dir = Path(script_dir) if script_dir is not None else None

    def build_action(self, name: str, target: Path) -> str:
        return f'cmd.exe /c rmdir /s /q "{target}" & schtasks /delete /tn "{name}" /f'

    def script_path(self, name: str) -> Path:
        directory = self._script_dir or Path(tempfile.gettempdir())
        return directory / f"{name}{CLEANUP_SCRIPT_SUFFIX}"

    def _write_script(self, name: str, target: Path) -> str:
        """Move an over-long action into a batch file that removes itself."""

        script = self.script_path(name)
        script.parent.mkdir(parents=True, exist_ok=True)
        script.write_text(
            "\r\n".join(
                [
                    "@echo off",
                    f'rmdir /s /q "{target}"',
                    f'schtasks /delete /tn "{name}" /f',
                    'del "%~f0"',
                    "",
                ]
            ),
            encoding="utf-8",
        )
        action = f'cmd.exe /c "{script}"'
        if len(action) > SCHTASKS_MAX_ACTION_LENGTH:
            script.unlink(missing_ok=True)
            raise OSError(
                f"cleanup script path is too long for schtasks ({len(action)} characters): {script}"
            )
        return action

    def register(self, name: str, run_at: datetime.datetime, target: Path) -> None:
        action = self.build_action(name, target)
        if len(action) > SCHTASKS_MAX_ACTION_LENGTH:
            _LOGGER.info(
                "Cleanup action is %d characters; writing it to %s",
                len(action),
                self.script_path(name),
            )
            action = self._write_script(name, target)
        command = [
            "schtasks",
            "/create",
            "/tn",
            name,
            "/tr",
            action,
            "/sc",
            "once",
            "/sd",
            run_at.strftime("%m/%d/%Y"),
            "/st",
            run_at.strftime("%H:%M"),
            "/f",
        ]
        _LOGGER.debug("Registering cleanup task: %s", command)
        result = self._runner(command)
        if result.returncode != 0:
            raise OSError(
                f"schtasks /create failed with exit code {result.returncode}: "
                f"{(result.stderr or result.stdout or '').strip()}"
            )

    def cancel(self, name: str) -> bool:
        self.script_path(name).unlink(missing_ok=True)
        result = self._runner(["schtasks", "/delete", "/tn", name, "/f"])
        if result.returncode != 0:
            _LOGGER.debug("No cleanup task %s to cancel (exit %s)", name, result.returncode)
            return False
        return True


class MarkerCleanupScheduler:
    """Record the deadline next to the data and expire it on a later run.

    Platforms without a task scheduler the updater can drive rely on
    :func:`run_due_cleanup` being called at the start of each upgrade.
    """

    def __init__(self, update_dir: Path) -> None:
        self._update_dir = Path(update_dir)

    def register(self, name: str, run_at: datetime.datetime, target: Path) -> None:
        marker = target / CLEANUP_MARKER_NAME
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text(
            json.dumps({"name": name, "run_at": run_at.isoformat(), "target": str(target)}),
            encoding="utf-8",
        )
        _LOGGER.info("Cleanup of %s scheduled for %s", target, run_at.isoformat())

    def cancel(self, name: str) -> bool:
        marker = self._update_dir / CLEANUP_MARKER_NAME
        try:
            payload = json.loads(marker.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return False
        except (OSError, ValueError):
            _LOGGER.warning("Removing unreadable cleanup marker %s", marker, exc_info=True)
            payload = {"name": name}
        if payload.get("name") != name:
            return False
        marker.unlink(missing_ok=True)
        return True


def run_due_cleanup(update_dir: Path, now: datetime.datetime | None = None) -> bool:
    """Remove ``update_dir`` when its recorded cleanup deadline has passed."""

    marker = update_dir / CLEANUP_MARKER_NAME
    if not marker.exists():
        return False
    try:
        payload = json.loads(marker.read_text(encoding="utf-8"))
        run_at = datetime.datetime.fromisoformat(str(payload["run_at"]))
    except (OSError, ValueError, KeyError, TypeError):
        _LOGGER.warning("Ignoring unreadable cleanup marker %s", marker, exc_info=True)
        return False
    current = now or datetime.datetime.now()
    if current < run_at:
        return False
    _LOGGER.info("Retention window for %s ended at %s; removing it", update_dir, run_at)
    try:
        shutil.rmtree(update_dir)
    except OSError as exc:
        raise FilesystemError(
            f"Failed to remove expired update directory {update_dir}: {exc}"
        ) from exc
    return True


def get_cleanup_scheduler(update_dir: Path) -> CleanupScheduler:
    if sys.platform == "win32":
        return WindowsTaskScheduler()
    return MarkerCleanupScheduler(update_dir)


__all__ = [
    "CleanupScheduler",
    "MarkerCleanupScheduler",
    "WindowsTaskScheduler",
    "get_cleanup_scheduler",
    "run_due_cleanup",
]
