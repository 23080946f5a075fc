"""Detached helper that swaps in the new executable after the updater exits.

The helper is started by :class:`services.update.installers.HelperLauncher`
with the path of a serialized :class:`PendingReplacement`. It walks a fixed
sequence of states::

    WAIT_FOR_EXIT -> VALIDATE_SOURCE -> CHECK_WRITABLE -> COPY -> VERIFY_COPY
        -> DELETE_SOURCE -> SCHEDULE_CLEANUP -> SELF_DELETE

Each state either advances or stops the run with its own exit code. Nobody is
left to read an error interactively, so every transition is appended to a
diagnostic log next to the live executable. The log is removed only when the
final state completes; a failed run leaves it behind for inspection.
"""

from __future__ import annotations

import datetime
import enum
import logging
import os
import shutil
import sys
import tempfile
import time
from pathlib import Path
from typing import Callable

import psutil

from services.update.constants import HELPER_DIR_PREFIX
from services.update.models import HelperFailure, ParseError, PendingReplacement
from services.update.scheduler import CleanupScheduler, get_cleanup_scheduler


_LOGGER = logging.getLogger(__name__)
_DIAGNOSTIC_LOGGER_NAME = f"{__name__}.diagnostics"


class HelperState(str, enum.Enum):
    WAIT_FOR_EXIT = "WAIT_FOR_EXIT"
    VALIDATE_SOURCE = "VALIDATE_SOURCE"
    CHECK_WRITABLE = "CHECK_WRITABLE"
    COPY = "COPY"
    VERIFY_COPY = "VERIFY_COPY"
    DELETE_SOURCE = "DELETE_SOURCE"
    SCHEDULE_CLEANUP = "SCHEDULE_CLEANUP"
    SELF_DELETE = "SELF_DELETE"


class HelperExitCode(enum.IntEnum):
    SUCCESS = 0
    SOURCE_MISSING = 2
    DESTINATION_NOT_WRITABLE = 3
    COPY_FAILED = 4
    COPY_MISSING = 5
    SOURCE_NOT_DELETED = 6
    SCHEDULE_FAILED = 7
    SELF_DELETE_FAILED = 8
    INVALID_RECORD = 9
    UNEXPECTED_ERROR = 10


class SelfReplaceHelper:
    """Run the executable swap described by a :class:`PendingReplacement`."""

    def __init__(
        self,
        replacement: PendingReplacement,
        scheduler: CleanupScheduler,
        *,
        is_running: Callable[[int], bool] = psutil.pid_exists,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
    ) -> None:
        self._replacement = replacement
        self._scheduler = scheduler
        self._is_running = is_running
        self._sleep = sleep
        self._clock = clock
        self._handler: logging.Handler | None = None
        self.log_path: Path = replacement.log_path
        self._diagnostics = logging.getLogger(_DIAGNOSTIC_LOGGER_NAME)
        self.visited: list[HelperState] = []

    def run(self) -> int:
        self._open_log()
        steps: tuple[tuple[HelperState, Callable[[], None]], ...] = (
            (HelperState.WAIT_FOR_EXIT, self._wait_for_exit),
            (HelperState.VALIDATE_SOURCE, self._validate_source),
            (HelperState.CHECK_WRITABLE, self._check_writable),
            (HelperState.COPY, self._copy),
            (HelperState.VERIFY_COPY, self._verify_copy),
            (HelperState.DELETE_SOURCE, self._delete_source),
            (HelperState.SCHEDULE_CLEANUP, self._schedule_cleanup),
            (HelperState.SELF_DELETE, self._self_delete),
        )
        try:
            for state, step in steps:
                self.visited.append(state)
                self._log(f"entering {state.value}")
                step()
        except HelperFailure as exc:
            self._log(f"ERROR: {exc}", level=logging.ERROR)
            self._close_log()
            return exc.exit_code
        except Exception as exc:
            self._diagnostics.exception(
                "ERROR: unexpected failure in %s: %s", self.visited[-1].value, exc
            )
            self._close_log()
            return HelperExitCode.UNEXPECTED_ERROR
        return HelperExitCode.SUCCESS

    def _wait_for_exit(self) -> None:
        pid = self._replacement.parent_pid
        self._log(f"waiting for process {pid} to exit")
        while self._is_running(pid):
            self._sleep(self._replacement.poll_interval)
        self._log(f"process {pid} has exited")

    def _validate_source(self) -> None:
        source = self._replacement.staged_executable
        if not source.is_file():
            raise HelperFailure(
                f"source file does not exist: {source}", HelperExitCode.SOURCE_MISSING
            )
        self._log(f"source file exists: {source}")

    def _check_writable(self) -> None:
        directory = self._replacement.live_executable.parent
        try:
            handle, scratch = tempfile.mkstemp(prefix=".write-test-", dir=directory)
            os.close(handle)
            os.unlink(scratch)
        except OSError as exc:
            raise HelperFailure(
                f"target location is not writable: {directory} ({exc})",
                HelperExitCode.DESTINATION_NOT_WRITABLE,
            ) from exc
        self._log(f"target location is writable: {directory}")

    def _copy(self) -> None:
        source = self._replacement.staged_executable
        destination = self._replacement.live_executable
        self._log(f"copying {source} to {destination}")
        try:
            shutil.copyfile(source, destination)
            shutil.copymode(source, destination)
        except OSError as exc:
            raise HelperFailure(f"copy failed: {exc}", HelperExitCode.COPY_FAILED) from exc

    def _verify_copy(self) -> None:
        destination = self._replacement.live_executable
        if not destination.is_file():
            raise HelperFailure(
                f"target file does not exist after copy: {destination}",
                HelperExitCode.COPY_MISSING,
            )
        self._log(f"verified {destination}")

    def _delete_source(self) -> None:
        source = self._replacement.staged_executable
        try:
            source.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            self._log(f"unable to delete {source}: {exc}", level=logging.WARNING)
        if source.exists():
            raise HelperFailure(
                f"source file still exists after deletion: {source}",
                HelperExitCode.SOURCE_NOT_DELETED,
            )
        self._log(f"removed staged source {source}")

    def _schedule_cleanup(self) -> None:
        replacement = self._replacement
        run_at = self._clock() + datetime.timedelta(days=replacement.retention_days)
        try:
            self._scheduler.register(replacement.cleanup_task_name, run_at, replacement.update_dir)
        except OSError as exc:
            raise HelperFailure(
                f"failed to create scheduled task: {exc}", HelperExitCode.SCHEDULE_FAILED
            ) from exc
        self._log(
            f"scheduled removal of {replacement.update_dir} at {run_at:%Y-%m-%d %H:%M}"
        )

    def _self_delete(self) -> None:
        self._log("update complete")
        self._close_log()
        try:
            self.log_path.unlink(missing_ok=True)
            if self._replacement.record_path is not None:
                self._replacement.record_path.unlink(missing_ok=True)
        except OSError as exc:
            self._open_log()
            raise HelperFailure(
                f"unable to remove helper files: {exc}", HelperExitCode.SELF_DELETE_FAILED
            ) from exc
        _remove_handoff_directory(self._replacement.record_path)

    def _open_log(self) -> None:
        if self._handler is not None:
            return
        try:
            handler = _open_log_handler(self._replacement.log_path)
            self.log_path = self._replacement.log_path
        except OSError as exc:
            fallback = Path(tempfile.gettempdir()) / self._replacement.log_path.name
            _LOGGER.warning(
                "Cannot write helper log %s (%s); using %s", self._replacement.log_path, exc, fallback
            )
            try:
                handler = _open_log_handler(fallback)
            except OSError:
                _LOGGER.error("Helper diagnostics will not be written to disk", exc_info=True)
                return
            self.log_path = fallback
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
        handler.setLevel(logging.DEBUG)
        self._diagnostics.addHandler(handler)
        self._diagnostics.setLevel(logging.DEBUG)
        self._handler = handler

    def _close_log(self) -> None:
        handler = self._handler
        if handler is None:
            return
        self._diagnostics.removeHandler(handler)
        handler.close()
        self._handler = None

    def _log(self, message: str, *, level: int = logging.INFO) -> None:
        self._diagnostics.log(level, message)


def _open_log_handler(log_path: Path) -> logging.FileHandler:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(log_path, encoding="utf-8")


def _remove_handoff_directory(record_path: Path | None) -> None:
    """Remove the temporary handoff directory once it holds nothing we need.

    A frozen helper runs from a copy inside that directory; Windows refuses to
    delete a running image, so there the directory is left for the system's
    temporary file cleanup.
    """

    if record_path is None:
        return
    handoff_dir = record_path.parent
    if not handoff_dir.name.startswith(HELPER_DIR_PREFIX):
        return
    running_from_handoff = getattr(sys, "frozen", False) and Path(sys.executable).parent == handoff_dir
    if running_from_handoff and sys.platform == "win32":  # pragma: no cover - Windows only
        return
    shutil.rmtree(handoff_dir, ignore_errors=True)


def run_helper(record_path: Path) -> int:
    """Entry point used by the ``replace-helper`` command."""

    try:
        replacement = PendingReplacement.read(record_path)
    except ParseError as exc:
        _LOGGER.error("Replacement helper cannot start: %s", exc)
        return HelperExitCode.INVALID_RECORD
    scheduler = get_cleanup_scheduler(replacement.update_dir)
    return int(SelfReplaceHelper(replacement, scheduler).run())


__all__ = [
    "HelperExitCode",
    "HelperState",
    "SelfReplaceHelper",
    "run_helper",
]
