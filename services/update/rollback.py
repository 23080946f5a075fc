"""Restore the installation from the retained backup archive."""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Sequence

from app.config import UpdaterConfig
from services.update.archive import extract_archive
from services.update.backup import BackupManager
from services.update.constants import ROLLBACK_UNAVAILABLE_MESSAGE, VERSION_SUBCOMMAND
from services.update.models import FilesystemError, RollbackOutcome
from services.update.replacer import copy_tree_contents
from services.update.scheduler import CleanupScheduler

_LOGGER = logging.getLogger(__name__)

VersionQuery = Callable[[Sequence[str]], str]


def query_executable_version(command: Sequence[str]) -> str:
    try:
        completed = subprocess.run(
            list(command), capture_output=True, text=True, check=True
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise FilesystemError(f"error running {command[0]}: {exc}") from exc
    return completed.stdout.strip()


class RollbackOrchestrator:
    """Put the previous build back when a backup is still retained.

    The restore overwrites the installation in place, so it has to run from a
    copy of the tool other than the executable being restored.
    """

    def __init__(
        self,
        install_root: Path,
        config: UpdaterConfig,
        scheduler: CleanupScheduler,
        *,
        version_query: VersionQuery = query_executable_version,
    ) -> None:
        self._install_root = Path(install_root)
        self._config = config
        self._scheduler = scheduler
        self._version_query = version_query
        self._backups = BackupManager(self._install_root, config)

    def rollback(self) -> RollbackOutcome:
        backup = self._backups.current()
        if backup is None:
            message = ROLLBACK_UNAVAILABLE_MESSAGE.format(days=self._config.retention_days)
            _LOGGER.info("Rollback requested but no backup exists at %s", self._backups.backup_path)
            return RollbackOutcome(restored=False, message=message)

        if backup.is_expired():
            _LOGGER.info(
                "Backup %s is past its retention deadline %s but still present; restoring",
                backup.path,
                backup.retention_deadline,
            )

        workspace = Path(tempfile.mkdtemp(prefix="selfupdate-rollback-"))
        try:
            extract_archive(backup.path, workspace, enforce_limits=False)
            try:
                restored = copy_tree_contents(workspace, self._install_root)
            except OSError as exc:
                raise FilesystemError(f"failed to restore backup files: {exc}") from exc
            _LOGGER.info("Restored %s files from %s", restored, backup.path)
        finally:
            shutil.rmtree(workspace, ignore_errors=True)

        update_dir = self._config.update_dir(self._install_root)
        try:
            shutil.rmtree(update_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise FilesystemError(f"failed to remove {update_dir}: {exc}") from exc

        if self._scheduler.cancel(self._config.cleanup_task_name):
            _LOGGER.info("Cancelled scheduled cleanup %s", self._config.cleanup_task_name)

        executable = self._install_root / self._config.executable_name
        version = self._version_query([str(executable), VERSION_SUBCOMMAND])
        return RollbackOutcome(
            restored=True,
            message=f"rollback to v{version} complete",
            restored_version=version,
        )


__all__ = ["RollbackOrchestrator", "query_executable_version"]
