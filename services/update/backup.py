"""Snapshot the installation directory into the retained backup archive."""

from __future__ import annotations

import datetime
import logging
import os
import shutil
import zipfile
from pathlib import Path

from app.config import UpdaterConfig
from services.update.models import BackupArchive, FilesystemError


_LOGGER = logging.getLogger(__name__)

__all__ = ["BackupManager", "write_directory_archive"]


def write_directory_archive(
    source_dir: Path, output_zip: Path, *, exclude: tuple[Path, ...] = ()
) -> int:
    """Zip every file and directory below ``source_dir`` into ``output_zip``.

    Directory entries are stored with a trailing slash so that empty
    directories survive; file entries are deflated. Paths listed in
    ``exclude`` are skipped together with everything beneath them. Returns the
    number of entries written.
    """

    excluded = {path.resolve() for path in exclude}
    entries = 0
    with zipfile.ZipFile(output_zip, "w") as archive:
        for current, dirnames, filenames in os.walk(source_dir):
            current_path = Path(current)
            dirnames[:] = sorted(
                name for name in dirnames if (current_path / name).resolve() not in excluded
            )
            for name in dirnames:
                directory = current_path / name
                arcname = directory.relative_to(source_dir).as_posix()
                archive.write(directory, arcname, compress_type=zipfile.ZIP_STORED)
                entries += 1
            for name in sorted(filenames):
                path = current_path / name
                if path.resolve() in excluded:
                    continue
                arcname = path.relative_to(source_dir).as_posix()
                archive.write(path, arcname, compress_type=zipfile.ZIP_DEFLATED)
                entries += 1
    return entries


class BackupManager:
    """Own the single backup archive kept inside the update directory."""

    def __init__(self, install_root: Path, config: UpdaterConfig) -> None:
        self._install_root = Path(install_root)
        self._config = config

    @property
    def backup_path(self) -> Path:
        return self._config.backup_path(self._install_root)

    def create_backup(self, staging_dir: Path) -> BackupArchive:
        """Snapshot the installation and replace any previous backup."""

        update_dir = self._config.update_dir(self._install_root)
        staged = Path(staging_dir) / "backup.zip"
        _LOGGER.info("Backing up %s", self._install_root)
        try:
            entries = write_directory_archive(
                self._install_root, staged, exclude=(update_dir,)
            )
            update_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(staged, self.backup_path)
        except (OSError, zipfile.LargeZipFile) as exc:
            raise FilesystemError(f"failed to create backup: {exc}") from exc
        _LOGGER.info("Wrote %s backup entries to %s", entries, self.backup_path)
        backup = self.current()
        if backup is None:  # pragma: no cover - the copy above just succeeded
            raise FilesystemError(f"Backup archive missing after copy: {self.backup_path}")
        return backup

    def current(self) -> BackupArchive | None:
        """Return the retained backup, or ``None`` when there is none."""

        path = self.backup_path
        try:
            modified = path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise FilesystemError(f"Unable to inspect backup {path}: {exc}") from exc
        return BackupArchive(
            path=path,
            created_at=datetime.datetime.fromtimestamp(modified),
            retention=datetime.timedelta(days=self._config.retention_days),
        )
