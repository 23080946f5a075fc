"""Archive extraction helpers for the update service."""

from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path

from services.update import constants
from services.update.models import FilesystemError


_LOGGER = logging.getLogger(__name__)


def extract_archive(archive_path: Path, destination: Path, *, enforce_limits: bool = True) -> Path:
    """Recreate the tree stored in ``archive_path`` below ``destination``.

    Only call this with an archive whose checksum has already been verified.
    ``enforce_limits`` guards against oversized downloads; the tool's own
    backup archives are restored with it disabled.
    """

    _LOGGER.info("Extracting archive %s", archive_path)
    try:
        destination.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path) as archive:
            extract_zip_safely(archive, destination, enforce_limits=enforce_limits)
    except (OSError, zipfile.BadZipFile) as exc:
        raise FilesystemError(f"Failed to extract archive {archive_path.name}: {exc}") from exc
    _LOGGER.debug("Archive extracted to %s", destination)
    return destination


def extract_zip_safely(
    archive: zipfile.ZipFile, target_dir: Path, *, enforce_limits: bool = True
) -> None:
    root = target_dir.resolve()
    total_bytes = 0
    processed_entries = 0
    for member in archive.infolist():
        name = member.filename
        if not name:
            continue
        processed_entries += 1
        if enforce_limits and processed_entries > constants.MAX_ARCHIVE_ENTRIES:
            _LOGGER.error(
                "Archive entry count %s exceeded limit %s",
                processed_entries,
                constants.MAX_ARCHIVE_ENTRIES,
            )
            raise FilesystemError("Archive contained too many entries")
        path = Path(name.replace("\\", "/"))
        if path.is_absolute() or name.startswith(("/", "\\")) or path.drive:
            raise FilesystemError(f"Archive contained an absolute path entry: {name}")
        destination = (root / path).resolve()
        try:
            destination.relative_to(root)
        except ValueError:
            raise FilesystemError(f"Archive entry escapes the destination: {name}")
        if member.is_dir():
            destination.mkdir(parents=True, exist_ok=True)
            continue
        total_bytes += member.file_size
        if enforce_limits:
            _check_member_limits(member, total_bytes)
        destination.parent.mkdir(parents=True, exist_ok=True)
        with archive.open(member) as source, destination.open("wb") as target:
            shutil.copyfileobj(source, target)
        _LOGGER.debug("Extracted archive member %s to %s", name, destination)

    _LOGGER.info(
        "Extracted %s entries totalling %s bytes", processed_entries, total_bytes
    )


def _check_member_limits(member: zipfile.ZipInfo, total_bytes: int) -> None:
    name = member.filename
    if member.file_size > constants.MAX_ARCHIVE_FILE_SIZE:
        _LOGGER.error(
            "Archive member %s exceeded file size limit (%s > %s)",
            name,
            member.file_size,
            constants.MAX_ARCHIVE_FILE_SIZE,
        )
        raise FilesystemError("Archive contained an oversized file")
    if (
        member.compress_size > 0
        and member.file_size > member.compress_size * constants.MAX_COMPRESSION_RATIO
    ):
        _LOGGER.error(
            "Archive member %s exceeded compression ratio limit (%s > %s)",
            name,
            member.file_size,
            member.compress_size * constants.MAX_COMPRESSION_RATIO,
        )
        raise FilesystemError("Archive exceeded safe compression ratio")
    if total_bytes > constants.MAX_ARCHIVE_TOTAL_BYTES:
        _LOGGER.error(
            "Archive expanded to %s bytes which exceeds limit %s",
            total_bytes,
            constants.MAX_ARCHIVE_TOTAL_BYTES,
        )
        raise FilesystemError("Archive expanded beyond safe limits")


__all__ = ["extract_archive", "extract_zip_safely"]
