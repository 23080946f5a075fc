from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from services.update import constants
from services.update.archive import extract_archive, extract_zip_safely
from services.update.models import FilesystemError
from tests.unit.update_service_test_utils import build_release_archive


def test_extract_archive_recreates_files_and_empty_directories(tmp_path: Path) -> None:
    archive = build_release_archive(tmp_path, empty_dirs=("logs", "cache/tmp"))
    destination = tmp_path / "out"

    result = extract_archive(archive, destination)

    assert result == destination
    assert (destination / "nvm.exe").read_bytes() == b"new-binary"
    assert (destination / "docs" / "README.md").read_bytes() == b"# nvm"
    assert (destination / "logs").is_dir()
    assert (destination / "cache" / "tmp").is_dir()


@pytest.mark.parametrize("entry", ["../evil.txt", "docs/../../evil.txt", "/abs/evil.txt"])
def test_extract_zip_safely_rejects_entries_outside_destination(tmp_path: Path, entry: str) -> None:
    archive_path = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        archive.writestr(entry, b"payload")
    destination = tmp_path / "out" / "nested"
    destination.mkdir(parents=True)

    with zipfile.ZipFile(archive_path) as archive:
        with pytest.raises(FilesystemError):
            extract_zip_safely(archive, destination)

    assert not (tmp_path / "out" / "evil.txt").exists()
    assert not (tmp_path / "evil.txt").exists()


def test_extract_zip_safely_limits_entry_count(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(constants, "MAX_ARCHIVE_ENTRIES", 2)
    archive_path = tmp_path / "many.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        for index in range(3):
            archive.writestr(f"file{index}.txt", b"x")

    with zipfile.ZipFile(archive_path) as archive:
        with pytest.raises(FilesystemError, match="too many entries"):
            extract_zip_safely(archive, tmp_path / "out")


def test_extract_zip_safely_rejects_suspicious_compression_ratio(tmp_path: Path) -> None:
    archive_path = tmp_path / "bomb.zip"
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("zeros.bin", b"\0" * (2 * 1024 * 1024))

    with zipfile.ZipFile(archive_path) as archive:
        with pytest.raises(FilesystemError, match="compression ratio"):
            extract_zip_safely(archive, tmp_path / "out")


def test_extract_archive_reports_corrupt_archive(tmp_path: Path) -> None:
    archive_path = tmp_path / "assets.zip"
    archive_path.write_bytes(b"this is not a zip file")

    with pytest.raises(FilesystemError, match="assets.zip"):
        extract_archive(archive_path, tmp_path / "out")


def test_unlimited_extraction_still_rejects_escaping_entries(tmp_path: Path) -> None:
    archive_path = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        archive.writestr("../evil.txt", b"payload")

    with pytest.raises(FilesystemError):
        extract_archive(archive_path, tmp_path / "out", enforce_limits=False)

    assert not (tmp_path / "evil.txt").exists()


def test_unlimited_extraction_skips_size_and_count_limits(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(constants, "MAX_ARCHIVE_ENTRIES", 1)
    archive_path = tmp_path / "backup.zip"
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("zeros.bin", b"\0" * (2 * 1024 * 1024))
        archive.writestr("notes.txt", b"notes")

    extract_archive(archive_path, tmp_path / "out", enforce_limits=False)

    assert (tmp_path / "out" / "zeros.bin").stat().st_size == 2 * 1024 * 1024
    assert (tmp_path / "out" / "notes.txt").read_bytes() == b"notes"
