from __future__ import annotations

import datetime
import os
import shutil
from pathlib import Path
from typing import Sequence

import pytest

from app.config import UpdaterConfig
from services.update import constants
from services.update.backup import BackupManager
from services.update.models import FilesystemError
from services.update.rollback import RollbackOrchestrator, query_executable_version
from tests.unit.update_service_test_utils import FakeScheduler, populate_install_root


class RecordingVersionQuery:
    def __init__(self, version: str = "1.2.0") -> None:
        self.version = version
        self.commands: list[list[str]] = []

    def __call__(self, command: Sequence[str]) -> str:
        self.commands.append(list(command))
        return self.version


def _backed_up_install(tmp_path: Path, config: UpdaterConfig) -> Path:
    install_root = populate_install_root(tmp_path)
    staging = tmp_path / "staging"
    staging.mkdir()
    BackupManager(install_root, config).create_backup(staging)
    (install_root / "nvm.exe").write_bytes(b"new-binary")
    (install_root / "elevate.cmd").write_bytes(b"@echo new")
    return install_root


def test_rollback_without_backup_is_a_no_op(tmp_path: Path) -> None:
    install_root = populate_install_root(tmp_path)
    scheduler = FakeScheduler()
    query = RecordingVersionQuery()
    orchestrator = RollbackOrchestrator(
        install_root, UpdaterConfig(), scheduler, version_query=query
    )

    first = orchestrator.rollback()
    second = orchestrator.rollback()

    assert first == second
    assert first.restored is False
    assert first.message == (
        "no backup available: backups are only available for 7 days after upgrading"
    )
    assert scheduler.cancelled == []
    assert query.commands == []
    assert (install_root / "nvm.exe").read_bytes() == b"old-binary"


def test_rollback_restores_files_and_cancels_cleanup(tmp_path: Path) -> None:
    config = UpdaterConfig()
    install_root = _backed_up_install(tmp_path, config)
    scheduler = FakeScheduler()
    query = RecordingVersionQuery("1.2.0")

    outcome = RollbackOrchestrator(install_root, config, scheduler, version_query=query).rollback()

    assert outcome.restored is True
    assert outcome.restored_version == "1.2.0"
    assert outcome.message == "rollback to v1.2.0 complete"
    assert (install_root / "nvm.exe").read_bytes() == b"old-binary"
    assert (install_root / "elevate.cmd").read_bytes() == b"@echo old"
    assert (install_root / "empty").is_dir()
    assert not (install_root / ".update").exists()
    assert scheduler.cancelled == ["RemoveNVM4WBackup"]
    assert query.commands == [[str(install_root / "nvm.exe"), "version"]]


def test_rollback_restores_backup_past_retention_deadline(tmp_path: Path) -> None:
    config = UpdaterConfig()
    install_root = _backed_up_install(tmp_path, config)
    backup_path = config.backup_path(install_root)
    stale = (datetime.datetime.now() - datetime.timedelta(days=30)).timestamp()
    os.utime(backup_path, (stale, stale))

    outcome = RollbackOrchestrator(
        install_root, config, FakeScheduler(), version_query=RecordingVersionQuery()
    ).rollback()

    assert outcome.restored is True
    assert (install_root / "nvm.exe").read_bytes() == b"old-binary"


def test_query_executable_version_wraps_launch_failures(tmp_path: Path) -> None:
    with pytest.raises(FilesystemError, match="error running"):
        query_executable_version([str(tmp_path / "missing.exe"), "version"])


def test_rollback_restores_highly_compressible_files(tmp_path: Path) -> None:
    config = UpdaterConfig()
    install_root = populate_install_root(tmp_path)
    (install_root / "padding.bin").write_bytes(b"\0" * (2 * 1024 * 1024))
    staging = tmp_path / "staging"
    staging.mkdir()
    BackupManager(install_root, config).create_backup(staging)
    (install_root / "padding.bin").unlink()

    outcome = RollbackOrchestrator(
        install_root, config, FakeScheduler(), version_query=RecordingVersionQuery()
    ).rollback()

    assert outcome.restored is True
    assert (install_root / "padding.bin").read_bytes() == b"\0" * (2 * 1024 * 1024)


def test_rollback_restores_backup_with_more_entries_than_download_limit(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(constants, "MAX_ARCHIVE_ENTRIES", 5)
    config = UpdaterConfig()
    install_root = populate_install_root(tmp_path)
    node_dir = install_root / "v20.11.0"
    node_dir.mkdir()
    for index in range(10):
        (node_dir / f"module{index}.js").write_text(f"// {index}", encoding="utf-8")
    staging = tmp_path / "staging"
    staging.mkdir()
    BackupManager(install_root, config).create_backup(staging)
    shutil.rmtree(node_dir)

    outcome = RollbackOrchestrator(
        install_root, config, FakeScheduler(), version_query=RecordingVersionQuery()
    ).rollback()

    assert outcome.restored is True
    assert len(list(node_dir.iterdir())) == 10
