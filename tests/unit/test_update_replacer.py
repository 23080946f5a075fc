from __future__ import annotations

from pathlib import Path

import pytest

from app.config import UpdaterConfig
from services.update.models import FilesystemError
from services.update.replacer import InPlaceReplacer, copy_tree_contents
from tests.unit.update_service_test_utils import FakeCapabilities, populate_install_root


def _extracted_release(tmp_path: Path, *, installer: bool = False) -> Path:
    staged = tmp_path / "extracted"
    (staged / "docs").mkdir(parents=True)
    (staged / "nvm.exe").write_bytes(b"new-binary")
    (staged / "elevate.cmd").write_bytes(b"@echo new")
    (staged / "docs" / "README.md").write_bytes(b"# new")
    if installer:
        (staged / "update.exe").write_bytes(b"installer")
    return staged


def test_apply_copies_support_files_and_stages_executable(tmp_path: Path) -> None:
    install_root = populate_install_root(tmp_path)
    capabilities = FakeCapabilities()

    staged = InPlaceReplacer(install_root, UpdaterConfig(), capabilities).apply(
        _extracted_release(tmp_path)
    )

    assert (install_root / "nvm.exe").read_bytes() == b"old-binary"
    assert (install_root / "elevate.cmd").read_bytes() == b"@echo new"
    assert (install_root / "docs" / "README.md").read_bytes() == b"# new"
    assert staged.executable == install_root / ".update" / "nvm.exe"
    assert staged.executable.read_bytes() == b"new-binary"
    assert staged.installer is None
    assert capabilities.hidden == [install_root / ".update"]


def test_apply_stages_companion_installer(tmp_path: Path) -> None:
    install_root = populate_install_root(tmp_path)

    staged = InPlaceReplacer(install_root, UpdaterConfig(), FakeCapabilities()).apply(
        _extracted_release(tmp_path, installer=True)
    )

    assert staged.installer == install_root / ".update" / "update.exe"
    assert staged.installer.read_bytes() == b"installer"


def test_apply_requires_executable_in_release(tmp_path: Path) -> None:
    install_root = populate_install_root(tmp_path)
    staged_root = _extracted_release(tmp_path)
    (staged_root / "nvm.exe").unlink()

    with pytest.raises(FilesystemError, match="nvm.exe"):
        InPlaceReplacer(install_root, UpdaterConfig(), FakeCapabilities()).apply(staged_root)

    assert (install_root / "elevate.cmd").read_bytes() == b"@echo old"
    assert not (install_root / ".update").exists()


def test_copy_tree_contents_honours_skip_list(tmp_path: Path) -> None:
    source = _extracted_release(tmp_path)
    destination = tmp_path / "dest"

    copied = copy_tree_contents(source, destination, skip=(Path("docs"),))

    assert copied == 2
    assert not (destination / "docs").exists()
    assert (destination / "nvm.exe").read_bytes() == b"new-binary"
