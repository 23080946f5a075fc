from __future__ import annotations

from pathlib import Path

import pytest

from services.update.models import FilesystemError, NetworkError
from services.update.release_assets import ArtifactDownloader, is_absolute_url, resolve_url
from tests.unit.update_service_test_utils import install_fake_urlopen

TEMPLATE = "https://example.invalid/releases/download/%s/nvm-noinstall.zip"


@pytest.mark.parametrize(
    ("template", "expected"),
    [
        (TEMPLATE, "https://example.invalid/releases/download/1.3.0/nvm-noinstall.zip"),
        ("https://example.invalid/{version}/a.zip", "https://example.invalid/1.3.0/a.zip"),
        ("https://example.invalid/{}/a.zip", "https://example.invalid/1.3.0/a.zip"),
        ("https://example.invalid/latest", "https://example.invalid/latest/1.3.0"),
    ],
)
def test_resolve_url_substitutes_single_placeholder(template: str, expected: str) -> None:
    assert resolve_url(template, "1.3.0") == expected


def test_is_absolute_url() -> None:
    assert is_absolute_url("https://cdn.example.invalid/setup.exe")
    assert is_absolute_url("HTTP://cdn.example.invalid/setup.exe")
    assert not is_absolute_url("setup.exe")


def test_download_primary_fetches_archive_and_sidecar(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    archive_url = resolve_url(TEMPLATE, "1.3.0")
    requested = install_fake_urlopen(
        monkeypatch,
        {archive_url: b"zip-bytes", archive_url + ".checksum.txt": b"abc123\n"},
    )
    announced: list[str] = []

    artifact = ArtifactDownloader(tmp_path, announce=announced.append).download_primary(
        TEMPLATE, "1.3.0"
    )

    assert requested == [archive_url, archive_url + ".checksum.txt"]
    assert artifact.archive_path.read_bytes() == b"zip-bytes"
    assert artifact.sidecar_path.read_text(encoding="utf-8") == "abc123\n"
    assert announced == [f"  GET {archive_url}", f"  GET {archive_url}.checksum.txt"]


def test_download_primary_aborts_when_sidecar_missing(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    archive_url = resolve_url(TEMPLATE, "1.3.0")
    install_fake_urlopen(monkeypatch, {archive_url: b"zip-bytes"})

    with pytest.raises(NetworkError):
        ArtifactDownloader(tmp_path).download_primary(TEMPLATE, "1.3.0")


def test_download_assets_resolves_relative_names_and_keeps_absolute_urls(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    relative_url = resolve_url(TEMPLATE, "elevate.cmd")
    absolute_url = "https://cdn.example.invalid/extra/update.exe"
    requested = install_fake_urlopen(
        monkeypatch, {relative_url: b"@echo off", absolute_url: b"installer"}
    )
    destination = tmp_path / "assets"
    destination.mkdir()

    written = ArtifactDownloader(tmp_path).download_assets(
        ["elevate.cmd", absolute_url], TEMPLATE, destination
    )

    assert requested == [relative_url, absolute_url]
    assert (destination / "elevate.cmd").read_bytes() == b"@echo off"
    assert (destination / "update.exe").read_bytes() == b"installer"
    assert [path.name for path in written] == ["elevate.cmd", "update.exe"]


def test_download_assets_rejects_names_outside_destination(tmp_path: Path) -> None:
    destination = tmp_path / "assets"
    destination.mkdir()
    downloader = ArtifactDownloader(tmp_path, fetch=lambda url: b"payload")

    with pytest.raises(FilesystemError):
        downloader.download_assets(["../outside.txt"], TEMPLATE, destination)

    assert not (tmp_path / "outside.txt").exists()


def test_download_assets_stops_at_first_failure(tmp_path: Path) -> None:
    fetched: list[str] = []

    def fetch(url: str) -> bytes:
        fetched.append(url)
        raise NetworkError(f"received status code 404 from {url}")

    destination = tmp_path / "assets"
    destination.mkdir()

    with pytest.raises(NetworkError):
        ArtifactDownloader(tmp_path, fetch=fetch).download_assets(
            ["one.txt", "two.txt"], TEMPLATE, destination
        )

    assert len(fetched) == 1
