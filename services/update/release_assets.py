"""Utilities for downloading the release archive, its sidecar and extra assets."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Iterable

from services.update.constants import ARTIFACT_FILE_NAME
from services.update.models import DownloadedArtifact, FilesystemError
from services.update.providers import http_get


_LOGGER = logging.getLogger(__name__)

__all__ = ["ArtifactDownloader", "is_absolute_url", "resolve_url"]

_PLACEHOLDER_PATTERN = re.compile(r"%s|%v|\{0?\}|\{version\}|\{name\}")


def resolve_url(template: str, value: str) -> str:
    """Substitute ``value`` into the single placeholder of ``template``."""

    resolved, count = _PLACEHOLDER_PATTERN.subn(lambda _match: value, template, count=1)
    if count == 0:
        _LOGGER.debug("Source template %s has no placeholder; appending %s", template, value)
        return template.rstrip("/") + "/" + value
    return resolved


def is_absolute_url(asset: str) -> bool:
    return asset.lower().startswith(("http://", "https://"))


class ArtifactDownloader:
    """Fetch release files sequentially into a staging directory."""

    def __init__(
        self,
        staging_dir: Path,
        *,
        checksum_suffix: str = ".checksum.txt",
        announce: Callable[[str], None] | None = None,
        fetch: Callable[[str], bytes] = http_get,
    ) -> None:
        self._staging_dir = Path(staging_dir)
        self._checksum_suffix = checksum_suffix
        self._announce = announce
        self._fetch = fetch

    def download_primary(self, template: str, version: str) -> DownloadedArtifact:
        """Download the release archive for ``version`` and its checksum sidecar."""

        url = resolve_url(template, version)
        archive_path = self._staging_dir / ARTIFACT_FILE_NAME
        self._download(url, archive_path)

        sidecar_url = url + self._checksum_suffix
        sidecar_path = self._staging_dir / (ARTIFACT_FILE_NAME + self._checksum_suffix)
        self._download(sidecar_url, sidecar_path)
        return DownloadedArtifact(url=url, archive_path=archive_path, sidecar_path=sidecar_path)

    def download_assets(self, assets: Iterable[str], template: str, destination: Path) -> list[Path]:
        """Download each named asset into ``destination`` under its declared name."""

        written: list[Path] = []
        root = destination.resolve()
        for asset in assets:
            url = asset if is_absolute_url(asset) else resolve_url(template, asset)
            name = asset.rstrip("/").rsplit("/", 1)[-1] if is_absolute_url(asset) else asset
            target = (root / name).resolve()
            try:
                target.relative_to(root)
            except ValueError:
                raise FilesystemError(f"Asset name escapes the staging directory: {asset}")
            self._download(url, target)
            written.append(target)
        return written

    def _download(self, url: str, target: Path) -> None:
        if self._announce is not None:
            self._announce(f"  GET {url}")
        _LOGGER.info("Downloading %s", url)
        body = self._fetch(url)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(body)
        except OSError as exc:
            raise FilesystemError(f"Failed to write {target}: {exc}") from exc
        _LOGGER.debug("Stored %s bytes at %s", len(body), target)
