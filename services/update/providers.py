"""Update descriptor provider implementations."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import urlopen

from services.update.constants import DESCRIPTOR_FILE_NAME
from services.update.models import NetworkError, ParseError, UpdateDescriptor


_LOGGER = logging.getLogger(__name__)


class DescriptorProvider(Protocol):
    """Protocol describing update descriptor sources."""

    def fetch(self) -> UpdateDescriptor:
        """Return the advertised release or raise an :class:`UpdateError`."""


class HttpDescriptorProvider:
    """Fetch the update descriptor from a fixed remote URL."""

    def __init__(self, url: str) -> None:
        self._url = url

    @property
    def url(self) -> str:
        return self._url

    def fetch(self) -> UpdateDescriptor:
        _LOGGER.debug("Requesting update descriptor from %s", self._url)
        body = http_get(self._url)
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ParseError(f"Update descriptor is not valid JSON: {exc}") from exc
        descriptor = parse_descriptor(payload)
        _LOGGER.info(
            "Remote descriptor advertises version %s with %s additional assets",
            descriptor.target_version,
            len(descriptor.assets),
        )
        return descriptor


class LocalFolderDescriptorProvider:
    """Serve the update descriptor from a local directory for testing."""

    def __init__(self, folder: Path) -> None:
        self._folder = Path(folder)

    def fetch(self) -> UpdateDescriptor:
        descriptor_path = self._folder / DESCRIPTOR_FILE_NAME
        try:
            raw = descriptor_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise NetworkError(f"Local update descriptor unavailable: {exc}") from exc
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Local update descriptor is not valid JSON: {exc}") from exc
        _LOGGER.info("Using local update descriptor at %s", descriptor_path)
        return parse_descriptor(payload)


def http_get(url: str) -> bytes:
    """Return the body of a successful GET request for ``url``."""

    try:
        with urlopen(url) as response:  # nosec - update endpoints are HTTPS
            status = getattr(response, "status", 200)
            if status != 200:
                raise NetworkError(f"received status code {status} from {url}")
            return response.read()
    except HTTPError as exc:
        raise NetworkError(f"received status code {exc.code} from {url}") from exc
    except (URLError, OSError) as exc:
        raise NetworkError(f"failed to retrieve {url}: {exc}") from exc


def parse_descriptor(payload: Any) -> UpdateDescriptor:
    """Validate the fixed descriptor schema and build an :class:`UpdateDescriptor`."""

    if not isinstance(payload, Mapping):
        raise ParseError("Update descriptor must be a JSON object")

    version = payload.get("version")
    if not isinstance(version, str) or not version.strip():
        raise ParseError("Update descriptor is missing a version")
    template = payload.get("sourceTpl")
    if not isinstance(template, str) or not template.strip():
        raise ParseError("Update descriptor is missing a source URL template")

    return UpdateDescriptor(
        target_version=version.strip(),
        source_url_template=template.strip(),
        assets=_string_list(payload, "assets"),
        general_warnings=_string_list(payload, "notices"),
        version_warnings=_string_list(payload, "versionNotices"),
    )


def _string_list(payload: Mapping[str, Any], key: str) -> tuple[str, ...]:
    raw = payload.get(key)
    if raw is None:
        return ()
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise ParseError(f"Update descriptor field '{key}' must be a list of strings")
    return tuple(raw)
