"""Helpers for comparing release versions and gating upgrades."""

from __future__ import annotations

import logging
from typing import Protocol

from packaging.version import InvalidVersion, Version

from services.update.models import ParseError, UpdateDescriptor, VersionCheck, VersionStatus


__all__ = [
    "Notifier",
    "VersionGate",
    "compare_versions",
    "is_version_newer",
    "parse_version",
]


_LOGGER = logging.getLogger(__name__)


class Notifier(Protocol):
    """Anything able to surface an operator warning to the user."""

    def warn(self, message: str) -> None:
        ...


def parse_version(raw: str) -> Version:
    """Parse ``raw`` into a comparable version, tolerating a leading ``v``."""

    text = (raw or "").strip()
    if text[:1] in {"v", "V"}:
        text = text[1:]
    if not text:
        raise ParseError("Version string is empty")
    try:
        return Version(text)
    except InvalidVersion as exc:
        raise ParseError(f"Invalid version string: {raw!r}") from exc


def compare_versions(current_version: str, candidate: str) -> int:
    """Compare ``candidate`` against ``current_version``.

    Returns ``1`` when ``candidate`` is newer, ``-1`` when it is older and ``0``
    when the versions are equivalent.
    """

    candidate_parsed = parse_version(candidate)
    current_parsed = parse_version(current_version)
    if candidate_parsed == current_parsed:
        return 0
    if candidate_parsed > current_parsed:
        return 1
    return -1


def is_version_newer(current_version: str, candidate: str) -> bool:
    """Return ``True`` if ``candidate`` is newer than ``current_version``."""

    return compare_versions(current_version, candidate) > 0


class VersionGate:
    """Decide whether the advertised release warrants an upgrade."""

    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier

    def evaluate(self, installed_version: str, descriptor: UpdateDescriptor) -> VersionCheck:
        # Operator notices go out before anything can fail on version parsing.
        for warning in descriptor.general_warnings:
            self._notifier.warn(warning)

        if is_version_newer(installed_version, descriptor.target_version):
            _LOGGER.info(
                "Update available: %s -> %s",
                installed_version,
                descriptor.target_version,
            )
            for warning in descriptor.version_warnings:
                self._notifier.warn(warning)
            return VersionCheck(
                VersionStatus.UPGRADE_AVAILABLE,
                installed_version,
                descriptor.target_version,
            )

        _LOGGER.debug(
            "Installed version %s is up to date (remote %s)",
            installed_version,
            descriptor.target_version,
        )
        return VersionCheck(VersionStatus.UP_TO_DATE, installed_version, descriptor.target_version)
