"""Installed tool version helpers."""

from __future__ import annotations

from functools import lru_cache
import os
import subprocess
from importlib import resources

_FALLBACK_VERSION = "0.0.0"
_VERSION_ENV = "SELFUPDATE_APP_VERSION"


def _read_version_file() -> str | None:
    try:
        text = resources.files(__package__).joinpath("VERSION").read_text(encoding="utf-8")
    except (OSError, ModuleNotFoundError):
        return None
    version = _normalize(text)
    return version or None


def _version_from_env() -> str | None:
    env_version = os.environ.get(_VERSION_ENV)
    if not env_version:
        return None
    return _normalize(env_version)


def _version_from_git() -> str | None:
    try:
        output = subprocess.check_output(
            ["git", "describe", "--tags", "--abbrev=0"],
            stderr=subprocess.DEVNULL,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return _normalize(output)


def _normalize(raw_version: str) -> str:
    version = raw_version.strip()
    if version.startswith("v"):
        version = version[1:]
    return version


@lru_cache(maxsize=1)
def get_app_version() -> str:
    """Return the version of the installed tool.

    The order of precedence is:
    1. The ``SELFUPDATE_APP_VERSION`` environment variable.
    2. Embedded ``VERSION`` file packaged with the tool.
    3. The most recent ``git`` tag when running from a source checkout.
    4. ``0.0.0``, which is older than any published release.
    """

    for resolver in (_version_from_env, _read_version_file, _version_from_git):
        version = resolver()
        if version:
            return version
    return _FALLBACK_VERSION


__all__ = ["get_app_version"]
