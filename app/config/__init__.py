"""Updater configuration loaded from JSON resources."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from importlib import resources
from math import isfinite
from pathlib import Path
from typing import Any, Mapping

_CONFIG_RESOURCE = "updater.json"
_CONFIG_PATH_ENV = "SELFUPDATE_CONFIG"
_UPDATER_CONFIG_CACHE: UpdaterConfig | None = None

_DEFAULT_DESCRIPTOR_URL = (
    "https://gist.githubusercontent.com/coreybutler/"
    "a12af0f17956a0f25b60369b5f8a661a/raw/nvm4w.json"
)
_DEFAULT_EXECUTABLE_NAME = "nvm.exe"
_DEFAULT_UPDATE_DIR_NAME = ".update"
_DEFAULT_BACKUP_NAME = "nvm4w-backup.zip"
_DEFAULT_INSTALLER_NAME = "update.exe"
_DEFAULT_CHECKSUM_SUFFIX = ".checksum.txt"
_DEFAULT_CHECKSUM_ALGORITHM = "md5"
_DEFAULT_RETENTION_DAYS = 7
_DEFAULT_POLL_INTERVAL = 1.0
_DEFAULT_CLEANUP_TASK_NAME = "RemoveNVM4WBackup"


@dataclass(frozen=True)
class UpdaterConfig:
    """Immutable settings handed to every update component at construction."""

    descriptor_url: str = _DEFAULT_DESCRIPTOR_URL
    executable_name: str = _DEFAULT_EXECUTABLE_NAME
    update_dir_name: str = _DEFAULT_UPDATE_DIR_NAME
    backup_name: str = _DEFAULT_BACKUP_NAME
    installer_name: str = _DEFAULT_INSTALLER_NAME
    checksum_suffix: str = _DEFAULT_CHECKSUM_SUFFIX
    checksum_algorithm: str = _DEFAULT_CHECKSUM_ALGORITHM
    retention_days: int = _DEFAULT_RETENTION_DAYS
    poll_interval: float = _DEFAULT_POLL_INTERVAL
    cleanup_task_name: str = _DEFAULT_CLEANUP_TASK_NAME
    pinned_artifact_version: str | None = None

    def update_dir(self, install_root: Path) -> Path:
        return install_root / self.update_dir_name

    def backup_path(self, install_root: Path) -> Path:
        return self.update_dir(install_root) / self.backup_name

    def staged_executable_path(self, install_root: Path) -> Path:
        return self.update_dir(install_root) / self.executable_name


def get_updater_config() -> UpdaterConfig:
    """Return the cached updater configuration."""

    global _UPDATER_CONFIG_CACHE
    if _UPDATER_CONFIG_CACHE is None:
        _UPDATER_CONFIG_CACHE = load_updater_config(os.environ.get(_CONFIG_PATH_ENV) or None)
    return _UPDATER_CONFIG_CACHE


def reset_updater_config_cache() -> None:
    """Reset the cached configuration for subsequent reloads."""

    global _UPDATER_CONFIG_CACHE
    _UPDATER_CONFIG_CACHE = None


def load_updater_config(path: str | Path | None = None) -> UpdaterConfig:
    """Load configuration from ``path`` or the bundled JSON resource.

    Unknown keys are ignored and every field falls back to its default when
    the stored value is missing or has the wrong shape.
    """

    data = _read_config_data(path)
    return UpdaterConfig(
        descriptor_url=_coerce_text(data.get("descriptor_url"), default=_DEFAULT_DESCRIPTOR_URL),
        executable_name=_coerce_file_name(data.get("executable_name"), default=_DEFAULT_EXECUTABLE_NAME),
        update_dir_name=_coerce_file_name(data.get("update_dir_name"), default=_DEFAULT_UPDATE_DIR_NAME),
        backup_name=_coerce_file_name(data.get("backup_name"), default=_DEFAULT_BACKUP_NAME),
        installer_name=_coerce_file_name(data.get("installer_name"), default=_DEFAULT_INSTALLER_NAME),
        checksum_suffix=_coerce_text(data.get("checksum_suffix"), default=_DEFAULT_CHECKSUM_SUFFIX),
        checksum_algorithm=_coerce_text(
            data.get("checksum_algorithm"), default=_DEFAULT_CHECKSUM_ALGORITHM
        ).lower(),
        retention_days=_coerce_positive_int(data.get("retention_days"), default=_DEFAULT_RETENTION_DAYS),
        poll_interval=_coerce_positive_float(data.get("poll_interval"), default=_DEFAULT_POLL_INTERVAL),
        cleanup_task_name=_coerce_text(data.get("cleanup_task_name"), default=_DEFAULT_CLEANUP_TASK_NAME),
        pinned_artifact_version=_coerce_optional_text(data.get("pinned_artifact_version")),
    )


def _read_config_data(path: str | Path | None) -> Mapping[str, Any]:
    if path is not None:
        return _load_json_from_path(Path(path).expanduser())
    return _load_default_config_data()


def _load_json_from_path(path: Path) -> Mapping[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    return _parse_json(raw)


def _load_default_config_data() -> Mapping[str, Any]:
    try:
        resource = resources.files(__package__).joinpath(_CONFIG_RESOURCE)
        raw = resource.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    return _parse_json(raw)


def _parse_json(raw: str) -> Mapping[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, Mapping):
        return parsed
    return {}


def _coerce_text(value: Any, *, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _coerce_optional_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _coerce_file_name(value: Any, *, default: str) -> str:
    # Single path component only; anything with separators falls back.
    candidate = _coerce_text(value, default=default)
    if "/" in candidate or "\\" in candidate or candidate in {".", ".."}:
        return default
    return candidate


def _coerce_positive_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = int(value)
    elif isinstance(value, str):
        try:
            candidate = int(float(value))
        except ValueError:
            return default
    else:
        return default
    if candidate <= 0:
        return default
    return candidate


def _coerce_positive_float(value: Any, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = float(value)
    elif isinstance(value, str):
        try:
            candidate = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if not isfinite(candidate) or candidate <= 0:
        return default
    return candidate


__all__ = [
    "UpdaterConfig",
    "get_updater_config",
    "load_updater_config",
    "reset_updater_config_cache",
]
