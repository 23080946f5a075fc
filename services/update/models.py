"""Data models and errors used by the update service."""

from __future__ import annotations

import datetime
import enum
import json
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Tuple


class UpdateError(RuntimeError):
    """Base class for failures that abort an update run."""


class NetworkError(UpdateError):
    """Raised when a remote resource cannot be retrieved."""


class ParseError(UpdateError):
    """Raised when a descriptor, version or checksum sidecar is malformed."""


class IntegrityError(UpdateError):
    """Raised when a downloaded artifact does not match its checksum."""


class FilesystemError(UpdateError):
    """Raised when copying, extracting or archiving files fails."""


class HelperFailure(UpdateError):
    """Raised inside the replacement helper when a state cannot complete."""

    def __init__(self, message: str, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


@dataclass(frozen=True)
class UpdateDescriptor:
    """Remote metadata advertising the latest release."""

    target_version: str
    source_url_template: str
    assets: Tuple[str, ...] = ()
    general_warnings: Tuple[str, ...] = ()
    version_warnings: Tuple[str, ...] = ()


class VersionStatus(str, enum.Enum):
    UP_TO_DATE = "up_to_date"
    UPGRADE_AVAILABLE = "upgrade_available"


@dataclass(frozen=True)
class VersionCheck:
    """Outcome of comparing the installed version against the descriptor."""

    status: VersionStatus
    current_version: str
    target_version: str

    @property
    def upgrade_available(self) -> bool:
        return self.status is VersionStatus.UPGRADE_AVAILABLE


@dataclass(frozen=True)
class ChecksumRecord:
    """Expected digest for a downloaded artifact."""

    digest: str
    artifact: Path


@dataclass(frozen=True)
class DownloadedArtifact:
    """The primary archive and its checksum sidecar on disk."""

    url: str
    archive_path: Path
    sidecar_path: Path


@dataclass(frozen=True)
class BackupArchive:
    """The single retained snapshot of the installation directory."""

    path: Path
    created_at: datetime.datetime
    retention: datetime.timedelta = datetime.timedelta(days=7)

    @property
    def retention_deadline(self) -> datetime.datetime:
        return self.created_at + self.retention

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        current = now or datetime.datetime.now()
        return current >= self.retention_deadline


@dataclass(frozen=True)
class StagedUpdate:
    """Describe what the in-place replacement left for the helper."""

    install_root: Path
    update_dir: Path
    executable: Path
    installer: Path | None = None


@dataclass(frozen=True)
class PendingReplacement:
    """Handoff record passed to the detached replacement helper."""

    parent_pid: int
    staged_executable: Path
    live_executable: Path
    update_dir: Path
    log_path: Path
    cleanup_task_name: str
    retention_days: int = 7
    poll_interval: float = 1.0
    record_path: Path | None = field(default=None, compare=False)

    def to_json(self) -> str:
        payload = asdict(self)
        payload.pop("record_path", None)
        for key, value in payload.items():
            if isinstance(value, Path):
                payload[key] = str(value)
        return json.dumps(payload, indent=2)

    def write(self, path: Path) -> PendingReplacement:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")
        return replace(self, record_path=path)

    @classmethod
    def read(cls, path: Path) -> PendingReplacement:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ParseError(f"Unable to read replacement record {path}: {exc}") from exc
        try:
            return cls(
                parent_pid=int(payload["parent_pid"]),
                staged_executable=Path(payload["staged_executable"]),
                live_executable=Path(payload["live_executable"]),
                update_dir=Path(payload["update_dir"]),
                log_path=Path(payload["log_path"]),
                cleanup_task_name=str(payload["cleanup_task_name"]),
                retention_days=int(payload.get("retention_days", 7)),
                poll_interval=float(payload.get("poll_interval", 1.0)),
                record_path=path,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ParseError(f"Replacement record {path} is incomplete: {exc}") from exc


@dataclass(frozen=True)
class UpgradeOutcome:
    """Result of an upgrade run in the main process."""

    check: VersionCheck
    staged: StagedUpdate | None = None
    backup: BackupArchive | None = None

    @property
    def upgraded(self) -> bool:
        return self.staged is not None


@dataclass(frozen=True)
class RollbackOutcome:
    """Result of a rollback request.

    ``restored`` is ``False`` when no backup was available, which is a normal
    state rather than an error.
    """

    restored: bool
    message: str
    restored_version: str | None = None
