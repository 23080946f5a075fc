"""Public API for the update service package."""

from __future__ import annotations

from services.update.backup import BackupManager
from services.update.builder import (
    build_console,
    build_rollback_orchestrator,
    build_update_service,
    find_install_root,
)
from services.update.constants import INSTALL_ROOT_ENV, LOCAL_DESCRIPTOR_ENV
from services.update.helper import HelperExitCode, HelperState, SelfReplaceHelper, run_helper
from services.update.installers import HelperLauncher, Launcher
from services.update.models import (
    BackupArchive,
    FilesystemError,
    HelperFailure,
    IntegrityError,
    NetworkError,
    ParseError,
    PendingReplacement,
    RollbackOutcome,
    UpdateDescriptor,
    UpdateError,
    UpgradeOutcome,
    VersionCheck,
    VersionStatus,
)
from services.update.providers import (
    DescriptorProvider,
    HttpDescriptorProvider,
    LocalFolderDescriptorProvider,
)
from services.update.rollback import RollbackOrchestrator
from services.update.service import UpdateService

__all__ = [
    "INSTALL_ROOT_ENV",
    "LOCAL_DESCRIPTOR_ENV",
    "BackupArchive",
    "BackupManager",
    "DescriptorProvider",
    "FilesystemError",
    "HelperExitCode",
    "HelperFailure",
    "HelperLauncher",
    "HelperState",
    "HttpDescriptorProvider",
    "IntegrityError",
    "Launcher",
    "LocalFolderDescriptorProvider",
    "NetworkError",
    "ParseError",
    "PendingReplacement",
    "RollbackOrchestrator",
    "RollbackOutcome",
    "SelfReplaceHelper",
    "UpdateDescriptor",
    "UpdateError",
    "UpdateService",
    "UpgradeOutcome",
    "VersionCheck",
    "VersionStatus",
    "build_console",
    "build_rollback_orchestrator",
    "build_update_service",
    "find_install_root",
    "run_helper",
]
