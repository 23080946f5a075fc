"""Helpers for constructing the update components for the current environment."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from app.config import UpdaterConfig
from app.version import get_app_version
from services.update.capabilities import PlatformCapabilities, get_platform_capabilities
from services.update.console import Console
from services.update.constants import INSTALL_ROOT_ENV, LOCAL_DESCRIPTOR_ENV
from services.update.installers import HelperLauncher, Launcher
from services.update.providers import (
    DescriptorProvider,
    HttpDescriptorProvider,
    LocalFolderDescriptorProvider,
)
from services.update.rollback import RollbackOrchestrator
from services.update.scheduler import get_cleanup_scheduler
from services.update.service import UpdateService


_LOGGER = logging.getLogger(__name__)


def find_install_root(override: str | Path | None = None) -> Path:
    """Return the installation directory the updater should manage.

    Precedence: an explicit ``override``, the ``SELFUPDATE_INSTALL_ROOT``
    environment variable, the directory of a frozen executable, and finally
    the current working directory.
    """

    candidate = override or os.environ.get(INSTALL_ROOT_ENV)
    if candidate:
        return Path(candidate).expanduser().resolve()
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path.cwd()


def build_provider(config: UpdaterConfig) -> DescriptorProvider:
    local_dir = os.environ.get(LOCAL_DESCRIPTOR_ENV)
    if local_dir:
        folder = Path(local_dir)
        if folder.exists():
            _LOGGER.info("Using local update source at %s", folder)
            return LocalFolderDescriptorProvider(folder)
        _LOGGER.warning("Configured local update directory does not exist: %s", folder)
    return HttpDescriptorProvider(config.descriptor_url)


def build_console(capabilities: PlatformCapabilities) -> Console:
    return Console(colorize=capabilities.enable_ansi_output())


def build_update_service(
    config: UpdaterConfig,
    *,
    install_root: Path,
    console: Console,
    capabilities: PlatformCapabilities | None = None,
    launcher: Launcher | None = None,
    provider: DescriptorProvider | None = None,
) -> UpdateService:
    """Construct an :class:`UpdateService` wired to the real collaborators."""

    return UpdateService(
        provider or build_provider(config),
        launcher or HelperLauncher(),
        config=config,
        install_root=install_root,
        current_version=get_app_version(),
        console=console,
        capabilities=capabilities or get_platform_capabilities(),
    )


def build_rollback_orchestrator(config: UpdaterConfig, *, install_root: Path) -> RollbackOrchestrator:
    scheduler = get_cleanup_scheduler(config.update_dir(install_root))
    return RollbackOrchestrator(install_root, config, scheduler)


__all__ = [
    "build_console",
    "build_provider",
    "build_rollback_orchestrator",
    "build_update_service",
    "find_install_root",
]
