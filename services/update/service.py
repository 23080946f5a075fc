"""Service responsible for discovering, staging and handing off updates."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable

from app.config import UpdaterConfig
from services.update.archive import extract_archive
from services.update.backup import BackupManager
from services.update.capabilities import PlatformCapabilities
from services.update.console import Console
from services.update.constants import EXTRACTED_DIR_NAME, HELPER_LOG_NAME, VERSION_SUBCOMMAND
from services.update.hashing import read_checksum_record, verify_artifact
from services.update.installers import Launcher
from services.update.models import PendingReplacement, UpdateError, UpgradeOutcome
from services.update.providers import DescriptorProvider
from services.update.release_assets import ArtifactDownloader
from services.update.replacer import InPlaceReplacer
from services.update.rollback import VersionQuery, query_executable_version
from services.update.scheduler import run_due_cleanup
from services.update.versioning import VersionGate


_LOGGER = logging.getLogger(__name__)


class UpdateService:
    """Coordinate the upgrade pipeline in the main process."""

    def __init__(
        self,
        provider: DescriptorProvider,
        launcher: Launcher,
        *,
        config: UpdaterConfig,
        install_root: Path,
        current_version: str,
        console: Console,
        capabilities: PlatformCapabilities,
        version_query: VersionQuery = query_executable_version,
        pid_provider: Callable[[], int] = os.getpid,
    ) -> None:
        self._provider = provider
        self._launcher = launcher
        self._config = config
        self._install_root = Path(install_root)
        self._current_version = current_version
        self._console = console
        self._capabilities = capabilities
        self._version_query = version_query
        self._pid_provider = pid_provider

    def upgrade(self, *, verbose: bool = False) -> UpgradeOutcome:
        """Run the upgrade pipeline, launching the helper when files were staged."""

        update_dir = self._config.update_dir(self._install_root)
        if run_due_cleanup(update_dir):
            _LOGGER.info("Expired backup directory %s removed", update_dir)

        descriptor = self._provider.fetch()
        check = VersionGate(self._console).evaluate(self._current_version, descriptor)
        if not check.upgrade_available:
            self._console.info(f"{Path(self._config.executable_name).stem} is up to date")
            return UpgradeOutcome(check=check)

        self._console.info()
        self._console.info(
            f"upgrading from v{check.current_version}-->{self._console.highlight(check.target_version)}"
        )
        self._console.info()
        self._console.info("downloading...")

        artifact_version = self._artifact_version(check.target_version)
        workspace = Path(tempfile.mkdtemp(prefix="selfupdate-upgrade-"))
        backup_staging = Path(tempfile.mkdtemp(prefix="selfupdate-backup-"))
        try:
            downloader = ArtifactDownloader(
                workspace,
                checksum_suffix=self._config.checksum_suffix,
                announce=self._console.info,
            )
            artifact = downloader.download_primary(
                descriptor.source_url_template, artifact_version
            )

            self._console.info("verifying checksum...")
            record = read_checksum_record(artifact.sidecar_path, artifact.archive_path)
            verify_artifact(record, self._config.checksum_algorithm)

            self._console.info("extracting update...")
            extracted = extract_archive(artifact.archive_path, workspace / EXTRACTED_DIR_NAME)

            if descriptor.assets:
                self._console.info(f"downloading {len(descriptor.assets)} additional assets...")
                downloader.download_assets(
                    descriptor.assets, descriptor.source_url_template, extracted
                )

            new_executable = extracted / self._config.executable_name
            if verbose:
                self._console.tree(workspace, "downloaded files (extracted):")
                self._report_version(new_executable)

            self._console.info("applying update...")
            backup = BackupManager(self._install_root, self._config).create_backup(backup_staging)
            staged = InPlaceReplacer(
                self._install_root, self._config, self._capabilities
            ).apply(extracted)

            if verbose:
                self._report_version(staged.executable)
                self._console.tree(self._install_root, "final directory contents:")
        finally:
            shutil.rmtree(workspace, ignore_errors=True)
            shutil.rmtree(backup_staging, ignore_errors=True)

        replacement = PendingReplacement(
            parent_pid=self._pid_provider(),
            staged_executable=staged.executable,
            live_executable=self._install_root / self._config.executable_name,
            update_dir=staged.update_dir,
            log_path=self._install_root / HELPER_LOG_NAME,
            cleanup_task_name=self._config.cleanup_task_name,
            retention_days=self._config.retention_days,
            poll_interval=self._config.poll_interval,
        )
        outcome = UpgradeOutcome(check=check, staged=staged, backup=backup)
        self._launcher.launch(replacement)
        return outcome

    def _artifact_version(self, target_version: str) -> str:
        pinned = self._config.pinned_artifact_version
        if pinned is None:
            return target_version
        if pinned != target_version:
            _LOGGER.warning(
                "Downloading pinned artifact version %s although the descriptor advertises %s",
                pinned,
                target_version,
            )
        return pinned

    def _report_version(self, executable: Path) -> None:
        try:
            output = self._version_query([str(executable), VERSION_SUBCOMMAND])
        except UpdateError as exc:
            self._console.info(f"error running {executable.name}: {exc}")
            return
        self._console.info(output)
