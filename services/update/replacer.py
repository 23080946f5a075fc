"""Copy an extracted release over the live installation."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from app.config import UpdaterConfig
from services.update.capabilities import PlatformCapabilities
from services.update.models import FilesystemError, StagedUpdate


_LOGGER = logging.getLogger(__name__)

__all__ = ["InPlaceReplacer", "copy_tree_contents"]


def copy_tree_contents(source_dir: Path, destination_dir: Path, *, skip: tuple[Path, ...] = ()) -> int:
    """Copy files and directories below ``source_dir`` into ``destination_dir``.

    Existing files are overwritten. Paths in ``skip`` are relative to
    ``source_dir``. Returns the number of files copied.
    """

    skipped = {Path(path) for path in skip}
    copied = 0
    destination_dir.mkdir(parents=True, exist_ok=True)
    for source in sorted(source_dir.rglob("*")):
        relative = source.relative_to(source_dir)
        if relative in skipped or any(parent in skipped for parent in relative.parents):
            continue
        target = destination_dir / relative
        if source.is_dir():
            target.mkdir(parents=True, exist_ok=True)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)
        copied += 1
    return copied


class InPlaceReplacer:
    """Apply everything except the running executable, which is staged instead."""

    def __init__(
        self,
        install_root: Path,
        config: UpdaterConfig,
        capabilities: PlatformCapabilities,
    ) -> None:
        self._install_root = Path(install_root)
        self._config = config
        self._capabilities = capabilities

    def apply(self, staged_root: Path) -> StagedUpdate:
        executable_name = self._config.executable_name
        new_executable = staged_root / executable_name
        if not new_executable.is_file():
            raise FilesystemError(f"Update does not contain {executable_name}")

        update_dir = self._config.update_dir(self._install_root)
        staged_executable = self._config.staged_executable_path(self._install_root)
        installer_source = staged_root / self._config.installer_name
        installer_target: Path | None = None
        try:
            copied = copy_tree_contents(
                staged_root,
                self._install_root,
                skip=(Path(executable_name), Path(self._config.update_dir_name)),
            )
            _LOGGER.info("Copied %s support files into %s", copied, self._install_root)

            update_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(new_executable, staged_executable)
            _LOGGER.info("Staged new executable at %s", staged_executable)

            if installer_source.is_file():
                installer_target = update_dir / self._config.installer_name
                shutil.copy2(installer_source, installer_target)
                _LOGGER.info("Staged companion installer at %s", installer_target)
        except OSError as exc:
            raise FilesystemError(f"failed to apply update files: {exc}") from exc

        if not self._capabilities.hide_path(update_dir):
            _LOGGER.debug("Update directory %s left visible", update_dir)

        return StagedUpdate(
            install_root=self._install_root,
            update_dir=update_dir,
            executable=staged_executable,
            installer=installer_target,
        )
