from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_project_root_on_path()


@pytest.fixture(autouse=True)
def _isolated_updater_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep log files, config overrides and install roots away from real user data."""

    from app.config import reset_updater_config_cache
    from app.version import get_app_version
    from shared import logging_config

    log_dir = tmp_path_factory.mktemp("logs")
    monkeypatch.setenv("SELFUPDATE_LOG_DIR", str(log_dir))
    monkeypatch.delenv("SELFUPDATE_LOG_FILE", raising=False)
    monkeypatch.delenv("SELFUPDATE_CONFIG", raising=False)
    monkeypatch.delenv("SELFUPDATE_INSTALL_ROOT", raising=False)
    monkeypatch.delenv("SELFUPDATE_LOCAL_DIR", raising=False)
    monkeypatch.delenv("SELFUPDATE_APP_VERSION", raising=False)
    reset_updater_config_cache()
    get_app_version.cache_clear()  # type: ignore[attr-defined]
    logging_config._reset_for_tests()

    yield

    logging_config._reset_for_tests()
    reset_updater_config_cache()
    get_app_version.cache_clear()  # type: ignore[attr-defined]
