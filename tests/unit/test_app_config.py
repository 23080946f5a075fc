import json

from app.config import (
    UpdaterConfig,
    get_updater_config,
    load_updater_config,
    reset_updater_config_cache,
)


def test_default_config_matches_bundled_resource() -> None:
    config = load_updater_config()

    assert isinstance(config, UpdaterConfig)
    assert config.executable_name == "nvm.exe"
    assert config.update_dir_name == ".update"
    assert config.backup_name == "nvm4w-backup.zip"
    assert config.checksum_algorithm == "md5"
    assert config.retention_days == 7
    assert config.cleanup_task_name == "RemoveNVM4WBackup"
    assert config.pinned_artifact_version is None


def test_load_updater_config_from_custom_path(tmp_path) -> None:
    custom_config = {
        "descriptor_url": "https://example.invalid/descriptor.json",
        "executable_name": "tool.exe",
        "checksum_algorithm": "SHA256",
        "retention_days": 3,
        "poll_interval": "0.25",
        "pinned_artifact_version": "1.1.12",
    }
    config_path = tmp_path / "updater.json"
    config_path.write_text(json.dumps(custom_config), encoding="utf-8")

    config = load_updater_config(config_path)

    assert config.descriptor_url == "https://example.invalid/descriptor.json"
    assert config.executable_name == "tool.exe"
    assert config.checksum_algorithm == "sha256"
    assert config.retention_days == 3
    assert config.poll_interval == 0.25
    assert config.pinned_artifact_version == "1.1.12"
    assert config.staged_executable_path(tmp_path) == tmp_path / ".update" / "tool.exe"


def test_invalid_config_values_fall_back_to_defaults(tmp_path) -> None:
    custom_config = {
        "executable_name": "../escape.exe",
        "update_dir_name": "",
        "retention_days": -1,
        "poll_interval": "nan",
        "cleanup_task_name": 42,
    }
    config_path = tmp_path / "updater.json"
    config_path.write_text(json.dumps(custom_config), encoding="utf-8")

    config = load_updater_config(config_path)

    defaults = UpdaterConfig()
    assert config.executable_name == defaults.executable_name
    assert config.update_dir_name == defaults.update_dir_name
    assert config.retention_days == defaults.retention_days
    assert config.poll_interval == defaults.poll_interval
    assert config.cleanup_task_name == defaults.cleanup_task_name


def test_malformed_config_file_uses_defaults(tmp_path) -> None:
    config_path = tmp_path / "updater.json"
    config_path.write_text("[1, 2", encoding="utf-8")

    assert load_updater_config(config_path) == UpdaterConfig()


def test_get_updater_config_reads_environment_override(tmp_path, monkeypatch) -> None:
    config_path = tmp_path / "updater.json"
    config_path.write_text(json.dumps({"retention_days": 14}), encoding="utf-8")
    monkeypatch.setenv("SELFUPDATE_CONFIG", str(config_path))
    reset_updater_config_cache()

    assert get_updater_config().retention_days == 14
    assert get_updater_config() is get_updater_config()
