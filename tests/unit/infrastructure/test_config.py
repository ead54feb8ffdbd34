"""Unit tests for configuration management."""

from pathlib import Path

import pytest
import yaml
from tsk.infrastructure.config import Config, ConfigManager, StoreConfig


class TestConfig:
    """Tests for Config model."""

    def test_default_config(self) -> None:
        config = Config()

        assert config.log_level == "WARNING"
        assert config.log_file is None
        assert config.store.busy_timeout_ms == 5000
        assert config.store.id_max_attempts == 100

    def test_custom_config_values(self) -> None:
        config = Config(log_level="DEBUG", store=StoreConfig(busy_timeout_ms=250))

        assert config.log_level == "DEBUG"
        assert config.store.busy_timeout_ms == 250
        assert config.store.id_max_attempts == 100


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_store_paths(self, tmp_path: Path) -> None:
        manager = ConfigManager(tmp_path)

        assert manager.get_store_dir() == tmp_path / ".tsk"
        assert manager.get_database_path() == tmp_path / ".tsk" / "tsk.sqlite"
        assert not manager.is_initialized()
        # Locating the store must not create it
        assert not manager.get_store_dir().exists()

    def test_initialized_when_store_file_exists(self, tmp_path: Path) -> None:
        manager = ConfigManager(tmp_path)
        manager.get_store_dir().mkdir()
        manager.get_database_path().touch()

        assert manager.is_initialized()

    def test_project_config_overrides_user_config(
        self, tmp_path: Path, isolated_environment: Path
    ) -> None:
        user_dir = isolated_environment / ".tsk"
        user_dir.mkdir()
        (user_dir / "config.yaml").write_text(
            yaml.safe_dump({"log_level": "INFO", "store": {"busy_timeout_ms": 100}})
        )
        project_dir = tmp_path / "proj"
        (project_dir / ".tsk").mkdir(parents=True)
        (project_dir / ".tsk" / "config.yaml").write_text(
            yaml.safe_dump({"store": {"busy_timeout_ms": 900}})
        )

        config = ConfigManager(project_dir).load_config()

        assert config.log_level == "INFO"
        assert config.store.busy_timeout_ms == 900
        assert config.store.id_max_attempts == 100

    def test_env_vars_win(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / ".tsk").mkdir()
        (tmp_path / ".tsk" / "config.yaml").write_text(yaml.safe_dump({"log_level": "INFO"}))
        monkeypatch.setenv("TSK_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("TSK_BUSY_TIMEOUT_MS", "42")
        monkeypatch.setenv("TSK_ID_MAX_ATTEMPTS", "7")

        config = ConfigManager(tmp_path).load_config()

        assert config.log_level == "DEBUG"
        assert config.store.busy_timeout_ms == 42
        assert config.store.id_max_attempts == 7

    def test_merge_dicts_is_recursive(self, tmp_path: Path) -> None:
        manager = ConfigManager(tmp_path)
        merged = manager._merge_dicts(
            {"store": {"busy_timeout_ms": 1, "id_max_attempts": 2}, "log_level": "INFO"},
            {"store": {"busy_timeout_ms": 3}},
        )

        assert merged == {"store": {"busy_timeout_ms": 3, "id_max_attempts": 2}, "log_level": "INFO"}

    def test_empty_yaml_file_is_ignored(self, tmp_path: Path) -> None:
        (tmp_path / ".tsk").mkdir()
        (tmp_path / ".tsk" / "config.yaml").write_text("")

        assert ConfigManager(tmp_path).load_config() == Config()
