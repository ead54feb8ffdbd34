"""Configuration management with hierarchical loading."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from tsk.infrastructure.logger import get_logger

logger = get_logger(__name__)

STORE_DIR_NAME = ".tsk"
STORE_FILE_NAME = "tsk.sqlite"


class StoreConfig(BaseModel):
    """Store configuration."""

    busy_timeout_ms: int = Field(default=5000, ge=0)
    id_max_attempts: int = Field(default=100, ge=1)


class Config(BaseModel):
    """Main configuration model."""

    version: str = "0.1.0"
    log_level: str = "WARNING"
    log_file: Path | None = None
    store: StoreConfig = Field(default_factory=StoreConfig)


class ConfigManager:
    """Manage configuration loading from multiple sources with hierarchy."""

    def __init__(self, project_root: Path | None = None) -> None:
        """Initialize config manager.

        Args:
            project_root: Root directory of the project (default: current directory)
        """
        self.project_root = project_root or Path.cwd()
        self._config: Config | None = None

    def load_config(self) -> Config:
        """Load configuration from all sources in hierarchy order.

        Configuration hierarchy (highest priority last):
        1. System defaults (embedded in Config model)
        2. User overrides (~/.tsk/config.yaml)
        3. Project overrides (.tsk/config.yaml)
        4. Environment variables (TSK_* prefix)

        Returns:
            Merged configuration
        """
        if self._config is not None:
            return self._config

        config_dict: dict[str, Any] = {}

        user_config_path = Path.home() / STORE_DIR_NAME / "config.yaml"
        if user_config_path.exists():
            config_dict = self._merge_dicts(config_dict, self._load_yaml(user_config_path))

        project_config_path = self.get_store_dir() / "config.yaml"
        if project_config_path.exists():
            config_dict = self._merge_dicts(config_dict, self._load_yaml(project_config_path))

        config_dict = self._apply_env_vars(config_dict)

        self._config = Config(**config_dict)
        return self._config

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        """Load YAML configuration file."""
        with open(path) as f:
            return yaml.safe_load(f) or {}

    def _merge_dicts(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_dicts(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_vars(self, config_dict: dict[str, Any]) -> dict[str, Any]:
        """Apply environment variables with TSK_ prefix."""
        env_mappings = {
            "TSK_LOG_LEVEL": ["log_level"],
            "TSK_LOG_FILE": ["log_file"],
            "TSK_BUSY_TIMEOUT_MS": ["store", "busy_timeout_ms"],
            "TSK_ID_MAX_ATTEMPTS": ["store", "id_max_attempts"],
        }

        for env_var, path in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                current = config_dict
                for key in path[:-1]:
                    if key not in current:
                        current[key] = {}
                    current = current[key]
                try:
                    current[path[-1]] = int(value)
                except ValueError:
                    current[path[-1]] = value

        return config_dict

    def get_store_dir(self) -> Path:
        """Get path to the project-local .tsk directory."""
        return self.project_root / STORE_DIR_NAME

    def get_database_path(self) -> Path:
        """Get path to SQLite store file (not created here)."""
        return self.get_store_dir() / STORE_FILE_NAME

    def is_initialized(self) -> bool:
        """Presence of the store file is what marks a project initialized."""
        return self.get_database_path().exists()
