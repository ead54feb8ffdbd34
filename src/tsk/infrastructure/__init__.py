"""Infrastructure layer for tsk."""

from tsk.infrastructure.config import Config, ConfigManager, StoreConfig
from tsk.infrastructure.database import Database, StoreTransaction
from tsk.infrastructure.logger import get_logger, setup_logging

__all__ = [
    "Config",
    "ConfigManager",
    "Database",
    "StoreConfig",
    "StoreTransaction",
    "get_logger",
    "setup_logging",
]
