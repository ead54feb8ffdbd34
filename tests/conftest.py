"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from tsk.infrastructure.database import Database
from tsk.infrastructure.logger import setup_logging
from tsk.services.task_service import TaskService

_TSK_ENV_VARS = ("TSK_LOG_LEVEL", "TSK_LOG_FILE", "TSK_BUSY_TIMEOUT_MS", "TSK_ID_MAX_ATTEMPTS")


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME at an empty directory and clear TSK_* overrides."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    for var in _TSK_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    setup_logging("WARNING")
    return home


# Database fixtures
@pytest.fixture
async def memory_db() -> AsyncGenerator[Database, None]:
    """Create in-memory database for fast tests."""
    db = Database(Path(":memory:"))
    await db.initialize()
    yield db
    # Cleanup: close the shared connection for :memory: databases
    await db.close()


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Store path inside a fresh project directory."""
    return tmp_path / ".tsk" / "tsk.sqlite"


@pytest.fixture
async def file_db(temp_db_path: Path) -> AsyncGenerator[Database, None]:
    """Create file-based database for persistence tests."""
    db = Database(temp_db_path)
    await db.initialize()
    yield db


@pytest.fixture
async def service(memory_db: Database) -> TaskService:
    """TaskService over an in-memory store."""
    return TaskService(memory_db)


@pytest.fixture
def project_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Empty project directory set as the working directory."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    return project
