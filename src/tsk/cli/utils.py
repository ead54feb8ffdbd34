"""Helpers shared by CLI commands: service wiring and error rendering."""

import asyncio
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.markup import escape

from tsk.infrastructure.config import ConfigManager
from tsk.infrastructure.exceptions import TskError
from tsk.infrastructure.logger import setup_logging
from tsk.services.task_service import TaskService

T = TypeVar("T")

# Errors go to stderr; soft_wrap keeps long messages on one line for parsers
err_console = Console(stderr=True, soft_wrap=True)


def get_config_manager(project_root: Path | None = None) -> ConfigManager:
    """Load config for the project and configure logging from it."""
    config_manager = ConfigManager(project_root)
    config = config_manager.load_config()
    setup_logging(log_level=config.log_level, log_file=config.log_file)
    return config_manager


async def open_service(create: bool = False) -> TaskService:
    """Open the task service for the current directory.

    Raises:
        NotInitializedError: If there is no store and create is False
    """
    return await TaskService.open(get_config_manager(), create=create)


def print_error(error: TskError) -> None:
    err_console.print(f"[red]Error:[/red] {error.kind}: {escape(error.message)}")


def run_async(operation: Callable[[], Coroutine[Any, Any, T]]) -> T:
    """Run one command's coroutine, mapping tsk errors to exit code 1."""
    try:
        return asyncio.run(operation())
    except TskError as e:
        print_error(e)
        raise typer.Exit(1) from None
