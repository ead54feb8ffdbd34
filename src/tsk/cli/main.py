"""tsk CLI - local task tracking for humans and coding agents."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console

from tsk import __version__
from tsk.cli.formatter import format_task_detail, format_task_line, format_task_tree
from tsk.cli.utils import get_config_manager, open_service, run_async
from tsk.domain.models import Task
from tsk.services.agent_rules import install_agent_rules, parse_rules_arg
from tsk.services.task_query import StatusScope, TaskFilter
from tsk.services.task_service import TaskService

app = typer.Typer(
    name="tsk",
    help="Local task tracker with parent/child hierarchy and dependencies",
    no_args_is_help=True,
)

# Contract output (ids, task lines) goes through typer.echo; Rich is for views
console = Console()


def _echo_task(task: Task) -> None:
    typer.echo(format_task_line(task))


# ===== Version =====
@app.command()
def version() -> None:
    """Show tsk version."""
    typer.echo(f"tsk {__version__}")


# ===== Project =====
@app.command()
def init(
    rules: str | None = typer.Option(
        None,
        "--rules",
        help="Install agent rules: claude, copilot, cursor, windsurf or all (comma-separated)",
    ),
) -> None:
    """Initialize tsk in the current directory.

    Examples:
        tsk init
        tsk init --rules claude,cursor
    """
    config_manager = get_config_manager()
    already_initialized = config_manager.is_initialized()

    async def _init() -> None:
        service = await TaskService.open(config_manager, create=True)
        await service.close()

    run_async(_init)

    if not already_initialized:
        typer.echo(f"Initialized tsk in {config_manager.get_store_dir()}")

    if rules is None:
        if already_initialized:
            typer.echo("Already initialized. Use --rules to add agent rules.")
        return

    agents = parse_rules_arg(rules)
    if not agents:
        raise typer.BadParameter(
            f"No known agents in '{rules}'. Choose from claude, copilot, cursor, windsurf, all.",
            param_hint="--rules",
        )

    for result in install_agent_rules(config_manager.project_root, agents):
        path = result.path.relative_to(config_manager.project_root)
        typer.echo(f"  {result.action.value}: {path}")
    typer.echo("Agent rules installed.")


# ===== Tasks =====
@app.command()
def create(
    title: str = typer.Argument(..., help="Short task title"),
    description: str = typer.Argument("", help="Task description"),
    parent: str | None = typer.Option(None, "--parent", "-p", help="Parent task ID"),
    depend: list[str] | None = typer.Option(  # noqa: B008
        None, "--depend", "-d", help="ID of a task this one depends on (repeatable)"
    ),
) -> None:
    """Create a task and print its ID.

    Examples:
        tsk create "User Auth" "Login and signup"
        tsk create "Login form" "" --parent abc123
        tsk create "Validation" "" --parent abc123 --depend def456
    """

    async def _create() -> Task:
        service = await open_service()
        return await service.create_task(title, description, parent_id=parent, depends_on=depend or [])

    task = run_async(_create)
    typer.echo(task.id)


@app.command("list")
def list_tasks(
    pending: bool = typer.Option(False, "--pending", help="Only pending tasks"),
    inprogress: bool = typer.Option(False, "--inprogress", help="Only in-progress tasks"),
    done: bool = typer.Option(False, "--done", help="Only done tasks"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Include done tasks"),
    status: StatusScope | None = typer.Option(None, "--status", help="Status scope"),
    parent: str | None = typer.Option(None, "--parent", "-p", help="Only direct children of this task"),
    tree: bool = typer.Option(False, "--tree", help="Show the parent/child hierarchy"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List tasks in creation order (pending and in-progress by default)."""
    flags = {
        StatusScope.PENDING: pending,
        StatusScope.IN_PROGRESS: inprogress,
        StatusScope.DONE: done,
        StatusScope.ALL: show_all,
    }
    chosen = [scope for scope, enabled in flags.items() if enabled]
    if status is not None:
        chosen.append(status)
    if len(chosen) > 1:
        raise typer.BadParameter("Choose at most one status filter.")
    scope = chosen[0] if chosen else StatusScope.ACTIVE

    async def _list() -> list[Task]:
        service = await open_service()
        return await service.list_tasks(TaskFilter(scope=scope, parent_id=parent))

    tasks = run_async(_list)

    if as_json:
        typer.echo(json.dumps([task.model_dump(mode="json") for task in tasks], indent=2))
    elif tree:
        console.print(format_task_tree(tasks))
    else:
        for task in tasks:
            _echo_task(task)


@app.command()
def show(
    task_id: str = typer.Argument(..., help="Task ID"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Show full details of a task, including its subtasks."""

    async def _show():
        service = await open_service()
        return await service.get_task_detail(task_id)

    detail = run_async(_show)

    if as_json:
        typer.echo(json.dumps(detail.model_dump(mode="json"), indent=2))
    else:
        typer.echo(format_task_detail(detail.task, detail.children))


@app.command()
def update(
    task_id: str = typer.Argument(..., help="Task ID"),
    description: str = typer.Argument(..., help="New description"),
) -> None:
    """Replace a task's description."""

    async def _update() -> Task:
        service = await open_service()
        return await service.update_description(task_id, description)

    _echo_task(run_async(_update))


@app.command()
def start(task_id: str = typer.Argument(..., help="Task ID")) -> None:
    """Mark a pending task as in progress."""

    async def _start() -> Task:
        service = await open_service()
        return await service.start_task(task_id)

    _echo_task(run_async(_start))


@app.command("done")
def done_task(task_id: str = typer.Argument(..., help="Task ID")) -> None:
    """Mark a task as done (all of its dependencies must be done)."""

    async def _done() -> Task:
        service = await open_service()
        return await service.complete_task(task_id)

    _echo_task(run_async(_done))


@app.command()
def remove(task_id: str = typer.Argument(..., help="Task ID")) -> None:
    """Delete a task. Its subtasks become top-level; dependents lose the dependency."""

    async def _remove() -> Task:
        service = await open_service()
        return await service.remove_task(task_id)

    task = run_async(_remove)
    typer.echo(f"Removed: {task.id}")


@app.command()
def depend(
    task_id: str = typer.Argument(..., help="Task ID"),
    depends_on: str = typer.Argument(..., help="ID of the task it depends on"),
) -> None:
    """Make a task depend on another task."""

    async def _depend() -> Task:
        service = await open_service()
        return await service.add_dependency(task_id, depends_on)

    _echo_task(run_async(_depend))


@app.command()
def parent(
    task_id: str = typer.Argument(..., help="Task ID"),
    parent_id: str | None = typer.Argument(None, help="New parent task ID"),
    clear: bool = typer.Option(False, "--clear", help="Detach the task from its parent"),
) -> None:
    """Set or clear a task's parent."""
    if clear == (parent_id is not None):
        raise typer.BadParameter("Give either a PARENT_ID or --clear.")

    async def _parent() -> Task:
        service = await open_service()
        return await service.set_parent(task_id, None if clear else parent_id)

    _echo_task(run_async(_parent))


@app.command()
def ids() -> None:
    """Print every task ID in creation order (nothing if not initialized)."""
    config_manager = get_config_manager()
    if not config_manager.is_initialized():
        return

    async def _ids() -> list[str]:
        service = await TaskService.open(config_manager)
        return await service.list_ids()

    for task_id in run_async(_ids):
        typer.echo(task_id)


# ===== MCP =====
@app.command()
def mcp() -> None:
    """Run the MCP server on stdio for IDE and agent integrations."""
    from tsk.mcp.task_server import TaskToolServer

    get_config_manager()
    asyncio.run(TaskToolServer(Path.cwd()).run())


if __name__ == "__main__":
    app()
