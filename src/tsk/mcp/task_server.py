"""MCP server exposing tsk task operations as tools over stdio."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from tsk.domain.models import Task
from tsk.infrastructure.config import ConfigManager
from tsk.infrastructure.exceptions import TskError
from tsk.infrastructure.logger import get_logger
from tsk.services.task_query import StatusScope, TaskFilter
from tsk.services.task_service import TaskService

logger = get_logger(__name__)

_ID_PROPERTY = {"type": "string", "description": "Task ID (6 characters)"}


class ToolArgumentError(Exception):
    """A tool call is missing a parameter or has one of the wrong shape."""


class TaskToolServer:
    """MCP server for a single project's task store.

    Exposes tools for:
    - Project initialization
    - Task creation with parent and dependencies
    - Listing, detail and description updates
    - start/done transitions and removal

    Calls run one at a time in arrival order; the store is opened on first
    use and kept for the life of the process.
    """

    def __init__(self, project_root: Path) -> None:
        """Initialize the server.

        Args:
            project_root: Directory holding (or to hold) the .tsk store
        """
        self.config_manager = ConfigManager(project_root)
        self._service: TaskService | None = None
        self._lock = asyncio.Lock()
        self.server = Server("tsk")
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]] = {
            "init": self._handle_init,
            "create": self._handle_create,
            "list": self._handle_list,
            "show": self._handle_show,
            "update": self._handle_update,
            "start": self._handle_start,
            "done": self._handle_done,
            "remove": self._handle_remove,
        }

        self._register_tools()

    def _register_tools(self) -> None:
        """Register all MCP tools."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            return self.tool_definitions()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            result = await self.call(name, arguments or {})
            return [TextContent(type="text", text=json.dumps(result, default=str))]

    @staticmethod
    def tool_definitions() -> list[Tool]:
        return [
            Tool(
                name="init",
                description="Initialize tsk in the project directory (safe to repeat)",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="create",
                description="Create a new task; returns the task with its generated ID",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "title": {"type": "string", "description": "Task title (short summary)"},
                        "description": {
                            "type": "string",
                            "description": "Task description (detailed info)",
                        },
                        "parent": {"type": "string", "description": "Parent task ID for subtasks"},
                        "depend": {"type": "string", "description": "Dependency task ID"},
                        "depends_on": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Several dependency task IDs",
                        },
                    },
                    "required": ["title", "description"],
                },
            ),
            Tool(
                name="list",
                description="List tasks in creation order (pending and in progress by default)",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "status": {
                            "type": "string",
                            "enum": [scope.value for scope in StatusScope],
                            "description": "Status scope",
                        },
                        "inprogress": {
                            "type": "boolean",
                            "description": "Show in progress tasks only",
                        },
                        "all": {
                            "type": "boolean",
                            "description": "Show all tasks (pending, in progress, done)",
                        },
                        "parent": {"type": "string", "description": "Filter by parent task ID"},
                    },
                },
            ),
            Tool(
                name="show",
                description="Show task details including subtasks",
                inputSchema={
                    "type": "object",
                    "properties": {"id": _ID_PROPERTY},
                    "required": ["id"],
                },
            ),
            Tool(
                name="update",
                description="Replace a task's description",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "id": _ID_PROPERTY,
                        "description": {"type": "string", "description": "New description text"},
                    },
                    "required": ["id", "description"],
                },
            ),
            Tool(
                name="start",
                description="Mark a pending task as in progress",
                inputSchema={
                    "type": "object",
                    "properties": {"id": _ID_PROPERTY},
                    "required": ["id"],
                },
            ),
            Tool(
                name="done",
                description="Mark a task as done; fails while any dependency is unfinished",
                inputSchema={
                    "type": "object",
                    "properties": {"id": _ID_PROPERTY},
                    "required": ["id"],
                },
            ),
            Tool(
                name="remove",
                description="Delete a task; subtasks become top-level",
                inputSchema={
                    "type": "object",
                    "properties": {"id": _ID_PROPERTY},
                    "required": ["id"],
                },
            ),
        ]

    async def call(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Dispatch one tool call and return its JSON-ready result."""
        handler = self._handlers.get(name)
        if handler is None:
            return {"error": "UnknownTool", "message": f"Unknown tool: {name}"}

        async with self._lock:
            try:
                return await handler(arguments)
            except TskError as e:
                logger.info("tool_call_failed", tool=name, kind=e.kind)
                return {"error": e.kind, "message": e.message, "task_ids": e.task_ids}
            except ToolArgumentError as e:
                return {"error": "ValidationError", "message": str(e)}
            except Exception as e:
                logger.exception("tool_call_crashed", tool=name)
                return {"error": "InternalError", "message": str(e)}

    async def _get_service(self) -> TaskService:
        if self._service is None:
            self._service = await TaskService.open(self.config_manager)
        return self._service

    @staticmethod
    def _serialize_task(task: Task) -> dict[str, Any]:
        return task.model_dump(mode="json")

    @staticmethod
    def _require(arguments: dict[str, Any], key: str) -> str:
        value = arguments.get(key)
        if value is None:
            raise ToolArgumentError(f"Missing required parameter: {key}")
        if not isinstance(value, str):
            raise ToolArgumentError(f"Parameter '{key}' must be a string")
        return value

    @staticmethod
    def _optional(arguments: dict[str, Any], key: str) -> str | None:
        value = arguments.get(key)
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            raise ToolArgumentError(f"Parameter '{key}' must be a string")
        return value

    @staticmethod
    def _string_list(arguments: dict[str, Any], key: str) -> list[str]:
        value = arguments.get(key)
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ToolArgumentError(f"Parameter '{key}' must be a list of strings")
        return list(value)

    async def _handle_init(self, arguments: dict[str, Any]) -> dict[str, Any]:
        created = not self.config_manager.is_initialized()
        if self._service is None:
            self._service = await TaskService.open(self.config_manager, create=True)
        return {
            "initialized": True,
            "created": created,
            "path": str(self.config_manager.get_store_dir()),
        }

    async def _handle_create(self, arguments: dict[str, Any]) -> dict[str, Any]:
        title = self._require(arguments, "title")
        description = self._optional(arguments, "description") or ""
        parent_id = self._optional(arguments, "parent")
        depends_on = self._string_list(arguments, "depends_on")
        depend = self._optional(arguments, "depend")
        if depend is not None:
            depends_on.insert(0, depend)

        service = await self._get_service()
        task = await service.create_task(
            title,
            description,
            parent_id=parent_id,
            depends_on=depends_on,
        )
        return {"id": task.id, "task": self._serialize_task(task)}

    async def _handle_list(self, arguments: dict[str, Any]) -> dict[str, Any]:
        if arguments.get("status"):
            try:
                scope = StatusScope(arguments["status"])
            except ValueError:
                valid = ", ".join(s.value for s in StatusScope)
                raise ToolArgumentError(
                    f"Invalid status '{arguments['status']}'. Valid values: {valid}"
                ) from None
        elif arguments.get("all"):
            scope = StatusScope.ALL
        elif arguments.get("inprogress"):
            scope = StatusScope.IN_PROGRESS
        else:
            scope = StatusScope.ACTIVE

        parent_id = self._optional(arguments, "parent")
        service = await self._get_service()
        tasks = await service.list_tasks(TaskFilter(scope=scope, parent_id=parent_id))
        return {"tasks": [self._serialize_task(t) for t in tasks], "count": len(tasks)}

    async def _handle_show(self, arguments: dict[str, Any]) -> dict[str, Any]:
        service = await self._get_service()
        detail = await service.get_task_detail(self._require(arguments, "id"))
        return detail.model_dump(mode="json")

    async def _handle_update(self, arguments: dict[str, Any]) -> dict[str, Any]:
        task_id = self._require(arguments, "id")
        description = self._require(arguments, "description")
        service = await self._get_service()
        task = await service.update_description(task_id, description)
        return {"task": self._serialize_task(task)}

    async def _handle_start(self, arguments: dict[str, Any]) -> dict[str, Any]:
        service = await self._get_service()
        task = await service.start_task(self._require(arguments, "id"))
        return {"task": self._serialize_task(task)}

    async def _handle_done(self, arguments: dict[str, Any]) -> dict[str, Any]:
        service = await self._get_service()
        task = await service.complete_task(self._require(arguments, "id"))
        return {"task": self._serialize_task(task)}

    async def _handle_remove(self, arguments: dict[str, Any]) -> dict[str, Any]:
        service = await self._get_service()
        task = await service.remove_task(self._require(arguments, "id"))
        return {"removed": task.id}

    async def run(self) -> None:
        """Run the MCP server on stdio until the client disconnects."""
        logger.info("tsk_mcp_server_started", project_root=str(self.config_manager.project_root))

        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream, write_stream, self.server.create_initialization_options()
                )
        finally:
            if self._service is not None:
                await self._service.close()
