"""Task operations shared by the CLI and the MCP server.

Each public method is one logical operation: it validates id arguments, then
runs validation and mutation inside a single store transaction so a failure
leaves nothing written.

Usage:
    service = await TaskService.open(ConfigManager(project_root))
    parent = await service.create_task("User Auth", "")
    child = await service.create_task("Login form", "", parent_id=parent.id)
    await service.start_task(child.id)
    await service.complete_task(child.id)
"""

from pydantic import BaseModel, Field

from tsk.domain.models import Task, is_valid_task_id
from tsk.infrastructure.config import ConfigManager
from tsk.infrastructure.database import Database
from tsk.infrastructure.exceptions import InvalidIdError, NotFoundError, NotInitializedError
from tsk.infrastructure.logger import get_logger
from tsk.services.dependency_resolver import DependencyResolver
from tsk.services.id_generator import IdGenerator
from tsk.services.status_engine import StatusEngine
from tsk.services.task_query import TaskFilter, TaskQuery

logger = get_logger(__name__)


def validate_id(task_id: str) -> str:
    """Return task_id unchanged, or raise InvalidIdError."""
    if not is_valid_task_id(task_id):
        raise InvalidIdError(task_id)
    return task_id


class TaskDetail(BaseModel):
    """A task together with its direct children, for detail views."""

    task: Task
    children: list[Task] = Field(default_factory=list)


class TaskService:
    """Library facade over the store, validator, status engine and query engine."""

    def __init__(
        self,
        database: Database,
        id_generator: IdGenerator | None = None,
        resolver: DependencyResolver | None = None,
    ):
        self.db = database
        self.id_generator = id_generator or IdGenerator()
        self.resolver = resolver or DependencyResolver()
        self.status_engine = StatusEngine(self.resolver)
        self.query = TaskQuery()

    @classmethod
    async def open(cls, config_manager: ConfigManager, create: bool = False) -> "TaskService":
        """Open the project's store.

        Args:
            config_manager: Locates the store and supplies store settings
            create: Create the store if missing (init); otherwise require it

        Raises:
            NotInitializedError: If the store is missing and create is False
        """
        if not create and not config_manager.is_initialized():
            raise NotInitializedError()

        config = config_manager.load_config()
        database = Database(
            config_manager.get_database_path(),
            busy_timeout_ms=config.store.busy_timeout_ms,
        )
        await database.initialize()
        return cls(database, IdGenerator(max_attempts=config.store.id_max_attempts))

    async def create_task(
        self,
        title: str,
        description: str = "",
        parent_id: str | None = None,
        depends_on: list[str] | None = None,
    ) -> Task:
        """Create a pending task with an optional parent and dependencies.

        Raises:
            InvalidIdError: If parent_id or a dependency id is malformed
            NotFoundError: If the parent or a dependency does not exist
            StoreExhaustedError: If no unused id could be drawn
        """
        if parent_id is not None:
            validate_id(parent_id)
        dependency_ids = list(dict.fromkeys(validate_id(dep) for dep in depends_on or []))

        async with self.db.transaction() as tx:
            if parent_id is not None and not await tx.task_exists(parent_id):
                raise NotFoundError(parent_id, "Parent task")
            for dep_id in dependency_ids:
                if not await tx.task_exists(dep_id):
                    raise NotFoundError(dep_id, "Dependency task")

            task_id = await self.id_generator.generate(tx.reserve_id)
            await tx.insert_task(task_id, title, description, parent_id)
            for dep_id in dependency_ids:
                await self.resolver.check_dependency(tx, task_id, dep_id)
                await tx.add_dependency(task_id, dep_id)
            task = await tx.get_task(task_id)

        logger.info(
            "task_created",
            task_id=task.id,
            parent_id=parent_id,
            dependencies=dependency_ids,
        )
        return task

    async def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        if task_filter is not None and task_filter.parent_id is not None:
            validate_id(task_filter.parent_id)
        async with self.db.transaction(write=False) as tx:
            return await self.query.list(tx, task_filter)

    async def get_task(self, task_id: str) -> Task:
        validate_id(task_id)
        async with self.db.transaction(write=False) as tx:
            return await tx.get_task(task_id)

    async def get_task_detail(self, task_id: str) -> TaskDetail:
        """Task plus its direct children (any status), read in one snapshot."""
        validate_id(task_id)
        async with self.db.transaction(write=False) as tx:
            task = await tx.get_task(task_id)
            children = await tx.select_tasks("parent_id = ?", [task_id])
        return TaskDetail(task=task, children=children)

    async def update_description(self, task_id: str, description: str) -> Task:
        validate_id(task_id)
        async with self.db.transaction() as tx:
            task = await tx.update_description(task_id, description)
        logger.info("task_updated", task_id=task_id)
        return task

    async def start_task(self, task_id: str) -> Task:
        validate_id(task_id)
        async with self.db.transaction() as tx:
            return await self.status_engine.start(tx, task_id)

    async def complete_task(self, task_id: str) -> Task:
        validate_id(task_id)
        async with self.db.transaction() as tx:
            return await self.status_engine.complete(tx, task_id)

    async def remove_task(self, task_id: str) -> Task:
        """Delete a task and every edge touching it; children become roots.

        Tasks that depended on the removed one simply lose that dependency.

        Returns:
            The task as it was before removal
        """
        validate_id(task_id)
        async with self.db.transaction() as tx:
            task = await tx.get_task(task_id)
            orphaned = await tx.get_children_ids(task_id)
            dependents = await tx.get_dependents(task_id)
            await tx.delete_task(task_id)

        logger.info(
            "task_removed",
            task_id=task_id,
            orphaned_children=orphaned,
            released_dependents=dependents,
        )
        return task

    async def add_dependency(self, task_id: str, depends_on_id: str) -> Task:
        """Make task_id depend on depends_on_id. Re-adding an edge is a no-op.

        Raises:
            NotFoundError, SelfDependencyError, CycleDetectedError
        """
        validate_id(task_id)
        validate_id(depends_on_id)
        async with self.db.transaction() as tx:
            await self.resolver.check_dependency(tx, task_id, depends_on_id)
            added = await tx.add_dependency(task_id, depends_on_id)
            task = await tx.get_task(task_id)

        if added:
            logger.info("dependency_added", task_id=task_id, depends_on_id=depends_on_id)
        return task

    async def set_parent(self, task_id: str, parent_id: str | None) -> Task:
        """Re-parent task_id, or make it a root when parent_id is None.

        Raises:
            NotFoundError, SelfParentError, CycleDetectedError
        """
        validate_id(task_id)
        if parent_id is not None:
            validate_id(parent_id)
        async with self.db.transaction() as tx:
            if parent_id is not None:
                await self.resolver.check_parent(tx, task_id, parent_id)
            await tx.set_parent(task_id, parent_id)
            task = await tx.get_task(task_id)

        logger.info("parent_set", task_id=task_id, parent_id=parent_id)
        return task

    async def list_ids(self) -> list[str]:
        async with self.db.transaction(write=False) as tx:
            return await tx.list_ids()

    async def close(self) -> None:
        await self.db.close()
