"""Dependency and hierarchy validation.

Checks run inside the caller's transaction, before the edge they guard is
written:
- Self edges are rejected outright
- Cycle detection walks outward from the proposed target through store queries
- Unmet dependencies are computed for the status engine
"""

from collections import deque
from collections.abc import Awaitable, Callable

from tsk.domain.models import TaskStatus
from tsk.infrastructure.database import StoreTransaction
from tsk.infrastructure.exceptions import (
    CycleDetectedError,
    DependencyNotSatisfiedError,
    NotFoundError,
    SelfDependencyError,
    SelfParentError,
)
from tsk.infrastructure.logger import get_logger

logger = get_logger(__name__)


class DependencyResolver:
    """Validates parent and dependency edges against the current graph.

    Both relations are stored as edge sets keyed by id. Nothing is cached:
    every traversal reads the store, so concurrent writers are seen as long
    as the caller holds the write lock.
    """

    async def check_dependency(
        self, tx: StoreTransaction, task_id: str, depends_on_id: str
    ) -> None:
        """Validate the edge task_id -> depends_on_id before it is inserted.

        Raises:
            NotFoundError: If either task is missing
            SelfDependencyError: If task_id == depends_on_id
            CycleDetectedError: If depends_on_id already (transitively) depends on task_id
            DependencyNotSatisfiedError: If task_id is done and depends_on_id is not
        """
        if not await tx.task_exists(task_id):
            raise NotFoundError(task_id)
        if not await tx.task_exists(depends_on_id):
            raise NotFoundError(depends_on_id, "Dependency task")
        if task_id == depends_on_id:
            raise SelfDependencyError(task_id)

        path = await self._find_path(depends_on_id, task_id, tx.get_dependencies)
        if path is not None:
            cycle = [task_id, *path]
            logger.info("dependency_cycle_rejected", task_id=task_id, cycle=cycle)
            raise CycleDetectedError("dependency", cycle)

        # A done task may only gain prerequisites that are themselves done
        statuses = await tx.get_statuses([task_id, depends_on_id])
        if statuses[task_id] == TaskStatus.DONE and statuses[depends_on_id] != TaskStatus.DONE:
            raise DependencyNotSatisfiedError(task_id, [depends_on_id])

    async def check_parent(self, tx: StoreTransaction, task_id: str, parent_id: str) -> None:
        """Validate making parent_id the parent of task_id.

        Raises:
            NotFoundError: If either task is missing
            SelfParentError: If task_id == parent_id
            CycleDetectedError: If task_id is an ancestor of parent_id
        """
        if not await tx.task_exists(task_id):
            raise NotFoundError(task_id)
        if not await tx.task_exists(parent_id):
            raise NotFoundError(parent_id, "Parent task")
        if task_id == parent_id:
            raise SelfParentError(task_id)

        # Each task has at most one parent, so the ancestor walk is a chain
        chain = [parent_id]
        seen = {parent_id}
        current = await tx.get_parent_id(parent_id)
        while current is not None and current not in seen:
            chain.append(current)
            if current == task_id:
                cycle = [task_id, *chain]
                logger.info("parent_cycle_rejected", task_id=task_id, cycle=cycle)
                raise CycleDetectedError("parent", cycle)
            seen.add(current)
            current = await tx.get_parent_id(current)

    async def unmet_dependencies(self, tx: StoreTransaction, task_id: str) -> list[str]:
        """Ids of the task's dependencies that are not done, in edge order."""
        dependency_ids = await tx.get_dependencies(task_id)
        if not dependency_ids:
            return []
        statuses = await tx.get_statuses(dependency_ids)
        return [
            dep_id
            for dep_id in dependency_ids
            if statuses.get(dep_id) != TaskStatus.DONE
        ]

    async def _find_path(
        self,
        start: str,
        goal: str,
        neighbours: Callable[[str], Awaitable[list[str]]],
    ) -> list[str] | None:
        """Breadth-first search from start to goal.

        Returns:
            The path start -> ... -> goal, or None if goal is unreachable
        """
        came_from: dict[str, str | None] = {start: None}
        queue: deque[str] = deque([start])

        while queue:
            node = queue.popleft()
            if node == goal:
                path = [node]
                prev = came_from[node]
                while prev is not None:
                    path.append(prev)
                    prev = came_from[prev]
                path.reverse()
                return path
            for nxt in await neighbours(node):
                if nxt not in came_from:
                    came_from[nxt] = node
                    queue.append(nxt)

        return None
