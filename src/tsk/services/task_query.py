"""Task listing: status scopes, parent filter, creation order."""

from enum import Enum

from pydantic import BaseModel, Field

from tsk.domain.models import Task, TaskStatus
from tsk.infrastructure.database import StoreTransaction
from tsk.infrastructure.exceptions import NotFoundError


class StatusScope(str, Enum):
    """Which statuses a listing includes."""

    ACTIVE = "active"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ALL = "all"

    def statuses(self) -> list[TaskStatus]:
        if self == StatusScope.ACTIVE:
            return [TaskStatus.PENDING, TaskStatus.IN_PROGRESS]
        if self == StatusScope.ALL:
            return list(TaskStatus)
        return [TaskStatus(self.value)]


class TaskFilter(BaseModel):
    """Filter for task listings.

    The default scope hides done tasks. parent_id restricts the result to
    direct children of that task.
    """

    scope: StatusScope = Field(default=StatusScope.ACTIVE)
    parent_id: str | None = None

    def build_where_clause(self) -> tuple[str, list[str]]:
        """Build SQL WHERE condition (without 'WHERE') and its parameters."""
        where_clauses = []
        params: list[str] = []

        if self.scope != StatusScope.ALL:
            statuses = self.scope.statuses()
            status_placeholders = ",".join("?" * len(statuses))
            where_clauses.append(f"status IN ({status_placeholders})")
            params.extend(status.value for status in statuses)

        if self.parent_id is not None:
            where_clauses.append("parent_id = ?")
            params.append(self.parent_id)

        return (" AND ".join(where_clauses), params)


class TaskQuery:
    """Runs TaskFilter against the store."""

    async def list(self, tx: StoreTransaction, task_filter: TaskFilter | None = None) -> list[Task]:
        """List tasks matching the filter, oldest first.

        Raises:
            NotFoundError: If parent_id is set and that task does not exist
        """
        task_filter = task_filter or TaskFilter()
        if task_filter.parent_id is not None and not await tx.task_exists(task_filter.parent_id):
            raise NotFoundError(task_filter.parent_id, "Parent task")

        where_sql, params = task_filter.build_where_clause()
        return await tx.select_tasks(where_sql, list(params))
