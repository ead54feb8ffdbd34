"""Core domain models for tsk."""

import re
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Task ids are short opaque tokens: 6 chars of [a-z0-9]
ID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
ID_LENGTH = 6

_ID_PATTERN = re.compile(rf"^[a-z0-9]{{{ID_LENGTH}}}$")


def is_valid_task_id(value: str) -> bool:
    """Return True if value has the shape of a task id."""
    return bool(_ID_PATTERN.match(value))


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    def can_transition_to(self, target: "TaskStatus") -> bool:
        """Check the transition table for self -> target."""
        return target in ALLOWED_TRANSITIONS[self]


# Lifecycle is monotonic: pending -> in_progress -> done, plus pending -> done.
# done is terminal.
ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.DONE}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.DONE}),
    TaskStatus.DONE: frozenset(),
}


class Task(BaseModel):
    """A unit of work tracked by tsk.

    Attributes:
        id: 6-character task identifier, immutable once assigned
        title: Short label shown in listings
        description: Free text, updatable
        status: Current lifecycle state
        parent_id: Optional parent task id (tasks form a tree)
        dependencies: Ids of tasks that must be done before this one, in edge order
        created_at: Creation time (UTC)
        started_at: When the task moved to in_progress
        completed_at: When the task moved to done
        updated_at: Last mutation time
    """

    id: str = Field(pattern=r"^[a-z0-9]{6}$")
    title: str
    description: str = ""
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    parent_id: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(
        # model_dump(mode="json") renders the enum as its value and datetimes as ISO strings
    )


class TaskDependency(BaseModel):
    """Directed edge: task_id cannot be done before depends_on_id is done."""

    task_id: str
    depends_on_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict()
