"""Domain models for tsk."""

from tsk.domain.models import (
    ALLOWED_TRANSITIONS,
    ID_ALPHABET,
    ID_LENGTH,
    Task,
    TaskDependency,
    TaskStatus,
    is_valid_task_id,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ID_ALPHABET",
    "ID_LENGTH",
    "Task",
    "TaskDependency",
    "TaskStatus",
    "is_valid_task_id",
]
