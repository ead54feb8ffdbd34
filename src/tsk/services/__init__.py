"""Service layer: id generation, validation, status engine, queries and the task facade."""

from tsk.services.dependency_resolver import DependencyResolver
from tsk.services.id_generator import IdGenerator
from tsk.services.status_engine import StatusEngine
from tsk.services.task_query import StatusScope, TaskFilter, TaskQuery
from tsk.services.task_service import TaskDetail, TaskService, validate_id

__all__ = [
    "DependencyResolver",
    "IdGenerator",
    "StatusEngine",
    "StatusScope",
    "TaskDetail",
    "TaskFilter",
    "TaskQuery",
    "TaskService",
    "validate_id",
]
