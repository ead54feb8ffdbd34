"""Exception hierarchy for tsk.

Every error carries a ``kind`` (the name reported to CLI and MCP callers) and
the task ids it concerns, so front ends can render them without parsing text.
"""

from collections.abc import Iterable


class TskError(Exception):
    """Base exception for all tsk errors."""

    kind = "TskError"

    def __init__(self, message: str, task_ids: Iterable[str] = ()):
        super().__init__(message)
        self.task_ids = list(task_ids)

    @property
    def message(self) -> str:
        return str(self.args[0])


class NotInitializedError(TskError):
    """No store file exists for the project."""

    kind = "NotInitialized"

    def __init__(self, message: str = "Project not initialized. Run 'tsk init' first."):
        super().__init__(message)


class InvalidIdError(TskError):
    """A task id argument is not 6 characters of [a-z0-9]."""

    kind = "InvalidId"

    def __init__(self, task_id: str):
        super().__init__(
            f"Invalid task ID '{task_id}'. Must be 6 characters [a-z0-9].", [task_id]
        )


class NotFoundError(TskError):
    """Referenced task does not exist."""

    kind = "NotFound"

    def __init__(self, task_id: str, role: str = "Task"):
        super().__init__(f"{role} '{task_id}' not found.", [task_id])
        self.role = role


class SelfDependencyError(TskError):
    """A task was asked to depend on itself."""

    kind = "SelfDependency"

    def __init__(self, task_id: str):
        super().__init__(f"Task '{task_id}' cannot depend on itself.", [task_id])


class SelfParentError(TskError):
    """A task was asked to be its own parent."""

    kind = "SelfParent"

    def __init__(self, task_id: str):
        super().__init__(f"Task '{task_id}' cannot be its own parent.", [task_id])


class CycleDetectedError(TskError):
    """Adding an edge would close a cycle in the parent or dependency graph.

    Attributes:
        relation: "dependency" or "parent"
        cycle: Ids along the cycle, first id repeated at the end
    """

    kind = "CycleDetected"

    def __init__(self, relation: str, cycle: list[str]):
        path = " -> ".join(cycle)
        super().__init__(f"Adding this {relation} would create a cycle: {path}", cycle[:-1])
        self.relation = relation
        self.cycle = cycle


class InvalidTransitionError(TskError):
    """Status change not permitted from the current state."""

    kind = "InvalidTransition"

    def __init__(self, task_id: str, current: str, target: str):
        if current == "in_progress":
            detail = f"Task '{task_id}' is already in progress"
        elif current == "done":
            detail = f"Task '{task_id}' is already done"
        else:
            detail = f"Task '{task_id}' is {current}"
        super().__init__(f"{detail}; cannot move {current} -> {target}.", [task_id])
        self.current = current
        self.target = target


class DependencyNotSatisfiedError(TskError):
    """done requested while one or more dependencies are not done."""

    kind = "DependencyNotSatisfied"

    def __init__(self, task_id: str, blocking_ids: list[str]):
        super().__init__(
            f"Cannot complete '{task_id}': depends on unfinished task(s) "
            f"{', '.join(blocking_ids)}",
            blocking_ids,
        )
        self.task_id = task_id
        self.blocking_ids = blocking_ids


class StoreBusyError(TskError):
    """Another writer holds the store lock; retry later."""

    kind = "StoreBusy"

    def __init__(self, detail: str):
        super().__init__(
            f"Store is locked by another process ({detail}). Try again in a moment."
        )


class StoreExhaustedError(TskError):
    """Could not draw an unused id within the retry cap."""

    kind = "StoreExhausted"

    def __init__(self, attempts: int):
        super().__init__(f"Failed to generate unique ID after {attempts} attempts")
        self.attempts = attempts


class StoreCorruptError(TskError):
    """The store file is unreadable or not a tsk database."""

    kind = "StoreCorrupt"

    def __init__(self, path: str, detail: str):
        super().__init__(f"Cannot read store '{path}': {detail}")
        self.path = path
