"""Status transitions with dependency guards."""

from tsk.domain.models import Task, TaskStatus
from tsk.infrastructure.database import StoreTransaction
from tsk.infrastructure.exceptions import DependencyNotSatisfiedError, InvalidTransitionError
from tsk.infrastructure.logger import get_logger
from tsk.services.dependency_resolver import DependencyResolver

logger = get_logger(__name__)


class StatusEngine:
    """Applies start/done to a task within the caller's write transaction."""

    def __init__(self, resolver: DependencyResolver | None = None):
        self.resolver = resolver or DependencyResolver()

    @staticmethod
    def ensure_transition(task: Task, target: TaskStatus) -> None:
        if not task.status.can_transition_to(target):
            raise InvalidTransitionError(task.id, task.status.value, target.value)

    async def start(self, tx: StoreTransaction, task_id: str) -> Task:
        """pending -> in_progress.

        Raises:
            NotFoundError: If the task does not exist
            InvalidTransitionError: If the task is not pending
        """
        task = await tx.get_task(task_id)
        self.ensure_transition(task, TaskStatus.IN_PROGRESS)
        await tx.set_status(task_id, TaskStatus.IN_PROGRESS)
        logger.info("task_started", task_id=task_id)
        return await tx.get_task(task_id)

    async def complete(self, tx: StoreTransaction, task_id: str) -> Task:
        """pending|in_progress -> done, once every dependency is done.

        Raises:
            NotFoundError: If the task does not exist
            InvalidTransitionError: If the task is already done
            DependencyNotSatisfiedError: Listing every unfinished dependency
        """
        task = await tx.get_task(task_id)
        self.ensure_transition(task, TaskStatus.DONE)

        blocking = await self.resolver.unmet_dependencies(tx, task_id)
        if blocking:
            logger.info("task_completion_blocked", task_id=task_id, blocking=blocking)
            raise DependencyNotSatisfiedError(task_id, blocking)

        await tx.set_status(task_id, TaskStatus.DONE)
        logger.info("task_completed", task_id=task_id)
        return await tx.get_task(task_id)
