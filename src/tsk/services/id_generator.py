"""Task identifier generation."""

import secrets
from collections.abc import Awaitable, Callable

from tsk.domain.models import ID_ALPHABET, ID_LENGTH
from tsk.infrastructure.exceptions import StoreExhaustedError
from tsk.infrastructure.logger import get_logger

logger = get_logger(__name__)


class IdGenerator:
    """Draws random 6-character ids and claims them through a reserve callback.

    The callback records the id in the store's issued-id ledger and returns
    False if it was ever issued, in which case a fresh id is drawn.
    """

    def __init__(self, max_attempts: int = 100, choice: Callable[[str], str] = secrets.choice):
        self.max_attempts = max_attempts
        self._choice = choice

    def draw(self) -> str:
        return "".join(self._choice(ID_ALPHABET) for _ in range(ID_LENGTH))

    async def generate(self, reserve: Callable[[str], Awaitable[bool]]) -> str:
        """Return a never-before-issued id.

        Raises:
            StoreExhaustedError: If every attempt collided
        """
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.draw()
            if await reserve(candidate):
                return candidate
            logger.debug("id_collision", candidate=candidate, attempt=attempt)

        logger.error("id_space_exhausted", attempts=self.max_attempts)
        raise StoreExhaustedError(self.max_attempts)
