import logging
from typing import Optional

logger = logging.getLogger(__name__)


class ScanGuard:
    """
    Single-flight lock for check-in requests.

    Each successful acquire opens a new scanning episode and returns its token.
    Work started under a token must check `is_current(token)` before applying a
    result; a forced release (screen lost focus, context change) invalidates it.
    """

    def __init__(self):
        self._held = False
        self._episode = 0

    @property
    def held(self) -> bool:
        return self._held

    @property
    def episode(self) -> int:
        return self._episode

    def try_acquire(self) -> Optional[int]:
        if self._held:
            return None
        self._held = True
        self._episode += 1
        return self._episode

    def is_current(self, token: Optional[int]) -> bool:
        return token is not None and self._held and token == self._episode

    def release(self, token: Optional[int] = None) -> bool:
        """
        Releases the lock. Idempotent. With a token, only the matching episode
        is released so a late acknowledgement cannot free a newer scan.
        """
        if not self._held:
            return False
        if token is not None and token != self._episode:
            return False
        self._held = False
        return True

    def force_release(self):
        """Releases regardless of owner and retires the current episode."""
        if self._held:
            logger.info(f"Scan lock force-released (episode {self._episode})")
        self._held = False
        # Bump so any in-flight result tagged with the old token is discarded
        self._episode += 1
