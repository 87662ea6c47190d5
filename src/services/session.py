import os
import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class OperatorSession:
    """
    Holds the signed-in operator's bearer token.
    Acquiring or refreshing the token belongs to the surrounding app; this object only
    supplies it to requests and hands control back when the backend rejects it.
    """

    def __init__(self, token: Optional[str] = None):
        self._token = token if token is not None else os.environ.get("GATE_API_TOKEN")
        self._unauthorized_handlers: List[Callable[[], None]] = []

    def get_token(self) -> Optional[str]:
        return self._token

    def set_token(self, token: Optional[str]):
        self._token = token.strip() if token else None

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    def on_unauthorized(self, handler: Callable[[], None]):
        if handler not in self._unauthorized_handlers:
            self._unauthorized_handlers.append(handler)

    def remove_unauthorized_handler(self, handler: Callable[[], None]):
        if handler in self._unauthorized_handlers:
            self._unauthorized_handlers.remove(handler)

    def invalidate(self):
        """Drops the token and notifies the app so it can force re-authentication."""
        logger.warning("Operator credential rejected, clearing session")
        self._token = None
        for handler in list(self._unauthorized_handlers):
            try:
                handler()
            except Exception as e:
                logger.error(f"Error in unauthorized handler: {e}")
