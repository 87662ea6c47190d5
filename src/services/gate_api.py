import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests
from nicegui import run

from src.core import config_manager
from src.core.models import DashboardStats, Ticket

logger = logging.getLogger(__name__)


class GateApiError(Exception):
    def __init__(self, status_code: Optional[int], message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class GateUnauthorizedError(GateApiError):
    pass


class GateNetworkError(GateApiError):
    def __init__(self, message: str):
        super().__init__(None, message)


@dataclass
class ApiReply:
    status_code: int
    payload: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def error(self) -> Optional[str]:
        if isinstance(self.payload, dict):
            return self.payload.get('error')
        return None


def _payload(response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"error": response.text} if response.text else {}


class GateApiService:
    """Thin client for the admission endpoints. Every call carries the operator's bearer token."""

    def __init__(self, token_provider: Callable[[], Optional[str]], base_url: Optional[str] = None, timeout: Optional[float] = None):
        self._token_provider = token_provider
        self.base_url = (base_url or config_manager.get_api_base_url()).rstrip('/')
        self.timeout = timeout if timeout is not None else config_manager.get_request_timeout()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _send(self, method: str, path: str, **kwargs) -> ApiReply:
        url = f"{self.base_url}{path}"
        kwargs.setdefault('timeout', self.timeout)
        kwargs['headers'] = self._headers()

        try:
            try:
                response = await run.io_bound(requests.request, method, url, **kwargs)
            except RuntimeError:
                # Fallback for environments without a running NiceGUI app
                response = await asyncio.to_thread(requests.request, method, url, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {e}")
            raise GateNetworkError(str(e)) from e

        return ApiReply(response.status_code, _payload(response))

    def _raise_for_reply(self, reply: ApiReply, action: str):
        if reply.ok:
            return
        message = reply.error or f"{action} failed ({reply.status_code})"
        if reply.status_code in (401, 403):
            raise GateUnauthorizedError(reply.status_code, message)
        raise GateApiError(reply.status_code, message)

    async def fetch_stats(self) -> DashboardStats:
        """GET /admin/stats. Drives the event picker and the capacity counters."""
        reply = await self._send("GET", "/admin/stats")
        self._raise_for_reply(reply, "Stats")
        return DashboardStats(**(reply.payload or {}))

    async def check_in(self, ticket_id: str, event_id: int) -> ApiReply:
        """
        PATCH /tickets/{id}/checkin?event_id=...
        Returns the raw reply; classification happens in the check-in classifier.
        """
        return await self._send("PATCH", f"/tickets/{ticket_id}/checkin", params={"event_id": event_id}, json={})

    async def lookup_tickets(self, email: str) -> List[Ticket]:
        """GET /admin/tickets/lookup?email=... returns the holder's unscanned tickets across all events."""
        reply = await self._send("GET", "/admin/tickets/lookup", params={"email": email})
        self._raise_for_reply(reply, "Lookup")
        return [Ticket(**t) for t in (reply.payload or [])]

    async def bulk_check_in(self, ticket_ids: List[str]) -> ApiReply:
        """POST /admin/tickets/bulk-checkin with the whole selection in one request."""
        return await self._send("POST", "/admin/tickets/bulk-checkin", json={"ticket_ids": list(ticket_ids)})
