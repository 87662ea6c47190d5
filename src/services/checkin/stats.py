import time
import logging
from typing import Optional, Callable

from src.core import config_manager
from src.core.models import DashboardStats, EventStat
from src.services.gate_api import GateApiService, GateUnauthorizedError

logger = logging.getLogger(__name__)


def remaining(stat: Optional[EventStat]) -> int:
    """Guests sold but not yet admitted."""
    if stat is None:
        return 0
    return max(0, stat.sold - stat.scanned)


def attendance_rate(stat: Optional[EventStat]) -> float:
    if stat is None or stat.sold <= 0:
        return 0.0
    return stat.scanned / stat.sold


class CapacityStats:
    """
    Read-through cache of the server's sold/scanned counters.
    Counts are never adjusted locally; every value shown is the last one the server reported.
    """

    def __init__(self, api: GateApiService, refresh_interval: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.api = api
        self.refresh_interval = refresh_interval if refresh_interval is not None else config_manager.get_stats_refresh_interval()
        self._clock = clock
        self.snapshot: Optional[DashboardStats] = None
        self.last_refresh: Optional[float] = None
        self.dirty = False # A check-in happened since the last refresh

    def get_event(self, event_id: Optional[int]) -> Optional[EventStat]:
        if self.snapshot is None or event_id is None:
            return None
        return self.snapshot.get_event(event_id)

    async def load(self) -> DashboardStats:
        """Fetches the full dashboard. Errors propagate so the event picker can report them."""
        self.snapshot = await self.api.fetch_stats()
        self.last_refresh = self._clock()
        self.dirty = False
        return self.snapshot

    async def refresh(self, event_id: Optional[int] = None) -> Optional[EventStat]:
        """
        Best-effort refresh after a terminal outcome. Failures are logged and the
        previous snapshot kept; admission decisions never depend on these numbers.
        Credential rejections propagate.
        """
        try:
            await self.load()
        except GateUnauthorizedError:
            raise
        except Exception as e:
            logger.warning(f"Stats refresh failed for event {event_id}: {e}")
        return self.get_event(event_id)

    def mark_dirty(self):
        self.dirty = True

    def is_stale(self) -> bool:
        if self.dirty or self.last_refresh is None:
            return True
        return (self._clock() - self.last_refresh) >= self.refresh_interval

    async def refresh_if_stale(self, event_id: Optional[int] = None) -> Optional[EventStat]:
        """Focus-regain refresh, throttled to one per interval unless a check-in happened."""
        if not self.is_stale():
            logger.debug("Skipping stats refresh, snapshot is fresh")
            return self.get_event(event_id)
        return await self.refresh(event_id)
