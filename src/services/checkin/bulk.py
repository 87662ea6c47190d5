import logging
from typing import List, Optional, Set

from src.core.models import Denied, DenialKind, Ticket, VerificationOutcome
from src.services.gate_api import GateApiService
from src.services.checkin.context import EventContext
from src.services.checkin.engine import VerificationEngine

logger = logging.getLogger(__name__)


def validate_email(email: Optional[str]) -> str:
    email = (email or "").strip()
    if not email:
        raise ValueError("Please enter the guest's email.")
    if '@' not in email or email.startswith('@') or email.endswith('@'):
        raise ValueError(f"'{email}' is not a valid email address.")
    return email


class BulkCheckin:
    """
    Email lookup plus multi-select check-in for the active event.
    Selection toggling is local; only lookup and submit touch the network.
    """

    def __init__(self, api: GateApiService, engine: VerificationEngine, context: EventContext):
        self.api = api
        self.engine = engine
        self.context = context

        self.email: Optional[str] = None
        self.results: List[Ticket] = []
        self.selection: Set[str] = set()
        self._lookup_event_id: Optional[int] = None

    @property
    def can_submit(self) -> bool:
        return bool(self.selection) and self._lookup_event_id == self.context.active_event_id

    def reset(self):
        self.email = None
        self.results = []
        self.selection = set()
        self._lookup_event_id = None

    async def lookup(self, email: str) -> List[Ticket]:
        """
        Returns the holder's unscanned tickets for the active event only.
        An empty list is a normal answer. Re-running a lookup clears the selection.
        """
        email = validate_email(email)
        event_id = self.context.active_event_id
        if event_id is None:
            raise ValueError("Select an event before looking up guests.")

        self.selection = set()
        tickets = await self.api.lookup_tickets(email)

        if self.context.active_event_id != event_id:
            logger.info(f"Event changed during lookup for {email}, discarding results")
            return []

        self.email = email
        self.results = [t for t in tickets if t.event_id == event_id and not t.is_checked_in]
        self._lookup_event_id = event_id
        logger.info(f"Lookup {email}: {len(self.results)} of {len(tickets)} tickets usable for event {event_id}")
        return self.results

    def toggle(self, ticket_id: str) -> bool:
        """Flips selection for a ticket from the current results. Returns the new state."""
        ticket_id = str(ticket_id)
        if not any(t.id == ticket_id for t in self.results):
            logger.warning(f"Ignoring toggle for {ticket_id}, not in lookup results")
            return False

        if ticket_id in self.selection:
            self.selection.discard(ticket_id)
            return False
        self.selection.add(ticket_id)
        return True

    def select_all(self):
        self.selection = {t.id for t in self.results}

    def is_selected(self, ticket_id: str) -> bool:
        return str(ticket_id) in self.selection

    async def submit(self) -> Optional[VerificationOutcome]:
        """
        Submits the selection in one request. On any response the selection and results
        are cleared. Returns None if the guard was busy (selection kept) or the result went stale.
        """
        if not self.can_submit:
            return Denied(DenialKind.VALIDATION, "No tickets selected.")

        event_id = self.context.active_event_id
        ordered = [t.id for t in self.results if t.id in self.selection]

        outcome = await self.engine.verify_batch(ordered, event_id)
        if outcome is None:
            return None

        self.reset()
        return outcome
