import logging
from typing import Callable, List, Optional

from src.core import config_manager
from src.core.models import (
    CaptureOrigin, Denied, DenialKind, ScanCandidate, VerificationOutcome, is_admitted
)
from src.services.gate_api import GateApiError, GateApiService, GateUnauthorizedError
from src.services.session import OperatorSession
from src.services.checkin.classifier import classify_bulk, classify_checkin, classify_exception
from src.services.checkin.guard import ScanGuard
from src.services.checkin.stats import CapacityStats

logger = logging.getLogger(__name__)

# Characters that would change the meaning of the check-in URL
FORBIDDEN_ID_CHARS = set('/?#%')


def normalize_identifier(text: Optional[str]) -> str:
    return (text or "").strip()


def validate_identifier(text: str, min_length: int = 1) -> Optional[Denied]:
    """Local syntax check. Returns a denial for input that must never reach the network."""
    if not text:
        return Denied(DenialKind.VALIDATION, "Please enter a ticket ID.")
    if len(text) < min_length:
        return Denied(DenialKind.VALIDATION, f"Ticket ID must be at least {min_length} characters.")
    if any(c.isspace() or c in FORBIDDEN_ID_CHARS for c in text):
        return Denied(DenialKind.VALIDATION, "Ticket ID contains invalid characters.")
    return None


class VerificationEngine:
    """
    Runs check-ins against the backend under the single-flight guard.

    The guard stays held after a terminal outcome until `acknowledge()` is called,
    so the operator always sees a result before the next scan is accepted.
    """

    def __init__(self, api: GateApiService, guard: ScanGuard, stats: CapacityStats,
                 session: Optional[OperatorSession] = None, min_identifier_length: Optional[int] = None):
        self.api = api
        self.guard = guard
        self.stats = stats
        self.session = session
        self.min_identifier_length = min_identifier_length or config_manager.get_min_identifier_length()

        self.current_token: Optional[int] = None
        self.last_outcome: Optional[VerificationOutcome] = None

        # Called synchronously once a candidate owns the guard
        self.on_accept: Optional[Callable[[ScanCandidate], None]] = None

    @property
    def busy(self) -> bool:
        return self.guard.held

    def _accept(self, candidate: ScanCandidate) -> Optional[int]:
        token = self.guard.try_acquire()
        if token is None:
            logger.debug(f"Dropping {candidate.origin.value} candidate, verification in flight")
            return None

        self.current_token = token
        self.last_outcome = None
        if self.on_accept:
            self.on_accept(candidate)
        return token

    async def verify(self, candidate: ScanCandidate, active_event_id: int,
                     active_event_name: Optional[str] = None) -> Optional[VerificationOutcome]:
        """
        Verifies one candidate. Returns the outcome, a local validation denial,
        or None when the candidate was dropped (guard busy) or its result went stale.
        """
        ticket_id = normalize_identifier(candidate.text)
        invalid = validate_identifier(ticket_id, self.min_identifier_length)
        if invalid:
            logger.info(f"Rejected {candidate.origin.value} input locally: {invalid.message}")
            return invalid

        token = self._accept(candidate)
        if token is None:
            return None

        logger.info(f"Verifying ticket {ticket_id} for event {active_event_id} ({candidate.origin.value})")
        try:
            reply = await self.api.check_in(ticket_id, active_event_id)
            outcome = classify_checkin(reply, ticket_id, active_event_name)
        except GateApiError as e:
            outcome = classify_exception(e)
        except Exception as e:
            logger.error(f"Unexpected error verifying ticket {ticket_id}: {e}")
            outcome = classify_exception(e)

        return await self._finish(token, outcome, active_event_id)

    async def verify_batch(self, ticket_ids: List[str], active_event_id: int) -> Optional[VerificationOutcome]:
        """Bulk variant: one request for the whole selection, one aggregate outcome."""
        ids = [normalize_identifier(t) for t in ticket_ids]
        if not ids:
            return Denied(DenialKind.VALIDATION, "No tickets selected.")
        for t in ids:
            invalid = validate_identifier(t, self.min_identifier_length)
            if invalid:
                return invalid

        token = self._accept(ScanCandidate(text=",".join(ids), origin=CaptureOrigin.BULK))
        if token is None:
            return None

        logger.info(f"Bulk check-in of {len(ids)} tickets for event {active_event_id}")
        try:
            reply = await self.api.bulk_check_in(ids)
            outcome = classify_bulk(reply, ids)
        except GateApiError as e:
            outcome = classify_exception(e)
        except Exception as e:
            logger.error(f"Unexpected error in bulk check-in: {e}")
            outcome = classify_exception(e)

        return await self._finish(token, outcome, active_event_id)

    async def _finish(self, token: int, outcome: VerificationOutcome, event_id: int) -> Optional[VerificationOutcome]:
        if not self.guard.is_current(token):
            logger.info(f"Discarding stale outcome for episode {token}: {outcome}")
            return None

        if isinstance(outcome, Denied) and outcome.kind == DenialKind.UNAUTHORIZED:
            # Fatal for this screen: free the lock now, there is nothing to retry
            logger.error(f"Check-in rejected credential: {outcome.message}")
            self.guard.release(token)
            self.current_token = None
            self.last_outcome = outcome
            if self.session:
                self.session.invalidate()
            return outcome

        if is_admitted(outcome):
            logger.info(f"Admitted: {outcome}")
        else:
            logger.info(f"Denied ({outcome.kind.value}): {outcome.message}")

        self.stats.mark_dirty()
        credential_lost = False
        try:
            await self.stats.refresh(event_id)
        except GateUnauthorizedError as e:
            logger.error(f"Stats refresh rejected credential: {e}")
            credential_lost = True

        if not self.guard.is_current(token):
            logger.info(f"Screen released during stats refresh, discarding outcome for episode {token}")
            return None

        self.last_outcome = outcome
        if credential_lost:
            # The check-in already happened; hand off only after the outcome is settled
            self.guard.release(token)
            self.current_token = None
            if self.session:
                self.session.invalidate()
        return outcome

    def acknowledge(self) -> bool:
        """Operator dismissed the result; re-arms scanning."""
        if self.current_token is None:
            self.last_outcome = None
            return False
        released = self.guard.release(self.current_token)
        self.current_token = None
        self.last_outcome = None
        return released
