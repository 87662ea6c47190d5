import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from src.core import config_manager
from src.core.geometry import accepts, target_rect
from src.core.models import (
    CaptureOrigin, Denied, DenialKind, EventStat, Rect, ScanCandidate, ScreenState,
    Ticket, VerificationOutcome
)
from src.services.gate_api import GateApiService, GateUnauthorizedError
from src.services.session import OperatorSession
from src.services.checkin.bulk import BulkCheckin
from src.services.checkin.context import ContextLockedError, EventContext
from src.services.checkin.engine import VerificationEngine
from src.services.checkin.guard import ScanGuard
from src.services.checkin.stats import CapacityStats

logger = logging.getLogger(__name__)


@dataclass
class GateEvent:
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


class CheckinManager:
    """
    One gate screen: event binding, camera candidate pipeline, manual and bulk paths,
    result acknowledgement and capacity counters, all sharing one scan guard.
    """

    def __init__(self, api: Optional[GateApiService] = None, session: Optional[OperatorSession] = None,
                 stats: Optional[CapacityStats] = None):
        self.session = session or OperatorSession()
        self.api = api or GateApiService(self.session.get_token)

        self.guard = ScanGuard()
        self.stats = stats or CapacityStats(self.api)
        self.context = EventContext(self.guard)
        self.engine = VerificationEngine(self.api, self.guard, self.stats, self.session)
        self.engine.on_accept = self._on_accept
        self.bulk = BulkCheckin(self.api, self.engine, self.context)

        self.state = ScreenState.IDLE
        self.camera_active = False
        self.focused = True
        self.pending_outcome: Optional[VerificationOutcome] = None
        self.target: Optional[Rect] = None

        self._modal_return_state = ScreenState.READY
        self._listeners: List[Callable[[GateEvent], None]] = []

        self.session.on_unauthorized(self._on_unauthorized)

    # --- Listeners ------------------------------------------------------

    def register_listener(self, callback: Callable[[GateEvent], None]):
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unregister_listener(self, callback: Callable[[GateEvent], None]):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, event_type: str, **data):
        event = GateEvent(event_type, data)
        for cb in list(self._listeners):
            try:
                cb(event)
            except Exception as e:
                logger.error(f"Error in gate listener: {e}")

    def _set_state(self, state: ScreenState):
        if state != self.state:
            logger.debug(f"Gate state {self.state.value} -> {state.value}")
            self.state = state
            self._emit('state_changed', state=state.value)

    def get_status(self) -> str:
        return self.state.value

    # --- Events & stats -------------------------------------------------

    @property
    def active_event(self) -> Optional[EventStat]:
        # Prefer the freshest counters over the list the picker was built from
        return self.stats.get_event(self.context.active_event_id) or self.context.active_event

    @property
    def can_change_event(self) -> bool:
        return self.context.can_change and self.state != ScreenState.VERIFYING

    async def load_events(self) -> List[EventStat]:
        try:
            snapshot = await self.stats.load()
        except GateUnauthorizedError:
            self.session.invalidate()
            raise
        self.context.set_events(snapshot.events)
        if not self.context.is_bound and self.state != ScreenState.IDLE:
            self._reset_to_idle()
        self._emit('stats_updated')
        return self.context.events

    async def select_event(self, event_id: int) -> EventStat:
        """Binds the gate to an event. Refused while a verification holds the guard."""
        if self.state == ScreenState.VERIFYING:
            raise ContextLockedError("Finish the current verification before switching events.")

        # Result dialogs hold the guard until acknowledged; switching counts as dismissing them
        if self.state == ScreenState.RESULT_SHOWN:
            self.acknowledge()

        event = self.context.select(event_id)
        self.bulk.reset()
        self.guard.force_release()
        self.pending_outcome = None
        self.camera_active = False
        self._set_state(ScreenState.READY)
        config_manager.set_last_event_id(event.event_id)
        self._emit('event_selected', event_id=event.event_id)

        await self.refresh_stats()
        return event

    def clear_event(self):
        if self.state == ScreenState.VERIFYING:
            raise ContextLockedError("Finish the current verification before switching events.")
        self._reset_to_idle()

    def _reset_to_idle(self):
        self.guard.force_release()
        self.bulk.reset()
        self.pending_outcome = None
        self.engine.current_token = None
        self.camera_active = False
        self.context.clear()
        self._set_state(ScreenState.IDLE)

    async def refresh_stats(self) -> Optional[EventStat]:
        try:
            stat = await self.stats.refresh(self.context.active_event_id)
        except GateUnauthorizedError:
            self.session.invalidate()
            return None
        self._emit('stats_updated')
        return stat

    # --- Camera ---------------------------------------------------------

    def set_frame(self, frame_width: float, inset_top: float = 0):
        region = config_manager.get_target_region()
        self.target = target_rect(frame_width, region['size'], region['top_offset'], inset_top)

    def start_camera(self) -> bool:
        if not self.context.is_bound:
            logger.warning("Cannot start camera without an active event")
            return False
        if self.state not in (ScreenState.READY, ScreenState.SCANNING):
            return False
        self.camera_active = True
        self._set_state(ScreenState.SCANNING)
        return True

    def stop_camera(self):
        self.camera_active = False
        if self.state == ScreenState.SCANNING:
            self._set_state(ScreenState.READY)

    async def handle_candidate(self, candidate: ScanCandidate) -> Optional[VerificationOutcome]:
        """
        Entry point for every candidate. Camera candidates are gated by the camera state
        and target region; all of them go through the engine's guard. Dropped candidates
        return None and leave no trace.
        """
        if not self.context.is_bound or not self.focused:
            return None

        if candidate.origin == CaptureOrigin.CAMERA:
            if not self.camera_active or self.state != ScreenState.SCANNING:
                return None
            if not accepts(candidate, self.target):
                logger.debug(f"Ignoring candidate outside target region: {candidate.bounds}")
                return None

        if self.guard.held:
            logger.debug(f"Dropping {candidate.origin.value} candidate, guard held")
            return None

        event = self.context.active_event
        outcome = await self.engine.verify(candidate, self.context.active_event_id,
                                           event.event_name if event else None)

        if (candidate.origin == CaptureOrigin.CAMERA and isinstance(outcome, Denied)
                and outcome.kind == DenialKind.VALIDATION):
            # Unusable QR payloads stay in frame and repeat every detector tick
            logger.debug(f"Ignoring camera candidate that is not a ticket ID: {candidate.text!r}")
            return None
        return self._apply(outcome)

    # --- Manual entry ---------------------------------------------------

    def open_manual(self) -> bool:
        return self._open_modal(ScreenState.MANUAL_ENTRY)

    async def submit_manual(self, text: str) -> Optional[VerificationOutcome]:
        return await self.handle_candidate(ScanCandidate(text=text or "", origin=CaptureOrigin.MANUAL))

    # --- Bulk -----------------------------------------------------------

    def open_bulk(self) -> bool:
        return self._open_modal(ScreenState.BULK_LOOKUP)

    async def lookup(self, email: str) -> List[Ticket]:
        try:
            return await self.bulk.lookup(email)
        except GateUnauthorizedError:
            self.session.invalidate()
            raise

    def toggle_ticket(self, ticket_id: str) -> bool:
        return self.bulk.toggle(ticket_id)

    async def submit_bulk(self) -> Optional[VerificationOutcome]:
        if not self.context.is_bound or not self.focused:
            return None
        outcome = await self.bulk.submit()
        return self._apply(outcome)

    def _open_modal(self, state: ScreenState) -> bool:
        if self.state not in (ScreenState.READY, ScreenState.SCANNING):
            return False
        self._modal_return_state = self.state
        self._set_state(state)
        return True

    def close_modal(self):
        if self.state in (ScreenState.MANUAL_ENTRY, ScreenState.BULK_LOOKUP):
            self._set_state(self._return_state())

    def _return_state(self) -> ScreenState:
        if not self.context.is_bound:
            return ScreenState.IDLE
        return ScreenState.SCANNING if self.camera_active else ScreenState.READY

    # --- Outcomes -------------------------------------------------------

    def _on_accept(self, candidate: ScanCandidate):
        self._set_state(ScreenState.VERIFYING)
        self._emit('verification_started', origin=candidate.origin.value)

    def _apply(self, outcome: Optional[VerificationOutcome]) -> Optional[VerificationOutcome]:
        if outcome is None:
            return None

        if isinstance(outcome, Denied) and outcome.kind == DenialKind.VALIDATION:
            # Re-prompt; nothing was sent and the guard was never taken
            self._emit('validation_error', message=outcome.message)
            return outcome

        if (isinstance(outcome, Denied) and outcome.kind == DenialKind.UNAUTHORIZED) or not self.context.is_bound:
            # The session callback already reset the screen; still show what happened
            self._emit('outcome', outcome=outcome)
            return outcome

        self.pending_outcome = outcome
        self._set_state(ScreenState.RESULT_SHOWN)
        self._emit('outcome', outcome=outcome)
        self._emit('stats_updated')
        return outcome

    def acknowledge(self):
        """Operator dismissed the result. Releases the guard and resumes scanning."""
        if self.state != ScreenState.RESULT_SHOWN:
            return
        self.engine.acknowledge()
        self.pending_outcome = None
        self._set_state(self._return_state())

    def _on_unauthorized(self):
        self._reset_to_idle()
        self._emit('unauthorized')

    # --- Focus ----------------------------------------------------------

    def suspend(self):
        """
        Screen lost focus: stop taking candidates, release the guard and make sure
        any request still in flight is discarded when it returns.
        """
        self.focused = False
        self.camera_active = False
        self.guard.force_release()
        self.engine.current_token = None
        self.pending_outcome = None
        self.bulk.reset()
        self._set_state(ScreenState.READY if self.context.is_bound else ScreenState.IDLE)

    async def resume(self):
        self.focused = True
        if self.context.is_bound:
            try:
                await self.stats.refresh_if_stale(self.context.active_event_id)
            except GateUnauthorizedError:
                self.session.invalidate()
                return
            self._emit('stats_updated')

    def dispose(self):
        self.suspend()
        self.session.remove_unauthorized_handler(self._on_unauthorized)
        self._listeners.clear()
