import re
import logging
from typing import List, Optional

from src.core.models import Admitted, BulkAdmitted, Denied, DenialKind, Ticket, VerificationOutcome
from src.services.gate_api import ApiReply, GateApiError, GateNetworkError, GateUnauthorizedError

logger = logging.getLogger(__name__)

# Business-rule rejections come back as 409 with a message prefix
WRONG_EVENT_PREFIX = "WRONG EVENT"
ALREADY_USED_PREFIX = "ALREADY USED"
INVALID_PREFIX = "INVALID"
NOT_FOUND_TEXT = "not found"

_QUOTED_NAME = re.compile(r"'([^']*)'")


def _wrong_event_name(message: str) -> Optional[str]:
    m = _QUOTED_NAME.search(message)
    return m.group(1) if m else None


def _after_colon(message: str) -> Optional[str]:
    if ':' not in message:
        return None
    return message.split(':', 1)[1].strip() or None


def classify_denial(status_code: int, message: Optional[str], active_event_name: Optional[str] = None) -> Denied:
    """Maps a non-2xx status and backend error text to a denial kind."""
    text = (message or "").strip()
    upper = text.upper()

    if status_code in (401, 403):
        return Denied(DenialKind.UNAUTHORIZED, text or "Session expired. Please sign in again.")

    if status_code >= 500:
        return Denied(DenialKind.SERVER_ERROR, text or f"Server error ({status_code})")

    if status_code == 404:
        return Denied(DenialKind.NOT_FOUND, text or "Ticket not found")

    if upper.startswith(WRONG_EVENT_PREFIX):
        return Denied(
            DenialKind.WRONG_EVENT,
            text,
            ticket_event_name=_wrong_event_name(text),
            active_event_name=active_event_name,
        )

    if upper.startswith(ALREADY_USED_PREFIX) or "ALREADY CHECKED IN" in upper:
        return Denied(DenialKind.ALREADY_CHECKED_IN, text, detail=_after_colon(text))

    if NOT_FOUND_TEXT in text.lower():
        return Denied(DenialKind.NOT_FOUND, text)

    if upper.startswith(INVALID_PREFIX):
        return Denied(DenialKind.INVALID_IDENTIFIER, text, detail=_after_colon(text))

    # 400/409/422 without a recognised prefix
    return Denied(DenialKind.INVALID_IDENTIFIER, text or "Invalid Ticket")


def classify_checkin(reply: ApiReply, ticket_id: Optional[str] = None, active_event_name: Optional[str] = None) -> VerificationOutcome:
    if reply.ok:
        data = reply.payload.get('data') if isinstance(reply.payload, dict) else None
        data = dict(data) if isinstance(data, dict) else {}
        if data.get('id') is None:
            # A 2xx without a ticket body still means the backend marked it
            logger.warning(f"Check-in succeeded without ticket payload: {reply.payload}")
            data['id'] = ticket_id or "unknown"
        return Admitted(ticket=Ticket(**data))

    return classify_denial(reply.status_code, reply.error, active_event_name)


def classify_bulk(reply: ApiReply, ticket_ids: List[str]) -> VerificationOutcome:
    if reply.ok:
        message = reply.payload.get('message') if isinstance(reply.payload, dict) else None
        return BulkAdmitted(ticket_ids=list(ticket_ids), message=message or f"Checked in {len(ticket_ids)} guests!")

    return classify_denial(reply.status_code, reply.error)


def classify_exception(exc: Exception) -> Denied:
    if isinstance(exc, GateNetworkError):
        return Denied(DenialKind.NETWORK_ERROR, "Network unavailable. Check connection and try again.", detail=exc.message)
    if isinstance(exc, GateUnauthorizedError):
        return Denied(DenialKind.UNAUTHORIZED, exc.message)
    if isinstance(exc, GateApiError):
        return classify_denial(exc.status_code or 500, exc.message)
    return Denied(DenialKind.SERVER_ERROR, f"Unexpected error: {exc}")
