from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Backend payloads -------------------------------------------------------

class EventStat(BaseModel):
    event_id: int
    event_name: str
    revenue: float = 0.0
    sold: int = 0
    scanned: int = 0
    venue: Optional[str] = None


class DashboardStats(BaseModel):
    total_revenue: float = 0.0
    total_sold: int = 0
    total_scanned: int = 0
    events: List[EventStat] = Field(default_factory=list)

    def get_event(self, event_id: int) -> Optional[EventStat]:
        for e in self.events:
            if e.event_id == event_id:
                return e
        return None


class TicketEvent(BaseModel):
    model_config = ConfigDict(extra='allow')

    id: Optional[int] = None
    name: str = "Unknown Event"
    venue: Optional[str] = None


class Ticket(BaseModel):
    """Gate-side projection of a ticket. The backend owns the real record."""
    model_config = ConfigDict(extra='allow')

    id: str
    category: Optional[str] = None
    event_id: Optional[int] = None
    event: Optional[TicketEvent] = None
    email: Optional[str] = None
    checked_in_at: Optional[str] = None

    @field_validator('id', mode='before')
    @classmethod
    def _coerce_id(cls, v):
        # The backend serialises numeric primary keys
        return str(v) if v is not None else v

    @property
    def is_checked_in(self) -> bool:
        return self.checked_in_at is not None

    @property
    def event_name(self) -> str:
        return self.event.name if self.event else "Unknown Event"


# --- Capture ----------------------------------------------------------------

class CaptureOrigin(str, Enum):
    CAMERA = "camera"
    MANUAL = "manual"
    BULK = "bulk"


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height


@dataclass(frozen=True)
class ScanCandidate:
    text: str
    origin: CaptureOrigin = CaptureOrigin.CAMERA
    bounds: Optional[Rect] = None # Only camera candidates carry a region


# --- Outcomes ---------------------------------------------------------------

class DenialKind(str, Enum):
    VALIDATION = "validation_error"
    ALREADY_CHECKED_IN = "already_checked_in"
    WRONG_EVENT = "wrong_event"
    NOT_FOUND = "not_found"
    INVALID_IDENTIFIER = "invalid_identifier"
    UNAUTHORIZED = "unauthorized"
    NETWORK_ERROR = "network_error"
    SERVER_ERROR = "server_error"


RETRYABLE_KINDS = {DenialKind.NETWORK_ERROR, DenialKind.SERVER_ERROR}


@dataclass(frozen=True)
class Admitted:
    ticket: Ticket
    message: str = "Guest Verified"


@dataclass(frozen=True)
class BulkAdmitted:
    ticket_ids: List[str] = field(default_factory=list)
    message: str = ""

    @property
    def count(self) -> int:
        return len(self.ticket_ids)


@dataclass(frozen=True)
class Denied:
    kind: DenialKind
    message: str
    detail: Optional[str] = None
    ticket_event_name: Optional[str] = None
    active_event_name: Optional[str] = None

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


VerificationOutcome = Union[Admitted, BulkAdmitted, Denied]


def is_admitted(outcome: VerificationOutcome) -> bool:
    return isinstance(outcome, (Admitted, BulkAdmitted))


class ScreenState(str, Enum):
    IDLE = "Idle"
    READY = "Ready"
    SCANNING = "Scanning"
    MANUAL_ENTRY = "Manual Entry"
    BULK_LOOKUP = "Bulk Lookup"
    VERIFYING = "Verifying"
    RESULT_SHOWN = "Result Shown"
