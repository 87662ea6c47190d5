from nicegui import ui
from typing import Callable
import logging

from src.core.models import Admitted, BulkAdmitted, Denied, DenialKind, VerificationOutcome

logger = logging.getLogger(__name__)

DENIAL_TITLES = {
    DenialKind.ALREADY_CHECKED_IN: "Already Checked In",
    DenialKind.WRONG_EVENT: "Wrong Event",
    DenialKind.NOT_FOUND: "Ticket Not Found",
    DenialKind.INVALID_IDENTIFIER: "Invalid Ticket",
    DenialKind.UNAUTHORIZED: "Session Expired",
    DenialKind.NETWORK_ERROR: "Network Error",
    DenialKind.SERVER_ERROR: "Server Error",
    DenialKind.VALIDATION: "Check Input",
}


def describe(outcome: VerificationOutcome):
    """Returns (title, lines, positive) for an outcome."""
    if isinstance(outcome, Admitted):
        t = outcome.ticket
        lines = [outcome.message, f"Ticket #{t.id}"]
        if t.category: lines.append(t.category)
        if t.event: lines.append(t.event_name)
        return "Success", lines, True

    if isinstance(outcome, BulkAdmitted):
        return "Success", [outcome.message or f"Checked in {outcome.count} guests!"], True

    lines = [outcome.message]
    if outcome.kind == DenialKind.WRONG_EVENT:
        if outcome.ticket_event_name: lines.append(f"Ticket is for: {outcome.ticket_event_name}")
        if outcome.active_event_name: lines.append(f"Scanning: {outcome.active_event_name}")
    elif outcome.detail and outcome.detail not in outcome.message:
        lines.append(outcome.detail)
    return DENIAL_TITLES.get(outcome.kind, "Error"), lines, False


class OutcomeDialog(ui.dialog):
    """Blocking result popup. Scanning resumes only when the operator dismisses it."""

    def __init__(self, outcome: VerificationOutcome, on_acknowledge: Callable):
        super().__init__()
        self.outcome = outcome
        self.on_acknowledge_cb = on_acknowledge
        self.props('persistent')

        title, lines, positive = describe(outcome)
        color = 'positive' if positive else 'negative'

        if isinstance(outcome, Denied) and outcome.kind == DenialKind.UNAUTHORIZED:
            button_text = "Sign In Again"
        elif isinstance(outcome, Denied):
            button_text = "Try Again" if outcome.retryable else "OK"
        else:
            button_text = "OK"

        with self, ui.card().classes('w-96 items-center p-6 gap-3'):
            ui.icon('check_circle' if positive else 'cancel', color=color).classes('text-6xl')
            ui.label(title).classes(f'text-2xl font-bold text-{color}')
            for line in lines:
                ui.label(line).classes('text-center')
            ui.button(button_text, on_click=self.acknowledge).props(f'color={color}').classes('w-full mt-4')

    def acknowledge(self):
        self.close()
        try:
            self.on_acknowledge_cb(self.outcome)
        except Exception as e:
            logger.error(f"Error acknowledging outcome: {e}")
