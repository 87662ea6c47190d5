from nicegui import ui
from typing import Callable
import logging

from src.core.models import Denied, DenialKind
from src.services.gate_api import GateApiError
from src.services.checkin.manager import CheckinManager

logger = logging.getLogger(__name__)


class BulkLookupDialog(ui.dialog):
    """Find a guest's unscanned tickets by email and check several in at once."""

    def __init__(self, manager: CheckinManager, on_outcome: Callable, on_close: Callable):
        super().__init__()
        self.manager = manager
        self.on_outcome_cb = on_outcome
        self.on_close_cb = on_close
        self.searched = False
        self.on('hide', lambda: self.on_close_cb())

        with self, ui.card().classes('w-[480px] p-4 gap-2'):
            ui.label("Guest Lookup").classes('text-xl font-bold')
            event = manager.active_event
            if event:
                ui.label(f"Event: {event.event_name}").classes('text-sm text-gray-400')

            with ui.row().classes('w-full items-center gap-2 no-wrap'):
                self.email_input = ui.input(label="Guest email", placeholder="guest@example.com").classes('flex-grow').props('type=email clearable')
                self.email_input.on('keydown.enter', self.search)
                ui.button(icon='search', on_click=self.search).props('round color=primary')

            self.render_results()

            with ui.row().classes('w-full justify-end gap-2'):
                ui.button('Close', on_click=self.close).props('flat')
                self.submit_btn = ui.button('Check In Selected', on_click=self.submit).props('color=positive icon=how_to_reg')
                self._sync_submit()

    async def search(self):
        try:
            await self.manager.lookup(self.email_input.value)
            self.searched = True
        except ValueError as e:
            ui.notify(str(e), type='warning')
        except GateApiError as e:
            logger.error(f"Lookup failed: {e}")
            ui.notify(f"Lookup failed: {e.message}", type='negative')
        self.render_results.refresh()

    def _sync_submit(self):
        self.submit_btn.set_enabled(self.manager.bulk.can_submit)

    def toggle(self, ticket_id: str):
        self.manager.toggle_ticket(ticket_id)
        self.render_results.refresh()

    @ui.refreshable
    def render_results(self):
        bulk = self.manager.bulk
        if hasattr(self, 'submit_btn'):
            self._sync_submit()
        with ui.column().classes('w-full gap-1 max-h-80 overflow-auto'):
            if not bulk.results:
                if self.searched:
                    ui.label("No unscanned tickets for this event.").classes('p-4 text-gray-500 italic')
                return

            with ui.row().classes('w-full justify-between items-center'):
                ui.label(f"{len(bulk.results)} ticket(s) found").classes('text-sm font-bold')
                ui.button('Select All', on_click=lambda: (bulk.select_all(), self.render_results.refresh())).props('flat dense size=sm')

            for t in bulk.results:
                with ui.row().classes('w-full items-center bg-gray-800 p-2 rounded border border-gray-700'):
                    ui.checkbox(value=bulk.is_selected(t.id), on_change=lambda e, tid=t.id: self.toggle(tid))
                    with ui.column().classes('gap-0'):
                        ui.label(f"Ticket #{t.id}").classes('font-bold')
                        ui.label(t.category or t.event_name).classes('text-xs text-gray-400')

    async def submit(self):
        outcome = await self.manager.submit_bulk()
        if outcome is None:
            ui.notify("Scanner busy, try again in a moment", type='warning')
            return
        if isinstance(outcome, Denied) and outcome.kind == DenialKind.VALIDATION:
            ui.notify(outcome.message, type='warning')
            return

        self.searched = False
        self.render_results.refresh()
        self.close()
        self.on_outcome_cb(outcome)
