from nicegui import ui
from typing import Callable, Awaitable, Optional
import logging

from src.core.models import Denied, DenialKind, VerificationOutcome

logger = logging.getLogger(__name__)


class ManualEntryDialog(ui.dialog):
    def __init__(self, on_submit: Callable[[str], Awaitable[Optional[VerificationOutcome]]], on_close: Callable):
        super().__init__()
        self.on_submit_cb = on_submit
        self.on_close_cb = on_close
        self.on('hide', lambda: self.on_close_cb())

        with self, ui.card().classes('w-96 p-4 gap-2'):
            ui.label("Enter Ticket ID").classes('text-xl font-bold')
            self.input = ui.input(label="Ticket ID", placeholder="e.g. 1042").classes('w-full').props('autofocus clearable')
            self.input.on('keydown.enter', self.submit)
            self.error_label = ui.label('').classes('text-negative text-sm')
            with ui.row().classes('w-full justify-end gap-2'):
                ui.button('Cancel', on_click=self.close).props('flat')
                self.submit_btn = ui.button('Verify', on_click=self.submit).props('color=primary icon=verified')

    async def submit(self):
        self.error_label.text = ''
        self.submit_btn.disable()
        try:
            outcome = await self.on_submit_cb(self.input.value or '')
        finally:
            self.submit_btn.enable()

        if isinstance(outcome, Denied) and outcome.kind == DenialKind.VALIDATION:
            self.error_label.text = outcome.message
            return

        if outcome is None:
            ui.notify("Scanner busy, try again in a moment", type='warning')
            return

        self.input.value = ''
        self.close()
