from nicegui import app, ui
import logging
import os

from src.services.session import OperatorSession
from src.ui.gate import gate_page

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

TOKEN_KEY = 'gate_token'


def client_session() -> OperatorSession:
    """One credential per browser, so a rejection only signs out this device."""
    storage = app.storage.user
    session = OperatorSession(storage.get(TOKEN_KEY) or None)
    session.on_unauthorized(lambda: storage.pop(TOKEN_KEY, None))
    return session


@ui.page('/')
def index():
    session = client_session()
    if not session.is_authenticated:
        ui.navigate.to('/login')
        return
    gate_page(session)


@ui.page('/login')
def login():
    def save():
        if not token_input.value:
            ui.notify("Token is required", type='warning')
            return
        app.storage.user[TOKEN_KEY] = token_input.value.strip()
        logger.info("Operator token updated")
        ui.navigate.to('/')

    with ui.card().classes('w-96 mx-auto mt-24 p-6 gap-2'):
        ui.label("Gate Sign In").classes('text-2xl font-bold')
        ui.label("Paste the staff access token issued by the box office.").classes('text-sm text-gray-400')
        token_input = ui.input(label="Access token", password=True, password_toggle_button=True).classes('w-full')
        token_input.on('keydown.enter', save)
        ui.button('Continue', on_click=save).props('color=primary').classes('w-full')


if __name__ in {"__main__", "__mp_main__"}:
    ui.run(title="Gate Check-In", dark=True, port=8081,
           storage_secret=os.environ.get("GATE_STORAGE_SECRET", "gate-checkin"))
