from nicegui import ui, events
import json
import logging
from typing import Optional

from src.core import config_manager
from src.core.models import (
    CaptureOrigin, Denied, DenialKind, Rect, ScanCandidate, ScreenState, VerificationOutcome
)
from src.services.gate_api import GateApiError, GateUnauthorizedError
from src.services.session import OperatorSession
from src.services.checkin.context import ContextLockedError
from src.services.checkin.manager import CheckinManager, GateEvent
from src.services.checkin.stats import attendance_rate, remaining
from src.ui.components.bulk_lookup_dialog import BulkLookupDialog
from src.ui.components.manual_entry_dialog import ManualEntryDialog
from src.ui.components.outcome_dialog import OutcomeDialog

logger = logging.getLogger(__name__)

JS_CAMERA_CODE = """
<script>
window.gateVideo = null;
window.gateStream = null;
window.gateDetector = null;
window.gateLoop = null;
window.gate_js_loaded = true;

async function startGateCamera(deviceId) {
    window.gateVideo = document.getElementById('gate-video');
    if (!window.gateVideo) return false;
    if (!('BarcodeDetector' in window)) {
        console.error("BarcodeDetector not supported in this browser");
        return false;
    }
    stopGateCamera();
    try {
        window.gateStream = await navigator.mediaDevices.getUserMedia({
            video: {
                deviceId: deviceId ? { exact: deviceId } : undefined,
                facingMode: deviceId ? undefined : 'environment',
                width: { ideal: 1280 },
                height: { ideal: 720 }
            }
        });
        window.gateVideo.srcObject = window.gateStream;
        await window.gateVideo.play();
        window.gateDetector = new BarcodeDetector({ formats: ['qr_code'] });
        window.gateLoop = setInterval(detectGateCodes, 150);
        return true;
    } catch (err) {
        console.error("Error accessing camera:", err);
        return false;
    }
}

async function detectGateCodes() {
    const video = window.gateVideo;
    if (!video || !window.gateDetector || video.readyState < 2) return;
    try {
        const codes = await window.gateDetector.detect(video);
        for (const code of codes) {
            const box = code.boundingBox;
            emitEvent('gate_candidate', {
                text: code.rawValue,
                x: box.x, y: box.y, width: box.width, height: box.height,
                frame_width: video.videoWidth, frame_height: video.videoHeight
            });
        }
    } catch (e) {
        console.log("Detection error:", e);
    }
}

function stopGateCamera() {
    if (window.gateLoop) {
        clearInterval(window.gateLoop);
        window.gateLoop = null;
    }
    if (window.gateVideo && window.gateVideo.srcObject) {
        window.gateVideo.srcObject.getTracks().forEach(track => track.stop());
        window.gateVideo.srcObject = null;
    }
    window.gateStream = null;
}

function drawGateTarget(x, y, w, h, fw, fh) {
    const el = document.getElementById('gate-target');
    if (!el || !fw || !fh) return;
    el.style.left = (x / fw * 100) + '%';
    el.style.top = (y / fh * 100) + '%';
    el.style.width = (w / fw * 100) + '%';
    el.style.height = (h / fh * 100) + '%';
}

async function getGateCameras() {
    if (!navigator.mediaDevices || !navigator.mediaDevices.enumerateDevices) return [];
    try {
        const devices = await navigator.mediaDevices.enumerateDevices();
        return devices
            .filter(d => d.kind === 'videoinput')
            .map((d, i) => ({ label: d.label || 'Camera ' + (i + 1), value: d.deviceId }));
    } catch (e) {
        return [];
    }
}

document.addEventListener('visibilitychange', () => {
    emitEvent('gate_visibility', { visible: document.visibilityState === 'visible' });
});
</script>
"""


class GatePage:
    def __init__(self, manager: Optional[CheckinManager] = None):
        self.manager = manager or CheckinManager()
        self.camera_select = None
        self.event_select = None
        self.start_btn = None
        self.stop_btn = None
        self.frame_size = (0, 0)
        self.outcome_dialog: Optional[OutcomeDialog] = None

        self.manager.register_listener(self.on_gate_event)

    def on_gate_event(self, event: GateEvent):
        if event.type in ('state_changed', 'stats_updated', 'event_selected'):
            self.render_status.refresh()
            self.render_stats.refresh()
            self._sync_controls()
        elif event.type == 'unauthorized':
            ui.notify("Session expired. Please sign in again.", type='negative')

    def _sync_controls(self):
        state = self.manager.state
        if self.event_select:
            self.event_select.set_enabled(self.manager.can_change_event)
        if self.start_btn and self.stop_btn:
            self.start_btn.visible = state == ScreenState.READY
            self.stop_btn.visible = state == ScreenState.SCANNING

    async def init_data(self):
        try:
            events_list = await self.manager.load_events()
        except GateUnauthorizedError:
            ui.navigate.to('/login')
            return
        except GateApiError as e:
            logger.error(f"Error loading events: {e}")
            ui.notify(f"Could not load events: {e.message}", type='negative')
            return

        if self.event_select:
            self.event_select.options = {e.event_id: e.event_name for e in events_list}
            self.event_select.update()
            last = config_manager.get_last_event_id()
            if last is not None and self.manager.context.get(last):
                self.event_select.value = last

    async def init_cameras(self):
        try:
            js_loaded = await ui.run_javascript('window.gate_js_loaded', timeout=5.0)
            if not js_loaded: return
            devices = await ui.run_javascript('getGateCameras()')
            if devices and self.camera_select:
                self.camera_select.options = {d['value']: d['label'] for d in devices}
                self.camera_select.update()
                if not self.camera_select.value:
                    self.camera_select.value = devices[0]['value']
        except TimeoutError:
            logger.warning("Camera list not available")

    async def on_event_change(self, e):
        if e.value is None or e.value == self.manager.context.active_event_id:
            return
        try:
            if self.manager.camera_active:
                await self.stop_camera()
            await self.manager.select_event(e.value)
        except ContextLockedError as err:
            ui.notify(str(err), type='warning')
            self.event_select.value = self.manager.context.active_event_id
        except ValueError as err:
            ui.notify(str(err), type='negative')

    async def start_camera(self):
        if not self.manager.context.is_bound:
            ui.notify("Select an event first", type='warning')
            return
        device_id = self.camera_select.value if self.camera_select else None
        try:
            if await ui.run_javascript(f'startGateCamera({json.dumps(device_id)})', timeout=20.0):
                self.manager.start_camera()
            else:
                ui.notify("Failed to start camera", type='negative')
        except Exception as e:
            logger.error(f"Error starting camera: {e}")
            ui.notify(f"Error starting camera: {e}", type='negative')

    async def stop_camera(self):
        self.manager.stop_camera()
        ui.run_javascript('stopGateCamera()')

    async def on_candidate(self, e: events.GenericEventArguments):
        args = e.args or {}
        frame = (args.get('frame_width') or 0, args.get('frame_height') or 0)
        if frame != self.frame_size and frame[0]:
            self.frame_size = frame
            self.manager.set_frame(frame[0])
            t = self.manager.target
            ui.run_javascript(f'drawGateTarget({t.x}, {t.y}, {t.width}, {t.height}, {frame[0]}, {frame[1]})')

        candidate = ScanCandidate(
            text=str(args.get('text') or ''),
            origin=CaptureOrigin.CAMERA,
            bounds=Rect(args.get('x', 0), args.get('y', 0), args.get('width', 0), args.get('height', 0)),
        )
        outcome = await self.manager.handle_candidate(candidate)
        if outcome is not None:
            self.show_outcome(outcome)

    async def on_visibility(self, e: events.GenericEventArguments):
        if (e.args or {}).get('visible'):
            await self.manager.resume()
        else:
            self.close_outcome()
            self.manager.suspend()
            ui.run_javascript('stopGateCamera()')

    def show_outcome(self, outcome: VerificationOutcome):
        if isinstance(outcome, Denied) and outcome.kind == DenialKind.VALIDATION:
            ui.notify(outcome.message, type='warning')
            return
        self.close_outcome()
        self.outcome_dialog = OutcomeDialog(outcome, self.on_acknowledge)
        self.outcome_dialog.open()

    def close_outcome(self):
        if self.outcome_dialog:
            self.outcome_dialog.close()
            self.outcome_dialog = None

    def on_acknowledge(self, outcome: VerificationOutcome):
        self.outcome_dialog = None
        if not self.manager.session.is_authenticated:
            ui.navigate.to('/login')
            return
        self.manager.acknowledge()

    def open_manual(self):
        if not self.manager.open_manual():
            ui.notify("Finish the current scan first", type='warning')
            return
        ManualEntryDialog(self.submit_manual, self.manager.close_modal).open()

    async def submit_manual(self, text: str):
        outcome = await self.manager.submit_manual(text)
        if outcome is not None and not (isinstance(outcome, Denied) and outcome.kind == DenialKind.VALIDATION):
            self.show_outcome(outcome)
        return outcome

    def open_bulk(self):
        if not self.manager.open_bulk():
            ui.notify("Finish the current scan first", type='warning')
            return
        BulkLookupDialog(self.manager, self.show_outcome, self.manager.close_modal).open()

    def cleanup(self):
        self.manager.unregister_listener(self.on_gate_event)
        self.manager.dispose()

    @ui.refreshable
    def render_status(self):
        state = self.manager.state
        with ui.row().classes('w-full items-center gap-2 bg-gray-800 p-2 rounded border border-gray-700'):
            if state == ScreenState.VERIFYING:
                ui.spinner(size='sm')
                ui.label("Checking Database...").classes('font-bold')
            elif state == ScreenState.IDLE:
                ui.icon('event_busy', color='warning').classes('text-xl')
                ui.label("Select an event to start scanning").classes('font-bold')
            else:
                ui.icon('qr_code_scanner', color='primary').classes('text-xl')
                ui.label(f"Status: {state.value}").classes('font-bold')

    @ui.refreshable
    def render_stats(self):
        stat = self.manager.active_event
        if stat is None:
            return
        with ui.row().classes('w-full gap-4'):
            for title, value in (
                ("Sold", stat.sold),
                ("Checked In", stat.scanned),
                ("Remaining", remaining(stat)),
                ("Attendance", f"{round(attendance_rate(stat) * 100)}%"),
            ):
                with ui.card().classes('p-3 items-center bg-gray-900 border border-gray-700'):
                    ui.label(str(value)).classes('text-2xl font-bold')
                    ui.label(title).classes('text-xs text-gray-400 uppercase')


def gate_page(session: Optional[OperatorSession] = None):
    page = GatePage(CheckinManager(session=session))
    ui.context.client.on_disconnect(page.cleanup)

    ui.add_head_html(JS_CAMERA_CODE)
    ui.on('gate_candidate', page.on_candidate)
    ui.on('gate_visibility', page.on_visibility)

    with ui.column().classes('w-full max-w-3xl mx-auto p-4 gap-4'):
        with ui.row().classes('w-full items-center gap-2'):
            page.event_select = ui.select(options={}, label='Event', on_change=page.on_event_change).classes('flex-grow')
            ui.button(icon='refresh', on_click=page.init_data).props('flat round').tooltip("Reload events")

        page.render_status()
        page.render_stats()

        with ui.card().classes('w-full p-2 bg-gray-900 border border-gray-700'):
            with ui.row().classes('w-full gap-2 items-center'):
                page.camera_select = ui.select(options={}, label='Camera').classes('flex-grow')
                page.start_btn = ui.button('START SCAN', on_click=page.start_camera).props('icon=videocam')
                page.stop_btn = ui.button('CLOSE SCANNER', on_click=page.stop_camera).props('icon=videocam_off color=negative')

        with ui.card().classes('w-full aspect-video p-0 overflow-hidden relative bg-black border border-gray-700'):
            ui.html('<video id="gate-video" autoplay playsinline muted style="width: 100%; height: 100%; object-fit: contain;"></video>', sanitize=False)
            ui.html('<div id="gate-target" style="position: absolute; border: 5px solid #007AFF; pointer-events: none;"></div>', sanitize=False)

        with ui.row().classes('w-full gap-2'):
            ui.button('MANUAL ENTRY', on_click=page.open_manual).classes('flex-grow').props('icon=keyboard outline')
            ui.button('GUEST LOOKUP', on_click=page.open_bulk).classes('flex-grow').props('icon=person_search outline')

    page._sync_controls()
    ui.timer(0.1, page.init_data, once=True)
    ui.timer(1.0, page.init_cameras, once=True)
