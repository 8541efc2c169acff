import asyncio
import logging
import uuid
from collections import OrderedDict
from typing import Any, Dict, Optional

from jingchen_bridge import workarounds
from jingchen_bridge.audit import audit
from jingchen_bridge.commands import Commands, PrinterHandle, PrinterKind, Sleep
from jingchen_bridge.correlator import Correlator
from jingchen_bridge.elements import draw_item, validate_content
from jingchen_bridge.errors import (
    BridgeError,
    JobInProgressError,
    NoPrinterError,
    NotConnectedError,
    UnknownJobError,
)
from jingchen_bridge.events import EventType, Notifications
from jingchen_bridge.job import JobGate, JobPhase, JobSession
from jingchen_bridge.models import JobRecord, JobSpec, PreviewRequest
from jingchen_bridge.settings import BridgeSettings
from jingchen_bridge.transport import ConnectionState, Transport

logger = logging.getLogger(__name__)


class PrinterBridge:
    """
    Owns the transport, the correlator and all process-wide printer state:
    connection state (on the transport), the single-flight gate, the current
    and last-known-good printer, and the job history.
    """

    def __init__(
        self,
        settings: Optional[BridgeSettings] = None,
        transport=None,
        sleep: Optional[Sleep] = None,
        history_max: int = 200,
    ):
        self.settings = settings or BridgeSettings.from_env()
        self.notifications = Notifications()
        self.transport = transport or Transport(self.settings.ws_url, self.settings.reconnect_interval)
        self.correlator = Correlator(self.transport, self.notifications, self.settings.timeouts.default)
        self.commands = Commands(self.correlator, self.settings, sleep)
        self.gate = JobGate()

        self.transport.on_frame = self.correlator.handle_frame
        self.transport.on_state_change = self._on_connection_state

        self._current_printer: Optional[PrinterHandle] = None
        self._last_printer: Optional[PrinterHandle] = None
        self._cover_status: Any = None
        self._power_level: Any = None
        self._jobs: "OrderedDict[str, JobRecord]" = OrderedDict()
        self._history_max = history_max

        self.notifications.on(EventType.COVER_STATUS_CHANGED, self._on_cover)
        self.notifications.on(EventType.POWER_LEVEL_CHANGED, self._on_power)
        self.notifications.on(EventType.PRINTER_DISCONNECTED, self._on_printer_lost)

    # -----------------------------
    # Lifecycle / notifications
    # -----------------------------
    def start(self) -> None:
        self.transport.connect()

    async def stop(self) -> None:
        await self.transport.disconnect()

    def _on_connection_state(self, state: ConnectionState) -> None:
        if state == ConnectionState.CONNECTED:
            self.notifications.emit(EventType.SERVICE_CONNECTED)
        elif state == ConnectionState.DISCONNECTED:
            self.correlator.fail_all()
            self._current_printer = None
            self.notifications.emit(EventType.SERVICE_DISCONNECTED)

    def _on_cover(self, data: Dict[str, Any]) -> None:
        self._cover_status = data.get("value")

    def _on_power(self, data: Dict[str, Any]) -> None:
        self._power_level = data.get("value")

    def _on_printer_lost(self, data: Dict[str, Any]) -> None:
        self._current_printer = None

    def _ensure_idle(self) -> None:
        if self.gate.active_job is not None:
            raise JobInProgressError(self.gate.active_job)

    # -----------------------------
    # Printer management
    # -----------------------------
    async def init_sdk(self) -> None:
        await self.commands.init_sdk()

    async def scan_printers(self, kind: PrinterKind = PrinterKind.USB) -> Dict[str, int]:
        self._ensure_idle()
        if not self.transport.is_connected():
            raise NotConnectedError()
        await self.commands.init_sdk()
        return await self.commands.scan_printers(kind)

    async def connect_printer(self, handle: PrinterHandle) -> None:
        self._ensure_idle()
        await self._select(handle)

    async def disconnect_printer(self) -> None:
        self._ensure_idle()
        await self.commands.disconnect_printer()
        self._current_printer = None
        self.notifications.emit(EventType.PRINTER_DISCONNECTED, {"source": "closePrinter"})

    async def _select(self, handle: PrinterHandle) -> None:
        await self.commands.connect_printer(handle)
        self._current_printer = handle
        self._last_printer = handle
        self.notifications.emit(EventType.PRINTER_CONNECTED, handle.to_dict())

    async def _resolve_printer(self, spec: JobSpec) -> PrinterHandle:
        if spec.printer is not None:
            return spec.printer.to_handle()
        printers = await self.commands.scan_usb_printers()
        if printers:
            name, port = next(iter(printers.items()))
            return PrinterHandle(name, port)
        if self._last_printer is not None:
            # the SDK can report no devices right after endJob
            logger.info("No printers found, using last known: %s", self._last_printer.name)
            return self._last_printer
        raise NoPrinterError()

    def status(self) -> Dict[str, Any]:
        return {
            "connected": self.transport.is_connected(),
            "connectionState": self.transport.state.value,
            "currentPrinter": self._current_printer.to_dict() if self._current_printer else None,
            "lastPrinter": self._last_printer.to_dict() if self._last_printer else None,
            "activeJob": self.gate.active_job,
            "coverStatus": self._cover_status,
            "powerLevel": self._power_level,
        }

    # -----------------------------
    # Jobs
    # -----------------------------
    def _remember(self, record: JobRecord) -> None:
        self._jobs[record.job_id] = record
        self._jobs.move_to_end(record.job_id)
        while len(self._jobs) > self._history_max:
            self._jobs.popitem(last=False)

    def get_job(self, job_id: str) -> JobRecord:
        record = self._jobs.get(job_id)
        if record is None:
            raise UnknownJobError(job_id)
        return record

    def request_stop(self, job_id: str) -> JobRecord:
        record = self.get_job(job_id)
        if record.status == "printing":
            record.touch(stop_requested=True)
            logger.info("Job %s: stop requested", job_id)
        return record

    def _fail(self, record: JobRecord, session: JobSession, message: str, kind: str, code=None) -> None:
        record.touch(
            status="failed",
            last_error=message,
            error_kind=kind,
            error_code=code,
            labels_printed=session.labels_committed,
            copies_printed=session.copies_committed,
        )
        audit("job_failed", {"job_id": record.job_id, "error": message, "kind": kind, "code": code})

    async def run_job(self, spec: JobSpec) -> JobRecord:
        """
        Drive one job end to end. Raises ``InvalidContentError`` or
        ``JobInProgressError`` before any I/O. Once the job has started,
        endJob is always attempted before this returns or raises, and the
        gate is released whatever happens.
        """
        for page in spec.labels:
            validate_content(page.content)

        try:
            self.gate.acquire(spec.job_id)
        except JobInProgressError as e:
            audit("job_rejected", {"job_id": spec.job_id, "active_job": e.active_job_id})
            raise

        record = JobRecord(job_id=spec.job_id, copies=spec.total_copies)
        self._remember(record)
        session = JobSession(self.commands, spec.job_id)
        stopped = False
        logger.info("Job %s starting (%d label(s), %d copies)", spec.job_id, len(spec.labels), spec.total_copies)

        try:
            if not self.transport.is_connected():
                raise NotConnectedError()

            await self.commands.init_sdk()
            handle = await self._resolve_printer(spec)
            await self._select(handle)

            threshold = self.settings.placeholder_threshold
            count = workarounds.device_count(spec.total_copies, threshold)
            record.touch(printer=handle.name, device_count=count, placeholder=count != spec.total_copies)
            audit("job_started", {"job_id": spec.job_id, "printer": handle.name, "count": count})

            await session.start(spec.density, spec.label_type, spec.print_mode, count)

            if record.placeholder:
                first = spec.labels[0]
                await workarounds.print_placeholder(session, first.width, first.height)

            for page in spec.labels:
                # stop is only honored between a commit and the next board
                if record.stop_requested and session.phase == JobPhase.COMMITTED:
                    stopped = True
                    break
                await session.init_board(page.width, page.height, page.rotate or 0)
                for item in page.content:
                    await draw_item(session, item)
                await session.commit(page.copies)
                record.touch(labels_printed=session.labels_committed, copies_printed=session.copies_committed)

            await session.end()
            record.touch(status="cancelled" if stopped else "done")
            audit("job_cancelled" if stopped else "job_done", {
                "job_id": spec.job_id,
                "labels_printed": record.labels_printed,
            })
            logger.info("Job %s %s", spec.job_id, record.status)
            return record
        except BridgeError as e:
            logger.error("Job %s failed: %s", spec.job_id, e.message)
            self._fail(record, session, e.message, e.kind, e.code)
            raise
        except asyncio.CancelledError:
            logger.warning("Job %s cancelled by the caller", spec.job_id)
            self._fail(record, session, "Job task cancelled", "cancelled")
            raise
        except Exception as e:
            logger.exception("Job %s failed unexpectedly", spec.job_id)
            self._fail(record, session, str(e) or type(e).__name__, "internal")
            raise
        finally:
            try:
                if session.active:
                    await session.end()
            finally:
                self.gate.release(spec.job_id)

    # -----------------------------
    # Preview / WiFi setup
    # -----------------------------
    async def preview(self, req: PreviewRequest) -> str:
        """
        Render one label on the device and return it as base64. Runs under
        the gate like a job but never sends startJob, so nothing prints.
        """
        validate_content(req.content)
        preview_id = f"preview-{uuid.uuid4().hex[:8]}"
        self.gate.acquire(preview_id)
        session = JobSession(self.commands, preview_id)
        try:
            if not self.transport.is_connected():
                raise NotConnectedError()
            await self.commands.init_sdk()
            session.begin_preview()
            await session.init_board(req.label.width, req.label.height, req.label.rotate or 0)
            for item in req.content:
                await draw_item(session, item)
            return await session.preview(req.display_scale, req.show_border)
        finally:
            try:
                await session.end()
            finally:
                self.gate.release(preview_id)

    async def configure_wifi(self, wifi_name: str, wifi_password: str) -> None:
        self._ensure_idle()
        if not self.transport.is_connected():
            raise NotConnectedError()
        await self.commands.configure_wifi(wifi_name, wifi_password)
        logger.info("WiFi configured on printer: %s", wifi_name)

    async def get_wifi_config(self) -> Dict[str, Any]:
        self._ensure_idle()
        if not self.transport.is_connected():
            raise NotConnectedError()
        return await self.commands.get_wifi_config()
