"""
Print job state machine and the device-wide single-flight gate.

    IDLE -> STARTED -> BOARD_READY -> DRAWING -> COMMITTED -> ENDED
                           ^                        |
                           +------ next label ------+

Illegal transitions raise ``SequenceError`` before anything is sent.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional

from jingchen_bridge.commands import Commands
from jingchen_bridge.errors import JobInProgressError, SequenceError
from jingchen_bridge.retry import retry_on_busy

logger = logging.getLogger(__name__)


class JobPhase(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    BOARD_READY = "board_ready"
    DRAWING = "drawing"
    COMMITTED = "committed"
    ENDED = "ended"


DRAW_KINDS = ("text", "barcode", "qrcode", "qrcode_logo", "image", "line", "graph")


class JobSession:
    def __init__(self, commands: Commands, job_id: str):
        self.commands = commands
        self.job_id = job_id
        self.phase = JobPhase.IDLE
        self.device_count = 0
        self.labels_committed = 0
        self.copies_committed = 0
        self.elements_on_label = 0
        self.board: Optional[Dict[str, Any]] = None
        self._job_open = False

    def _require(self, action: str, *allowed: JobPhase) -> None:
        if self.phase not in allowed:
            raise SequenceError(f"{action} not allowed in phase {self.phase.value}")

    @property
    def active(self) -> bool:
        return self.phase not in (JobPhase.IDLE, JobPhase.ENDED)

    async def start(self, density: int, label_type: int, print_mode: int, count: int) -> None:
        self._require("startJob", JobPhase.IDLE)
        settings = self.commands.settings
        await retry_on_busy(
            lambda: self.commands.start_job(density, label_type, print_mode, count),
            attempts=settings.start_job_attempts,
            interval=settings.delays.retry_interval,
            sleep=self.commands.sleep,
        )
        self.device_count = count
        self._job_open = True
        self.phase = JobPhase.STARTED

    def begin_preview(self) -> None:
        """Board-only session: the board can be drawn and previewed, nothing is printed."""
        self._require("preview", JobPhase.IDLE)
        self.phase = JobPhase.STARTED

    async def init_board(self, width: float, height: float, rotate: int = 0) -> None:
        self._require("InitDrawingBoard", JobPhase.STARTED, JobPhase.COMMITTED)
        await self.commands.init_board(width, height, rotate)
        self.board = {"width": width, "height": height, "rotate": rotate}
        self.elements_on_label = 0
        self.phase = JobPhase.BOARD_READY

    async def draw(self, kind: str, params: Dict[str, Any]) -> None:
        if kind not in DRAW_KINDS:
            raise SequenceError(f"Unknown draw kind: {kind}")
        self._require(f"draw {kind}", JobPhase.BOARD_READY, JobPhase.DRAWING)
        await getattr(self.commands, f"draw_{kind}")(params)
        self.elements_on_label += 1
        self.phase = JobPhase.DRAWING

    async def commit(self, copies: int = 1, counted: bool = True) -> None:
        self._require("commitJob", JobPhase.BOARD_READY, JobPhase.DRAWING)
        if not self._job_open:
            raise SequenceError("commitJob not allowed in a preview session")
        await self.commands.settle_label()
        await self.commands.commit_job(copies)
        if counted:
            self.labels_committed += 1
            self.copies_committed += copies
        self.phase = JobPhase.COMMITTED

    async def preview(self, display_scale: Optional[float] = None, show_border: bool = False) -> str:
        self._require("preview", JobPhase.BOARD_READY, JobPhase.DRAWING)
        await self.commands.settle_label()
        if display_scale:
            return await self.commands.generate_preview_image(display_scale)
        return await self.commands.generate_preview(show_border)

    async def end(self) -> bool:
        """Best-effort endJob. Never raises once the job has started."""
        if not self.active:
            return True
        if not self._job_open:
            self.phase = JobPhase.ENDED
            return True
        ok = await self.commands.end_job()
        self.phase = JobPhase.ENDED
        return ok


class JobGate:
    """
    One job at a time, device-wide. ``acquire`` is synchronous and never
    suspends, so check-and-set is atomic on the event loop.
    """

    def __init__(self):
        self._active: Optional[str] = None

    @property
    def active_job(self) -> Optional[str]:
        return self._active

    def acquire(self, job_id: str) -> None:
        if self._active is not None:
            raise JobInProgressError(self._active)
        self._active = job_id

    def release(self, job_id: str) -> None:
        if self._active == job_id:
            self._active = None
