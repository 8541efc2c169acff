import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

import websockets

from jingchen_bridge.errors import ConnectionDroppedError, NotConnectedError

logger = logging.getLogger(__name__)

FrameHandler = Callable[[Dict[str, Any]], None]
StateHandler = Callable[["ConnectionState"], None]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Transport:
    """
    Single WebSocket connection to the vendor print service.

    One supervisor task owns the socket: it connects, pumps incoming frames
    to ``on_frame`` and, after a drop, waits ``reconnect_interval`` before the
    next attempt. ``disconnect()`` stops the supervisor, so at most one
    reconnect loop exists at any time.
    """

    def __init__(
        self,
        url: str,
        reconnect_interval: float = 3.0,
        connector: Optional[Callable[..., Any]] = None,
    ):
        self.url = url
        self.reconnect_interval = reconnect_interval
        self.on_frame: Optional[FrameHandler] = None
        self.on_state_change: Optional[StateHandler] = None
        self._connector = connector or websockets.connect
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        if self.on_state_change:
            self.on_state_change(state)

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def connect(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._closing = False
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def disconnect(self) -> None:
        self._closing = True
        task, self._task = self._task, None
        ws = self._ws
        if ws is not None:
            await ws.close()
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._ws = None
        self._set_state(ConnectionState.DISCONNECTED)

    def is_connected(self) -> bool:
        return self._ws is not None and self._state == ConnectionState.CONNECTED

    async def _run(self) -> None:
        while not self._closing:
            self._set_state(ConnectionState.CONNECTING)
            try:
                # the vendor service does not answer pings
                async with self._connector(self.url, ping_interval=None) as ws:
                    self._ws = ws
                    self._set_state(ConnectionState.CONNECTED)
                    logger.info("Connected to Jingchen SDK: %s", self.url)
                    async for raw in ws:
                        self._dispatch(raw)
                logger.info("Disconnected from Jingchen SDK")
            except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
                logger.warning("WebSocket error (%s): %s", self.url, e)
            finally:
                self._ws = None
                self._set_state(ConnectionState.DISCONNECTED)

            if self._closing:
                break
            logger.info("Reconnecting in %ss...", self.reconnect_interval)
            await asyncio.sleep(self.reconnect_interval)

    # -----------------------------
    # I/O
    # -----------------------------
    def _dispatch(self, raw) -> None:
        try:
            frame = json.loads(raw)
        except ValueError:
            logger.error("Dropping malformed frame: %r", str(raw)[:200])
            return
        if not isinstance(frame, dict):
            logger.error("Dropping non-object frame: %r", str(raw)[:200])
            return
        logger.debug("Recv: %s", json.dumps(frame, ensure_ascii=False)[:200])
        if self.on_frame is None:
            return
        try:
            self.on_frame(frame)
        except Exception:
            logger.exception("Frame handler failed for %s", frame.get("apiName"))

    async def send(self, message: Dict[str, Any]) -> None:
        ws = self._ws
        if ws is None or not self.is_connected():
            raise NotConnectedError()
        data = json.dumps(message, ensure_ascii=False)
        try:
            await ws.send(data)
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning("Send failed, socket closed: %s", e)
            raise ConnectionDroppedError(message.get("apiName", "send")) from e
        logger.debug("Sent: %s", data[:200])
