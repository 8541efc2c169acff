import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from jingchen_bridge.errors import (
    OK,
    CallTimeoutError,
    ConnectionDroppedError,
    DuplicateCallError,
    NotConnectedError,
    VendorError,
)
from jingchen_bridge.events import Notifications

logger = logging.getLogger(__name__)


@dataclass
class PendingCall:
    api_name: str
    future: asyncio.Future
    timer: Optional[asyncio.TimerHandle] = None


class Correlator:
    """
    Request/response matching over the vendor channel.

    Replies carry no message id, only the ``apiName`` of the call, so only
    one call per API name may be pending at a time. A second call with the
    same name is rejected with ``DuplicateCallError`` instead of replacing
    the first waiter.

    Every pending call is settled exactly once: the entry is popped from
    ``_pending`` by whichever of reply / timeout / disconnect comes first,
    and the others find nothing to settle.
    """

    def __init__(self, transport, notifications: Optional[Notifications] = None, default_timeout: float = 10.0):
        self.transport = transport
        self.notifications = notifications
        self.default_timeout = default_timeout
        self._pending: Dict[str, PendingCall] = {}

    def in_flight(self) -> int:
        return len(self._pending)

    def is_pending(self, api_name: str) -> bool:
        return api_name in self._pending

    async def invoke(self, api_name: str, parameter: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Dict[str, Any]:
        if not self.transport.is_connected():
            raise NotConnectedError()
        if api_name in self._pending:
            raise DuplicateCallError(api_name)

        timeout = self.default_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        pending = PendingCall(api_name=api_name, future=loop.create_future())
        pending.timer = loop.call_later(timeout, self._expire, pending, timeout)
        self._pending[api_name] = pending

        message: Dict[str, Any] = {"apiName": api_name}
        if parameter is not None:
            message["parameter"] = parameter

        try:
            await self.transport.send(message)
            return await pending.future
        finally:
            self._discard(pending)

    # -----------------------------
    # Settlement
    # -----------------------------
    def _discard(self, pending: PendingCall) -> bool:
        if self._pending.get(pending.api_name) is not pending:
            return False
        del self._pending[pending.api_name]
        if pending.timer is not None:
            pending.timer.cancel()
        return True

    def _settle(self, pending: PendingCall, result: Any = None, error: Optional[BaseException] = None) -> None:
        if pending.future.done():
            return
        if error is not None:
            pending.future.set_exception(error)
        else:
            pending.future.set_result(result)

    def _expire(self, pending: PendingCall, timeout: float) -> None:
        if self._discard(pending):
            logger.warning("API timeout: %s after %ss", pending.api_name, timeout)
            self._settle(pending, error=CallTimeoutError(pending.api_name, timeout))

    def handle_frame(self, frame: Dict[str, Any]) -> None:
        if self.notifications is not None and self.notifications.route_frame(frame):
            return

        api_name = frame.get("apiName")
        if not api_name:
            return
        pending = self._pending.get(api_name)
        if pending is None:
            logger.debug("No pending call for %s, reply dropped", api_name)
            return
        self._discard(pending)

        ack = frame.get("resultAck") or {}
        code = ack.get("errorCode", OK) if isinstance(ack, dict) else OK
        if code == OK:
            self._settle(pending, result=frame)
        else:
            self._settle(pending, error=VendorError(api_name, code, ack.get("info"), frame))

    def fail_all(self, error_factory: Callable[[str], BaseException] = ConnectionDroppedError) -> None:
        for pending in list(self._pending.values()):
            if self._discard(pending):
                self._settle(pending, error=error_factory(pending.api_name))
