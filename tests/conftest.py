import asyncio
import os

os.environ["AUDIT_LOG_PATH"] = ""
os.environ["API_KEY"] = ""
os.environ["ALLOWED_IPS"] = ""

import pytest

from jingchen_bridge.bridge import PrinterBridge
from jingchen_bridge.errors import NotConnectedError
from jingchen_bridge.settings import BridgeSettings, Delays, Timeouts
from jingchen_bridge.transport import ConnectionState

FAST = BridgeSettings(
    delays=Delays(after_init=0, after_commit=0, between_draws=0, after_draw_complete=0, retry_interval=0.001),
    timeouts=Timeouts(default=0.2, long_scan=0.3, print_submit=0.3),
)


def ack(code=0, info=None, **extra):
    result = {"errorCode": code}
    if info is not None:
        result["info"] = info
    result.update(extra)
    return {"resultAck": result}


class FakeDevice:
    """
    Transport double answering like the vendor print service.

    Replies are scripted per API name and consumed in order:
      int            -> resultAck.errorCode
      dict           -> full frame (apiName filled in)
      None           -> no reply (the call times out)
      (delay, reply) -> reply delivered after ``delay`` seconds
      Exception      -> raised from send(), as a broken socket would
    Unscripted calls succeed with errorCode 0.
    """

    def __init__(self, connected=True):
        self.connected = connected
        self.on_frame = None
        self.on_state_change = None
        self.on_send = None
        self.sent = []
        self.script = {}
        self.defaults = {}

    @property
    def state(self):
        return ConnectionState.CONNECTED if self.connected else ConnectionState.DISCONNECTED

    def is_connected(self):
        return self.connected

    def connect(self):
        self.connected = True

    async def disconnect(self):
        self.connected = False

    def reply(self, api_name, *replies):
        self.script.setdefault(api_name, []).extend(replies)

    async def send(self, message):
        if not self.connected:
            raise NotConnectedError()
        self.sent.append(message)
        if self.on_send:
            self.on_send(message)

        api_name = message["apiName"]
        queue = self.script.get(api_name)
        reply = queue.pop(0) if queue else self.defaults.get(api_name, 0)
        if reply is None:
            return
        if isinstance(reply, Exception):
            raise reply

        delay = 0
        if isinstance(reply, tuple):
            delay, reply = reply
        if isinstance(reply, dict):
            frame = dict(reply)
            frame.setdefault("apiName", api_name)
        else:
            frame = {"apiName": api_name, "resultAck": {"errorCode": reply, "info": f"code {reply}"}}

        loop = asyncio.get_running_loop()
        if delay:
            loop.call_later(delay, self.on_frame, frame)
        else:
            loop.call_soon(self.on_frame, frame)

    # -----------------------------
    # Inspection
    # -----------------------------
    def api_names(self):
        return [m["apiName"] for m in self.sent]

    def params(self, api_name):
        return [m.get("parameter") for m in self.sent if m["apiName"] == api_name]


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def device():
    d = FakeDevice()
    d.defaults["getAllPrinters"] = ack(info='{"B21-C2B2": 1}')
    return d


@pytest.fixture
def bridge(device):
    return PrinterBridge(settings=FAST, transport=device)
