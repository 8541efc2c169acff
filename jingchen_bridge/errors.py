from typing import Any, Dict, Optional

# resultAck.errorCode
OK = 0
DEVICE_BUSY = -2
NO_DEVICE = 23


class BridgeError(Exception):
    kind = "internal"

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "kind": self.kind, "code": self.code}


# -----------------------------
# Transport
# -----------------------------
class TransportError(BridgeError):
    kind = "transport"


class NotConnectedError(TransportError):
    def __init__(self, message: str = "WebSocket not connected to Jingchen SDK"):
        super().__init__(message)


class ConnectionDroppedError(TransportError):
    def __init__(self, api_name: str):
        super().__init__(f"Connection dropped while waiting for {api_name}")
        self.api_name = api_name


# -----------------------------
# Protocol / timeout
# -----------------------------
class VendorError(BridgeError):
    kind = "protocol"

    def __init__(self, api_name: str, code: int, info: Any = None, response: Optional[dict] = None):
        message = info if isinstance(info, str) and info else f"SDK error {code}"
        super().__init__(message, code=code)
        self.api_name = api_name
        self.info = info
        self.response = response

    @property
    def is_busy(self) -> bool:
        return self.code == DEVICE_BUSY


class CallTimeoutError(BridgeError):
    kind = "timeout"

    def __init__(self, api_name: str, timeout: float):
        super().__init__(f"API timeout: {api_name} ({timeout:g}s)")
        self.api_name = api_name
        self.timeout = timeout


# -----------------------------
# Local contract violations
# -----------------------------
class SequenceError(BridgeError):
    kind = "sequence"


class DuplicateCallError(SequenceError):
    def __init__(self, api_name: str):
        super().__init__(f"A call to {api_name} is already in flight")
        self.api_name = api_name


class JobInProgressError(BridgeError):
    kind = "busy"

    def __init__(self, active_job_id: str):
        super().__init__("Printer busy, another job is in progress")
        self.active_job_id = active_job_id


class NoPrinterError(BridgeError):
    kind = "no_printer"

    def __init__(self, message: str = "No USB printers found"):
        super().__init__(message)


class UnknownJobError(BridgeError):
    kind = "not_found"

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class MalformedReplyError(BridgeError):
    kind = "protocol"

    def __init__(self, api_name: str, message: str, response: Optional[dict] = None):
        super().__init__(message)
        self.api_name = api_name
        self.response = response


class InvalidContentError(BridgeError):
    kind = "invalid"
