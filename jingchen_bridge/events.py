import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]


class EventType(str, Enum):
    SERVICE_CONNECTED = "service:connected"
    SERVICE_DISCONNECTED = "service:disconnected"
    PRINTER_CONNECTED = "printer:connected"
    PRINTER_DISCONNECTED = "printer:disconnected"
    COVER_STATUS_CHANGED = "printer:cover"
    POWER_LEVEL_CHANGED = "printer:power"


# resultAck.callback.name -> (event, field carrying the value)
CALLBACK_EVENTS = {
    "onCoverStatusChange": (EventType.COVER_STATUS_CHANGED, "coverStatus"),
    "onElectricityChange": (EventType.POWER_LEVEL_CHANGED, "powerLever"),
}


class Notifications:
    """Observers for device notifications. Never touches pending calls."""

    def __init__(self):
        self._listeners: Dict[EventType, Set[Listener]] = {}

    def on(self, event: EventType, listener: Listener) -> None:
        self._listeners.setdefault(event, set()).add(listener)

    def off(self, event: EventType, listener: Listener) -> None:
        self._listeners.get(event, set()).discard(listener)

    def emit(self, event: EventType, data: Optional[Dict[str, Any]] = None) -> None:
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(data or {})
            except Exception:
                logger.exception("Error in listener for %s", event.value)

    def route_frame(self, frame: Dict[str, Any]) -> bool:
        """Publish an unsolicited frame. Returns True if it was a notification."""
        ack = frame.get("resultAck") or {}
        callback = ack.get("callback") if isinstance(ack, dict) else None
        if isinstance(callback, dict) and callback.get("name"):
            mapped = CALLBACK_EVENTS.get(callback["name"])
            if mapped:
                event, field = mapped
                self.emit(event, {"value": callback.get(field), "callback": callback})
            else:
                logger.debug("Ignoring callback %s", callback["name"])
            return True
        if frame.get("apiName") == "printStatus":
            if ack.get("online") == "offline":
                self.emit(EventType.PRINTER_DISCONNECTED, {"source": "printStatus"})
            return True
        return False
