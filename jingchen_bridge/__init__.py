from jingchen_bridge.bridge import PrinterBridge
from jingchen_bridge.settings import BridgeSettings

__all__ = ["PrinterBridge", "BridgeSettings"]
