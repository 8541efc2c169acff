"""
Typed vendor operations on top of the correlator.

Each command merges the vendor's required defaults under the caller's
parameters (caller wins) and then waits the settle delay that stands in for
the completion event the SDK never sends.
"""
import asyncio
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple

from jingchen_bridge.correlator import Correlator
from jingchen_bridge.errors import NO_DEVICE, MalformedReplyError, VendorError
from jingchen_bridge.settings import BridgeSettings

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

INIT_SDK_DEFAULTS = {
    "fontDir": "",
    "isOpenPort": True,
    "isCloseANE": True,
    "printCallBackType": 0,
}

BOARD_DEFAULTS = {
    "rotate": 0,
    "path": "ZT001.ttf",
    "verticalShift": 0,
    "HorizontalShift": 0,
}

TEXT_DEFAULTS = {
    "rotate": 0,
    "fontFamily": "宋体",
    "textAlignHorizonral": 0,
    "textAlignVertical": 0,
    "letterSpacing": 0,
    "lineSpacing": 1,
    "lineMode": 6,
    "fontStyle": [False, False, False, False],
}

BARCODE_DEFAULTS = {
    "codeType": 20,  # CODE128
    "rotate": 0,
    "fontSize": 3.2,
    "textHeight": 3.2,
    "textPosition": 0,
}

QRCODE_DEFAULTS = {
    "codeType": 31,  # QR_CODE
    "rotate": 0,
}

QRCODE_LOGO_DEFAULTS = {
    "codeType": 31,
    "rotate": 0,
    "correctLevel": 2,
    "logoPosition": 0,
    "logoScale": 0.25,
}

IMAGE_DEFAULTS = {
    "rotate": 0,
    "imageProcessingType": 0,
    "imageProcessingValue": 127,
}

LINE_DEFAULTS = {
    "rotate": 0,
    "lineType": 1,
    "dashwidth": [1, 1],
}

GRAPH_DEFAULTS = {
    "rotate": 0,
    "lineType": 1,
    "lineWidth": 0.5,
    "cornerRadius": 0,
    "dashwidth": [1, 1],
}

_DATA_URI = re.compile(r"^data:image/[^;]+;base64,")


class PrinterKind(str, Enum):
    USB = "usb"
    WIFI = "wifi"


@dataclass(frozen=True)
class PrinterHandle:
    name: str
    port: int
    kind: PrinterKind = PrinterKind.USB

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "port": self.port, "kind": self.kind.value}


def merge(defaults: Dict[str, Any], params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    merged = dict(defaults)
    for k, v in (params or {}).items():
        if v is not None:
            merged[k] = v
    return merged


def strip_data_uri(image_data: str) -> str:
    return _DATA_URI.sub("", image_data or "", count=1)


def _printer_ports(entries: Iterable[Tuple[Any, Any]]) -> Dict[str, int]:
    ports = {}
    for name, port in entries:
        if not name:
            continue
        try:
            ports[name] = int(port)
        except (TypeError, ValueError):
            logger.warning("Skipping printer %r with bad port %r", name, port)
    return ports


class Commands:
    def __init__(self, correlator: Correlator, settings: BridgeSettings, sleep: Optional[Sleep] = None):
        self.correlator = correlator
        self.settings = settings
        self.sleep = sleep or asyncio.sleep

    @property
    def delays(self):
        return self.settings.delays

    @property
    def timeouts(self):
        return self.settings.timeouts

    async def _call(self, api_name: str, parameter: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None):
        return await self.correlator.invoke(api_name, parameter, timeout or self.timeouts.default)

    # -----------------------------
    # SDK / printers
    # -----------------------------
    async def init_sdk(self, **overrides) -> None:
        await self._call("initSdk", merge(INIT_SDK_DEFAULTS, overrides))
        await self.sleep(self.delays.after_init)

    async def scan_usb_printers(self) -> Dict[str, int]:
        try:
            result = await self._call("getAllPrinters")
        except VendorError as e:
            if e.code == NO_DEVICE:
                return {}
            raise

        info = (result.get("resultAck") or {}).get("info")
        if not isinstance(info, str) or not info:
            return {}
        try:
            printers = json.loads(info)
        except ValueError:
            logger.error("Failed to parse printer list: %r", info[:200])
            return {}
        if not isinstance(printers, dict):
            return {}
        return _printer_ports(printers.items())

    async def scan_wifi_printers(self) -> Dict[str, int]:
        try:
            result = await self._call("scanWifiPrinter", timeout=self.timeouts.long_scan)
        except VendorError as e:
            if e.code == NO_DEVICE:
                return {}
            raise

        info = (result.get("resultAck") or {}).get("info")
        if not isinstance(info, list):
            return {}
        return _printer_ports(
            (item.get("deviceName"), item.get("tcpPort"))
            for item in info
            if isinstance(item, dict)
        )

    async def scan_printers(self, kind: PrinterKind = PrinterKind.USB) -> Dict[str, int]:
        if kind == PrinterKind.WIFI:
            return await self.scan_wifi_printers()
        return await self.scan_usb_printers()

    async def connect_printer(self, handle: PrinterHandle) -> None:
        if handle.kind == PrinterKind.WIFI:
            await self._call(
                "connectWifiPrinter",
                {"printerName": handle.name, "port": handle.port},
                timeout=self.timeouts.long_scan,
            )
        else:
            await self._call("selectPrinter", {"printerName": handle.name, "port": handle.port})

    async def disconnect_printer(self) -> None:
        await self._call("closePrinter")

    async def configure_wifi(self, wifi_name: str, wifi_password: str) -> None:
        await self._call(
            "configurationWifi",
            {"wifiName": wifi_name, "wifiPassword": wifi_password},
            timeout=self.timeouts.long_scan,
        )

    async def get_wifi_config(self) -> Dict[str, Any]:
        result = await self._call("getWifiConfiguration")
        info = (result.get("resultAck") or {}).get("info")
        if isinstance(info, str) and info:
            try:
                info = json.loads(info)
            except ValueError:
                logger.error("Failed to parse WiFi configuration: %r", info[:200])
                return {}
        return info if isinstance(info, dict) else {}

    # -----------------------------
    # Job lifecycle
    # -----------------------------
    async def start_job(self, density: int, label_type: int, print_mode: int, count: int) -> None:
        await self._call("startJob", {
            "printDensity": density,
            "printLabelType": label_type,
            "printMode": print_mode,
            "count": count,
        })

    async def init_board(self, width: float, height: float, rotate: int = 0, **overrides) -> None:
        await self._call("InitDrawingBoard", merge(BOARD_DEFAULTS, dict(overrides, width=width, height=height, rotate=rotate)))

    async def commit_job(self, copies: int = 1) -> None:
        await self._call(
            "commitJob",
            {"printData": None, "printerImageProcessingInfo": {"printQuantity": copies}},
            timeout=self.timeouts.print_submit,
        )
        await self.sleep(self.delays.after_commit)

    async def end_job(self) -> bool:
        try:
            await self._call("endJob")
            return True
        except Exception as e:
            logger.warning("endJob error (ignored): %s", e)
            return False

    async def settle_label(self) -> None:
        await self.sleep(self.delays.after_draw_complete)

    # -----------------------------
    # Preview
    # -----------------------------
    async def generate_preview(self, show_border: bool = False) -> str:
        """Base64 image of the current board."""
        result = await self._call("GenerateLablePreView", {"isShowBorder": show_border})
        data = result.get("data")
        if not isinstance(data, str) or not data:
            raise MalformedReplyError("GenerateLablePreView", "Preview reply carried no image", result)
        return data

    async def generate_preview_image(self, display_scale: float) -> str:
        """
        Base64 image of the current board at ``display_scale`` dots per mm
        (8 for 200 dpi heads, 11.81 for 300 dpi).
        """
        result = await self._call("generateImagePreviewImage", {"displayScale": display_scale})
        info = (result.get("resultAck") or {}).get("info")
        if isinstance(info, str):
            try:
                info = json.loads(info)
            except ValueError:
                info = None
        if isinstance(info, dict) and info.get("ImageData"):
            return info["ImageData"]
        raise MalformedReplyError("generateImagePreviewImage", "Preview reply carried no ImageData", result)

    # -----------------------------
    # Draw operations
    # -----------------------------
    async def _draw(self, api_name: str, params: Dict[str, Any]) -> None:
        await self._call(api_name, params)
        await self.sleep(self.delays.between_draws)

    async def draw_text(self, params: Dict[str, Any]) -> None:
        await self._draw("DrawLableText", merge(TEXT_DEFAULTS, params))

    async def draw_barcode(self, params: Dict[str, Any]) -> None:
        await self._draw("DrawLableBarCode", merge(BARCODE_DEFAULTS, params))

    async def draw_qrcode(self, params: Dict[str, Any]) -> None:
        await self._draw("DrawLableQrCode", merge(QRCODE_DEFAULTS, params))

    async def draw_qrcode_logo(self, params: Dict[str, Any]) -> None:
        params = dict(params)
        params["logoBase64"] = strip_data_uri(params.get("logoBase64", ""))
        await self._draw("DrawLableQrCodeWithLogo", merge(QRCODE_LOGO_DEFAULTS, params))

    async def draw_image(self, params: Dict[str, Any]) -> None:
        params = dict(params)
        params["imageData"] = strip_data_uri(params.get("imageData", ""))
        await self._draw("DrawLableImage", merge(IMAGE_DEFAULTS, params))

    async def draw_line(self, params: Dict[str, Any]) -> None:
        await self._draw("DrawLableLine", merge(LINE_DEFAULTS, params))

    async def draw_graph(self, params: Dict[str, Any]) -> None:
        await self._draw("DrawLableGraph", merge(GRAPH_DEFAULTS, params))
