import re
from typing import Any, Dict, Iterable

from jingchen_bridge.errors import InvalidContentError
from jingchen_bridge.job import JobSession
from jingchen_bridge.models import ContentItem
from jingchen_bridge import workarounds

BARCODE_TYPE_MAP = {
    "CODE128": 20,
    "UPC_A": 21,
    "UPC_E": 22,
    "EAN8": 23,
    "EAN13": 24,
    "CODE93": 25,
    "CODE39": 26,
    "CODEBAR": 27,
    "ITF25": 28,
}

QRCODE_TYPE_MAP = {
    "QR_CODE": 31,
    "PDF417": 32,
    "DATA_MATRIX": 33,
    "AZTEC": 34,
}

ALIGN_MAP = {"left": 0, "center": 1, "right": 2}
VALIGN_MAP = {"top": 0, "middle": 1, "bottom": 2}
TEXT_POSITION_MAP = {"bottom": 0, "top": 1, "none": 2}

# codeType -> (min length, max length, name)
BARCODE_LENGTHS = {
    20: (1, 80, "CODE128"),
    21: (12, 12, "UPC-A"),
    22: (8, 8, "UPC-E"),
    23: (8, 8, "EAN8"),
    24: (13, 13, "EAN13"),
    25: (1, 80, "CODE93"),
    26: (1, 80, "CODE39"),
    27: (1, 80, "CODEBAR"),
    28: (2, 80, "ITF25"),
}
NUMERIC_BARCODES = (21, 22, 23, 24)
ITF25 = 28
CODE39 = 26
_DIGITS = re.compile(r"^\d+$")
_CODE39_CHARS = re.compile(r"^[A-Z0-9\-. $/+%]+$")


def _box(item: ContentItem) -> Dict[str, Any]:
    return {
        "x": item.x,
        "y": item.y,
        "width": item.width,
        "height": item.height,
        "rotate": item.rotate,
    }


def _code(name, mapping, default):
    if not name:
        return None
    return mapping.get(name.upper(), default)


def validate_barcode(value: str, code_type: int) -> None:
    """Reject content the device would refuse or print unreadable."""
    rule = BARCODE_LENGTHS.get(code_type)
    if rule is None:
        raise InvalidContentError(f"Unsupported barcode type: {code_type}")
    low, high, name = rule
    length = len(value)

    if low == high and length != low:
        raise InvalidContentError(f"{name} barcode must be {low} characters, got {length}")
    if not low <= length <= high:
        raise InvalidContentError(f"{name} barcode length must be {low}-{high}, got {length}")
    if code_type in NUMERIC_BARCODES and not _DIGITS.match(value):
        raise InvalidContentError(f"{name} barcode may only contain digits")
    if code_type == ITF25 and length % 2:
        raise InvalidContentError(f"ITF25 barcode length must be even, got {length}")
    if code_type == CODE39 and not _CODE39_CHARS.match(value):
        raise InvalidContentError("CODE39 only supports A-Z, 0-9 and -. $/+%")


def validate_content(items: Iterable[ContentItem]) -> None:
    for item in items:
        if item.type == "barcode":
            to_vendor_params(item)


def to_vendor_params(item: ContentItem) -> Dict[str, Any]:
    """Vendor parameters for one element. ``None`` values fall back to command defaults."""
    params = _box(item)

    if item.type == "text":
        params.update({
            "value": item.value or "",
            "fontSize": item.font_size or 3,
            "fontFamily": item.font_family,
            "textAlignHorizonral": ALIGN_MAP.get(item.align) if item.align else None,
            "textAlignVertical": VALIGN_MAP.get(item.vertical_align) if item.vertical_align else None,
            "letterSpacing": item.letter_spacing,
            "lineSpacing": item.line_spacing,
            "lineMode": item.line_mode,
            "fontStyle": [item.bold, item.italic, item.underline, item.strikethrough],
        })
    elif item.type == "barcode":
        code_type = _code(item.barcode_type, BARCODE_TYPE_MAP, 20)
        validate_barcode(item.value or "", code_type or 20)
        params.update({
            "value": item.value or "",
            "codeType": code_type,
            "fontSize": item.barcode_font_size,
            "textHeight": item.barcode_text_height,
            "textPosition": TEXT_POSITION_MAP.get(item.text_position) if item.text_position else None,
        })
    elif item.type in ("qrcode", "qrcode_logo"):
        params.update({
            "value": item.value or "",
            "codeType": _code(item.qrcode_type, QRCODE_TYPE_MAP, 31),
        })
        if item.type == "qrcode_logo":
            params.update({
                "logoBase64": item.logo_base64 or "",
                "logoPosition": item.logo_position,
                "logoScale": item.logo_scale,
                "correctLevel": item.correct_level,
            })
    elif item.type == "image":
        params.update({
            "imageData": item.image_data or item.value or "",
            "imageProcessingType": item.image_processing_type,
            "imageProcessingValue": item.image_processing_value,
        })
    elif item.type == "line":
        params.update({
            "lineType": item.line_type,
            "dashwidth": item.dash_width,
        })
    elif item.type == "graph":
        params.update({
            "graphType": item.graph_type,
            "lineWidth": item.line_width,
            "lineType": item.line_type,
            "cornerRadius": item.corner_radius,
            "dashwidth": item.dash_width,
        })
    return params


async def draw_item(session: JobSession, item: ContentItem) -> None:
    if item.type == "border" or (item.type == "graph" and item.graph_type == workarounds.RECTANGLE):
        await workarounds.draw_border(
            session,
            item.x,
            item.y,
            item.width,
            item.height,
            item.line_width or 0.5,
            rotate=item.rotate,
            lineType=item.line_type,
            dashwidth=item.dash_width,
        )
        return
    await session.draw(item.type, to_vendor_params(item))
