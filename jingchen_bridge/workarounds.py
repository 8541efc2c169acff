"""
Compensating sequences for two vendor SDK defects.

Single copy: with ``count <= threshold`` the device mis-feeds the first
page, so the job is started with one extra copy and a placeholder label is
committed before the real ones.

Border loss: ``DrawLableGraph`` rectangles intermittently lose their bottom
edge on multi-label jobs, so rectangles are always drawn as four lines.
"""
import logging
from typing import Any, Dict, List

from jingchen_bridge.job import JobSession

logger = logging.getLogger(__name__)

RECTANGLE = 3  # DrawLableGraph graphType
PLACEHOLDER_TEXT = "--- 系統標籤 ---"


def needs_placeholder(count: int, threshold: int = 1) -> bool:
    return count <= threshold


def device_count(count: int, threshold: int = 1) -> int:
    return count + 1 if needs_placeholder(count, threshold) else count


async def print_placeholder(session: JobSession, width: float = 50, height: float = 30) -> None:
    """Draw and commit one content-minimal label. Not counted as printed."""
    logger.info("Job %s: printing placeholder label (single-copy workaround)", session.job_id)
    await session.init_board(width, height, 0)
    await session.draw("text", {
        "x": 2,
        "y": height / 2 - 3,
        "width": width - 4,
        "height": 6,
        "value": PLACEHOLDER_TEXT,
        "fontSize": 2.5,
        "textAlignHorizonral": 1,
        "textAlignVertical": 1,
    })
    await session.commit(1, counted=False)


def border_lines(x: float, y: float, width: float, height: float, line_width: float = 0.5) -> List[Dict[str, Any]]:
    """Top, bottom, left, right. The union of the four is exactly the rectangle."""
    return [
        {"x": x, "y": y, "width": width, "height": line_width},
        {"x": x, "y": y + height - line_width, "width": width, "height": line_width},
        {"x": x, "y": y, "width": line_width, "height": height},
        {"x": x + width - line_width, "y": y, "width": line_width, "height": height},
    ]


async def draw_border(
    session: JobSession,
    x: float,
    y: float,
    width: float,
    height: float,
    line_width: float = 0.5,
    **style,
) -> None:
    for line in border_lines(x, y, width, height, line_width):
        line.update({k: v for k, v in style.items() if v is not None})
        await session.draw("line", line)


def label_border(label_width: float, label_height: float, margin: float = 2, bottom_trim: float = 3) -> Dict[str, float]:
    """Border rectangle for a whole label; the bottom is lifted to avoid clipping."""
    return {
        "x": margin,
        "y": margin,
        "width": label_width - margin * 2,
        "height": label_height - margin * 2 - bottom_trim,
    }
