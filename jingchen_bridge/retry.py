import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from jingchen_bridge.errors import DEVICE_BUSY, VendorError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_on_busy(
    call: Callable[[], Awaitable[T]],
    attempts: int = 3,
    interval: float = 1.0,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Run ``call`` until it stops failing with the vendor busy code.

    Attempt ``n`` (1-based) that fails busy waits ``n * interval`` before the
    next one. Any other error, timeouts included, is raised at once. When
    every attempt was busy the last busy error is raised.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")
    sleep = sleep or asyncio.sleep
    last_error: Optional[VendorError] = None

    for attempt in range(1, attempts + 1):
        try:
            return await call()
        except VendorError as e:
            if e.code != DEVICE_BUSY:
                raise
            last_error = e
            if attempt < attempts:
                wait = attempt * interval
                logger.warning("Printer busy, retry %d/%d in %ss...", attempt + 1, attempts, wait)
                await sleep(wait)

    raise last_error
