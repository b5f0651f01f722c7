# -*- coding: utf-8 -*-

import asyncio
from typing import Callable, Optional

from core.logging_handler import setup_logger

logger = setup_logger(__name__)


async def run_ticker(
    tick: Callable[[], None],
    period: float = 1.0,
    stop: Optional[asyncio.Event] = None,
    max_ticks: Optional[int] = None,
) -> int:
    """
    Host-side periodic callback: calls tick() about every `period` seconds
    until `stop` is set or `max_ticks` calls were made.
    The period is only a refresh rate; the engine measures real elapsed time.
    Returns the number of tick() calls made.
    """
    stop = stop or asyncio.Event()
    count = 0
    while not stop.is_set():
        try:
            tick()
        except Exception:
            logger.exception("tick() raised; ticker keeps running")
        count += 1
        if max_ticks is not None and count >= max_ticks:
            break
        try:
            await asyncio.wait_for(stop.wait(), timeout=period)
        except asyncio.TimeoutError:
            pass
    return count
