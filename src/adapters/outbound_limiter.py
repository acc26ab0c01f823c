"""Outbound rate limiter shared by every Telegram call.

Calls run one at a time and their start times are spaced by at least
``min_interval_ms``. Flood waits reported by Telegram are honored once before
the call is given up.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from telethon.errors import FloodWaitError

from core.ports import CallResult

LOGGER = logging.getLogger(__name__)

# Longest flood wait we are willing to sleep through inline.
MAX_FLOOD_WAIT_SEC = 30


class OutboundLimiter:
    def __init__(
        self,
        min_interval_ms: int = 60,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._interval = max(0, min_interval_ms) / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_start: Optional[float] = None

    async def _wait_turn(self) -> None:
        if self._last_start is not None:
            delay = self._last_start + self._interval - self._clock()
            if delay > 0:
                await self._sleep(delay)
        self._last_start = self._clock()

    async def call(self, label: str, factory: Callable[[], Awaitable[Any]]) -> CallResult:
        """Run ``factory()`` in turn and wrap the outcome in a CallResult."""

        async with self._lock:
            flood_retried = False
            while True:
                await self._wait_turn()
                try:
                    return CallResult.success(await factory())
                except FloodWaitError as exc:
                    seconds = int(getattr(exc, "seconds", 0) or 0)
                    if flood_retried or seconds > MAX_FLOOD_WAIT_SEC:
                        LOGGER.warning("%s hit a flood wait of %ss; giving up", label, seconds)
                        return CallResult.failure(f"flood wait {seconds}s")
                    LOGGER.warning("%s hit a flood wait; retrying in %ss", label, seconds)
                    flood_retried = True
                    await self._sleep(seconds)
                except Exception as exc:
                    LOGGER.warning("%s failed: %s", label, exc)
                    return CallResult.failure(str(exc) or exc.__class__.__name__)
