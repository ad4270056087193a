"""
Tymer — Clock and window ticker.

The session never reads wall-clock time directly: it asks a Clock, so tests
can move time by hand. WindowTicker replaces the repeating 60-second timer
that recomputes the gate status.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, tzinfo
from typing import Awaitable, Callable, Protocol
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in a fixed timezone."""

    def __init__(self, timezone: str | tzinfo = "UTC") -> None:
        self._tz = ZoneInfo(timezone) if isinstance(timezone, str) else timezone

    def now(self) -> datetime:
        return datetime.now(self._tz)


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, seconds: float = 0, minutes: float = 0, hours: float = 0) -> datetime:
        self._now += timedelta(seconds=seconds, minutes=minutes, hours=hours)
        return self._now


class WindowTicker:
    """Calls `on_tick` every `period_seconds` until stopped.

    `sleep` is injectable so tests can drive ticks without waiting.
    """

    def __init__(
        self,
        on_tick: Callable[[], object],
        period_seconds: float = 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._on_tick = on_tick
        self._period = period_seconds
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self.tick_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> None:
        """Run one recomputation now."""
        self.tick_count += 1
        result = self._on_tick()
        logger.debug("Window tick #%d: %s", self.tick_count, result)

    async def run(self, max_ticks: int | None = None) -> None:
        """Tick immediately, then once per period. Stops after `max_ticks` if given."""
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            self.tick()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            await self._sleep(self._period)

    def start(self) -> asyncio.Task:
        if not self.is_running:
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
