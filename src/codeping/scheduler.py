"""Named periodic tasks on the running asyncio loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]


class Scheduler:
    """Owns at most one timer per task name.

    A timer fires its callback every ``interval`` seconds. Each tick runs as its
    own asyncio task, so a slow tick does not delay the cadence and the next
    tick may start while the previous one is still in flight. Failures inside a
    tick are logged and never stop the timer.
    """

    def __init__(self) -> None:
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._intervals: dict[str, float] = {}
        self._in_flight: set[asyncio.Task[None]] = set()

    def reschedule(self, name: str, interval: float, callback: TickCallback) -> None:
        """Cancel any timer registered under ``name`` and arm a new one."""
        if interval <= 0:
            raise ValueError(f"interval for {name} must be positive, got {interval}")

        self.cancel(name)
        self._timers[name] = asyncio.get_running_loop().create_task(
            self._run_timer(name, interval, callback),
            name=f"codeping-timer-{name}",
        )
        self._intervals[name] = interval
        logger.debug("Scheduled %s every %.1fs", name, interval)

    def cancel(self, name: str) -> bool:
        timer = self._timers.pop(name, None)
        self._intervals.pop(name, None)
        if timer is None:
            return False
        timer.cancel()
        logger.debug("Cancelled %s timer", name)
        return True

    def is_scheduled(self, name: str) -> bool:
        timer = self._timers.get(name)
        return timer is not None and not timer.done()

    def interval(self, name: str) -> float | None:
        return self._intervals.get(name)

    def active_tasks(self) -> list[str]:
        return sorted(name for name, timer in self._timers.items() if not timer.done())

    async def shutdown(self) -> None:
        """Cancel every timer and any tick still in flight."""
        pending = [*self._timers.values(), *self._in_flight]
        self._timers.clear()
        self._intervals.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._in_flight.clear()

    async def _run_timer(self, name: str, interval: float, callback: TickCallback) -> None:
        while True:
            await asyncio.sleep(interval)
            tick = asyncio.get_running_loop().create_task(
                run_guarded(name, callback),
                name=f"codeping-tick-{name}",
            )
            self._in_flight.add(tick)
            tick.add_done_callback(self._in_flight.discard)


async def run_guarded(name: str, callback: TickCallback) -> None:
    """Run one tick, logging failures instead of propagating them."""
    try:
        await callback()
    except asyncio.CancelledError:
        raise
    except Exception:  # noqa: BLE001
        logger.exception("%s tick failed", name)
