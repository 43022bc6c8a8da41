"""Named one-shot timers on the running event loop.

Every timer has a name; scheduling a name that is already armed cancels
the previous timer first, so a name never has two pending firings.
Deadlines are wall-clock epoch seconds, matching the persisted
``next_attempt_at`` of queued jobs.

Callbacks are coroutine functions.  When a timer fires its callback is
started as a task; ``drain()`` awaits every task started so far.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class _Armed:
    __slots__ = ("when", "handle")

    def __init__(self, when: float, handle: Any) -> None:
        self.when = when
        self.handle = handle


class Timers:
    """Registry of named, cancelable timers.

    Args:
        clock: Wall clock returning epoch seconds.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._armed: dict[str, _Armed] = {}
        self._tasks: set[asyncio.Task] = set()

    def now(self) -> float:
        return self._clock()

    def schedule(self, name: str, when: float, callback: TimerCallback) -> None:
        """Arm *name* to run *callback* at epoch second *when*.

        A pending timer with the same name is cancelled first.
        """
        self.cancel(name)
        delay = max(0.0, when - self.now())
        handle = self._call_later(delay, lambda: self._fire(name, callback))
        self._armed[name] = _Armed(when, handle)
        logger.debug("Timer %s armed for +%.1fs", name, delay)

    def cancel(self, name: str) -> bool:
        """Cancel *name*.  Returns ``True`` if a timer was pending."""
        armed = self._armed.pop(name, None)
        if armed is None:
            return False
        armed.handle.cancel()
        logger.debug("Timer %s cancelled", name)
        return True

    def cancel_all(self) -> None:
        for name in list(self._armed):
            self.cancel(name)

    def scheduled_at(self, name: str) -> float | None:
        """Deadline of *name*, or ``None`` when it is not armed."""
        armed = self._armed.get(name)
        return armed.when if armed else None

    def is_armed(self, name: str) -> bool:
        return name in self._armed

    async def drain(self) -> None:
        """Wait for every callback task started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _call_later(self, delay: float, fn: Callable[[], None]) -> Any:
        return asyncio.get_running_loop().call_later(delay, fn)

    def _fire(self, name: str, callback: TimerCallback) -> None:
        self._armed.pop(name, None)
        task = asyncio.ensure_future(self._run(name, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, name: str, callback: TimerCallback) -> None:
        try:
            await callback()
        except Exception:
            logger.exception("Timer callback %s failed", name)
