"""Deferred-callback schedulers.

JobRunner never sleeps or starts timers itself. It asks a Scheduler to
run a callback after a delay and keeps the returned handle so the call
can be cancelled.

Implementations:
- AsyncioScheduler: real delays on an asyncio event loop (call_later)
- ManualScheduler: a virtual clock advanced explicitly, for tests and
  deterministic replays
"""

import asyncio
import heapq
import itertools
from typing import Callable, List, Optional, Protocol, Tuple

from loguru import logger


class ScheduledCall(Protocol):
    """Handle for a pending callback."""

    def cancel(self) -> None:
        ...

    def cancelled(self) -> bool:
        ...


class Scheduler(Protocol):
    """Capability to run a callback after a delay (seconds)."""

    def after(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        ...


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop.

    Callbacks run on the loop thread, one at a time, so store updates
    never interleave.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def after(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)


class _ManualCall:
    def __init__(self, due: float):
        self.due = due
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """Scheduler driven by a virtual clock.

    Nothing runs until `advance()` or `run_until_idle()` is called.
    Callbacks fire in due-time order (ties in scheduling order), and
    callbacks scheduled while advancing fire in the same pass if they
    fall due before the target time.

    Example:
        scheduler = ManualScheduler()
        runner = JobRunner(store, scheduler)
        ...
        scheduler.advance(2.0)
    """

    def __init__(self):
        self.now = 0.0
        self._queue: List[Tuple[float, int, _ManualCall, Callable[[], None]]] = []
        self._counter = itertools.count()

    def after(self, delay: float, callback: Callable[[], None]) -> _ManualCall:
        handle = _ManualCall(self.now + max(0.0, delay))
        heapq.heappush(self._queue, (handle.due, next(self._counter), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        """Number of scheduled, not cancelled, callbacks."""
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled())

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward and fire every callback that falls due.

        Returns:
            Number of callbacks fired
        """
        target = self.now + seconds
        fired = 0

        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled():
                continue
            self.now = due
            callback()
            fired += 1

        self.now = target
        return fired

    def run_until_idle(self, max_callbacks: int = 10_000) -> int:
        """Fire callbacks until the queue is empty."""
        fired = 0
        while self._queue:
            if fired >= max_callbacks:
                logger.warning(f"ManualScheduler stopped after {fired} callbacks")
                break
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled():
                continue
            self.now = max(self.now, due)
            callback()
            fired += 1
        return fired
