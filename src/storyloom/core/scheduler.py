"""Injectable timer capability used by the interpreter.

The interpreter never touches wall-clock timers directly. It asks a scheduler
for one-shot and repeating callbacks and keeps the returned handles so it can
cancel them. ``ManualScheduler`` is a virtual clock driven explicitly by the
caller; ``AsyncioScheduler`` runs the same callbacks on an asyncio loop.
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from typing import Callable, List, Protocol, Tuple

TimerCallback = Callable[[], None]


class TimerHandle:
    """Cancellable reference to a scheduled callback."""

    __slots__ = ("_callback", "_cancelled", "_cancel_hook", "interval")

    def __init__(self, callback: TimerCallback, interval: float | None = None) -> None:
        self._callback = callback
        self._cancelled = False
        self._cancel_hook: Callable[[], object] | None = None
        self.interval = interval

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def repeating(self) -> bool:
        return self.interval is not None

    def cancel(self) -> None:
        """Prevent any further invocation. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._cancel_hook is not None:
            self._cancel_hook()
            self._cancel_hook = None

    def fire(self) -> None:
        if self._cancelled:
            return
        if self.interval is None:
            self._cancelled = True
        self._callback()


class Scheduler(Protocol):
    """Timer capability consumed by the interpreter."""

    def now(self) -> float:
        ...

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        ...

    def call_repeating(self, interval: float, callback: TimerCallback) -> TimerHandle:
        ...


class ManualScheduler:
    """Virtual clock: callbacks only run when ``advance`` moves time forward."""

    MAX_CALLBACKS_PER_ADVANCE = 100_000

    def __init__(self, start_time: float = 0.0) -> None:
        self._now = float(start_time)
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._sequence = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        handle = TimerHandle(callback)
        self._push(self._now + max(0.0, float(delay)), handle)
        return handle

    def call_repeating(self, interval: float, callback: TimerCallback) -> TimerHandle:
        if interval <= 0:
            raise ValueError("Repeating interval must be positive.")
        handle = TimerHandle(callback, float(interval))
        self._push(self._now + float(interval), handle)
        return handle

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every due callback in time order."""
        if seconds < 0:
            raise ValueError("Cannot move the clock backwards.")
        target = self._now + float(seconds)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            if handle.interval is not None:
                self._push(due + handle.interval, handle)
            fired += 1
            if fired > self.MAX_CALLBACKS_PER_ADVANCE:
                raise RuntimeError("Runaway timers: too many callbacks in one advance.")
            handle.fire()
        self._now = target

    def run_pending(self) -> None:
        """Fire callbacks that are already due without moving the clock."""
        self.advance(0.0)

    def _push(self, due: float, handle: TimerHandle) -> None:
        heapq.heappush(self._queue, (due, next(self._sequence), handle))


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop and wall-clock timestamps."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop if self._loop is not None else asyncio.get_running_loop()

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        handle = TimerHandle(callback)
        loop_handle = self._get_loop().call_later(max(0.0, float(delay)), handle.fire)
        handle._cancel_hook = loop_handle.cancel
        return handle

    def call_repeating(self, interval: float, callback: TimerCallback) -> TimerHandle:
        if interval <= 0:
            raise ValueError("Repeating interval must be positive.")
        loop = self._get_loop()
        handle = TimerHandle(callback, float(interval))

        def tick() -> None:
            if handle.cancelled:
                return
            next_call = loop.call_later(float(interval), tick)
            handle._cancel_hook = next_call.cancel
            handle.fire()

        first_call = loop.call_later(float(interval), tick)
        handle._cancel_hook = first_call.cancel
        return handle
