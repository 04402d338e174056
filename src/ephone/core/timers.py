"""Timer port used by the overlay state machine.

Two schedulers implement it:

``AsyncioScheduler``
    Delegates to ``loop.call_later`` on a running asyncio loop. This is what
    ``ephone watch`` uses.

``ManualScheduler``
    A virtual clock. Nothing fires until :meth:`ManualScheduler.advance` is
    called, which makes timings exact and repeatable. Tests and
    ``ephone simulate`` use it.

Both hand back a :class:`TimerHandle`; cancelling a handle guarantees its
callback never runs.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

TimerCallback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    @property
    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    def now_ms(self) -> float: ...

    def call_later(self, delay_ms: float, callback: TimerCallback) -> TimerHandle: ...


class _AsyncioTimer:
    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class AsyncioScheduler:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._origin = self._loop.time()

    def now_ms(self) -> float:
        return (self._loop.time() - self._origin) * 1000.0

    def call_later(self, delay_ms: float, callback: TimerCallback) -> TimerHandle:
        return _AsyncioTimer(self._loop.call_later(delay_ms / 1000.0, callback))


@dataclass(order=True, slots=True)
class _ManualTimer:
    due_ms: float
    seq: int
    callback: TimerCallback = field(compare=False)
    _cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """Deterministic scheduler driven by explicit clock advances."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = start_ms
        self._queue: list[_ManualTimer] = []
        self._seq = itertools.count()

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: TimerCallback) -> TimerHandle:
        timer = _ManualTimer(self._now + max(delay_ms, 0.0), next(self._seq), callback)
        heapq.heappush(self._queue, timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for timer in self._queue if not timer.cancelled)

    def advance(self, delta_ms: float) -> None:
        self.advance_to(self._now + delta_ms)

    def advance_to(self, target_ms: float) -> None:
        """Fire every live timer due at or before ``target_ms``, in due order.

        Timers scheduled by a firing callback are honoured within the same
        advance when they fall inside the window.
        """
        if target_ms < self._now:
            raise ValueError(f"cannot move clock backwards ({target_ms} < {self._now})")
        while self._queue and self._queue[0].due_ms <= target_ms:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = timer.due_ms
            timer.callback()
        self._now = target_ms

    def run_until_idle(self) -> None:
        while self.pending:
            live = min(timer.due_ms for timer in self._queue if not timer.cancelled)
            self.advance_to(live)
