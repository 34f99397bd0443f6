"""Cancellable timers for timed scene behavior.

Scenes can act on their own after a delay: a dialogue auto-advances after
its progressDelay, a quiz auto-submits when its timeLimit runs out. The
state machine owns one SceneTimer slot. Arming it replaces whatever was
pending, any accepted navigation cancels it, and a firing that arrives after
it was cancelled or replaced is ignored.

Where the callbacks actually run is up to the Scheduler:
- ManualScheduler: time advances only when told to (tests, CLI hosts)
- AsyncioScheduler: loop.call_later on an asyncio event loop
- ThreadingScheduler: threading.Timer (the session serializes callbacks)
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule(self, delay_s: float, callback: Callback) -> TimerHandle: ...


# =============================================================================
# Schedulers
# =============================================================================


@dataclass(order=True)
class _ManualTimer:
    due: float
    order: int
    callback: Callback = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by explicit calls to advance().

    Timers due at the same instant fire in the order they were scheduled.
    """

    def __init__(self, start: float = 0.0):
        self.now = start
        self._queue: list[_ManualTimer] = []
        self._counter = itertools.count()

    def schedule(self, delay_s: float, callback: Callback) -> _ManualTimer:
        timer = _ManualTimer(self.now + max(0.0, delay_s), next(self._counter), callback)
        heapq.heappush(self._queue, timer)
        return timer

    def advance(self, seconds: float) -> int:
        """Move time forward, firing every timer that comes due.

        Returns:
            Number of callbacks run.
        """
        target = self.now + seconds
        fired = 0
        while self._queue and self._queue[0].due <= target:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self.now = timer.due
            timer.callback()
            fired += 1
        self.now = target
        return fired

    def pending_count(self) -> int:
        return sum(1 for timer in self._queue if not timer.cancelled)


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def schedule(self, delay_s: float, callback: Callback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay_s), callback)


class ThreadingScheduler:
    """Scheduler backed by daemon threading.Timer threads."""

    def schedule(self, delay_s: float, callback: Callback) -> threading.Timer:
        timer = threading.Timer(max(0.0, delay_s), callback)
        timer.daemon = True
        timer.start()
        return timer


# =============================================================================
# Scene timer slot
# =============================================================================


class SceneTimer:
    """Single-slot timer: arming replaces the pending timer (last writer wins).

    Each arm() bumps a generation counter; a callback only runs if its
    generation is still current when it fires.
    """

    def __init__(self, scheduler: Scheduler):
        self._scheduler = scheduler
        self._handle: TimerHandle | None = None
        self._generation = 0
        self.kind: str | None = None
        self.scene_id: str | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def arm(self, kind: str, scene_id: str, delay_s: float, callback: Callback) -> None:
        self.cancel()
        self._generation += 1
        generation = self._generation
        self.kind = kind
        self.scene_id = scene_id

        def fire() -> None:
            if generation != self._generation:
                logger.debug(f"Ignoring stale {kind} timer for {scene_id}")
                return
            self._handle = None
            self.kind = None
            self.scene_id = None
            callback()

        self._handle = self._scheduler.schedule(delay_s, fire)
        logger.debug(f"Armed {kind} timer for {scene_id} ({delay_s:.3f}s)")

    def cancel(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.kind = None
        self.scene_id = None
