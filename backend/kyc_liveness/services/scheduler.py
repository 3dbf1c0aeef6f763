"""
Schedulers for the state machine's deferred callbacks (settle and blink reset)

Both schedulers run callbacks on the caller's single thread; there are no
concurrent writers to a session.
"""
import asyncio
import heapq
import itertools
import logging
import time
from typing import Callable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancellable handle for one scheduled callback"""

    def __init__(
        self,
        when: float,
        callback: Callable[[], None],
        on_cancel: Optional[Callable[["TimerHandle"], None]] = None
    ):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self._on_cancel = on_cancel
        self._asyncio_handle: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._asyncio_handle is not None:
            self._asyncio_handle.cancel()
            self._asyncio_handle = None
        # Release the closure so a cancelled timer no longer pins its session
        self.callback = None
        if self._on_cancel is not None:
            self._on_cancel(self)
            self._on_cancel = None


class Scheduler:
    """Interface: a clock plus delayed callbacks that can all be cancelled"""

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def cancel_all(self) -> None:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Wall-clock scheduler backed by the running asyncio event loop"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._pending: Set[TimerHandle] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self.now() + delay, callback, on_cancel=self._pending.discard)

        def _fire():
            self._pending.discard(handle)
            if not handle.cancelled:
                callback()

        handle._asyncio_handle = self.loop.call_later(delay, _fire)
        self._pending.add(handle)
        return handle

    def cancel_all(self) -> None:
        if self._pending:
            logger.debug(f"Cancelling {len(self._pending)} pending timer(s)")
        for handle in list(self._pending):
            handle.cancel()
        self._pending.clear()

    @property
    def pending_count(self) -> int:
        return len(self._pending)


class ManualScheduler(Scheduler):
    """
    Scheduler driven by an explicit clock.

    Used when replaying recorded frames, where time comes from frame
    timestamps rather than the wall clock. Callbacks fire during advance().
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self._now + delay, callback)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every due callback in time order"""
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, when)
            if not handle.cancelled:
                handle.callback()
        self._now = target

    def cancel_all(self) -> None:
        for _, _, handle in self._queue:
            handle.cancel()
        self._queue.clear()

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)
