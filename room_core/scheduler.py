"""
Cooperative timer scheduler.

All waiting in the controller (warm-up ticks, watchdog, motion timeout,
grace window) is a scheduled callback, never a blocking wait. Timers are
fired by whoever owns the event loop calling run_due(); the daemon's
consumer thread does this between queued actions, tests drive it with a
fake clock.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import time
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class TimerHandle:
    """A scheduled callback. Cancelling is idempotent."""

    __slots__ = ("deadline", "callback", "role", "_seq", "_cancelled", "_fired")

    def __init__(self, deadline: float, seq: int, callback: Callable[[], None], role: Optional[str] = None):
        self.deadline = deadline
        self.callback = callback
        self.role = role
        self._seq = seq
        self._cancelled = False
        self._fired = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> bool:
        return not self._cancelled and not self._fired

    def __lt__(self, other: "TimerHandle") -> bool:
        return (self.deadline, self._seq) < (other.deadline, other._seq)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else ("fired" if self._fired else "pending")
        return f"TimerHandle(role={self.role!r}, deadline={self.deadline:.3f}, {state})"


class Scheduler:
    """
    Heap of one-shot timers against an injectable monotonic clock.

    Not thread-safe: call only from the event loop thread.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._heap: List[TimerHandle] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callable[[], None], role: Optional[str] = None) -> TimerHandle:
        """Schedule `callback` after `delay` seconds. Negative delays fire on the next run_due()."""
        delay = max(0.0, float(delay))
        handle = TimerHandle(self._clock() + delay, next(self._counter), callback, role)
        heapq.heappush(self._heap, handle)
        return handle

    def cancel(self, handle: Optional[TimerHandle]):
        if handle is not None:
            handle.cancel()

    def _discard_cancelled(self):
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)

    def next_deadline(self) -> Optional[float]:
        self._discard_cancelled()
        return self._heap[0].deadline if self._heap else None

    def time_until_next(self) -> Optional[float]:
        """Seconds until the next pending timer (0 if overdue), None if nothing is scheduled."""
        deadline = self.next_deadline()
        if deadline is None:
            return None
        return max(0.0, deadline - self._clock())

    def run_due(self) -> int:
        """
        Fire every timer whose deadline has passed, in deadline order.

        Timers scheduled by a callback for a deadline that is already due are
        fired in the same pass. Exceptions from a callback are logged and do
        not stop the remaining timers.

        Returns:
            Number of callbacks fired
        """
        fired = 0
        while True:
            self._discard_cancelled()
            if not self._heap or self._heap[0].deadline > self._clock():
                return fired
            handle = heapq.heappop(self._heap)
            handle._fired = True
            fired += 1
            try:
                handle.callback()
            except Exception as e:
                logger.error(f"Timer callback error (role={handle.role}): {e}", exc_info=True)

    def pending_count(self) -> int:
        return sum(1 for h in self._heap if h.pending)


class TimerSlots:
    """
    Timers keyed by role: at most one outstanding timer per role.

    Starting a role cancels the previous timer of that role first, so a new
    warm-up, motion timeout or grace window never leaks a concurrent twin.
    """

    def __init__(self, scheduler: Scheduler):
        self._scheduler = scheduler
        self._slots: Dict[str, TimerHandle] = {}

    def start(self, role: str, delay: float, callback: Callable[[], None]) -> TimerHandle:
        self.stop(role)

        def fire():
            # Clear the slot before running so the callback may restart its own role
            if self._slots.get(role) is handle:
                del self._slots[role]
            callback()

        handle = self._scheduler.call_later(delay, fire, role=role)
        self._slots[role] = handle
        return handle

    def stop(self, role: str) -> bool:
        """Cancel the timer for `role`. Returns True if one was pending."""
        handle = self._slots.pop(role, None)
        if handle is None or not handle.pending:
            return False
        handle.cancel()
        return True

    def active(self, role: str) -> bool:
        handle = self._slots.get(role)
        return handle is not None and handle.pending

    def stop_all(self):
        for role in list(self._slots):
            self.stop(role)
