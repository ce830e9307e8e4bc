"""
Failure Log Throttle - milestone-based logging for repeated device failures.

A device that is offline fails every action the controller sends it. The
actions keep being attempted, but the warning is only logged at absolute
milestones measured from the first failure of that device/property, so a
dead display does not flood the log.
"""

import threading
import time
from typing import Callable, Dict, List, Optional

# Milestones in seconds from the first failure. If a value is greater than the
# previous milestone it is absolute, otherwise it is added to it. The last value
# repeats indefinitely.
# Example: [2, 10, 60, 600, 3600, 86400] logs at t=0, 2s, 10s, 1min, 10min, 1hr, 1day
FAILURE_LOG_INTERVALS = [2, 10, 60, 600, 3600, 86400]


class FailureLogThrottle:
    """
    Decides whether a repeated failure should be logged.

    The first failure for a key is always logged. Subsequent failures are
    counted and logged again once elapsed time since the first one passes the
    next milestone. A success for the key (reset) starts over.
    """

    def __init__(self, intervals: Optional[List[float]] = None, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            intervals: Milestone list (see module docstring). Defaults to FAILURE_LOG_INTERVALS.
            clock: Time source, injectable for tests.
        """
        self.intervals = intervals or FAILURE_LOG_INTERVALS
        self._clock = clock
        self._trackers: Dict[str, dict] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _next_milestone(prev: float, interval: float) -> float:
        if interval > prev:
            return interval
        return prev + interval

    def should_log(self, key: str) -> bool:
        """
        Record a failure for `key` and report whether it should be logged.

        Args:
            key: Failure context, e.g. "Display1.PowerOnTrigger"

        Returns:
            True for the first failure and at each milestone, False otherwise.
        """
        now = self._clock()

        with self._lock:
            tracker = self._trackers.get(key)
            if tracker is None:
                self._trackers[key] = {
                    'first_time': now,
                    'next_log': self.intervals[0],
                    'index': 0,
                    'count': 1,
                }
                return True

            tracker['count'] += 1
            if now - tracker['first_time'] < tracker['next_log']:
                return False

            prev = tracker['next_log']
            tracker['index'] += 1
            idx = min(tracker['index'], len(self.intervals) - 1)
            tracker['next_log'] = self._next_milestone(prev, self.intervals[idx])
            return True

    def failure_count(self, key: str) -> int:
        with self._lock:
            tracker = self._trackers.get(key)
            return tracker['count'] if tracker else 0

    def reset(self, key: str) -> bool:
        """
        Forget failures for `key` (call after a successful action).

        Returns:
            True if the key had recorded failures.
        """
        with self._lock:
            return self._trackers.pop(key, None) is not None

    def format_info(self, key: str) -> str:
        """Returns e.g. "(failure #1)" or "(failure #37, next log at ~1m)"."""
        with self._lock:
            tracker = self._trackers.get(key)
            if tracker is None:
                return ""
            if tracker['index'] == 0:
                return f"(failure #{tracker['count']})"
            return f"(failure #{tracker['count']}, next log at ~{_format_duration(tracker['next_log'])})"


def _format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{int(seconds)}s"
    elif seconds < 3600:
        return f"{int(seconds // 60)}m"
    elif seconds < 86400:
        return f"{int(seconds // 3600)}h"
    return f"{int(seconds // 86400)}d"
