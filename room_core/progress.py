"""
Progress animator for warm-up and cool-down.

Drives the panel progress bar from 0 to 100 (or 100 to 0) in fixed steps
on the scheduler, and guarantees completion through a watchdog: if the
steps never finish, the watchdog forces the end value and reports a
forced completion so the power state machine still advances.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from room_constants import PROGRESS_STEPS, PROGRESS_WATCHDOG_SECONDS

from .panel import PanelPort
from .scheduler import Scheduler, TimerSlots
from .states import Direction

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[Direction, bool], None]


@dataclass(frozen=True)
class ProgressTimerConfig:
    duration_seconds: float
    direction: Direction


class ProgressAnimator:
    """
    Owns the "step" and "watchdog" timers. At most one animation runs; a new
    start() supersedes the previous one without emitting for it.
    """

    def __init__(self, scheduler: Scheduler, panel: PanelPort,
                 steps: int = PROGRESS_STEPS, watchdog_seconds: float = PROGRESS_WATCHDOG_SECONDS):
        self._timers = TimerSlots(scheduler)
        self._panel = panel
        self._steps = steps
        self._watchdog_seconds = watchdog_seconds
        self._listeners: List[CompletionCallback] = []

        self._running = False
        self._step = 0
        self._interval = 0.0
        self._direction: Optional[Direction] = None
        self._value = 0

    def add_listener(self, callback: CompletionCallback):
        """Register callback(direction, forced) for completions."""
        self._listeners.append(callback)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def value(self) -> int:
        return self._value

    @property
    def direction(self) -> Optional[Direction]:
        return self._direction

    @property
    def watchdog_seconds(self) -> float:
        return self._watchdog_seconds

    def start(self, duration_seconds: float, direction: Direction):
        self.stop()
        config = ProgressTimerConfig(duration_seconds, direction)

        self._running = True
        self._direction = config.direction
        self._step = 0
        self._write(self._value_at(0))

        self._timers.start("watchdog", self._watchdog_seconds, self._on_watchdog)

        self._interval = config.duration_seconds / self._steps if self._steps > 0 else 0.0
        if self._interval > 0:
            self._timers.start("step", self._interval, self._on_step)
            logger.debug(f"Progress {direction.value} started: {config.duration_seconds:.1f}s "
                         f"({self._interval:.3f}s/step)")
        else:
            logger.warning(f"Progress {direction.value}: non-positive step interval "
                           f"(duration={config.duration_seconds}), waiting for watchdog")

    def stop(self):
        """Cancel any running animation. Never emits a completion."""
        self._timers.stop("step")
        self._timers.stop("watchdog")
        self._running = False

    def _value_at(self, step: int) -> int:
        pct = round(step * 100 / self._steps) if self._steps > 0 else 100
        return pct if self._direction is Direction.ASCENDING else 100 - pct

    def _write(self, value: int):
        self._value = value
        self._panel.set_progress_value(value)
        self._panel.set_progress_text(f"{value}%")

    def _on_step(self):
        if not self._running:
            return
        self._step += 1
        self._write(self._value_at(self._step))
        if self._step >= self._steps:
            self._finish(forced=False)
        else:
            self._timers.start("step", self._interval, self._on_step)

    def _on_watchdog(self):
        if not self._running:
            return
        logger.warning(f"Progress {self._direction.value} watchdog expired after "
                       f"{self._watchdog_seconds:.0f}s, forcing completion")
        self._write(self._value_at(self._steps))
        self._finish(forced=True)

    def _finish(self, forced: bool):
        direction = self._direction
        self.stop()
        for callback in list(self._listeners):
            try:
                callback(direction, forced)
            except Exception as e:
                logger.error(f"Progress completion listener error: {e}", exc_info=True)
