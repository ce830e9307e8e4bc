"""
Motion-based automatic power.

Turns presence edges from the occupancy sensor into power requests. Two
timers keep it from flapping: the motion timeout (no presence for N
seconds before powering off) and the grace window after a manual
shutdown (presence is ignored so people leaving the room do not turn it
straight back on).
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from room_constants import (
    CONFIG_GRACE, CONFIG_MOTION_TIMEOUT,
    DEFAULT_GRACE_SECONDS, DEFAULT_MOTION_TIMEOUT_SECONDS,
)

from .ports import DeviceActionPort, read_duration
from .scheduler import Scheduler, TimerSlots
from .states import MotionMode, PowerState, PowerTrigger

logger = logging.getLogger(__name__)

# request(on, trigger)
PowerRequest = Callable[[bool, PowerTrigger], None]


@dataclass
class MotionTimerState:
    last_motion_edge: Optional[bool] = None
    timeout_armed: bool = False
    grace_armed: bool = False


class MotionAutoPowerMonitor:
    def __init__(self, scheduler: Scheduler, device: DeviceActionPort, room: str,
                 power_state: Callable[[], PowerState], request_power: PowerRequest,
                 mode=MotionMode.DISABLED,
                 timeout_seconds: float = DEFAULT_MOTION_TIMEOUT_SECONDS,
                 grace_seconds: float = DEFAULT_GRACE_SECONDS):
        """
        Args:
            scheduler: Event loop scheduler
            device: Port used for per-room timeout/grace overrides
            room: Room name passed to read_config
            power_state: Getter for the current PowerState
            request_power: Called with (on, PowerTrigger.MOTION)
            mode: Initial MotionMode (or label); unknown values disable motion
            timeout_seconds: Fallback motion timeout
            grace_seconds: Fallback grace window after manual power-off
        """
        self._timers = TimerSlots(scheduler)
        self._device = device
        self._room = room
        self._power_state = power_state
        self._request_power = request_power
        self._timeout_fallback = timeout_seconds
        self._grace_fallback = grace_seconds
        self._mode = MotionMode.parse(mode)
        self.state = MotionTimerState()

    @property
    def mode(self) -> MotionMode:
        return self._mode

    def set_mode(self, mode) -> MotionMode:
        new_mode = MotionMode.parse(mode)
        if new_mode is MotionMode.DISABLED and str(getattr(mode, "value", mode)).strip().upper() \
                not in ("DISABLED", MotionMode.DISABLED.value.upper()):
            logger.info(f"Unknown motion mode {mode!r}, motion disabled")
        self._mode = new_mode
        if not new_mode.allows_auto_off:
            self._cancel_timeout()
        logger.info(f"Motion mode: {new_mode.value}")
        return new_mode

    def timeout_seconds(self) -> float:
        return read_duration(self._device, self._room, CONFIG_MOTION_TIMEOUT,
                             self._timeout_fallback, DEFAULT_MOTION_TIMEOUT_SECONDS)

    def grace_seconds(self) -> float:
        return read_duration(self._device, self._room, CONFIG_GRACE,
                             self._grace_fallback, DEFAULT_GRACE_SECONDS)

    def on_motion(self, present: bool):
        present = bool(present)
        self.state.last_motion_edge = present

        if present:
            self._cancel_timeout()
            if not self._mode.allows_auto_on:
                return
            if self.state.grace_armed:
                logger.debug("Motion detected during grace period, ignored")
                return
            if self._power_state() is PowerState.OFF:
                logger.info("Motion detected, requesting power on")
                self._request_power(True, PowerTrigger.MOTION)
        elif self._mode.allows_auto_off:
            timeout = self.timeout_seconds()
            self.state.timeout_armed = True
            self._timers.start("motion_timeout", timeout, self._on_timeout)
            logger.debug(f"No motion, power-off timeout armed ({timeout:.0f}s)")

    def arm_grace(self):
        """Ignore presence for the grace window (after a manual shutdown)."""
        grace = self.grace_seconds()
        self.state.grace_armed = True
        self._timers.start("grace", grace, self._on_grace_expired)
        logger.info(f"Motion grace period armed ({grace:.0f}s)")

    def _on_grace_expired(self):
        self.state.grace_armed = False
        logger.debug("Motion grace period ended")

    def _on_timeout(self):
        self.state.timeout_armed = False
        if self.state.last_motion_edge is False:
            logger.info("Motion timeout expired, requesting power off")
            self._request_power(False, PowerTrigger.MOTION)

    def _cancel_timeout(self):
        self._timers.stop("motion_timeout")
        self.state.timeout_armed = False

    def stop(self):
        self._timers.stop_all()
        self.state.timeout_armed = False
        self.state.grace_armed = False

    def get_state(self) -> dict:
        return {
            "mode": self._mode.value,
            "last_motion": self.state.last_motion_edge,
            "timeout_armed": self.state.timeout_armed,
            "grace_armed": self.state.grace_armed,
        }
