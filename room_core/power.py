"""
Power sequencer - the Off/Warming/On/Cooling state machine.

Power-on and power-off are never instant: each starts a timed phase whose
end is reported by the progress animator (or its watchdog). Manual power
controls are locked for the duration of a phase, and a power request that
does not match the current state is ignored rather than queued.
"""
import logging
from typing import Callable, List, Optional

from room_constants import (
    CONFIG_COOLDOWN, CONFIG_WARMUP, DEFAULT_COOLDOWN_SECONDS, DEFAULT_VOLUME,
    DEFAULT_WARMUP_SECONDS, POWER_CONTROLS,
)

from .av import AudioVideoControls
from .panel import PanelPort
from .ports import DeviceActionPort, read_duration
from .progress import ProgressAnimator
from .states import Direction, PowerState, PowerTransition, PowerTrigger

logger = logging.getLogger(__name__)

TransitionCallback = Callable[[PowerTransition], None]


class PowerSequencer:
    """
    Owns PowerState. Entry side effects run before listeners are told about
    the new state; completion only ever comes from the animator.
    """

    def __init__(self, device: DeviceActionPort, av: AudioVideoControls, panel: PanelPort,
                 animator: ProgressAnimator, room: str,
                 warmup_seconds: Optional[float] = None, cooldown_seconds: Optional[float] = None,
                 default_volume: float = DEFAULT_VOLUME):
        """
        Args:
            device: Safe device port, used for per-room duration overrides
            av: Audio/video side effects
            panel: Panel port, for locking the power controls
            animator: Progress animator whose completion ends each phase
            room: Room name passed to read_config
            warmup_seconds: Preset warm-up, used when the room does not override it
            cooldown_seconds: Preset cool-down, used when the room does not override it
            default_volume: Program volume applied at power-on
        """
        self._device = device
        self._av = av
        self._panel = panel
        self._animator = animator
        self._room = room
        self._warmup_fallback = warmup_seconds
        self._cooldown_fallback = cooldown_seconds
        self.default_volume = default_volume

        self._state = PowerState.OFF
        self._last_trigger: Optional[PowerTrigger] = None
        self._listeners: List[TransitionCallback] = []

        animator.add_listener(self._on_progress_complete)

    @property
    def state(self) -> PowerState:
        return self._state

    @property
    def last_trigger(self) -> Optional[PowerTrigger]:
        return self._last_trigger

    def add_listener(self, callback: TransitionCallback):
        self._listeners.append(callback)

    def remove_listener(self, callback: TransitionCallback):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def warmup_seconds(self) -> float:
        return read_duration(self._device, self._room, CONFIG_WARMUP,
                             self._warmup_fallback, DEFAULT_WARMUP_SECONDS)

    def cooldown_seconds(self) -> float:
        return read_duration(self._device, self._room, CONFIG_COOLDOWN,
                             self._cooldown_fallback, DEFAULT_COOLDOWN_SECONDS)

    def request_power(self, on: bool, trigger: PowerTrigger = PowerTrigger.MANUAL) -> bool:
        if on:
            return self.request_power_on(trigger)
        return self.request_power_off(trigger)

    def toggle(self, trigger: PowerTrigger = PowerTrigger.MANUAL) -> bool:
        """OFF -> on, ON -> off; ignored mid-transition."""
        if self._state is PowerState.OFF:
            return self.request_power_on(trigger)
        if self._state is PowerState.ON:
            return self.request_power_off(trigger)
        logger.debug(f"Power toggle ignored while {self._state.value}")
        return False

    def request_power_on(self, trigger: PowerTrigger = PowerTrigger.MANUAL) -> bool:
        if self._state is not PowerState.OFF:
            logger.debug(f"Power on ({trigger.value}) ignored: state is {self._state.value}")
            return False

        duration = self.warmup_seconds()
        logger.info(f"Powering system on ({trigger.value}), warm-up {duration:.1f}s")

        self._set_power_controls(False)
        self._av.trigger_system(True)
        self._av.power_displays(True)
        self._av.set_volume(self.default_volume)
        self._av.set_mute(False)
        self._av.set_audio_privacy(True)

        self._animator.start(duration, Direction.ASCENDING)
        self._transition(PowerState.WARMING, trigger)
        return True

    def request_power_off(self, trigger: PowerTrigger = PowerTrigger.MANUAL) -> bool:
        if self._state is not PowerState.ON:
            logger.debug(f"Power off ({trigger.value}) ignored: state is {self._state.value}")
            return False

        duration = self.cooldown_seconds()
        logger.info(f"Powering system off ({trigger.value}), cool-down {duration:.1f}s")

        self._set_power_controls(False)
        self._av.trigger_system(False)
        self._av.power_displays(False)
        self._av.set_audio_privacy(True)
        self._av.set_video_privacy(True)
        self._av.set_mute(True)
        self._av.end_call()

        self._animator.start(duration, Direction.DESCENDING)
        self._transition(PowerState.COOLING, trigger)
        return True

    def _on_progress_complete(self, direction: Direction, forced: bool):
        if direction is Direction.ASCENDING and self._state is PowerState.WARMING:
            target = PowerState.ON
        elif direction is Direction.DESCENDING and self._state is PowerState.COOLING:
            target = PowerState.OFF
        else:
            logger.debug(f"Progress completion ({direction.value}) ignored in state {self._state.value}")
            return

        if forced:
            logger.warning(f"{self._state.value.capitalize()} forced complete by watchdog")
        self._set_power_controls(True)
        self._transition(target, self._last_trigger, forced=forced)

    def _set_power_controls(self, enabled: bool):
        for control in POWER_CONTROLS:
            self._panel.set_control_enabled(control, enabled)

    def _transition(self, new_state: PowerState, trigger: Optional[PowerTrigger], forced: bool = False):
        previous = self._state
        self._state = new_state
        self._last_trigger = trigger
        logger.info(f"Power state: {previous.value} -> {new_state.value}"
                    f"{' (forced)' if forced else ''}")

        event = PowerTransition(previous, new_state, trigger, forced)
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Power transition listener error: {e}", exc_info=True)

    def get_state(self) -> dict:
        return {
            "power": self._state.value,
            "warming": self._state is PowerState.WARMING,
            "cooling": self._state is PowerState.COOLING,
            "trigger": self._last_trigger.value if self._last_trigger else None,
        }
