"""
Room controller - owns every piece of room state and wires them together.

One instance per room. All methods except get_state() and the callback
registration must be called from the event loop thread (the daemon's
consumer); get_state() hands out a copy of the last published snapshot
and is safe from any thread.
"""
import copy
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from room_constants import (
    DEFAULT_PRESET, DEFAULT_ROUTING_VIEWS, PROGRESS_WATCHDOG_SECONDS, ROOM_PRESETS,
)

from .actions import (
    MotionEdge, RequestLayer, RoomAction, SelectRouting, SetMotionMode, SetMute,
    SetPower, SetPrivacy, SetVolume, SignalChange,
)
from .av import AudioVideoControls, RoomDevices
from .exceptions import ConfigurationError
from .layers import DEFAULT_TRANSITIONS, LayerNavigator, TransitionTable
from .motion import MotionAutoPowerMonitor
from .panel import PanelPort, PanelState
from .ports import DeviceActionPort, SafeDevicePort
from .power import PowerSequencer
from .progress import ProgressAnimator
from .scheduler import Scheduler
from .states import (
    LayerId, MotionMode, PowerState, PowerTransition, PowerTrigger, Signal, SignalState,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoomPreset:
    warmup_seconds: float
    cooldown_seconds: float
    motion_timeout_seconds: float
    grace_seconds: float
    default_volume: float

    @classmethod
    def named(cls, name: str) -> "RoomPreset":
        """Look up a built-in preset ("Conference Room", "Huddle Room", ...)."""
        try:
            return cls(*ROOM_PRESETS[name])
        except KeyError:
            raise ConfigurationError(f"Unknown room preset: {name!r}") from None


@dataclass
class RoomConfig:
    room_name: str = "Room"
    preset: RoomPreset = field(default_factory=lambda: RoomPreset.named(DEFAULT_PRESET))
    motion_mode: MotionMode = MotionMode.AUTO_ON_OFF
    home_layer: LayerId = LayerId.ROOM_CONTROLS
    routing_views: Tuple[str, ...] = DEFAULT_ROUTING_VIEWS
    default_routing_index: int = 0
    hidden_nav_buttons: Tuple[int, ...] = ()
    devices: RoomDevices = field(default_factory=RoomDevices)
    transitions: TransitionTable = DEFAULT_TRANSITIONS
    watchdog_seconds: float = PROGRESS_WATCHDOG_SECONDS


class RoomController:
    """Builds the room components from a RoomConfig and dispatches actions to them."""

    def __init__(self, config: RoomConfig, device: DeviceActionPort,
                 panel: Optional[PanelPort] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.scheduler = Scheduler(clock)
        self.device = device if isinstance(device, SafeDevicePort) else SafeDevicePort(device)
        self.panel = panel if panel is not None else PanelState()
        self.signals = SignalState()

        self.av = AudioVideoControls(self.device, config.devices)
        self.animator = ProgressAnimator(self.scheduler, self.panel,
                                         watchdog_seconds=config.watchdog_seconds)
        self.power = PowerSequencer(
            self.device, self.av, self.panel, self.animator, config.room_name,
            warmup_seconds=config.preset.warmup_seconds,
            cooldown_seconds=config.preset.cooldown_seconds,
            default_volume=config.preset.default_volume,
        )
        self.motion = MotionAutoPowerMonitor(
            self.scheduler, self.device, config.room_name,
            power_state=lambda: self.power.state,
            request_power=self.power.request_power,
            mode=config.motion_mode,
            timeout_seconds=config.preset.motion_timeout_seconds,
            grace_seconds=config.preset.grace_seconds,
        )
        self.navigator = LayerNavigator(
            self.panel, self.signals,
            table=config.transitions,
            home_layer=config.home_layer,
            routing_views=config.routing_views,
            default_routing_index=config.default_routing_index,
            hidden_nav_buttons=config.hidden_nav_buttons,
        )

        # Navigator first so the layer is already switched when later listeners run
        self.power.add_listener(self.navigator.on_power_transition)
        self.power.add_listener(self._on_power_transition)

        self._lock = threading.Lock()
        self._state_callbacks: List[Callable[[dict], None]] = []
        self._last_notified_state: Optional[dict] = None
        self._snapshot: dict = {}
        self._started = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self):
        if self._started:
            return
        self._started = True
        self.navigator.start()
        self.panel.set_progress_value(0)
        self.panel.set_progress_text("0%")
        logger.info(f"Room '{self.config.room_name}' ready (motion: {self.motion.mode.value})")
        self._notify_state_change(force=True)

    def stop(self):
        self.animator.stop()
        self.motion.stop()

    # =========================================================================
    # Event loop integration
    # =========================================================================

    def run_due(self) -> int:
        """Fire due timers, then publish state if it changed."""
        fired = self.scheduler.run_due()
        if fired:
            self._notify_state_change()
        return fired

    def time_until_next(self) -> Optional[float]:
        return self.scheduler.time_until_next()

    def dispatch(self, action: RoomAction):
        """Run one action to completion and publish the resulting state."""
        if isinstance(action, SetPower):
            self._handle_power(action)
        elif isinstance(action, MotionEdge):
            self.motion.on_motion(action.present)
        elif isinstance(action, SetMotionMode):
            self.motion.set_mode(action.mode)
        elif isinstance(action, SignalChange):
            self.set_signal(action.signal, action.value)
        elif isinstance(action, RequestLayer):
            self.navigator.request_layer(action.layer)
        elif isinstance(action, SelectRouting):
            self.navigator.select_routing(action.index)
        elif isinstance(action, SetVolume):
            self.av.set_volume(action.level)
        elif isinstance(action, SetMute):
            self.av.set_mute(not self.av.muted if action.state is None else action.state)
        elif isinstance(action, SetPrivacy):
            current = self.av.privacy(action.kind)
            self.av.set_privacy(action.kind, not current if action.state is None else action.state)
        else:
            logger.debug(f"Unknown action type: {type(action).__name__}")
            return
        self._notify_state_change()

    # =========================================================================
    # Handlers
    # =========================================================================

    def _handle_power(self, action: SetPower):
        if action.state is None:
            self.power.toggle(action.trigger)
        else:
            self.power.request_power(action.state, action.trigger)

    def _on_power_transition(self, event: PowerTransition):
        if event.current is PowerState.COOLING and event.trigger is PowerTrigger.MANUAL:
            self.motion.arm_grace()
            if self.signals.set(Signal.SHUTDOWN_PROMPT, False):
                self.navigator.on_signal(Signal.SHUTDOWN_PROMPT, False)

    def set_signal(self, signal: Signal, value: bool) -> bool:
        """
        Update an external signal and everything derived from it.

        Returns:
            True if the value changed
        """
        if not self.signals.set(signal, value):
            logger.debug(f"Signal {signal.value} unchanged ({bool(value)})")
            return False
        logger.info(f"Signal {signal.value} -> {bool(value)}")

        if signal is Signal.FIRE_ALARM:
            self._on_fire_alarm(bool(value))
        elif signal is Signal.CALL_ACTIVE and self.power.state is PowerState.ON:
            # Camera follows the call: private when nobody is connected
            self.av.set_video_privacy(not value)

        self.navigator.on_signal(signal, bool(value))
        return True

    def _on_fire_alarm(self, active: bool):
        if active:
            logger.warning("Fire alarm active: muting system, displays off")
            self.av.set_system_mute(True)
            self.av.power_displays(False)
        elif self.power.state in (PowerState.WARMING, PowerState.ON):
            logger.info("Fire alarm cleared: restoring audio and displays")
            self.av.set_system_mute(False)
            self.av.power_displays(True)
        else:
            logger.info("Fire alarm cleared")

    # =========================================================================
    # State publication
    # =========================================================================

    def add_state_callback(self, callback: Callable[[dict], None]):
        """Register a callback to be called when state changes."""
        self._state_callbacks.append(callback)

    def remove_state_callback(self, callback: Callable[[dict], None]):
        if callback in self._state_callbacks:
            self._state_callbacks.remove(callback)

    def _build_state(self) -> dict:
        state = {
            "room": self.config.room_name,
            **self.power.get_state(),
            "progress": self.animator.value,
            **self.navigator.get_state(),
            "motion": self.motion.get_state(),
            **self.av.get_state(),
            "signals": self.signals.snapshot(),
            "alarm": self.signals[Signal.FIRE_ALARM],
        }
        return state

    def _notify_state_change(self, force: bool = False):
        """Rebuild the snapshot and call callbacks if it changed (or forced)."""
        state = self._build_state()
        with self._lock:
            self._snapshot = state
            if not force and state == self._last_notified_state:
                return
            self._last_notified_state = copy.deepcopy(state)
        for callback in list(self._state_callbacks):
            try:
                callback(copy.deepcopy(state))
            except Exception as e:
                logger.error(f"State callback error: {e}")

    def get_state(self) -> dict:
        """Last published snapshot (a copy, safe from any thread)."""
        with self._lock:
            if not self._snapshot:
                self._snapshot = self._build_state()
            return copy.deepcopy(self._snapshot)
