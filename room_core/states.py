"""
Room state enumerations.

Power state, motion policy, panel layers and external signals shared by
the sequencer, the motion monitor and the layer navigator.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PowerState(Enum):
    OFF = "off"
    WARMING = "warming"
    ON = "on"
    COOLING = "cooling"


class PowerTrigger(Enum):
    """Who asked for a power change. Only MANUAL shutdowns arm the grace window."""
    MANUAL = "manual"
    MOTION = "motion"


class Direction(Enum):
    ASCENDING = "ascending"    # warm-up, 0 -> 100
    DESCENDING = "descending"  # cool-down, 100 -> 0


class MotionMode(Enum):
    AUTO_ON_OFF = "Motion On/Off"
    AUTO_OFF_ONLY = "Motion Off"
    DISABLED = "Motion Disabled"

    @classmethod
    def parse(cls, value) -> "MotionMode":
        """
        Parse an operator-selected policy.

        Accepts a MotionMode, its label ("Motion On/Off"), or its name
        ("auto_on_off"). Anything else is treated as DISABLED so an invalid
        setting never powers the room unexpectedly.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            for mode in cls:
                if text == mode.value or text.upper() == mode.name:
                    return mode
        return cls.DISABLED

    @property
    def allows_auto_off(self) -> bool:
        return self in (MotionMode.AUTO_ON_OFF, MotionMode.AUTO_OFF_ONLY)

    @property
    def allows_auto_on(self) -> bool:
        return self is MotionMode.AUTO_ON_OFF


class LayerId(Enum):
    """Primary panel layers. Values match the navigation button numbers."""
    ALARM = 1
    INCOMING_CALL = 2
    START = 3
    WARMING = 4
    COOLING = 5
    ROOM_CONTROLS = 6
    PC = 7
    LAPTOP = 8
    WIRELESS = 9
    ROUTING = 10
    DIALER = 11
    STREAM_MUSIC = 12

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()

    @classmethod
    def parse(cls, value) -> Optional["LayerId"]:
        """Resolve a LayerId from an enum, a button number or a name. None if unknown."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                return None
        if isinstance(value, str):
            key = value.strip().upper().replace(" ", "_").replace("-", "_")
            if key.isdigit():
                return cls.parse(int(key))
            return cls.__members__.get(key)
        return None


# Layers that show room content; the user moves freely between these.
CONTENT_LAYERS = (
    LayerId.ROOM_CONTROLS, LayerId.PC, LayerId.LAPTOP, LayerId.WIRELESS,
    LayerId.ROUTING, LayerId.DIALER, LayerId.STREAM_MUSIC,
)


class Signal(Enum):
    """External boolean signals fed to the controller."""
    HDMI01_CONNECTED = "hdmi01_connected"
    HDMI02_CONNECTED = "hdmi02_connected"
    HDMI01_ACTIVE = "hdmi01_active"
    HDMI02_ACTIVE = "hdmi02_active"
    USB_LAPTOP = "usb_laptop"
    USB_PC = "usb_pc"
    OFF_HOOK_LAPTOP = "off_hook_laptop"
    OFF_HOOK_PC = "off_hook_pc"
    ACPR_BYPASS = "acpr_bypass"
    CALL_ACTIVE = "call_active"
    INCOMING_CALL = "incoming_call"
    PRESET_SAVED = "preset_saved"
    HELP_LAPTOP = "help_laptop"
    HELP_PC = "help_pc"
    HELP_WIRELESS = "help_wireless"
    HELP_ROUTING = "help_routing"
    HELP_DIALER = "help_dialer"
    HELP_STREAM_MUSIC = "help_stream_music"
    SHUTDOWN_PROMPT = "shutdown_prompt"
    FIRE_ALARM = "fire_alarm"

    @classmethod
    def parse(cls, value) -> Optional["Signal"]:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for signal in cls:
                if key == signal.value:
                    return signal
        return None


class PrivacyKind(Enum):
    AUDIO = "audio"
    VIDEO = "video"


@dataclass(frozen=True)
class PowerTransition:
    """Emitted by the power sequencer on every state change."""
    previous: PowerState
    current: PowerState
    trigger: Optional[PowerTrigger] = None
    forced: bool = False   # True when the watchdog completed the phase


class SignalState:
    """Current value of every external Signal (default False)."""

    def __init__(self):
        self._values = {signal: False for signal in Signal}

    def get(self, signal: Signal) -> bool:
        return self._values[signal]

    __getitem__ = get

    def set(self, signal: Signal, value: bool) -> bool:
        """Store a value. Returns True if it changed."""
        value = bool(value)
        if self._values[signal] == value:
            return False
        self._values[signal] = value
        return True

    def snapshot(self) -> dict:
        return {signal.value: value for signal, value in self._values.items()}
