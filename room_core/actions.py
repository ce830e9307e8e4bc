"""
Room action dataclasses - domain actions for room control.

These represent what the system should do, independent of input source.
All input adapters (panel, REST, MQTT) create these actions and submit to the queue.
"""
from dataclasses import dataclass
from typing import Optional, Union

from .states import MotionMode, PowerTrigger, PrivacyKind, Signal


@dataclass(frozen=True)
class SetPower:
    """Request room power on (True) or off (False). None = toggle."""
    state: Optional[bool] = None
    trigger: PowerTrigger = PowerTrigger.MANUAL


@dataclass(frozen=True)
class MotionEdge:
    """Motion sensor presence changed."""
    present: bool


@dataclass(frozen=True)
class SetMotionMode:
    """Select the motion auto-power policy. Unknown values disable motion."""
    mode: Union[MotionMode, str]


@dataclass(frozen=True)
class SignalChange:
    """An external boolean signal (call, USB, HDMI, help button, alarm...) changed."""
    signal: Signal
    value: bool


@dataclass(frozen=True)
class RequestLayer:
    """Navigate the panel to a primary layer (LayerId, number or name)."""
    layer: object


@dataclass(frozen=True)
class SelectRouting:
    """Select a routing sub-view (0-based)."""
    index: int


@dataclass(frozen=True)
class SetVolume:
    """Set program volume on all gains (0.0-1.0)."""
    level: float


@dataclass(frozen=True)
class SetMute:
    """Set or toggle program mute. None = toggle."""
    state: Optional[bool] = None


@dataclass(frozen=True)
class SetPrivacy:
    """Set or toggle audio (mic) or video (camera) privacy. None = toggle."""
    kind: PrivacyKind
    state: Optional[bool] = None


# Union type for type hints
RoomAction = Union[
    SetPower, MotionEdge, SetMotionMode, SignalChange, RequestLayer,
    SelectRouting, SetVolume, SetMute, SetPrivacy,
]


@dataclass
class QueuedAction:
    """
    Wrapper for actions in the queue, carrying timestamp for stale event filtering.

    Input adapters create QueuedAction(action=..., timestamp=time.time())
    and submit to the queue. Consumer checks timestamp to discard stale events.
    """
    action: RoomAction
    timestamp: float
