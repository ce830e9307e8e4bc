"""Room Core - power sequencing, motion auto-power and panel layer navigation."""
from .actions import (
    RoomAction,
    SetPower,
    MotionEdge,
    SetMotionMode,
    SignalChange,
    RequestLayer,
    SelectRouting,
    SetVolume,
    SetMute,
    SetPrivacy,
    QueuedAction,
)
from .exceptions import RoomControlError, DeviceActionError, ConfigurationError
from .layers import DEFAULT_TRANSITIONS, LayerNavigator, TransitionTable, compose_layers
from .panel import PanelPort, PanelState
from .ports import DeviceActionPort, InMemoryDevicePort, SafeDevicePort
from .room import RoomConfig, RoomController, RoomDevices, RoomPreset
from .scheduler import Scheduler, TimerSlots
from .states import (
    Direction,
    LayerId,
    MotionMode,
    PowerState,
    PowerTransition,
    PowerTrigger,
    PrivacyKind,
    Signal,
    SignalState,
)

__all__ = [
    'RoomAction',
    'SetPower',
    'MotionEdge',
    'SetMotionMode',
    'SignalChange',
    'RequestLayer',
    'SelectRouting',
    'SetVolume',
    'SetMute',
    'SetPrivacy',
    'QueuedAction',
    'RoomControlError',
    'DeviceActionError',
    'ConfigurationError',
    'DEFAULT_TRANSITIONS',
    'LayerNavigator',
    'TransitionTable',
    'compose_layers',
    'PanelPort',
    'PanelState',
    'DeviceActionPort',
    'InMemoryDevicePort',
    'SafeDevicePort',
    'RoomConfig',
    'RoomController',
    'RoomDevices',
    'RoomPreset',
    'Scheduler',
    'TimerSlots',
    'Direction',
    'LayerId',
    'MotionMode',
    'PowerState',
    'PowerTransition',
    'PowerTrigger',
    'PrivacyKind',
    'Signal',
    'SignalState',
]
