"""
Audio/video side effects.

Thin layer over the device port that knows which device and property
carries each room function (program volume, mic privacy, camera privacy,
display power, system mute, call control). Remembers the last value it
wrote so the room snapshot can report it without polling hardware.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from room_constants import (
    PROP_CALL_DECLINE, PROP_DISPLAY_POWER_OFF, PROP_DISPLAY_POWER_ON,
    PROP_GAIN, PROP_MUTE, PROP_SYSTEM_OFF_TRIGGER, PROP_SYSTEM_ON_TRIGGER,
    PROP_TRACKING_BYPASS, PROP_VIDEO_PRIVACY,
)

from .ports import DeviceActionPort
from .states import PrivacyKind

logger = logging.getLogger(__name__)


@dataclass
class RoomDevices:
    """Names of the external devices this room drives. None = not fitted."""
    call_sync: Optional[str] = "CallSync"
    video_bridge: Optional[str] = "VideoBridge"
    system_mute: Optional[str] = "SystemMute"
    camera_acpr: Optional[str] = "CameraACPR"
    system: Optional[str] = "System"    # target of the system on/off triggers
    displays: List[str] = field(default_factory=lambda: ["Display1"])
    gains: List[str] = field(default_factory=lambda: ["ProgramGain"])


class AudioVideoControls:
    def __init__(self, device: DeviceActionPort, devices: RoomDevices):
        self._device = device
        self.devices = devices

        self.volume: float = 0.0
        self.muted: bool = False
        self.audio_privacy: bool = False
        self.video_privacy: bool = False
        self.system_muted: bool = False
        self.displays_on: bool = False

    # --- Audio ---

    def set_volume(self, level: float):
        level = max(0.0, min(1.0, float(level)))
        for gain in self.devices.gains:
            self._device.set_numeric(gain, PROP_GAIN, level)
        self.volume = level
        logger.debug(f"Volume set to {level:.2f} on {len(self.devices.gains)} gain(s)")

    def set_mute(self, state: bool):
        for gain in self.devices.gains:
            self._device.set_boolean(gain, PROP_MUTE, state)
        self.muted = bool(state)

    def set_audio_privacy(self, state: bool):
        """Mic privacy is the call sync mute."""
        if self.devices.call_sync:
            self._device.set_boolean(self.devices.call_sync, PROP_MUTE, state)
        self.audio_privacy = bool(state)

    def set_system_mute(self, state: bool):
        if self.devices.system_mute:
            self._device.set_boolean(self.devices.system_mute, PROP_MUTE, state)
        self.system_muted = bool(state)

    # --- Video ---

    def set_video_privacy(self, state: bool):
        """Camera privacy on the video bridge; ACPR tracking is bypassed while private."""
        if self.devices.video_bridge:
            self._device.set_boolean(self.devices.video_bridge, PROP_VIDEO_PRIVACY, state)
        if self.devices.camera_acpr:
            self._device.set_boolean(self.devices.camera_acpr, PROP_TRACKING_BYPASS, state)
        self.video_privacy = bool(state)

    def set_privacy(self, kind: PrivacyKind, state: bool):
        if kind is PrivacyKind.AUDIO:
            self.set_audio_privacy(state)
        else:
            self.set_video_privacy(state)

    def privacy(self, kind: PrivacyKind) -> bool:
        return self.audio_privacy if kind is PrivacyKind.AUDIO else self.video_privacy

    def power_displays(self, on: bool):
        prop = PROP_DISPLAY_POWER_ON if on else PROP_DISPLAY_POWER_OFF
        for display in self.devices.displays:
            self._device.trigger(display, prop)
        self.displays_on = bool(on)
        logger.debug(f"Displays {'on' if on else 'off'} ({len(self.devices.displays)})")

    # --- System / call ---

    def trigger_system(self, on: bool):
        if self.devices.system:
            self._device.trigger(self.devices.system, PROP_SYSTEM_ON_TRIGGER if on else PROP_SYSTEM_OFF_TRIGGER)

    def end_call(self):
        if self.devices.call_sync:
            logger.debug("Ending calls")
            self._device.trigger(self.devices.call_sync, PROP_CALL_DECLINE)

    def get_state(self) -> dict:
        return {
            "volume": round(self.volume, 3),
            "mute": self.muted,
            "audio_privacy": self.audio_privacy,
            "video_privacy": self.video_privacy,
            "system_mute": self.system_muted,
            "displays_on": self.displays_on,
        }
