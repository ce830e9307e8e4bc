"""
Room Constants and Panel Mappings for room automation.

Contains timing defaults, panel layer names, button ids and device
property names, plus the mappings between logical layers and the
touch-panel elements that represent them.
"""

from typing import Dict, List, Tuple


# ==============================================================================
# 1) TIMING DEFAULTS - Used when no per-room configuration is available
# ==============================================================================

DEFAULT_WARMUP_SECONDS = 10.0
DEFAULT_COOLDOWN_SECONDS = 5.0
DEFAULT_MOTION_TIMEOUT_SECONDS = 300.0
DEFAULT_GRACE_SECONDS = 30.0
DEFAULT_VOLUME = 0.7            # Gain fader position 0.0-1.0

PROGRESS_STEPS = 100            # Progress bar ticks per warm-up/cool-down
PROGRESS_WATCHDOG_SECONDS = 300.0  # Forced completion ceiling (5 minutes)

MAX_EVENT_AGE = 5.0             # seconds - queued actions older than this are dropped

# Per-room configuration keys read through DeviceActionPort.read_config
CONFIG_WARMUP = "warmupTime"
CONFIG_COOLDOWN = "cooldownTime"
CONFIG_MOTION_TIMEOUT = "motionTimeout"
CONFIG_GRACE = "motionGracePeriod"


# ==============================================================================
# 2) PANEL LAYERS - Names of the layers on the touch-panel page
# ==============================================================================

LAYER_ALARM = "A01-Alarm"
LAYER_INCOMING_CALL = "B01-IncomingCall"
LAYER_START = "C05-Start"
LAYER_SHUTDOWN_CONFIRM = "D01-ShutdownConfirm"
LAYER_PROGRESS_WARMING = "E01-SystemProgressWarming"
LAYER_PROGRESS_COOLING = "E02-SystemProgressCooling"
LAYER_PROGRESS = "E05-SystemProgress"
LAYER_ROOM_CONTROLS = "H01-RoomControls"
LAYER_CALL_ACTIVE = "I01-CallActive"
LAYER_HELP_LAPTOP = "I02-HelpLaptop"
LAYER_HELP_PC = "I03-HelpPC"
LAYER_HELP_WIRELESS = "I04-HelpWireless"
LAYER_HELP_ROUTING = "I05-HelpRouting"
LAYER_HELP_DIALER = "I06-HelpDialer"
LAYER_HELP_STREAM_MUSIC = "I07-HelpStreamMusic"
LAYER_CONNECT_USB_LAPTOP = "J01-ConnectUSBLaptop"
LAYER_CONNECT_USB_PC = "J02-ConnectUSBPC"
LAYER_ACPR_ACTIVE = "J03-ACPRActive"
LAYER_PRESET_SAVED = "J04-CamPresetSaved"
LAYER_CAMERA_CONTROLS = "J05-CameraControls"
LAYER_HDMI01_DISCONNECTED = "L01-HDMI01Disconnected"
LAYER_LAPTOP = "L05-Laptop"
LAYER_HDMI02_DISCONNECTED = "P01-HDMI02Disconnected"
LAYER_PC = "P05-PC"
LAYER_WIRELESS = "W05-Wireless"
LAYER_ROUTING = "R10-Routing"
LAYER_STREAM_MUSIC = "S05-StreamMusic"
LAYER_DIALER = "V05-Dialer"
LAYER_PROGRAM_VOLUME = "X01-ProgramVolume"
LAYER_NAVBAR = "Y01-Navbar"
LAYER_BASE = "Z01-Base"

BASE_LAYERS: Tuple[str, ...] = (LAYER_PROGRAM_VOLUME, LAYER_NAVBAR, LAYER_BASE)

# Routing sub-views, selected by the routing buttons (index 0 = btnRouting01)
DEFAULT_ROUTING_VIEWS: Tuple[str, ...] = (
    "R01-Routing-Lobby",
    "R02-Routing-WTerrace",
    "R03-Routing-NTerraceWall",
    "R04-Routing-Garden",
    "R05-Routing-NTerraceFloor",
)

# Every non-routing layer the controller manages. Routing views are appended
# per instance because they are configurable.
PANEL_LAYERS: Tuple[str, ...] = (
    LAYER_ALARM, LAYER_INCOMING_CALL, LAYER_START, LAYER_SHUTDOWN_CONFIRM,
    LAYER_PROGRESS_WARMING, LAYER_PROGRESS_COOLING, LAYER_PROGRESS,
    LAYER_ROOM_CONTROLS, LAYER_CALL_ACTIVE,
    LAYER_HELP_LAPTOP, LAYER_HELP_PC, LAYER_HELP_WIRELESS, LAYER_HELP_ROUTING,
    LAYER_HELP_DIALER, LAYER_HELP_STREAM_MUSIC,
    LAYER_CONNECT_USB_LAPTOP, LAYER_CONNECT_USB_PC, LAYER_ACPR_ACTIVE,
    LAYER_PRESET_SAVED, LAYER_CAMERA_CONTROLS,
    LAYER_HDMI01_DISCONNECTED, LAYER_LAPTOP, LAYER_HDMI02_DISCONNECTED, LAYER_PC,
    LAYER_WIRELESS, LAYER_ROUTING, LAYER_STREAM_MUSIC, LAYER_DIALER,
) + BASE_LAYERS

TRANSITION_FADE = "fade"
TRANSITION_NONE = "none"


# ==============================================================================
# 3) PANEL CONTROLS - Buttons and indicators
# ==============================================================================

NAV_BUTTON_COUNT = 12
ROUTING_BUTTON_PREFIX = "btnRouting"


def nav_button(index: int) -> str:
    """Panel id of navigation button `index` (1-based, matches LayerId value)."""
    return f"btnNav{index:02d}"


def routing_button(index: int) -> str:
    """Panel id of routing selector button for 0-based routing view `index`."""
    return f"{ROUTING_BUTTON_PREFIX}{index + 1:02d}"


# Manual power controls, disabled while warming/cooling
POWER_CONTROLS: Tuple[str, ...] = ("btnSystemOnOff", "btnSystemOn", "btnSystemOff", "btnStartSystem", "btnNavShutdown")


# ==============================================================================
# 4) DEVICE PROPERTIES - Names used against DeviceActionPort
# ==============================================================================

PROP_DISPLAY_POWER_ON = "PowerOnTrigger"
PROP_DISPLAY_POWER_OFF = "PowerOffTrigger"
PROP_GAIN = "gain"
PROP_MUTE = "mute"
PROP_CALL_DECLINE = "call.decline"
PROP_VIDEO_PRIVACY = "toggle.privacy"
PROP_TRACKING_BYPASS = "TrackingBypass"
PROP_SYSTEM_ON_TRIGGER = "btnSystemOnTrig"
PROP_SYSTEM_OFF_TRIGGER = "btnSystemOffTrig"


# ==============================================================================
# 5) ROOM PRESETS - warm-up, cool-down, motion timeout, grace, default volume
# ==============================================================================

ROOM_PRESETS: Dict[str, Tuple[float, float, float, float, float]] = {
    "Conference Room": (15, 10, 600, 60, 0.7),
    "Huddle Room":     (5, 3, 300, 30, 0.6),
    "Default":         (10, 5, 300, 30, 0.7),
    "Custom Room":     (10, 5, 300, 30, 0.7),
}

DEFAULT_PRESET = "Default"

MOTION_MODE_LABELS: List[str] = ["Motion On/Off", "Motion Off", "Motion Disabled"]


def log_panel(logger, kind: str, name: str, value=None, transition: str = None):
    """
    Log a panel write in consistent format.

    Args:
        logger: Logger instance to use
        kind: "layer", "highlight", "enabled", "visible" or "progress"
        name: Panel element name
        value: Value written (if applicable)
        transition: Layer transition style (if applicable)
    """
    if transition:
        logger.debug(f"PANEL {kind}: {name}={value} ({transition})")
    else:
        logger.debug(f"PANEL {kind}: {name}={value}")
