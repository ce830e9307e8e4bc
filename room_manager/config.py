"""
Configuration and Argument Parsing for the room automation daemon.

Handles CLI argument parsing and validation, and turns the parsed
arguments into a RoomConfig.
"""

import argparse
import dataclasses
import os
from typing import List, Optional, Sequence, Tuple

from room_constants import (
    DEFAULT_PRESET, DEFAULT_ROUTING_VIEWS, MOTION_MODE_LABELS, NAV_BUTTON_COUNT,
    PROGRESS_WATCHDOG_SECONDS, ROOM_PRESETS,
)
from room_core import LayerId, MotionMode, RoomConfig, RoomDevices, RoomPreset
from room_core.states import CONTENT_LAYERS


def validate_transition_time(value: str) -> float:
    """
    Validate a warm-up or cool-down time.

    Must be positive and below the progress watchdog ceiling, otherwise the
    watchdog would always cut the phase short.

    Raises:
        argparse.ArgumentTypeError: If validation fails
    """
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid time: {value!r}")
    if not 0 < seconds < PROGRESS_WATCHDOG_SECONDS:
        raise argparse.ArgumentTypeError(
            f"Time must be > 0 and < {PROGRESS_WATCHDOG_SECONDS:.0f} seconds.")
    return seconds


def validate_positive_time(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid time: {value!r}")
    if seconds <= 0:
        raise argparse.ArgumentTypeError("Time must be > 0 seconds.")
    return seconds


def validate_volume(value: str) -> float:
    try:
        level = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid volume: {value!r}")
    if not 0.0 <= level <= 1.0:
        raise argparse.ArgumentTypeError("Volume must be between 0.0 and 1.0.")
    return level


def validate_motion_mode(value: str) -> MotionMode:
    """
    Accepts a mode label ("Motion On/Off") or name ("auto_on_off").

    Raises:
        argparse.ArgumentTypeError: If the value names no mode
    """
    mode = MotionMode.parse(value)
    if mode is MotionMode.DISABLED and value.strip().upper() not in ("DISABLED", MotionMode.DISABLED.value.upper()):
        raise argparse.ArgumentTypeError(
            f"Unknown motion mode {value!r}. Use one of: {', '.join(MOTION_MODE_LABELS)}")
    return mode


def validate_home_layer(value: str) -> LayerId:
    layer = LayerId.parse(value)
    if layer not in CONTENT_LAYERS:
        names = ", ".join(l.name.lower() for l in CONTENT_LAYERS)
        raise argparse.ArgumentTypeError(f"Home layer must be a content layer ({names}).")
    return layer


def validate_nav_buttons(value: str) -> Tuple[int, ...]:
    """
    Parse a comma-separated list of navigation button numbers, optionally in brackets.

    Returns:
        Tuple of button numbers (1-12)

    Raises:
        argparse.ArgumentTypeError: If validation fails
    """
    text = value.strip("[] ")
    if not text:
        return ()
    try:
        parsed = tuple(int(x) for x in text.split(","))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid format for hidden_nav_buttons: {e}")
    if not all(1 <= x <= NAV_BUTTON_COUNT for x in parsed):
        raise argparse.ArgumentTypeError(f"Navigation buttons must be between 1 and {NAV_BUTTON_COUNT}.")
    return parsed


def validate_name_list(value: str) -> List[str]:
    names = [x.strip() for x in value.split(",") if x.strip()]
    if not names:
        raise argparse.ArgumentTypeError("List must contain at least one name.")
    return names


def parse_arguments(script_file: str = None, argv: Optional[Sequence[str]] = None):
    """
    Parse command-line arguments.

    Args:
        script_file: Path to the main script file (for default log file name)
        argv: Argument list, defaults to sys.argv[1:]

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(description="Room Automation - power sequencing, motion and touch panel control.")

    if script_file:
        default_log_file = os.path.splitext(os.path.basename(script_file))[0] + ".log"
    else:
        default_log_file = "room_automation.log"

    parser.add_argument("--log_level", choices=["DEBUG", "INFO", "NONE"], default="INFO",
                        help="Set logging level. Default is INFO.")

    parser.add_argument("--log_file_name", type=str, default=default_log_file,
                        help=f"Name of the log file. Default is '{default_log_file}'.")

    # Room
    parser.add_argument("--room_name", type=str, default="Room",
                        help="Room name, used for per-room configuration lookups. Default is 'Room'.")
    parser.add_argument("--room_preset", choices=list(ROOM_PRESETS), default=DEFAULT_PRESET,
                        help=f"Timing and volume preset. Default is '{DEFAULT_PRESET}'.")

    # Timing overrides (preset values are used when not set)
    parser.add_argument("--warmup_time", type=validate_transition_time, default=None,
                        help=f"Warm-up seconds, > 0 and < {PROGRESS_WATCHDOG_SECONDS:.0f}. Overrides the preset.")
    parser.add_argument("--cooldown_time", type=validate_transition_time, default=None,
                        help=f"Cool-down seconds, > 0 and < {PROGRESS_WATCHDOG_SECONDS:.0f}. Overrides the preset.")
    parser.add_argument("--motion_timeout", type=validate_positive_time, default=None,
                        help="Seconds without motion before automatic power off. Overrides the preset.")
    parser.add_argument("--grace_period", type=validate_positive_time, default=None,
                        help="Seconds motion is ignored after a manual power off. Overrides the preset.")

    parser.add_argument("--motion_mode", type=validate_motion_mode, default=MotionMode.AUTO_ON_OFF,
                        help=f"Motion policy: {', '.join(repr(m) for m in MOTION_MODE_LABELS)}. "
                             "Default is 'Motion On/Off'.")
    parser.add_argument("--default_volume", type=validate_volume, default=None,
                        help="Program volume (0.0-1.0) applied at power on. Overrides the preset.")

    # Touch panel
    parser.add_argument("--home_layer", type=validate_home_layer, default=LayerId.ROOM_CONTROLS,
                        help="Layer shown when warm-up completes. Default is 'room_controls'.")
    parser.add_argument("--routing_views", type=validate_name_list, default=list(DEFAULT_ROUTING_VIEWS),
                        help="Comma-separated routing sub-view layer names.")
    parser.add_argument("--default_routing_index", type=int, default=0,
                        help="Routing sub-view (0-based) shown by default. Default is 0.")
    parser.add_argument("--hidden_nav_buttons", type=validate_nav_buttons, default=(),
                        help="Comma-separated navigation buttons (1-12) to hide, e.g. '2,11'.")

    # Devices
    parser.add_argument("--displays", type=validate_name_list, default=["Display1"],
                        help="Comma-separated display device names. Default is 'Display1'.")
    parser.add_argument("--gains", type=validate_name_list, default=["ProgramGain"],
                        help="Comma-separated program gain device names. Default is 'ProgramGain'.")

    # REST API
    parser.add_argument("--api_port", type=int, default=8080,
                        help="Port for REST API server. Set to 0 to disable API. Default is 8080.")

    # MQTT / Home Assistant
    parser.add_argument("--mqtt_broker", type=str, default=None,
                        help="MQTT broker hostname. If not set, MQTT is disabled.")
    parser.add_argument("--mqtt_port", type=int, default=1883,
                        help="MQTT broker port. Default is 1883.")
    parser.add_argument("--mqtt_user", type=str, default=None,
                        help="MQTT username (optional).")
    parser.add_argument("--mqtt_pass", type=str, default=None,
                        help="MQTT password (optional).")
    parser.add_argument("--mqtt_topic", type=str, default="room",
                        help="MQTT topic prefix. Default is 'room'.")
    parser.add_argument("--mqtt_ha_discovery", action="store_true", default=True,
                        help="Enable Home Assistant MQTT Discovery. Default is True.")
    parser.add_argument("--no_mqtt_ha_discovery", action="store_false", dest="mqtt_ha_discovery",
                        help="Disable Home Assistant MQTT Discovery.")
    parser.add_argument("--mqtt_devices", action="store_true", default=False,
                        help="Drive devices over MQTT instead of the built-in simulator. Requires --mqtt_broker.")

    args = parser.parse_args(argv)

    if args.mqtt_devices and not args.mqtt_broker:
        parser.error("--mqtt_devices requires --mqtt_broker")
    return args


def build_room_config(args) -> RoomConfig:
    """
    Build a RoomConfig from parsed arguments.

    The named preset supplies every timing value; explicit CLI values
    replace individual fields.
    """
    preset = RoomPreset.named(args.room_preset)
    overrides = {
        "warmup_seconds": args.warmup_time,
        "cooldown_seconds": args.cooldown_time,
        "motion_timeout_seconds": args.motion_timeout,
        "grace_seconds": args.grace_period,
        "default_volume": args.default_volume,
    }
    preset = dataclasses.replace(preset, **{k: v for k, v in overrides.items() if v is not None})

    return RoomConfig(
        room_name=args.room_name,
        preset=preset,
        motion_mode=args.motion_mode,
        home_layer=args.home_layer,
        routing_views=tuple(args.routing_views),
        default_routing_index=args.default_routing_index,
        hidden_nav_buttons=tuple(args.hidden_nav_buttons),
        devices=RoomDevices(displays=list(args.displays), gains=list(args.gains)),
    )
