import argparse

import pytest

from room_constants import DEFAULT_ROUTING_VIEWS
from room_core import LayerId, MotionMode
from room_manager import build_room_config, parse_arguments
from room_manager.config import (
    validate_home_layer, validate_motion_mode, validate_nav_buttons, validate_transition_time,
    validate_volume,
)


def test_defaults():
    args = parse_arguments("room_automation.py", argv=[])
    assert args.log_level == "INFO"
    assert args.log_file_name == "room_automation.log"
    assert args.api_port == 8080
    assert args.motion_mode is MotionMode.AUTO_ON_OFF
    assert args.mqtt_broker is None
    assert args.mqtt_ha_discovery is True

    config = build_room_config(args)
    assert config.room_name == "Room"
    assert config.preset.warmup_seconds == 10
    assert config.home_layer is LayerId.ROOM_CONTROLS
    assert config.routing_views == DEFAULT_ROUTING_VIEWS
    assert config.hidden_nav_buttons == ()


def test_preset_with_overrides():
    args = parse_arguments(argv=[
        "--room_name", "Boardroom",
        "--room_preset", "Conference Room",
        "--cooldown_time", "7.5",
        "--default_volume", "0.4",
        "--motion_mode", "Motion Off",
        "--home_layer", "dialer",
        "--hidden_nav_buttons", "[2,11]",
        "--displays", "Left, Right",
    ])
    config = build_room_config(args)

    assert config.room_name == "Boardroom"
    assert config.preset.warmup_seconds == 15
    assert config.preset.cooldown_seconds == 7.5
    assert config.preset.default_volume == 0.4
    assert config.motion_mode is MotionMode.AUTO_OFF_ONLY
    assert config.home_layer is LayerId.DIALER
    assert config.hidden_nav_buttons == (2, 11)
    assert config.devices.displays == ["Left", "Right"]


@pytest.mark.parametrize("argv", [
    ["--warmup_time", "0"],
    ["--warmup_time", "300"],
    ["--cooldown_time", "abc"],
    ["--default_volume", "1.5"],
    ["--motion_mode", "sometimes"],
    ["--home_layer", "start"],
    ["--hidden_nav_buttons", "0,13"],
    ["--room_preset", "Ballroom"],
    ["--mqtt_devices"],
])
def test_invalid_arguments_exit(argv):
    with pytest.raises(SystemExit):
        parse_arguments(argv=argv)


def test_mqtt_options():
    args = parse_arguments(argv=["--mqtt_broker", "broker.local", "--mqtt_devices", "--no_mqtt_ha_discovery"])
    assert args.mqtt_broker == "broker.local"
    assert args.mqtt_devices is True
    assert args.mqtt_ha_discovery is False


def test_validators():
    assert validate_transition_time("12") == 12.0
    assert validate_volume("0") == 0.0
    assert validate_motion_mode("Motion Disabled") is MotionMode.DISABLED
    assert validate_motion_mode("disabled") is MotionMode.DISABLED
    assert validate_home_layer("Stream Music") is LayerId.STREAM_MUSIC
    assert validate_nav_buttons("") == ()
    assert validate_nav_buttons("3, 4") == (3, 4)

    with pytest.raises(argparse.ArgumentTypeError):
        validate_nav_buttons("a,b")
    with pytest.raises(argparse.ArgumentTypeError):
        validate_home_layer("nowhere")
