import logging

import pytest

from failure_logger import FailureLogThrottle, _format_duration
from room_core import DeviceActionError, InMemoryDevicePort, SafeDevicePort
from room_core.ports import read_duration


class BrokenPort(InMemoryDevicePort):
    def get_numeric(self, device, prop):
        raise TimeoutError("no reply")

    def read_config(self, room, key):
        raise KeyError(key)


@pytest.fixture
def inner():
    return InMemoryDevicePort()


def test_in_memory_port_round_trips(inner):
    inner.set_boolean("Cam", "TrackingBypass", True)
    inner.set_numeric("Gain", "gain", 0.25)
    inner.set_string("Cam", "name", "front")
    inner.trigger("Display1", "PowerOnTrigger")

    assert inner.get_boolean("Cam", "TrackingBypass") is True
    assert inner.get_numeric("Gain", "gain") == 0.25
    assert inner.get_string("Cam", "name") == "front"
    assert inner.triggered("Display1", "PowerOnTrigger") == 1


def test_in_memory_port_offline_raises(inner):
    inner.offline.add("Display1")
    with pytest.raises(DeviceActionError) as excinfo:
        inner.trigger("Display1", "PowerOnTrigger")
    assert excinfo.value.device == "Display1"
    assert excinfo.value.prop == "PowerOnTrigger"


def test_in_memory_config_room_key_wins():
    port = InMemoryDevicePort(config={"warmupTime": 8, "Lobby/warmupTime": 3})
    assert port.read_config("Lobby", "warmupTime") == 3
    assert port.read_config("Boardroom", "warmupTime") == 8
    assert port.read_config("Boardroom", "cooldownTime") is None


def test_safe_port_swallows_failures(inner):
    inner.offline.add("Display1")
    safe = SafeDevicePort(inner)

    safe.trigger("Display1", "PowerOnTrigger")
    safe.set_boolean("Display1", "mute", True)
    safe.set_numeric("Display1", "gain", 0.5)
    assert safe.get_boolean("Display1", "mute") is False
    assert safe.get_numeric("Display1", "gain") == 0.0
    assert safe.get_string("Display1", "name") == ""


def test_safe_port_read_defaults():
    safe = SafeDevicePort(BrokenPort())
    assert safe.get_numeric("Gain", "gain") == 0.0
    assert safe.read_config("Room", "warmupTime") is None


def test_safe_port_throttles_repeated_warnings(inner, clock, caplog):
    inner.offline.add("Display1")
    safe = SafeDevicePort(inner, FailureLogThrottle(clock=clock))

    with caplog.at_level(logging.WARNING):
        for _ in range(5):
            safe.trigger("Display1", "PowerOnTrigger")
    warnings = [r for r in caplog.records if "Display1.PowerOnTrigger" in r.getMessage()]
    assert len(warnings) == 1
    assert "(failure #1)" in warnings[0].getMessage()

    clock.time += 3
    with caplog.at_level(logging.WARNING):
        safe.trigger("Display1", "PowerOnTrigger")
    warnings = [r for r in caplog.records if "Display1.PowerOnTrigger" in r.getMessage()]
    assert len(warnings) == 2


def test_safe_port_logs_recovery(inner, caplog):
    inner.offline.add("Display1")
    safe = SafeDevicePort(inner)
    safe.trigger("Display1", "PowerOnTrigger")

    inner.offline.clear()
    with caplog.at_level(logging.INFO):
        safe.trigger("Display1", "PowerOnTrigger")
    assert "recovered" in caplog.text
    assert safe.throttle.failure_count("Display1.PowerOnTrigger") == 0


@pytest.mark.parametrize("config, fallbacks, expected", [
    ({"warmupTime": 4}, (10, 20), 4.0),
    ({"warmupTime": "4.5"}, (10,), 4.5),
    ({"warmupTime": 0}, (10,), 10.0),
    ({"warmupTime": "later"}, (10,), 10.0),
    ({}, (None, 20), 20.0),
    ({}, (-1, 0), 0.0),
])
def test_read_duration(config, fallbacks, expected):
    port = InMemoryDevicePort(config=config)
    assert read_duration(port, "Room", "warmupTime", *fallbacks) == expected


def test_throttle_milestones(clock):
    throttle = FailureLogThrottle(intervals=[2, 10], clock=clock)
    assert throttle.should_log("x") is True
    assert throttle.should_log("x") is False

    clock.time += 2
    assert throttle.should_log("x") is True
    assert throttle.format_info("x") == "(failure #3, next log at ~10s)"

    clock.time += 5
    assert throttle.should_log("x") is False
    clock.time += 3
    assert throttle.should_log("x") is True

    # Last interval repeats: next milestone 10 + 10
    clock.time += 9
    assert throttle.should_log("x") is False
    clock.time += 1
    assert throttle.should_log("x") is True


def test_throttle_reset(clock):
    throttle = FailureLogThrottle(clock=clock)
    assert throttle.reset("x") is False
    throttle.should_log("x")
    assert throttle.format_info("x") == "(failure #1)"
    assert throttle.reset("x") is True
    assert throttle.format_info("x") == ""
    assert throttle.should_log("x") is True


@pytest.mark.parametrize("seconds, text", [(5, "5s"), (600, "10m"), (7200, "2h"), (172800, "2d")])
def test_format_duration(seconds, text):
    assert _format_duration(seconds) == text
