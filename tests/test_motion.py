import pytest

from room_core import (
    InMemoryDevicePort, MotionEdge, MotionMode, PowerState, PowerTrigger, Scheduler,
    SetMotionMode, SetPower,
)
from room_core.motion import MotionAutoPowerMonitor


class PowerStub:
    def __init__(self, state=PowerState.OFF):
        self.state = state
        self.requests = []

    def request(self, on, trigger):
        self.requests.append((on, trigger))


@pytest.fixture
def scheduler(clock):
    return Scheduler(clock)


@pytest.fixture
def power():
    return PowerStub()


def make_monitor(scheduler, power, mode=MotionMode.AUTO_ON_OFF, config=None):
    return MotionAutoPowerMonitor(
        scheduler, InMemoryDevicePort(config=config), "Room",
        power_state=lambda: power.state,
        request_power=power.request,
        mode=mode,
        timeout_seconds=60,
        grace_seconds=20,
    )


def test_presence_powers_on_when_off(scheduler, power):
    monitor = make_monitor(scheduler, power)
    monitor.on_motion(True)
    assert power.requests == [(True, PowerTrigger.MOTION)]


def test_presence_ignored_unless_off(scheduler, power):
    power.state = PowerState.COOLING
    monitor = make_monitor(scheduler, power)
    monitor.on_motion(True)
    assert power.requests == []


def test_absence_powers_off_after_timeout(scheduler, power, clock):
    power.state = PowerState.ON
    monitor = make_monitor(scheduler, power)
    monitor.on_motion(False)
    assert monitor.state.timeout_armed

    clock.advance(59, scheduler)
    assert power.requests == []

    clock.advance(2, scheduler)
    assert power.requests == [(False, PowerTrigger.MOTION)]
    assert not monitor.state.timeout_armed


def test_presence_before_timeout_cancels_it(scheduler, power, clock):
    power.state = PowerState.ON
    monitor = make_monitor(scheduler, power)
    monitor.on_motion(False)
    clock.advance(30, scheduler)
    monitor.on_motion(True)

    assert not monitor.state.timeout_armed
    clock.advance(120, scheduler)
    assert power.requests == []


def test_repeated_absence_restarts_timeout(scheduler, power, clock):
    power.state = PowerState.ON
    monitor = make_monitor(scheduler, power)
    monitor.on_motion(False)
    clock.advance(40, scheduler)
    monitor.on_motion(False)

    clock.advance(40, scheduler)
    assert power.requests == []
    clock.advance(25, scheduler)
    assert power.requests == [(False, PowerTrigger.MOTION)]


def test_grace_blocks_presence_until_it_expires(scheduler, power, clock):
    monitor = make_monitor(scheduler, power)
    monitor.arm_grace()

    monitor.on_motion(True)
    assert power.requests == []

    clock.advance(21, scheduler)
    assert not monitor.state.grace_armed
    monitor.on_motion(True)
    assert power.requests == [(True, PowerTrigger.MOTION)]


def test_off_only_mode_never_powers_on(scheduler, power, clock):
    monitor = make_monitor(scheduler, power, mode=MotionMode.AUTO_OFF_ONLY)
    monitor.on_motion(True)
    assert power.requests == []

    power.state = PowerState.ON
    monitor.on_motion(False)
    clock.advance(61, scheduler)
    assert power.requests == [(False, PowerTrigger.MOTION)]


def test_disabled_mode_ignores_motion(scheduler, power, clock):
    monitor = make_monitor(scheduler, power, mode=MotionMode.DISABLED)
    monitor.on_motion(True)
    power.state = PowerState.ON
    monitor.on_motion(False)

    assert not monitor.state.timeout_armed
    clock.advance(600, scheduler)
    assert power.requests == []


def test_disabling_cancels_armed_timeout(scheduler, power, clock):
    power.state = PowerState.ON
    monitor = make_monitor(scheduler, power)
    monitor.on_motion(False)
    monitor.set_mode(MotionMode.DISABLED)

    clock.advance(120, scheduler)
    assert power.requests == []


@pytest.mark.parametrize("value, expected", [
    ("Motion On/Off", MotionMode.AUTO_ON_OFF),
    ("Motion Off", MotionMode.AUTO_OFF_ONLY),
    ("auto_off_only", MotionMode.AUTO_OFF_ONLY),
    ("Motion Sometimes", MotionMode.DISABLED),
    (None, MotionMode.DISABLED),
])
def test_set_mode_parses_labels(scheduler, power, value, expected):
    monitor = make_monitor(scheduler, power)
    assert monitor.set_mode(value) is expected
    assert monitor.mode is expected


def test_room_config_overrides_timeout(scheduler, power, clock):
    power.state = PowerState.ON
    monitor = make_monitor(scheduler, power, config={"Room/motionTimeout": 5})
    assert monitor.timeout_seconds() == 5

    monitor.on_motion(False)
    clock.advance(6, scheduler)
    assert power.requests == [(False, PowerTrigger.MOTION)]


# --- Through the room controller ---

def test_manual_off_then_presence_within_grace_stays_off(powered_on, advance):
    controller = powered_on
    controller.dispatch(SetPower(state=False))
    assert controller.motion.state.grace_armed

    advance(5.5)
    assert controller.power.state is PowerState.OFF

    controller.dispatch(MotionEdge(present=True))
    assert controller.power.state is PowerState.OFF

    advance(30)
    controller.dispatch(MotionEdge(present=True))
    assert controller.power.state is PowerState.WARMING
    assert controller.power.last_trigger is PowerTrigger.MOTION


def test_motion_off_does_not_arm_grace(powered_on, advance):
    controller = powered_on
    controller.dispatch(MotionEdge(present=False))
    advance(301)

    assert controller.power.state is PowerState.COOLING
    assert controller.power.last_trigger is PowerTrigger.MOTION
    assert not controller.motion.state.grace_armed


def test_motion_reasserted_keeps_room_on(powered_on, advance):
    controller = powered_on
    controller.dispatch(MotionEdge(present=False))
    assert controller.motion.state.timeout_armed

    advance(100)
    controller.dispatch(MotionEdge(present=True))
    assert not controller.motion.state.timeout_armed

    advance(600)
    assert controller.power.state is PowerState.ON


def test_mode_change_through_dispatch(controller):
    controller.dispatch(SetMotionMode(mode="Motion Off"))
    assert controller.get_state()["motion"]["mode"] == "Motion Off"

    controller.dispatch(MotionEdge(present=True))
    assert controller.power.state is PowerState.OFF
