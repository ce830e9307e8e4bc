from room_constants import (
    POWER_CONTROLS, PROP_CALL_DECLINE, PROP_DISPLAY_POWER_OFF, PROP_DISPLAY_POWER_ON,
    PROP_GAIN, PROP_MUTE, PROP_SYSTEM_OFF_TRIGGER, PROP_SYSTEM_ON_TRIGGER,
)
from room_core import (
    InMemoryDevicePort, LayerId, PanelState, PowerState, PowerTrigger, RoomConfig,
    RoomController, SetPower,
)

# Legal successor of every power state (staying put is always allowed)
NEXT_STATE = {
    PowerState.OFF: PowerState.WARMING,
    PowerState.WARMING: PowerState.ON,
    PowerState.ON: PowerState.COOLING,
    PowerState.COOLING: PowerState.OFF,
}


def record_transitions(controller):
    events = []
    controller.power.add_listener(events.append)
    return events


def test_power_on_warms_then_turns_on(controller, device, panel, advance):
    controller.dispatch(SetPower(state=True))

    assert controller.power.state is PowerState.WARMING
    assert panel.progress_value == 0
    assert controller.navigator.current_layer is LayerId.WARMING
    assert all(not panel.is_enabled(control) for control in POWER_CONTROLS)
    assert device.triggered("System", PROP_SYSTEM_ON_TRIGGER) == 1
    assert device.triggered("Display1", PROP_DISPLAY_POWER_ON) == 1
    assert device.numerics[("ProgramGain", PROP_GAIN)] == 0.7
    assert device.booleans[("ProgramGain", PROP_MUTE)] is False
    assert device.booleans[("CallSync", PROP_MUTE)] is True

    advance(10.5)

    assert controller.power.state is PowerState.ON
    assert panel.progress_value == 100
    assert controller.navigator.current_layer is LayerId.ROOM_CONTROLS
    assert all(panel.is_enabled(control) for control in POWER_CONTROLS)


def test_power_off_cools_then_turns_off(powered_on, device, panel, advance):
    controller = powered_on
    controller.dispatch(SetPower(state=False))

    assert controller.power.state is PowerState.COOLING
    assert controller.navigator.current_layer is LayerId.COOLING
    assert device.triggered("CallSync", PROP_CALL_DECLINE) == 1
    assert device.triggered("Display1", PROP_DISPLAY_POWER_OFF) == 1
    assert device.triggered("System", PROP_SYSTEM_OFF_TRIGGER) == 1
    assert controller.av.muted
    assert controller.av.video_privacy
    assert panel.progress_value == 100

    advance(5.5)

    assert controller.power.state is PowerState.OFF
    assert panel.progress_value == 0
    assert controller.navigator.current_layer is LayerId.START


def test_states_only_advance_in_order(controller, advance):
    events = record_transitions(controller)
    requests = [True, False, True, None, False, True, None, None, False]
    for state in requests:
        controller.dispatch(SetPower(state=state))
        advance(3)

    advance(30)
    assert events
    for event in events:
        assert NEXT_STATE[event.previous] is event.current


def test_requests_that_do_not_match_state_are_ignored(controller, advance):
    assert controller.power.request_power_off() is False
    assert controller.power.state is PowerState.OFF

    controller.dispatch(SetPower(state=True))
    assert controller.power.request_power_on() is False
    assert controller.power.request_power_off() is False
    assert controller.power.toggle() is False
    assert controller.power.state is PowerState.WARMING

    advance(10.5)
    assert controller.power.request_power_on() is False
    assert controller.power.state is PowerState.ON


def test_toggle(controller, advance):
    controller.dispatch(SetPower())
    assert controller.power.state is PowerState.WARMING
    advance(10.5)

    controller.dispatch(SetPower())
    assert controller.power.state is PowerState.COOLING


def test_trigger_is_carried_to_completion(controller, advance):
    events = record_transitions(controller)
    controller.dispatch(SetPower(state=True, trigger=PowerTrigger.MOTION))
    advance(10.5)

    assert [e.trigger for e in events] == [PowerTrigger.MOTION, PowerTrigger.MOTION]
    assert controller.power.last_trigger is PowerTrigger.MOTION


def test_zero_duration_still_reaches_on(controller, advance, monkeypatch):
    events = record_transitions(controller)
    monkeypatch.setattr(controller.power, "warmup_seconds", lambda: 0.0)

    controller.dispatch(SetPower(state=True))
    advance(301)

    assert controller.power.state is PowerState.ON
    assert events[-1].forced is True
    assert controller.animator.value == 100


def test_room_config_overrides_warmup(clock, panel):
    device = InMemoryDevicePort(config={"Room/warmupTime": 2})
    controller = RoomController(RoomConfig(), device, panel=panel, clock=clock)
    controller.start()

    controller.dispatch(SetPower(state=True))
    clock.advance(2.5, controller.scheduler, controller.run_due)
    assert controller.power.state is PowerState.ON


def test_invalid_room_config_uses_preset(clock, panel):
    device = InMemoryDevicePort(config={"warmupTime": "soon", "cooldownTime": -1})
    controller = RoomController(RoomConfig(), device, panel=panel, clock=clock)

    assert controller.power.warmup_seconds() == 10.0
    assert controller.power.cooldown_seconds() == 5.0


def test_offline_devices_do_not_block_sequence(clock, caplog):
    device = InMemoryDevicePort()
    device.offline.update({"Display1", "System", "CallSync"})
    controller = RoomController(RoomConfig(), device, panel=PanelState(), clock=clock)
    controller.start()

    controller.dispatch(SetPower(state=True))
    clock.advance(10.5, controller.scheduler, controller.run_due)
    assert controller.power.state is PowerState.ON

    controller.dispatch(SetPower(state=False))
    clock.advance(5.5, controller.scheduler, controller.run_due)
    assert controller.power.state is PowerState.OFF
    assert "Display1.PowerOnTrigger" in caplog.text


def test_listener_error_does_not_stop_sequence(controller, advance):
    def broken(event):
        raise RuntimeError("listener broke")

    controller.power.add_listener(broken)
    controller.dispatch(SetPower(state=True))
    advance(10.5)

    assert controller.power.state is PowerState.ON
    controller.power.remove_listener(broken)
