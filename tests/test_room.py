import pytest

from room_constants import LAYER_SHUTDOWN_CONFIRM, PROP_DISPLAY_POWER_OFF, PROP_DISPLAY_POWER_ON, PROP_MUTE
from room_core import (
    ConfigurationError, LayerId, PowerState, PrivacyKind, RequestLayer, RoomConfig,
    RoomController, RoomPreset, SelectRouting, SetMute, SetPower, SetPrivacy, SetVolume,
    Signal, SignalChange,
)


def test_preset_lookup():
    preset = RoomPreset.named("Huddle Room")
    assert preset.warmup_seconds == 5
    with pytest.raises(ConfigurationError):
        RoomPreset.named("Ballroom")


def test_initial_snapshot(controller):
    state = controller.get_state()
    assert state["room"] == "Room"
    assert state["power"] == "off"
    assert state["layer"] == "Start"
    assert state["progress"] == 0
    assert state["motion"]["mode"] == "Motion On/Off"
    assert state["alarm"] is False
    assert state["signals"]["call_active"] is False


def test_get_state_returns_copy(controller):
    state = controller.get_state()
    state["motion"]["mode"] = "tampered"
    assert controller.get_state()["motion"]["mode"] == "Motion On/Off"


def test_state_callbacks_only_on_change(controller):
    states = []
    controller.add_state_callback(states.append)

    controller.dispatch(SignalChange(Signal.HELP_PC, True))
    controller.dispatch(SignalChange(Signal.HELP_PC, True))
    assert len(states) == 1
    assert states[0]["signals"]["help_pc"] is True

    controller.remove_state_callback(states.append)
    controller.dispatch(SignalChange(Signal.HELP_PC, False))
    assert len(states) == 1


def test_state_callback_error_is_isolated(controller, caplog):
    def broken(state):
        raise RuntimeError("callback broke")

    seen = []
    controller.add_state_callback(broken)
    controller.add_state_callback(seen.append)
    controller.dispatch(SetVolume(level=0.3))

    assert seen and seen[-1]["volume"] == 0.3
    assert "callback broke" in caplog.text


def test_timer_progress_is_published(controller, advance):
    states = []
    controller.add_state_callback(states.append)
    controller.dispatch(SetPower(state=True))
    advance(10.5)

    progress = [s["progress"] for s in states]
    assert progress == sorted(progress)
    assert states[-1]["power"] == "on"
    assert states[-1]["progress"] == 100


def test_fire_alarm_mutes_and_restores(powered_on, device):
    controller = powered_on
    controller.dispatch(SignalChange(Signal.FIRE_ALARM, True))

    assert device.booleans[("SystemMute", PROP_MUTE)] is True
    assert device.triggered("Display1", PROP_DISPLAY_POWER_OFF) == 1
    assert controller.get_state()["alarm"] is True
    assert controller.navigator.current_layer is LayerId.ALARM

    controller.dispatch(SignalChange(Signal.FIRE_ALARM, False))
    assert device.booleans[("SystemMute", PROP_MUTE)] is False
    assert device.triggered("Display1", PROP_DISPLAY_POWER_ON) == 2
    assert controller.navigator.current_layer is LayerId.ROOM_CONTROLS


def test_fire_alarm_cleared_while_warming_restores_audio_and_displays(controller, advance, device):
    controller.dispatch(SetPower(state=True))
    controller.dispatch(SignalChange(Signal.FIRE_ALARM, True))
    assert controller.av.system_muted is True

    controller.dispatch(SignalChange(Signal.FIRE_ALARM, False))
    advance(controller.power.warmup_seconds() + 0.5)

    assert controller.power.state is PowerState.ON
    assert controller.av.system_muted is False
    assert controller.av.displays_on is True
    assert device.booleans[("SystemMute", PROP_MUTE)] is False
    assert controller.navigator.current_layer is LayerId.ROOM_CONTROLS


def test_fire_alarm_cleared_while_off_keeps_displays_off(controller, device):
    controller.dispatch(SignalChange(Signal.FIRE_ALARM, True))
    controller.dispatch(SignalChange(Signal.FIRE_ALARM, False))

    assert device.triggered("Display1", PROP_DISPLAY_POWER_ON) == 0
    assert controller.av.system_muted is True
    assert controller.navigator.current_layer is LayerId.START


def test_call_controls_camera_privacy_when_on(powered_on):
    controller = powered_on
    controller.dispatch(SignalChange(Signal.CALL_ACTIVE, True))
    assert controller.av.video_privacy is False

    controller.dispatch(SignalChange(Signal.CALL_ACTIVE, False))
    assert controller.av.video_privacy is True


def test_call_ignored_for_privacy_when_off(controller):
    controller.dispatch(SignalChange(Signal.CALL_ACTIVE, True))
    assert controller.av.video_privacy is False
    assert controller.av.get_state()["video_privacy"] is False


def test_manual_shutdown_clears_prompt(powered_on, panel):
    controller = powered_on
    controller.dispatch(SignalChange(Signal.SHUTDOWN_PROMPT, True))
    assert panel.is_visible(LAYER_SHUTDOWN_CONFIRM)

    controller.dispatch(SetPower(state=False))
    assert controller.signals[Signal.SHUTDOWN_PROMPT] is False
    assert not panel.is_visible(LAYER_SHUTDOWN_CONFIRM)
    assert controller.motion.state.grace_armed


def test_mute_and_privacy_toggles(controller):
    controller.dispatch(SetMute())
    assert controller.av.muted is True
    controller.dispatch(SetMute())
    assert controller.av.muted is False
    controller.dispatch(SetMute(state=True))
    assert controller.av.muted is True

    controller.dispatch(SetPrivacy(PrivacyKind.AUDIO))
    assert controller.av.audio_privacy is True
    controller.dispatch(SetPrivacy(PrivacyKind.VIDEO, state=True))
    assert controller.get_state()["video_privacy"] is True


def test_volume_is_clamped(controller, device):
    controller.dispatch(SetVolume(level=1.7))
    assert controller.av.volume == 1.0
    assert device.numerics[("ProgramGain", "gain")] == 1.0


def test_layer_and_routing_actions(powered_on):
    controller = powered_on
    controller.dispatch(RequestLayer(LayerId.ROUTING))
    controller.dispatch(SelectRouting(index=4))

    state = controller.get_state()
    assert state["layer"] == "Routing"
    assert state["routing_index"] == 4
    assert state["routing_view"] in state["visible_layers"]


def test_unknown_action_is_ignored(controller):
    before = controller.get_state()
    controller.dispatch(object())
    assert controller.get_state() == before


def test_multiple_displays_and_gains(clock, panel, device):
    from room_core import RoomDevices
    config = RoomConfig(devices=RoomDevices(displays=["Left", "Right"], gains=["Zone1", "Zone2"]))
    controller = RoomController(config, device, panel=panel, clock=clock)
    controller.start()
    controller.dispatch(SetPower(state=True))

    assert device.triggered("Left", PROP_DISPLAY_POWER_ON) == 1
    assert device.triggered("Right", PROP_DISPLAY_POWER_ON) == 1
    assert device.numerics[("Zone1", "gain")] == device.numerics[("Zone2", "gain")] == 0.7


def test_start_is_idempotent(controller, panel):
    writes = panel.layer_writes
    controller.start()
    assert panel.layer_writes == writes
    assert controller.power.state is PowerState.OFF
