from queue import Queue

import pytest
from fastapi.testclient import TestClient

from api import create_app
from room_core import (
    LayerId, MotionEdge, PrivacyKind, RequestLayer, SelectRouting, SetMotionMode, SetMute,
    SetPower, SetPrivacy, SetVolume, Signal, SignalChange,
)


@pytest.fixture
def action_queue():
    return Queue()


@pytest.fixture
def client(action_queue, controller):
    app = create_app(action_queue, controller)
    with TestClient(app) as test_client:
        yield test_client


def queued_actions(action_queue):
    actions = []
    while not action_queue.empty():
        actions.append(action_queue.get_nowait().action)
    return actions


def test_get_state(client):
    response = client.get("/api/state")
    assert response.status_code == 200
    body = response.json()
    assert body["power"] == "off"
    assert body["layer"] == "Start"


def test_health(client, action_queue):
    client.post("/api/power", json={"state": True})
    body = client.get("/api/health").json()
    assert body == {"status": "ok", "power": "off", "queue_size": 1}


@pytest.mark.parametrize("path, payload, expected", [
    ("/api/power", {"state": True}, SetPower(state=True)),
    ("/api/power", {}, SetPower()),
    ("/api/motion", {"present": False}, MotionEdge(present=False)),
    ("/api/motion/mode", {"mode": "Motion Off"}, SetMotionMode(mode="Motion Off")),
    ("/api/signal", {"signal": "usb_laptop", "value": True}, SignalChange(Signal.USB_LAPTOP, True)),
    ("/api/layer", {"layer": "routing"}, RequestLayer(LayerId.ROUTING)),
    ("/api/layer", {"layer": 11}, RequestLayer(LayerId.DIALER)),
    ("/api/routing", {"index": 3}, SelectRouting(index=3)),
    ("/api/volume", {"level": 0.45}, SetVolume(level=0.45)),
    ("/api/mute", {}, SetMute()),
    ("/api/privacy", {"kind": "Video", "state": False}, SetPrivacy(PrivacyKind.VIDEO, False)),
])
def test_commands_are_queued(client, action_queue, path, payload, expected):
    response = client.post(path, json=payload)
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["action"] == type(expected).__name__
    assert queued_actions(action_queue) == [expected]


def test_volume_is_clamped(client, action_queue):
    response = client.post("/api/volume", json={"level": 3})
    assert response.json()["level"] == 1.0
    assert queued_actions(action_queue) == [SetVolume(level=1.0)]


@pytest.mark.parametrize("path, payload", [
    ("/api/signal", {"signal": "smoke", "value": True}),
    ("/api/layer", {"layer": "lobby"}),
    ("/api/privacy", {"kind": "thermal"}),
])
def test_unknown_values_rejected(client, action_queue, path, payload):
    response = client.post(path, json=payload)
    assert response.status_code == 400
    assert "error" in response.json()
    assert action_queue.empty()


def test_invalid_body_rejected(client, action_queue):
    response = client.post("/api/motion", json={"present": "maybe"})
    assert response.status_code == 422
    assert action_queue.empty()


def test_websocket_sends_initial_state(client):
    with client.websocket_connect("/ws/state") as websocket:
        state = websocket.receive_json()
    assert state["power"] == "off"
    assert "visible_layers" in state
