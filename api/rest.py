"""
REST API and WebSocket endpoints for room control.

Endpoints only validate input and submit domain actions to the action
queue; the consumer thread applies them. State is read from the room
controller's published snapshot and pushed to WebSocket clients on every
change.
"""
import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager
from typing import Optional, Set, Union

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from room_core import (
    LayerId, MotionEdge, PrivacyKind, QueuedAction, RequestLayer, SelectRouting,
    SetMotionMode, SetMute, SetPower, SetPrivacy, SetVolume, Signal, SignalChange,
)

logger = logging.getLogger(__name__)

# Will be set by create_app()
_action_queue = None
_room_controller = None

# Track connected WebSocket clients
_websocket_clients: Set[WebSocket] = set()
_ws_lock = threading.Lock()

# Event loop for the API server thread (set when server starts)
_api_event_loop = None

# Substrings of log messages produced when a WebSocket client goes away mid-send
_WS_NOISE = ("WebSocketDisconnect", "ConnectionClosed", "websocket.close", "Unexpected ASGI message 'websocket.send'")


class WebSocketErrorFilter(logging.Filter):
    """Drops log records caused by WebSocket clients disconnecting."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if any(noise in message for noise in _WS_NOISE):
            return False
        if record.exc_info and record.exc_info[0] is not None:
            if record.exc_info[0].__name__ in ("WebSocketDisconnect", "ConnectionClosedOK", "ConnectionClosedError"):
                return False
        return True


# Pydantic models for request validation
class StateRequest(BaseModel):
    state: Optional[bool] = None  # None = toggle


class MotionRequest(BaseModel):
    present: bool


class MotionModeRequest(BaseModel):
    mode: str  # "Motion On/Off", "Motion Off", "Motion Disabled"


class SignalRequest(BaseModel):
    signal: str
    value: bool


class LayerRequest(BaseModel):
    layer: Union[int, str]  # button number or name


class RoutingRequest(BaseModel):
    index: int  # 0-based


class VolumeRequest(BaseModel):
    level: float  # 0.0-1.0


class PrivacyRequest(BaseModel):
    kind: str  # "audio" or "video"
    state: Optional[bool] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown."""
    _room_controller.add_state_callback(_broadcast_state_sync)
    logger.info("API server started, WebSocket broadcast registered")
    yield
    _room_controller.remove_state_callback(_broadcast_state_sync)
    logger.info("API server stopped")


def create_app(action_queue, room_controller) -> FastAPI:
    """
    Create FastAPI app with references to the action queue and controller.

    Args:
        action_queue: The queue.Queue for submitting room actions
        room_controller: The RoomController instance for reading state

    Returns:
        Configured FastAPI app
    """
    global _action_queue, _room_controller
    _action_queue = action_queue
    _room_controller = room_controller

    app = FastAPI(
        title="Room Automation API",
        description="REST API for room power, motion and touch panel control",
        version="1.0.0",
        lifespan=lifespan
    )

    # Register routes
    app.get("/api/state")(get_state)
    app.post("/api/power")(set_power)
    app.post("/api/motion")(motion_edge)
    app.post("/api/motion/mode")(set_motion_mode)
    app.post("/api/signal")(set_signal)
    app.post("/api/layer")(request_layer)
    app.post("/api/routing")(select_routing)
    app.post("/api/volume")(set_volume)
    app.post("/api/mute")(set_mute)
    app.post("/api/privacy")(set_privacy)
    app.get("/api/health")(health_check)
    app.websocket("/ws/state")(websocket_state)

    return app


def _submit_action(action) -> bool:
    """Submit an action to the queue."""
    if _action_queue is None:
        logger.error("Action queue not initialized")
        return False
    _action_queue.put(QueuedAction(action=action, timestamp=time.time()))
    return True


def _submitted(action, **details):
    if _submit_action(action):
        return {"status": "ok", "action": type(action).__name__, **details}
    return JSONResponse({"error": "Failed to submit action"}, status_code=500)


def _bad_request(message: str):
    return JSONResponse({"error": message}, status_code=400)


def _broadcast_state_sync(state: dict):
    """Room state callback (consumer thread): hands the snapshot to the API loop."""
    loop = _api_event_loop
    with _ws_lock:
        clients = list(_websocket_clients)
    if loop is None or not clients:
        return

    try:
        asyncio.run_coroutine_threadsafe(_push_state(clients, state), loop)
    except RuntimeError as e:
        logger.debug(f"Room state push not scheduled: {e}")


async def _push_state(clients: list, state: dict):
    """Send one snapshot to every client, dropping the ones that are gone."""
    stale = []
    for ws in clients:
        try:
            await ws.send_json(state)
        except Exception as e:
            logger.debug(f"Room state push failed, dropping client: {e}")
            stale.append(ws)
    if stale:
        with _ws_lock:
            _websocket_clients.difference_update(stale)


# === REST Endpoints ===

async def get_state():
    """Get the current room snapshot."""
    if _room_controller is None:
        return JSONResponse({"error": "Controller not initialized"}, status_code=503)
    return _room_controller.get_state()


async def set_power(request: StateRequest = StateRequest()):
    """Power on/off. Send {"state": true/false} or {} for toggle."""
    mode = f"set to {request.state}" if request.state is not None else "toggle"
    return _submitted(SetPower(state=request.state), mode=mode)


async def motion_edge(request: MotionRequest):
    """Feed a motion sensor edge."""
    return _submitted(MotionEdge(present=request.present), present=request.present)


async def set_motion_mode(request: MotionModeRequest):
    """Select the motion policy. Unknown modes disable motion."""
    return _submitted(SetMotionMode(mode=request.mode), mode=request.mode)


async def set_signal(request: SignalRequest):
    """Set an external signal (call_active, usb_laptop, fire_alarm, ...)."""
    signal = Signal.parse(request.signal)
    if signal is None:
        return _bad_request(f"Unknown signal: {request.signal}")
    return _submitted(SignalChange(signal=signal, value=request.value), signal=signal.value, value=request.value)


async def request_layer(request: LayerRequest):
    """Navigate to a primary layer by button number or name."""
    layer = LayerId.parse(request.layer)
    if layer is None:
        return _bad_request(f"Unknown layer: {request.layer}")
    return _submitted(RequestLayer(layer=layer), layer=layer.label)


async def select_routing(request: RoutingRequest):
    """Select a routing sub-view (0-based). Out-of-range values fall back to the default view."""
    return _submitted(SelectRouting(index=request.index), index=request.index)


async def set_volume(request: VolumeRequest):
    """Set program volume (0.0-1.0)."""
    level = max(0.0, min(1.0, request.level))
    return _submitted(SetVolume(level=level), level=level)


async def set_mute(request: StateRequest = StateRequest()):
    """Set or toggle program mute. Send {"state": true/false} or {} for toggle."""
    mode = f"set to {request.state}" if request.state is not None else "toggle"
    return _submitted(SetMute(state=request.state), mode=mode)


async def set_privacy(request: PrivacyRequest):
    """Set or toggle audio (mic) or video (camera) privacy."""
    try:
        kind = PrivacyKind(request.kind.strip().lower())
    except ValueError:
        return _bad_request(f"Unknown privacy kind: {request.kind}")
    mode = f"set to {request.state}" if request.state is not None else "toggle"
    return _submitted(SetPrivacy(kind=kind, state=request.state), kind=kind.value, mode=mode)


async def health_check():
    """Health check endpoint."""
    state = _room_controller.get_state() if _room_controller else {}
    return {
        "status": "ok",
        "power": state.get("power"),
        "queue_size": _action_queue.qsize() if _action_queue is not None else 0,
    }


# === WebSocket Endpoint ===

async def websocket_state(websocket: WebSocket):
    """WebSocket endpoint for real-time state updates."""
    await websocket.accept()
    if _room_controller:
        await websocket.send_json(_room_controller.get_state())

    with _ws_lock:
        _websocket_clients.add(websocket)
        count = len(_websocket_clients)
    logger.info(f"State subscriber connected ({count} total)")

    try:
        # Clients only listen; anything they send is discarded
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        with _ws_lock:
            _websocket_clients.discard(websocket)
            count = len(_websocket_clients)
        logger.info(f"State subscriber disconnected ({count} left)")


def start_api_server(action_queue, room_controller, host: str = "0.0.0.0", port: int = 8080):
    """
    Serve the room API from a daemon thread with its own asyncio loop.

    The loop is published in `_api_event_loop` so state pushes from the
    consumer thread can be scheduled onto it.

    Returns:
        The server thread
    """
    import uvicorn

    server = uvicorn.Server(uvicorn.Config(
        create_app(action_queue, room_controller),
        host=host,
        port=port,
        log_level="warning",
        access_log=False,
    ))

    def serve():
        global _api_event_loop
        _api_event_loop = asyncio.new_event_loop()
        asyncio.set_event_loop(_api_event_loop)
        _api_event_loop.run_until_complete(server.serve())

    thread = threading.Thread(target=serve, name="APIServerThread", daemon=True)
    thread.start()
    logger.info(f"Room API listening on http://{host}:{port}")
    return thread
