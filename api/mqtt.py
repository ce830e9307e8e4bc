"""
MQTT integration.

MqttClient publishes the room snapshot and turns command topics into
room actions, with Home Assistant MQTT Discovery for automatic entity
creation. MqttDevicePort is a DeviceActionPort that drives devices through
the same broker: writes go to `<prefix>/device/<device>/<prop>/set`,
reads are answered from the retained `<prefix>/device/<device>/<prop>/state`
topics, per-room settings from `<prefix>/config/<room>/<key>`.
"""
import json
import logging
import threading
import time
from typing import Dict, Optional, Tuple

import paho.mqtt.client as mqtt

from room_core import (
    DeviceActionError, DeviceActionPort, LayerId, MotionEdge, PrivacyKind, QueuedAction,
    RequestLayer, SelectRouting, SetMotionMode, SetMute, SetPower, SetPrivacy, SetVolume,
    Signal, SignalChange,
)

logger = logging.getLogger(__name__)

# Default topic prefix
DEFAULT_TOPIC_PREFIX = "room"

# Home Assistant MQTT Discovery prefix
HA_DISCOVERY_PREFIX = "homeassistant"


def parse_bool_or_toggle(payload: str) -> Optional[bool]:
    """Parse ON/OFF/true/false/1/0 to bool, TOGGLE to None."""
    payload_lower = payload.strip().lower()
    if payload_lower in ('on', 'true', '1'):
        return True
    elif payload_lower in ('off', 'false', '0'):
        return False
    elif payload_lower == 'toggle':
        return None
    raise ValueError(f"Unknown state: {payload}")


def parse_bool(payload: str) -> bool:
    state = parse_bool_or_toggle(payload)
    if state is None:
        raise ValueError("Toggle not supported here")
    return state


class MqttDevicePort(DeviceActionPort):
    """DeviceActionPort over MQTT. Raises DeviceActionError while the broker is unreachable."""

    def __init__(self, topic_prefix: str = DEFAULT_TOPIC_PREFIX, config: Optional[Dict[str, float]] = None):
        self._prefix = topic_prefix
        self._client = None
        self._lock = threading.Lock()
        self._states: Dict[Tuple[str, str], str] = {}
        self._config: Dict[str, str] = {k: str(v) for k, v in (config or {}).items()}

    @property
    def subscriptions(self) -> Tuple[str, ...]:
        return (f"{self._prefix}/device/+/+/state", f"{self._prefix}/config/+/+")

    def attach(self, client):
        """Use `client` (a connected paho client) for publishing."""
        self._client = client

    def detach(self):
        self._client = None

    def handle_message(self, topic: str, payload: str) -> bool:
        """
        Store a retained device state or room config value.

        Returns:
            True if the topic belonged to this port
        """
        if not topic.startswith(self._prefix + "/"):
            return False
        parts = topic[len(self._prefix) + 1:].split("/")
        if len(parts) == 4 and parts[0] == "device" and parts[3] == "state":
            with self._lock:
                self._states[(parts[1], parts[2])] = payload
            return True
        if len(parts) == 3 and parts[0] == "config":
            with self._lock:
                self._config[f"{parts[1]}/{parts[2]}"] = payload
            return True
        return False

    def _publish(self, device: str, prop: str, payload: str):
        if self._client is None:
            raise DeviceActionError("MQTT not connected", device=device, prop=prop)
        info = self._client.publish(f"{self._prefix}/device/{device}/{prop}/set", payload)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise DeviceActionError(f"MQTT publish failed (rc={info.rc})", device=device, prop=prop)

    def _state(self, device: str, prop: str) -> str:
        with self._lock:
            value = self._states.get((device, prop))
        if value is None:
            raise DeviceActionError("No retained state", device=device, prop=prop)
        return value

    def trigger(self, device: str, action: str):
        self._publish(device, action, "trigger")

    def set_boolean(self, device: str, prop: str, value: bool):
        self._publish(device, prop, "ON" if value else "OFF")

    def set_numeric(self, device: str, prop: str, value: float):
        self._publish(device, prop, f"{float(value):g}")

    def get_boolean(self, device: str, prop: str) -> bool:
        return parse_bool(self._state(device, prop))

    def get_numeric(self, device: str, prop: str) -> float:
        return float(self._state(device, prop))

    def get_string(self, device: str, prop: str) -> str:
        return self._state(device, prop)

    def read_config(self, room: str, key: str) -> Optional[float]:
        with self._lock:
            value = self._config.get(f"{room}/{key}", self._config.get(key))
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            logger.info(f"Config {room}/{key}={value!r} is not numeric")
            return None


class MqttClient:
    """MQTT client for room control and state publishing."""

    def __init__(
        self,
        action_queue,
        room_controller,
        broker: str = "localhost",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        topic_prefix: str = DEFAULT_TOPIC_PREFIX,
        ha_discovery: bool = True,
        device_port: Optional[MqttDevicePort] = None,
    ):
        """
        Initialize MQTT client.

        Args:
            action_queue: Queue for submitting room actions
            room_controller: RoomController instance for state
            broker: MQTT broker hostname
            port: MQTT broker port
            username: Optional username for authentication
            password: Optional password for authentication
            topic_prefix: Prefix for all topics (default: "room")
            ha_discovery: Enable Home Assistant MQTT Discovery
            device_port: MqttDevicePort to feed retained device state to (optional)
        """
        self._action_queue = action_queue
        self._room_controller = room_controller
        self._broker = broker
        self._port = port
        self._username = username
        self._password = password
        self._topic_prefix = topic_prefix
        self._ha_discovery = ha_discovery
        self._device_port = device_port
        self._client: Optional[mqtt.Client] = None
        self._connected = False

        # Topics
        self._state_topic = f"{topic_prefix}/state"
        self._availability_topic = f"{topic_prefix}/availability"
        self._cmd_prefix = f"{topic_prefix}/set/"
        self._signal_prefix = f"{topic_prefix}/signal/"
        self._motion_topic = f"{topic_prefix}/motion"

    def _on_connect(self, client, userdata, flags, rc, properties=None):
        """Handle connection to broker."""
        if rc == 0:
            logger.info(f"Connected to MQTT broker {self._broker}:{self._port}")
            self._connected = True

            client.subscribe(self._cmd_prefix + "#")
            client.subscribe(self._signal_prefix + "+")
            client.subscribe(self._motion_topic)
            if self._device_port is not None:
                for topic in self._device_port.subscriptions:
                    client.subscribe(topic)
                self._device_port.attach(client)
            logger.info(f"Subscribed to {self._topic_prefix}/set/#, signal/+, motion")

            client.publish(self._availability_topic, "online", retain=True)

            if self._ha_discovery:
                self._publish_ha_discovery()

            self._publish_state(self._room_controller.get_state())
        else:
            logger.error(f"Failed to connect to MQTT broker, rc={rc}")

    def _on_disconnect(self, client, userdata, flags, rc, properties=None):
        """Handle disconnection from broker."""
        self._connected = False
        if self._device_port is not None:
            self._device_port.detach()
        if rc != 0:
            logger.warning(f"Unexpected MQTT disconnect, rc={rc}")

    def _on_message(self, client, userdata, msg):
        """Handle incoming MQTT messages."""
        topic = msg.topic
        try:
            payload = msg.payload.decode('utf-8').strip()
        except UnicodeDecodeError:
            logger.warning(f"Invalid payload on {topic}")
            return

        logger.debug(f"MQTT received: {topic} = {payload}")

        if self._device_port is not None and self._device_port.handle_message(topic, payload):
            return

        try:
            action = self._parse_command(topic, payload)
        except (ValueError, TypeError) as e:
            logger.warning(f"Invalid MQTT command on {topic}: {payload} ({e})")
            return

        if action is None:
            logger.debug(f"Ignoring MQTT topic {topic}")
            return
        self._submit_action(action)

    def _parse_command(self, topic: str, payload: str):
        """Map a command topic and payload to a room action (None if the topic is not a command)."""
        if topic == self._motion_topic:
            return MotionEdge(present=parse_bool(payload))

        if topic.startswith(self._signal_prefix):
            name = topic[len(self._signal_prefix):]
            signal = Signal.parse(name)
            if signal is None:
                raise ValueError(f"Unknown signal: {name}")
            return SignalChange(signal=signal, value=parse_bool(payload))

        if not topic.startswith(self._cmd_prefix):
            return None
        command = topic[len(self._cmd_prefix):]

        if command == "power":
            return SetPower(state=parse_bool_or_toggle(payload))
        if command == "motion_mode":
            return SetMotionMode(mode=payload)
        if command == "layer":
            layer = LayerId.parse(payload)
            if layer is None:
                raise ValueError(f"Unknown layer: {payload}")
            return RequestLayer(layer=layer)
        if command == "routing":
            return SelectRouting(index=int(payload))
        if command == "volume":
            return SetVolume(level=max(0.0, min(1.0, float(payload))))
        if command == "mute":
            return SetMute(state=parse_bool_or_toggle(payload))
        if command.startswith("privacy/"):
            kind = PrivacyKind(command[len("privacy/"):])
            return SetPrivacy(kind=kind, state=parse_bool_or_toggle(payload))
        return None

    def _submit_action(self, action):
        """Submit an action to the queue."""
        self._action_queue.put(QueuedAction(action=action, timestamp=time.time()))

    @staticmethod
    def format_state(state: dict) -> dict:
        """Convert a room snapshot to the HA-friendly payload."""
        def on_off(value) -> str:
            return "ON" if value else "OFF"

        return {
            "room": state.get("room"),
            "power": on_off(state.get("power") in ("on", "warming")),
            "power_state": state.get("power"),
            "progress": state.get("progress", 0),
            "layer": state.get("layer"),
            "routing_index": state.get("routing_index"),
            "motion_mode": state.get("motion", {}).get("mode"),
            "volume": state.get("volume", 0.0),
            "mute": on_off(state.get("mute")),
            "audio_privacy": on_off(state.get("audio_privacy")),
            "video_privacy": on_off(state.get("video_privacy")),
            "alarm": on_off(state.get("alarm")),
        }

    def _publish_state(self, state: dict):
        """Publish current state to MQTT."""
        if not self._connected or self._client is None:
            return
        self._client.publish(self._state_topic, json.dumps(self.format_state(state)), retain=True)

    def _publish_ha_discovery(self):
        """Publish Home Assistant MQTT Discovery configuration."""
        if self._client is None:
            return

        prefix = self._topic_prefix
        device_info = {
            "identifiers": [f"{prefix}_room_automation"],
            "name": f"Room Automation ({prefix})",
            "manufacturer": "Room Automation",
            "model": "Room Controller",
        }

        switch = {"payload_on": "ON", "payload_off": "OFF"}
        entities = [
            ("switch", "power", "Power", "mdi:power", f"{self._cmd_prefix}power", switch),
            ("switch", "mute", "Mute", "mdi:volume-mute", f"{self._cmd_prefix}mute", switch),
            ("switch", "audio_privacy", "Mic Privacy", "mdi:microphone-off",
             f"{self._cmd_prefix}privacy/audio", switch),
            ("switch", "video_privacy", "Camera Privacy", "mdi:camera-off",
             f"{self._cmd_prefix}privacy/video", switch),
            ("number", "volume", "Volume", "mdi:volume-high", f"{self._cmd_prefix}volume",
             {"min": 0, "max": 1, "step": 0.05}),
            ("select", "motion_mode", "Motion Mode", "mdi:motion-sensor", f"{self._cmd_prefix}motion_mode",
             {"options": ["Motion On/Off", "Motion Off", "Motion Disabled"]}),
            ("sensor", "layer", "Panel Layer", "mdi:tablet-dashboard", None, {}),
            ("sensor", "progress", "Power Progress", "mdi:progress-clock", None, {"unit_of_measurement": "%"}),
        ]

        for component, key, name, icon, command_topic, extra in entities:
            config = {
                "name": name,
                "unique_id": f"{prefix}_{key}",
                "state_topic": self._state_topic,
                "value_template": f"{{{{ value_json.{key} }}}}",
                "icon": icon,
                "availability_topic": self._availability_topic,
                "device": device_info,
                **extra,
            }
            if command_topic:
                config["command_topic"] = command_topic
            self._client.publish(
                f"{HA_DISCOVERY_PREFIX}/{component}/{prefix}_{key}/config",
                json.dumps(config),
                retain=True
            )

        logger.info(f"Published Home Assistant MQTT Discovery configs ({len(entities)} entities)")

    def on_state_change(self, state: dict):
        """Callback for RoomController state changes."""
        self._publish_state(state)

    def start(self):
        """Start the MQTT client."""
        self._client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)

        if self._username:
            self._client.username_pw_set(self._username, self._password)

        # Set last will for availability
        self._client.will_set(self._availability_topic, "offline", retain=True)

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        try:
            self._client.connect(self._broker, self._port, keepalive=60)
        except Exception as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            return

        # Start network loop in background thread
        self._client.loop_start()
        logger.info(f"MQTT client started, connecting to {self._broker}:{self._port}")

        self._room_controller.add_state_callback(self.on_state_change)

    def stop(self):
        """Stop the MQTT client."""
        if self._client:
            self._room_controller.remove_state_callback(self.on_state_change)

            if self._connected:
                self._client.publish(self._availability_topic, "offline", retain=True)

            if self._device_port is not None:
                self._device_port.detach()
            self._client.loop_stop()
            self._client.disconnect()
            logger.info("MQTT client stopped")


def start_mqtt_client(
    action_queue,
    room_controller,
    broker: str,
    port: int = 1883,
    username: Optional[str] = None,
    password: Optional[str] = None,
    topic_prefix: str = DEFAULT_TOPIC_PREFIX,
    ha_discovery: bool = True,
    device_port: Optional[MqttDevicePort] = None,
) -> MqttClient:
    """
    Start MQTT client for Home Assistant integration.

    Args:
        action_queue: Queue for submitting room actions
        room_controller: RoomController instance
        broker: MQTT broker hostname
        port: MQTT broker port
        username: Optional username
        password: Optional password
        topic_prefix: Topic prefix (default: "room")
        ha_discovery: Enable HA MQTT Discovery
        device_port: MqttDevicePort sharing this connection (optional)

    Returns:
        MqttClient instance
    """
    client = MqttClient(
        action_queue=action_queue,
        room_controller=room_controller,
        broker=broker,
        port=port,
        username=username,
        password=password,
        topic_prefix=topic_prefix,
        ha_discovery=ha_discovery,
        device_port=device_port,
    )
    client.start()
    return client
