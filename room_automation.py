"""
Room Automation - power sequencing, motion auto-power and touch panel control
for a conferencing room.

One consumer thread is the event loop: it takes room actions off the queue
(REST, MQTT and panel inputs only ever enqueue), fires due timers between
them, and runs every handler to completion.
"""

__version__ = "1.0.0"

import logging
import os
import queue
import signal
import socket
import sys
import threading
import time

import psutil

from logging_setup import setup_logging
from room_constants import MAX_EVENT_AGE
from room_core import InMemoryDevicePort, QueuedAction, RoomController
from room_manager import build_room_config, parse_arguments

logger = logging.getLogger(__name__)

QUEUE_MAX_SIZE = 100  # Maximum queued actions before producers block


def set_higher_priority():
    try:
        p = psutil.Process(os.getpid())
        if sys.platform == 'win32':
            p.nice(psutil.ABOVE_NORMAL_PRIORITY_CLASS)
        else:
            p.nice(max(p.nice() - 5, -20))
        logger.debug("Main process priority raised.")
    except Exception as e:
        logger.warning(f"Failed to set higher priority: {e}")


def port_in_use(port: int) -> bool:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.settimeout(1)
    try:
        return sock.connect_ex(('127.0.0.1', port)) == 0
    finally:
        sock.close()


def signal_handler(sig, frame, daemon, stop_logging_func):
    """Handles SIGINT and shuts down the daemon."""
    logger.info("SIGINT received, shutting down...")
    daemon.stop()
    stop_logging_func()
    sys.exit(0)


class RoomAutomationDaemon:
    def __init__(self, controller: RoomController, api_port: int = 0,
                 mqtt_broker: str = None, mqtt_port: int = 1883,
                 mqtt_user: str = None, mqtt_pass: str = None,
                 mqtt_topic: str = "room", mqtt_ha_discovery: bool = True,
                 mqtt_device_port=None):
        self.controller = controller
        self.queue: queue.Queue = queue.Queue(maxsize=QUEUE_MAX_SIZE)
        self.api_port = api_port
        self.mqtt_broker = mqtt_broker
        self.mqtt_port = mqtt_port
        self.mqtt_user = mqtt_user
        self.mqtt_pass = mqtt_pass
        self.mqtt_topic = mqtt_topic
        self.mqtt_ha_discovery = mqtt_ha_discovery
        self.mqtt_device_port = mqtt_device_port
        self.mqtt_client = None
        self.api_thread = None
        self.consumer_thread = threading.Thread(target=self.consumer, name="ConsumerThread", daemon=True)

    def submit(self, action):
        self.queue.put(QueuedAction(action=action, timestamp=time.time()))

    def process(self, queued: QueuedAction) -> bool:
        """
        Dispatch one queued action. Stale actions are dropped.

        Returns:
            True if the action was dispatched
        """
        event_age = time.time() - queued.timestamp
        if event_age > MAX_EVENT_AGE:
            logger.warning(f"Discarded stale action ({event_age:.1f}s old): {queued.action}")
            return False
        try:
            self.controller.dispatch(queued.action)
        except Exception as e:
            logger.error(f"Error processing action {queued.action}: {e}", exc_info=True)
        return True

    def consumer(self):
        """Event loop: waits for the next action or the next timer, whichever comes first."""
        while True:
            timeout = self.controller.time_until_next()
            try:
                queued = self.queue.get(timeout=timeout)
            except queue.Empty:
                queued = False

            try:
                self.controller.run_due()
            except Exception as e:
                logger.error(f"Error running timers: {e}", exc_info=True)

            if queued is None:  # Sentinel for consumer shutdown
                logger.info("Consumer thread exiting...")
                break
            if queued:
                self.process(queued)

    def start(self):
        """Starts the controller, the event loop and the optional API/MQTT front ends."""
        def log_state_change(state: dict):
            logger.debug(f"State changed: power={state['power']}, layer={state['layer']}, "
                         f"progress={state['progress']}, motion={state['motion']['mode']}")
        self.controller.add_state_callback(log_state_change)

        self.controller.start()
        self.consumer_thread.start()

        if self.api_port > 0:
            from api import start_api_server
            self.api_thread = start_api_server(self.queue, self.controller, port=self.api_port)

        if self.mqtt_broker:
            from api.mqtt import start_mqtt_client
            self.mqtt_client = start_mqtt_client(
                action_queue=self.queue,
                room_controller=self.controller,
                broker=self.mqtt_broker,
                port=self.mqtt_port,
                username=self.mqtt_user,
                password=self.mqtt_pass,
                topic_prefix=self.mqtt_topic,
                ha_discovery=self.mqtt_ha_discovery,
                device_port=self.mqtt_device_port,
            )

    def stop(self):
        """Stops the daemon gracefully."""
        logger.info("Stopping daemon...")
        self.queue.put(None)  # Sentinel to unblock the consumer

        if self.mqtt_client:
            self.mqtt_client.stop()

        if self.consumer_thread.is_alive():
            self.consumer_thread.join(timeout=2)
        self.controller.stop()

        logger.info("Daemon stopped.")


def log_configuration(args, config):
    logger.info(f"---> Configuration:")
    logger.info(f"     Room: {config.room_name} (preset: {args.room_preset})")
    logger.info(f"     Warm-up: {config.preset.warmup_seconds}s, cool-down: {config.preset.cooldown_seconds}s")
    logger.info(f"     Motion: {config.motion_mode.value}, timeout {config.preset.motion_timeout_seconds}s, "
                f"grace {config.preset.grace_seconds}s")
    logger.info(f"     Default volume: {config.preset.default_volume}")
    logger.info(f"     Home layer: {config.home_layer.label}, routing default: {config.default_routing_index}")
    logger.info(f"     Hidden nav buttons: {list(config.hidden_nav_buttons) or 'none'}")
    logger.info(f"     Displays: {config.devices.displays}, gains: {config.devices.gains}")
    logger.info(f"     Log level: {args.log_level}, file: {args.log_file_name}")
    if args.api_port > 0:
        logger.info(f"     REST API: http://0.0.0.0:{args.api_port}")
    else:
        logger.info(f"     REST API: disabled")
    if args.mqtt_broker:
        logger.info(f"     MQTT: {args.mqtt_broker}:{args.mqtt_port} (topic: {args.mqtt_topic})")
        logger.info(f"     MQTT HA Discovery: {args.mqtt_ha_discovery}")
        logger.info(f"     Devices: {'MQTT' if args.mqtt_devices else 'simulated'}")
    else:
        logger.info(f"     MQTT: disabled")
        logger.info(f"     Devices: simulated")
    logger.info(f"<--- End configuration")


def main():
    args = parse_arguments(__file__)
    _, stop_logging = setup_logging(
        args.log_level, args.log_file_name,
        script_dir=os.path.dirname(os.path.abspath(__file__)),
        version=__version__,
        script_name="Room Automation",
    )

    config = build_room_config(args)
    log_configuration(args, config)

    # Check if another instance is already running (by checking if API port is in use)
    if args.api_port > 0 and port_in_use(args.api_port):
        logger.error(f"Another instance is already running (port {args.api_port} in use). Exiting.")
        stop_logging()
        sys.exit(1)

    set_higher_priority()

    mqtt_device_port = None
    if args.mqtt_devices:
        from api.mqtt import MqttDevicePort
        mqtt_device_port = MqttDevicePort(topic_prefix=args.mqtt_topic)
        device = mqtt_device_port
    else:
        device = InMemoryDevicePort()

    controller = RoomController(config, device)
    daemon = RoomAutomationDaemon(
        controller,
        api_port=args.api_port,
        mqtt_broker=args.mqtt_broker,
        mqtt_port=args.mqtt_port,
        mqtt_user=args.mqtt_user,
        mqtt_pass=args.mqtt_pass,
        mqtt_topic=args.mqtt_topic,
        mqtt_ha_discovery=args.mqtt_ha_discovery,
        mqtt_device_port=mqtt_device_port,
    )
    signal.signal(signal.SIGINT, lambda sig, frame: signal_handler(sig, frame, daemon, stop_logging))
    daemon.start()

    try:
        while True:
            time.sleep(3)  # Keep the main thread alive
    except KeyboardInterrupt:
        signal_handler(None, None, daemon, stop_logging)
    finally:
        stop_logging()


if __name__ == "__main__":
    main()
