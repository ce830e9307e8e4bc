"""
Device action port - the contract between the room core and physical devices.

The core never talks to hardware directly. Adapters (in-memory simulator,
MQTT, vendor drivers) implement DeviceActionPort; the core always reaches
them through SafeDevicePort so a failing device can never abort a power
sequence.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Set, Tuple

from failure_logger import FailureLogThrottle

from .exceptions import DeviceActionError

logger = logging.getLogger(__name__)


class DeviceActionPort(ABC):
    """Abstract device adapter. Implementations may raise on failure."""

    @abstractmethod
    def trigger(self, device: str, action: str):
        ...

    @abstractmethod
    def set_boolean(self, device: str, prop: str, value: bool):
        ...

    @abstractmethod
    def set_numeric(self, device: str, prop: str, value: float):
        ...

    @abstractmethod
    def get_boolean(self, device: str, prop: str) -> bool:
        ...

    @abstractmethod
    def get_numeric(self, device: str, prop: str) -> float:
        ...

    @abstractmethod
    def get_string(self, device: str, prop: str) -> str:
        ...

    @abstractmethod
    def read_config(self, room: str, key: str) -> Optional[float]:
        """Per-room numeric setting, or None when the room does not define it."""
        ...


class SafeDevicePort(DeviceActionPort):
    """
    Wraps a DeviceActionPort so that no call ever raises.

    Failures are logged through a FailureLogThrottle keyed by device and
    property; reads fall back to False / 0.0 / "" / None.
    """

    def __init__(self, inner: DeviceActionPort, throttle: Optional[FailureLogThrottle] = None):
        self.inner = inner
        self.throttle = throttle or FailureLogThrottle()

    def _failed(self, op: str, device: str, prop: str, error: Exception):
        key = f"{device}.{prop}"
        if self.throttle.should_log(key):
            logger.warning(f"Device action failed: {op} {key}: {error} {self.throttle.format_info(key)}")

    def _succeeded(self, device: str, prop: str):
        key = f"{device}.{prop}"
        if self.throttle.reset(key):
            logger.info(f"Device action recovered: {key}")

    def trigger(self, device: str, action: str):
        try:
            self.inner.trigger(device, action)
        except Exception as e:
            self._failed("trigger", device, action, e)
            return
        self._succeeded(device, action)

    def set_boolean(self, device: str, prop: str, value: bool):
        try:
            self.inner.set_boolean(device, prop, value)
        except Exception as e:
            self._failed("set_boolean", device, prop, e)
            return
        self._succeeded(device, prop)

    def set_numeric(self, device: str, prop: str, value: float):
        try:
            self.inner.set_numeric(device, prop, value)
        except Exception as e:
            self._failed("set_numeric", device, prop, e)
            return
        self._succeeded(device, prop)

    def get_boolean(self, device: str, prop: str) -> bool:
        try:
            return bool(self.inner.get_boolean(device, prop))
        except Exception as e:
            self._failed("get_boolean", device, prop, e)
            return False

    def get_numeric(self, device: str, prop: str) -> float:
        try:
            return float(self.inner.get_numeric(device, prop))
        except Exception as e:
            self._failed("get_numeric", device, prop, e)
            return 0.0

    def get_string(self, device: str, prop: str) -> str:
        try:
            return str(self.inner.get_string(device, prop))
        except Exception as e:
            self._failed("get_string", device, prop, e)
            return ""

    def read_config(self, room: str, key: str) -> Optional[float]:
        try:
            return self.inner.read_config(room, key)
        except Exception as e:
            self._failed("read_config", room, key, e)
            return None


def read_duration(port: DeviceActionPort, room: str, key: str, *fallbacks: Optional[float]) -> float:
    """
    Resolve a per-room duration in seconds.

    The value from read_config wins when it is a positive number; otherwise
    the first positive fallback is used (typically the preset value, then the
    built-in default).

    Returns:
        Duration in seconds, 0.0 if nothing usable was found
    """
    candidates = (port.read_config(room, key),) + fallbacks
    for i, value in enumerate(candidates):
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            if i == 0 and value is not None:
                logger.info(f"Config {room}/{key}={value!r} is not numeric, using fallback")
            continue
        if seconds > 0:
            return seconds
        if i == 0:
            logger.info(f"Config {room}/{key}={value!r} is not positive, using fallback")
    return 0.0


class InMemoryDevicePort(DeviceActionPort):
    """
    Device simulator. Remembers every write and serves it back on read.

    Devices listed in `offline` raise DeviceActionError on every call, which
    is how tests and dry runs exercise failure tolerance.
    """

    def __init__(self, config: Optional[Dict[str, float]] = None):
        self._lock = threading.Lock()
        self.booleans: Dict[Tuple[str, str], bool] = {}
        self.numerics: Dict[Tuple[str, str], float] = {}
        self.strings: Dict[Tuple[str, str], str] = {}
        self.triggers: List[Tuple[str, str]] = []
        # Keys are "key" (any room) or "room/key"
        self.config: Dict[str, object] = dict(config or {})
        self.offline: Set[str] = set()

    def _check(self, device: str, prop: str):
        if device in self.offline:
            raise DeviceActionError(f"{device} is offline", device=device, prop=prop)

    def trigger(self, device: str, action: str):
        self._check(device, action)
        with self._lock:
            self.triggers.append((device, action))
        logger.debug(f"DEVICE trigger: {device}.{action}")

    def set_boolean(self, device: str, prop: str, value: bool):
        self._check(device, prop)
        with self._lock:
            self.booleans[(device, prop)] = bool(value)
        logger.debug(f"DEVICE set: {device}.{prop}={bool(value)}")

    def set_numeric(self, device: str, prop: str, value: float):
        self._check(device, prop)
        with self._lock:
            self.numerics[(device, prop)] = float(value)
        logger.debug(f"DEVICE set: {device}.{prop}={float(value):.2f}")

    def set_string(self, device: str, prop: str, value: str):
        with self._lock:
            self.strings[(device, prop)] = value

    def get_boolean(self, device: str, prop: str) -> bool:
        self._check(device, prop)
        with self._lock:
            return self.booleans.get((device, prop), False)

    def get_numeric(self, device: str, prop: str) -> float:
        self._check(device, prop)
        with self._lock:
            return self.numerics.get((device, prop), 0.0)

    def get_string(self, device: str, prop: str) -> str:
        self._check(device, prop)
        with self._lock:
            return self.strings.get((device, prop), "")

    def read_config(self, room: str, key: str) -> Optional[float]:
        with self._lock:
            value = self.config.get(f"{room}/{key}", self.config.get(key))
        return value

    def triggered(self, device: str, action: str) -> int:
        """Number of times `action` was triggered on `device`."""
        with self._lock:
            return self.triggers.count((device, action))
