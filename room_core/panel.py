"""
Panel port - the UI-facing write contract and its in-memory implementation.

The navigator and the progress animator only ever write through PanelPort;
how the writes reach a physical touch panel is up to the renderer. PanelState
keeps the last written value of every element so it can be published in the
room snapshot and inspected by tests.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List

from room_constants import TRANSITION_NONE, log_panel

logger = logging.getLogger(__name__)


class PanelPort(ABC):
    """Write-only panel contract."""

    @abstractmethod
    def set_layer_visible(self, name: str, visible: bool, transition: str = TRANSITION_NONE):
        ...

    @abstractmethod
    def set_button_highlight(self, button: str, on: bool):
        ...

    @abstractmethod
    def set_control_enabled(self, control: str, enabled: bool):
        ...

    @abstractmethod
    def set_control_visible(self, control: str, visible: bool):
        ...

    @abstractmethod
    def set_progress_value(self, value: int):
        ...

    @abstractmethod
    def set_progress_text(self, text: str):
        ...


class PanelState(PanelPort):
    """In-memory panel: records every element's latest value."""

    def __init__(self):
        self._lock = threading.Lock()
        self.layers: Dict[str, bool] = {}
        self.transitions: Dict[str, str] = {}
        self.highlights: Dict[str, bool] = {}
        self.enabled: Dict[str, bool] = {}
        self.visible_controls: Dict[str, bool] = {}
        self.progress_value: int = 0
        self.progress_text: str = "0%"
        self.layer_writes: int = 0

    def set_layer_visible(self, name: str, visible: bool, transition: str = TRANSITION_NONE):
        with self._lock:
            self.layers[name] = bool(visible)
            self.transitions[name] = transition
            self.layer_writes += 1
        log_panel(logger, "layer", name, visible, transition)

    def set_button_highlight(self, button: str, on: bool):
        with self._lock:
            self.highlights[button] = bool(on)

    def set_control_enabled(self, control: str, enabled: bool):
        with self._lock:
            self.enabled[control] = bool(enabled)
        log_panel(logger, "enabled", control, enabled)

    def set_control_visible(self, control: str, visible: bool):
        with self._lock:
            self.visible_controls[control] = bool(visible)
        log_panel(logger, "visible", control, visible)

    def set_progress_value(self, value: int):
        with self._lock:
            self.progress_value = int(value)

    def set_progress_text(self, text: str):
        with self._lock:
            self.progress_text = text

    def visible_layers(self) -> List[str]:
        with self._lock:
            return sorted(name for name, visible in self.layers.items() if visible)

    def highlighted_buttons(self) -> List[str]:
        with self._lock:
            return sorted(name for name, on in self.highlights.items() if on)

    def is_visible(self, name: str) -> bool:
        with self._lock:
            return self.layers.get(name, False)

    def is_enabled(self, control: str) -> bool:
        with self._lock:
            return self.enabled.get(control, True)
