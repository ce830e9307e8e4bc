"""
Layer navigator - the touch panel's screen state machine.

Exactly one primary layer is current. What is actually visible on the
panel is a pure function of that layer, the external signals and the
routing sub-view, recomputed on every change and written to the panel
as a diff. Navigation requests are checked against a transition table;
forced changes (power phases, alarms, calls, sources) go through the same
check so the panel can never end up in a combination the table forbids.
"""
import logging
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from room_constants import (
    BASE_LAYERS, DEFAULT_ROUTING_VIEWS, LAYER_ACPR_ACTIVE, LAYER_ALARM, LAYER_CALL_ACTIVE,
    LAYER_CAMERA_CONTROLS, LAYER_CONNECT_USB_LAPTOP, LAYER_CONNECT_USB_PC, LAYER_DIALER,
    LAYER_HDMI01_DISCONNECTED, LAYER_HDMI02_DISCONNECTED, LAYER_HELP_DIALER, LAYER_HELP_LAPTOP,
    LAYER_HELP_PC, LAYER_HELP_ROUTING, LAYER_HELP_STREAM_MUSIC, LAYER_HELP_WIRELESS,
    LAYER_INCOMING_CALL, LAYER_LAPTOP, LAYER_PC, LAYER_PRESET_SAVED, LAYER_PROGRAM_VOLUME,
    LAYER_PROGRESS, LAYER_PROGRESS_COOLING, LAYER_PROGRESS_WARMING, LAYER_ROOM_CONTROLS,
    LAYER_ROUTING, LAYER_SHUTDOWN_CONFIRM, LAYER_START, LAYER_STREAM_MUSIC, LAYER_WIRELESS,
    NAV_BUTTON_COUNT, PANEL_LAYERS, TRANSITION_FADE, TRANSITION_NONE, nav_button, routing_button,
)

from .panel import PanelPort
from .states import CONTENT_LAYERS, LayerId, PowerState, PowerTransition, Signal, SignalState

logger = logging.getLogger(__name__)


class TransitionTable:
    """
    Legal primary-layer changes, keyed by source layer.

    A source with no entry is unrestricted. Lookup order is the insertion
    order of the mapping.
    """

    def __init__(self, mapping: Mapping[LayerId, Iterable[LayerId]]):
        self._table: Dict[LayerId, FrozenSet[LayerId]] = {
            source: frozenset(targets) for source, targets in mapping.items()
        }

    def allowed_from(self, source: LayerId) -> Optional[FrozenSet[LayerId]]:
        """Permitted targets, or None if `source` is unrestricted."""
        return self._table.get(source)

    def allows(self, source: LayerId, target: LayerId) -> bool:
        allowed = self._table.get(source)
        return allowed is None or target in allowed

    def sources(self) -> List[LayerId]:
        return list(self._table)


def _content_targets(source: LayerId) -> Tuple[LayerId, ...]:
    """A content layer may reach the alarm, an incoming call, cool-down and every other content layer."""
    return (LayerId.ALARM, LayerId.INCOMING_CALL, LayerId.COOLING) + tuple(
        layer for layer in CONTENT_LAYERS if layer is not source
    )


DEFAULT_TRANSITIONS = TransitionTable({
    LayerId.START: (LayerId.ALARM, LayerId.WARMING, LayerId.COOLING),
    LayerId.WARMING: (LayerId.ALARM,) + CONTENT_LAYERS,
    LayerId.COOLING: (LayerId.ALARM, LayerId.START),
    **{layer: _content_targets(layer) for layer in CONTENT_LAYERS},
})

# Higher value wins. Layers absent here are ordinary (priority 0).
INTERRUPT_PRIORITY: Dict[LayerId, int] = {
    LayerId.ALARM: 2,
    LayerId.INCOMING_CALL: 1,
}

# Primary panel layers shown for each LayerId
PRIMARY_LAYERS: Dict[LayerId, Tuple[str, ...]] = {
    LayerId.ALARM: (LAYER_ALARM,),
    LayerId.INCOMING_CALL: (LAYER_INCOMING_CALL,),
    LayerId.START: (LAYER_START,),
    LayerId.WARMING: (LAYER_PROGRESS, LAYER_PROGRESS_WARMING),
    LayerId.COOLING: (LAYER_PROGRESS, LAYER_PROGRESS_COOLING),
    LayerId.ROOM_CONTROLS: (LAYER_ROOM_CONTROLS,),
    LayerId.PC: (LAYER_PC,),
    LayerId.LAPTOP: (LAYER_LAPTOP,),
    LayerId.WIRELESS: (LAYER_WIRELESS,),
    LayerId.ROUTING: (LAYER_ROUTING,),
    LayerId.DIALER: (LAYER_DIALER,),
    LayerId.STREAM_MUSIC: (LAYER_STREAM_MUSIC,),
}

# Full-screen layers without volume strip, navbar and background
HIDES_BASE: FrozenSet[LayerId] = frozenset({LayerId.ALARM, LayerId.START, LayerId.WARMING, LayerId.COOLING})
HIDES_PROGRAM_VOLUME: FrozenSet[LayerId] = frozenset({LayerId.ROOM_CONTROLS, LayerId.ROUTING})

HELP_POPUPS: Dict[LayerId, Tuple[Signal, str]] = {
    LayerId.LAPTOP: (Signal.HELP_LAPTOP, LAYER_HELP_LAPTOP),
    LayerId.PC: (Signal.HELP_PC, LAYER_HELP_PC),
    LayerId.WIRELESS: (Signal.HELP_WIRELESS, LAYER_HELP_WIRELESS),
    LayerId.ROUTING: (Signal.HELP_ROUTING, LAYER_HELP_ROUTING),
    LayerId.DIALER: (Signal.HELP_DIALER, LAYER_HELP_DIALER),
    LayerId.STREAM_MUSIC: (Signal.HELP_STREAM_MUSIC, LAYER_HELP_STREAM_MUSIC),
}

# Source layers: (hdmi connected, usb camera, content view, hdmi disconnected view, connect-usb prompt)
SOURCE_VIEWS: Dict[LayerId, Tuple[Signal, Signal, str, str, str]] = {
    LayerId.LAPTOP: (Signal.HDMI01_CONNECTED, Signal.USB_LAPTOP, LAYER_LAPTOP,
                     LAYER_HDMI01_DISCONNECTED, LAYER_CONNECT_USB_LAPTOP),
    LayerId.PC: (Signal.HDMI02_CONNECTED, Signal.USB_PC, LAYER_PC,
                 LAYER_HDMI02_DISCONNECTED, LAYER_CONNECT_USB_PC),
}

# Signals that pull the panel to a source layer when they go high
SOURCE_SIGNALS: Dict[Signal, LayerId] = {
    Signal.USB_LAPTOP: LayerId.LAPTOP,
    Signal.OFF_HOOK_LAPTOP: LayerId.LAPTOP,
    Signal.HDMI01_ACTIVE: LayerId.LAPTOP,
    Signal.USB_PC: LayerId.PC,
    Signal.OFF_HOOK_PC: LayerId.PC,
    Signal.HDMI02_ACTIVE: LayerId.PC,
}

INTERRUPT_SIGNALS: Dict[Signal, LayerId] = {
    Signal.FIRE_ALARM: LayerId.ALARM,
    Signal.INCOMING_CALL: LayerId.INCOMING_CALL,
}

POWER_LAYERS: Dict[PowerState, Optional[LayerId]] = {
    PowerState.WARMING: LayerId.WARMING,
    PowerState.ON: None,    # home layer, configured per navigator
    PowerState.COOLING: LayerId.COOLING,
    PowerState.OFF: LayerId.START,
}


def compose_layers(layer: LayerId, signals: SignalState, routing_index: int = 0,
                   routing_views: Sequence[str] = DEFAULT_ROUTING_VIEWS) -> Set[str]:
    """
    Every panel layer that should be visible for `layer` under `signals`.

    Args:
        layer: Current primary layer
        signals: External signal values
        routing_index: Active routing sub-view (0-based, assumed valid)
        routing_views: Routing sub-view layer names

    Returns:
        Set of panel layer names; everything else in the universe is hidden
    """
    visible: Set[str] = set(PRIMARY_LAYERS[layer])

    if layer not in HIDES_BASE:
        visible.update(BASE_LAYERS)
    if layer in HIDES_PROGRAM_VOLUME:
        visible.discard(LAYER_PROGRAM_VOLUME)

    if layer in SOURCE_VIEWS:
        hdmi, usb, content_view, disconnected_view, usb_prompt = SOURCE_VIEWS[layer]
        help_signal, _ = HELP_POPUPS[layer]
        hdmi_connected = signals[hdmi]
        if not hdmi_connected:
            visible.discard(content_view)
            visible.add(disconnected_view)

        # Camera controls are covered by help and by the disconnected view
        if hdmi_connected and not signals[help_signal]:
            if not signals[usb]:
                visible.add(usb_prompt)
            elif signals[Signal.ACPR_BYPASS]:
                visible.add(LAYER_CAMERA_CONTROLS)
            else:
                visible.add(LAYER_ACPR_ACTIVE)

        if signals[Signal.PRESET_SAVED]:
            visible.add(LAYER_PRESET_SAVED)

    if layer in HELP_POPUPS:
        help_signal, help_layer = HELP_POPUPS[layer]
        if signals[help_signal]:
            visible.add(help_layer)

    if layer is LayerId.ROUTING and routing_views:
        visible.add(routing_views[routing_index])

    if layer in CONTENT_LAYERS:
        if signals[Signal.CALL_ACTIVE]:
            visible.add(LAYER_CALL_ACTIVE)
        if signals[Signal.SHUTDOWN_PROMPT]:
            visible.add(LAYER_SHUTDOWN_CONFIRM)

    return visible


LayerCallback = Callable[[LayerId, LayerId], None]


class LayerNavigator:
    def __init__(self, panel: PanelPort, signals: SignalState,
                 table: TransitionTable = DEFAULT_TRANSITIONS,
                 home_layer: LayerId = LayerId.ROOM_CONTROLS,
                 initial_layer: LayerId = LayerId.START,
                 routing_views: Sequence[str] = DEFAULT_ROUTING_VIEWS,
                 default_routing_index: int = 0,
                 hidden_nav_buttons: Iterable[int] = ()):
        """
        Args:
            panel: Where visibility and highlights are written
            signals: Shared external signal state (read only here)
            table: Legal transitions
            home_layer: Layer shown when warm-up completes
            initial_layer: Layer shown at start-up
            routing_views: Routing sub-view layer names, selected by index
            default_routing_index: Sub-view used at start-up and for out-of-range selections
            hidden_nav_buttons: Navigation button numbers (1-12) to hide
        """
        self._panel = panel
        self._signals = signals
        self.table = table
        self.home_layer = home_layer
        self.routing_views: Tuple[str, ...] = tuple(routing_views)
        self.universe: Tuple[str, ...] = PANEL_LAYERS + tuple(
            v for v in self.routing_views if v not in PANEL_LAYERS
        )

        if self.routing_views and not 0 <= default_routing_index < len(self.routing_views):
            logger.warning(f"Default routing index {default_routing_index} out of range, using 0")
            default_routing_index = 0
        self.default_routing_index = default_routing_index
        self.routing_index = default_routing_index

        self._current = initial_layer
        self._power = PowerState.OFF
        self._active_interrupts: Set[LayerId] = set()
        self._resume: Optional[LayerId] = None
        self._written: Dict[str, bool] = {}
        self._listeners: List[LayerCallback] = []
        self.hidden_nav_buttons = tuple(sorted(set(hidden_nav_buttons)))

    @property
    def current_layer(self) -> LayerId:
        return self._current

    @property
    def resume_layer(self) -> Optional[LayerId]:
        return self._resume

    def add_listener(self, callback: LayerCallback):
        """Register callback(previous, current) for accepted layer changes."""
        self._listeners.append(callback)

    def start(self):
        """Write the initial composition, hide configured nav buttons."""
        for index in self.hidden_nav_buttons:
            if 1 <= index <= NAV_BUTTON_COUNT:
                self._panel.set_control_visible(nav_button(index), False)
            else:
                logger.warning(f"Hidden nav button {index} out of range (1-{NAV_BUTTON_COUNT})")
        self._written.clear()
        self._apply()
        logger.info(f"Layer navigator started on {self._current.label}")

    # --- Primary layer ---

    def request_layer(self, target) -> bool:
        """
        Make `target` the current layer if the transition table permits it.

        Returns:
            True if the layer is now current, False if rejected or unknown
        """
        layer = LayerId.parse(target)
        if layer is None:
            logger.warning(f"Unknown layer requested: {target!r}")
            return False

        previous = self._current
        if layer is not previous and not self.table.allows(previous, layer):
            logger.warning(f"Invalid layer transition from {previous.label} to {layer.label}")
            return False

        self._current = layer
        if layer not in INTERRUPT_PRIORITY:
            self._resume = None
        self._apply()
        if layer is not previous:
            logger.info(f"Layer: {previous.label} -> {layer.label}")
            for callback in list(self._listeners):
                try:
                    callback(previous, layer)
                except Exception as e:
                    logger.error(f"Layer listener error: {e}", exc_info=True)
        return True

    def force_layer(self, target: LayerId) -> bool:
        """
        Forced change from a signal or power phase.

        While a higher-priority interrupt layer is showing the target is
        remembered as the resume layer instead of being shown.
        """
        current_priority = INTERRUPT_PRIORITY.get(self._current, 0)
        target_priority = INTERRUPT_PRIORITY.get(target, 0)

        if target is not self._current and current_priority > target_priority:
            logger.debug(f"{target.label} deferred behind {self._current.label}")
            if target_priority == 0:
                self._resume = target
            return False

        entering_interrupt = target_priority > 0 and current_priority == 0
        previous = self._current
        if not self.request_layer(target):
            return False
        if entering_interrupt:
            self._resume = previous
        return True

    def _return_from_interrupt(self):
        pending = sorted(self._active_interrupts, key=lambda l: INTERRUPT_PRIORITY[l], reverse=True)
        if pending:
            # Keep the resume layer for when the last interrupt clears
            resume = self._resume
            if self.request_layer(pending[0]):
                self._resume = resume
                return
        target = self._resume or self._power_layer(self._power)
        if not self.request_layer(target):
            # Resume target not reachable from here, fall back to the power phase layer
            self.request_layer(self._power_layer(self._power))

    # --- Routing sub-view ---

    def select_routing(self, index: int) -> int:
        """
        Select routing sub-view `index` (0-based). Out-of-range values fall
        back to the default index.

        Returns:
            The index actually selected
        """
        if not self.routing_views:
            return 0
        try:
            index = int(index)
        except (TypeError, ValueError):
            index = -1
        if not 0 <= index < len(self.routing_views):
            logger.warning(f"Invalid routing index {index}, using default {self.default_routing_index}")
            index = self.default_routing_index
        self.routing_index = index
        self._apply()
        logger.debug(f"Routing view: {self.routing_views[index]}")
        return index

    # --- Subscriptions ---

    def on_power_transition(self, event: PowerTransition):
        self._power = event.current
        target = self._power_layer(event.current)
        if self.force_layer(target) and target in CONTENT_LAYERS:
            # Interrupts raised while no content layer could take them
            self._show_pending_interrupt()

    def _show_pending_interrupt(self):
        if self._active_interrupts:
            self.force_layer(max(self._active_interrupts, key=lambda l: INTERRUPT_PRIORITY[l]))

    def on_signal(self, signal: Signal, value: bool):
        """Called after `signal` changed in the shared SignalState."""
        if signal in INTERRUPT_SIGNALS:
            layer = INTERRUPT_SIGNALS[signal]
            if value:
                self._active_interrupts.add(layer)
                self.force_layer(layer)
            else:
                self._active_interrupts.discard(layer)
                if self._current is layer:
                    self._return_from_interrupt()
                else:
                    self._apply()
            return

        if value and signal in SOURCE_SIGNALS:
            if self._power is PowerState.ON:
                self.force_layer(SOURCE_SIGNALS[signal])
            else:
                logger.debug(f"{signal.value} ignored for navigation while {self._power.value}")

        self._apply()

    def _power_layer(self, state: PowerState) -> LayerId:
        return POWER_LAYERS[state] or self.home_layer

    # --- Panel output ---

    def visible_layers(self) -> Set[str]:
        return compose_layers(self._current, self._signals, self.routing_index, self.routing_views)

    def _apply(self):
        """Write the composition for the current state. Only changed layers after the first write."""
        visible = self.visible_layers()
        base = set(BASE_LAYERS)
        for name in self.universe:
            shown = name in visible
            if self._written.get(name) == shown:
                continue
            transition = TRANSITION_FADE if shown and name not in base else TRANSITION_NONE
            self._panel.set_layer_visible(name, shown, transition)
            self._written[name] = shown
        self._interlock()

    def _interlock(self):
        for index in range(1, NAV_BUTTON_COUNT + 1):
            self._panel.set_button_highlight(nav_button(index), index == self._current.value)
        for index in range(len(self.routing_views)):
            self._panel.set_button_highlight(routing_button(index), index == self.routing_index)

    def get_state(self) -> dict:
        return {
            "layer": self._current.label,
            "layer_id": self._current.value,
            "routing_index": self.routing_index,
            "routing_view": self.routing_views[self.routing_index] if self.routing_views else None,
            "resume_layer": self._resume.label if self._resume else None,
            "visible_layers": sorted(self.visible_layers()),
        }
