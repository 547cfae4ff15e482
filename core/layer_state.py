"""
Layer visibility state machine for composed site maps.

Models the layer control of a map as an immutable state: the active base
layer, and the visible overlays in the order they were enabled. The most
recently enabled overlay is drawn on top and is the only one that answers a
click with its popup, so the enable order is tracked rather than a plain set
of visible layers.

All transitions are pure functions returning a new ``LayerState``; the
rendered Leaflet map follows the same rules through its layer control
(``autoZIndex`` off, so re-adding an overlay brings it to the front).

Classes:
    LayerState: Active base layer plus overlay enable order

Functions:
    initial_state: State a freshly composed map starts in
    select_base: Switch the active base layer
    enable_overlay / disable_overlay / toggle_overlay: Overlay transitions
    topmost_overlay: Topmost visible overlay among candidates
"""

from dataclasses import dataclass, replace
from typing import Iterable, Optional, Sequence, Tuple


@dataclass(frozen=True)
class LayerState:
    base_layers: Tuple[str, ...]
    overlays: Tuple[str, ...]
    base: str
    enable_order: Tuple[str, ...] = ()

    @property
    def visible_overlays(self) -> frozenset:
        return frozenset(self.enable_order)

    @property
    def hidden_overlays(self) -> Tuple[str, ...]:
        return tuple(name for name in self.overlays if name not in self.enable_order)

    @property
    def visible_layers(self) -> Tuple[str, ...]:
        """Active base layer followed by visible overlays, bottom to top."""
        return (self.base,) + self.enable_order

    def is_visible(self, name: str) -> bool:
        return name == self.base or name in self.enable_order


def initial_state(
    base_layers: Sequence[str],
    overlays: Sequence[Tuple[str, bool]]
) -> LayerState:
    """
    Build the starting state of a map.

    Args:
        base_layers: Base layer names; the first one is active
        overlays: (name, visible by default) pairs in control order

    Returns:
        LayerState with default-visible overlays enabled in control order

    Raises:
        ValueError: If there is no base layer or a name is used twice
    """
    if not base_layers:
        raise ValueError("A map needs at least one base layer")

    names = list(base_layers) + [name for name, _ in overlays]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate layer name(s): {', '.join(duplicates)}")

    return LayerState(
        base_layers=tuple(base_layers),
        overlays=tuple(name for name, _ in overlays),
        base=base_layers[0],
        enable_order=tuple(name for name, show in overlays if show)
    )


def _require_overlay(state: LayerState, name: str) -> None:
    if name not in state.overlays:
        raise KeyError(f"Unknown overlay layer: {name}")


def select_base(state: LayerState, name: str) -> LayerState:
    """Make ``name`` the active base layer; base layers are mutually exclusive."""
    if name not in state.base_layers:
        raise KeyError(f"Unknown base layer: {name}")
    return replace(state, base=name)


def enable_overlay(state: LayerState, name: str) -> LayerState:
    """Turn an overlay on; it becomes the topmost layer. No-op if already on."""
    _require_overlay(state, name)
    if name in state.enable_order:
        return state
    return replace(state, enable_order=state.enable_order + (name,))


def disable_overlay(state: LayerState, name: str) -> LayerState:
    _require_overlay(state, name)
    return replace(state, enable_order=tuple(n for n in state.enable_order if n != name))


def toggle_overlay(state: LayerState, name: str) -> LayerState:
    """Flip an overlay's visibility, updating the enable order."""
    if name in state.enable_order:
        return disable_overlay(state, name)
    return enable_overlay(state, name)


def apply_toggles(state: LayerState, names: Iterable[str]) -> LayerState:
    """Toggle each overlay in ``names`` in turn."""
    for name in names:
        state = toggle_overlay(state, name)
    return state


def topmost_overlay(state: LayerState, candidates: Optional[Iterable[str]] = None) -> Optional[str]:
    """
    Return the most recently enabled visible overlay.

    Args:
        state: Current layer state
        candidates: Restrict the answer to these overlays (e.g. the overlays
            that have a feature under the cursor)

    Returns:
        Overlay name, or None if no candidate is visible
    """
    allowed = None if candidates is None else set(candidates)
    for name in reversed(state.enable_order):
        if allowed is None or name in allowed:
            return name
    return None
