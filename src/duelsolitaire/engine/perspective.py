"""Per-player orientation of the canonical host-perspective state."""

from __future__ import annotations

from typing import Any

from duelsolitaire.engine.schema import SchemaKind, detect_schema


def swap_foundation_halves(lanes: list[Any]) -> list[Any]:
    half = len(lanes) // 2
    return lanes[half:] + lanes[:half]


def project_for_player(state: Any, is_host: bool) -> Any:
    """View of `state` as seen by one player.

    The host sees the canonical state itself. The guest gets a shallow copy
    with `you`/`opp` swapped and foundation lanes 0-3 and 4-7 exchanged; the
    pile lists are shared with the canonical state, so callers must treat
    the view as read-only.
    """
    if is_host or not isinstance(state, dict):
        return state
    if detect_schema(state) is not SchemaKind.V1_SIDED:
        return state
    view = dict(state)
    view["you"], view["opp"] = state["opp"], state["you"]
    lanes = state.get("foundations")
    if isinstance(lanes, list):
        view["foundations"] = swap_foundation_halves(lanes)
    return view
