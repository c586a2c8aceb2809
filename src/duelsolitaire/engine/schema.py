"""Structural detection of the two historical state shapes.

`legacy_root` is the single-board format (52 cards, 4 foundation lanes,
piles at the top level). `v1_sided` is the dual-board format (`you`/`opp`
halves, 8 global foundation lanes, 104 cards). Historical clients never sent
a version tag, so the shape is decided by structure alone, once per call,
and everything downstream talks to a `Board` instead of re-probing dicts.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterator, Optional

from duelsolitaire.cards.model import normalize_suit, SUIT_ORDER
from duelsolitaire.engine.moves import Side
from duelsolitaire.engine.reasons import MoveRejected, Reason

TABLEAU_COLUMNS = 7


class SchemaKind(Enum):
    LEGACY_ROOT = "legacy_root"
    V1_SIDED = "v1_sided"
    UNKNOWN = "unknown"


def _is_columns(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(col, list) for col in value)


def _is_side(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and _is_columns(value.get("tableau"))
        and isinstance(value.get("stock"), list)
        and isinstance(value.get("waste"), list)
    )


def _legacy_columns(state: dict[str, Any]) -> Any:
    return state.get("tableau", state.get("tableaus"))


def detect_schema(state: Any) -> SchemaKind:
    """Classify a raw state object by shape."""
    if not isinstance(state, dict):
        return SchemaKind.UNKNOWN

    foundations = state.get("foundations")
    if "you" in state or "opp" in state:
        if _is_side(state.get("you")) and _is_side(state.get("opp")) and isinstance(foundations, list):
            return SchemaKind.V1_SIDED
        return SchemaKind.UNKNOWN

    if (
        _is_columns(_legacy_columns(state))
        and isinstance(state.get("stock"), list)
        and isinstance(state.get("waste"), list)
        and isinstance(foundations, (list, dict))
    ):
        return SchemaKind.LEGACY_ROOT

    return SchemaKind.UNKNOWN


def legacy_foundation_lanes(foundations: dict[str, Any]) -> list[dict[str, Any]]:
    """Lane view over a `{S: [...], H: [...]}` map, in ♠ ♥ ♦ ♣ order.

    The card lists are shared with the map, so appends land in the original.
    """
    by_suit = {}
    for key, cards in foundations.items():
        suit = normalize_suit(key)
        if suit is not None and isinstance(cards, list):
            by_suit[suit] = cards
    return [{"suit": s.value, "cards": by_suit[s]} for s in SUIT_ORDER if s in by_suit]


class Board:
    """Zone accessors over a raw state dict (mutations write through)."""

    kind = SchemaKind.UNKNOWN
    dual = False

    def __init__(self, state: dict[str, Any]):
        self.state = state

    def sides(self) -> tuple[Optional[Side], ...]:
        raise NotImplementedError

    def side_state(self, side: Optional[Side]) -> dict[str, Any]:
        raise NotImplementedError

    def stock(self, side: Optional[Side]) -> list[Any]:
        return self.side_state(side)["stock"]

    def waste(self, side: Optional[Side]) -> list[Any]:
        return self.side_state(side)["waste"]

    def tableau(self, side: Optional[Side]) -> list[list[Any]]:
        columns = self.side_state(side)["tableau"]
        if len(columns) != TABLEAU_COLUMNS:
            raise MoveRejected(Reason.BAD_PILES, f"{len(columns)} tableau columns")
        return columns

    def foundations(self) -> list[dict[str, Any]]:
        lanes = self.state["foundations"]
        for i, lane in enumerate(lanes):
            if not isinstance(lane, dict) or not isinstance(lane.get("cards"), list):
                raise MoveRejected(Reason.BAD_FOUNDATION, f"lane {i} malformed")
        return lanes

    def side_label(self, side: Optional[Side]) -> str:
        return side.value if side is not None else "root"

    def zones(self) -> Iterator[tuple[str, list[Any]]]:
        """Every card-bearing pile with a stable label, for counting."""
        for side in self.sides():
            prefix = "" if side is None else f"{side.value}."
            part = self.side_state(side)
            for name in ("stock", "waste"):
                pile = part.get(name)
                yield f"{prefix}{name}", pile if isinstance(pile, list) else []
            columns = part.get("tableau", part.get("tableaus"))
            if isinstance(columns, list):
                for i, col in enumerate(columns):
                    yield f"{prefix}tableau[{i}]", col if isinstance(col, list) else []
        lanes = self.state.get("foundations")
        if isinstance(lanes, dict):
            lanes = legacy_foundation_lanes(lanes)
        if isinstance(lanes, list):
            for i, lane in enumerate(lanes):
                cards = lane.get("cards") if isinstance(lane, dict) else None
                yield f"foundations[{i}]", cards if isinstance(cards, list) else []


class LegacyRootBoard(Board):
    """Single implicit side; any requested side maps onto the root."""

    kind = SchemaKind.LEGACY_ROOT
    dual = False

    def sides(self) -> tuple[Optional[Side], ...]:
        return (None,)

    def side_state(self, side: Optional[Side]) -> dict[str, Any]:
        return self.state

    def tableau(self, side: Optional[Side]) -> list[list[Any]]:
        columns = _legacy_columns(self.state)
        if len(columns) != TABLEAU_COLUMNS:
            raise MoveRejected(Reason.BAD_PILES, f"{len(columns)} tableau columns")
        return columns

    def foundations(self) -> list[dict[str, Any]]:
        lanes = self.state["foundations"]
        if isinstance(lanes, dict):
            return legacy_foundation_lanes(lanes)
        return super().foundations()

    def side_label(self, side: Optional[Side]) -> str:
        return "root"


class V1SidedBoard(Board):
    kind = SchemaKind.V1_SIDED
    dual = True

    def sides(self) -> tuple[Optional[Side], ...]:
        return (Side.YOU, Side.OPP)

    def side_state(self, side: Optional[Side]) -> dict[str, Any]:
        return self.state[(side or Side.OPP).value]


def open_board(state: Any) -> Board:
    """Wrap a state in the accessor matching its shape.

    Raises:
        MoveRejected: `state_missing` or `unsupported_state_schema`.
    """
    if state is None:
        raise MoveRejected(Reason.STATE_MISSING)
    kind = detect_schema(state)
    if kind is SchemaKind.V1_SIDED:
        return V1SidedBoard(state)
    if kind is SchemaKind.LEGACY_ROOT:
        return LegacyRootBoard(state)
    raise MoveRejected(Reason.UNSUPPORTED_STATE_SCHEMA)


def normalize_state(state: dict[str, Any]) -> dict[str, Any]:
    """Rewrite legacy foundation maps into the lane-array form in place."""
    if detect_schema(state) is SchemaKind.LEGACY_ROOT:
        if isinstance(state.get("foundations"), dict):
            state["foundations"] = [
                {"suit": lane["suit"], "cards": list(lane["cards"])}
                for lane in legacy_foundation_lanes(state["foundations"])
            ]
        if "tableau" not in state and "tableaus" in state:
            state["tableau"] = state.pop("tableaus")
    return state
