"""Normalization of wire move messages into typed moves."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from duelsolitaire.cards.model import Suit, normalize_suit
from duelsolitaire.engine.reasons import MoveRejected, Reason


class MoveKind(Enum):
    """The only state transitions a participant may request."""

    FLIP = "flip"
    RECYCLE = "recycle"
    TO_FOUND = "toFound"
    TO_PILE = "toPile"
    DRAW = "draw"


class Zone(Enum):
    TABLEAU = "tableau"
    FOUNDATION = "foundation"
    WASTE = "waste"
    STOCK = "stock"


class Side(Enum):
    """Board half, always relative to the canonical (host) perspective."""

    YOU = "you"
    OPP = "opp"

    @property
    def opposite(self) -> "Side":
        return Side.OPP if self is Side.YOU else Side.YOU


ZONE_TOKENS = {
    "pile": Zone.TABLEAU,
    "piles": Zone.TABLEAU,
    "tableau": Zone.TABLEAU,
    "tab": Zone.TABLEAU,
    "found": Zone.FOUNDATION,
    "foundation": Zone.FOUNDATION,
    "foundations": Zone.FOUNDATION,
    "fnd": Zone.FOUNDATION,
    "waste": Zone.WASTE,
    "stock": Zone.STOCK,
}

_SIDE_TOKENS = {
    "y": Side.YOU,
    "you": Side.YOU,
    "o": Side.OPP,
    "opp": Side.OPP,
}

_TABLEAU_TOKEN = re.compile(r"^t(\d+)$")
_FOUNDATION_TOKEN = re.compile(r"^f:(.+)$")
_INDEX_KEYS = ("idx", "uiIndex", "index", "i", "pile")


def parse_side(value: Any) -> Optional[Side]:
    if isinstance(value, Side):
        return value
    if not isinstance(value, str):
        return None
    return _SIDE_TOKENS.get(value.strip().lower())


def _coerce_index(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and re.fullmatch(r"-?\d+", value.strip()):
        return int(value.strip())
    return None


@dataclass(frozen=True)
class ZoneRef:
    """A normalized `from`/`to` descriptor."""

    zone: Zone
    index: Optional[int] = None
    side: Optional[Side] = None
    suit: Optional[Suit] = None

    def label(self) -> str:
        where = self.zone.value if self.index is None else f"{self.zone.value}[{self.index}]"
        return f"{self.side.value}.{where}" if self.side else where


def parse_zone_ref(value: Any, reason: Reason) -> Optional[ZoneRef]:
    """Parse a descriptor; `reason` is raised for anything present but unusable."""
    if value is None:
        return None

    if isinstance(value, str):
        token = value.strip()
        lowered = token.lower()
        if lowered in ZONE_TOKENS:
            return ZoneRef(zone=ZONE_TOKENS[lowered])
        m = _TABLEAU_TOKEN.match(lowered)
        if m:
            return ZoneRef(zone=Zone.TABLEAU, index=int(m.group(1)))
        m = _FOUNDATION_TOKEN.match(token)
        if m:
            suit = normalize_suit(m.group(1))
            if suit is None:
                raise MoveRejected(reason, f"unknown suit in {token!r}")
            return ZoneRef(zone=Zone.FOUNDATION, suit=suit)
        raise MoveRejected(reason, f"unrecognized zone token {token!r}")

    if not isinstance(value, dict):
        raise MoveRejected(reason, f"descriptor of type {type(value).__name__}")

    raw_zone = value.get("zone", value.get("kind", value.get("type")))
    zone = ZONE_TOKENS.get(raw_zone.strip().lower()) if isinstance(raw_zone, str) else None

    index = None
    for key in _INDEX_KEYS:
        if key in value:
            index = _coerce_index(value[key])
            if index is None and value[key] is not None:
                raise MoveRejected(reason, f"non-integer {key}={value[key]!r}")
            if index is not None:
                break

    lane_hint = _coerce_index(value.get("f"))
    if zone is None:
        if lane_hint is not None or "suit" in value:
            zone = Zone.FOUNDATION
        elif index is not None:
            zone = Zone.TABLEAU
        else:
            raise MoveRejected(reason, f"descriptor without zone: {value!r}")

    if zone is Zone.FOUNDATION and lane_hint is not None:
        index = lane_hint

    # Legacy bot messages address the waste as pile -1
    if zone is Zone.TABLEAU and index == -1:
        zone, index = Zone.WASTE, None

    suit = None
    if value.get("suit") is not None:
        suit = normalize_suit(value.get("suit"))
        if suit is None:
            raise MoveRejected(reason, f"unknown suit {value.get('suit')!r}")

    side = parse_side(value.get("sideOwner", value.get("owner", value.get("side"))))
    return ZoneRef(zone=zone, index=index, side=side, suit=suit)


@dataclass(frozen=True)
class Move:
    """A participant's proposed state transition."""

    kind: MoveKind
    card_id: Optional[str] = None
    count: Optional[int] = None
    source: Optional[ZoneRef] = None
    target: Optional[ZoneRef] = None
    owner: Optional[Side] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def wire_kind(self) -> str:
        """Kind as the client sent it (a stock `flip` normalizes to draw)."""
        raw_kind = self.raw.get("kind") if self.raw else None
        return raw_kind if isinstance(raw_kind, str) else self.kind.value

    def signature(self) -> str:
        """Compact identity used in logs (kind:card:from->to)."""
        src = "" if self.source is None else self.source.label()
        dst = "" if self.target is None else self.target.label()
        return f"{self.wire_kind}:{self.card_id or ''}:{src}->{dst}"


def parse_move(raw: Any) -> Move:
    """Normalize a parsed JSON move message.

    Raises:
        MoveRejected: for malformed payloads (never for rule violations).
    """
    if isinstance(raw, Move):
        return raw
    if not isinstance(raw, dict):
        raise MoveRejected(Reason.BAD_MOVE, f"move of type {type(raw).__name__}")

    try:
        kind = MoveKind(raw.get("kind"))
    except ValueError:
        raise MoveRejected(Reason.BAD_MOVE, f"unknown kind {raw.get('kind')!r}") from None

    card = raw.get("cardId", raw.get("id"))
    card = card if isinstance(card, str) and card else None

    count = None
    if raw.get("count") is not None:
        count = _coerce_index(raw.get("count"))
        if count is None or count < 1:
            raise MoveRejected(Reason.BAD_COUNT, f"count={raw.get('count')!r}")

    source = parse_zone_ref(raw.get("from"), Reason.BAD_FROM)
    target = parse_zone_ref(raw.get("to"), Reason.BAD_TO)
    owner = parse_side(raw.get("owner", raw.get("sideOwner")))

    # "flip" without a tableau target is the stock gesture of older clients
    if kind is MoveKind.FLIP and card is None:
        refs = [r for r in (source, target) if r is not None]
        if not any(r.zone is Zone.TABLEAU for r in refs):
            kind = MoveKind.DRAW

    return Move(
        kind=kind,
        card_id=card,
        count=count,
        source=source,
        target=target,
        owner=owner,
        raw=raw,
    )
