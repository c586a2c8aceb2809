"""Resolution of zone descriptors to concrete card sequences.

Foundation lanes are one global pool: a card may land on any lane labelled
with its suit, and among the legal lanes the one with the highest top rank
wins (ties go to the lowest lane index). The caller's lane hint never
decides placement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from duelsolitaire.cards.model import (
    ACE,
    Suit,
    card_id,
    card_rank,
    card_suit,
    normalize_suit,
    owner_of_card_id,
)
from duelsolitaire.engine.moves import Move, Side, Zone, ZoneRef, parse_side
from duelsolitaire.engine.reasons import MoveRejected, Reason, ReasonCategory
from duelsolitaire.engine.schema import Board, TABLEAU_COLUMNS

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Only "this pile doesn't fit" outcomes justify looking at the other board
RETRYABLE_CATEGORIES = frozenset({
    ReasonCategory.RULE,
    ReasonCategory.IDENTITY,
    ReasonCategory.EMPTY_PILE,
})


@dataclass(frozen=True)
class PileRef:
    """A resolved pile: where it lives plus the live card list."""

    zone: Zone
    side: Optional[Side]
    index: Optional[int]
    cards: list[Any] = field(compare=False, repr=False)

    def label(self) -> str:
        where = self.zone.value if self.index is None else f"{self.zone.value}[{self.index}]"
        if self.zone is Zone.FOUNDATION or self.side is None:
            return where
        return f"{self.side.value}.{where}"

    @property
    def top(self) -> Optional[Any]:
        return self.cards[-1] if self.cards else None


def resolve_side(
    board: Board,
    move: Move,
    ref: Optional[ZoneRef] = None,
    card_hint: Optional[str] = None,
    override: Optional[Side] = None,
) -> Optional[Side]:
    """Pick the board half a move addresses.

    Order: explicit override (retry), card id prefix, descriptor/move owner,
    then the non-local side.
    """
    if not board.dual:
        return None
    if override is not None:
        return override
    prefix_owner = parse_side(owner_of_card_id(card_hint))
    if prefix_owner is not None:
        return prefix_owner
    if ref is not None and ref.side is not None:
        return ref.side
    if move.owner is not None:
        return move.owner
    return Side.OPP


def resolve_pile(
    board: Board,
    zone: Zone,
    index: Optional[int],
    move: Move,
    ref: Optional[ZoneRef] = None,
    card: Optional[Any] = None,
    override: Optional[Side] = None,
) -> Optional[PileRef]:
    """Return the pile a move reads or writes, or None when unresolvable."""
    hint = card_id(card) if card is not None else move.card_id
    side = resolve_side(board, move, ref, hint, override)

    if zone is Zone.WASTE:
        return PileRef(Zone.WASTE, side, None, board.waste(side))
    if zone is Zone.STOCK:
        return PileRef(Zone.STOCK, side, None, board.stock(side))
    if zone is Zone.TABLEAU:
        if index is None or not 0 <= index < TABLEAU_COLUMNS:
            return None
        return PileRef(Zone.TABLEAU, side, index, board.tableau(side)[index])
    if zone is Zone.FOUNDATION:
        if card is None:
            return None
        lanes = board.foundations()
        try:
            lane = choose_foundation_lane(lanes, card, ref.suit if ref else None)
        except MoveRejected:
            return None
        return PileRef(Zone.FOUNDATION, None, lane, lanes[lane]["cards"])
    return None


def lane_suit(lane: dict[str, Any]) -> Optional[Suit]:
    """Suit a lane is locked to: its first card, else its label."""
    cards = lane.get("cards") or []
    if cards:
        return card_suit(cards[0])
    return normalize_suit(lane.get("suit"))


def lane_accepts(lane: dict[str, Any], card: Any) -> bool:
    suit, rank = card_suit(card), card_rank(card)
    if suit is None or rank is None:
        return False
    cards = lane.get("cards") or []
    if not cards:
        return rank == ACE
    top = cards[-1]
    top_rank = card_rank(top)
    return card_suit(top) is suit and top_rank is not None and rank == top_rank + 1


def choose_foundation_lane(
    lanes: list[dict[str, Any]],
    card: Any,
    suit_hint: Optional[Suit] = None,
) -> int:
    """Pick the destination lane for `card`.

    Raises:
        MoveRejected: with the rule that rules out every lane.
    """
    suit, rank = card_suit(card), card_rank(card)
    if suit is None or rank is None:
        raise MoveRejected(Reason.BAD_FOUNDATION, f"unreadable card {card_id(card)!r}")
    if suit_hint is not None and suit_hint is not suit:
        raise MoveRejected(Reason.FOUNDATION_SUIT_MISMATCH, f"{suit.value} sent to {suit_hint.value}")

    candidates = [i for i, lane in enumerate(lanes) if lane_suit(lane) in (None, suit)]
    if not candidates:
        raise MoveRejected(Reason.FOUNDATION_SUIT_MISMATCH, f"no lane for {suit.value}")

    legal = [i for i in candidates if lane_accepts(lanes[i], card)]
    if not legal:
        if rank != ACE and all(not lanes[i]["cards"] for i in candidates):
            raise MoveRejected(Reason.FOUNDATION_REQUIRES_ACE)
        raise MoveRejected(Reason.FOUNDATION_RANK_NOT_NEXT, f"rank {rank} on {suit.value}")

    def top_rank(i: int) -> int:
        cards = lanes[i]["cards"]
        return card_rank(cards[-1]) if cards else -1

    # Highest top rank first, then lowest index
    return min(legal, key=lambda i: (-top_rank(i), i))


def find_foundation_source(
    lanes: list[dict[str, Any]],
    index: Optional[int],
    wanted_id: Optional[str],
) -> int:
    """Lane whose top card a take-back move removes."""
    if wanted_id is not None:
        for i, lane in enumerate(lanes):
            cards = lane["cards"]
            if cards and card_id(cards[-1]) == wanted_id:
                return i
        if any(card_id(c) == wanted_id for lane in lanes for c in lane["cards"]):
            raise MoveRejected(Reason.CARD_NOT_ON_TOP, wanted_id)
    if index is None or not 0 <= index < len(lanes):
        raise MoveRejected(Reason.BAD_FROM, f"foundation lane {index!r}")
    if not lanes[index]["cards"]:
        raise MoveRejected(Reason.FROM_EMPTY, f"foundation lane {index}")
    if wanted_id is not None:
        raise MoveRejected(Reason.CARD_NOT_ON_TOP, wanted_id)
    return index


def with_side_retry(
    board: Board,
    side: Optional[Side],
    attempt: Callable[[Optional[Side]], T],
    context: str = "",
) -> T:
    """Run `attempt` for `side`; on a pile mismatch retry once on the other half.

    Absorbs perspective drift between two client viewpoints. Never recurses:
    if the opposite side fails too, the original rejection is raised.
    """
    try:
        return attempt(side)
    except MoveRejected as first:
        if not board.dual or side is None or first.reason.category not in RETRYABLE_CATEGORIES:
            raise
        try:
            result = attempt(side.opposite)
        except MoveRejected:
            raise first from None
        logger.debug(
            f"drift retry succeeded context={context} side={side.value}->{side.opposite.value} "
            f"first_reason={first.reason.value}"
        )
        return result
