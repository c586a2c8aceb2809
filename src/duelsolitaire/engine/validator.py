"""Read-only move validation.

Each move kind has a planner that resolves the move against a board and
either returns a `MovePlan` (what would move where) or raises
`MoveRejected`. Validation is planning without execution; the applier
executes the same plans, so both always agree on legality.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from duelsolitaire.cards.model import (
    KING,
    card_id,
    card_rank,
    is_face_up,
    is_red,
)
from duelsolitaire.engine.moves import Move, MoveKind, Side, Zone, ZoneRef, parse_move
from duelsolitaire.engine.piles import (
    PileRef,
    choose_foundation_lane,
    find_foundation_source,
    resolve_pile,
    resolve_side,
    with_side_retry,
)
from duelsolitaire.engine.reasons import MoveRejected, Reason
from duelsolitaire.engine.schema import Board, open_board, TABLEAU_COLUMNS

logger = logging.getLogger(__name__)


@dataclass
class MovePlan:
    """Resolved effect of a move: `count` cards from `source[start:]` to `target`."""

    kind: MoveKind
    source: PileRef
    start: int
    count: int
    target: Optional[PileRef] = None

    @property
    def moving(self) -> list[Any]:
        return self.source.cards[self.start:self.start + self.count]

    @property
    def lane_index(self) -> Optional[int]:
        if self.target is not None and self.target.zone is Zone.FOUNDATION:
            return self.target.index
        return None


@dataclass(frozen=True)
class Verdict:
    ok: bool
    reason: Optional[Reason] = None
    plan: Optional[MovePlan] = None
    move: Optional[Move] = None
    detail: str = ""


# Rule helpers


def check_run(cards: list[Any]) -> None:
    """A movable tableau run: all face-up, descending, alternating colors."""
    for card in cards:
        if not is_face_up(card):
            raise MoveRejected(Reason.CARD_FACE_DOWN, str(card_id(card)))
    for upper, lower in zip(cards, cards[1:]):
        if is_red(upper) == is_red(lower):
            raise MoveRejected(Reason.TABLEAU_COLOR_SAME, f"run breaks at {card_id(lower)}")
        upper_rank, lower_rank = card_rank(upper), card_rank(lower)
        if upper_rank is None or lower_rank is None or upper_rank != lower_rank + 1:
            raise MoveRejected(Reason.TABLEAU_RANK_NOT_DESC, f"run breaks at {card_id(lower)}")


def check_tableau_placement(pile: list[Any], card: Any) -> None:
    rank = card_rank(card)
    if rank is None:
        raise MoveRejected(Reason.BAD_FROM, f"unreadable card {card_id(card)!r}")
    if not pile:
        if rank != KING:
            raise MoveRejected(Reason.TABLEAU_EMPTY_REQUIRES_KING)
        return
    top = pile[-1]
    if not is_face_up(top):
        raise MoveRejected(Reason.CARD_FACE_DOWN, f"target top {card_id(top)}")
    if is_red(top) == is_red(card):
        raise MoveRejected(Reason.TABLEAU_COLOR_SAME)
    top_rank = card_rank(top)
    if top_rank is None or rank != top_rank - 1:
        raise MoveRejected(Reason.TABLEAU_RANK_NOT_DESC)


# Source location


def _search_order(board: Board, first: Optional[Side]) -> tuple[Optional[Side], ...]:
    if not board.dual or first is None:
        return board.sides()
    return (first, first.opposite)


def locate_card(board: Board, move: Move) -> ZoneRef:
    """Find the zone holding `move.card_id` when the move names no source."""
    if move.card_id is None:
        raise MoveRejected(Reason.BAD_FROM, "no source and no cardId")
    wanted = move.card_id
    for side in _search_order(board, resolve_side(board, move)):
        if any(card_id(c) == wanted for c in board.waste(side)):
            return ZoneRef(zone=Zone.WASTE, side=side)
        for i, column in enumerate(board.tableau(side)):
            if any(card_id(c) == wanted for c in column):
                return ZoneRef(zone=Zone.TABLEAU, index=i, side=side)
    for i, lane in enumerate(board.foundations()):
        if any(card_id(c) == wanted for c in lane["cards"]):
            return ZoneRef(zone=Zone.FOUNDATION, index=i)
    raise MoveRejected(Reason.BAD_FROM, f"card {wanted} not found")


def _source_ref(board: Board, move: Move) -> tuple[ZoneRef, Optional[Side]]:
    """Source descriptor plus the side the first resolution attempt uses."""
    if move.source is not None:
        ref = move.source
        return ref, resolve_side(board, move, ref, move.card_id)
    ref = locate_card(board, move)
    side = ref.side if board.dual else None
    return ref, side


def _take_top(
    board: Board,
    move: Move,
    ref: ZoneRef,
    side: Optional[Side],
    waste_scan: bool = False,
) -> tuple[PileRef, int]:
    pile = resolve_pile(board, ref.zone, ref.index, move, ref, override=side)
    if pile is None:
        raise MoveRejected(Reason.BAD_FROM, ref.label())
    if not pile.cards:
        raise MoveRejected(Reason.FROM_EMPTY, pile.label())
    top_index = len(pile.cards) - 1
    if move.card_id is not None and card_id(pile.cards[top_index]) != move.card_id:
        if waste_scan and pile.zone is Zone.WASTE:
            for pos in range(top_index - 1, -1, -1):
                if card_id(pile.cards[pos]) == move.card_id:
                    logger.debug(
                        f"waste reorder tolerated card={move.card_id} pile={pile.label()} "
                        f"depth={top_index - pos}"
                    )
                    return pile, pos
        raise MoveRejected(Reason.CARD_NOT_ON_TOP, f"{move.card_id} on {pile.label()}")
    return pile, top_index


# Planners, one per move kind


def _plan_draw(board: Board, move: Move) -> MovePlan:
    ref = move.source if move.source is not None and move.source.zone is Zone.STOCK else None
    side = resolve_side(board, move, ref, move.card_id)

    # The cardId of a draw is advisory; clients run ahead of the server clock
    def attempt(s: Optional[Side]) -> MovePlan:
        stock = resolve_pile(board, Zone.STOCK, None, move, ref, override=s)
        waste = resolve_pile(board, Zone.WASTE, None, move, ref, override=s)
        if not stock.cards:
            raise MoveRejected(Reason.STOCK_EMPTY, stock.label())
        return MovePlan(MoveKind.DRAW, stock, len(stock.cards) - 1, 1, waste)

    return with_side_retry(board, side, attempt, "draw")


def _plan_recycle(board: Board, move: Move) -> MovePlan:
    ref = move.source if move.source is not None and move.source.zone is Zone.WASTE else None
    side = resolve_side(board, move, ref, move.card_id)

    def attempt(s: Optional[Side]) -> MovePlan:
        waste = resolve_pile(board, Zone.WASTE, None, move, ref, override=s)
        stock = resolve_pile(board, Zone.STOCK, None, move, ref, override=s)
        # Stock precedes waste: a fresh deal reports stock_not_empty
        if stock.cards:
            raise MoveRejected(Reason.STOCK_NOT_EMPTY, stock.label())
        if not waste.cards:
            raise MoveRejected(Reason.WASTE_EMPTY, waste.label())
        return MovePlan(MoveKind.RECYCLE, waste, 0, len(waste.cards), stock)

    return with_side_retry(board, side, attempt, "recycle")


def _flip_target(board: Board, move: Move) -> ZoneRef:
    for ref in (move.target, move.source):
        if ref is not None and ref.zone is Zone.TABLEAU:
            return ref
    ref = locate_card(board, move)
    if ref.zone is not Zone.TABLEAU:
        raise MoveRejected(Reason.BAD_FROM, f"{move.card_id} is not on a tableau column")
    return ref


def _plan_flip(board: Board, move: Move) -> MovePlan:
    ref = _flip_target(board, move)
    if ref.index is None or not 0 <= ref.index < TABLEAU_COLUMNS:
        raise MoveRejected(Reason.BAD_FROM, f"flip column {ref.index!r}")
    side = resolve_side(board, move, ref, move.card_id)

    def attempt(s: Optional[Side]) -> MovePlan:
        pile = resolve_pile(board, Zone.TABLEAU, ref.index, move, ref, override=s)
        if not pile.cards:
            raise MoveRejected(Reason.FLIP_NO_CARDS, pile.label())
        top = pile.cards[-1]
        if move.card_id is not None and card_id(top) != move.card_id:
            raise MoveRejected(Reason.CARD_NOT_ON_TOP, f"{move.card_id} on {pile.label()}")
        if is_face_up(top):
            raise MoveRejected(Reason.FLIP_NOT_NEEDED, pile.label())
        return MovePlan(MoveKind.FLIP, pile, len(pile.cards) - 1, 1)

    return with_side_retry(board, side, attempt, "flip")


def _plan_to_found(board: Board, move: Move) -> MovePlan:
    if move.count not in (None, 1):
        raise MoveRejected(Reason.BAD_COUNT, f"count={move.count} to foundation")
    if move.target is not None and move.target.zone is not Zone.FOUNDATION:
        raise MoveRejected(Reason.BAD_TO, move.target.label())
    ref, side = _source_ref(board, move)
    if ref.zone not in (Zone.WASTE, Zone.TABLEAU):
        raise MoveRejected(Reason.BAD_FROM, ref.label())

    lanes = board.foundations()
    suit_hint = move.target.suit if move.target is not None else None

    def attempt(s: Optional[Side]) -> MovePlan:
        source, start = _take_top(board, move, ref, s, waste_scan=True)
        card = source.cards[start]
        if not is_face_up(card):
            raise MoveRejected(Reason.CARD_FACE_DOWN, str(card_id(card)))
        lane = choose_foundation_lane(lanes, card, suit_hint)
        target = PileRef(Zone.FOUNDATION, None, lane, lanes[lane]["cards"])
        return MovePlan(MoveKind.TO_FOUND, source, start, 1, target)

    return with_side_retry(board, side, attempt, "toFound")


def _tableau_source(board: Board, move: Move, ref: ZoneRef, s: Optional[Side]) -> tuple[PileRef, int, int]:
    pile = resolve_pile(board, Zone.TABLEAU, ref.index, move, ref, override=s)
    if pile is None:
        raise MoveRejected(Reason.BAD_FROM, ref.label())
    if not pile.cards:
        raise MoveRejected(Reason.FROM_EMPTY, pile.label())
    count = move.count or 1
    if move.card_id is not None:
        positions = [i for i, c in enumerate(pile.cards) if card_id(c) == move.card_id]
        if not positions:
            raise MoveRejected(Reason.CARD_NOT_ON_TOP, f"{move.card_id} not in {pile.label()}")
        start = positions[0]
        if len(pile.cards) - start != count:
            raise MoveRejected(
                Reason.BAD_COUNT,
                f"run from {move.card_id} is {len(pile.cards) - start}, declared {count}",
            )
    else:
        if count > len(pile.cards):
            raise MoveRejected(Reason.BAD_COUNT, f"count={count} > {len(pile.cards)}")
        start = len(pile.cards) - count
    check_run(pile.cards[start:])
    return pile, start, count


def _plan_to_pile(board: Board, move: Move) -> MovePlan:
    target_ref = move.target
    if target_ref is None or target_ref.zone is not Zone.TABLEAU:
        raise MoveRejected(Reason.BAD_TO, "toPile needs a tableau destination")
    if target_ref.index is None or not 0 <= target_ref.index < TABLEAU_COLUMNS:
        raise MoveRejected(Reason.BAD_TO, f"column {target_ref.index!r}")

    ref, side = _source_ref(board, move)

    def source_attempt(s: Optional[Side]) -> tuple[PileRef, int, int]:
        if ref.zone is Zone.TABLEAU:
            return _tableau_source(board, move, ref, s)
        if move.count not in (None, 1):
            raise MoveRejected(Reason.BAD_COUNT, f"count={move.count} from {ref.zone.value}")
        if ref.zone is Zone.WASTE:
            pile, start = _take_top(board, move, ref, s)
            if not is_face_up(pile.cards[start]):
                raise MoveRejected(Reason.CARD_FACE_DOWN, str(card_id(pile.cards[start])))
            return pile, start, 1
        if ref.zone is Zone.FOUNDATION:
            lanes = board.foundations()
            lane = find_foundation_source(lanes, ref.index, move.card_id)
            pile = PileRef(Zone.FOUNDATION, None, lane, lanes[lane]["cards"])
            return pile, len(pile.cards) - 1, 1
        raise MoveRejected(Reason.BAD_FROM, ref.label())

    source, start, count = with_side_retry(board, side, source_attempt, "toPile.from")
    card = source.cards[start]
    target_side = resolve_side(board, move, target_ref, card_id(card))

    def target_attempt(s: Optional[Side]) -> PileRef:
        target = resolve_pile(board, Zone.TABLEAU, target_ref.index, move, target_ref, card=card, override=s)
        if target is None:
            raise MoveRejected(Reason.BAD_TO, target_ref.label())
        if target.cards is source.cards:
            raise MoveRejected(Reason.BAD_TO, "source and destination are the same pile")
        check_tableau_placement(target.cards, card)
        return target

    target = with_side_retry(board, target_side, target_attempt, "toPile.to")
    return MovePlan(MoveKind.TO_PILE, source, start, count, target)


PLANNERS: dict[MoveKind, Callable[[Board, Move], MovePlan]] = {
    MoveKind.FLIP: _plan_flip,
    MoveKind.DRAW: _plan_draw,
    MoveKind.RECYCLE: _plan_recycle,
    MoveKind.TO_FOUND: _plan_to_found,
    MoveKind.TO_PILE: _plan_to_pile,
}


def plan_move(board: Board, move: Move) -> MovePlan:
    return PLANNERS[move.kind](board, move)


def validate_move(state: Any, raw_move: Any) -> Verdict:
    """Decide whether a move is legal against `state` without touching it."""
    move = None
    try:
        board = open_board(state)
        move = parse_move(raw_move)
        plan = plan_move(board, move)
    except MoveRejected as e:
        return Verdict(ok=False, reason=e.reason, move=move, detail=e.detail)
    return Verdict(ok=True, plan=plan, move=move)
