"""Mutating execution of validated move plans."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from duelsolitaire.cards.model import card_id, card_suit, is_face_up, set_face_up
from duelsolitaire.engine.moves import MoveKind, Zone, parse_move
from duelsolitaire.engine.piles import PileRef, lane_accepts
from duelsolitaire.engine.reasons import MoveRejected, Reason
from duelsolitaire.engine.schema import Board, open_board
from duelsolitaire.engine.validator import MovePlan, check_tableau_placement, plan_move

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of an apply; `state` is the (mutated) state either way."""

    ok: bool
    state: Any = None
    reason: Optional[Reason] = None
    kind: Optional[MoveKind] = None
    resolved_foundation_index: Optional[int] = None
    moved_card_ids: tuple[str, ...] = ()
    revealed_card_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ok": self.ok, "state": self.state}
        if self.reason is not None:
            out["reason"] = self.reason.value
        if self.resolved_foundation_index is not None:
            out["resolvedFoundationIndex"] = self.resolved_foundation_index
        return out


@dataclass
class _Outcome:
    moved: list[Any]
    revealed: Optional[Any] = None


def _reveal_tail(pile: PileRef) -> Optional[Any]:
    """Standard Klondike reveal after cards leave a tableau column."""
    if pile.zone is not Zone.TABLEAU or not pile.cards:
        return None
    tail = pile.cards[-1]
    if is_face_up(tail):
        return None
    set_face_up(tail, True)
    return tail


def _transfer(plan: MovePlan, destination_check: Callable[[list[Any], Any], None]) -> _Outcome:
    """Splice the moving cards out, then push; restores the source on failure."""
    assert plan.target is not None
    source = plan.source.cards
    end = plan.start + plan.count
    removed = source[plan.start:end]
    del source[plan.start:end]
    try:
        destination_check(plan.target.cards, removed[0])
    except MoveRejected:
        source[plan.start:plan.start] = removed
        raise
    plan.target.cards.extend(removed)
    return _Outcome(moved=removed, revealed=_reveal_tail(plan.source))


def _foundation_check(cards: list[Any], card: Any) -> None:
    if not lane_accepts({"cards": cards}, card):
        raise MoveRejected(Reason.FOUNDATION_RANK_NOT_NEXT, f"{card_id(card)} no longer fits")


def _exec_draw(board: Board, plan: MovePlan) -> _Outcome:
    card = plan.source.cards.pop()
    set_face_up(card, True)
    plan.target.cards.append(card)
    return _Outcome(moved=[card])


def _exec_recycle(board: Board, plan: MovePlan) -> _Outcome:
    # Waste is turned over as a whole: its bottom card becomes the stock top
    cards = list(reversed(plan.source.cards))
    for card in cards:
        set_face_up(card, False)
    plan.source.cards.clear()
    plan.target.cards.extend(cards)
    return _Outcome(moved=cards)


def _exec_flip(board: Board, plan: MovePlan) -> _Outcome:
    card = plan.source.cards[-1]
    set_face_up(card, True)
    return _Outcome(moved=[], revealed=card)


def _exec_to_found(board: Board, plan: MovePlan) -> _Outcome:
    lanes = board.foundations()
    lane = lanes[plan.target.index]
    was_empty = not lane["cards"]
    outcome = _transfer(plan, _foundation_check)
    if was_empty:
        suit = card_suit(outcome.moved[0])
        if suit is not None:
            lane["suit"] = suit.value
    return outcome


def _exec_to_pile(board: Board, plan: MovePlan) -> _Outcome:
    return _transfer(plan, check_tableau_placement)


EXECUTORS: dict[MoveKind, Callable[[Board, MovePlan], _Outcome]] = {
    MoveKind.DRAW: _exec_draw,
    MoveKind.RECYCLE: _exec_recycle,
    MoveKind.FLIP: _exec_flip,
    MoveKind.TO_FOUND: _exec_to_found,
    MoveKind.TO_PILE: _exec_to_pile,
}


def _mark_over(board: Board) -> None:
    on_foundations = sum(len(lane["cards"]) for lane in board.foundations())
    total = sum(len(pile) for _, pile in board.zones())
    if total and on_foundations == total:
        board.state["over"] = True


def apply_move(state: Any, raw_move: Any) -> ApplyResult:
    """Validate and mutate `state` in place.

    A rejected move leaves `state` exactly as it was.
    """
    kind = None
    try:
        board = open_board(state)
        move = parse_move(raw_move)
        kind = move.kind
        plan = plan_move(board, move)
        outcome = EXECUTORS[move.kind](board, plan)
    except MoveRejected as e:
        return ApplyResult(ok=False, state=state, reason=e.reason, kind=kind)

    if isinstance(state.get("moves"), int):
        state["moves"] += 1
    if move.kind is MoveKind.TO_FOUND:
        _mark_over(board)

    revealed = card_id(outcome.revealed) if outcome.revealed is not None else None
    if revealed and move.kind is not MoveKind.FLIP:
        logger.debug(f"auto-reveal card={revealed} pile={plan.source.label()}")

    return ApplyResult(
        ok=True,
        state=state,
        kind=move.kind,
        resolved_foundation_index=plan.lane_index,
        moved_card_ids=tuple(cid for cid in (card_id(c) for c in outcome.moved) if cid),
        revealed_card_id=revealed,
    )
