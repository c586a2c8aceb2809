"""Tests for pile resolution, foundation lane choice and the drift retry."""

import pytest

from duelsolitaire.cards.model import SUIT_ORDER
from duelsolitaire.engine.moves import Side, Zone, parse_move
from duelsolitaire.engine.piles import (
    choose_foundation_lane,
    find_foundation_source,
    lane_accepts,
    resolve_pile,
    resolve_side,
    with_side_retry,
)
from duelsolitaire.engine.reasons import MoveRejected, Reason
from duelsolitaire.engine.schema import open_board

S, H, D, C = (s.value for s in SUIT_ORDER)


def card(owner, n, suit, rank, up=True):
    return {"id": f"{owner}-{n}-{suit}-{rank}", "suit": suit, "rank": rank, "faceUp": up}


def run(owner, suit, top_rank):
    """Foundation lane content Ace..top_rank."""
    return [card(owner, r, suit, r) for r in range(top_rank + 1)]


def lanes(filled=None):
    out = [{"suit": suit, "cards": []} for suit in (S, H, D, C, S, H, D, C)]
    for i, cards in (filled or {}).items():
        out[i]["cards"] = cards
    return out


def side():
    return {"tableau": [[] for _ in range(7)], "stock": [], "waste": []}


def duel():
    return {"you": side(), "opp": side(), "foundations": lanes()}


class TestChooseFoundationLane:
    def test_equal_tops_pick_lowest_index(self):
        pool = lanes({0: run("Y", S, 3), 4: run("O", S, 3)})
        assert choose_foundation_lane(pool, card("Y", 20, S, 4)) == 0

    def test_only_legal_lane_wins(self):
        pool = lanes({0: run("Y", S, 3), 4: run("O", S, 0)})
        assert choose_foundation_lane(pool, card("Y", 20, S, 1)) == 4

    def test_ace_goes_to_first_empty_suit_lane(self):
        assert choose_foundation_lane(lanes(), card("O", 1, H, 0)) == 1
        assert choose_foundation_lane(lanes({1: run("Y", H, 0)}), card("O", 1, H, 0)) == 5

    def test_requires_ace_on_empty_lanes(self):
        with pytest.raises(MoveRejected) as exc:
            choose_foundation_lane(lanes(), card("Y", 1, S, 4))
        assert exc.value.reason is Reason.FOUNDATION_REQUIRES_ACE

    def test_rank_not_next(self):
        with pytest.raises(MoveRejected) as exc:
            choose_foundation_lane(lanes({0: run("Y", S, 1)}), card("Y", 9, S, 5))
        assert exc.value.reason is Reason.FOUNDATION_RANK_NOT_NEXT

    def test_hint_suit_mismatch(self):
        with pytest.raises(MoveRejected) as exc:
            choose_foundation_lane(lanes(), card("Y", 1, S, 0), SUIT_ORDER[1])
        assert exc.value.reason is Reason.FOUNDATION_SUIT_MISMATCH

    def test_no_lane_for_suit(self):
        pool = [{"suit": H, "cards": []}]
        with pytest.raises(MoveRejected) as exc:
            choose_foundation_lane(pool, card("Y", 1, S, 0))
        assert exc.value.reason is Reason.FOUNDATION_SUIT_MISMATCH

    def test_unlabelled_lane_takes_any_suit(self):
        pool = [{"suit": None, "cards": []}]
        assert choose_foundation_lane(pool, card("Y", 1, C, 0)) == 0

    def test_first_card_locks_lane(self):
        # Mislabelled lane: the card already in it wins over the label
        pool = [{"suit": H, "cards": [card("Y", 0, S, 0)]}]
        assert lane_accepts(pool[0], card("Y", 1, S, 1))
        assert choose_foundation_lane(pool, card("Y", 1, S, 1)) == 0


class TestFoundationSource:
    def test_by_card_id(self):
        pool = lanes({0: run("Y", S, 2), 4: run("O", S, 1)})
        assert find_foundation_source(pool, None, f"O-1-{S}-1") == 4

    def test_buried_card(self):
        pool = lanes({0: run("Y", S, 2)})
        with pytest.raises(MoveRejected) as exc:
            find_foundation_source(pool, 0, f"Y-0-{S}-0")
        assert exc.value.reason is Reason.CARD_NOT_ON_TOP

    def test_by_index(self):
        pool = lanes({2: run("Y", D, 0)})
        assert find_foundation_source(pool, 2, None) == 2

    def test_empty_lane(self):
        with pytest.raises(MoveRejected) as exc:
            find_foundation_source(lanes(), 0, None)
        assert exc.value.reason is Reason.FROM_EMPTY


class TestResolveSide:
    def test_card_prefix_beats_descriptor(self):
        board = open_board(duel())
        move = parse_move({"kind": "toPile", "cardId": f"Y-1-{S}-3", "from": {"zone": "tab", "idx": 0, "sideOwner": "O"}})
        assert resolve_side(board, move, move.source, move.card_id) is Side.YOU

    def test_descriptor_then_owner_then_default(self):
        board = open_board(duel())
        move = parse_move({"kind": "draw", "from": {"zone": "stock", "sideOwner": "Y"}})
        assert resolve_side(board, move, move.source) is Side.YOU
        assert resolve_side(board, parse_move({"kind": "draw", "owner": "Y"})) is Side.YOU
        assert resolve_side(board, parse_move({"kind": "draw"})) is Side.OPP

    def test_override_wins(self):
        board = open_board(duel())
        move = parse_move({"kind": "draw", "owner": "Y"})
        assert resolve_side(board, move, override=Side.OPP) is Side.OPP


class TestResolvePile:
    def test_tableau_out_of_range(self):
        board = open_board(duel())
        move = parse_move({"kind": "flip", "from": "t9"})
        assert resolve_pile(board, Zone.TABLEAU, 9, move) is None

    def test_foundation_needs_card(self):
        board = open_board(duel())
        move = parse_move({"kind": "toFound"})
        assert resolve_pile(board, Zone.FOUNDATION, None, move) is None
        pile = resolve_pile(board, Zone.FOUNDATION, 4, move, card=card("O", 1, S, 0))
        assert pile.index == 0


class TestSideRetry:
    def test_retries_once_on_rule_failure(self):
        board = open_board(duel())
        calls = []

        def attempt(s):
            calls.append(s)
            if s is Side.YOU:
                raise MoveRejected(Reason.FROM_EMPTY)
            return "ok"

        assert with_side_retry(board, Side.YOU, attempt) == "ok"
        assert calls == [Side.YOU, Side.OPP]

    def test_structural_failure_is_not_retried(self):
        board = open_board(duel())
        calls = []

        def attempt(s):
            calls.append(s)
            raise MoveRejected(Reason.BAD_COUNT)

        with pytest.raises(MoveRejected):
            with_side_retry(board, Side.YOU, attempt)
        assert calls == [Side.YOU]

    def test_first_rejection_is_reported(self):
        board = open_board(duel())

        def attempt(s):
            raise MoveRejected(Reason.TABLEAU_COLOR_SAME if s is Side.YOU else Reason.FROM_EMPTY)

        with pytest.raises(MoveRejected) as exc:
            with_side_retry(board, Side.YOU, attempt)
        assert exc.value.reason is Reason.TABLEAU_COLOR_SAME

    def test_single_board_never_retries(self):
        state = {"tableau": [[] for _ in range(7)], "stock": [], "waste": [], "foundations": lanes()[:4]}
        board = open_board(state)
        calls = []

        def attempt(s):
            calls.append(s)
            raise MoveRejected(Reason.STOCK_EMPTY)

        with pytest.raises(MoveRejected):
            with_side_retry(board, None, attempt)
        assert calls == [None]
