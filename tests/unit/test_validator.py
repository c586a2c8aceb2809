"""Tests for read-only move validation."""

from duelsolitaire.cards.deal import build_initial_state
from duelsolitaire.cards.model import SUIT_ORDER
from duelsolitaire.engine.invariant import snapshot_hash
from duelsolitaire.engine.moves import MoveKind, Side
from duelsolitaire.engine.reasons import Reason
from duelsolitaire.engine.validator import validate_move

S, H, D, C = (s.value for s in SUIT_ORDER)


def cid(owner, n, suit, rank):
    return f"{owner}-{n}-{suit}-{rank}"


def card(owner, n, suit, rank, up=True):
    return {"id": cid(owner, n, suit, rank), "suit": suit, "rank": rank, "faceUp": up}


def side(columns=None, stock=None, waste=None):
    tableau = [[] for _ in range(7)]
    for i, cards in (columns or {}).items():
        tableau[i] = cards
    return {"tableau": tableau, "stock": stock or [], "waste": waste or []}


def duel(you=None, opp=None, lanes=None):
    foundations = [{"suit": suit, "cards": []} for suit in (S, H, D, C, S, H, D, C)]
    for i, cards in (lanes or {}).items():
        foundations[i]["cards"] = cards
    return {"you": you or side(), "opp": opp or side(), "foundations": foundations, "moves": 0}


def check(state, move):
    before = snapshot_hash(state)
    verdict = validate_move(state, move)
    assert snapshot_hash(state) == before, "validation must not mutate"
    return verdict


class TestFlip:
    def test_face_down_top(self):
        state = duel(you=side({2: [card("Y", 1, S, 4, up=False)]}))
        verdict = check(state, {"kind": "flip", "cardId": cid("Y", 1, S, 4), "from": "t2"})
        assert verdict.ok
        assert verdict.plan.kind is MoveKind.FLIP

    def test_already_face_up(self):
        state = duel(you=side({2: [card("Y", 1, S, 4)]}))
        verdict = check(state, {"kind": "flip", "from": "t2", "owner": "Y"})
        assert verdict.reason is Reason.FLIP_NOT_NEEDED

    def test_empty_column(self):
        verdict = check(duel(), {"kind": "flip", "from": "t2", "owner": "Y"})
        assert verdict.reason is Reason.FLIP_NO_CARDS

    def test_named_card_not_on_top(self):
        state = duel(you=side({0: [card("Y", 1, S, 4, up=False), card("Y", 2, H, 9, up=False)]}))
        verdict = check(state, {"kind": "flip", "cardId": cid("Y", 1, S, 4), "from": "t0"})
        assert verdict.reason is Reason.CARD_NOT_ON_TOP

    def test_stock_flip_gesture_is_a_draw(self):
        state = duel(you=side(stock=[card("Y", 1, S, 4, up=False)]))
        verdict = check(state, {"kind": "flip", "owner": "Y"})
        assert verdict.ok
        assert verdict.plan.kind is MoveKind.DRAW


class TestDraw:
    def test_card_id_is_advisory(self):
        state = duel(you=side(stock=[card("Y", 1, S, 4, up=False)]))
        verdict = check(state, {"kind": "draw", "cardId": cid("Y", 40, C, 2)})
        assert verdict.ok

    def test_stock_empty_everywhere(self):
        verdict = check(duel(), {"kind": "draw", "owner": "Y"})
        assert verdict.reason is Reason.STOCK_EMPTY

    def test_falls_back_to_other_side(self):
        state = duel(opp=side(stock=[card("O", 1, S, 4, up=False)]))
        verdict = check(state, {"kind": "draw", "owner": "Y"})
        assert verdict.ok
        assert verdict.plan.source.side is Side.OPP


class TestRecycle:
    def test_needs_empty_stock(self):
        state = duel(you=side(stock=[card("Y", 1, S, 4, up=False)], waste=[card("Y", 2, S, 5)]))
        verdict = check(state, {"kind": "recycle", "owner": "Y"})
        assert verdict.reason is Reason.STOCK_NOT_EMPTY

    def test_needs_waste(self):
        verdict = check(duel(), {"kind": "recycle", "owner": "Y"})
        assert verdict.reason is Reason.WASTE_EMPTY

    def test_full_stock_outranks_empty_waste(self):
        stock = [card("Y", 1, S, 4, up=False)]
        state = duel(you=side(stock=stock), opp=side(stock=[card("O", 2, H, 4, up=False)]))
        verdict = check(state, {"kind": "recycle", "owner": "Y"})
        assert verdict.reason is Reason.STOCK_NOT_EMPTY

    def test_fresh_deal(self):
        verdict = check(build_initial_state("fresh1"), {"kind": "recycle"})
        assert verdict.reason is Reason.STOCK_NOT_EMPTY


class TestToFound:
    def test_ace_from_waste(self):
        state = duel(you=side(waste=[card("Y", 1, S, 0)]))
        verdict = check(state, {"kind": "toFound", "cardId": cid("Y", 1, S, 0), "from": "waste"})
        assert verdict.ok
        assert verdict.plan.lane_index == 0

    def test_lane_hint_is_advisory(self):
        state = duel(you=side(waste=[card("Y", 1, S, 0)]))
        verdict = check(state, {"kind": "toFound", "cardId": cid("Y", 1, S, 0), "from": "waste", "to": {"zone": "found", "f": 4}})
        assert verdict.plan.lane_index == 0

    def test_requires_ace(self):
        state = duel(you=side(waste=[card("Y", 1, S, 4)]))
        verdict = check(state, {"kind": "toFound", "cardId": cid("Y", 1, S, 4), "from": "waste"})
        assert verdict.reason is Reason.FOUNDATION_REQUIRES_ACE

    def test_rank_not_next(self):
        state = duel(you=side(waste=[card("Y", 1, S, 2)]), lanes={0: [card("Y", 9, S, 0)]})
        verdict = check(state, {"kind": "toFound", "cardId": cid("Y", 1, S, 2), "from": "waste"})
        assert verdict.reason is Reason.FOUNDATION_RANK_NOT_NEXT

    def test_suit_hint_mismatch(self):
        state = duel(you=side(waste=[card("Y", 1, S, 0)]))
        verdict = check(state, {"kind": "toFound", "cardId": cid("Y", 1, S, 0), "from": "waste", "to": "f:H"})
        assert verdict.reason is Reason.FOUNDATION_SUIT_MISMATCH

    def test_waste_reorder_is_tolerated(self):
        state = duel(you=side(waste=[card("Y", 1, S, 0), card("Y", 2, H, 5)]))
        verdict = check(state, {"kind": "toFound", "cardId": cid("Y", 1, S, 0), "from": "waste"})
        assert verdict.ok
        assert verdict.plan.start == 0

    def test_tableau_mismatch_is_not_tolerated(self):
        state = duel(you=side({0: [card("Y", 1, S, 0), card("Y", 2, H, 5)]}))
        verdict = check(state, {"kind": "toFound", "cardId": cid("Y", 1, S, 0), "from": "t0"})
        assert verdict.reason is Reason.CARD_NOT_ON_TOP

    def test_face_down_source(self):
        state = duel(you=side({0: [card("Y", 1, S, 0, up=False)]}))
        verdict = check(state, {"kind": "toFound", "cardId": cid("Y", 1, S, 0), "from": "t0"})
        assert verdict.reason is Reason.CARD_FACE_DOWN

    def test_multi_card_count(self):
        state = duel(you=side(waste=[card("Y", 1, S, 0)]))
        verdict = check(state, {"kind": "toFound", "cardId": cid("Y", 1, S, 0), "from": "waste", "count": 2})
        assert verdict.reason is Reason.BAD_COUNT

    def test_source_located_by_id(self):
        state = duel(opp=side({5: [card("O", 3, D, 0)]}))
        verdict = check(state, {"kind": "toFound", "cardId": cid("O", 3, D, 0)})
        assert verdict.ok
        assert verdict.plan.source.side is Side.OPP
        assert verdict.plan.lane_index == 2

    def test_bot_wire_shape(self):
        state = duel(opp=side(waste=[card("O", 3, C, 0)]))
        move = {
            "owner": "O",
            "kind": "toFound",
            "cardId": cid("O", 3, C, 0),
            "count": 1,
            "from": {"kind": "pile", "sideOwner": "O", "uiIndex": -1},
            "to": {"kind": "found", "f": 7},
        }
        verdict = check(state, move)
        assert verdict.ok
        assert verdict.plan.lane_index == 3


class TestToPile:
    def test_king_to_empty_column(self):
        state = duel(you=side({0: [card("Y", 1, H, 5, up=False), card("Y", 0, S, 12)]}))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 0, S, 12), "to": {"zone": "tableau", "idx": 3}})
        assert verdict.ok

    def test_queen_to_empty_column(self):
        state = duel(you=side({0: [card("Y", 1, H, 5, up=False), card("Y", 0, S, 11)]}))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 0, S, 11), "to": {"zone": "tableau", "idx": 3}})
        assert not verdict.ok
        assert verdict.reason is Reason.TABLEAU_EMPTY_REQUIRES_KING

    def test_red_on_red(self):
        state = duel(you=side({0: [card("Y", 1, H, 7)], 1: [card("Y", 2, D, 6)]}))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 2, D, 6), "from": "t1", "to": "t0"})
        assert verdict.reason is Reason.TABLEAU_COLOR_SAME

    def test_rank_must_descend_by_one(self):
        state = duel(you=side({0: [card("Y", 1, H, 7)], 1: [card("Y", 2, C, 5)]}))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 2, C, 5), "from": "t1", "to": "t0"})
        assert verdict.reason is Reason.TABLEAU_RANK_NOT_DESC

    def test_face_down_target(self):
        state = duel(you=side({0: [card("Y", 1, H, 7, up=False)], 1: [card("Y", 2, C, 6)]}))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 2, C, 6), "from": "t1", "to": "t0"})
        assert verdict.reason is Reason.CARD_FACE_DOWN

    def test_run_with_matching_count(self):
        run = [card("Y", 1, S, 8), card("Y", 2, H, 7), card("Y", 3, C, 6)]
        state = duel(you=side({0: [card("Y", 9, D, 3, up=False)] + run, 1: [card("Y", 4, D, 9)]}))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 1, S, 8), "count": 3, "from": "t0", "to": "t1"})
        assert verdict.ok
        assert verdict.plan.count == 3
        assert verdict.plan.start == 1

    def test_run_count_mismatch(self):
        run = [card("Y", 1, S, 8), card("Y", 2, H, 7), card("Y", 3, C, 6)]
        state = duel(you=side({0: run, 1: [card("Y", 4, D, 9)]}))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 1, S, 8), "count": 2, "from": "t0", "to": "t1"})
        assert verdict.reason is Reason.BAD_COUNT

    def test_broken_run(self):
        run = [card("Y", 1, S, 8), card("Y", 2, H, 7), card("Y", 3, D, 6)]
        state = duel(you=side({0: run, 1: [card("Y", 4, D, 9)]}))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 1, S, 8), "count": 3, "from": "t0", "to": "t1"})
        assert verdict.reason is Reason.TABLEAU_COLOR_SAME

    def test_waste_to_tableau(self):
        state = duel(you=side({4: [card("Y", 1, H, 7)]}, waste=[card("Y", 2, C, 6)]))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 2, C, 6), "from": "waste", "to": "t4"})
        assert verdict.ok

    def test_missing_destination(self):
        state = duel(you=side(waste=[card("Y", 2, C, 12)]))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 2, C, 12), "from": "waste"})
        assert verdict.reason is Reason.BAD_TO

    def test_column_out_of_range(self):
        state = duel(you=side(waste=[card("Y", 2, C, 12)]))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 2, C, 12), "from": "waste", "to": "t7"})
        assert verdict.reason is Reason.BAD_TO

    def test_same_pile(self):
        state = duel(you=side({0: [card("Y", 2, C, 12)]}))
        verdict = check(state, {"kind": "toPile", "cardId": cid("Y", 2, C, 12), "from": "t0", "to": {"zone": "tab", "idx": 0, "sideOwner": "Y"}})
        assert verdict.reason is Reason.BAD_TO

    def test_take_back_from_foundation(self):
        lane = [card("Y", r, S, r) for r in range(3)]
        state = duel(you=side({2: [card("Y", 7, H, 3)]}), lanes={0: lane})
        move = {
            "kind": "toPile",
            "cardId": cid("Y", 2, S, 2),
            "from": {"zone": "foundation", "idx": 0},
            "to": {"zone": "tableau", "idx": 2, "sideOwner": "Y"},
        }
        assert check(state, move).ok

    def test_drift_retry_finds_card_on_other_side(self):
        # Ids without an owner prefix fall back to the descriptor's side
        state = duel(you=side({0: [card("B", 1, S, 12)]}))
        move = {
            "kind": "toPile",
            "cardId": cid("B", 1, S, 12),
            "from": {"zone": "tableau", "idx": 0, "sideOwner": "O"},
            "to": {"zone": "tableau", "idx": 3, "sideOwner": "Y"},
        }
        verdict = check(state, move)
        assert verdict.ok
        assert verdict.plan.source.side is Side.YOU


class TestStructural:
    def test_missing_state(self):
        assert validate_move(None, {"kind": "draw"}).reason is Reason.STATE_MISSING

    def test_bad_move(self):
        assert validate_move(duel(), {"kind": "shuffle"}).reason is Reason.BAD_MOVE

    def test_unknown_card(self):
        verdict = check(duel(), {"kind": "toFound", "cardId": cid("Y", 77, S, 0)})
        assert verdict.reason is Reason.BAD_FROM
