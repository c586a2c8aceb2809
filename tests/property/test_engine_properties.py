"""Property-based tests for the move engine."""

import copy

from hypothesis import given, settings, strategies as st

from duelsolitaire.cards.deal import BoardLayout, ShuffleMode, build_initial_state
from duelsolitaire.cards.model import is_face_up
from duelsolitaire.engine.applier import apply_move
from duelsolitaire.engine.invariant import assert_card_conservation, snapshot_hash, validate_invariant
from duelsolitaire.engine.perspective import project_for_player
from duelsolitaire.engine.validator import validate_move
from duelsolitaire.matches.store import MatchStore

seeds = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=1, max_size=10)
layouts = st.sampled_from(list(BoardLayout))
modes = st.sampled_from(list(ShuffleMode))


def _halves(state):
    if "you" in state:
        return [("Y", state["you"]), ("O", state["opp"])]
    return [(None, state)]


def _ref(zone, owner, idx=None):
    ref = {"zone": zone}
    if idx is not None:
        ref["idx"] = idx
    if owner is not None:
        ref["sideOwner"] = owner
    return ref


def candidate_moves(state):
    """Every plausible move a client could send from this position."""
    moves = []
    halves = _halves(state)
    for owner, half in halves:
        tag = {"owner": owner} if owner else {}
        moves.append({"kind": "draw", **tag})
        moves.append({"kind": "recycle", **tag})
        if half["waste"]:
            top = half["waste"][-1]["id"]
            moves.append({"kind": "toFound", "cardId": top, "from": _ref("waste", owner)})
            for target_owner, _ in halves:
                for j in range(7):
                    moves.append({
                        "kind": "toPile",
                        "cardId": top,
                        "from": _ref("waste", owner),
                        "to": _ref("tableau", target_owner, j),
                    })
        for i, column in enumerate(half["tableau"]):
            if not column:
                continue
            if not is_face_up(column[-1]):
                moves.append({"kind": "flip", "cardId": column[-1]["id"], "from": _ref("tableau", owner, i)})
                continue
            moves.append({"kind": "toFound", "cardId": column[-1]["id"], "from": _ref("tableau", owner, i)})
            for start, card in enumerate(column):
                if not is_face_up(card):
                    continue
                for target_owner, _ in halves:
                    for j in range(7):
                        moves.append({
                            "kind": "toPile",
                            "cardId": card["id"],
                            "count": len(column) - start,
                            "from": _ref("tableau", owner, i),
                            "to": _ref("tableau", target_owner, j),
                        })
    return moves


def legal_moves(state):
    return [m for m in candidate_moves(state) if validate_move(state, m).ok]


@settings(max_examples=25, deadline=None)
@given(seed=seeds, layout=layouts, mode=modes, data=st.data())
def test_conservation_property(seed: str, layout: BoardLayout, mode: ShuffleMode, data) -> None:
    """Property: Legal move sequences never create, lose or duplicate cards."""
    state = build_initial_state(seed, layout, mode)
    for _ in range(30):
        legal = legal_moves(state)
        if not legal:
            break
        move = data.draw(st.sampled_from(legal))
        result = apply_move(state, move)
        assert result.ok, (move, result.reason)
        assert validate_invariant(state).ok
        assert assert_card_conservation(state).ok


@settings(max_examples=25, deadline=None)
@given(seed=seeds, layout=layouts, data=st.data())
def test_validation_never_mutates_property(seed: str, layout: BoardLayout, data) -> None:
    """Property: Validating any candidate, legal or not, leaves the state untouched."""
    state = build_initial_state(seed, layout)
    before = snapshot_hash(state)
    for move in data.draw(st.lists(st.sampled_from(candidate_moves(state)), max_size=20)):
        validate_move(state, move)
    assert snapshot_hash(state) == before


@settings(max_examples=25, deadline=None)
@given(seed=seeds, layout=layouts, data=st.data())
def test_rejected_apply_is_a_noop_property(seed: str, layout: BoardLayout, data) -> None:
    """Property: An illegal move applied directly changes nothing."""
    state = build_initial_state(seed, layout)
    illegal = [m for m in candidate_moves(state) if not validate_move(state, m).ok]
    if not illegal:
        return
    move = data.draw(st.sampled_from(illegal))
    before = snapshot_hash(state)
    result = apply_move(state, move)
    assert not result.ok
    assert snapshot_hash(state) == before


@settings(max_examples=25, deadline=None)
@given(seed=seeds, layout=layouts, data=st.data())
def test_replay_determinism_property(seed: str, layout: BoardLayout, data) -> None:
    """Property: The same seed and move list always produce the same state."""
    state = build_initial_state(seed, layout)
    played = []
    for _ in range(15):
        legal = legal_moves(state)
        if not legal:
            break
        move = data.draw(st.sampled_from(legal))
        apply_move(state, move)
        played.append(move)

    replayed = build_initial_state(seed, layout)
    for move in played:
        assert apply_move(replayed, copy.deepcopy(move)).ok
    assert snapshot_hash(replayed) == snapshot_hash(state)


@settings(max_examples=25, deadline=None)
@given(seed=seeds, moves=st.integers(min_value=1, max_value=10))
def test_duplicate_submission_property(seed: str, moves: int) -> None:
    """Property: Resubmitting accepted move ids never changes state or revision."""
    store = MatchStore()
    match = store.create_match()
    store.ensure_initial_snapshot(match.match_id, seed=seed)
    submitted = [{"kind": "draw", "owner": "Y", "moveId": f"m{i}"} for i in range(moves)]
    for move in submitted:
        assert store.validate_and_apply_move(match.match_id, move).ok
    rev, digest = match.match_rev, snapshot_hash(match.state)
    for move in submitted:
        assert store.validate_and_apply_move(match.match_id, move).duplicate
    assert match.match_rev == rev == 1 + moves
    assert snapshot_hash(match.state) == digest


@given(seed=seeds)
def test_projection_round_trip_property(seed: str) -> None:
    """Property: Projecting for the guest twice restores the canonical view."""
    state = build_initial_state(seed)
    assert project_for_player(project_for_player(state, False), False) == state
