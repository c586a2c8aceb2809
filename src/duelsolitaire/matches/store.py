"""In-memory directory of matches and the authoritative move gate.

Every mutation of a match runs under that match's own lock, so moves for
one match are processed strictly one after another while different
matches never wait on each other. The registry lock only guards the
id -> match map itself.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
import random
import threading
import time
from typing import Any, Callable, Iterable, Optional, Union

from duelsolitaire.cards.deal import BoardLayout, ShuffleMode, build_initial_state, parse_shuffle_mode
from duelsolitaire.config import EngineConfig
from duelsolitaire.engine.applier import ApplyResult
from duelsolitaire.engine.applier import apply_move as engine_apply_move
from duelsolitaire.engine.invariant import (
    InvariantReport,
    assert_card_conservation,
    snapshot_hash,
    validate_invariant,
)
from duelsolitaire.engine.moves import parse_move
from duelsolitaire.engine.perspective import project_for_player
from duelsolitaire.engine.reasons import MoveRejected, Reason
from duelsolitaire.engine.schema import SchemaKind, detect_schema, normalize_state
from duelsolitaire.engine.validator import validate_move as engine_validate_move
from duelsolitaire.matches.models import (
    BOT_ID,
    BOT_NICKS,
    GateResult,
    Match,
    MatchError,
    MatchStatus,
    Player,
    RecentMoveIds,
    Snapshot,
    ValidationResult,
)

logger = logging.getLogger(__name__)

ID_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MATCH_ID_LENGTH = 5
SEED_LENGTH = 8
MAX_ID_ATTEMPTS = 1000
BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

LayoutLike = Union[BoardLayout, SchemaKind, str, None]


def to_base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(BASE36[rem])
    return "".join(reversed(digits))


def move_signature(move: Any) -> str:
    try:
        return parse_move(move).signature()
    except MoveRejected:
        return "-"


def _wire_kind(move: Any) -> str:
    kind = move.get("kind") if isinstance(move, dict) else None
    return kind if isinstance(kind, str) else "n/a"


def _move_id(move: Any, meta: Optional[dict[str, Any]]) -> Optional[str]:
    for source in (meta, move):
        if isinstance(source, dict) and source.get("moveId") not in (None, ""):
            return str(source["moveId"])
    return None


def _coerce_layout(schema: LayoutLike) -> Optional[BoardLayout]:
    if schema is None or isinstance(schema, BoardLayout):
        return schema
    if isinstance(schema, SchemaKind):
        schema = schema.value
    try:
        return BoardLayout(schema)
    except ValueError:
        raise ValueError(f"Unknown schema: {schema!r}") from None


def normalize_bot_state(bot_state: dict[str, Any], prev_tick: int) -> dict[str, Any]:
    """Keep only the bot-facing summary fields, typed or nulled."""

    def number(key: str) -> Optional[int]:
        value = bot_state.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        return None

    waste_top = bot_state.get("wasteTop")
    foundation = bot_state.get("foundation")
    heights = bot_state.get("tableauHeights")
    tick = number("tick")
    return {
        "tick": tick if tick is not None else prev_tick + 1,
        "stockCount": number("stockCount"),
        "wasteTop": (
            {"rank": waste_top.get("rank"), "suit": waste_top.get("suit")}
            if isinstance(waste_top, dict) else None
        ),
        "foundation": dict(foundation) if isinstance(foundation, dict) else None,
        "tableauHeights": list(heights) if isinstance(heights, list) else None,
        "movesSinceLastFlip": number("movesSinceLastFlip"),
    }


class MatchStore:
    """Owns every live match: roster, canonical state, revision and caches."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or EngineConfig()
        self._clock = clock
        self._rng = rng or random.Random()
        self._matches: dict[str, Match] = {}
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._matches)

    def __contains__(self, match_id: object) -> bool:
        return match_id in self._matches

    # Registry

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _touch(self, match: Match) -> None:
        match.last_activity_at = self._clock()

    def _new_match_id(self, reserved: Iterable[str] = ()) -> str:
        taken = set(reserved)
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = "".join(self._rng.choice(ID_ALPHABET) for _ in range(MATCH_ID_LENGTH))
            if candidate not in self._matches and candidate not in taken:
                return candidate
        return "M" + to_base36(self._now_ms()).upper()

    def _new_seed(self) -> str:
        return "".join(self._rng.choice(BASE36) for _ in range(SEED_LENGTH))

    def get_match(self, match_id: str) -> Optional[Match]:
        return self._matches.get(match_id)

    def _require(self, match_id: str) -> Match:
        match = self._matches.get(match_id)
        if match is None:
            raise MatchError(Reason.MATCH_NOT_FOUND, match_id)
        return match

    # Lifecycle

    def create_match(
        self,
        nick: Optional[str] = None,
        client_id: Optional[str] = None,
        reserved_ids: Iterable[str] = (),
    ) -> Match:
        """Open a match with the caller as host (`p1`), status waiting."""
        now = self._clock()
        with self._registry_lock:
            match = Match(
                match_id=self._new_match_id(reserved_ids),
                seed=self._new_seed(),
                created_at=int(now * 1000),
                last_activity_at=now,
                recent_move_ids=RecentMoveIds(self.config.recent_move_ids_limit),
            )
            match.players.append(
                Player(player_id="p1", nick=nick or "Player 1", role="host", client_id=client_id)
            )
            self._matches[match.match_id] = match
        logger.info(f"[MATCH] created matchId={match.match_id} seed={match.seed} host={match.players[0].nick!r}")
        return match

    def _check_joinable(self, match: Match) -> None:
        if len(match.players) >= 2:
            raise MatchError(Reason.MATCH_FULL, match.match_id)
        if match.status is MatchStatus.FINISHED:
            raise MatchError(Reason.MATCH_FINISHED, match.match_id)

    def join_match(self, match_id: str, nick: Optional[str] = None, client_id: Optional[str] = None) -> Match:
        """Seat a second human player.

        Raises:
            MatchError: match_not_found, match_full or match_finished
        """
        match = self._require(match_id)
        with match.lock:
            self._check_joinable(match)
            seat = len(match.players) + 1
            match.players.append(
                Player(
                    player_id=f"p{seat}",
                    nick=nick or f"Player {seat}",
                    role="host" if not match.players else "guest",
                    client_id=client_id,
                )
            )
            match.status = MatchStatus.READY
            self._touch(match)
        logger.info(f"[MATCH] joined matchId={match_id} player=p{seat}")
        return match

    def add_bot(self, match_id: str, difficulty: str = "easy") -> Match:
        """Seat the server bot as the opponent.

        Raises:
            MatchError: match_not_found, match_full or match_finished
        """
        match = self._require(match_id)
        difficulty = (difficulty or "easy").lower()
        with match.lock:
            self._check_joinable(match)
            match.players.append(
                Player(
                    player_id=BOT_ID,
                    nick=BOT_NICKS.get(difficulty, BOT_NICKS["easy"]),
                    role="host" if not match.players else "guest",
                    is_bot=True,
                    difficulty=difficulty,
                )
            )
            match.status = MatchStatus.READY
            self._touch(match)
        logger.info(f"[MATCH] bot added matchId={match_id} difficulty={difficulty}")
        return match

    def mark_player_disconnected(self, match_id: str, player_id: str) -> bool:
        match = self.get_match(match_id)
        if match is None:
            return False
        with match.lock:
            player = match.find_player(player_id)
            if player is None:
                return False
            player.connected = False
            self._touch(match)
        return True

    def get_public_match_view(self, match_id: str) -> Optional[dict[str, Any]]:
        match = self.get_match(match_id)
        return match.to_public_dict() if match is not None else None

    def update_bot_state(self, match_id: str, bot_state: Any) -> Optional[dict[str, Any]]:
        match = self.get_match(match_id)
        if match is None or not isinstance(bot_state, dict):
            return None
        with match.lock:
            prev_tick = match.bot_state["tick"] if match.bot_state else 0
            match.bot_state = normalize_bot_state(bot_state, prev_tick)
            self._touch(match)
            return match.bot_state

    def get_bot_state(self, match_id: str) -> Optional[dict[str, Any]]:
        match = self.get_match(match_id)
        return match.bot_state if match is not None else None

    def cleanup_old_matches(self, ttl_seconds: Optional[float] = None) -> int:
        """Drop matches idle for longer than the TTL; returns how many."""
        ttl = self.config.match_ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self._clock()
        with self._registry_lock:
            expired = [mid for mid, m in self._matches.items() if now - m.last_activity_at > ttl]
            for mid in expired:
                del self._matches[mid]
        if expired:
            logger.info(f"[MATCH] Cleaned up {len(expired)} old matches")
        return len(expired)

    # Snapshots

    def _cache_snapshot(self, match: Match) -> Snapshot:
        # Passive: never touches match_rev
        frozen = copy.deepcopy(match.state)
        match.snapshot = Snapshot(
            state=frozen,
            seed=match.seed,
            snapshot_hash=snapshot_hash(frozen),
            match_rev=match.match_rev,
            at=self._now_ms(),
        )
        return match.snapshot

    def _check_invariant(self, match: Match) -> InvariantReport:
        report = validate_invariant(
            match.state,
            max_depth=self.config.invariant_max_depth,
            node_cap=self.config.invariant_node_cap,
        )
        match.last_invariant = report
        if not report.ok:
            logger.warning(
                f"[INVARIANT] matchId={match.match_id} rev={match.match_rev} reason={report.reason.value} "
                f"expected={report.expected_total_cards} found={report.found_total_cards} "
                f"missing={report.missing_count} dupes={len(report.dupes)} unk={len(report.unknown_ids)} "
                f"hash={report.snapshot_hash}"
            )
        return report

    def _choose_layout(self, match: Match, schema: LayoutLike) -> BoardLayout:
        layout = _coerce_layout(schema)
        if layout is not None:
            return layout
        # The server bot plays on the single top-level board
        return BoardLayout.LEGACY_ROOT if match.has_bot else BoardLayout.V1_SIDED

    def _deal(
        self,
        match: Match,
        seed: Optional[str],
        shuffle_mode: Union[ShuffleMode, str, None],
        schema: LayoutLike,
    ) -> Snapshot:
        if isinstance(shuffle_mode, str):
            shuffle_mode = parse_shuffle_mode(shuffle_mode)
        mode = shuffle_mode or self.config.default_shuffle_mode
        layout = self._choose_layout(match, schema)
        seed = seed or match.seed

        state = build_initial_state(seed, layout, mode)
        match.seed = seed
        match.match_rev += 1
        match.state = state
        match.status = MatchStatus.RUNNING
        self._touch(match)
        snap = self._cache_snapshot(match)
        self._check_invariant(match)
        logger.info(
            f"[DEAL] matchId={match.match_id} rev={match.match_rev} seed={seed} "
            f"schema={layout.value} mode={mode.value} hash={snap.snapshot_hash}"
        )
        return snap

    def ensure_initial_snapshot(
        self,
        match_id: str,
        seed: Optional[str] = None,
        shuffle_mode: Union[ShuffleMode, str, None] = None,
        schema: LayoutLike = None,
        force: bool = False,
    ) -> Optional[Snapshot]:
        """Deal the first authoritative state unless one already exists.

        An existing snapshot is returned as is, even when it was flagged
        corrupt; `force=True` (or `reset_match`) re-deals explicitly.
        """
        match = self.get_match(match_id)
        if match is None:
            return None
        with match.lock:
            if match.snapshot is not None and not force:
                return match.snapshot
            return self._deal(match, seed, shuffle_mode, schema)

    def reset_match(
        self,
        match_id: str,
        seed: Optional[str] = None,
        shuffle_mode: Union[ShuffleMode, str, None] = None,
        schema: LayoutLike = None,
    ) -> Snapshot:
        """Re-deal a match from scratch (same seed unless one is given).

        Raises:
            MatchError: match_not_found
        """
        match = self._require(match_id)
        with match.lock:
            logger.info(f"[RESET] matchId={match_id} rev={match.match_rev} seed={seed or match.seed}")
            return self._deal(match, seed, shuffle_mode, schema)

    def set_authoritative_state(self, match_id: str, state: Any, seed: Optional[str] = None) -> bool:
        """Adopt a client-built state, only while no authoritative snapshot exists.

        Returns:
            True if the state was adopted

        Raises:
            MatchError: match_not_found
        """
        match = self._require(match_id)
        with match.lock:
            if match.snapshot is not None:
                logger.warning(
                    f"[STATE] matchId={match_id} rev={match.match_rev} "
                    f"client snapshot ignored: authoritative snapshot exists"
                )
                return False
            if detect_schema(state) is SchemaKind.UNKNOWN:
                logger.warning(f"[STATE] matchId={match_id} client snapshot ignored: unsupported schema")
                return False
            adopted = normalize_state(copy.deepcopy(state))
            match.seed = seed or adopted.get("seed") or match.seed
            match.match_rev += 1
            match.state = adopted
            match.status = MatchStatus.RUNNING
            self._touch(match)
            snap = self._cache_snapshot(match)
            self._check_invariant(match)
        logger.info(f"[STATE] matchId={match_id} rev={snap.match_rev} adopted client snapshot hash={snap.snapshot_hash}")
        return True

    def get_snapshot(self, match_id: str) -> Optional[Snapshot]:
        match = self.get_match(match_id)
        return match.snapshot if match is not None else None

    def get_snapshot_for_player(self, match_id: str, player_id: str) -> Optional[Snapshot]:
        """Latest snapshot oriented so `player_id` sees its own board as `you`.

        The state is a deep copy, so callers may mutate it without touching
        the cached snapshot or its hash.
        """
        match = self.get_match(match_id)
        if match is None:
            return None
        with match.lock:
            snap = match.snapshot
            if snap is None:
                return None
            state = copy.deepcopy(snap.state)
            is_host = match.is_host(player_id)
        return dataclasses.replace(snap, state=project_for_player(state, is_host))

    def get_last_invariant(self, match_id: str) -> Optional[InvariantReport]:
        match = self.get_match(match_id)
        return match.last_invariant if match is not None else None

    # Moves

    def validate_move(self, match_id: str, move: Any, actor: Optional[str] = None) -> ValidationResult:
        """Read-only legality check against the canonical state."""
        match = self.get_match(match_id)
        if match is None:
            return ValidationResult(ok=False, reason=Reason.MATCH_NOT_FOUND, kind=_wire_kind(move), actor=actor)
        with match.lock:
            if match.status is MatchStatus.FINISHED:
                return ValidationResult(ok=False, reason=Reason.MATCH_FINISHED, kind=_wire_kind(move), actor=actor)
            verdict = engine_validate_move(match.state, move)
        kind = verdict.move.wire_kind if verdict.move is not None else _wire_kind(move)
        return ValidationResult(ok=verdict.ok, reason=verdict.reason, kind=kind, actor=actor)

    def _commit(self, match: Match, move: Any) -> tuple[ApplyResult, Optional[InvariantReport]]:
        """Bump, apply, check and cache; the caller holds `match.lock`."""
        prev_rev = match.match_rev
        match.match_rev += 1
        result = engine_apply_move(match.state, move)
        if not result.ok:
            # Nothing was mutated, so the revision is not consumed
            match.match_rev = prev_rev
            return result, None

        self._touch(match)
        assert_card_conservation(
            match.state,
            match_id=match.match_id,
            match_rev=match.match_rev,
            move_signature=move_signature(move),
        )
        self._cache_snapshot(match)
        report = self._check_invariant(match)
        if match.state.get("over"):
            match.status = MatchStatus.FINISHED
            logger.info(f"[MATCH] finished matchId={match.match_id} rev={match.match_rev}")
        return result, report

    def apply_move(self, match_id: str, move: Any, meta: Optional[dict[str, Any]] = None) -> ApplyResult:
        """Apply without replay detection; bumps the revision on success."""
        match = self.get_match(match_id)
        if match is None:
            return ApplyResult(ok=False, reason=Reason.MATCH_NOT_FOUND)
        with match.lock:
            if match.status is MatchStatus.FINISHED:
                return ApplyResult(ok=False, state=match.state, reason=Reason.MATCH_FINISHED)
            result, _ = self._commit(match, move)
        if not result.ok:
            self._log_reject(match_id, (meta or {}).get("actor"), move, result.reason, _move_id(move, meta))
        return result

    def _log_reject(
        self,
        match_id: str,
        actor: Optional[str],
        move: Any,
        reason: Optional[Reason],
        move_id: Optional[str],
    ) -> None:
        logger.warning(
            f'[MOVE_REJECT] matchId="{match_id}" actor={actor or "-"} kind={_wire_kind(move)} '
            f"reason={reason.value if reason else '-'} moveId={move_id or '-'} sig={move_signature(move)}"
        )

    def _airbag(self, match: Match, report: InvariantReport) -> dict[str, Any]:
        now = self._clock()
        last = match.last_airbag_at
        broadcast = last is None or now - last >= self.config.airbag_throttle_seconds
        if broadcast:
            match.last_airbag_at = now
        logger.warning(
            f'[AIRBAG] matchId="{match.match_id}" rev={match.match_rev} reason={report.reason.value} '
            f"expected={report.expected_total_cards} found={report.found_total_cards} "
            f"missing={report.missing_count} dupes={len(report.dupes)} unk={len(report.unknown_ids)} "
            f"hash={report.snapshot_hash} broadcast={broadcast}"
        )
        return {**report.to_dict(), "broadcast": broadcast}

    def validate_and_apply_move(
        self,
        match_id: str,
        move: Any,
        actor: Optional[str] = None,
        meta: Optional[dict[str, Any]] = None,
    ) -> GateResult:
        """The composed entry point transport code calls for every move.

        Replay detection, validation, revision bump, apply, conservation
        and invariant checks, and the snapshot cache update happen as one
        unit under the match lock. Move ids are remembered only once the
        move has been accepted.
        """
        move_id = _move_id(move, meta)
        match = self.get_match(match_id)
        if match is None:
            self._log_reject(match_id, actor, move, Reason.MATCH_NOT_FOUND, move_id)
            return GateResult(ok=False, reason=Reason.MATCH_NOT_FOUND, rejected=True)

        with match.lock:
            if match.status is MatchStatus.FINISHED:
                self._log_reject(match_id, actor, move, Reason.MATCH_FINISHED, move_id)
                return GateResult(ok=False, reason=Reason.MATCH_FINISHED, rejected=True, match_rev=match.match_rev)

            if move_id is not None and move_id in match.recent_move_ids:
                logger.info(f'[DEDUP] matchId="{match_id}" moveId={move_id} rev={match.match_rev} ignored')
                return GateResult(ok=True, duplicate=True, match_rev=match.match_rev)

            verdict = engine_validate_move(match.state, move)
            if not verdict.ok:
                self._log_reject(match_id, actor, move, verdict.reason, move_id)
                return GateResult(ok=False, reason=verdict.reason, rejected=True, match_rev=match.match_rev)

            result, report = self._commit(match, move)
            if not result.ok:
                self._log_reject(match_id, actor, move, result.reason, move_id)
                return GateResult(ok=False, reason=result.reason, rejected=True, match_rev=match.match_rev)

            if move_id is not None:
                match.recent_move_ids.add(move_id)
            airbag = self._airbag(match, report) if report is not None and not report.ok else None
            return GateResult(
                ok=True,
                match_rev=match.match_rev,
                resolved_foundation_index=result.resolved_foundation_index,
                airbag=airbag,
            )
