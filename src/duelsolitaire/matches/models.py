"""Match records, snapshots and gate results."""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from duelsolitaire.engine.invariant import InvariantReport
from duelsolitaire.engine.reasons import Reason

BOT_ID = "bot"

BOT_NICKS = {
    "easy": "Bot-Easy",
    "medium": "Bot-Medium",
    "hard": "Bot-Hard",
}


class MatchStatus(Enum):
    WAITING = "waiting"
    READY = "ready"
    RUNNING = "running"
    FINISHED = "finished"


class MatchError(Exception):
    """Lifecycle failure with a wire code (match_not_found, match_full, ...)."""

    def __init__(self, reason: Reason, match_id: Optional[str] = None):
        super().__init__(reason.value)
        self.reason = reason
        self.match_id = match_id

    @property
    def code(self) -> str:
        return self.reason.value


@dataclass
class Player:
    player_id: str
    nick: str
    role: str
    client_id: Optional[str] = None
    connected: bool = True
    is_bot: bool = False
    difficulty: Optional[str] = None

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "playerId": self.player_id,
            "nick": self.nick,
            "role": self.role,
            "connected": self.connected,
            "isBot": self.is_bot,
            "difficulty": self.difficulty,
        }


class RecentMoveIds:
    """Bounded FIFO set of processed move ids."""

    def __init__(self, limit: int = 500):
        self.limit = limit
        self._ids: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, move_id: object) -> bool:
        return move_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, move_id: str) -> None:
        if move_id in self._ids:
            return
        self._ids[move_id] = None
        while len(self._ids) > self.limit:
            self._ids.popitem(last=False)


@dataclass(frozen=True)
class Snapshot:
    """Record of the canonical state at one revision.

    The cached instance is shared by every reader and `state` is not frozen,
    so treat it as read-only. `MatchStore.get_snapshot_for_player` hands out
    a detached copy for anything that leaves the process.
    """

    state: Any
    seed: Optional[str]
    snapshot_hash: str
    match_rev: int
    at: int  # epoch milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "seed": self.seed,
            "snapshotHash": self.snapshot_hash,
            "matchRev": self.match_rev,
            "at": self.at,
        }


@dataclass
class Match:
    match_id: str
    seed: str
    created_at: int
    last_activity_at: float
    status: MatchStatus = MatchStatus.WAITING
    players: list[Player] = field(default_factory=list)
    state: Optional[dict[str, Any]] = None
    snapshot: Optional[Snapshot] = None
    match_rev: int = 0
    last_invariant: Optional[InvariantReport] = None
    recent_move_ids: RecentMoveIds = field(default_factory=RecentMoveIds)
    bot_state: Optional[dict[str, Any]] = None
    last_airbag_at: Optional[float] = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def has_bot(self) -> bool:
        return any(p.is_bot for p in self.players)

    @property
    def host(self) -> Optional[Player]:
        return next((p for p in self.players if p.role == "host"), None)

    def find_player(self, player_id: str) -> Optional[Player]:
        return next((p for p in self.players if p.player_id == player_id), None)

    def is_host(self, player_id: str) -> bool:
        host = self.host
        return host is not None and host.player_id == player_id

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "matchId": self.match_id,
            "seed": self.seed,
            "status": self.status.value,
            "createdAt": self.created_at,
            "matchRev": self.match_rev,
            "players": [p.to_public_dict() for p in self.players],
        }


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: Optional[Reason] = None
    kind: Optional[str] = None
    actor: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "reason": self.reason.value if self.reason else None,
            "kind": self.kind,
            "actor": self.actor,
        }


@dataclass(frozen=True)
class GateResult:
    """Outcome of the composed validate, bump, apply, check, cache sequence."""

    ok: bool
    reason: Optional[Reason] = None
    rejected: bool = False
    duplicate: bool = False
    match_rev: Optional[int] = None
    resolved_foundation_index: Optional[int] = None
    airbag: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ok": self.ok, "matchRev": self.match_rev}
        if self.reason is not None:
            out["reason"] = self.reason.value
        if self.rejected:
            out["rejected"] = True
        if self.duplicate:
            out["duplicate"] = True
        if self.resolved_foundation_index is not None:
            out["resolvedFoundationIndex"] = self.resolved_foundation_index
        if self.airbag is not None:
            out["airbag"] = self.airbag
        return out
