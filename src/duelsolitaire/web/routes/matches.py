"""Match API routes: lobby, snapshots and the move gate."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from duelsolitaire.matches.models import MatchError, Snapshot
from duelsolitaire.matches.store import MatchStore
from duelsolitaire.engine.reasons import Reason
from duelsolitaire.web.dependencies import get_store, verify_admin_dependency

router = APIRouter()

_ERROR_STATUS = {
    Reason.MATCH_NOT_FOUND: 404,
    Reason.MATCH_FULL: 409,
    Reason.MATCH_FINISHED: 409,
}


def _http_error(e: MatchError) -> HTTPException:
    return HTTPException(status_code=_ERROR_STATUS.get(e.reason, 400), detail=e.code)


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail=Reason.MATCH_NOT_FOUND.value)


# Request/Response models


class CreateMatchRequest(BaseModel):
    nick: Optional[str] = None
    client_id: Optional[str] = None


class JoinMatchRequest(BaseModel):
    nick: Optional[str] = None
    client_id: Optional[str] = None


class AddBotRequest(BaseModel):
    difficulty: str = "easy"


class PlayerView(BaseModel):
    player_id: str
    nick: str
    role: str
    connected: bool
    is_bot: bool
    difficulty: Optional[str] = None


class MatchView(BaseModel):
    """Public roster view; client ids are never exposed."""

    match_id: str
    seed: str
    status: str
    created_at: int
    match_rev: int
    players: list[PlayerView]


class DealRequest(BaseModel):
    seed: Optional[str] = None
    shuffle_mode: Optional[str] = None
    schema_kind: Optional[str] = None
    force: bool = False


class SnapshotResponse(BaseModel):
    state: dict[str, Any]
    seed: Optional[str]
    snapshot_hash: str
    match_rev: int
    at: int


class MoveRequest(BaseModel):
    """A move message as the transport received it."""

    move: dict[str, Any]
    actor: Optional[str] = None
    meta: Optional[dict[str, Any]] = None


class ValidateResponse(BaseModel):
    ok: bool
    reason: Optional[str] = None
    kind: Optional[str] = None
    actor: Optional[str] = None


class GateResponse(BaseModel):
    ok: bool
    reason: Optional[str] = None
    rejected: bool = False
    duplicate: bool = False
    match_rev: Optional[int] = None
    resolved_foundation_index: Optional[int] = None
    airbag: Optional[dict[str, Any]] = None
    snapshot: Optional[SnapshotResponse] = None


class BotStateRequest(BaseModel):
    bot_state: dict[str, Any]


class CleanupResponse(BaseModel):
    removed: int


def _match_view(store: MatchStore, match_id: str) -> MatchView:
    match = store.get_match(match_id)
    if match is None:
        raise _not_found()
    return MatchView(
        match_id=match.match_id,
        seed=match.seed,
        status=match.status.value,
        created_at=match.created_at,
        match_rev=match.match_rev,
        players=[
            PlayerView(
                player_id=p.player_id,
                nick=p.nick,
                role=p.role,
                connected=p.connected,
                is_bot=p.is_bot,
                difficulty=p.difficulty,
            )
            for p in match.players
        ],
    )


def _snapshot_response(snap: Snapshot) -> SnapshotResponse:
    return SnapshotResponse(
        state=snap.state,
        seed=snap.seed,
        snapshot_hash=snap.snapshot_hash,
        match_rev=snap.match_rev,
        at=snap.at,
    )


# Endpoints


@router.post("/matches", response_model=MatchView, status_code=201)
async def create_match(body: CreateMatchRequest, store: MatchStore = Depends(get_store)):
    """Open a new match with the caller seated as host."""
    match = store.create_match(nick=body.nick, client_id=body.client_id)
    return _match_view(store, match.match_id)


@router.get("/matches/{match_id}", response_model=MatchView)
async def get_match(match_id: str, store: MatchStore = Depends(get_store)):
    return _match_view(store, match_id)


@router.post("/matches/{match_id}/join", response_model=MatchView)
async def join_match(match_id: str, body: JoinMatchRequest, store: MatchStore = Depends(get_store)):
    try:
        store.join_match(match_id, nick=body.nick, client_id=body.client_id)
    except MatchError as e:
        raise _http_error(e)
    return _match_view(store, match_id)


@router.post("/matches/{match_id}/bot", response_model=MatchView)
async def add_bot(match_id: str, body: AddBotRequest, store: MatchStore = Depends(get_store)):
    try:
        store.add_bot(match_id, difficulty=body.difficulty)
    except MatchError as e:
        raise _http_error(e)
    return _match_view(store, match_id)


@router.post("/matches/{match_id}/deal", response_model=SnapshotResponse)
async def deal(match_id: str, body: DealRequest, store: MatchStore = Depends(get_store)):
    """Deal the first snapshot; an existing one is returned unchanged unless forced."""
    try:
        snap = store.ensure_initial_snapshot(
            match_id,
            seed=body.seed,
            shuffle_mode=body.shuffle_mode,
            schema=body.schema_kind,
            force=body.force,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if snap is None:
        raise _not_found()
    return _snapshot_response(snap)


@router.get("/matches/{match_id}/snapshot", response_model=SnapshotResponse)
async def get_snapshot(match_id: str, player_id: str = "p1", store: MatchStore = Depends(get_store)):
    """Latest snapshot oriented for `player_id`."""
    snap = store.get_snapshot_for_player(match_id, player_id)
    if snap is None:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return _snapshot_response(snap)


@router.post("/matches/{match_id}/validate", response_model=ValidateResponse)
async def validate_move(match_id: str, body: MoveRequest, store: MatchStore = Depends(get_store)):
    result = store.validate_move(match_id, body.move, actor=body.actor)
    return ValidateResponse(**result.to_dict())


@router.post("/matches/{match_id}/moves", response_model=GateResponse)
async def submit_move(match_id: str, body: MoveRequest, store: MatchStore = Depends(get_store)):
    """Run a move through the authoritative gate.

    Rejected moves are a normal 200 response with `ok: false`; accepted ones
    carry the refreshed snapshot oriented for the submitting player.
    """
    gate = store.validate_and_apply_move(match_id, body.move, actor=body.actor, meta=body.meta)
    if gate.reason is Reason.MATCH_NOT_FOUND:
        raise _not_found()

    snapshot = None
    if gate.ok:
        snap = store.get_snapshot_for_player(match_id, body.actor or "p1")
        snapshot = _snapshot_response(snap) if snap is not None else None

    return GateResponse(
        ok=gate.ok,
        reason=gate.reason.value if gate.reason else None,
        rejected=gate.rejected,
        duplicate=gate.duplicate,
        match_rev=gate.match_rev,
        resolved_foundation_index=gate.resolved_foundation_index,
        airbag=gate.airbag,
        snapshot=snapshot,
    )


@router.get("/matches/{match_id}/invariant")
async def get_invariant(match_id: str, store: MatchStore = Depends(get_store)):
    if store.get_match(match_id) is None:
        raise _not_found()
    report = store.get_last_invariant(match_id)
    return report.to_dict() if report is not None else None


@router.post("/matches/{match_id}/bot-state")
async def update_bot_state(match_id: str, body: BotStateRequest, store: MatchStore = Depends(get_store)):
    normalized = store.update_bot_state(match_id, body.bot_state)
    if normalized is None:
        raise _not_found()
    return normalized


@router.post("/matches/{match_id}/reset", response_model=SnapshotResponse)
async def reset_match(
    match_id: str,
    body: DealRequest,
    store: MatchStore = Depends(get_store),
    _admin: bool = Depends(verify_admin_dependency),
):
    """Explicit re-deal (admin)."""
    try:
        snap = store.reset_match(match_id, seed=body.seed, shuffle_mode=body.shuffle_mode, schema=body.schema_kind)
    except MatchError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _snapshot_response(snap)


@router.post("/admin/cleanup", response_model=CleanupResponse)
async def cleanup(
    store: MatchStore = Depends(get_store),
    _admin: bool = Depends(verify_admin_dependency),
):
    return CleanupResponse(removed=store.cleanup_old_matches())
