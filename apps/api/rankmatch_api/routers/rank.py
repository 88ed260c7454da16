"""Rank game configuration, queueing, hybrid match verification, and session endpoints."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from packages.rankmatch_core.matching.candidates import parse_score
from packages.rankmatch_core.matching.rules import extract_matching_toggles

from ..services.candidate_pool import load_match_snapshot, load_role_resolution
from ..services.match_verifier import preview_match, verify_client_match
from ..services.session_flow import (
    complete_session,
    get_session_state,
    record_turn,
    request_drop_in,
    start_session,
)
from ..storage import rank as rank_store


logger = logging.getLogger("rankmatch_api.rank")

router = APIRouter(prefix="/api/v1/rank", tags=["rank"])

MODE_PATTERN = "^[a-z0-9_-]{1,32}$"


class RoleConfig(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    slot_count: int = Field(default=1, ge=0, le=64)
    active: bool = True
    score_delta_min: Optional[int] = Field(default=None, ge=0, le=10000)
    score_delta_max: Optional[int] = Field(default=None, ge=0, le=10000)


class SlotConfig(BaseModel):
    slot_index: int = Field(ge=0, le=256)
    role: str = Field(min_length=1, max_length=64)
    active: bool = True
    hero_id: Optional[str] = None
    hero_owner_id: Optional[str] = None


class RegisterGameRequest(BaseModel):
    game_id: str = Field(min_length=1, max_length=120)
    name: str = Field(default="", max_length=200)
    realtime_match: bool = False
    match_source: Optional[str] = Field(default=None, max_length=40)
    roles: list[RoleConfig] = Field(default_factory=list)
    slots: list[SlotConfig] = Field(default_factory=list)
    inline_roles: list[str] = Field(default_factory=list)
    rules: dict[str, Any] = Field(default_factory=dict)


class QueueJoinRequest(BaseModel):
    mode: str = Field(default="rank", pattern=MODE_PATTERN)
    owner_id: str = Field(min_length=1, max_length=120)
    hero_id: str = Field(min_length=1, max_length=120)
    role: str = Field(min_length=1, max_length=64)
    score: Any = None
    party_key: str | None = Field(default=None, max_length=120)


class QueueLeaveRequest(BaseModel):
    mode: str = Field(default="rank", pattern=MODE_PATTERN)
    owner_id: str = Field(min_length=1, max_length=120)


class ParticipantRequest(BaseModel):
    owner_id: str = Field(min_length=1, max_length=120)
    hero_id: str = Field(min_length=1, max_length=120)
    role: str = Field(min_length=1, max_length=64)
    score: Any = None
    status: str = Field(default="alive", max_length=32)
    hero_name: Optional[str] = Field(default=None, max_length=120)


class MatchPreviewRequest(BaseModel):
    mode: str = Field(default="rank", pattern=MODE_PATTERN)
    seed: Optional[str] = Field(default=None, max_length=64)


class VerifyRequest(BaseModel):
    game_id: str = Field(min_length=1, max_length=120)
    mode: str = Field(default="rank", pattern=MODE_PATTERN)
    host: Optional[str] = Field(default=None, max_length=120)
    client_result: dict[str, Any]


class TurnRequest(BaseModel):
    turn: int = Field(ge=1, le=100000)
    result_line: str = Field(default="", max_length=2000)
    actors: list[str] = Field(default_factory=list)


class DropInRequest(BaseModel):
    role: str = Field(min_length=1, max_length=64)
    turn_number: int = Field(ge=0, le=100000)
    immediate: bool = False
    departed_key: Optional[str] = Field(default=None, max_length=120)


class CompleteSessionRequest(BaseModel):
    win_cap: Optional[int] = Field(default=None, ge=0, le=1000)
    floor: Optional[int] = None
    ceiling: Optional[int] = None


def _score_or_none(raw: Any) -> Optional[float]:
    if raw is None:
        return None
    return parse_score(raw)


def _game_or_404(game_id: str) -> dict[str, Any]:
    game = rank_store.get_game(game_id=game_id)
    if not game:
        raise HTTPException(status_code=404, detail=f"Game not found: {game_id}")
    return game


@router.post("/games")
def register_game(req: RegisterGameRequest) -> dict[str, Any]:
    game = rank_store.upsert_game(
        game_id=req.game_id.strip(),
        name=req.name,
        realtime_match=req.realtime_match,
        match_source=req.match_source,
        rules=req.rules,
        inline_roles=list(req.inline_roles),
        roles=[role.model_dump() for role in req.roles],
        slots=[slot.model_dump() for slot in req.slots],
    )
    resolution = load_role_resolution(game["game_id"])
    return {"ok": True, "game": game, "roles": resolution.as_dict()}


@router.get("/games/{game_id}/roles")
def get_game_roles(game_id: str) -> dict[str, Any]:
    game = _game_or_404(game_id)
    resolution = load_role_resolution(game_id)
    return {
        "ok": resolution.ok,
        "game_id": game_id,
        "toggles": extract_matching_toggles(game, game.get("rules_json") or {}).as_dict(),
        **resolution.as_dict(),
    }


@router.post("/games/{game_id}/queue/join")
def join_queue(game_id: str, req: QueueJoinRequest) -> dict[str, Any]:
    _game_or_404(game_id)
    entry = rank_store.enqueue(
        game_id=game_id,
        mode=req.mode,
        owner_id=req.owner_id,
        hero_id=req.hero_id,
        role=req.role.strip(),
        score=_score_or_none(req.score),
        party_key=(req.party_key or "").strip() or None,
    )
    logger.info("[QUEUE] %s joined %s/%s as %s", req.owner_id, game_id, req.mode, req.role)
    return {"ok": True, "entry": entry}


@router.post("/games/{game_id}/queue/leave")
def leave_queue(game_id: str, req: QueueLeaveRequest) -> dict[str, Any]:
    _game_or_404(game_id)
    removed = rank_store.leave_queue(game_id=game_id, mode=req.mode, owner_id=req.owner_id)
    return {"ok": True, "removed": removed}


@router.post("/games/{game_id}/participants")
def upsert_participant(game_id: str, req: ParticipantRequest) -> dict[str, Any]:
    _game_or_404(game_id)
    participant = rank_store.upsert_participant(
        game_id=game_id,
        owner_id=req.owner_id,
        hero_id=req.hero_id,
        role=req.role.strip(),
        score=_score_or_none(req.score),
        status=req.status,
        hero_name=req.hero_name,
    )
    return {"ok": True, "participant": participant}


@router.get("/games/{game_id}/snapshot")
def get_snapshot(
    game_id: str,
    mode: str = Query(default="rank", pattern=MODE_PATTERN),
    seed: Optional[str] = Query(default=None, max_length=64),
) -> dict[str, Any]:
    _game_or_404(game_id)
    snapshot = load_match_snapshot(game_id=game_id, mode=mode, seed=seed)
    if snapshot.get("role_error"):
        raise HTTPException(status_code=409, detail=str(snapshot["role_error"]))
    return snapshot


@router.post("/games/{game_id}/match/preview")
def match_preview(game_id: str, req: MatchPreviewRequest) -> dict[str, Any]:
    _game_or_404(game_id)
    preview = preview_match(game_id=game_id, mode=req.mode, seed=req.seed)
    if preview.get("error"):
        raise HTTPException(status_code=409, detail=str(preview["error"]))
    return {"ok": True, **preview}


@router.post("/verify")
def verify_match(req: VerifyRequest) -> dict[str, Any]:
    _game_or_404(req.game_id)
    return verify_client_match(
        game_id=req.game_id,
        mode=req.mode,
        host=req.host,
        client_result=req.client_result,
    )


@router.post("/rooms/{room_id}/sessions")
def create_session(room_id: str) -> dict[str, Any]:
    try:
        started = start_session(room_id=room_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, **started}


@router.get("/sessions/{session_id}")
def get_session(session_id: str) -> dict[str, Any]:
    try:
        state = get_session_state(session_id=session_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, **state}


@router.post("/sessions/{session_id}/turns")
def post_turn(session_id: str, req: TurnRequest) -> dict[str, Any]:
    try:
        outcome = record_turn(session_id=session_id, turn=req.turn, result_line=req.result_line, actors=req.actors)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, **outcome}


@router.post("/sessions/{session_id}/drop-in")
def post_drop_in(session_id: str, req: DropInRequest) -> dict[str, Any]:
    try:
        outcome = request_drop_in(
            session_id=session_id,
            role=req.role.strip(),
            turn_number=req.turn_number,
            immediate=req.immediate,
            departed_key=req.departed_key,
        )
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, **outcome}


@router.post("/sessions/{session_id}/complete")
def post_complete(session_id: str, req: Optional[CompleteSessionRequest] = None) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if req is not None:
        overrides = {key: value for key, value in req.model_dump().items() if value is not None}
    try:
        settled = complete_session(session_id=session_id, score_overrides=overrides)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"ok": True, **settled}
