"""Session lifecycle: start from a committed room, advance turns, drop-ins, settlement."""

from __future__ import annotations

import logging
from typing import Any

from packages.rankmatch_core.matching.candidates import FALLBACK_SCORE
from packages.rankmatch_core.matching.rules import resolve_turn_seconds
from packages.rankmatch_core.session.drop_in import pick_substitute
from packages.rankmatch_core.session.registry import SessionRecord, get_session_registry
from packages.rankmatch_core.session.scoring import apply_score_delta

from ..storage import rank as rank_store
from .candidate_pool import require_game, role_bounds, substitute_pool


logger = logging.getLogger("rankmatch_api.sessions")

SCORE_FLOOR = 0


def _roster_from_room(room: dict[str, Any]) -> list[dict[str, Any]]:
    payload = room.get("payload_json") or {}
    roster: list[dict[str, Any]] = []
    for assignment in payload.get("assignments") or []:
        for member in assignment.get("members") or []:
            roster.append(
                {
                    "id": member.get("id"),
                    "owner_id": member.get("owner_id"),
                    "hero_id": member.get("hero_id"),
                    "hero_name": member.get("hero_name") or member.get("hero_id"),
                    "role": assignment.get("role"),
                    "score": member.get("score"),
                    "slot_index": len(roster),
                    "status": "active",
                }
            )
    return roster


def _active_record(session_id: str) -> SessionRecord | None:
    """Live record of an active session, or ``None`` once the session has completed."""
    record = get_session_registry().get(session_id)
    if record is not None and not record.ledger.completed:
        return record
    session = rank_store.get_session(session_id=session_id)
    if record is None and (not session or session.get("status") != "completed"):
        raise ValueError(f"Session not found: {session_id}")
    return None


def _final_state(session_id: str) -> dict[str, Any] | None:
    session = rank_store.get_session(session_id=session_id) or {}
    return session.get("final_state")


def start_session(*, room_id: str) -> dict[str, Any]:
    room = rank_store.get_room(room_id=room_id)
    if not room:
        raise ValueError(f"Room not found: {room_id}")
    game = require_game(str(room["game_id"]))
    session = rank_store.create_session(room_id=room_id, game_id=str(room["game_id"]))
    roster = _roster_from_room(room)
    record = get_session_registry().create(
        session_id=str(session["session_id"]),
        room_id=room_id,
        participants=roster,
        base_seconds=resolve_turn_seconds(game.get("rules_json") or {}),
        mode="realtime" if game.get("realtime_match") else "async",
    )
    record.turn_number = 1
    duration = record.timer.next_turn_duration(1)
    logger.info("[SESSION] %s started for room %s with %s participants", record.session_id, room_id, len(roster))
    return {"session": session, "turn_number": 1, "turn_seconds": duration, "state": record.snapshot()}


def get_session_state(*, session_id: str) -> dict[str, Any]:
    session = rank_store.get_session(session_id=session_id)
    if not session:
        raise ValueError(f"Session not found: {session_id}")
    record = get_session_registry().get(session_id)
    return {
        "session": session,
        "state": session.get("final_state") if record is None else record.snapshot(),
        "outcomes": rank_store.list_session_outcomes(session_id=session_id),
    }


def record_turn(*, session_id: str, turn: int, result_line: str, actors: list[str]) -> dict[str, Any]:
    record = _active_record(session_id)
    if record is None:
        logger.warning("[SESSION] %s ignored turn %s after completion", session_id, turn)
        return {"recorded": False, "completed": True, "turn_seconds": None, "state": _final_state(session_id)}
    changed = record.ledger.record_turn(turn=turn, result_line=result_line, actors=actors)
    record.turn_number = int(turn) + 1
    duration = record.timer.next_turn_duration(record.turn_number)
    return {
        "recorded": changed,
        "completed": False,
        "turn_number": record.turn_number,
        "turn_seconds": duration,
        "state": record.snapshot(),
    }


def request_drop_in(
    *,
    session_id: str,
    role: str,
    turn_number: int,
    immediate: bool,
    departed_key: str | None = None,
) -> dict[str, Any]:
    record = _active_record(session_id)
    if record is None:
        return {"substitute": None, "bonus_seconds": 0, "reason": "session_completed"}
    room = rank_store.get_room(room_id=str(record.room_id))
    if not room:
        raise ValueError(f"Room not found: {record.room_id}")

    pool = substitute_pool(
        game_id=str(room["game_id"]),
        mode=str(room["mode"]),
        role=role,
        exclude_owner_ids=record.owner_ids,
    )
    substitute = pick_substitute(pool=pool, used_hero_ids=record.used_hero_ids)
    if substitute is None:
        logger.info("[DROP_IN] %s has no substitute for role %s", session_id, role)
        return {"substitute": None, "bonus_seconds": 0, "reason": "no_substitute"}

    bonus = record.timer.register_drop_in_bonus(immediate=immediate, turn_number=turn_number)
    arrival = {
        "id": substitute.id,
        "owner_id": substitute.owner_id,
        "hero_id": substitute.hero_id,
        "hero_name": substitute.hero_id,
        "role": role,
        "score": substitute.score,
        "status": "active",
    }
    if departed_key:
        record.roster = [item for item in record.roster if str(item.get("id")) != departed_key]
    record.roster.append(arrival)
    record.ledger.add_participant({**arrival, "slot_index": len(record.ledger.entries)})
    sync = record.tracker.sync(record.roster, turn_number=turn_number, mode="async")
    record.drop_ins.append(
        {
            "turn": int(turn_number),
            "role": role,
            "substitute": substitute.as_dict(),
            "bonus_seconds": bonus,
            "immediate": bool(immediate),
        }
    )
    logger.info("[DROP_IN] %s seated %s as %s (+%ss)", session_id, substitute.hero_id, role, bonus)
    return {
        "substitute": substitute.as_dict(),
        "bonus_seconds": bonus,
        "arrivals": list(sync.arrivals),
        "departures": list(sync.departures),
        "state": record.snapshot(),
    }


def complete_session(*, session_id: str, score_overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    session = rank_store.get_session(session_id=session_id)
    if not session:
        raise ValueError(f"Session not found: {session_id}")
    game_id = str(session["game_id"])
    if session.get("status") == "completed":
        return {
            "session": session,
            "result": session.get("result"),
            "outcomes": rank_store.list_session_outcomes(session_id=session_id),
            "score_updates": [],
        }
    record = get_session_registry().get(session_id)
    if record is None:
        raise ValueError(f"Session not found: {session_id}")

    entries = record.ledger.settle(role_bounds(game_id), **(score_overrides or {}))
    outcomes = [entry.as_dict() for entry in entries]
    result = record.ledger.overall_result()
    stored = rank_store.complete_session(
        session_id=session_id,
        outcomes=outcomes,
        result=result,
        state=record.snapshot(),
    )
    get_session_registry().discard(session_id)

    current_scores = {
        str(row.get("owner_id")): row.get("score")
        for row in rank_store.list_participants(game_id=game_id)
    }
    applied: list[dict[str, Any]] = []
    for entry in entries:
        if not entry.owner_id or not entry.hero_id:
            continue
        before = current_scores.get(entry.owner_id)
        base = before if before is not None else FALLBACK_SCORE
        after = apply_score_delta(base, entry.score_delta, floor=SCORE_FLOOR)
        if before is not None:
            rank_store.apply_participant_score(game_id=game_id, owner_id=entry.owner_id, score=after)
        else:
            rank_store.upsert_participant(
                game_id=game_id,
                owner_id=entry.owner_id,
                hero_id=entry.hero_id,
                role=entry.role or "",
                score=after,
                status="alive",
                hero_name=entry.hero_name,
            )
        applied.append({"owner_id": entry.owner_id, "before": base, "delta": entry.score_delta, "after": after})

    logger.info("[SETTLE] %s completed with result %s (%s score updates)", session_id, result, len(applied))
    return {"session": stored, "result": result, "outcomes": outcomes, "score_updates": applied}
