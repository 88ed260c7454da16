"""Server half of hybrid matching: recompute, compare, and commit on agreement."""

from __future__ import annotations

import logging
from typing import Any, Callable

from packages.rankmatch_core.matching.client import compute_from_snapshot
from packages.rankmatch_core.matching.engine import MatchResult
from packages.rankmatch_core.matching.readiness import summarize_readiness
from packages.rankmatch_core.matching.verification import (
    REASON_INVALID_CLIENT_RESULT,
    VerificationOutcome,
    compare_match_results,
)

from ..storage import rank as rank_store
from .candidate_pool import load_match_snapshot


logger = logging.getLogger("rankmatch_api.verify")

CommitFn = Callable[..., "str | None"]


def _client_seed(client_result: Any) -> str | None:
    if not isinstance(client_result, dict):
        return None
    metadata = client_result.get("metadata")
    if not isinstance(metadata, dict):
        return None
    seed = metadata.get("shuffle_seed")
    return str(seed) if seed else None


def preview_match(*, game_id: str, mode: str, seed: str | None = None) -> dict[str, Any]:
    """Run the engine server-side for display; never writes."""
    snapshot = load_match_snapshot(game_id=game_id, mode=mode, seed=seed)
    if snapshot.get("role_error"):
        return {"snapshot": snapshot, "result": None, "readiness": None, "error": snapshot["role_error"]}
    result = compute_from_snapshot(snapshot, mode=mode)
    readiness = summarize_readiness(
        slot_layout=snapshot.get("slot_layout"),
        roles=snapshot.get("roles"),
        assignments=result.assignments,
    )
    return {
        "snapshot": snapshot,
        "result": result.as_dict(),
        "readiness": readiness.as_dict(),
        "error": None,
    }


def commit_room(*, game_id: str, mode: str, host: str | None, result: MatchResult) -> str | None:
    """Persist the primary room and claim its queue entries.

    Returns ``None`` when the queue moved underneath us; nothing is written then.
    """
    entry_ids = [
        member.id
        for assignment in result.assignments
        for member in assignment.members
        if member.source == "queue"
    ]
    room = rank_store.commit_room(
        game_id=game_id,
        mode=mode,
        host=host,
        entry_ids=entry_ids,
        payload=result.as_dict(),
    )
    if room is None:
        return None
    return str(room["room_id"])


def verify_client_match(
    *,
    game_id: str,
    mode: str,
    host: str | None,
    client_result: Any,
    commit_fn: CommitFn = commit_room,
) -> dict[str, Any]:
    if not isinstance(client_result, dict):
        return {"verified": False, "reason": REASON_INVALID_CLIENT_RESULT, "retry": False}

    snapshot = load_match_snapshot(game_id=game_id, mode=mode, seed=_client_seed(client_result))
    if snapshot.get("role_error"):
        logger.warning("[VERIFY] %s has no usable role configuration", game_id)
        return {"verified": False, "reason": str(snapshot["role_error"]), "retry": False}

    server_result = compute_from_snapshot(snapshot, mode=mode)
    outcome: VerificationOutcome = compare_match_results(server_result, client_result)
    if not outcome.verified:
        logger.info("[VERIFY] %s/%s rejected: %s", game_id, mode, outcome.reason)
        return {"verified": False, "reason": outcome.reason, "retry": True, "details": outcome.details}

    room_id = commit_fn(game_id=game_id, mode=mode, host=host, result=server_result)
    if not room_id:
        logger.info("[VERIFY] %s/%s queue changed before commit", game_id, mode)
        return {"verified": False, "reason": "queue_changed", "retry": True}

    logger.info("[VERIFY] %s/%s committed room %s", game_id, mode, room_id)
    return {"verified": True, "reason": outcome.reason, "retry": False, "room_id": room_id}
