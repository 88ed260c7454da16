"""Store-backed candidate pool and role configuration reads."""

from __future__ import annotations

import logging
import os
import random
import time
import uuid
from typing import Any

from packages.rankmatch_core.matching.candidates import Candidate
from packages.rankmatch_core.matching.pool import CandidatePoolSnapshot, assemble_candidate_pool
from packages.rankmatch_core.matching.roles import RoleResolution, resolve_role_requirements
from packages.rankmatch_core.matching.rules import (
    MatchingToggles,
    extract_matching_toggles,
    resolve_pool_limits,
    resolve_score_windows,
)

from ..storage import rank as rank_store


logger = logging.getLogger("rankmatch_api.pool")


def _stale_seconds() -> int:
    raw = str(os.environ.get("RANKMATCH_QUEUE_STALE_SECONDS") or "").strip()
    if not raw:
        return 0
    try:
        return max(0, int(raw))
    except ValueError:
        return 0


def new_shuffle_seed() -> str:
    return uuid.uuid4().hex[:16]


def require_game(game_id: str) -> dict[str, Any]:
    game = rank_store.get_game(game_id=game_id)
    if not game:
        raise ValueError(f"Game not found: {game_id}")
    return game


def load_role_resolution(game_id: str) -> RoleResolution:
    game = require_game(game_id)
    return resolve_role_requirements(
        rank_store.list_game_roles(game_id=game_id),
        rank_store.list_game_slots(game_id=game_id),
        game.get("inline_roles") or [],
    )


def load_toggles(game: dict[str, Any]) -> MatchingToggles:
    return extract_matching_toggles(game, game.get("rules_json") or {})


def role_bounds(game_id: str) -> dict[str, dict[str, Any]]:
    bounds: dict[str, dict[str, Any]] = {}
    for row in rank_store.list_game_roles(game_id=game_id):
        if not row.get("active", True):
            continue
        name = str(row.get("name") or "").strip()
        if not name or name in bounds:
            continue
        bounds[name] = {
            "score_delta_min": row.get("score_delta_min"),
            "score_delta_max": row.get("score_delta_max"),
        }
    return bounds


def build_candidate_pool(
    *,
    game_id: str,
    mode: str,
    realtime_enabled: bool,
    brawl_enabled: bool,
    seed: str | None = None,
    role_names: list[str] | None = None,
    rules: dict[str, Any] | None = None,
) -> CandidatePoolSnapshot:
    """Read-only snapshot of the queue, and of the fallback pool when not realtime.

    The fallback pool shuffle is seeded from ``seed``; the seed actually used
    comes back in ``meta["shuffle_seed"]`` so a verifier can replay it.
    """
    queue_rows = rank_store.list_queue(game_id=game_id, mode=mode)
    pool_rows: list[dict[str, Any]] = []
    if not realtime_enabled:
        pool_rows = [
            row
            for row in rank_store.list_participants(game_id=game_id)
            if str(row.get("status") or "alive") not in {"banned", "retired"}
        ]
    occupancy = rank_store.role_status_counts(game_id=game_id, status="alive") if brawl_enabled else {}

    used_seed = seed or new_shuffle_seed()
    limits = resolve_pool_limits(rules)
    stale = _stale_seconds()
    snapshot = assemble_candidate_pool(
        queue_rows,
        pool_rows,
        realtime_enabled=realtime_enabled,
        role_names=role_names or [],
        rng=random.Random(used_seed),
        per_role_limit=limits.per_role,
        total_limit=limits.total,
        pool_score_window=limits.score_window,
        stale_before=(time.time() - stale) if stale else None,
        role_occupancy=occupancy,
    )
    snapshot.meta["shuffle_seed"] = used_seed
    if snapshot.meta.get("stale_filtered"):
        logger.info("[QUEUE] %s/%s skipped %s stale entries", game_id, mode, snapshot.meta["stale_filtered"])
    return snapshot


def load_match_snapshot(*, game_id: str, mode: str, seed: str | None = None) -> dict[str, Any]:
    """Everything a client needs to run the matching engine locally."""
    game = require_game(game_id)
    rules = game.get("rules_json") or {}
    resolution = load_role_resolution(game_id)
    toggles = load_toggles(game)
    pool = build_candidate_pool(
        game_id=game_id,
        mode=mode,
        realtime_enabled=toggles.realtime_enabled,
        brawl_enabled=toggles.brawl_enabled,
        seed=seed,
        role_names=[role.name for role in resolution.roles],
        rules=rules,
    )
    return {
        "game_id": game_id,
        "mode": mode,
        "roles": [role.as_dict() for role in resolution.roles],
        "slot_layout": None if resolution.slot_layout is None else [entry.as_dict() for entry in resolution.slot_layout],
        "role_error": resolution.error,
        "candidates": [candidate.as_dict() for candidate in pool.candidates],
        "role_occupancy": dict(pool.role_occupancy),
        "score_windows": list(resolve_score_windows(rules)),
        "toggles": toggles.as_dict(),
        "shuffle_seed": pool.meta.get("shuffle_seed"),
        "pool_meta": dict(pool.meta),
    }


def substitute_pool(*, game_id: str, mode: str, role: str, exclude_owner_ids: set[str]) -> list[Candidate]:
    """Role-filtered pool snapshot used for mid-session drop-ins."""
    queue = [row for row in rank_store.list_queue(game_id=game_id, mode=mode) if row.get("role") == role]
    participants = [
        row
        for row in rank_store.list_participants(game_id=game_id, status="alive")
        if row.get("role") == role
    ]
    snapshot = assemble_candidate_pool(
        queue,
        participants,
        realtime_enabled=False,
        role_names=[role],
        rng=random.Random(new_shuffle_seed()),
    )
    return [candidate for candidate in snapshot.candidates if candidate.owner_id not in exclude_owner_ids]
