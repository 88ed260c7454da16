"""Assemble the ordered candidate list from the live queue and the fallback pool."""

from __future__ import annotations

from dataclasses import dataclass, field
import math
import random
from typing import Any, Iterable

from .candidates import Candidate, normalize_candidate


@dataclass(frozen=True)
class CandidatePoolSnapshot:
    candidates: tuple[Candidate, ...] = ()
    role_occupancy: dict[str, int] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def queue(self) -> tuple[Candidate, ...]:
        return tuple(candidate for candidate in self.candidates if candidate.source == "queue")

    @property
    def pool(self) -> tuple[Candidate, ...]:
        return tuple(candidate for candidate in self.candidates if candidate.source == "pool")

    def for_role(self, role: str) -> list[Candidate]:
        return [candidate for candidate in self.candidates if candidate.role == role]

    def as_dict(self) -> dict[str, Any]:
        return {
            "candidates": [candidate.as_dict() for candidate in self.candidates],
            "role_occupancy": dict(self.role_occupancy),
            "meta": dict(self.meta),
        }


def queue_sort_key(candidate: Candidate) -> tuple[float, str]:
    return (candidate.joined_at, candidate.id)


def _role_averages(queue: Iterable[Candidate]) -> tuple[dict[str, float], float | None]:
    sums: dict[str, list[float]] = {}
    total = 0.0
    count = 0
    for candidate in queue:
        sums.setdefault(candidate.role, []).append(candidate.score)
        total += candidate.score
        count += 1
    averages = {role: sum(values) / len(values) for role, values in sums.items()}
    return averages, (total / count if count else None)


def assemble_candidate_pool(
    queue_rows: Iterable[dict[str, Any] | Candidate],
    pool_rows: Iterable[dict[str, Any] | Candidate] = (),
    *,
    realtime_enabled: bool,
    role_names: Iterable[str] = (),
    rng: random.Random | None = None,
    per_role_limit: int | None = None,
    total_limit: int | None = None,
    pool_score_window: float | None = None,
    stale_before: float | None = None,
    role_occupancy: dict[str, int] | None = None,
) -> CandidatePoolSnapshot:
    """Queue first in FIFO order, then the filtered and shuffled fallback pool.

    Pool rows are only consulted when ``realtime_enabled`` is false. The shuffle
    draws from ``rng`` so callers can replay it by seeding the same generator.
    """
    queue: list[Candidate] = []
    stale = 0
    for index, row in enumerate(queue_rows or []):
        candidate = normalize_candidate(row, source="queue", row_index=index)
        if stale_before is not None and candidate.joined_at < stale_before:
            stale += 1
            continue
        queue.append(candidate)
    queue.sort(key=queue_sort_key)

    meta: dict[str, Any] = {
        "realtime": bool(realtime_enabled),
        "sample_type": "realtime_queue" if realtime_enabled else "participant_pool",
        "queue_count": len(queue),
        "stale_filtered": stale,
        "pool_count": 0,
        "pool_filtered": 0,
        "pool_selected": 0,
        "per_role_limit": None,
        "total_limit": None,
    }
    occupancy = {str(role): int(count) for role, count in (role_occupancy or {}).items()}

    if realtime_enabled:
        return CandidatePoolSnapshot(candidates=tuple(queue), role_occupancy=occupancy, meta=meta)

    owners_in_queue = {candidate.owner_id for candidate in queue if candidate.owner_id}
    heroes_in_queue = {candidate.hero_id for candidate in queue if candidate.hero_id}
    targets = {name for name in role_names if name}
    role_averages, overall_average = _role_averages(queue)

    eligible: list[Candidate] = []
    pool_list = list(pool_rows or [])
    meta["pool_count"] = len(pool_list)
    for index, row in enumerate(pool_list):
        candidate = normalize_candidate(row, source="pool", row_index=index)
        if not candidate.owner_id or candidate.owner_id in owners_in_queue:
            meta["pool_filtered"] += 1
            continue
        if not candidate.role or (targets and candidate.role not in targets):
            meta["pool_filtered"] += 1
            continue
        if candidate.hero_id and candidate.hero_id in heroes_in_queue:
            meta["pool_filtered"] += 1
            continue
        baseline = role_averages.get(candidate.role, overall_average)
        if pool_score_window is not None and baseline is not None:
            if abs(candidate.score - baseline) > pool_score_window:
                meta["pool_filtered"] += 1
                continue
        eligible.append(candidate)

    (rng or random.Random()).shuffle(eligible)

    selected: list[Candidate] = []
    per_role: dict[str, int] = {}
    cap = total_limit if total_limit is not None and total_limit >= 0 else math.inf
    for candidate in eligible:
        if len(selected) >= cap:
            break
        used = per_role.get(candidate.role, 0)
        if per_role_limit is not None and per_role_limit >= 0 and used >= per_role_limit:
            continue
        selected.append(candidate)
        per_role[candidate.role] = used + 1

    meta["pool_selected"] = len(selected)
    meta["per_role_limit"] = per_role_limit
    meta["total_limit"] = total_limit
    if pool_score_window is not None:
        meta["pool_score_window"] = pool_score_window
    return CandidatePoolSnapshot(candidates=tuple(queue + selected), role_occupancy=occupancy, meta=meta)
