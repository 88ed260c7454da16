"""Deterministic role-balanced matching over a candidate snapshot.

The same inputs must give the same ``MatchResult`` on any machine: the client
computes a match and the server re-runs it to verify before committing. All
iteration is over explicitly ordered lists and metadata carries no clocks or
random ids.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Any, Iterable, Sequence

from .candidates import Candidate, normalize_candidate
from .roles import RoleRequirement, clean_role_name, merge_role_requirements
from .rules import DEFAULT_SCORE_WINDOWS, normalize_score_windows


MATCH_MODES = {"rank", "casual"}
PARTY_MODE_SUFFIXES = {"_solo": 1, "_duo": 2}

ERROR_NO_ACTIVE_SLOTS = "no_active_slots"
ERROR_NO_OPEN_SLOTS = "no_open_slots"
ERROR_ROLE_SHORTFALL = "role_shortfall"
ERROR_SCORE_GAP = "score_gap"


def _plain_number(value: float) -> float | int:
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return value


@dataclass(frozen=True)
class RoleAssignment:
    role: str
    slots: int
    members: tuple[Candidate, ...] = ()
    role_slots: tuple[int, ...] = ()

    @property
    def filled(self) -> int:
        return len(self.members)

    def as_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "slots": self.slots,
            "members": [member.as_dict() for member in self.members],
            "role_slots": list(self.role_slots),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "RoleAssignment":
        members = tuple(
            normalize_candidate(member, source=str(member.get("source") or "queue"), row_index=index)
            for index, member in enumerate(payload.get("members") or [])
            if isinstance(member, dict)
        )
        return cls(
            role=clean_role_name(payload.get("role")),
            slots=int(payload.get("slots") or 0),
            members=members,
            role_slots=tuple(int(value) for value in payload.get("role_slots") or []),
        )


@dataclass(frozen=True)
class MatchError:
    code: str
    role: str | None = None
    missing: int | None = None
    shortfalls: tuple[tuple[str, int], ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "role": self.role,
            "missing": self.missing,
            "shortfalls": [{"role": role, "missing": missing} for role, missing in self.shortfalls],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | str | None) -> "MatchError | None":
        if not payload:
            return None
        if isinstance(payload, str):
            return cls(code=payload)
        return cls(
            code=str(payload.get("code") or ""),
            role=payload.get("role"),
            missing=payload.get("missing"),
            shortfalls=tuple(
                (str(item.get("role")), int(item.get("missing") or 0))
                for item in payload.get("shortfalls") or []
                if isinstance(item, dict)
            ),
        )


@dataclass(frozen=True)
class Room:
    assignments: tuple[RoleAssignment, ...]
    ready: bool
    max_window: float
    anchor_score: float | None = None
    error: MatchError | None = None

    @property
    def members(self) -> list[Candidate]:
        return [member for assignment in self.assignments for member in assignment.members]

    def as_dict(self) -> dict[str, Any]:
        return {
            "assignments": [assignment.as_dict() for assignment in self.assignments],
            "ready": self.ready,
            "max_window": _plain_number(self.max_window),
            "anchor_score": None if self.anchor_score is None else _plain_number(self.anchor_score),
            "error": None if self.error is None else self.error.as_dict(),
        }


@dataclass(frozen=True)
class MatchResult:
    ready: bool
    assignments: tuple[RoleAssignment, ...]
    rooms: tuple[Room, ...]
    max_window: float
    total_slots: int
    error: MatchError | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "ready": self.ready,
            "assignments": [assignment.as_dict() for assignment in self.assignments],
            "rooms": [room.as_dict() for room in self.rooms],
            "max_window": _plain_number(self.max_window),
            "total_slots": self.total_slots,
            "error": None if self.error is None else self.error.as_dict(),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "MatchResult":
        assignments = tuple(
            RoleAssignment.from_dict(item) for item in payload.get("assignments") or [] if isinstance(item, dict)
        )
        rooms = []
        for room in payload.get("rooms") or []:
            if not isinstance(room, dict):
                continue
            rooms.append(
                Room(
                    assignments=tuple(
                        RoleAssignment.from_dict(item)
                        for item in room.get("assignments") or []
                        if isinstance(item, dict)
                    ),
                    ready=bool(room.get("ready")),
                    max_window=float(room.get("max_window") or 0),
                    anchor_score=room.get("anchor_score"),
                    error=MatchError.from_dict(room.get("error")),
                )
            )
        return cls(
            ready=bool(payload.get("ready")),
            assignments=assignments,
            rooms=tuple(rooms),
            max_window=float(payload.get("max_window") or 0),
            total_slots=int(payload.get("total_slots") or 0),
            error=MatchError.from_dict(payload.get("error")),
            metadata=dict(payload.get("metadata") or {}),
        )


@dataclass(frozen=True)
class _Unit:
    """A group seated together: one candidate, or a whole party in party modes."""

    members: tuple[Candidate, ...]
    score: float
    position: int

    @property
    def role(self) -> str:
        return self.members[0].role

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def hero_keys(self) -> tuple[str, ...]:
        return tuple(member.hero_key for member in self.members)

    @property
    def owner_ids(self) -> tuple[str, ...]:
        return tuple(member.owner_id for member in self.members if member.owner_id)


@dataclass
class _Attempt:
    accepted: dict[str, list[Candidate]]
    anchor: float | None

    def filled(self) -> int:
        return sum(len(members) for members in self.accepted.values())


def _empty_attempt(open_seats: dict[str, int]) -> _Attempt:
    return _Attempt(accepted={role: [] for role in open_seats}, anchor=None)


def resolve_match_mode(mode: str | None) -> tuple[str, int]:
    """Split a queue mode such as ``rank_duo`` into its matching mode and party size."""
    text = str(mode or "").strip().lower()
    party_size = 1
    for suffix, size in PARTY_MODE_SUFFIXES.items():
        if text.endswith(suffix):
            text = text[: -len(suffix)]
            party_size = size
            break
    return (text if text in MATCH_MODES else "rank"), party_size


def _normalize_roles(roles: Iterable[Any]) -> tuple[RoleRequirement, ...]:
    pairs: list[tuple[str, int]] = []
    for role in roles or []:
        if isinstance(role, RoleRequirement):
            pairs.append((role.name, role.slot_count))
        elif isinstance(role, dict):
            name = clean_role_name(role.get("name", role.get("role")))
            raw = role.get("slot_count", role.get("slotCount", role.get("slots")))
            try:
                count = int(raw)
            except (TypeError, ValueError):
                count = 0
            pairs.append((name, count))
        elif isinstance(role, (tuple, list)) and len(role) == 2:
            pairs.append((clean_role_name(role[0]), int(role[1])))
    return merge_role_requirements(pairs)


def canonical_order(candidates: Iterable[Candidate | dict[str, Any]]) -> list[Candidate]:
    """Queue candidates by ``(joined_at, id)``, then pool candidates in their given order."""
    queue: list[Candidate] = []
    pool: list[Candidate] = []
    for index, row in enumerate(candidates or []):
        candidate = normalize_candidate(row, row_index=index)
        (pool if candidate.source == "pool" else queue).append(candidate)
    queue.sort(key=lambda candidate: (candidate.joined_at, candidate.id))
    return queue + pool


def _group_by_role(
    candidates: Sequence[Candidate],
    role_names: Iterable[str],
    party_size: int = 1,
) -> dict[str, list[_Unit]]:
    """Bucket seatable units per role, each bucket in canonical order.

    With ``party_size`` above one only candidates sharing a ``party_key`` are
    seatable. Each party is cut into consecutive groups of exactly
    ``party_size`` members, scored by their mean, and leftovers wait.
    """
    groups: dict[str, list[_Unit]] = {name: [] for name in role_names}
    if party_size <= 1:
        for position, candidate in enumerate(candidates):
            if candidate.role in groups:
                groups[candidate.role].append(_Unit(members=(candidate,), score=candidate.score, position=position))
        return groups

    parties: dict[tuple[str, str], list[tuple[int, Candidate]]] = {}
    for position, candidate in enumerate(candidates):
        if candidate.role in groups and candidate.party_key:
            parties.setdefault((candidate.role, candidate.party_key), []).append((position, candidate))
    for (role, _party_key), entries in parties.items():
        for start in range(0, len(entries) - party_size + 1, party_size):
            chunk = entries[start : start + party_size]
            members = tuple(candidate for _, candidate in chunk)
            unit = _Unit(
                members=members,
                score=sum(member.score for member in members) / len(members),
                position=chunk[0][0],
            )
            if len(set(unit.hero_keys)) != unit.size or len(set(unit.owner_ids)) != len(unit.owner_ids):
                continue
            groups[role].append(unit)
    for bucket in groups.values():
        bucket.sort(key=lambda unit: unit.position)
    return groups


def _fill_from_seed(
    seed: _Unit,
    *,
    open_seats: dict[str, int],
    groups: dict[str, list[_Unit]],
    window: float,
) -> _Attempt:
    accepted: dict[str, list[Candidate]] = {role: [] for role in open_seats}
    accepted[seed.role].extend(seed.members)
    used_heroes = set(seed.hero_keys)
    used_owners = set(seed.owner_ids)
    anchor = seed.score
    for role, seats in open_seats.items():
        bucket = accepted[role]
        for unit in groups.get(role, []):
            if len(bucket) >= seats:
                break
            if unit is seed or len(bucket) + unit.size > seats:
                continue
            if used_heroes.intersection(unit.hero_keys) or used_owners.intersection(unit.owner_ids):
                continue
            if abs(unit.score - anchor) > window:
                continue
            bucket.extend(unit.members)
            used_heroes.update(unit.hero_keys)
            used_owners.update(unit.owner_ids)
    return _Attempt(accepted=accepted, anchor=anchor)


def _is_complete(attempt: _Attempt, open_seats: dict[str, int]) -> bool:
    return all(len(attempt.accepted.get(role, [])) == seats for role, seats in open_seats.items())


def _try_window(
    *,
    open_seats: dict[str, int],
    groups: dict[str, list[_Unit]],
    window: float,
) -> tuple[bool, _Attempt]:
    """Try each seed of the first open role in canonical order; return the first full room.

    On failure the most-filled attempt is returned, earliest seed winning ties.
    """
    best = _empty_attempt(open_seats)
    first_role = next(iter(open_seats), None)
    if first_role is None:
        return False, best
    seen_seeds: set[tuple[str, ...]] = set()
    for seed in groups.get(first_role, []):
        if seed.size > open_seats[first_role] or seed.hero_keys in seen_seeds:
            continue
        seen_seeds.add(seed.hero_keys)
        attempt = _fill_from_seed(seed, open_seats=open_seats, groups=groups, window=window)
        if _is_complete(attempt, open_seats):
            return True, attempt
        if attempt.filled() > best.filled():
            best = attempt
    return False, best


def _assignments(
    attempt: _Attempt,
    *,
    open_seats: dict[str, int],
    occupancy: dict[str, int],
) -> tuple[RoleAssignment, ...]:
    out = []
    for role, seats in open_seats.items():
        members = tuple(attempt.accepted.get(role, []))
        start = occupancy.get(role, 0)
        out.append(
            RoleAssignment(
                role=role,
                slots=seats,
                members=members,
                role_slots=tuple(range(start, start + len(members))),
            )
        )
    return tuple(out)


def _shortfalls(attempt: _Attempt, open_seats: dict[str, int]) -> tuple[tuple[str, int], ...]:
    return tuple(
        (role, seats - len(attempt.accepted.get(role, [])))
        for role, seats in open_seats.items()
        if len(attempt.accepted.get(role, [])) < seats
    )


def _match_room(
    *,
    open_seats: dict[str, int],
    groups: dict[str, list[_Unit]],
    windows: Sequence[float],
    occupancy: dict[str, int],
    report_window: float | None,
) -> Room:
    last_attempt = _empty_attempt(open_seats)
    for window in windows:
        ok, attempt = _try_window(open_seats=open_seats, groups=groups, window=window)
        if ok:
            return Room(
                assignments=_assignments(attempt, open_seats=open_seats, occupancy=occupancy),
                ready=True,
                max_window=window if report_window is None else report_window,
                anchor_score=attempt.anchor,
            )
        last_attempt = attempt

    widest = windows[-1] if report_window is None else report_window
    ok, unbounded = _try_window(open_seats=open_seats, groups=groups, window=math.inf)
    if not ok or math.isinf(windows[-1]):
        shortfalls = _shortfalls(unbounded, open_seats)
        first_role, first_missing = shortfalls[0] if shortfalls else (None, None)
        error = MatchError(
            code=ERROR_ROLE_SHORTFALL,
            role=first_role,
            missing=first_missing,
            shortfalls=shortfalls,
        )
    else:
        gaps = _shortfalls(last_attempt, open_seats)
        first_role, first_missing = gaps[0] if gaps else (None, None)
        error = MatchError(code=ERROR_SCORE_GAP, role=first_role, missing=first_missing, shortfalls=gaps)
    return Room(
        assignments=_assignments(last_attempt, open_seats=open_seats, occupancy=occupancy),
        ready=False,
        max_window=widest,
        anchor_score=last_attempt.anchor,
        error=error,
    )


def match_participants(
    *,
    roles: Iterable[Any],
    queue: Iterable[Candidate | dict[str, Any]],
    score_windows: Iterable[float] | None = None,
    mode: str = "rank",
    role_occupancy: dict[str, int] | None = None,
    max_rooms: int | None = None,
    party_size: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> MatchResult:
    """Form as many complete rooms as the candidates allow, first room primary.

    ``role_occupancy`` carries live per-role counts for replacement matches; it
    shrinks each role's open seats and limits the call to a single room.
    ``party_size`` defaults to the size implied by ``mode`` (``rank_duo`` seats
    pairs). ``metadata`` is copied into the result and must itself be
    deterministic.
    """
    requirements = _normalize_roles(roles)
    total_slots = sum(role.slot_count for role in requirements)
    resolved_mode, mode_party_size = resolve_match_mode(mode)
    party = mode_party_size if party_size is None else max(1, int(party_size))

    if resolved_mode == "casual":
        windows: tuple[float, ...] = (math.inf,)
        report_window: float | None = 0.0
    else:
        windows = normalize_score_windows(score_windows) if score_windows is not None else ()
        windows = windows or DEFAULT_SCORE_WINDOWS
        report_window = None

    ordered = canonical_order(queue)
    role_names = [role.name for role in requirements]
    groups = _group_by_role(ordered, role_names, party)

    meta: dict[str, Any] = dict(metadata or {})
    meta.update(
        {
            "mode": resolved_mode,
            "party_size": party,
            "score_windows": [] if report_window is not None else [_plain_number(window) for window in windows],
            "candidate_count": len(ordered),
            "eligible_count": sum(unit.size for group in groups.values() for unit in group),
            "queue_count": sum(1 for candidate in ordered if candidate.source == "queue"),
            "pool_count": sum(1 for candidate in ordered if candidate.source == "pool"),
        }
    )

    def _failed(code: str) -> MatchResult:
        meta["room_count"] = 0
        return MatchResult(
            ready=False,
            assignments=(),
            rooms=(),
            max_window=windows[-1] if report_window is None else report_window,
            total_slots=total_slots,
            error=MatchError(code=code),
            metadata=meta,
        )

    if total_slots <= 0:
        return _failed(ERROR_NO_ACTIVE_SLOTS)

    occupancy = {str(role): max(0, int(count)) for role, count in (role_occupancy or {}).items()}
    open_seats = {
        role.name: max(0, role.slot_count - occupancy.get(role.name, 0))
        for role in requirements
    }
    open_seats = {role: seats for role, seats in open_seats.items() if seats > 0}
    if not open_seats:
        return _failed(ERROR_NO_OPEN_SLOTS)

    if role_occupancy:
        room_limit: int | None = 1
    else:
        room_limit = None if max_rooms is None else max(1, int(max_rooms))

    def _next_room() -> Room:
        return _match_room(
            open_seats=open_seats,
            groups=groups,
            windows=windows,
            occupancy=occupancy,
            report_window=report_window,
        )

    primary = _next_room()
    rooms: list[Room] = []
    room = primary
    while room.ready:
        rooms.append(room)
        if room_limit is not None and len(rooms) >= room_limit:
            break
        placed_heroes = {member.hero_key for member in room.members}
        placed_owners = {member.owner_id for member in room.members if member.owner_id}
        groups = {
            role: [
                unit
                for unit in bucket
                if not placed_heroes.intersection(unit.hero_keys) and not placed_owners.intersection(unit.owner_ids)
            ]
            for role, bucket in groups.items()
        }
        room = _next_room()

    meta["room_count"] = len(rooms)
    return MatchResult(
        ready=primary.ready,
        assignments=primary.assignments,
        rooms=tuple(rooms),
        max_window=primary.max_window,
        total_slots=total_slots,
        error=primary.error,
        metadata=meta,
    )
