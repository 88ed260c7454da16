"""Mid-session substitution: pick a replacement and track per-role arrivals."""

from __future__ import annotations

from dataclasses import dataclass, field
import random
from typing import Any, Iterable

from ..matching.candidates import Candidate, normalize_candidate


DEFAULT_ROLE = "unassigned"


def pick_substitute(
    *,
    pool: Iterable[Candidate | dict[str, Any]],
    used_hero_ids: Iterable[str],
    rng: random.Random | None = None,
) -> Candidate | None:
    """Uniformly pick a candidate whose hero is not already seated; ``None`` when none is left."""
    used = {str(hero_id) for hero_id in used_hero_ids if hero_id}
    eligible = []
    for index, row in enumerate(pool or []):
        candidate = normalize_candidate(row, source="pool", row_index=index)
        if candidate.hero_key in used:
            continue
        eligible.append(candidate)
    if not eligible:
        return None
    return (rng or random.Random()).choice(eligible)


def _departure_cause(status: str) -> str:
    if status == "defeated":
        return "role_defeated"
    if status == "spectating":
        return "role_spectating"
    if status == "proxy":
        return "async_proxy_rotation"
    if status == "pending":
        return "async_pending"
    return "async_rotation"


@dataclass(frozen=True)
class SeatInfo:
    key: str
    owner_id: str | None
    role: str
    hero_name: str
    status: str
    slot_index: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "owner_id": self.owner_id,
            "role": self.role,
            "hero_name": self.hero_name,
            "status": self.status,
            "slot_index": self.slot_index,
        }


@dataclass
class RoleDropInStats:
    role: str
    total_arrivals: int = 0
    replacements: int = 0
    active: SeatInfo | None = None
    last_arrival_turn: int | None = None
    last_departure_turn: int | None = None
    last_departure_cause: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "active_owner_id": self.active.owner_id if self.active else None,
            "active_hero_name": self.active.hero_name if self.active else None,
            "active_slot_index": self.active.slot_index if self.active else None,
            "replacements": self.replacements,
            "total_arrivals": self.total_arrivals,
            "last_arrival_turn": self.last_arrival_turn,
            "last_departure_turn": self.last_departure_turn,
            "last_departure_cause": self.last_departure_cause,
        }


@dataclass(frozen=True)
class DropInSync:
    arrivals: tuple[dict[str, Any], ...] = ()
    departures: tuple[dict[str, Any], ...] = ()
    snapshot: dict[str, Any] = field(default_factory=dict)


def _seat_info(participant: dict[str, Any], index: int, mode: str) -> SeatInfo:
    role = str(participant.get("role") or "").strip() or DEFAULT_ROLE
    key_source = participant.get("id") or participant.get("hero_id")
    key = str(key_source) if key_source else f"{role}:{index}"
    owner = str(participant.get("owner_id") or "").strip() or None
    hero_name = str(participant.get("hero_name") or participant.get("name") or "")
    default_status = "active" if mode == "realtime" else "proxy"
    status = str(participant.get("status") or "").strip().lower() or default_status
    return SeatInfo(key=key, owner_id=owner, role=role, hero_name=hero_name, status=status, slot_index=index)


class DropInQueueTracker:
    """Diffs successive participant rosters into per-role arrivals and departures.

    The first sync only primes the tracker and reports nothing.
    """

    def __init__(self) -> None:
        self._initialized = False
        self._seats: dict[str, SeatInfo] = {}
        self._roles: dict[str, RoleDropInStats] = {}

    def _stats(self, role: str) -> RoleDropInStats:
        if role not in self._roles:
            self._roles[role] = RoleDropInStats(role=role)
        return self._roles[role]

    def snapshot(self, *, turn: int | None = None) -> dict[str, Any]:
        roles = sorted(self._roles.values(), key=lambda stats: stats.role)
        return {"turn": turn, "roles": [stats.as_dict() for stats in roles]}

    def sync(self, participants: Iterable[dict[str, Any]], *, turn_number: int = 0, mode: str = "async") -> DropInSync:
        turn = int(turn_number or 0)
        current: dict[str, SeatInfo] = {}
        arrivals: list[dict[str, Any]] = []
        departures: list[dict[str, Any]] = []
        handled: set[str] = set()

        for index, participant in enumerate(participants or []):
            if not isinstance(participant, dict):
                continue
            info = _seat_info(participant, index, mode)
            current[info.key] = info
            stats = self._stats(info.role)
            if info.key in self._seats:
                stats.active = info
                handled.add(info.key)
                continue

            replaced = stats.active if stats.active and stats.active.key != info.key else None
            if replaced is not None:
                handled.add(replaced.key)
                cause = _departure_cause(replaced.status)
                departures.append({**replaced.as_dict(), "turn": turn, "cause": cause})
                stats.replacements += 1
                stats.last_departure_turn = turn
                stats.last_departure_cause = cause
            stats.total_arrivals += 1
            stats.active = info
            stats.last_arrival_turn = turn
            arrivals.append(
                {
                    **info.as_dict(),
                    "turn": turn,
                    "replaced": None if replaced is None else replaced.as_dict(),
                    "arrival_order": stats.total_arrivals,
                    "replacements": stats.replacements,
                }
            )

        for key, info in self._seats.items():
            if key in current or key in handled:
                continue
            stats = self._stats(info.role)
            if stats.active is not None and stats.active.key == key:
                stats.active = None
            cause = _departure_cause(info.status)
            stats.last_departure_turn = turn
            stats.last_departure_cause = cause
            departures.append({**info.as_dict(), "turn": turn, "cause": cause})

        self._seats = current
        snapshot = self.snapshot(turn=turn)
        if not self._initialized:
            self._initialized = True
            return DropInSync(snapshot=snapshot)
        return DropInSync(arrivals=tuple(arrivals), departures=tuple(departures), snapshot=snapshot)
