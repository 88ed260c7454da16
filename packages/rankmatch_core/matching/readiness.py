"""Per-role occupancy and readiness summaries for UI display and server checks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from .roles import RoleRequirement, SlotLayoutEntry, clean_role_name


@dataclass(frozen=True)
class RoleReadiness:
    role: str
    total: int
    filled: int
    missing: int
    ready: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "total": self.total,
            "filled": self.filled,
            "missing": self.missing,
            "ready": self.ready,
        }


@dataclass(frozen=True)
class ReadinessSummary:
    ready: bool
    roles: tuple[RoleReadiness, ...]

    def as_dict(self) -> dict[str, Any]:
        return {"ready": self.ready, "roles": [entry.as_dict() for entry in self.roles]}


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def _member_present(member: Any) -> bool:
    if member is None:
        return False
    if isinstance(member, dict):
        return bool(member)
    return True


def _member_slot_index(member: Any) -> int | None:
    raw = _field(member, "slot_index")
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _summarize(totals: dict[str, int], filled: dict[str, int]) -> ReadinessSummary:
    entries = []
    for role, total in totals.items():
        count = min(filled.get(role, 0), total)
        missing = total - count
        entries.append(RoleReadiness(role=role, total=total, filled=count, missing=missing, ready=missing == 0))
    return ReadinessSummary(ready=bool(entries) and all(entry.ready for entry in entries), roles=tuple(entries))


def _layout_entries(slot_layout: Iterable[Any]) -> list[tuple[int, str]]:
    out = []
    for position, entry in enumerate(slot_layout or []):
        if isinstance(entry, SlotLayoutEntry):
            out.append((entry.slot_index, entry.role))
            continue
        role = clean_role_name(_field(entry, "role"))
        if not role:
            continue
        raw_index = _field(entry, "slot_index", position)
        try:
            slot_index = int(raw_index)
        except (TypeError, ValueError):
            slot_index = position
        out.append((slot_index, role))
    return out


def summarize_from_slot_layout(slot_layout: Iterable[Any], assignments: Iterable[Any]) -> ReadinessSummary:
    """Occupancy per layout seat.

    Seats are matched to members by the member's own ``slot_index`` first, then
    by the assignment's ``role_slots`` ordinals, then by member order.
    """
    layout = _layout_entries(slot_layout)
    totals: dict[str, int] = {}
    seat_ordinal: dict[int, tuple[str, int]] = {}
    for slot_index, role in layout:
        seat_ordinal[slot_index] = (role, totals.get(role, 0))
        totals[role] = totals.get(role, 0) + 1

    occupied: dict[str, set[int]] = {role: set() for role in totals}
    for assignment in assignments or []:
        role = clean_role_name(_field(assignment, "role"))
        if role not in occupied:
            continue
        members: Sequence[Any] = list(_field(assignment, "members") or [])
        role_slots = list(_field(assignment, "role_slots") or [])
        for position, member in enumerate(members):
            if not _member_present(member):
                continue
            explicit = _member_slot_index(member)
            if explicit is not None and explicit in seat_ordinal and seat_ordinal[explicit][0] == role:
                ordinal = seat_ordinal[explicit][1]
            elif position < len(role_slots):
                try:
                    ordinal = int(role_slots[position])
                except (TypeError, ValueError):
                    ordinal = position
            else:
                ordinal = position
            if 0 <= ordinal < totals[role]:
                occupied[role].add(ordinal)

    return _summarize(totals, {role: len(seats) for role, seats in occupied.items()})


def summarize_from_role_counts(roles: Iterable[Any], assignments: Iterable[Any]) -> ReadinessSummary:
    totals: dict[str, int] = {}
    for role in roles or []:
        if isinstance(role, RoleRequirement):
            name, count = role.name, role.slot_count
        else:
            name = clean_role_name(_field(role, "name", _field(role, "role")))
            try:
                count = int(_field(role, "slot_count", _field(role, "slots", 0)) or 0)
            except (TypeError, ValueError):
                count = 0
        if not name:
            continue
        totals[name] = totals.get(name, 0) + max(0, count)

    filled: dict[str, int] = {}
    for assignment in assignments or []:
        role = clean_role_name(_field(assignment, "role"))
        if role not in totals:
            continue
        members = _field(assignment, "members") or []
        filled[role] = filled.get(role, 0) + sum(1 for member in members if _member_present(member))

    return _summarize(totals, filled)


def summarize_readiness(
    *,
    slot_layout: Iterable[Any] | None = None,
    roles: Iterable[Any] | None = None,
    assignments: Iterable[Any] = (),
) -> ReadinessSummary:
    if slot_layout:
        return summarize_from_slot_layout(slot_layout, assignments)
    return summarize_from_role_counts(roles or [], assignments)
