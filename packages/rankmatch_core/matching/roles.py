"""Resolve heterogeneous role/slot configuration into ordered role requirements."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence


MISSING_ROLE_CONFIGURATION = "missing_role_configuration"


@dataclass(frozen=True)
class RoleRequirement:
    name: str
    slot_count: int

    def as_dict(self) -> dict[str, Any]:
        return {"name": self.name, "slot_count": self.slot_count}


@dataclass(frozen=True)
class SlotLayoutEntry:
    slot_index: int
    role: str
    hero_id: str | None = None
    hero_owner_id: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "slot_index": self.slot_index,
            "role": self.role,
            "hero_id": self.hero_id,
            "hero_owner_id": self.hero_owner_id,
        }


@dataclass(frozen=True)
class RoleResolution:
    roles: tuple[RoleRequirement, ...] = ()
    slot_layout: tuple[SlotLayoutEntry, ...] | None = None
    error: str | None = None
    source: str = "none"
    rejected: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def total_slots(self) -> int:
        return sum(role.slot_count for role in self.roles)

    def as_dict(self) -> dict[str, Any]:
        return {
            "roles": [role.as_dict() for role in self.roles],
            "slot_layout": None if self.slot_layout is None else [entry.as_dict() for entry in self.slot_layout],
            "error": self.error,
            "source": self.source,
            "rejected": self.rejected,
        }


def clean_role_name(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()


def _as_int(value: Any, default: int | None = None) -> int | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _row_active(row: dict[str, Any]) -> bool:
    return row.get("active", True) is not False


def inline_list_is_slot_layout(names: Sequence[str]) -> bool:
    """Decide whether an inline role list describes seats or a role catalogue.

    A list with a repeated name can only be a seat layout. A list of distinct
    names is read as a catalogue, which means a one-seat-per-role layout and a
    catalogue are indistinguishable here.
    """
    seen: set[str] = set()
    for name in names:
        if name in seen:
            return True
        seen.add(name)
    return False


def merge_role_requirements(pairs: Iterable[tuple[str, int]]) -> tuple[RoleRequirement, ...]:
    """Merge ``(name, count)`` pairs, summing duplicates in first-appearance order."""
    counts: dict[str, int] = {}
    for name, count in pairs:
        if not name or count < 1:
            continue
        counts[name] = counts.get(name, 0) + count
    return tuple(RoleRequirement(name=name, slot_count=count) for name, count in counts.items())


def _roles_from_layout(layout: Sequence[SlotLayoutEntry]) -> tuple[RoleRequirement, ...]:
    return merge_role_requirements((entry.role, 1) for entry in layout)


def _slot_layout_from_rows(slot_rows: Iterable[dict[str, Any]]) -> tuple[tuple[SlotLayoutEntry, ...], int]:
    entries: list[SlotLayoutEntry] = []
    rejected = 0
    for position, row in enumerate(slot_rows or []):
        if not isinstance(row, dict) or not _row_active(row):
            continue
        role = clean_role_name(row.get("role"))
        slot_index = _as_int(row.get("slot_index", row.get("slot_no")), position)
        if not role or slot_index is None or slot_index < 0:
            rejected += 1
            continue
        hero_id = clean_role_name(row.get("hero_id")) or None
        owner_id = clean_role_name(row.get("hero_owner_id")) or None
        entries.append(SlotLayoutEntry(slot_index=slot_index, role=role, hero_id=hero_id, hero_owner_id=owner_id))
    entries.sort(key=lambda entry: entry.slot_index)
    return tuple(entries), rejected


def _role_row_counts(role_rows: Iterable[dict[str, Any]]) -> tuple[list[tuple[str, int]], int]:
    pairs: list[tuple[str, int]] = []
    rejected = 0
    for row in role_rows or []:
        if not isinstance(row, dict) or not _row_active(row):
            continue
        name = clean_role_name(row.get("name", row.get("role")))
        count = _as_int(row.get("slot_count", row.get("slotCount")), 0) or 0
        if not name:
            rejected += 1
            continue
        if count < 1:
            continue
        pairs.append((name, count))
    return pairs, rejected


def build_role_capacity_map(
    roles: Iterable[RoleRequirement],
    slot_layout: Iterable[SlotLayoutEntry] | None = None,
) -> dict[str, int]:
    if slot_layout is not None:
        return {role.name: role.slot_count for role in _roles_from_layout(list(slot_layout))}
    return {role.name: role.slot_count for role in merge_role_requirements((r.name, r.slot_count) for r in roles)}


def resolve_role_requirements(
    role_rows: Iterable[dict[str, Any]] | None = None,
    slot_rows: Iterable[dict[str, Any]] | None = None,
    inline_roles: Iterable[Any] | None = None,
    *,
    layout_detector: Callable[[Sequence[str]], bool] = inline_list_is_slot_layout,
) -> RoleResolution:
    layout, rejected = _slot_layout_from_rows(slot_rows or [])
    if layout:
        return RoleResolution(
            roles=_roles_from_layout(layout),
            slot_layout=layout,
            source="slot_rows",
            rejected=rejected,
        )

    role_pairs, role_rejected = _role_row_counts(role_rows or [])
    rejected += role_rejected

    inline_raw = list(inline_roles or [])
    inline_names = [clean_role_name(value) for value in inline_raw]
    rejected += sum(1 for name in inline_names if not name)

    if any(inline_names):
        if layout_detector([name for name in inline_names if name]):
            # Seat positions keep the list index, so rejected blanks leave gaps.
            entries = tuple(
                SlotLayoutEntry(slot_index=index, role=name)
                for index, name in enumerate(inline_names)
                if name
            )
            return RoleResolution(
                roles=_roles_from_layout(entries),
                slot_layout=entries,
                source="inline_layout",
                rejected=rejected,
            )
        capacities = {role.name: role.slot_count for role in merge_role_requirements(role_pairs)}
        roles = merge_role_requirements((name, capacities.get(name, 1)) for name in inline_names if name)
        return RoleResolution(roles=roles, slot_layout=None, source="catalogue", rejected=rejected)

    roles = merge_role_requirements(role_pairs)
    if roles:
        return RoleResolution(roles=roles, slot_layout=None, source="role_rows", rejected=rejected)

    return RoleResolution(error=MISSING_ROLE_CONFIGURATION, rejected=rejected)
