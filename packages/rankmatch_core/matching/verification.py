"""Structural comparison of a client-computed match against the server's recomputation."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from .engine import MatchResult


REASON_VERIFIED = "verified"
REASON_SERVER_NOT_READY = "server_not_ready"
REASON_CLIENT_NOT_READY = "client_not_ready"
REASON_ASSIGNMENT_MISMATCH = "assignment_mismatch"
REASON_INVALID_CLIENT_RESULT = "invalid_client_result"


@dataclass(frozen=True)
class VerificationOutcome:
    verified: bool
    reason: str
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"verified": self.verified, "reason": self.reason, "details": dict(self.details)}


def _member_key(member: Any) -> str:
    if isinstance(member, dict):
        hero = str(member.get("hero_id") or member.get("heroId") or "").strip()
        return hero or str(member.get("id") or "").strip()
    return str(getattr(member, "hero_key", "") or "")


def assignment_signature(result: MatchResult | dict[str, Any]) -> dict[str, list[str]]:
    """Role to sorted hero keys; member order within a role is not significant."""
    if isinstance(result, MatchResult):
        assignments: list[Any] = list(result.assignments)
    else:
        assignments = [item for item in (result.get("assignments") or []) if isinstance(item, dict)]

    grouped: dict[str, Counter] = {}
    for assignment in assignments:
        if isinstance(assignment, dict):
            role = str(assignment.get("role") or "").strip()
            members = assignment.get("members") or []
        else:
            role = assignment.role
            members = assignment.members
        keys = [_member_key(member) for member in members if member]
        grouped.setdefault(role, Counter()).update(key for key in keys if key)
    return {role: sorted(counter.elements()) for role, counter in sorted(grouped.items())}


def _is_ready(result: MatchResult | dict[str, Any]) -> bool:
    if isinstance(result, MatchResult):
        return result.ready
    return result.get("ready") is True


def compare_match_results(
    server_result: MatchResult | dict[str, Any],
    client_result: MatchResult | dict[str, Any] | None,
) -> VerificationOutcome:
    if not isinstance(client_result, (MatchResult, dict)):
        return VerificationOutcome(verified=False, reason=REASON_INVALID_CLIENT_RESULT)
    if not _is_ready(server_result):
        error = server_result.error.code if isinstance(server_result, MatchResult) and server_result.error else None
        return VerificationOutcome(verified=False, reason=REASON_SERVER_NOT_READY, details={"server_error": error})
    if not _is_ready(client_result):
        return VerificationOutcome(verified=False, reason=REASON_CLIENT_NOT_READY)

    server_sig = assignment_signature(server_result)
    client_sig = assignment_signature(client_result)
    if server_sig != client_sig:
        differing = sorted(
            role for role in set(server_sig) | set(client_sig) if server_sig.get(role) != client_sig.get(role)
        )
        return VerificationOutcome(
            verified=False,
            reason=REASON_ASSIGNMENT_MISMATCH,
            details={"roles": differing},
        )
    return VerificationOutcome(verified=True, reason=REASON_VERIFIED)
