"""Role resolution, candidate pooling, and deterministic room matching."""

from .candidates import Candidate, CandidateValidationError, normalize_candidate, normalize_candidates
from .engine import MatchError, MatchResult, RoleAssignment, Room, canonical_order, match_participants, resolve_match_mode
from .pool import CandidatePoolSnapshot, assemble_candidate_pool
from .readiness import (
    ReadinessSummary,
    RoleReadiness,
    summarize_from_role_counts,
    summarize_from_slot_layout,
    summarize_readiness,
)
from .roles import (
    RoleRequirement,
    RoleResolution,
    SlotLayoutEntry,
    build_role_capacity_map,
    inline_list_is_slot_layout,
    resolve_role_requirements,
)
from .rules import MatchingToggles, extract_matching_toggles, resolve_pool_limits, resolve_score_windows
from .verification import VerificationOutcome, assignment_signature, compare_match_results

__all__ = [
    "Candidate",
    "CandidateValidationError",
    "normalize_candidate",
    "normalize_candidates",
    "MatchError",
    "MatchResult",
    "RoleAssignment",
    "Room",
    "canonical_order",
    "match_participants",
    "resolve_match_mode",
    "CandidatePoolSnapshot",
    "assemble_candidate_pool",
    "ReadinessSummary",
    "RoleReadiness",
    "summarize_from_role_counts",
    "summarize_from_slot_layout",
    "summarize_readiness",
    "RoleRequirement",
    "RoleResolution",
    "SlotLayoutEntry",
    "build_role_capacity_map",
    "inline_list_is_slot_layout",
    "resolve_role_requirements",
    "MatchingToggles",
    "extract_matching_toggles",
    "resolve_pool_limits",
    "resolve_score_windows",
    "VerificationOutcome",
    "assignment_signature",
    "compare_match_results",
]
