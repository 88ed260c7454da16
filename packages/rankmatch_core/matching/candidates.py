"""Candidate model and normalisation for queue and fallback-pool rows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import math
from typing import Any, Iterable


FALLBACK_SCORE = 1000
CANDIDATE_SOURCES = {"queue", "pool"}

_SCORE_KEYS = ("score", "rating", "mmr")
_JOINED_KEYS = ("joined_at", "queue_joined_at", "queued_at", "created_at", "updated_at")
_PARTY_KEYS = ("party_key", "party_id", "partyKey", "partyId", "duo_party_id")


class CandidateValidationError(ValueError):
    def __init__(self, message: str, *, error_code: str, row_index: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.row_index = row_index


@dataclass(frozen=True)
class Candidate:
    id: str
    owner_id: str
    hero_id: str
    role: str
    score: float
    joined_at: float = math.inf
    source: str = "queue"
    party_key: str | None = None

    @property
    def hero_key(self) -> str:
        return self.hero_id or self.id

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "hero_id": self.hero_id,
            "role": self.role,
            "score": self.score,
            "joined_at": None if math.isinf(self.joined_at) else self.joined_at,
            "source": self.source,
            "party_key": self.party_key,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Candidate":
        return normalize_candidate(payload)


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first_present(row: dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_score(raw: Any, *, row_index: int | None = None) -> float:
    """Score as a finite float; missing scores fall back to ``FALLBACK_SCORE``.

    A value that is present but not a real number is malformed input and is
    rejected rather than silently defaulted.
    """
    if raw is None or raw == "":
        return float(FALLBACK_SCORE)
    if isinstance(raw, bool):
        raise CandidateValidationError(
            f"Score must be numeric, got boolean {raw!r}",
            error_code="invalid_score",
            row_index=row_index,
        )
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise CandidateValidationError(
            f"Score must be numeric, got {raw!r}",
            error_code="invalid_score",
            row_index=row_index,
        ) from exc
    if not math.isfinite(value):
        raise CandidateValidationError(
            f"Score must be finite, got {raw!r}",
            error_code="invalid_score",
            row_index=row_index,
        )
    return value


def parse_timestamp(raw: Any) -> float:
    if raw is None or raw == "" or isinstance(raw, bool):
        return math.inf
    if isinstance(raw, datetime):
        return raw.timestamp()
    if isinstance(raw, (int, float)):
        value = float(raw)
        # millisecond epochs
        if value > 1e11:
            value = value / 1000.0
        return value if math.isfinite(value) else math.inf
    text = str(raw).strip()
    if not text:
        return math.inf
    try:
        return parse_timestamp(float(text))
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return math.inf


def normalize_candidate(
    row: dict[str, Any] | Candidate,
    *,
    source: str | None = None,
    row_index: int | None = None,
) -> Candidate:
    if isinstance(row, Candidate):
        return row
    if not isinstance(row, dict):
        raise CandidateValidationError(
            f"Candidate row must be a mapping, got {type(row).__name__}",
            error_code="invalid_row",
            row_index=row_index,
        )
    owner_id = _clean_text(_first_present(row, ("owner_id", "ownerId")))
    hero_id = _clean_text(_first_present(row, ("hero_id", "heroId")))
    role = _clean_text(_first_present(row, ("role", "role_name")))
    score = parse_score(_first_present(row, _SCORE_KEYS), row_index=row_index)
    joined_at = parse_timestamp(_first_present(row, _JOINED_KEYS))
    party_key = _clean_text(_first_present(row, _PARTY_KEYS)) or None

    candidate_id = _clean_text(_first_present(row, ("id", "entry_id", "participant_id")))
    if not candidate_id:
        if owner_id or hero_id:
            candidate_id = f"{owner_id or '-'}:{hero_id or '-'}:{role or '-'}"
        else:
            candidate_id = f"row-{row_index if row_index is not None else 0}"

    resolved_source = source or _clean_text(row.get("source")) or "queue"
    if resolved_source not in CANDIDATE_SOURCES:
        resolved_source = "queue"
    return Candidate(
        id=candidate_id,
        owner_id=owner_id,
        hero_id=hero_id,
        role=role,
        score=score,
        joined_at=joined_at,
        source=resolved_source,
        party_key=party_key,
    )


def normalize_candidates(rows: Iterable[dict[str, Any] | Candidate], *, source: str | None = None) -> list[Candidate]:
    return [normalize_candidate(row, source=source, row_index=index) for index, row in enumerate(rows or [])]
