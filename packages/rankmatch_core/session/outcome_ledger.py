"""Per-participant win/loss tracking parsed from narrated turn result lines."""

from __future__ import annotations

from dataclasses import dataclass, field
import re
import unicodedata
from typing import Any, Iterable

from .scoring import compute_session_score


RESULT_TOKENS: dict[str, tuple[str, ...]] = {
    "draw": ("무승부", "무", "draw", "stalemate"),
    "won": ("승리", "승", "victory", "win", "triumph"),
    "lost": ("패배", "패", "defeat", "lose", "loss"),
    "eliminated": ("탈락", "퇴장", "추방", "out", "eliminate", "banished", "퇴출"),
}
META_TOKENS = ("선언", "판정", "결과", "보고", "공지")
STATUS_ALIASES = {"win": "won", "lose": "lost", "out": "eliminated"}

_LABEL_RE = re.compile(r"^(?:결과|Result)\s*[:：-]?", re.IGNORECASE)
_SEGMENT_RE = re.compile(r"[\\/|·]+|,|\s{2,}")
_COLON_RE = re.compile(r"^(.*?)\s*[:：-]\s*(.+)$")
_RESULT_WORD_RE = re.compile(
    r"(승리|승|victory|win|triumph|패배|패|defeat|lose|loss|탈락|퇴장|추방|out|eliminate|banished|퇴출)",
    re.IGNORECASE,
)


def normalize_key(value: Any) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", "", unicodedata.normalize("NFC", str(value))).lower()


def pick_result_token(text: str) -> str | None:
    if not text:
        return None
    lowered = text.lower()
    for status, tokens in RESULT_TOKENS.items():
        if any(token.lower() in lowered for token in tokens):
            return status
    return None


@dataclass(frozen=True)
class ResultAssignment:
    hero_name: str
    status: str


def parse_result_line(line: str | None, fallback_actors: Iterable[str] = ()) -> list[ResultAssignment]:
    """Split a narrated result line into ``(hero, status)`` pairs.

    Accepts forms like ``"결과: 아리 승리 / 베인 패배"`` or ``"Result - Ari win, Vayne out"``.
    Draws produce no assignment. With exactly one fallback actor, unnamed or
    meta-only segments are attributed to that actor.
    """
    if not line or not line.strip():
        return []
    if line.strip().lower() in {"무", "none"}:
        return []
    body = _LABEL_RE.sub("", line.strip(), count=1).strip()
    segments = [segment.strip() for segment in _SEGMENT_RE.split(body) if segment and segment.strip()]
    if not segments:
        return []

    actors = [actor for actor in fallback_actors or [] if actor]
    fallback = actors[0] if len(actors) == 1 else None
    meta_keys = {normalize_key(token) for token in META_TOKENS}

    assignments: list[ResultAssignment] = []
    for segment in segments:
        working = segment
        colon = _COLON_RE.match(working)
        if colon:
            working = f"{colon.group(1).strip()} {colon.group(2).strip()}"
        status = pick_result_token(working)
        if status is None or status == "draw":
            continue
        hero_name = ""
        match = _RESULT_WORD_RE.search(working)
        if match:
            before = working[: match.start()].strip()
            after = working[match.end() :].strip()
            hero_name = before or after
        if (not hero_name or normalize_key(hero_name) in meta_keys) and fallback:
            hero_name = fallback
        if not hero_name:
            continue
        assignments.append(ResultAssignment(hero_name=hero_name, status=status))

    if not assignments and fallback:
        inferred = pick_result_token(line)
        if inferred and inferred != "draw":
            assignments.append(ResultAssignment(hero_name=fallback, status=inferred))
    return assignments


@dataclass
class OutcomeLedgerEntry:
    key: str
    hero_id: str | None
    hero_name: str
    owner_id: str | None
    role: str | None
    slot_index: int | None = None
    wins: int = 0
    losses: int = 0
    eliminated: bool = False
    result: str = "pending"
    score_delta: int = 0
    history: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "hero_id": self.hero_id,
            "hero_name": self.hero_name,
            "owner_id": self.owner_id,
            "role": self.role,
            "slot_index": self.slot_index,
            "wins": self.wins,
            "losses": self.losses,
            "eliminated": self.eliminated,
            "result": self.result,
            "score_delta": self.score_delta,
            "history": [dict(item) for item in self.history[-10:]],
        }


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def entry_from_participant(participant: dict[str, Any], index: int = 0) -> OutcomeLedgerEntry:
    raw_slot = participant.get("slot_index", participant.get("slot_no"))
    try:
        slot_index = int(raw_slot) if raw_slot is not None and not isinstance(raw_slot, bool) else None
    except (TypeError, ValueError):
        slot_index = None
    hero_name = (
        _optional_text(participant.get("hero_name"))
        or _optional_text(participant.get("name"))
        or (f"슬롯 {slot_index + 1}" if slot_index is not None else f"참가자 {index + 1}")
    )
    key = (
        _optional_text(participant.get("id"))
        or _optional_text(participant.get("participant_id"))
        or _optional_text(participant.get("hero_id"))
        or (f"slot-{slot_index}" if slot_index is not None else f"participant-{index}")
    )
    return OutcomeLedgerEntry(
        key=key,
        hero_id=_optional_text(participant.get("hero_id")),
        hero_name=hero_name,
        owner_id=_optional_text(participant.get("owner_id")),
        role=_optional_text(participant.get("role")),
        slot_index=slot_index,
    )


def _apply_status(entry: OutcomeLedgerEntry, status: str, *, turn: int, result_line: str) -> bool:
    normalized = STATUS_ALIASES.get(status, status)
    if entry.history:
        last = entry.history[-1]
        if last.get("turn") == turn and last.get("status") == normalized:
            return False
    if normalized == "won":
        entry.wins += 1
        entry.result = "won"
    elif normalized == "lost":
        entry.losses += 1
        if entry.result != "won":
            entry.result = "lost"
    elif normalized == "eliminated":
        entry.losses += 1
        entry.eliminated = True
        if entry.result != "won":
            entry.result = "eliminated"
    else:
        return False
    entry.history.append({"turn": turn, "status": normalized, "result_line": result_line})
    return True


def _bucket_status(bucket: dict[str, Any]) -> str:
    if bucket["total"] == 0 or bucket["pending"] > 0:
        return "pending"
    if bucket["won"] > 0 and bucket["lost"] == 0:
        return "won"
    if bucket["won"] == 0:
        return "lost"
    return "won" if bucket["won"] >= bucket["lost"] else "lost"


class OutcomeLedger:
    """Outcome entries for one session; frozen once ``complete()`` is called."""

    def __init__(self, participants: Iterable[dict[str, Any]] = ()) -> None:
        self._entries: list[OutcomeLedgerEntry] = []
        self._completed = False
        self._completed_turn: int | None = None
        self._settled = False
        self._last_result_line = ""
        for index, participant in enumerate(participants or []):
            if isinstance(participant, dict):
                self._entries.append(entry_from_participant(participant, index))

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def entries(self) -> tuple[OutcomeLedgerEntry, ...]:
        return tuple(self._entries)

    def _find(self, *, hero_name: str | None = None, slot_index: int | None = None) -> OutcomeLedgerEntry | None:
        wanted = normalize_key(hero_name)
        if wanted:
            for entry in self._entries:
                if normalize_key(entry.hero_name) == wanted:
                    return entry
        if slot_index is not None:
            for entry in self._entries:
                if entry.slot_index == slot_index:
                    return entry
        return None

    def add_participant(self, participant: dict[str, Any]) -> OutcomeLedgerEntry | None:
        """Track a substitute that joined mid-session; ignored once completed."""
        if self._completed:
            return None
        entry = entry_from_participant(participant, len(self._entries))
        for existing in self._entries:
            if existing.key == entry.key:
                return existing
        self._entries.append(entry)
        return entry

    def record_turn(
        self,
        *,
        turn: int,
        result_line: str,
        actors: Iterable[str] = (),
        slot_index: int | None = None,
    ) -> bool:
        if self._completed or not turn:
            return False
        actor_list = [actor for actor in actors or [] if actor]
        self._last_result_line = result_line or self._last_result_line
        changed = False
        processed: set[str] = set()
        for assignment in parse_result_line(result_line, actor_list):
            entry = self._find(hero_name=assignment.hero_name, slot_index=slot_index)
            if entry is None and len(actor_list) == 1:
                entry = self._find(hero_name=actor_list[0])
            if entry is None or entry.key in processed:
                continue
            processed.add(entry.key)
            if _apply_status(entry, assignment.status, turn=int(turn), result_line=result_line or ""):
                changed = True
        return changed

    def complete(self, *, turn: int | None = None) -> None:
        if self._completed:
            return
        self._completed = True
        self._completed_turn = turn

    def role_summaries(self) -> list[dict[str, Any]]:
        buckets: dict[str, dict[str, Any]] = {}
        for entry in self._entries:
            key = normalize_key(entry.role or f"slot-{entry.slot_index}")
            bucket = buckets.setdefault(
                key,
                {"role": entry.role, "key": key, "total": 0, "pending": 0, "won": 0, "lost": 0, "eliminated": 0},
            )
            bucket["total"] += 1
            if entry.result == "won":
                bucket["won"] += 1
            elif entry.result == "lost":
                bucket["lost"] += 1
            elif entry.result == "eliminated":
                bucket["eliminated"] += 1
                bucket["lost"] += 1
            else:
                bucket["pending"] += 1
        out = []
        for bucket in buckets.values():
            bucket["status"] = _bucket_status(bucket)
            out.append(bucket)
        return out

    def overall_result(self) -> str:
        if not self._completed:
            return "pending"
        statuses = [bucket["status"] for bucket in self.role_summaries()]
        wins = statuses.count("won")
        losses = statuses.count("lost")
        if wins > 0 and losses == 0:
            return "won"
        if losses > 0 and wins == 0:
            return "lost"
        if wins == losses:
            return "draw"
        return "won" if wins > losses else "lost"

    def settle(self, role_bounds: dict[str, dict[str, Any]] | None = None, **score_kwargs: Any) -> list[OutcomeLedgerEntry]:
        """Complete the ledger and fill each entry's ``score_delta`` exactly once."""
        self.complete(turn=self._completed_turn)
        if self._settled:
            return list(self._entries)
        bounds = role_bounds or {}
        for entry in self._entries:
            role_bound = bounds.get(entry.role or "", {}) or {}
            entry.score_delta = compute_session_score(
                wins=entry.wins,
                losses=entry.losses,
                score_delta_max=role_bound.get("score_delta_max"),
                score_delta_min=role_bound.get("score_delta_min"),
                **score_kwargs,
            )
        self._settled = True
        return list(self._entries)

    def snapshot(self) -> dict[str, Any]:
        return {
            "entries": [entry.as_dict() for entry in self._entries],
            "role_summaries": self.role_summaries(),
            "completed": self._completed,
            "completed_turn": self._completed_turn,
            "settled": self._settled,
            "last_result_line": self._last_result_line,
            "overall_result": self.overall_result(),
        }
