"""Session-keyed arena of per-session timer and ledger records."""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import Any, Iterable

from .drop_in import DropInQueueTracker
from .outcome_ledger import OutcomeLedger
from .turn_timer import TurnTimerService


@dataclass
class SessionRecord:
    session_id: str
    room_id: str | None
    timer: TurnTimerService
    ledger: OutcomeLedger
    tracker: DropInQueueTracker = field(default_factory=DropInQueueTracker)
    roster: list[dict[str, Any]] = field(default_factory=list)
    drop_ins: list[dict[str, Any]] = field(default_factory=list)
    turn_number: int = 0

    @property
    def used_hero_ids(self) -> set[str]:
        return {entry.hero_id for entry in self.ledger.entries if entry.hero_id}

    @property
    def owner_ids(self) -> set[str]:
        return {str(item.get("owner_id")) for item in self.roster if item.get("owner_id")}

    def snapshot(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "room_id": self.room_id,
            "turn_number": self.turn_number,
            "timer": self.timer.snapshot(),
            "ledger": self.ledger.snapshot(),
            "drop_ins": [dict(item) for item in self.drop_ins],
            "drop_in_roles": self.tracker.snapshot(turn=self.turn_number)["roles"],
        }


class SessionRegistry:
    """Owns one record per session id.

    Creation and lookup are locked; advancing a given session is serialized by
    its caller.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, SessionRecord] = {}

    def create(
        self,
        *,
        session_id: str,
        room_id: str | None,
        participants: Iterable[dict[str, Any]],
        base_seconds: int,
        mode: str = "async",
    ) -> SessionRecord:
        roster = [dict(participant) for participant in participants or []]
        with self._lock:
            existing = self._records.get(session_id)
            if existing is not None:
                return existing
            record = SessionRecord(
                session_id=session_id,
                room_id=room_id,
                timer=TurnTimerService(base_seconds=base_seconds),
                ledger=OutcomeLedger(roster),
                roster=roster,
            )
            record.tracker.sync(roster, turn_number=0, mode=mode)
            self._records[session_id] = record
            return record

    def get(self, session_id: str) -> SessionRecord | None:
        with self._lock:
            return self._records.get(session_id)

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


_REGISTRY = SessionRegistry()


def get_session_registry() -> SessionRegistry:
    return _REGISTRY


def reset_session_registry_for_tests() -> None:
    _REGISTRY.clear()
