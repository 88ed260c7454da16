"""Per-session turn timer with first-turn and drop-in bonuses."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


DEFAULT_BASE_SECONDS = 60
DEFAULT_FIRST_TURN_BONUS_SECONDS = 30
DEFAULT_DROP_IN_BONUS_SECONDS = 30


def _seconds(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(0, number)


@dataclass
class TurnTimerState:
    base_seconds: int = DEFAULT_BASE_SECONDS
    first_turn_bonus_seconds: int = DEFAULT_FIRST_TURN_BONUS_SECONDS
    drop_in_bonus_seconds: int = DEFAULT_DROP_IN_BONUS_SECONDS
    first_turn_bonus_available: bool = True
    pending_drop_in_bonus: bool = False
    last_turn_number: int = 0
    last_drop_in_applied_turn: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class TurnTimerService:
    """Sole owner of one session's ``TurnTimerState``.

    Not thread-safe: callers advance at most one turn per session at a time.
    """

    def __init__(
        self,
        *,
        base_seconds: int = DEFAULT_BASE_SECONDS,
        first_turn_bonus_seconds: int = DEFAULT_FIRST_TURN_BONUS_SECONDS,
        drop_in_bonus_seconds: int = DEFAULT_DROP_IN_BONUS_SECONDS,
    ) -> None:
        self._state = TurnTimerState(
            base_seconds=_seconds(base_seconds, DEFAULT_BASE_SECONDS),
            first_turn_bonus_seconds=_seconds(first_turn_bonus_seconds, DEFAULT_FIRST_TURN_BONUS_SECONDS),
            drop_in_bonus_seconds=_seconds(drop_in_bonus_seconds, DEFAULT_DROP_IN_BONUS_SECONDS),
        )

    def configure_base(self, base_seconds: int) -> None:
        self._state.base_seconds = _seconds(base_seconds, self._state.base_seconds)

    def next_turn_duration(self, turn_number: int) -> int:
        state = self._state
        turn = _seconds(turn_number, 0)
        duration = state.base_seconds
        if turn <= 1 and state.first_turn_bonus_available:
            duration += state.first_turn_bonus_seconds
            state.first_turn_bonus_available = False
        if state.pending_drop_in_bonus:
            duration += state.drop_in_bonus_seconds
            state.pending_drop_in_bonus = False
            state.last_drop_in_applied_turn = turn
        state.last_turn_number = turn
        return duration

    def register_drop_in_bonus(self, *, immediate: bool, turn_number: int) -> int:
        """Credit a drop-in bonus and return the seconds granted now or queued.

        Returns 0 when the same turn was already credited or a bonus is already
        waiting for the next turn.
        """
        state = self._state
        bonus = state.drop_in_bonus_seconds
        if bonus <= 0:
            return 0
        turn = _seconds(turn_number, 0)
        if immediate:
            if state.last_drop_in_applied_turn == turn:
                return 0
            state.last_drop_in_applied_turn = turn
            return bonus
        if state.pending_drop_in_bonus:
            return 0
        state.pending_drop_in_bonus = True
        return bonus

    def snapshot(self) -> dict[str, Any]:
        return self._state.as_dict()
