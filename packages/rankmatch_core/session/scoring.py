"""Bounded integer score deltas for session settlement."""

from __future__ import annotations

import math
from typing import Any


DEFAULT_SCORE_DELTA_MAX = 40
DEFAULT_SCORE_DELTA_MIN = 20


def _coerce_int(value: Any, default: int | None = 0) -> int | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(number)


def _clamp(value: int, floor: int | None, ceiling: int | None) -> int:
    if floor is not None and value < floor:
        value = floor
    if ceiling is not None and value > ceiling:
        value = ceiling
    return value


def compute_session_score(
    *,
    wins: Any,
    losses: Any = 0,
    win_point: Any = None,
    win_cap: Any = None,
    loss_penalty: Any = None,
    score_delta_max: Any = None,
    score_delta_min: Any = None,
    floor: Any = None,
    ceiling: Any = None,
) -> int:
    """``min(wins, win_cap) * per_win - penalty``, clamped to ``[floor, ceiling]``.

    ``per_win`` falls back to ``score_delta_max`` and the penalty to
    ``score_delta_min``. The penalty is subtracted once regardless of
    ``losses``, which is accepted for interface parity only.
    """
    effective_wins = max(0, _coerce_int(wins) or 0)
    cap = _coerce_int(win_cap, None)
    if cap is not None:
        effective_wins = min(effective_wins, max(0, cap))

    per_win = _coerce_int(win_point, None)
    if per_win is None:
        per_win = _coerce_int(score_delta_max, DEFAULT_SCORE_DELTA_MAX)
    penalty = _coerce_int(loss_penalty, None)
    if penalty is None:
        penalty = _coerce_int(score_delta_min, DEFAULT_SCORE_DELTA_MIN)

    delta = effective_wins * int(per_win or 0) - abs(int(penalty or 0))
    return _clamp(delta, _coerce_int(floor, None), _coerce_int(ceiling, None))


def apply_score_delta(current: Any, delta: Any, *, floor: Any = None, ceiling: Any = None) -> int:
    total = (_coerce_int(current) or 0) + (_coerce_int(delta) or 0)
    return _clamp(total, _coerce_int(floor, None), _coerce_int(ceiling, None))
