"""Per-game matching toggles and limits read from game rows and rule blobs."""

from __future__ import annotations

from dataclasses import dataclass
import math
import os
from typing import Any, Iterable


DEFAULT_SCORE_WINDOWS: tuple[float, ...] = (100.0, 200.0, 300.0)
DEFAULT_POOL_SCORE_WINDOW = 300
DEFAULT_POOL_PER_ROLE = 6
DEFAULT_POOL_TOTAL = 24
DEFAULT_TURN_SECONDS = 60

_TRUE_WORDS = {"true", "1", "yes", "on", "enable", "enabled", "allow", "allow-drop-in"}
_FALSE_WORDS = {"false", "0", "no", "off", "disable", "disabled", "forbid", "ban"}
_REALTIME_WORDS = {"realtime", "real-time", "realtime_only", "realtime-only", "live"}
_OFFLINE_WORDS = {
    "manual",
    "manual_only",
    "manual-only",
    "offline",
    "off-line",
    "nonrealtime",
    "non-realtime",
    "non_realtime",
}

DROP_IN_RULE_KEYS = ("drop_in", "allow_drop_in", "dropIn", "allowDropIn", "enable_drop_in", "drop_in_enabled")
BRAWL_RULE_KEYS = ("brawl", "brawl_rule", "brawl_enabled", "brawlEnabled", "allow_brawl")
SCORE_WINDOW_KEYS = ("score_windows", "scoreWindows")
POOL_WINDOW_KEYS = ("non_realtime_score_window", "nonRealtimeScoreWindow", "offline_score_window")
POOL_PER_ROLE_KEYS = ("non_realtime_simulated_per_role", "nonRealtimeSimulatedPerRole", "offline_simulated_per_role")
POOL_TOTAL_KEYS = ("non_realtime_simulated_total", "nonRealtimeSimulatedTotal", "offline_simulated_total")


@dataclass(frozen=True)
class MatchingToggles:
    realtime_enabled: bool = False
    drop_in_enabled: bool = False
    brawl_enabled: bool = False

    def as_dict(self) -> dict[str, bool]:
        return {
            "realtime_enabled": self.realtime_enabled,
            "drop_in_enabled": self.drop_in_enabled,
            "brawl_enabled": self.brawl_enabled,
        }


@dataclass(frozen=True)
class PoolLimits:
    score_window: float | None = DEFAULT_POOL_SCORE_WINDOW
    per_role: int | None = DEFAULT_POOL_PER_ROLE
    total: int | None = DEFAULT_POOL_TOTAL

    def as_dict(self) -> dict[str, Any]:
        return {"score_window": self.score_window, "per_role": self.per_role, "total": self.total}


def normalize_boolean_flag(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if not math.isfinite(float(value)):
            return default
        return value != 0
    text = str(value).strip().lower()
    if not text:
        return default
    if text in _TRUE_WORDS or text in _REALTIME_WORDS:
        return True
    if text in _FALSE_WORDS or text in _OFFLINE_WORDS:
        return False
    return default


def _first_rule(rules: dict[str, Any], keys: Iterable[str]) -> tuple[bool, Any]:
    for key in keys:
        if key in rules:
            return True, rules[key]
    return False, None


def extract_matching_toggles(game_row: dict[str, Any] | None, rules: dict[str, Any] | None = None) -> MatchingToggles:
    game = game_row or {}
    rule_map = rules if isinstance(rules, dict) else {}

    realtime = normalize_boolean_flag(game.get("realtime_match"), False)
    source = game.get("match_source")
    if isinstance(source, str) and source.strip():
        normalized = source.strip().lower()
        if normalized in _OFFLINE_WORDS:
            realtime = False
        elif normalized in _REALTIME_WORDS:
            realtime = True

    found, raw_drop_in = _first_rule(rule_map, DROP_IN_RULE_KEYS)
    drop_in = normalize_boolean_flag(raw_drop_in, False) if found else False

    found, raw_brawl = _first_rule(rule_map, BRAWL_RULE_KEYS)
    brawl = False
    if found:
        if isinstance(raw_brawl, str) and raw_brawl.strip().lower() in {"allow-brawl", "brawl"}:
            brawl = True
        else:
            brawl = normalize_boolean_flag(raw_brawl, False)

    return MatchingToggles(realtime_enabled=realtime, drop_in_enabled=drop_in, brawl_enabled=brawl)


def normalize_score_windows(raw: Any) -> tuple[float, ...]:
    """Ascending, de-duplicated, finite, non-negative windows; empty when none are usable."""
    if raw is None:
        return ()
    if isinstance(raw, str):
        values: list[Any] = [part for part in raw.split(",") if part.strip()]
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        values = [raw]
    else:
        try:
            values = list(raw)
        except TypeError:
            return ()
    out: set[float] = set()
    for value in values:
        if isinstance(value, bool):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(number) and number >= 0:
            out.add(number)
    return tuple(sorted(out))


def default_score_windows() -> tuple[float, ...]:
    configured = normalize_score_windows(os.environ.get("RANKMATCH_SCORE_WINDOWS"))
    return configured or DEFAULT_SCORE_WINDOWS


def resolve_score_windows(rules: dict[str, Any] | None = None) -> tuple[float, ...]:
    found, raw = _first_rule(rules if isinstance(rules, dict) else {}, SCORE_WINDOW_KEYS)
    windows = normalize_score_windows(raw) if found else ()
    return windows or default_score_windows()


def _non_negative_rule(rules: dict[str, Any], keys: Iterable[str], default: float) -> float:
    for key in keys:
        value = rules.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(number) and number >= 0:
            return number
    return default


def resolve_pool_limits(rules: dict[str, Any] | None = None) -> PoolLimits:
    rule_map = rules if isinstance(rules, dict) else {}
    return PoolLimits(
        score_window=_non_negative_rule(rule_map, POOL_WINDOW_KEYS, DEFAULT_POOL_SCORE_WINDOW),
        per_role=int(_non_negative_rule(rule_map, POOL_PER_ROLE_KEYS, DEFAULT_POOL_PER_ROLE)),
        total=int(_non_negative_rule(rule_map, POOL_TOTAL_KEYS, DEFAULT_POOL_TOTAL)),
    )


def resolve_turn_seconds(rules: dict[str, Any] | None = None) -> int:
    rule_map = rules if isinstance(rules, dict) else {}
    env_default = DEFAULT_TURN_SECONDS
    raw_env = str(os.environ.get("RANKMATCH_TURN_SECONDS") or "").strip()
    if raw_env:
        try:
            env_default = max(1, int(raw_env))
        except ValueError:
            env_default = DEFAULT_TURN_SECONDS
    seconds = _non_negative_rule(rule_map, ("turn_seconds", "turnSeconds", "turn_timer"), env_default)
    return max(1, int(seconds))
