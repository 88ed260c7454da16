#!/usr/bin/env python3

from __future__ import annotations

import os
import random
import unittest
from unittest import mock

from packages.rankmatch_core.matching.pool import assemble_candidate_pool
from packages.rankmatch_core.matching.rules import (
    DEFAULT_POOL_PER_ROLE,
    DEFAULT_POOL_SCORE_WINDOW,
    DEFAULT_POOL_TOTAL,
    extract_matching_toggles,
    normalize_boolean_flag,
    normalize_score_windows,
    resolve_pool_limits,
    resolve_score_windows,
    resolve_turn_seconds,
)

QUEUE = [
    {"id": "q2", "owner_id": "o2", "hero_id": "h2", "role": "수비", "score": 1000, "joined_at": 20},
    {"id": "q1", "owner_id": "o1", "hero_id": "h1", "role": "공격", "score": 1200, "joined_at": 10},
]

POOL = [
    {"id": "p-owner", "owner_id": "o1", "hero_id": "h9", "role": "공격", "score": 1200},
    {"id": "p-no-owner", "owner_id": "", "hero_id": "h10", "role": "공격", "score": 1200},
    {"id": "p-role", "owner_id": "o5", "hero_id": "h15", "role": "힐러", "score": 1000},
    {"id": "p-hero", "owner_id": "o6", "hero_id": "h2", "role": "수비", "score": 1000},
    {"id": "p-far", "owner_id": "o7", "hero_id": "h11", "role": "수비", "score": 2000},
    {"id": "p-ok1", "owner_id": "o8", "hero_id": "h12", "role": "공격", "score": 1150},
    {"id": "p-ok2", "owner_id": "o9", "hero_id": "h13", "role": "수비", "score": 1100},
    {"id": "p-ok3", "owner_id": "o10", "hero_id": "h14", "role": "수비", "score": 950},
]


class CandidatePoolTests(unittest.TestCase):
    def test_realtime_uses_queue_only_in_fifo_order(self) -> None:
        snapshot = assemble_candidate_pool(QUEUE, POOL, realtime_enabled=True, role_names=["공격", "수비"])

        self.assertEqual([candidate.id for candidate in snapshot.candidates], ["q1", "q2"])
        self.assertEqual(snapshot.pool, ())
        self.assertEqual(snapshot.meta["sample_type"], "realtime_queue")

    def test_fallback_pool_is_filtered(self) -> None:
        snapshot = assemble_candidate_pool(
            QUEUE,
            POOL,
            realtime_enabled=False,
            role_names=["공격", "수비"],
            rng=random.Random(7),
            pool_score_window=300,
        )

        self.assertEqual([candidate.id for candidate in snapshot.queue], ["q1", "q2"])
        self.assertEqual(sorted(candidate.id for candidate in snapshot.pool), ["p-ok1", "p-ok2", "p-ok3"])
        self.assertTrue(all(candidate.source == "pool" for candidate in snapshot.pool))
        self.assertEqual(snapshot.candidates[:2], snapshot.queue)
        self.assertEqual(snapshot.meta["pool_count"], 8)
        self.assertEqual(snapshot.meta["pool_filtered"], 5)
        self.assertEqual(snapshot.meta["pool_selected"], 3)

    def test_same_seed_replays_the_same_shuffle(self) -> None:
        pool = [
            {"id": f"p{i}", "owner_id": f"owner-{i}", "hero_id": f"hero-{i}", "role": "dps", "score": 1000}
            for i in range(12)
        ]

        first = assemble_candidate_pool([], pool, realtime_enabled=False, rng=random.Random("seed-1"))
        second = assemble_candidate_pool([], pool, realtime_enabled=False, rng=random.Random("seed-1"))

        self.assertEqual(
            [candidate.id for candidate in first.candidates],
            [candidate.id for candidate in second.candidates],
        )

    def test_per_role_and_total_caps(self) -> None:
        per_role = assemble_candidate_pool(
            QUEUE,
            POOL,
            realtime_enabled=False,
            role_names=["공격", "수비"],
            rng=random.Random(1),
            per_role_limit=1,
            pool_score_window=300,
        )
        self.assertEqual(len(per_role.pool), 2)
        self.assertEqual(sorted(candidate.role for candidate in per_role.pool), ["공격", "수비"])

        total = assemble_candidate_pool(
            QUEUE,
            POOL,
            realtime_enabled=False,
            role_names=["공격", "수비"],
            rng=random.Random(1),
            total_limit=1,
            pool_score_window=300,
        )
        self.assertEqual(len(total.pool), 1)

    def test_stale_queue_entries_are_dropped(self) -> None:
        snapshot = assemble_candidate_pool(
            [
                {"id": "old", "owner_id": "o1", "hero_id": "h1", "role": "a", "joined_at": 100},
                {"id": "new", "owner_id": "o2", "hero_id": "h2", "role": "a", "joined_at": 200},
            ],
            realtime_enabled=True,
            stale_before=150,
        )

        self.assertEqual([candidate.id for candidate in snapshot.candidates], ["new"])
        self.assertEqual(snapshot.meta["stale_filtered"], 1)

    def test_role_occupancy_is_carried(self) -> None:
        snapshot = assemble_candidate_pool([], realtime_enabled=True, role_occupancy={"a": "2"})

        self.assertEqual(snapshot.role_occupancy, {"a": 2})


class MatchingRulesTests(unittest.TestCase):
    def test_match_source_overrides_realtime_flag(self) -> None:
        toggles = extract_matching_toggles({"realtime_match": True, "match_source": "manual"}, {})
        self.assertFalse(toggles.realtime_enabled)

        toggles = extract_matching_toggles({"realtime_match": False, "match_source": "live"}, {})
        self.assertTrue(toggles.realtime_enabled)

    def test_drop_in_and_brawl_rule_spellings(self) -> None:
        toggles = extract_matching_toggles({}, {"allowDropIn": "allow-drop-in", "brawl_rule": "allow-brawl"})
        self.assertTrue(toggles.drop_in_enabled)
        self.assertTrue(toggles.brawl_enabled)

        toggles = extract_matching_toggles({}, {"drop_in": "forbid", "brawl": 0})
        self.assertFalse(toggles.drop_in_enabled)
        self.assertFalse(toggles.brawl_enabled)

    def test_boolean_flag_words(self) -> None:
        self.assertTrue(normalize_boolean_flag("YES"))
        self.assertFalse(normalize_boolean_flag("off", True))
        self.assertTrue(normalize_boolean_flag("maybe", True))
        self.assertFalse(normalize_boolean_flag(float("nan")))

    def test_score_windows_are_sorted_unique_and_finite(self) -> None:
        self.assertEqual(normalize_score_windows("300, 100,abc,-5,100"), (100.0, 300.0))
        self.assertEqual(normalize_score_windows([float("inf"), True, 50]), (50.0,))
        self.assertEqual(normalize_score_windows(None), ())

    def test_score_windows_default_from_environment(self) -> None:
        with mock.patch.dict(os.environ, {"RANKMATCH_SCORE_WINDOWS": "150,50"}):
            self.assertEqual(resolve_score_windows({}), (50.0, 150.0))
            self.assertEqual(resolve_score_windows({"score_windows": [25]}), (25.0,))

    def test_pool_limits_and_turn_seconds(self) -> None:
        defaults = resolve_pool_limits({})
        self.assertEqual(defaults.score_window, DEFAULT_POOL_SCORE_WINDOW)
        self.assertEqual(defaults.per_role, DEFAULT_POOL_PER_ROLE)
        self.assertEqual(defaults.total, DEFAULT_POOL_TOTAL)

        custom = resolve_pool_limits({"nonRealtimeSimulatedPerRole": 2, "non_realtime_simulated_total": "5"})
        self.assertEqual(custom.per_role, 2)
        self.assertEqual(custom.total, 5)

        with mock.patch.dict(os.environ, {"RANKMATCH_TURN_SECONDS": "45"}):
            self.assertEqual(resolve_turn_seconds({}), 45)
            self.assertEqual(resolve_turn_seconds({"turn_seconds": 90}), 90)


if __name__ == "__main__":
    unittest.main()
