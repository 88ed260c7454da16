#!/usr/bin/env python3

from __future__ import annotations

import unittest

from packages.rankmatch_core.session.scoring import apply_score_delta, compute_session_score


class SessionScoreTests(unittest.TestCase):
    def test_win_cap_limits_counted_wins(self) -> None:
        self.assertEqual(compute_session_score(wins=10, win_point=5, win_cap=3, loss_penalty=0), 15)

    def test_defaults_subtract_penalty_once(self) -> None:
        self.assertEqual(compute_session_score(wins=2), 60)
        self.assertEqual(compute_session_score(wins=0), -20)
        self.assertEqual(compute_session_score(wins=1, losses=5, win_point=10, loss_penalty=5), 5)

    def test_role_bounds_fill_missing_points(self) -> None:
        self.assertEqual(compute_session_score(wins=2, score_delta_max=30, score_delta_min=10), 50)
        self.assertEqual(compute_session_score(wins=0, score_delta_max=30, score_delta_min=10), -10)

    def test_negative_penalty_is_still_subtracted(self) -> None:
        self.assertEqual(compute_session_score(wins=1, win_point=10, loss_penalty=-4), 6)

    def test_floor_and_ceiling_clamp(self) -> None:
        self.assertEqual(compute_session_score(wins=5, win_point=50, loss_penalty=0, ceiling=100), 100)
        self.assertEqual(compute_session_score(wins=0, loss_penalty=50, floor=-25), -25)

    def test_loose_inputs_are_coerced(self) -> None:
        self.assertEqual(compute_session_score(wins="3", win_point="10", loss_penalty="5"), 25)
        self.assertEqual(compute_session_score(wins=True), -20)
        self.assertEqual(compute_session_score(wins=-4, win_point=10, loss_penalty=0), 0)

    def test_apply_score_delta(self) -> None:
        self.assertEqual(apply_score_delta(1000.0, 25), 1025)
        self.assertEqual(apply_score_delta(10, -40, floor=0), 0)
        self.assertEqual(apply_score_delta(None, 15), 15)
        self.assertEqual(apply_score_delta(990, 40, ceiling=1000), 1000)


if __name__ == "__main__":
    unittest.main()
