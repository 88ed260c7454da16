#!/usr/bin/env python3

from __future__ import annotations

import random
import unittest

from packages.rankmatch_core.matching.engine import match_participants
from packages.rankmatch_core.matching.readiness import summarize_from_role_counts, summarize_from_slot_layout

ROLE_NAMES = ("tank", "healer", "dps")


def _random_case(rng: random.Random) -> tuple[list[dict], list[dict]]:
    names = rng.sample(ROLE_NAMES, rng.randint(1, len(ROLE_NAMES)))
    roles = [{"name": name, "slot_count": rng.randint(1, 3)} for name in names]
    queue = []
    for index in range(rng.randint(0, 14)):
        queue.append(
            {
                "id": f"entry-{index}",
                "owner_id": f"owner-{index}",
                # a small hero space forces duplicate heroes across entries
                "hero_id": f"hero-{rng.randint(0, 8)}",
                "role": rng.choice(ROLE_NAMES),
                "score": rng.randint(900, 1500),
                "joined_at": rng.randint(0, 5),
            }
        )
    return roles, queue


def _layout_for(roles: list[dict]) -> list[dict]:
    layout = []
    for role in roles:
        for _ in range(role["slot_count"]):
            layout.append({"slot_index": len(layout), "role": role["name"]})
    return layout


class MatchingInvariantTests(unittest.TestCase):
    def test_random_inputs_keep_room_invariants(self) -> None:
        for seed in range(300):
            rng = random.Random(seed)
            roles, queue = _random_case(rng)
            result = match_participants(roles=roles, queue=queue)

            placed: set[str] = set()
            for room in result.rooms:
                self.assertTrue(room.ready, msg=f"seed={seed}")
                heroes = [member.hero_key for member in room.members]
                self.assertEqual(len(heroes), len(set(heroes)), msg=f"seed={seed}")
                self.assertFalse(placed & set(heroes), msg=f"seed={seed}")
                placed.update(heroes)
                for assignment in room.assignments:
                    self.assertEqual(len(assignment.members), assignment.slots, msg=f"seed={seed}")
                    for member in assignment.members:
                        self.assertLessEqual(abs(member.score - room.anchor_score), room.max_window, msg=f"seed={seed}")

            if result.ready:
                self.assertEqual(result.assignments, result.rooms[0].assignments)
            else:
                self.assertEqual(result.rooms, ())
                self.assertIsNotNone(result.error)

    def test_random_inputs_are_deterministic(self) -> None:
        for seed in range(100):
            roles, queue = _random_case(random.Random(seed))
            first = match_participants(roles=roles, queue=queue)
            second = match_participants(roles=roles, queue=[dict(row) for row in queue])
            self.assertEqual(first.as_dict(), second.as_dict(), msg=f"seed={seed}")

    def test_readiness_agrees_between_layout_and_role_counts(self) -> None:
        for seed in range(200):
            roles, queue = _random_case(random.Random(seed))
            result = match_participants(roles=roles, queue=queue)

            by_layout = summarize_from_slot_layout(_layout_for(roles), result.assignments)
            by_counts = summarize_from_role_counts(roles, result.assignments)

            self.assertEqual(by_layout.ready, by_counts.ready, msg=f"seed={seed}")
            self.assertEqual(by_layout.ready, result.ready, msg=f"seed={seed}")


if __name__ == "__main__":
    unittest.main()
