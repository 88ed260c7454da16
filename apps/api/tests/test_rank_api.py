#!/usr/bin/env python3

from __future__ import annotations

import copy
import os
import tempfile
import unittest
import uuid
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[3]
TEST_DB_DIR = tempfile.TemporaryDirectory(dir=ROOT)
os.environ["RANKMATCH_DB_PATH"] = str(Path(TEST_DB_DIR.name) / "test_rankmatch.db")

from apps.api.rankmatch_api.main import app
from apps.api.rankmatch_api.services.match_verifier import verify_client_match
from apps.api.rankmatch_api.storage.rank import reset_backend_cache_for_tests as reset_rank_backend
from packages.rankmatch_core.matching.client import compute_from_snapshot
from packages.rankmatch_core.session.registry import get_session_registry, reset_session_registry_for_tests

ROLES = [{"name": "공격", "slot_count": 1}, {"name": "수비", "slot_count": 2}]
QUEUE = [
    {"owner_id": "o1", "hero_id": "ari", "role": "공격", "score": 1200},
    {"owner_id": "o2", "hero_id": "vayne", "role": "수비", "score": 1190},
    {"owner_id": "o3", "hero_id": "jinx", "role": "수비", "score": 1210},
]


class RankApiTests(unittest.TestCase):
    def setUp(self) -> None:
        os.environ["RANKMATCH_DB_PATH"] = str(Path(TEST_DB_DIR.name) / f"test_rankmatch_{uuid.uuid4().hex[:8]}.db")
        reset_rank_backend()
        reset_session_registry_for_tests()
        self.client = TestClient(app)

    def _register(self, game_id: str = "arena", **overrides) -> dict:
        body = {"game_id": game_id, "name": "Arena", "realtime_match": True, "roles": ROLES}
        body.update(overrides)
        resp = self.client.post("/api/v1/rank/games", json=body)
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()

    def _fill_queue(self, game_id: str = "arena") -> None:
        for row in QUEUE:
            resp = self.client.post(f"/api/v1/rank/games/{game_id}/queue/join", json={"mode": "rank", **row})
            self.assertEqual(resp.status_code, 200, resp.text)

    def _snapshot(self, game_id: str = "arena", **params) -> dict:
        resp = self.client.get(f"/api/v1/rank/games/{game_id}/snapshot", params={"mode": "rank", **params})
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()

    def _verified_room(self) -> str:
        self._register()
        self._fill_queue()
        snapshot = self._snapshot()
        client_result = compute_from_snapshot(snapshot, mode="rank").as_dict()
        resp = self.client.post(
            "/api/v1/rank/verify",
            json={"game_id": "arena", "mode": "rank", "host": "o1", "client_result": client_result},
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        payload = resp.json()
        self.assertTrue(payload["verified"], payload)
        return payload["room_id"]

    def test_healthz(self) -> None:
        resp = self.client.get("/healthz")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json().get("status"), "ok")

    def test_register_and_read_roles(self) -> None:
        created = self._register(rules={"brawl_rule": "allow-brawl"})
        self.assertTrue(created["ok"])
        self.assertEqual(created["roles"]["source"], "role_rows")

        resp = self.client.get("/api/v1/rank/games/arena/roles")
        self.assertEqual(resp.status_code, 200)
        payload = resp.json()
        self.assertEqual(payload["roles"], ROLES)
        self.assertTrue(payload["toggles"]["realtime_enabled"])
        self.assertTrue(payload["toggles"]["brawl_enabled"])

    def test_inline_slot_layout(self) -> None:
        self._register(roles=[], inline_roles=["공격", "수비", "수비"])

        payload = self.client.get("/api/v1/rank/games/arena/roles").json()
        self.assertEqual(payload["source"], "inline_layout")
        self.assertEqual([entry["slot_index"] for entry in payload["slot_layout"]], [0, 1, 2])

    def test_unknown_game_is_404(self) -> None:
        self.assertEqual(self.client.get("/api/v1/rank/games/missing/roles").status_code, 404)
        resp = self.client.post(
            "/api/v1/rank/games/missing/queue/join",
            json={"owner_id": "o1", "hero_id": "h1", "role": "공격"},
        )
        self.assertEqual(resp.status_code, 404)

    def test_missing_roles_conflict(self) -> None:
        self._register(roles=[])

        resp = self.client.get("/api/v1/rank/games/arena/snapshot")
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["detail"], "missing_role_configuration")

        resp = self.client.post("/api/v1/rank/games/arena/match/preview", json={"mode": "rank"})
        self.assertEqual(resp.status_code, 409)

    def test_malformed_score_is_422(self) -> None:
        self._register()

        resp = self.client.post(
            "/api/v1/rank/games/arena/queue/join",
            json={"owner_id": "o1", "hero_id": "h1", "role": "공격", "score": "abc"},
        )

        self.assertEqual(resp.status_code, 422)
        self.assertEqual(resp.json()["error_code"], "invalid_score")

    def test_queue_join_replaces_and_leave_cancels(self) -> None:
        self._register()
        self._fill_queue()
        self.client.post(
            "/api/v1/rank/games/arena/queue/join",
            json={"owner_id": "o1", "hero_id": "ari", "role": "공격", "score": 1300},
        )

        snapshot = self._snapshot()
        self.assertEqual(len(snapshot["candidates"]), 3)
        self.assertEqual(
            [item["score"] for item in snapshot["candidates"] if item["owner_id"] == "o1"],
            [1300.0],
        )

        resp = self.client.post("/api/v1/rank/games/arena/queue/leave", json={"owner_id": "o2"})
        self.assertEqual(resp.json()["removed"], 1)
        self.assertEqual(len(self._snapshot()["candidates"]), 2)

    def test_preview_reports_room_and_readiness(self) -> None:
        self._register()
        self._fill_queue()

        resp = self.client.post("/api/v1/rank/games/arena/match/preview", json={"mode": "rank"})

        self.assertEqual(resp.status_code, 200, resp.text)
        payload = resp.json()
        self.assertTrue(payload["result"]["ready"])
        self.assertTrue(payload["readiness"]["ready"])
        self.assertEqual(payload["result"]["metadata"]["room_count"], 1)

        still_waiting = self._snapshot()
        self.assertEqual(len(still_waiting["candidates"]), 3)

    def test_casual_preview_is_json_safe(self) -> None:
        self._register()
        for row in QUEUE:
            self.client.post("/api/v1/rank/games/arena/queue/join", json={"mode": "casual", **row})

        resp = self.client.post("/api/v1/rank/games/arena/match/preview", json={"mode": "casual"})

        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["result"]["max_window"], 0)

    def test_snapshot_seed_replays_pool_order(self) -> None:
        self._register(realtime_match=False)
        for index in range(6):
            resp = self.client.post(
                "/api/v1/rank/games/arena/participants",
                json={"owner_id": f"p{index}", "hero_id": f"hero-{index}", "role": "수비", "score": 1200},
            )
            self.assertEqual(resp.status_code, 200, resp.text)

        first = self._snapshot(seed="replay")
        second = self._snapshot(seed="replay")

        self.assertEqual(first["shuffle_seed"], "replay")
        self.assertEqual(first["candidates"], second["candidates"])
        self.assertTrue(all(item["source"] == "pool" for item in first["candidates"]))

    def test_verify_commits_room_and_claims_queue(self) -> None:
        room_id = self._verified_room()
        self.assertTrue(room_id.startswith("room_"))

        leftover = self._snapshot()
        self.assertEqual(leftover["candidates"], [])

    def test_verify_rejects_tampered_result(self) -> None:
        self._register()
        self._fill_queue()
        client_result = compute_from_snapshot(self._snapshot(), mode="rank").as_dict()
        tampered = copy.deepcopy(client_result)
        tampered["assignments"][0]["members"][0]["hero_id"] = "teemo"

        resp = self.client.post(
            "/api/v1/rank/verify",
            json={"game_id": "arena", "mode": "rank", "client_result": tampered},
        )

        payload = resp.json()
        self.assertFalse(payload["verified"])
        self.assertEqual(payload["reason"], "assignment_mismatch")
        self.assertTrue(payload["retry"])
        self.assertEqual(len(self._snapshot()["candidates"]), 3)

    def test_verify_reports_queue_race(self) -> None:
        self._register()
        self._fill_queue()
        client_result = compute_from_snapshot(self._snapshot(), mode="rank").as_dict()

        outcome = verify_client_match(
            game_id="arena",
            mode="rank",
            host=None,
            client_result=client_result,
            commit_fn=lambda **kwargs: None,
        )

        self.assertEqual(outcome, {"verified": False, "reason": "queue_changed", "retry": True})

    def test_session_lifecycle(self) -> None:
        room_id = self._verified_room()

        resp = self.client.post(f"/api/v1/rank/rooms/{room_id}/sessions")
        self.assertEqual(resp.status_code, 200, resp.text)
        started = resp.json()
        session_id = started["session"]["session_id"]
        self.assertEqual(started["turn_seconds"], 90)
        self.assertEqual(len(started["state"]["ledger"]["entries"]), 3)

        resp = self.client.post(
            f"/api/v1/rank/sessions/{session_id}/turns",
            json={"turn": 1, "result_line": "ari win / vayne loss"},
        )
        turn = resp.json()
        self.assertTrue(turn["recorded"])
        self.assertEqual(turn["turn_seconds"], 60)

        self.client.post(
            "/api/v1/rank/games/arena/participants",
            json={"owner_id": "o9", "hero_id": "lux", "role": "수비", "score": 1100},
        )
        resp = self.client.post(
            f"/api/v1/rank/sessions/{session_id}/drop-in",
            json={"role": "수비", "turn_number": 2, "immediate": False},
        )
        drop_in = resp.json()
        self.assertEqual(drop_in["substitute"]["hero_id"], "lux")
        self.assertEqual(drop_in["bonus_seconds"], 30)

        resp = self.client.post(
            f"/api/v1/rank/sessions/{session_id}/drop-in",
            json={"role": "수비", "turn_number": 2, "immediate": False},
        )
        self.assertIsNone(resp.json()["substitute"])

        turn = self.client.post(
            f"/api/v1/rank/sessions/{session_id}/turns",
            json={"turn": 2, "result_line": ""},
        ).json()
        self.assertEqual(turn["turn_seconds"], 90)

        resp = self.client.post(f"/api/v1/rank/sessions/{session_id}/complete")
        self.assertEqual(resp.status_code, 200, resp.text)
        settled = resp.json()
        self.assertEqual(settled["result"], "won")
        updates = {item["owner_id"]: item for item in settled["score_updates"]}
        self.assertEqual(updates["o1"]["after"], 1020)
        self.assertEqual(updates["o2"]["after"], 980)
        self.assertEqual(updates["o9"]["before"], 1100)
        self.assertEqual(updates["o9"]["after"], 1080)
        self.assertIsNone(get_session_registry().get(session_id))

        again = self.client.post(f"/api/v1/rank/sessions/{session_id}/complete").json()
        self.assertEqual(again["score_updates"], [])
        self.assertEqual(len(again["outcomes"]), 4)

        late = self.client.post(
            f"/api/v1/rank/sessions/{session_id}/turns",
            json={"turn": 3, "result_line": "jinx win"},
        ).json()
        self.assertFalse(late["recorded"])
        self.assertTrue(late["completed"])

        late_drop_in = self.client.post(
            f"/api/v1/rank/sessions/{session_id}/drop-in",
            json={"role": "수비", "turn_number": 3, "immediate": True},
        ).json()
        self.assertEqual(late_drop_in["reason"], "session_completed")

        state = self.client.get(f"/api/v1/rank/sessions/{session_id}").json()
        self.assertEqual(state["session"]["status"], "completed")
        self.assertEqual(len(state["state"]["drop_ins"]), 1)
        self.assertTrue(state["state"]["ledger"]["completed"])

    def test_duo_queue_seats_party_together(self) -> None:
        self._register(roles=[{"name": "수비", "slot_count": 2}])
        rows = [
            {"owner_id": "o1", "hero_id": "vayne", "score": 1200, "party_key": "duo-a"},
            {"owner_id": "o2", "hero_id": "jinx", "score": 1180},
            {"owner_id": "o3", "hero_id": "lux", "score": 1220, "party_key": "duo-a"},
        ]
        for row in rows:
            resp = self.client.post(
                "/api/v1/rank/games/arena/queue/join",
                json={"mode": "rank_duo", "role": "수비", **row},
            )
            self.assertEqual(resp.status_code, 200, resp.text)

        snapshot = self._snapshot(mode="rank_duo")
        self.assertEqual(
            {item["owner_id"]: item["party_key"] for item in snapshot["candidates"]},
            {"o1": "duo-a", "o2": None, "o3": "duo-a"},
        )

        resp = self.client.post("/api/v1/rank/games/arena/match/preview", json={"mode": "rank_duo"})

        self.assertEqual(resp.status_code, 200, resp.text)
        result = resp.json()["result"]
        self.assertTrue(result["ready"])
        self.assertEqual(result["metadata"]["party_size"], 2)
        members = [member["owner_id"] for item in result["assignments"] for member in item["members"]]
        self.assertEqual(sorted(members), ["o1", "o3"])

    def test_unknown_room_and_session_are_404(self) -> None:
        self.assertEqual(self.client.post("/api/v1/rank/rooms/nope/sessions").status_code, 404)
        self.assertEqual(self.client.get("/api/v1/rank/sessions/nope").status_code, 404)
        resp = self.client.post("/api/v1/rank/sessions/nope/turns", json={"turn": 1, "result_line": "x win"})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(self.client.post("/api/v1/rank/sessions/nope/complete").status_code, 404)


if __name__ == "__main__":
    unittest.main()
