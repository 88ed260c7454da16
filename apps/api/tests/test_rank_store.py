#!/usr/bin/env python3

from __future__ import annotations

import sqlite3
import tempfile
import unittest
import uuid
from pathlib import Path
from typing import Callable

from apps.api.rankmatch_api.storage.rank import SQLiteRankStore

ROOT = Path(__file__).resolve().parents[3]
TEST_DB_DIR = tempfile.TemporaryDirectory(dir=ROOT)


class _ClaimHookConnection:
    """Runs the store's pending ``before_claim`` hook right before the queue claim update reaches SQLite."""

    def __init__(self, conn: sqlite3.Connection, store: "_InterleavedStore") -> None:
        self._conn = conn
        self._store = store

    def execute(self, sql: str, params=()):
        hook = self._store.before_claim
        if hook is not None and "SET status = 'matched'" in sql:
            self._store.before_claim = None
            hook()
        return self._conn.execute(sql, params)

    def __getattr__(self, name: str):
        return getattr(self._conn, name)

    def __enter__(self) -> "_ClaimHookConnection":
        self._conn.__enter__()
        return self

    def __exit__(self, *exc_info) -> bool | None:
        return self._conn.__exit__(*exc_info)


class _InterleavedStore(SQLiteRankStore):
    before_claim: Callable[[], None] | None = None

    def _connect(self):
        conn = super()._connect()
        if self.before_claim is None:
            return conn
        return _ClaimHookConnection(conn, self)


class RankStoreCommitTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = Path(TEST_DB_DIR.name) / f"test_rank_store_{uuid.uuid4().hex[:8]}.db"
        self.store = _InterleavedStore(self.db_path)
        self.store.init_db()

    def _enqueue(self, owner_id: str, hero_id: str) -> str:
        entry = self.store.enqueue(
            game_id="arena",
            mode="rank",
            owner_id=owner_id,
            hero_id=hero_id,
            role="수비",
            score=1200.0,
        )
        return str(entry["entry_id"])

    def _statuses(self) -> dict[str, str]:
        return {
            str(row["owner_id"]): str(row["status"])
            for status in ("waiting", "matched")
            for row in self.store.list_queue(game_id="arena", mode="rank", status=status)
        }

    def test_concurrent_claims_seat_an_entry_once(self) -> None:
        entry_ids = [self._enqueue("o1", "vayne"), self._enqueue("o2", "jinx")]
        other = SQLiteRankStore(self.db_path)
        rival_rooms: list[dict | None] = []

        def rival_claims_first() -> None:
            rival_rooms.append(
                other.commit_room(game_id="arena", mode="rank", host="o2", entry_ids=entry_ids, payload={})
            )

        self.store.before_claim = rival_claims_first
        room = self.store.commit_room(game_id="arena", mode="rank", host="o1", entry_ids=entry_ids, payload={})

        self.assertIsNotNone(rival_rooms[0])
        self.assertIsNone(room)
        rows = self.store.list_queue(game_id="arena", mode="rank", status="matched")
        self.assertEqual({row["room_id"] for row in rows}, {rival_rooms[0]["room_id"]})

    def test_partial_claim_is_rolled_back(self) -> None:
        taken = self._enqueue("o1", "vayne")
        free = self._enqueue("o2", "jinx")
        first = self.store.commit_room(game_id="arena", mode="rank", host="o1", entry_ids=[taken], payload={})
        self.assertIsNotNone(first)

        second = self.store.commit_room(game_id="arena", mode="rank", host="o2", entry_ids=[taken, free], payload={})

        self.assertIsNone(second)
        self.assertEqual(self._statuses(), {"o1": "matched", "o2": "waiting"})

    def test_duplicate_entry_ids_count_once(self) -> None:
        entry_id = self._enqueue("o1", "vayne")

        room = self.store.commit_room(
            game_id="arena",
            mode="rank",
            host="o1",
            entry_ids=[entry_id, entry_id],
            payload={"ready": True},
        )

        self.assertIsNotNone(room)
        self.assertEqual(room["payload_json"], {"ready": True})
        self.assertEqual(self._statuses(), {"o1": "matched"})

    def test_queue_rows_keep_party_key(self) -> None:
        entry = self.store.enqueue(
            game_id="arena",
            mode="rank_duo",
            owner_id="o1",
            hero_id="vayne",
            role="수비",
            score=None,
            party_key="duo-a",
        )

        self.assertEqual(entry["party_key"], "duo-a")
        self.assertEqual(self.store.list_queue(game_id="arena", mode="rank_duo")[0]["party_key"], "duo-a")


if __name__ == "__main__":
    unittest.main()
