"""Storage for rank games, role layouts, match queues, rooms, and sessions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional
import json
import os
import sqlite3
import threading
import uuid


WORKSPACE_ROOT = Path(__file__).resolve().parents[4]

QUEUE_STATUSES = {"waiting", "matched", "cancelled"}


def _now_utc_sqlite() -> str:
    return "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"


def _json_dumps(value: Any) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=True)
    except Exception:
        return "{}"


def _json_loads(raw: Any, default: Any) -> Any:
    if isinstance(raw, (dict, list)):
        return raw
    text = str(raw or "").strip()
    if not text:
        return default
    try:
        return json.loads(text)
    except Exception:
        return default


def _uuid(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class RankStore(ABC):
    @abstractmethod
    def init_db(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def upsert_game(
        self,
        *,
        game_id: str,
        name: str,
        realtime_match: bool,
        match_source: str | None,
        rules: dict[str, Any],
        inline_roles: list[str],
        roles: list[dict[str, Any]],
        slots: list[dict[str, Any]],
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def get_game(self, *, game_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def list_game_roles(self, *, game_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def list_game_slots(self, *, game_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def enqueue(
        self,
        *,
        game_id: str,
        mode: str,
        owner_id: str,
        hero_id: str,
        role: str,
        score: float | None,
        party_key: str | None = None,
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def leave_queue(self, *, game_id: str, mode: str, owner_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def list_queue(self, *, game_id: str, mode: str, status: str = "waiting") -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def upsert_participant(
        self,
        *,
        game_id: str,
        owner_id: str,
        hero_id: str,
        role: str,
        score: float | None,
        status: str,
        hero_name: str | None,
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def list_participants(self, *, game_id: str, status: str | None = None) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def role_status_counts(self, *, game_id: str, status: str = "alive") -> dict[str, int]:
        raise NotImplementedError

    @abstractmethod
    def apply_participant_score(self, *, game_id: str, owner_id: str, score: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def commit_room(
        self,
        *,
        game_id: str,
        mode: str,
        host: str | None,
        entry_ids: list[str],
        payload: dict[str, Any],
    ) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def get_room(self, *, room_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def create_session(self, *, room_id: str, game_id: str) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def get_session(self, *, session_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def complete_session(
        self,
        *,
        session_id: str,
        outcomes: list[dict[str, Any]],
        result: str,
        state: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def list_session_outcomes(self, *, session_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError


class SQLiteRankStore(RankStore):
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._initialized = False
        self._local = threading.local()

    def _connect(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA busy_timeout = 5000")
        self._local.conn = conn
        return conn

    @staticmethod
    def _game_row(row: dict[str, Any]) -> dict[str, Any]:
        out = dict(row)
        out["realtime_match"] = bool(out.get("realtime_match", 0))
        out["rules_json"] = _json_loads(out.get("rules_json"), {})
        out["inline_roles"] = _json_loads(out.pop("inline_roles_json", None), [])
        return out

    @staticmethod
    def _role_row(row: dict[str, Any]) -> dict[str, Any]:
        out = dict(row)
        out["slot_count"] = int(out.get("slot_count") or 0)
        out["active"] = bool(out.get("active", 1))
        for key in ("score_delta_min", "score_delta_max"):
            if out.get(key) is not None:
                out[key] = int(out[key])
        return out

    @staticmethod
    def _slot_row(row: dict[str, Any]) -> dict[str, Any]:
        out = dict(row)
        out["slot_index"] = int(out.get("slot_index") or 0)
        out["active"] = bool(out.get("active", 1))
        return out

    @staticmethod
    def _queue_row(row: dict[str, Any]) -> dict[str, Any]:
        out = dict(row)
        if out.get("score") is not None:
            out["score"] = float(out["score"])
        out["id"] = out.get("entry_id")
        return out

    @staticmethod
    def _participant_row(row: dict[str, Any]) -> dict[str, Any]:
        out = dict(row)
        if out.get("score") is not None:
            out["score"] = float(out["score"])
        out["id"] = out.get("participant_id")
        return out

    @staticmethod
    def _room_row(row: dict[str, Any]) -> dict[str, Any]:
        out = dict(row)
        out["payload_json"] = _json_loads(out.get("payload_json"), {})
        out["entry_ids"] = _json_loads(out.get("entry_ids_json"), [])
        out.pop("entry_ids_json", None)
        return out

    @staticmethod
    def _session_row(row: dict[str, Any]) -> dict[str, Any]:
        out = dict(row)
        out["final_state"] = _json_loads(out.pop("state_json", None), None)
        return out

    @staticmethod
    def _outcome_row(row: dict[str, Any]) -> dict[str, Any]:
        out = dict(row)
        for key in ("wins", "losses", "score_delta"):
            out[key] = int(out.get(key) or 0)
        out["eliminated"] = bool(out.get("eliminated", 0))
        if out.get("slot_index") is not None:
            out["slot_index"] = int(out["slot_index"])
        return out

    def init_db(self) -> None:
        if self._initialized:
            return
        with self._connect() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS rank_games (
                  game_id TEXT PRIMARY KEY,
                  name TEXT NOT NULL DEFAULT '',
                  realtime_match INTEGER NOT NULL DEFAULT 0,
                  match_source TEXT,
                  rules_json TEXT NOT NULL DEFAULT '{{}}',
                  inline_roles_json TEXT NOT NULL DEFAULT '[]',
                  created_at TEXT NOT NULL DEFAULT ({_now_utc_sqlite()}),
                  updated_at TEXT NOT NULL DEFAULT ({_now_utc_sqlite()})
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS rank_game_roles (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  game_id TEXT NOT NULL,
                  name TEXT NOT NULL,
                  slot_count INTEGER NOT NULL DEFAULT 1,
                  active INTEGER NOT NULL DEFAULT 1,
                  score_delta_min INTEGER,
                  score_delta_max INTEGER,
                  FOREIGN KEY (game_id) REFERENCES rank_games(game_id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS rank_game_slots (
                  game_id TEXT NOT NULL,
                  slot_index INTEGER NOT NULL,
                  role TEXT NOT NULL,
                  active INTEGER NOT NULL DEFAULT 1,
                  hero_id TEXT,
                  hero_owner_id TEXT,
                  PRIMARY KEY (game_id, slot_index),
                  FOREIGN KEY (game_id) REFERENCES rank_games(game_id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS rank_match_queue (
                  entry_id TEXT PRIMARY KEY,
                  game_id TEXT NOT NULL,
                  mode TEXT NOT NULL,
                  owner_id TEXT NOT NULL,
                  hero_id TEXT NOT NULL,
                  role TEXT NOT NULL,
                  score REAL,
                  status TEXT NOT NULL DEFAULT 'waiting',
                  room_id TEXT,
                  party_key TEXT,
                  joined_at TEXT NOT NULL DEFAULT ({_now_utc_sqlite()}),
                  updated_at TEXT NOT NULL DEFAULT ({_now_utc_sqlite()})
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_rank_queue_lookup
                ON rank_match_queue(game_id, mode, status, joined_at)
                """
            )
            try:
                conn.execute("ALTER TABLE rank_match_queue ADD COLUMN party_key TEXT")
            except sqlite3.OperationalError:
                pass
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS rank_participants (
                  participant_id TEXT PRIMARY KEY,
                  game_id TEXT NOT NULL,
                  owner_id TEXT NOT NULL,
                  hero_id TEXT NOT NULL,
                  hero_name TEXT,
                  role TEXT NOT NULL,
                  score REAL,
                  status TEXT NOT NULL DEFAULT 'alive',
                  updated_at TEXT NOT NULL DEFAULT ({_now_utc_sqlite()}),
                  UNIQUE (game_id, owner_id)
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS rank_rooms (
                  room_id TEXT PRIMARY KEY,
                  game_id TEXT NOT NULL,
                  mode TEXT NOT NULL,
                  host TEXT,
                  status TEXT NOT NULL DEFAULT 'open',
                  entry_ids_json TEXT NOT NULL DEFAULT '[]',
                  payload_json TEXT NOT NULL DEFAULT '{{}}',
                  created_at TEXT NOT NULL DEFAULT ({_now_utc_sqlite()})
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS rank_sessions (
                  session_id TEXT PRIMARY KEY,
                  room_id TEXT NOT NULL,
                  game_id TEXT NOT NULL,
                  status TEXT NOT NULL DEFAULT 'active',
                  result TEXT,
                  state_json TEXT,
                  created_at TEXT NOT NULL DEFAULT ({_now_utc_sqlite()}),
                  completed_at TEXT
                )
                """
            )
            try:
                conn.execute("ALTER TABLE rank_sessions ADD COLUMN state_json TEXT")
            except sqlite3.OperationalError:
                pass
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS rank_session_outcomes (
                  session_id TEXT NOT NULL,
                  entry_key TEXT NOT NULL,
                  owner_id TEXT,
                  hero_id TEXT,
                  hero_name TEXT,
                  role TEXT,
                  slot_index INTEGER,
                  result TEXT NOT NULL DEFAULT 'pending',
                  wins INTEGER NOT NULL DEFAULT 0,
                  losses INTEGER NOT NULL DEFAULT 0,
                  eliminated INTEGER NOT NULL DEFAULT 0,
                  score_delta INTEGER NOT NULL DEFAULT 0,
                  PRIMARY KEY (session_id, entry_key)
                )
                """
            )
        self._initialized = True

    def ping(self) -> None:
        self._connect().execute("SELECT 1").fetchone()

    def upsert_game(
        self,
        *,
        game_id: str,
        name: str,
        realtime_match: bool,
        match_source: str | None,
        rules: dict[str, Any],
        inline_roles: list[str],
        roles: list[dict[str, Any]],
        slots: list[dict[str, Any]],
    ) -> dict[str, Any]:
        self.init_db()
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO rank_games (game_id, name, realtime_match, match_source, rules_json, inline_roles_json)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(game_id) DO UPDATE SET
                  name = excluded.name,
                  realtime_match = excluded.realtime_match,
                  match_source = excluded.match_source,
                  rules_json = excluded.rules_json,
                  inline_roles_json = excluded.inline_roles_json,
                  updated_at = ({_now_utc_sqlite()})
                """,
                (
                    game_id,
                    name,
                    1 if realtime_match else 0,
                    match_source,
                    _json_dumps(rules or {}),
                    _json_dumps(list(inline_roles or [])),
                ),
            )
            conn.execute("DELETE FROM rank_game_roles WHERE game_id = ?", (game_id,))
            conn.execute("DELETE FROM rank_game_slots WHERE game_id = ?", (game_id,))
            conn.executemany(
                """
                INSERT INTO rank_game_roles (game_id, name, slot_count, active, score_delta_min, score_delta_max)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        game_id,
                        str(role.get("name") or ""),
                        int(role.get("slot_count") or 0),
                        0 if role.get("active") is False else 1,
                        role.get("score_delta_min"),
                        role.get("score_delta_max"),
                    )
                    for role in roles or []
                ],
            )
            conn.executemany(
                """
                INSERT OR REPLACE INTO rank_game_slots (game_id, slot_index, role, active, hero_id, hero_owner_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        game_id,
                        int(slot.get("slot_index") or 0),
                        str(slot.get("role") or ""),
                        0 if slot.get("active") is False else 1,
                        slot.get("hero_id"),
                        slot.get("hero_owner_id"),
                    )
                    for slot in slots or []
                ],
            )
        return self.get_game(game_id=game_id) or {}

    def get_game(self, *, game_id: str) -> dict[str, Any] | None:
        self.init_db()
        row = self._connect().execute("SELECT * FROM rank_games WHERE game_id = ?", (game_id,)).fetchone()
        return self._game_row(dict(row)) if row else None

    def list_game_roles(self, *, game_id: str) -> list[dict[str, Any]]:
        self.init_db()
        rows = self._connect().execute(
            "SELECT * FROM rank_game_roles WHERE game_id = ? ORDER BY id ASC",
            (game_id,),
        ).fetchall()
        return [self._role_row(dict(row)) for row in rows]

    def list_game_slots(self, *, game_id: str) -> list[dict[str, Any]]:
        self.init_db()
        rows = self._connect().execute(
            "SELECT * FROM rank_game_slots WHERE game_id = ? ORDER BY slot_index ASC",
            (game_id,),
        ).fetchall()
        return [self._slot_row(dict(row)) for row in rows]

    def enqueue(
        self,
        *,
        game_id: str,
        mode: str,
        owner_id: str,
        hero_id: str,
        role: str,
        score: float | None,
        party_key: str | None = None,
    ) -> dict[str, Any]:
        self.init_db()
        entry_id = _uuid("rq")
        with self._connect() as conn:
            conn.execute(
                f"""
                UPDATE rank_match_queue
                SET status = 'cancelled', updated_at = ({_now_utc_sqlite()})
                WHERE game_id = ? AND mode = ? AND owner_id = ? AND status = 'waiting'
                """,
                (game_id, mode, owner_id),
            )
            conn.execute(
                """
                INSERT INTO rank_match_queue (entry_id, game_id, mode, owner_id, hero_id, role, score, party_key, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'waiting')
                """,
                (entry_id, game_id, mode, owner_id, hero_id, role, score, party_key or None),
            )
        row = self._connect().execute("SELECT * FROM rank_match_queue WHERE entry_id = ?", (entry_id,)).fetchone()
        return self._queue_row(dict(row))

    def leave_queue(self, *, game_id: str, mode: str, owner_id: str) -> int:
        self.init_db()
        with self._connect() as conn:
            cur = conn.execute(
                f"""
                UPDATE rank_match_queue
                SET status = 'cancelled', updated_at = ({_now_utc_sqlite()})
                WHERE game_id = ? AND mode = ? AND owner_id = ? AND status = 'waiting'
                """,
                (game_id, mode, owner_id),
            )
            return int(cur.rowcount or 0)

    def list_queue(self, *, game_id: str, mode: str, status: str = "waiting") -> list[dict[str, Any]]:
        self.init_db()
        rows = self._connect().execute(
            """
            SELECT * FROM rank_match_queue
            WHERE game_id = ? AND mode = ? AND status = ?
            ORDER BY joined_at ASC, entry_id ASC
            """,
            (game_id, mode, status),
        ).fetchall()
        return [self._queue_row(dict(row)) for row in rows]

    def upsert_participant(
        self,
        *,
        game_id: str,
        owner_id: str,
        hero_id: str,
        role: str,
        score: float | None,
        status: str,
        hero_name: str | None,
    ) -> dict[str, Any]:
        self.init_db()
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO rank_participants (participant_id, game_id, owner_id, hero_id, hero_name, role, score, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(game_id, owner_id) DO UPDATE SET
                  hero_id = excluded.hero_id,
                  hero_name = excluded.hero_name,
                  role = excluded.role,
                  score = COALESCE(excluded.score, rank_participants.score),
                  status = excluded.status,
                  updated_at = ({_now_utc_sqlite()})
                """,
                (_uuid("rp"), game_id, owner_id, hero_id, hero_name, role, score, status),
            )
        row = self._connect().execute(
            "SELECT * FROM rank_participants WHERE game_id = ? AND owner_id = ?",
            (game_id, owner_id),
        ).fetchone()
        return self._participant_row(dict(row))

    def list_participants(self, *, game_id: str, status: str | None = None) -> list[dict[str, Any]]:
        self.init_db()
        if status:
            rows = self._connect().execute(
                "SELECT * FROM rank_participants WHERE game_id = ? AND status = ? ORDER BY participant_id ASC",
                (game_id, status),
            ).fetchall()
        else:
            rows = self._connect().execute(
                "SELECT * FROM rank_participants WHERE game_id = ? ORDER BY participant_id ASC",
                (game_id,),
            ).fetchall()
        return [self._participant_row(dict(row)) for row in rows]

    def role_status_counts(self, *, game_id: str, status: str = "alive") -> dict[str, int]:
        self.init_db()
        rows = self._connect().execute(
            """
            SELECT role, COUNT(*) AS total FROM rank_participants
            WHERE game_id = ? AND status = ?
            GROUP BY role
            ORDER BY role ASC
            """,
            (game_id, status),
        ).fetchall()
        return {str(row["role"]): int(row["total"] or 0) for row in rows}

    def apply_participant_score(self, *, game_id: str, owner_id: str, score: int) -> None:
        self.init_db()
        with self._connect() as conn:
            conn.execute(
                f"""
                UPDATE rank_participants
                SET score = ?, updated_at = ({_now_utc_sqlite()})
                WHERE game_id = ? AND owner_id = ?
                """,
                (int(score), game_id, owner_id),
            )

    def commit_room(
        self,
        *,
        game_id: str,
        mode: str,
        host: str | None,
        entry_ids: list[str],
        payload: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Claim the given waiting queue entries for a new room.

        The claim only touches rows that are still waiting. When another
        writer got to any entry first the partial claim is rolled back and
        ``None`` is returned.
        """
        self.init_db()
        room_id = _uuid("room")
        conn = self._connect()
        with conn:
            if entry_ids:
                unique_ids = list(dict.fromkeys(entry_ids))
                placeholders = ",".join("?" for _ in unique_ids)
                cur = conn.execute(
                    f"""
                    UPDATE rank_match_queue
                    SET status = 'matched', room_id = ?, updated_at = ({_now_utc_sqlite()})
                    WHERE entry_id IN ({placeholders}) AND game_id = ? AND mode = ? AND status = 'waiting'
                    """,
                    (room_id, *unique_ids, game_id, mode),
                )
                if cur.rowcount != len(unique_ids):
                    conn.rollback()
                    return None
            conn.execute(
                """
                INSERT INTO rank_rooms (room_id, game_id, mode, host, status, entry_ids_json, payload_json)
                VALUES (?, ?, ?, ?, 'open', ?, ?)
                """,
                (room_id, game_id, mode, host, _json_dumps(list(entry_ids)), _json_dumps(payload)),
            )
        return self.get_room(room_id=room_id)

    def get_room(self, *, room_id: str) -> dict[str, Any] | None:
        self.init_db()
        row = self._connect().execute("SELECT * FROM rank_rooms WHERE room_id = ?", (room_id,)).fetchone()
        return self._room_row(dict(row)) if row else None

    def create_session(self, *, room_id: str, game_id: str) -> dict[str, Any]:
        self.init_db()
        session_id = _uuid("sess")
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO rank_sessions (session_id, room_id, game_id, status) VALUES (?, ?, ?, 'active')",
                (session_id, room_id, game_id),
            )
            conn.execute("UPDATE rank_rooms SET status = 'in_progress' WHERE room_id = ?", (room_id,))
        return self.get_session(session_id=session_id) or {}

    def get_session(self, *, session_id: str) -> dict[str, Any] | None:
        self.init_db()
        row = self._connect().execute("SELECT * FROM rank_sessions WHERE session_id = ?", (session_id,)).fetchone()
        return self._session_row(dict(row)) if row else None

    def complete_session(
        self,
        *,
        session_id: str,
        outcomes: list[dict[str, Any]],
        result: str,
        state: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self.init_db()
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO rank_session_outcomes (
                  session_id, entry_key, owner_id, hero_id, hero_name, role, slot_index,
                  result, wins, losses, eliminated, score_delta
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        session_id,
                        str(item.get("key") or ""),
                        item.get("owner_id"),
                        item.get("hero_id"),
                        item.get("hero_name"),
                        item.get("role"),
                        item.get("slot_index"),
                        str(item.get("result") or "pending"),
                        int(item.get("wins") or 0),
                        int(item.get("losses") or 0),
                        1 if item.get("eliminated") else 0,
                        int(item.get("score_delta") or 0),
                    )
                    for item in outcomes
                ],
            )
            conn.execute(
                f"""
                UPDATE rank_sessions
                SET status = 'completed', result = ?, state_json = ?, completed_at = ({_now_utc_sqlite()})
                WHERE session_id = ?
                """,
                (result, None if state is None else _json_dumps(state), session_id),
            )
        return self.get_session(session_id=session_id) or {}

    def list_session_outcomes(self, *, session_id: str) -> list[dict[str, Any]]:
        self.init_db()
        rows = self._connect().execute(
            "SELECT * FROM rank_session_outcomes WHERE session_id = ? ORDER BY slot_index ASC, entry_key ASC",
            (session_id,),
        ).fetchall()
        return [self._outcome_row(dict(row)) for row in rows]


def _sqlite_path() -> Path:
    configured = str(os.environ.get("RANKMATCH_DB_PATH") or "").strip()
    if configured:
        return Path(configured)
    return WORKSPACE_ROOT / "data" / "rankmatch.db"


@lru_cache(maxsize=1)
def _backend() -> RankStore:
    return SQLiteRankStore(_sqlite_path())


def reset_backend_cache_for_tests() -> None:
    _backend.cache_clear()


def init_db() -> None:
    _backend().init_db()


def ping() -> None:
    _backend().ping()


def upsert_game(
    *,
    game_id: str,
    name: str,
    realtime_match: bool,
    match_source: str | None,
    rules: dict[str, Any],
    inline_roles: list[str],
    roles: list[dict[str, Any]],
    slots: list[dict[str, Any]],
) -> dict[str, Any]:
    return _backend().upsert_game(
        game_id=game_id,
        name=name,
        realtime_match=realtime_match,
        match_source=match_source,
        rules=rules,
        inline_roles=inline_roles,
        roles=roles,
        slots=slots,
    )


def get_game(*, game_id: str) -> dict[str, Any] | None:
    return _backend().get_game(game_id=game_id)


def list_game_roles(*, game_id: str) -> list[dict[str, Any]]:
    return _backend().list_game_roles(game_id=game_id)


def list_game_slots(*, game_id: str) -> list[dict[str, Any]]:
    return _backend().list_game_slots(game_id=game_id)


def enqueue(
    *,
    game_id: str,
    mode: str,
    owner_id: str,
    hero_id: str,
    role: str,
    score: Optional[float],
    party_key: Optional[str] = None,
) -> dict[str, Any]:
    return _backend().enqueue(
        game_id=game_id,
        mode=mode,
        owner_id=owner_id,
        hero_id=hero_id,
        role=role,
        score=score,
        party_key=party_key,
    )


def leave_queue(*, game_id: str, mode: str, owner_id: str) -> int:
    return _backend().leave_queue(game_id=game_id, mode=mode, owner_id=owner_id)


def list_queue(*, game_id: str, mode: str, status: str = "waiting") -> list[dict[str, Any]]:
    return _backend().list_queue(game_id=game_id, mode=mode, status=status)


def upsert_participant(
    *,
    game_id: str,
    owner_id: str,
    hero_id: str,
    role: str,
    score: Optional[float],
    status: str,
    hero_name: str | None,
) -> dict[str, Any]:
    return _backend().upsert_participant(
        game_id=game_id,
        owner_id=owner_id,
        hero_id=hero_id,
        role=role,
        score=score,
        status=status,
        hero_name=hero_name,
    )


def list_participants(*, game_id: str, status: str | None = None) -> list[dict[str, Any]]:
    return _backend().list_participants(game_id=game_id, status=status)


def role_status_counts(*, game_id: str, status: str = "alive") -> dict[str, int]:
    return _backend().role_status_counts(game_id=game_id, status=status)


def apply_participant_score(*, game_id: str, owner_id: str, score: int) -> None:
    _backend().apply_participant_score(game_id=game_id, owner_id=owner_id, score=score)


def commit_room(
    *,
    game_id: str,
    mode: str,
    host: str | None,
    entry_ids: list[str],
    payload: dict[str, Any],
) -> dict[str, Any] | None:
    return _backend().commit_room(game_id=game_id, mode=mode, host=host, entry_ids=entry_ids, payload=payload)


def get_room(*, room_id: str) -> dict[str, Any] | None:
    return _backend().get_room(room_id=room_id)


def create_session(*, room_id: str, game_id: str) -> dict[str, Any]:
    return _backend().create_session(room_id=room_id, game_id=game_id)


def get_session(*, session_id: str) -> dict[str, Any] | None:
    return _backend().get_session(session_id=session_id)


def complete_session(
    *,
    session_id: str,
    outcomes: list[dict[str, Any]],
    result: str,
    state: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    return _backend().complete_session(session_id=session_id, outcomes=outcomes, result=result, state=state)


def list_session_outcomes(*, session_id: str) -> list[dict[str, Any]]:
    return _backend().list_session_outcomes(session_id=session_id)
