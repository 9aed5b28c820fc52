"""SQLite-backed config and push subscription stores."""

import sqlite3
import threading
import time
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS system_config (
    config_key TEXT PRIMARY KEY,
    config_value TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    updated_at REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS push_subscriptions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    endpoint TEXT NOT NULL,
    p256dh TEXT NOT NULL,
    auth TEXT NOT NULL,
    created_at REAL NOT NULL,
    UNIQUE (user_id, endpoint)
);
CREATE INDEX IF NOT EXISTS idx_push_subscriptions_user
    ON push_subscriptions(user_id);
"""

# Config rows never returned by ConfigStore.get_public().
SECRET_CONFIG_KEYS = frozenset({"vapid_private_key"})


class Database:
    """Shared SQLite connection for the stores.

    One cached connection in WAL mode, serialized by a lock so
    that worker threads and the event loop can share it.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self.lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.executescript(_SCHEMA)
        self._conn = conn
        return conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


@dataclass
class ConfigEntry:
    key: str
    value: str
    description: str = ""


class ConfigStore:
    """Key/value configuration rows (``system_config``)."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def get(self, key: str) -> str | None:
        """Value for key, secrets included. Server-side use only."""
        with self._db.lock:
            row = (
                self._db.connect()
                .execute(
                    "SELECT config_value FROM system_config WHERE config_key = ?",
                    (key,),
                )
                .fetchone()
            )
        return row[0] if row else None

    def get_public(self, key: str) -> str | None:
        """Like get(), but refuses secret rows."""
        if key in SECRET_CONFIG_KEYS:
            raise KeyError(f"{key} is not publicly readable")
        return self.get(key)

    def get_many(self, keys: Sequence[str]) -> dict[str, str]:
        """Values for the keys that exist."""
        if not keys:
            return {}
        marks = ", ".join("?" for _ in keys)
        with self._db.lock:
            rows = (
                self._db.connect()
                .execute(
                    "SELECT config_key, config_value FROM system_config"
                    f" WHERE config_key IN ({marks})",
                    tuple(keys),
                )
                .fetchall()
            )
        return dict(rows)

    def insert_if_absent(self, entries: Iterable[ConfigEntry]) -> int:
        """Insert entries atomically, leaving existing keys untouched.

        Returns the number of rows actually written.
        """
        return self._write(
            entries,
            "INSERT INTO system_config"
            " (config_key, config_value, description, updated_at)"
            " VALUES (?, ?, ?, ?)"
            " ON CONFLICT(config_key) DO NOTHING",
        )

    def upsert(self, entries: Iterable[ConfigEntry]) -> int:
        """Insert or overwrite entries atomically."""
        return self._write(
            entries,
            "INSERT INTO system_config"
            " (config_key, config_value, description, updated_at)"
            " VALUES (?, ?, ?, ?)"
            " ON CONFLICT(config_key) DO UPDATE SET"
            "   config_value = excluded.config_value,"
            "   description = excluded.description,"
            "   updated_at = excluded.updated_at",
        )

    def _write(self, entries: Iterable[ConfigEntry], sql: str) -> int:
        now = time.time()
        written = 0
        with self._db.lock:
            conn = self._db.connect()
            conn.execute("BEGIN IMMEDIATE")
            try:
                for entry in entries:
                    cur = conn.execute(sql, (entry.key, entry.value, entry.description, now))
                    written += cur.rowcount
            except Exception:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        return written


@dataclass
class PushSubscription:
    """A single Web Push subscription owned by a user."""

    id: str
    user_id: str
    endpoint: str
    p256dh: str
    auth: str
    created_at: float = 0.0


class PushSubscriptionStore:
    """Push subscriptions keyed by user.

    Delivery only reads and deletes. subscribe() and unsubscribe()
    back the registration endpoints.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def list_for_user(self, user_id: str) -> list[PushSubscription]:
        """All subscriptions for a user, oldest first."""
        with self._db.lock:
            rows = (
                self._db.connect()
                .execute(
                    "SELECT id, user_id, endpoint, p256dh, auth, created_at"
                    " FROM push_subscriptions"
                    " WHERE user_id = ?"
                    " ORDER BY created_at, id",
                    (user_id,),
                )
                .fetchall()
            )
        return [PushSubscription(*row) for row in rows]

    def delete_by_ids(self, ids: Sequence[str]) -> int:
        """Delete subscriptions in one statement. Unknown ids are ignored."""
        if not ids:
            return 0
        marks = ", ".join("?" for _ in ids)
        with self._db.lock:
            cur = self._db.connect().execute(
                f"DELETE FROM push_subscriptions WHERE id IN ({marks})",
                tuple(ids),
            )
        return cur.rowcount

    def subscribe(
        self,
        user_id: str,
        endpoint: str,
        p256dh: str,
        auth: str,
    ) -> PushSubscription:
        """Add or upsert a subscription for (user_id, endpoint)."""
        with self._db.lock:
            conn = self._db.connect()
            conn.execute(
                "INSERT INTO push_subscriptions"
                " (id, user_id, endpoint, p256dh, auth, created_at)"
                " VALUES (?, ?, ?, ?, ?, ?)"
                " ON CONFLICT(user_id, endpoint) DO UPDATE SET"
                "   p256dh = excluded.p256dh,"
                "   auth = excluded.auth",
                (uuid.uuid4().hex, user_id, endpoint, p256dh, auth, time.time()),
            )
            row = conn.execute(
                "SELECT id, user_id, endpoint, p256dh, auth, created_at"
                " FROM push_subscriptions"
                " WHERE user_id = ? AND endpoint = ?",
                (user_id, endpoint),
            ).fetchone()
        return PushSubscription(*row)

    def unsubscribe(self, user_id: str, endpoint: str) -> bool:
        """Remove a user's subscription for an endpoint."""
        with self._db.lock:
            cur = self._db.connect().execute(
                "DELETE FROM push_subscriptions WHERE user_id = ? AND endpoint = ?",
                (user_id, endpoint),
            )
        return cur.rowcount > 0
