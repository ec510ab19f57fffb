"""
db.py
SQLite storage: connection helpers, single-writer transactions, schema and app settings.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from logs import get_logger

logger = get_logger(__name__)


class Database:
    """
    Storage handle passed explicitly to every ledger service.

    Plain reads/writes use short autocommit connections. Anything that touches
    more than one table (session + member credits, subscription + member credits)
    goes through `transaction()`, which holds the SQLite write lock from the first
    read until commit, so a balance check and the writes depending on it cannot
    interleave with another writer.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def get_conn(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def execute(self, sql: str, params: tuple = ()) -> int:
        with self.get_conn() as conn:
            cur = conn.execute(sql, params)
            return cur.lastrowid

    def fetch_one(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        with self.get_conn() as conn:
            return conn.execute(sql, params).fetchone()

    def fetch_all(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self.get_conn() as conn:
            return conn.execute(sql, params).fetchall()

    # ---------- schema ----------

    def create_tables(self) -> None:
        with self.transaction() as conn:
            _create_tables(conn)
        logger.debug("schema_ready", path=str(self.path))

    # ---------- app settings ----------

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        row = self.fetch_one("SELECT value FROM app_settings WHERE key = ?", (key,))
        if row:
            return str(row["value"])
        return default

    def set_setting(self, key: str, value: str) -> None:
        self.execute(
            """
            INSERT INTO app_settings(key, value) VALUES(?, ?)
            ON CONFLICT(key) DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )

    # Forced password change is tracked per account, e.g. "force_password_change:1"
    def is_force_password_change(self, account_id: int) -> bool:
        return self.get_setting(f"force_password_change:{account_id}") == "1"

    def set_force_password_change(self, account_id: int) -> None:
        self.set_setting(f"force_password_change:{account_id}", "1")

    def clear_force_password_change(self, account_id: int) -> None:
        self.set_setting(f"force_password_change:{account_id}", "0")


# member_id columns are soft references: no FOREIGN KEY, orphans are expected
# after a member delete and are shown as "Unknown Member".
SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT NOT NULL UNIQUE COLLATE NOCASE,
        name TEXT NOT NULL,
        business_name TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS organizations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        currency TEXT NOT NULL,
        session_default_length_minutes INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_organizations (
        user_id INTEGER NOT NULL,
        organization_id INTEGER NOT NULL,
        role TEXT NOT NULL CHECK(role IN ('owner','admin','member')),
        joined_at TEXT NOT NULL,
        PRIMARY KEY (user_id, organization_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS members (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        full_name TEXT NOT NULL,
        email TEXT NOT NULL,
        phone TEXT,
        membership_type TEXT NOT NULL,
        status TEXT NOT NULL CHECK(status IN ('active','expired','cancelled','paused')),
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL,
        credits INTEGER NOT NULL DEFAULT 0,
        notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_members_user_id ON members(user_id)",
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        member_id INTEGER NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT,
        status TEXT NOT NULL DEFAULT 'unverified' CHECK(status IN ('unverified','verified')),
        credits_used INTEGER NOT NULL DEFAULT 1,
        notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_sessions_member_id ON sessions(member_id)",
    """
    CREATE TABLE IF NOT EXISTS subscriptions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        member_id INTEGER NOT NULL,
        member_name TEXT NOT NULL,
        organization_id INTEGER NOT NULL,
        amount REAL NOT NULL,
        credits INTEGER NOT NULL,
        notes TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_subscriptions_org ON subscriptions(organization_id)",
    # Small settings table (used to force password change on first login)
    """
    CREATE TABLE IF NOT EXISTS app_settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
]


def _create_tables(conn: sqlite3.Connection) -> None:
    for statement in SCHEMA:
        conn.execute(statement)
