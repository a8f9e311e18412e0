"""Relational store connection, schema bootstrap and row helpers.

SQLite is the default backend. When a postgres URL is configured the same
sqlite-style calls run through a thin psycopg compatibility wrapper.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
import sqlite3
import threading
from typing import Any, Dict, List, Optional, Tuple

from calimbus import config

try:
    import psycopg
    from psycopg.rows import dict_row
except ImportError:  # pragma: no cover - postgres backend is optional at runtime
    psycopg = None
    dict_row = None

logger = logging.getLogger(__name__)

BOOTSTRAPPED = False
BOOTSTRAP_LOCK = threading.Lock()

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    picture TEXT,
    created_at TEXT NOT NULL,
    last_login_at TEXT
);

CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    token_hash TEXT NOT NULL UNIQUE,
    csrf_token TEXT NOT NULL,
    access_token TEXT,
    refresh_token TEXT,
    token_expires_at INTEGER,
    auth_error TEXT,
    expires_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    last_seen_at TEXT,
    ip_address TEXT,
    user_agent TEXT,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS board_columns (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    color TEXT NOT NULL DEFAULT '#6b7280',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS card_categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    item_id TEXT NOT NULL,
    item_type TEXT NOT NULL,
    column_id INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, item_id),
    FOREIGN KEY (column_id) REFERENCES board_columns(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS item_notes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    item_id TEXT NOT NULL,
    item_type TEXT NOT NULL,
    notes TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, item_id)
);

CREATE TABLE IF NOT EXISTS checklist_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    item_id TEXT NOT NULL,
    item_type TEXT NOT NULL,
    text TEXT NOT NULL,
    checked INTEGER NOT NULL DEFAULT 0,
    position INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS labels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    color TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS item_labels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT NOT NULL,
    label_id INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE (item_id, label_id),
    FOREIGN KEY (label_id) REFERENCES labels(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS trashed_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    item_id TEXT NOT NULL,
    item_type TEXT NOT NULL,
    previous_column_id INTEGER,
    item_data TEXT,
    trashed_at TEXT NOT NULL,
    UNIQUE (user_id, item_id)
);

CREATE TABLE IF NOT EXISTS event_details (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    event_id TEXT NOT NULL,
    location TEXT,
    description TEXT,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, event_id)
);

CREATE TABLE IF NOT EXISTS feedback (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT,
    user_email TEXT NOT NULL,
    user_name TEXT NOT NULL,
    message TEXT NOT NULL,
    image_base64 TEXT,
    status TEXT NOT NULL DEFAULT 'new',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS webhook_channels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    channel_id TEXT NOT NULL UNIQUE,
    resource_id TEXT,
    channel_type TEXT NOT NULL,
    expiration TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (user_id, channel_type)
);

CREATE TABLE IF NOT EXISTS known_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    item_id TEXT NOT NULL,
    item_type TEXT NOT NULL,
    item_data TEXT,
    seen_at TEXT NOT NULL,
    UNIQUE (user_id, item_id)
);

CREATE TABLE IF NOT EXISTS pending_updates (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    update_type TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, update_type)
);

CREATE INDEX IF NOT EXISTS idx_board_columns_user ON board_columns (user_id, position);
CREATE INDEX IF NOT EXISTS idx_card_categories_column ON card_categories (user_id, column_id);
CREATE INDEX IF NOT EXISTS idx_checklist_item ON checklist_items (user_id, item_id, position);
CREATE INDEX IF NOT EXISTS idx_labels_user ON labels (user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions (user_id)
"""

# Tables with a surrogate integer key; inserts on postgres return it.
SERIAL_TABLES = {
    "sessions",
    "board_columns",
    "card_categories",
    "item_notes",
    "checklist_items",
    "labels",
    "item_labels",
    "trashed_items",
    "event_details",
    "feedback",
    "webhook_channels",
    "known_items",
    "pending_updates",
}


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def iso(ts: Optional[dt.datetime] = None) -> str:
    value = ts or utcnow()
    return value.replace(microsecond=0).isoformat()


def row_to_dict(row: Any) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {key: row[key] for key in row.keys()}


def rows_to_dicts(rows: List[Any]) -> List[Dict[str, Any]]:
    return [{key: row[key] for key in row.keys()} for row in rows]


class CompatCursor:
    """Cursor wrapper exposing sqlite-style rows and lastrowid for psycopg."""

    def __init__(self, cursor: Any, lastrowid: Optional[int] = None, prefetched: Optional[List[Dict[str, Any]]] = None):
        self._cursor = cursor
        self.lastrowid = lastrowid
        self._prefetched = prefetched

    @property
    def rowcount(self) -> int:
        return int(getattr(self._cursor, "rowcount", -1))

    def fetchone(self):
        if self._prefetched is not None:
            return self._prefetched.pop(0) if self._prefetched else None
        return self._cursor.fetchone()

    def fetchall(self):
        if self._prefetched is not None:
            rows, self._prefetched = self._prefetched, []
            return rows
        return self._cursor.fetchall()


def _adapt_sql_for_postgres(sql: str) -> str:
    text = re.sub(r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT", "BIGSERIAL PRIMARY KEY", sql, flags=re.IGNORECASE)
    out: List[str] = []
    in_single = False
    for ch in text:
        if ch == "'":
            in_single = not in_single
        out.append("%s" if ch == "?" and not in_single else ch)
    return "".join(out)


def _insert_table(sql: str) -> Optional[str]:
    match = re.match(r"\s*INSERT\s+INTO\s+(\w+)", sql, flags=re.IGNORECASE)
    return match.group(1).lower() if match else None


class PostgresCompatConnection:
    """Small DB-API layer so sqlite-style calls work against PostgreSQL."""

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Tuple[Any, ...] = ()):
        pg_sql = _adapt_sql_for_postgres(sql)
        table = _insert_table(sql)
        wants_id = table in SERIAL_TABLES and "RETURNING" not in sql.upper()
        if wants_id:
            pg_sql = f"{pg_sql.rstrip()} RETURNING id"
        cur = self._conn.cursor()
        try:
            cur.execute(pg_sql, params)
        except Exception as exc:
            # Unique/foreign-key violations surface as sqlite IntegrityError.
            if str(getattr(exc, "sqlstate", "") or "").startswith("23"):
                raise sqlite3.IntegrityError(str(exc)) from exc
            raise
        if wants_id:
            row = cur.fetchone()
            return CompatCursor(cur, lastrowid=int(row["id"]) if row else None, prefetched=[])
        return CompatCursor(cur)

    def executescript(self, script: str) -> None:
        for stmt in script.split(";"):
            if stmt.strip():
                self.execute(stmt)

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


def db_connect():
    if config.DB_BACKEND == "postgres":
        if psycopg is None:
            raise RuntimeError("PostgreSQL backend requested but psycopg is not installed.")
        raw = psycopg.connect(config.DATABASE_URL, row_factory=dict_row, autocommit=False)
        return PostgresCompatConnection(raw)

    db_path = config.DB_PATH
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=config.DB_BUSY_TIMEOUT_MS / 1000.0, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute(f"PRAGMA busy_timeout = {config.DB_BUSY_TIMEOUT_MS}")
    conn.execute("PRAGMA foreign_keys = ON")
    journal = config.DB_JOURNAL_MODE if config.DB_JOURNAL_MODE in {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"} else "WAL"
    conn.execute(f"PRAGMA journal_mode = {journal}")
    return conn


def init_db() -> None:
    """Create the schema. Safe to call repeatedly."""
    conn = db_connect()
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()


def ensure_bootstrap() -> None:
    """Initialize the database once per process."""
    global BOOTSTRAPPED
    if BOOTSTRAPPED:
        return
    with BOOTSTRAP_LOCK:
        if BOOTSTRAPPED:
            return
        try:
            init_db()
        except Exception:
            logger.exception("Database bootstrap failed (backend=%s)", config.DB_BACKEND)
            raise
        BOOTSTRAPPED = True
        logger.info("Database ready (backend=%s)", config.DB_BACKEND)


def reset_bootstrap() -> None:
    global BOOTSTRAPPED
    with BOOTSTRAP_LOCK:
        BOOTSTRAPPED = False
