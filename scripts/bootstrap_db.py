#!/usr/bin/env python3
"""Create the Calimbus schema and print a quick table summary."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from calimbus import config
from calimbus.db import db_connect, ensure_bootstrap
from calimbus.server import configure_logging

TABLES = (
    "users",
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
)


def main() -> int:
    configure_logging()
    ensure_bootstrap()
    conn = db_connect()
    try:
        counts = {table: int(conn.execute(f"SELECT COUNT(*) AS c FROM {table}").fetchone()["c"]) for table in TABLES}
    finally:
        conn.close()

    print("BOOTSTRAP_OK")
    print("backend:", config.DB_BACKEND)
    if config.DB_BACKEND == "postgres":
        print("database_url_set:", bool(config.DATABASE_URL))
    else:
        print("db_path:", config.DB_PATH)
    print("counts:", counts)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
