"""Runtime configuration read from the environment at import time.

CALIMBUS_* variables take precedence; generic container variables
(HOST, PORT, DATABASE_URL, ...) are honoured as fallbacks.
"""

from __future__ import annotations

import os
from pathlib import Path

APP_NAME = "Calimbus"
APP_TAGLINE = "Your calendar and tasks as a Kanban board"
BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
STATIC_DIR = Path(__file__).resolve().parent / "static"

DB_PATH = Path(os.environ.get("CALIMBUS_DB_PATH", str(DATA_DIR / "calimbus.db")))
DATABASE_URL = os.environ.get("CALIMBUS_DATABASE_URL", os.environ.get("DATABASE_URL", "")).strip()
DB_BACKEND = "postgres" if DATABASE_URL.startswith(("postgres://", "postgresql://")) else "sqlite"
DB_BUSY_TIMEOUT_MS = max(1000, int(os.environ.get("CALIMBUS_DB_BUSY_TIMEOUT_MS", "6000")))
DB_JOURNAL_MODE = os.environ.get("CALIMBUS_DB_JOURNAL_MODE", "WAL").strip().upper()

SECRET_KEY = os.environ.get("CALIMBUS_SECRET_KEY", "change-this-secret-in-production")
COOKIE_SECURE = os.environ.get("CALIMBUS_COOKIE_SECURE", "0") == "1"
SESSION_DAYS = int(os.environ.get("CALIMBUS_SESSION_DAYS", "30"))
HOST = os.environ.get("CALIMBUS_HOST", os.environ.get("HOST", "127.0.0.1"))
PORT = int(os.environ.get("CALIMBUS_PORT", os.environ.get("PORT", "3000")))
WSGI_THREADED = os.environ.get("CALIMBUS_WSGI_THREADED", "1") == "1"
LOG_LEVEL = os.environ.get("CALIMBUS_LOG_LEVEL", "INFO").strip().upper()

GOOGLE_CLIENT_ID = os.environ.get("CALIMBUS_GOOGLE_CLIENT_ID", os.environ.get("GOOGLE_CLIENT_ID", ""))
GOOGLE_CLIENT_SECRET = os.environ.get("CALIMBUS_GOOGLE_CLIENT_SECRET", os.environ.get("GOOGLE_CLIENT_SECRET", ""))
BASE_URL = os.environ.get("CALIMBUS_BASE_URL", os.environ.get("NEXTAUTH_URL", f"http://localhost:{PORT}")).rstrip("/")
WEBHOOK_URL = os.environ.get("WEBHOOK_URL", f"{BASE_URL}/api/webhooks/calendar")
DEFAULT_TIMEZONE = os.environ.get("CALIMBUS_DEFAULT_TIMEZONE", "UTC")
HTTP_TIMEOUT = float(os.environ.get("CALIMBUS_HTTP_TIMEOUT", "20"))
FETCH_WORKERS = max(1, int(os.environ.get("CALIMBUS_FETCH_WORKERS", "6")))

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"
GOOGLE_TASKS_API_BASE = "https://tasks.googleapis.com/tasks/v1"
GOOGLE_SCOPES = [
    "openid",
    "email",
    "profile",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/tasks",
]

# Seconds before expiry at which an access token is refreshed.
TOKEN_REFRESH_MARGIN = 300
# Google caps calendar watch channels at seven days.
WEBHOOK_CHANNEL_DAYS = 7
SSE_HEARTBEAT_SECONDS = 55

DEFAULT_COLUMNS = [
    {"name": "Events", "position": 0, "color": "#6b7280"},
    {"name": "Tasks", "position": 1, "color": "#3b82f6"},
    {"name": "Roll Over", "position": 2, "color": "#6b7280"},
    {"name": "Done", "position": 3, "color": "#22c55e"},
    {"name": "Trash", "position": 4, "color": "#ef4444"},
]
DEFAULT_COLUMN_COLOR = "#6b7280"
