"""Google sign-in, cookie sessions and access-token upkeep."""

from __future__ import annotations

import datetime as dt
import hashlib
import hmac
import logging
import secrets
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

from calimbus import config, google_api
from calimbus.db import iso, utcnow

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_token"
STATE_COOKIE = "oauth_state"
REFRESH_ERROR = "RefreshAccessTokenError"

ANONYMOUS: Dict[str, Any] = {"user": None, "csrf": "", "session_id": None, "access_token": None, "error": None}


def token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def sign_value(value: str) -> str:
    digest = hmac.new(config.SECRET_KEY.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"{value}.{digest}"


def verify_signed_value(signed: str) -> Optional[str]:
    if not signed or "." not in signed:
        return None
    value, digest = signed.rsplit(".", 1)
    expected = hmac.new(config.SECRET_KEY.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()
    if hmac.compare_digest(digest, expected):
        return value
    return None


def set_cookie(name: str, value: str, max_age: Optional[int] = None, path: str = "/") -> str:
    parts = [f"{name}={quote(value)}", f"Path={path}", "HttpOnly", "SameSite=Lax"]
    if config.COOKIE_SECURE:
        parts.append("Secure")
    if max_age is not None:
        parts.append(f"Max-Age={max_age}")
    return "; ".join(parts)


def clear_cookie(name: str, path: str = "/") -> str:
    parts = [f"{name}=", "Max-Age=0", f"Path={path}", "HttpOnly", "SameSite=Lax"]
    if config.COOKIE_SECURE:
        parts.append("Secure")
    return "; ".join(parts)


def redirect_uri() -> str:
    return f"{config.BASE_URL}/auth/callback"


def begin_login() -> Tuple[str, str]:
    """Return the Google consent URL and the signed state cookie to set."""
    state = secrets.token_urlsafe(24)
    return google_api.authorization_url(state, redirect_uri()), set_cookie(STATE_COOKIE, sign_value(state), max_age=600)


def upsert_user(conn: Any, profile: Dict[str, Any]) -> str:
    user_id = str(profile.get("sub") or profile.get("id") or "").strip()
    email = str(profile.get("email") or "").strip().lower()
    if not user_id or not email:
        raise ValueError("profile missing subject or email")
    now = iso()
    conn.execute(
        """
        INSERT INTO users (id, email, name, picture, created_at, last_login_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT (id) DO UPDATE SET
            email = excluded.email, name = excluded.name, picture = excluded.picture, last_login_at = excluded.last_login_at
        """,
        (user_id, email, str(profile.get("name") or ""), profile.get("picture"), now, now),
    )
    return user_id


def create_session(
    conn: Any,
    user_id: str,
    tokens: Dict[str, Any],
    ip: str = "",
    user_agent: str = "",
) -> Tuple[str, str]:
    raw_token = secrets.token_urlsafe(32)
    csrf = secrets.token_urlsafe(24)
    expires = utcnow() + dt.timedelta(days=config.SESSION_DAYS)
    token_expires_at = int(time.time()) + int(tokens.get("expires_in") or 3600)
    conn.execute(
        """
        INSERT INTO sessions
        (user_id, token_hash, csrf_token, access_token, refresh_token, token_expires_at, expires_at, created_at, last_seen_at, ip_address, user_agent)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            user_id,
            token_hash(raw_token),
            csrf,
            tokens.get("access_token"),
            tokens.get("refresh_token"),
            token_expires_at,
            expires.isoformat(),
            iso(),
            iso(),
            ip,
            user_agent[:200],
        ),
    )
    return raw_token, csrf


def complete_login(conn: Any, code: str, state: str, signed_state: str, ip: str = "", user_agent: str = "") -> Tuple[str, str]:
    """Exchange an authorization code and open a session for the Google account."""
    expected = verify_signed_value(signed_state)
    if not expected or not state or not hmac.compare_digest(expected, state):
        raise PermissionError("oauth state mismatch")
    tokens = google_api.exchange_code(code, redirect_uri())
    profile = google_api.fetch_userinfo(str(tokens["access_token"]))
    user_id = upsert_user(conn, profile)
    session = create_session(conn, user_id, tokens, ip, user_agent)
    conn.commit()
    logger.info("User %s signed in", user_id)
    return session


def end_session(conn: Any, raw_token: str) -> None:
    if raw_token:
        conn.execute("DELETE FROM sessions WHERE token_hash = ?", (token_hash(raw_token),))
        conn.commit()


def _refresh_if_needed(conn: Any, session: Any) -> Tuple[Optional[str], Optional[str]]:
    access_token = session["access_token"]
    expires_at = int(session["token_expires_at"] or 0)
    if access_token and time.time() < expires_at - config.TOKEN_REFRESH_MARGIN:
        return access_token, None
    if not session["refresh_token"]:
        return access_token, REFRESH_ERROR
    try:
        refreshed = google_api.refresh_access_token(str(session["refresh_token"]))
    except google_api.GoogleAPIError:
        logger.exception("Token refresh failed for user %s", session["user_id"])
        conn.execute("UPDATE sessions SET auth_error = ? WHERE id = ?", (REFRESH_ERROR, session["id"]))
        conn.commit()
        return access_token, REFRESH_ERROR
    access_token = str(refreshed["access_token"])
    conn.execute(
        """
        UPDATE sessions SET access_token = ?, refresh_token = ?, token_expires_at = ?, auth_error = NULL
        WHERE id = ?
        """,
        (
            access_token,
            refreshed.get("refresh_token") or session["refresh_token"],
            int(time.time()) + int(refreshed.get("expires_in") or 3600),
            session["id"],
        ),
    )
    conn.commit()
    logger.info("Refreshed access token for user %s", session["user_id"])
    return access_token, None


def get_auth_context(conn: Any, req: Any) -> Dict[str, Any]:
    """Resolve the session cookie into the user, CSRF token and a usable Google token."""
    token = req.cookies.get(SESSION_COOKIE)
    if not token:
        return dict(ANONYMOUS)

    session = conn.execute(
        """
        SELECT s.*, u.email, u.name, u.picture
        FROM sessions s
        JOIN users u ON u.id = s.user_id
        WHERE s.token_hash = ?
        """,
        (token_hash(token),),
    ).fetchone()
    if not session:
        return dict(ANONYMOUS)

    try:
        expires_at = dt.datetime.fromisoformat(session["expires_at"])
    except ValueError:
        expires_at = utcnow() - dt.timedelta(days=1)
    if expires_at < utcnow():
        conn.execute("DELETE FROM sessions WHERE id = ?", (session["id"],))
        conn.commit()
        return dict(ANONYMOUS)

    conn.execute("UPDATE sessions SET last_seen_at = ? WHERE id = ?", (iso(), session["id"]))
    conn.commit()
    access_token, error = _refresh_if_needed(conn, session)
    return {
        "user": {
            "id": str(session["user_id"]),
            "email": session["email"],
            "name": session["name"],
            "picture": session["picture"],
        },
        "csrf": session["csrf_token"],
        "session_id": session["id"],
        "access_token": access_token,
        "error": error,
    }


def validate_csrf(req: Any, ctx: Dict[str, Any]) -> bool:
    if req.method not in {"POST", "PUT", "PATCH", "DELETE"}:
        return True
    csrf = req.environ.get("HTTP_X_CSRF_TOKEN", "") or req.query.get("csrf_token", "")
    return bool(csrf and hmac.compare_digest(str(csrf), str(ctx.get("csrf") or "")))
