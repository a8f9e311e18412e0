"""WSGI request/response primitives shared by the dispatcher and handlers."""

from __future__ import annotations

import html
import json
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs, unquote

SECURITY_HEADERS = [
    ("X-Frame-Options", "DENY"),
    ("X-Content-Type-Options", "nosniff"),
    ("Referrer-Policy", "strict-origin-when-cross-origin"),
    ("Permissions-Policy", "camera=(), microphone=(), geolocation=()"),
]
CSP = (
    "default-src 'self'; style-src 'self'; script-src 'self'; img-src 'self' data: https:; "
    "connect-src 'self'; base-uri 'self'; form-action 'self' https://accounts.google.com"
)


def h(value: object) -> str:
    if value is None:
        return ""
    return html.escape(str(value), quote=True)


class Request:
    """Thin wrapper over the WSGI environ with lazy JSON body parsing."""

    def __init__(self, environ: dict):
        self.environ = environ
        self.method = environ.get("REQUEST_METHOD", "GET").upper()
        self.path = environ.get("PATH_INFO", "/") or "/"
        self.query = {k: v[0] for k, v in parse_qs(environ.get("QUERY_STRING", "")).items()}
        self.cookies = self._parse_cookies(environ.get("HTTP_COOKIE", ""))
        self._body: Optional[bytes] = None
        self._json: Optional[Dict[str, Any]] = None
        self.json_invalid = False

    def _parse_cookies(self, raw_cookie: str) -> Dict[str, str]:
        cookies: Dict[str, str] = {}
        if not raw_cookie:
            return cookies
        for token in raw_cookie.split(";"):
            if "=" not in token:
                continue
            key, value = token.split("=", 1)
            cookies[key.strip()] = unquote(value.strip())
        return cookies

    def header(self, name: str, default: str = "") -> str:
        return str(self.environ.get("HTTP_" + name.upper().replace("-", "_"), default) or default)

    @property
    def body(self) -> bytes:
        if self._body is None:
            try:
                length = int(self.environ.get("CONTENT_LENGTH") or 0)
            except ValueError:
                length = 0
            self._body = self.environ["wsgi.input"].read(length) if length > 0 else b""
        return self._body

    @property
    def json(self) -> Dict[str, Any]:
        if self._json is None:
            self._json = {}
            raw = self.body.decode("utf-8", errors="ignore").strip()
            if raw:
                try:
                    parsed = json.loads(raw)
                except json.JSONDecodeError:
                    self.json_invalid = True
                else:
                    if isinstance(parsed, dict):
                        self._json = parsed
                    else:
                        self.json_invalid = True
        return self._json

    def json_ok(self) -> bool:
        return bool(self.json is not None and not self.json_invalid)

    def param(self, name: str, default: Any = None) -> Any:
        """Look a value up in the JSON body first, then the query string."""
        value = self.json.get(name)
        if value is None:
            value = self.query.get(name, default)
        return value

    @property
    def client_ip(self) -> str:
        forwarded = self.header("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return str(self.environ.get("REMOTE_ADDR", "unknown"))


class Response:
    """Simple response object that centralizes security headers."""

    def __init__(
        self,
        body: Any = "",
        status: str = "200 OK",
        content_type: str = "text/html; charset=utf-8",
        headers: Optional[List[Tuple[str, str]]] = None,
        cache: str = "no-store",
    ):
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        self.status = status
        self.content_type = content_type
        self.headers = headers or []
        self.cache = cache

    def header_list(self) -> List[Tuple[str, str]]:
        base = [("Content-Type", self.content_type), ("Cache-Control", self.cache)]
        base.extend(SECURITY_HEADERS)
        if self.content_type.startswith("text/html"):
            base.append(("Content-Security-Policy", CSP))
        return base + self.headers

    def wsgi(self, start_response) -> Iterable[bytes]:
        start_response(self.status, self.header_list())
        return [self.body]


class StreamResponse(Response):
    """Response whose body is an iterator of byte chunks (server-sent events)."""

    def __init__(self, chunks: Iterable[bytes], content_type: str = "text/event-stream"):
        super().__init__(b"", content_type=content_type, cache="no-cache")
        self.chunks = chunks
        self.headers.append(("X-Accel-Buffering", "no"))

    def wsgi(self, start_response) -> Iterable[bytes]:
        start_response(self.status, self.header_list())
        return self.chunks


def redirect(location: str, cookies: Optional[List[str]] = None) -> Response:
    headers = [("Location", location)]
    for cookie in cookies or []:
        headers.append(("Set-Cookie", cookie))
    return Response("", status="302 Found", headers=headers)


def json_response(payload: object, status: str = "200 OK", cookies: Optional[List[str]] = None) -> Response:
    headers = [("Set-Cookie", cookie) for cookie in cookies or []]
    return Response(json.dumps(payload), status=status, content_type="application/json; charset=utf-8", headers=headers)


def json_error(code: str, status: str = "400 Bad Request", **extra: Any) -> Response:
    payload: Dict[str, Any] = {"ok": False, "error": code}
    payload.update(extra)
    return json_response(payload, status=status)
