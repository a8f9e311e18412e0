"""Shared fixtures: a throwaway SQLite database, an in-process WSGI client and a fake Google workspace."""

import io
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest

from calimbus import auth, config, db, realtime
from calimbus.google_api import GoogleAPIError
from calimbus.store import BoardStore

USER_ID = "google-user-1"
OTHER_USER_ID = "google-user-2"


@pytest.fixture(autouse=True)
def temp_database(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DB_PATH", tmp_path / "calimbus-test.db")
    monkeypatch.setattr(config, "DB_BACKEND", "sqlite")
    monkeypatch.setattr(config, "GOOGLE_CLIENT_ID", "client-id")
    monkeypatch.setattr(config, "GOOGLE_CLIENT_SECRET", "client-secret")
    db.reset_bootstrap()
    db.ensure_bootstrap()
    yield tmp_path / "calimbus-test.db"
    db.reset_bootstrap()
    with realtime.LISTENERS_LOCK:
        realtime.LISTENERS.clear()


@pytest.fixture
def conn(temp_database):
    connection = db.db_connect()
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    return BoardStore(conn, USER_ID)


class WSGIResponse:
    def __init__(self, status: str, headers: List[Tuple[str, str]], body: bytes):
        self.status = status
        self.headers = headers
        self.body = body

    @property
    def code(self) -> int:
        return int(self.status.split()[0])

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="ignore")

    def json(self) -> Dict[str, Any]:
        return json.loads(self.text)

    def header(self, name: str) -> Optional[str]:
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return None


class WSGIClient:
    def __init__(self):
        self.cookies: Dict[str, str] = {}
        self.csrf = ""

    def _cookie_header(self) -> str:
        return "; ".join(f"{k}={v}" for k, v in self.cookies.items())

    def request(
        self,
        path: str,
        method: str = "GET",
        payload: Any = None,
        raw: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        csrf: bool = True,
    ) -> WSGIResponse:
        from calimbus.server import app

        method = method.upper()
        path_info, _, query = path.partition("?")
        body = raw if raw is not None else (json.dumps(payload).encode("utf-8") if payload is not None else b"")
        environ = {
            "REQUEST_METHOD": method,
            "PATH_INFO": path_info,
            "QUERY_STRING": query,
            "wsgi.input": io.BytesIO(body),
            "CONTENT_LENGTH": str(len(body)),
            "CONTENT_TYPE": "application/json",
            "REMOTE_ADDR": "127.0.0.1",
            "HTTP_USER_AGENT": "calimbus-tests",
            "HTTP_COOKIE": self._cookie_header(),
            "wsgi.url_scheme": "http",
            "SERVER_NAME": "localhost",
            "SERVER_PORT": "80",
            "wsgi.errors": io.StringIO(),
        }
        if csrf and self.csrf and method in {"POST", "PUT", "PATCH", "DELETE"}:
            environ["HTTP_X_CSRF_TOKEN"] = self.csrf
        for key, value in (headers or {}).items():
            environ[f"HTTP_{key.upper().replace('-', '_')}"] = value

        captured: Dict[str, Any] = {}

        def start_response(status, response_headers, exc_info=None):
            captured["status"] = status
            captured["headers"] = response_headers

        chunks = app(environ, start_response)
        data = b"".join(chunks)
        return WSGIResponse(captured["status"], captured["headers"], data)

    def get(self, path: str, **kwargs: Any) -> WSGIResponse:
        return self.request(path, "GET", **kwargs)

    def post(self, path: str, payload: Any = None, **kwargs: Any) -> WSGIResponse:
        return self.request(path, "POST", payload if payload is not None else {}, **kwargs)

    def put(self, path: str, payload: Any = None, **kwargs: Any) -> WSGIResponse:
        return self.request(path, "PUT", payload if payload is not None else {}, **kwargs)

    def patch(self, path: str, payload: Any = None, **kwargs: Any) -> WSGIResponse:
        return self.request(path, "PATCH", payload if payload is not None else {}, **kwargs)

    def delete(self, path: str, payload: Any = None, **kwargs: Any) -> WSGIResponse:
        return self.request(path, "DELETE", payload, **kwargs)


def sign_in(conn, client: WSGIClient, user_id: str = USER_ID, expires_in: int = 3600) -> WSGIClient:
    auth.upsert_user(conn, {"sub": user_id, "email": f"{user_id}@example.com", "name": "Test User"})
    raw_token, csrf = auth.create_session(
        conn,
        user_id,
        {"access_token": "access-token", "refresh_token": "refresh-token", "expires_in": expires_in},
    )
    conn.commit()
    client.cookies[auth.SESSION_COOKIE] = raw_token
    client.csrf = csrf
    return client


@pytest.fixture
def client():
    return WSGIClient()


@pytest.fixture
def user_client(conn, client):
    return sign_in(conn, client)


def make_task(task_id: str, title: str, due: Optional[str] = None, notes: Optional[str] = None, status: str = "needsAction"):
    return {
        "id": task_id,
        "title": title,
        "notes": notes,
        "due": due,
        "status": status,
        "taskListId": "list-1",
        "type": "task",
    }


def make_event(event_id: str, title: str, start: str, end: str, location=None, description=None):
    return {
        "id": event_id,
        "title": title,
        "description": description,
        "start": start,
        "end": end,
        "location": location,
        "colorId": None,
        "calendarId": "primary",
        "type": "event",
    }


class FakeWorkspace:
    """In-memory stand-in for GoogleWorkspace."""

    def __init__(self, events=None, tasks=None):
        self.events = {e["id"]: dict(e) for e in events or []}
        self.tasks = {t["id"]: dict(t) for t in tasks or []}
        self.fail = set()
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self._counter = 0

    def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            raise GoogleAPIError(500, f"{name} failed")

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-new-{self._counter}"

    def list_events(self):
        self._call("list_events")
        return [dict(e) for e in self.events.values()]

    def list_tasks(self):
        self._call("list_tasks")
        return [dict(t) for t in self.tasks.values()]

    def create_task(self, title, due=None, notes=None, task_list_id=None):
        self._call("create_task", title, due, notes, task_list_id)
        task = make_task(self._next_id("task"), title, due=due, notes=notes)
        task["taskListId"] = task_list_id or "list-1"
        self.tasks[task["id"]] = dict(task)
        return task

    def create_event(self, title, date, **kwargs):
        self._call("create_event", title, date)
        event = make_event(self._next_id("event"), title, date, date, kwargs.get("location"), kwargs.get("description"))
        self.events[event["id"]] = dict(event)
        return event

    def insert_event(self, body, calendar_id="primary"):
        self._call("insert_event", body, calendar_id)
        start = body["start"].get("date") or body["start"].get("dateTime")
        end = body["end"].get("date") or body["end"].get("dateTime")
        event = make_event(
            self._next_id("event"),
            body["summary"],
            start,
            end,
            body.get("location"),
            body.get("description"),
        )
        self.events[event["id"]] = dict(event)
        return event

    def delete_event(self, event_id, calendar_id="primary"):
        self._call("delete_event", event_id, calendar_id)
        if event_id not in self.events:
            raise GoogleAPIError(404, "not found")
        del self.events[event_id]

    def delete_task(self, task_list_id, task_id):
        self._call("delete_task", task_list_id, task_id)
        if task_id not in self.tasks:
            raise GoogleAPIError(404, "not found")
        del self.tasks[task_id]

    def set_task_status(self, task_list_id, task_id, completed):
        self._call("set_task_status", task_list_id, task_id, completed)
        self.tasks[task_id]["status"] = "completed" if completed else "needsAction"
        return {"id": task_id, "status": self.tasks[task_id]["status"]}

    def update_task_due(self, task_list_id, task_id, due):
        self._call("update_task_due", task_list_id, task_id, due)
        self.tasks[task_id]["due"] = due
        return {"id": task_id, "due": f"{due}T00:00:00.000Z"}
