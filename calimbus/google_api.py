"""Google OAuth, Calendar v3 and Tasks v1 over plain HTTPS/JSON.

Every call raises GoogleAPIError on failure. Listings fan out across the
user's calendars / task lists in a thread pool; a list that fails is logged
and skipped so one broken calendar does not hide the others.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib import error as urlerror
from urllib import request as urlrequest
from urllib.parse import quote, urlencode

from calimbus import config

logger = logging.getLogger(__name__)


class GoogleAPIError(RuntimeError):
    def __init__(self, status: int, detail: str):
        super().__init__(f"Google API {status}: {detail}")
        self.status = status
        self.detail = detail


def google_request(
    method: str,
    url: str,
    access_token: Optional[str] = None,
    params: Optional[Dict[str, str]] = None,
    payload: Optional[Dict[str, Any]] = None,
    form: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    if params:
        url = f"{url}{'&' if '?' in url else '?'}{urlencode(params)}"
    body: Optional[bytes] = None
    req = urlrequest.Request(url, method=method.upper())
    req.add_header("Accept", "application/json")
    if access_token:
        req.add_header("Authorization", f"Bearer {access_token}")
    if form is not None:
        body = urlencode(form).encode("utf-8")
        req.add_header("Content-Type", "application/x-www-form-urlencoded")
    elif payload is not None:
        body = json.dumps(payload).encode("utf-8")
        req.add_header("Content-Type", "application/json")
    req.data = body

    try:
        with urlrequest.urlopen(req, timeout=config.HTTP_TIMEOUT) as resp:
            raw = resp.read().decode("utf-8", errors="ignore")
    except urlerror.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="ignore")[:600]
        raise GoogleAPIError(exc.code, detail or str(exc.reason)) from exc
    except urlerror.URLError as exc:
        raise GoogleAPIError(0, f"request failed: {str(exc.reason)[:300]}") from exc
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise GoogleAPIError(502, "invalid JSON in response") from exc
    return data if isinstance(data, dict) else {"items": data}


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


def oauth_configured() -> bool:
    return bool(config.GOOGLE_CLIENT_ID and config.GOOGLE_CLIENT_SECRET)


def authorization_url(state: str, redirect_uri: str) -> str:
    params = {
        "client_id": config.GOOGLE_CLIENT_ID,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(config.GOOGLE_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{config.GOOGLE_AUTH_URL}?{urlencode(params)}"


def exchange_code(code: str, redirect_uri: str) -> Dict[str, Any]:
    data = google_request(
        "POST",
        config.GOOGLE_TOKEN_URL,
        form={
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        },
    )
    if not data.get("access_token"):
        raise GoogleAPIError(502, "token response missing access_token")
    return data


def refresh_access_token(refresh_token: str) -> Dict[str, Any]:
    data = google_request(
        "POST",
        config.GOOGLE_TOKEN_URL,
        form={
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        },
    )
    if not data.get("access_token"):
        raise GoogleAPIError(502, "token response missing access_token")
    return data


def fetch_userinfo(access_token: str) -> Dict[str, Any]:
    return google_request("GET", config.GOOGLE_USERINFO_URL, access_token)


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------


def parse_iso_date(value: object) -> Optional[dt.date]:
    text = str(value or "").strip()[:10]
    if len(text) != 10:
        return None
    try:
        return dt.date.fromisoformat(text)
    except ValueError:
        return None


def to_rfc3339_due(value: str) -> str:
    """Google Tasks stores due dates as midnight UTC timestamps."""
    if "T" in value:
        return value
    return f"{value}T00:00:00.000Z"


def _shift_time_value(value: str, days: int) -> str:
    if not value or not days:
        return value
    if len(value) == 10:
        return (dt.date.fromisoformat(value) + dt.timedelta(days=days)).isoformat()
    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    shifted = dt.datetime.fromisoformat(normalized) + dt.timedelta(days=days)
    return shifted.isoformat()


def _time_obj(value: str, timezone: Optional[str] = None) -> Dict[str, str]:
    if len(value) == 10:
        return {"date": value}
    out = {"dateTime": value}
    if timezone:
        out["timeZone"] = timezone
    return out


def event_body_from_item(item: Dict[str, Any], day_offset: int = 0) -> Dict[str, Any]:
    """Build an insert body that recreates a normalized event, optionally shifted."""
    start = _shift_time_value(str(item.get("start") or ""), day_offset)
    end = _shift_time_value(str(item.get("end") or "") or start, day_offset)
    body: Dict[str, Any] = {
        "summary": item.get("title") or "Untitled",
        "start": _time_obj(start),
        "end": _time_obj(end),
    }
    for key, target in (("description", "description"), ("location", "location"), ("colorId", "colorId")):
        if item.get(key):
            body[target] = item[key]
    return body


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


def normalize_event(event: Dict[str, Any], calendar_id: str) -> Optional[Dict[str, Any]]:
    if not event.get("id") or not event.get("summary"):
        return None
    start = event.get("start") or {}
    end = event.get("end") or {}
    return {
        "id": str(event["id"]),
        "title": str(event["summary"]),
        "description": event.get("description") or None,
        "start": start.get("dateTime") or start.get("date") or "",
        "end": end.get("dateTime") or end.get("date") or "",
        "location": event.get("location") or None,
        "colorId": event.get("colorId") or None,
        "calendarId": calendar_id,
        "type": "event",
    }


def _calendar_path(calendar_id: str) -> str:
    return f"{config.GOOGLE_CALENDAR_API_BASE}/calendars/{quote(calendar_id, safe='')}"


def _default_window(today: Optional[dt.date] = None) -> Tuple[dt.datetime, dt.datetime]:
    """First day of this month through the last day of next month."""
    today = today or dt.date.today()
    first = today.replace(day=1)
    month_after = (first.month + 1) % 12 + 1
    year_after = first.year + (1 if first.month >= 11 else 0)
    end = dt.date(year_after, month_after, 1)
    return (
        dt.datetime.combine(first, dt.time(), tzinfo=dt.timezone.utc),
        dt.datetime.combine(end, dt.time(), tzinfo=dt.timezone.utc),
    )


def in_listing_window(item: Dict[str, Any], today: Optional[dt.date] = None) -> bool:
    """Whether a listing made today would include the item at all."""
    if item.get("type") != "event":
        return True
    start = parse_iso_date(item.get("start"))
    if start is None:
        return False
    end_raw = str(item.get("end") or "")
    last = parse_iso_date(end_raw) or start
    # All-day end dates are exclusive.
    if len(end_raw) == 10 and last > start:
        last -= dt.timedelta(days=1)
    first, end = _default_window(today)
    return start < end.date() and last >= first.date()


def _fan_out(fetch: Callable[[Dict[str, Any]], List[Dict[str, Any]]], sources: Iterable[Dict[str, Any]], what: str) -> List[Dict[str, Any]]:
    sources = [s for s in sources if s.get("id")]
    if not sources:
        return []
    out: List[Dict[str, Any]] = []
    with ThreadPoolExecutor(max_workers=min(config.FETCH_WORKERS, len(sources))) as pool:
        futures = [(source, pool.submit(fetch, source)) for source in sources]
        for source, future in futures:
            try:
                out.extend(future.result())
            except GoogleAPIError:
                logger.exception("Failed to fetch %s from %s", what, source.get("id"))
    return out


def list_calendars(access_token: str) -> List[Dict[str, Any]]:
    data = google_request("GET", f"{config.GOOGLE_CALENDAR_API_BASE}/users/me/calendarList", access_token)
    return [c for c in data.get("items") or [] if isinstance(c, dict)]


def list_calendar_events(
    access_token: str,
    time_min: Optional[dt.datetime] = None,
    time_max: Optional[dt.datetime] = None,
) -> List[Dict[str, Any]]:
    default_min, default_max = _default_window()
    window = {
        "timeMin": (time_min or default_min).isoformat().replace("+00:00", "Z"),
        "timeMax": (time_max or default_max).isoformat().replace("+00:00", "Z"),
        "singleEvents": "true",
        "orderBy": "startTime",
        "maxResults": "250",
    }

    def fetch(calendar: Dict[str, Any]) -> List[Dict[str, Any]]:
        calendar_id = str(calendar["id"])
        events: List[Dict[str, Any]] = []
        page_token = ""
        for _ in range(5):
            params = dict(window)
            if page_token:
                params["pageToken"] = page_token
            data = google_request("GET", f"{_calendar_path(calendar_id)}/events", access_token, params=params)
            for raw in data.get("items") or []:
                event = normalize_event(raw, calendar_id) if isinstance(raw, dict) else None
                if event:
                    events.append(event)
            page_token = str(data.get("nextPageToken") or "")
            if not page_token:
                break
        return events

    return _fan_out(fetch, list_calendars(access_token), "events")


def insert_event(access_token: str, body: Dict[str, Any], calendar_id: str = "primary") -> Dict[str, Any]:
    created = google_request("POST", f"{_calendar_path(calendar_id)}/events", access_token, payload=body)
    event = normalize_event(created, calendar_id)
    if not event:
        raise GoogleAPIError(502, "created event missing id or summary")
    logger.info("Created event %s on calendar %s", event["id"], calendar_id)
    return event


def create_event(
    access_token: str,
    title: str,
    date: str,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
    all_day: bool = True,
    timezone: Optional[str] = None,
    location: Optional[str] = None,
    description: Optional[str] = None,
    calendar_id: str = "primary",
) -> Dict[str, Any]:
    day = parse_iso_date(date)
    if day is None:
        raise ValueError(f"invalid date: {date!r}")
    body: Dict[str, Any] = {"summary": title}
    if all_day:
        # All-day end dates are exclusive.
        body["start"] = {"date": day.isoformat()}
        body["end"] = {"date": (day + dt.timedelta(days=1)).isoformat()}
    else:
        tz = timezone or config.DEFAULT_TIMEZONE
        body["start"] = {"dateTime": f"{day.isoformat()}T{start_time or '09:00'}:00", "timeZone": tz}
        body["end"] = {"dateTime": f"{day.isoformat()}T{end_time or '10:00'}:00", "timeZone": tz}
    if location:
        body["location"] = location
    if description:
        body["description"] = description
    return insert_event(access_token, body, calendar_id)


def delete_event(access_token: str, event_id: str, calendar_id: str = "primary") -> None:
    google_request("DELETE", f"{_calendar_path(calendar_id)}/events/{quote(event_id, safe='')}", access_token)
    logger.info("Deleted event %s from calendar %s", event_id, calendar_id)


def watch_calendar(
    access_token: str,
    channel_id: str,
    address: str,
    expiration_ms: int,
    calendar_id: str = "primary",
) -> Dict[str, Any]:
    return google_request(
        "POST",
        f"{_calendar_path(calendar_id)}/events/watch",
        access_token,
        payload={"id": channel_id, "type": "web_hook", "address": address, "expiration": str(expiration_ms)},
    )


def stop_channel(access_token: str, channel_id: str, resource_id: str) -> None:
    google_request(
        "POST",
        f"{config.GOOGLE_CALENDAR_API_BASE}/channels/stop",
        access_token,
        payload={"id": channel_id, "resourceId": resource_id},
    )


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


def normalize_task(task: Dict[str, Any], task_list_id: str) -> Optional[Dict[str, Any]]:
    if not task.get("id") or not task.get("title"):
        return None
    due = parse_iso_date(task.get("due"))
    return {
        "id": str(task["id"]),
        "title": str(task["title"]),
        "notes": task.get("notes") or None,
        "due": due.isoformat() if due else None,
        "status": "completed" if task.get("status") == "completed" else "needsAction",
        "taskListId": task_list_id,
        "type": "task",
    }


def _task_path(task_list_id: str, task_id: Optional[str] = None) -> str:
    path = f"{config.GOOGLE_TASKS_API_BASE}/lists/{quote(task_list_id, safe='')}/tasks"
    if task_id:
        path = f"{path}/{quote(task_id, safe='')}"
    return path


def list_task_lists(access_token: str) -> List[Dict[str, Any]]:
    data = google_request("GET", f"{config.GOOGLE_TASKS_API_BASE}/users/@me/lists", access_token)
    return [t for t in data.get("items") or [] if isinstance(t, dict)]


def list_tasks(access_token: str) -> List[Dict[str, Any]]:
    def fetch(task_list: Dict[str, Any]) -> List[Dict[str, Any]]:
        list_id = str(task_list["id"])
        data = google_request(
            "GET",
            _task_path(list_id),
            access_token,
            params={"maxResults": "100", "showCompleted": "true", "showHidden": "false"},
        )
        tasks = []
        for raw in data.get("items") or []:
            task = normalize_task(raw, list_id) if isinstance(raw, dict) else None
            if task:
                tasks.append(task)
        return tasks

    return _fan_out(fetch, list_task_lists(access_token), "tasks")


def default_task_list_id(access_token: str) -> str:
    lists = list_task_lists(access_token)
    if not lists or not lists[0].get("id"):
        raise GoogleAPIError(404, "no task lists found")
    return str(lists[0]["id"])


def create_task(
    access_token: str,
    title: str,
    due: Optional[str] = None,
    notes: Optional[str] = None,
    task_list_id: Optional[str] = None,
) -> Dict[str, Any]:
    list_id = task_list_id or default_task_list_id(access_token)
    body: Dict[str, Any] = {"title": title}
    if due:
        body["due"] = to_rfc3339_due(due)
    if notes:
        body["notes"] = notes
    created = google_request("POST", _task_path(list_id), access_token, payload=body)
    task = normalize_task(created, list_id)
    if not task:
        raise GoogleAPIError(502, "created task missing id or title")
    logger.info("Created task %s in list %s", task["id"], list_id)
    return task


def delete_task(access_token: str, task_list_id: str, task_id: str) -> None:
    google_request("DELETE", _task_path(task_list_id, task_id), access_token)
    logger.info("Deleted task %s from list %s", task_id, task_list_id)


def set_task_status(access_token: str, task_list_id: str, task_id: str, completed: bool) -> Dict[str, Any]:
    # Google clears the completion timestamp itself when status returns to needsAction.
    body = {"status": "completed" if completed else "needsAction"}
    updated = google_request("PATCH", _task_path(task_list_id, task_id), access_token, payload=body)
    return {"id": updated.get("id", task_id), "status": updated.get("status", body["status"])}


def update_task_due(access_token: str, task_list_id: str, task_id: str, due: str) -> Dict[str, Any]:
    updated = google_request(
        "PATCH",
        _task_path(task_list_id, task_id),
        access_token,
        payload={"due": to_rfc3339_due(due)},
    )
    return {"id": updated.get("id", task_id), "due": updated.get("due", to_rfc3339_due(due))}


class GoogleWorkspace:
    """Calendar and Tasks operations bound to one user's access token."""

    def __init__(self, access_token: str):
        self.access_token = access_token

    def list_events(self) -> List[Dict[str, Any]]:
        return list_calendar_events(self.access_token)

    def list_tasks(self) -> List[Dict[str, Any]]:
        return list_tasks(self.access_token)

    def create_task(self, title: str, due: Optional[str] = None, notes: Optional[str] = None, task_list_id: Optional[str] = None) -> Dict[str, Any]:
        return create_task(self.access_token, title, due=due, notes=notes, task_list_id=task_list_id)

    def create_event(self, title: str, date: str, **kwargs: Any) -> Dict[str, Any]:
        return create_event(self.access_token, title, date, **kwargs)

    def insert_event(self, body: Dict[str, Any], calendar_id: str = "primary") -> Dict[str, Any]:
        return insert_event(self.access_token, body, calendar_id)

    def delete_event(self, event_id: str, calendar_id: str = "primary") -> None:
        delete_event(self.access_token, event_id, calendar_id)

    def delete_task(self, task_list_id: str, task_id: str) -> None:
        delete_task(self.access_token, task_list_id, task_id)

    def set_task_status(self, task_list_id: str, task_id: str, completed: bool) -> Dict[str, Any]:
        return set_task_status(self.access_token, task_list_id, task_id, completed)

    def update_task_due(self, task_list_id: str, task_id: str, due: str) -> Dict[str, Any]:
        return update_task_due(self.access_token, task_list_id, task_id, due)
