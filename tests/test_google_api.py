import datetime as dt

import pytest

from calimbus import google_api
from calimbus.google_api import GoogleAPIError


def test_normalize_event_prefers_datetime():
    raw = {
        "id": "e1",
        "summary": "Standup",
        "start": {"dateTime": "2025-01-10T09:00:00Z"},
        "end": {"dateTime": "2025-01-10T09:15:00Z"},
        "location": "",
    }
    event = google_api.normalize_event(raw, "work")
    assert event["start"] == "2025-01-10T09:00:00Z"
    assert event["calendarId"] == "work"
    assert event["location"] is None
    assert event["type"] == "event"


def test_normalize_drops_untitled_items():
    assert google_api.normalize_event({"id": "e1", "start": {"date": "2025-01-10"}}, "primary") is None
    assert google_api.normalize_task({"id": "t1", "title": ""}, "list") is None


def test_normalize_task_truncates_due_to_date():
    task = google_api.normalize_task(
        {"id": "t1", "title": "Report", "due": "2025-01-10T00:00:00.000Z", "status": "completed"}, "list-1"
    )
    assert task["due"] == "2025-01-10"
    assert task["status"] == "completed"
    assert task["taskListId"] == "list-1"


def test_due_dates_are_sent_as_midnight_utc():
    assert google_api.to_rfc3339_due("2025-01-10") == "2025-01-10T00:00:00.000Z"
    assert google_api.to_rfc3339_due("2025-01-10T12:00:00Z") == "2025-01-10T12:00:00Z"


def test_parse_iso_date():
    assert google_api.parse_iso_date("2025-01-10T09:00:00Z") == dt.date(2025, 1, 10)
    assert google_api.parse_iso_date("yesterday") is None
    assert google_api.parse_iso_date(None) is None


def test_event_body_shift_keeps_all_day_shape():
    item = {"title": "Trip", "start": "2025-01-30", "end": "2025-02-01", "location": "Oslo"}
    body = google_api.event_body_from_item(item, day_offset=2)
    assert body == {
        "summary": "Trip",
        "start": {"date": "2025-02-01"},
        "end": {"date": "2025-02-03"},
        "location": "Oslo",
    }


def test_event_body_shift_handles_zulu_times():
    item = {"title": "Call", "start": "2025-01-10T09:00:00Z", "end": "2025-01-10T10:00:00Z"}
    body = google_api.event_body_from_item(item, day_offset=1)
    assert body["start"] == {"dateTime": "2025-01-11T09:00:00+00:00"}
    assert body["end"] == {"dateTime": "2025-01-11T10:00:00+00:00"}


@pytest.mark.parametrize(
    "today, end",
    [
        (dt.date(2025, 1, 15), dt.date(2025, 3, 1)),
        (dt.date(2025, 11, 3), dt.date(2026, 1, 1)),
        (dt.date(2025, 12, 31), dt.date(2026, 2, 1)),
    ],
)
def test_default_window_covers_this_and_next_month(today, end):
    start, stop = google_api._default_window(today)
    assert start.date() == today.replace(day=1)
    assert stop.date() == end


def test_listing_window_membership():
    today = dt.date(2025, 1, 15)
    assert google_api.in_listing_window({"type": "event", "start": "2025-01-01"}, today)
    assert google_api.in_listing_window({"type": "event", "start": "2025-02-28T23:00:00Z"}, today)
    assert not google_api.in_listing_window({"type": "event", "start": "2025-03-01"}, today)
    assert not google_api.in_listing_window({"type": "event", "start": "2024-12-31"}, today)
    assert not google_api.in_listing_window({"type": "event", "start": "2024-12-31", "end": "2025-01-01"}, today)
    assert google_api.in_listing_window({"type": "event", "start": "2024-12-30", "end": "2025-01-03"}, today)
    assert not google_api.in_listing_window({"type": "event"}, today)
    assert google_api.in_listing_window({"type": "task", "due": "2019-05-01"}, today)


def test_create_event_all_day_end_is_exclusive(monkeypatch):
    sent = {}

    def fake_request(method, url, access_token=None, params=None, payload=None, form=None):
        sent["payload"] = payload
        return {"id": "e1", "summary": payload["summary"], "start": payload["start"], "end": payload["end"]}

    monkeypatch.setattr(google_api, "google_request", fake_request)
    event = google_api.create_event("token", "Holiday", "2025-12-31")
    assert sent["payload"]["end"] == {"date": "2026-01-01"}
    assert event["start"] == "2025-12-31"

    with pytest.raises(ValueError):
        google_api.create_event("token", "Holiday", "31/12/2025")


def test_listing_skips_a_failing_calendar(monkeypatch):
    def fake_request(method, url, access_token=None, params=None, payload=None, form=None):
        if url.endswith("/calendarList"):
            return {"items": [{"id": "good"}, {"id": "broken"}]}
        if "/calendars/broken/" in url:
            raise GoogleAPIError(403, "forbidden")
        return {"items": [{"id": "e1", "summary": "Lunch", "start": {"date": "2025-01-10"}, "end": {"date": "2025-01-11"}}]}

    monkeypatch.setattr(google_api, "google_request", fake_request)
    events = google_api.list_calendar_events("token")
    assert [(e["id"], e["calendarId"]) for e in events] == [("e1", "good")]


def test_task_listing_follows_every_list(monkeypatch):
    def fake_request(method, url, access_token=None, params=None, payload=None, form=None):
        if url.endswith("/users/@me/lists"):
            return {"items": [{"id": "a"}, {"id": "b"}]}
        list_id = url.split("/lists/")[1].split("/")[0]
        return {"items": [{"id": f"{list_id}-1", "title": f"from {list_id}"}]}

    monkeypatch.setattr(google_api, "google_request", fake_request)
    tasks = google_api.list_tasks("token")
    assert sorted((t["id"], t["taskListId"]) for t in tasks) == [("a-1", "a"), ("b-1", "b")]


def test_set_task_status_patches_status(monkeypatch):
    calls = []

    def fake_request(method, url, access_token=None, params=None, payload=None, form=None):
        calls.append((method, url, payload))
        return {"id": "t1", "status": payload["status"]}

    monkeypatch.setattr(google_api, "google_request", fake_request)
    assert google_api.set_task_status("token", "L", "t1", False)["status"] == "needsAction"
    method, url, payload = calls[0]
    assert method == "PATCH"
    assert url.endswith("/lists/L/tasks/t1")


def test_refresh_requires_access_token_in_response(monkeypatch):
    monkeypatch.setattr(google_api, "google_request", lambda *a, **k: {"error": "invalid_grant"})
    with pytest.raises(GoogleAPIError):
        google_api.refresh_access_token("rt")


def test_authorization_url_requests_offline_consent():
    url = google_api.authorization_url("s1", "http://localhost/auth/callback")
    assert "access_type=offline" in url
    assert "prompt=consent" in url
    assert "state=s1" in url
