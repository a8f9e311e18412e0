"""JSON API handlers, one per resource.

Each handler takes ``(conn, req, ctx)`` and returns a Response. The
dispatcher has already checked the session and CSRF token; handlers that
talk to Google additionally need a usable access token.
"""

from __future__ import annotations

import datetime as dt
import functools
import logging
import uuid
from typing import Any, Callable, Dict, Optional

from calimbus import config, google_api, realtime, store as store_ops
from calimbus.board import Board
from calimbus.db import iso, utcnow
from calimbus.google_api import GoogleAPIError, GoogleWorkspace
from calimbus.store import BoardStore
from calimbus.web import Request, Response, StreamResponse, json_error, json_response

logger = logging.getLogger(__name__)

Handler = Callable[[Any, Request, Dict[str, Any]], Response]


def api_handler(failure_code: str) -> Callable[[Handler], Handler]:
    """Turn unexpected collaborator failures into a logged 500 with a stable code."""

    def wrap(fn: Handler) -> Handler:
        @functools.wraps(fn)
        def inner(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
            try:
                return fn(conn, req, ctx)
            except GoogleAPIError as exc:
                logger.exception("%s: Google call failed", req.path)
                if exc.status == 401:
                    return json_error("google_unauthorized", "401 Unauthorized")
                return json_error(failure_code, "500 Internal Server Error")
            except Exception:
                logger.exception("%s %s failed", req.method, req.path)
                return json_error(failure_code, "500 Internal Server Error")

        return inner

    return wrap


def method_not_allowed() -> Response:
    return json_error("method_not_allowed", "405 Method Not Allowed")


def google_gate(ctx: Dict[str, Any]) -> Optional[Response]:
    if ctx.get("error"):
        return json_error(str(ctx["error"]), "401 Unauthorized")
    if not ctx.get("access_token"):
        return json_error("missing_access_token", "401 Unauthorized")
    return None


def user_store(conn: Any, ctx: Dict[str, Any]) -> BoardStore:
    return BoardStore(conn, ctx["user"]["id"])


def _text(value: object) -> str:
    return str(value or "").strip()


def _int(value: object) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _bool(value: object) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    text = str(value or "").strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return None


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def session_info(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "GET":
        return method_not_allowed()
    return json_response({"ok": True, "user": ctx["user"], "csrf": ctx["csrf"], "error": ctx.get("error")})


# ---------------------------------------------------------------------------
# Calendar / tasks
# ---------------------------------------------------------------------------


@api_handler("calendar_failed")
def calendar(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "GET":
        return method_not_allowed()
    gate = google_gate(ctx)
    if gate:
        return gate
    events = google_api.list_calendar_events(ctx["access_token"])
    details = user_store(conn, ctx).event_details_map()
    for event in events:
        extra = details.get(event["id"]) or {}
        event["location"] = event.get("location") or extra.get("location")
        event["description"] = event.get("description") or extra.get("description")
    return json_response({"ok": True, "events": events})


@api_handler("calendar_create_failed")
def calendar_create(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "POST":
        return method_not_allowed()
    gate = google_gate(ctx)
    if gate:
        return gate
    body = req.json
    title, date = _text(body.get("title")), _text(body.get("date"))
    if not title or not date:
        return json_error("title_and_date_required")
    all_day = _bool(body.get("allDay"))
    location = _text(body.get("location")) or None
    description = _text(body.get("description")) or None
    try:
        event = google_api.create_event(
            ctx["access_token"],
            title,
            date,
            start_time=_text(body.get("startTime")) or None,
            end_time=_text(body.get("endTime")) or None,
            all_day=True if all_day is None else all_day,
            timezone=_text(body.get("timeZone")) or None,
            location=location,
            description=description,
        )
    except ValueError:
        return json_error("invalid_date")
    if location or description:
        user_store(conn, ctx).save_event_details(event["id"], location, description)
    return json_response({"ok": True, "event": event})


@api_handler("calendar_delete_failed")
def calendar_delete(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "DELETE":
        return method_not_allowed()
    gate = google_gate(ctx)
    if gate:
        return gate
    event_id = _text(req.param("eventId"))
    if not event_id:
        return json_error("event_id_required")
    google_api.delete_event(ctx["access_token"], event_id, _text(req.param("calendarId")) or "primary")
    user_store(conn, ctx).purge_item(event_id)
    return json_response({"ok": True})


@api_handler("tasks_failed")
def tasks(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "GET":
        return method_not_allowed()
    gate = google_gate(ctx)
    if gate:
        return gate
    return json_response({"ok": True, "tasks": google_api.list_tasks(ctx["access_token"])})


@api_handler("task_create_failed")
def tasks_create(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "POST":
        return method_not_allowed()
    gate = google_gate(ctx)
    if gate:
        return gate
    body = req.json
    title = _text(body.get("title"))
    if not title:
        return json_error("title_required")
    try:
        task = google_api.create_task(
            ctx["access_token"],
            title,
            due=_text(body.get("due")) or None,
            notes=_text(body.get("notes")) or None,
        )
    except GoogleAPIError as exc:
        if exc.status == 404:
            return json_error("no_task_lists", "404 Not Found")
        raise
    return json_response({"ok": True, "task": task})


@api_handler("task_delete_failed")
def tasks_delete(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "DELETE":
        return method_not_allowed()
    gate = google_gate(ctx)
    if gate:
        return gate
    task_id, list_id = _text(req.param("taskId")), _text(req.param("taskListId"))
    if not task_id or not list_id:
        return json_error("task_id_and_list_required")
    google_api.delete_task(ctx["access_token"], list_id, task_id)
    user_store(conn, ctx).purge_item(task_id)
    return json_response({"ok": True})


@api_handler("task_status_failed")
def tasks_status(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "PATCH":
        return method_not_allowed()
    gate = google_gate(ctx)
    if gate:
        return gate
    body = req.json
    task_id, list_id = _text(body.get("taskId")), _text(body.get("taskListId"))
    completed = _bool(body.get("completed"))
    if not task_id or not list_id or completed is None:
        return json_error("task_id_list_and_completed_required")
    task = google_api.set_task_status(ctx["access_token"], list_id, task_id, completed)
    return json_response({"ok": True, "task": task})


@api_handler("task_due_failed")
def tasks_update_due(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "PATCH":
        return method_not_allowed()
    gate = google_gate(ctx)
    if gate:
        return gate
    body = req.json
    task_id, list_id, due = _text(body.get("taskId")), _text(body.get("taskListId")), _text(body.get("due"))
    if not task_id or not list_id or not due:
        return json_error("task_id_list_and_due_required")
    task = google_api.update_task_due(ctx["access_token"], list_id, task_id, due)
    return json_response({"ok": True, "task": task})


# ---------------------------------------------------------------------------
# Board metadata
# ---------------------------------------------------------------------------


@api_handler("columns_failed")
def columns(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    store = user_store(conn, ctx)
    if req.method == "GET":
        return json_response({"ok": True, "columns": store.list_columns()})
    if req.method == "POST":
        body = req.json
        name = _text(body.get("name"))
        if not name:
            return json_error("name_required")
        column = store.create_column(name, position=_int(body.get("position")), color=_text(body.get("color")) or None)
        return json_response({"ok": True, "column": column})
    if req.method == "PUT":
        body = req.json
        column_id = _int(body.get("id"))
        if column_id is None:
            return json_error("id_required")
        column = store.update_column(
            column_id,
            name=_text(body.get("name")) or None,
            position=_int(body.get("position")),
            color=_text(body.get("color")) or None,
        )
        if not column:
            return json_error("column_not_found", "404 Not Found")
        return json_response({"ok": True, "column": column})
    if req.method == "DELETE":
        column_id = _int(req.param("id"))
        if column_id is None:
            return json_error("id_required")
        if not store.delete_column(column_id):
            return json_error("column_not_found", "404 Not Found")
        return json_response({"ok": True})
    return method_not_allowed()


@api_handler("card_categories_failed")
def card_categories(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    store = user_store(conn, ctx)
    if req.method == "GET":
        return json_response({"ok": True, "categories": store.list_categories()})
    if req.method == "POST":
        body = req.json
        item_id, item_type = _text(body.get("item_id")), _text(body.get("item_type"))
        column_id = _int(body.get("column_id"))
        if not item_id or item_type not in {"event", "task"} or column_id is None:
            return json_error("item_id_type_and_column_required")
        if not store.get_column(column_id):
            return json_error("column_not_found", "404 Not Found")
        return json_response({"ok": True, "category": store.set_category(item_id, item_type, column_id)})
    if req.method == "DELETE":
        item_id = _text(req.param("item_id"))
        if not item_id:
            return json_error("item_id_required")
        store.delete_category(item_id)
        return json_response({"ok": True})
    return method_not_allowed()


@api_handler("notes_failed")
def notes(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    store = user_store(conn, ctx)
    if req.method == "GET":
        item_id = _text(req.query.get("item_id"))
        if not item_id:
            return json_response({"ok": True, "notes": store.list_notes()})
        note = store.get_note(item_id) or {"item_id": item_id, "notes": ""}
        return json_response({"ok": True, "note": note})
    if req.method == "POST":
        body = req.json
        item_id, item_type = _text(body.get("item_id")), _text(body.get("item_type"))
        if not item_id or not item_type:
            return json_error("item_id_and_type_required")
        return json_response({"ok": True, "note": store.save_note(item_id, item_type, str(body.get("notes") or ""))})
    return method_not_allowed()


@api_handler("checklist_failed")
def checklist(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    store = user_store(conn, ctx)
    if req.method == "GET":
        item_id = _text(req.query.get("item_id"))
        if not item_id:
            return json_error("item_id_required")
        return json_response({"ok": True, "items": store.list_checklist(item_id)})
    if req.method == "POST":
        body = req.json
        item_id, item_type, text = _text(body.get("item_id")), _text(body.get("item_type")), _text(body.get("text"))
        if not item_id or not item_type or not text:
            return json_error("item_id_type_and_text_required")
        return json_response({"ok": True, "item": store.add_checklist_item(item_id, item_type, text)})
    if req.method == "PATCH":
        body = req.json
        checklist_id = _int(body.get("id"))
        if checklist_id is None:
            return json_error("id_required")
        text = _text(body.get("text")) or None
        updated = store.update_checklist_item(checklist_id, checked=_bool(body.get("checked")), text=text)
        if not updated:
            return json_error("checklist_item_not_found", "404 Not Found")
        return json_response({"ok": True, "item": updated})
    if req.method == "DELETE":
        checklist_id = _int(req.param("id"))
        if checklist_id is None:
            return json_error("id_required")
        if not store.delete_checklist_item(checklist_id):
            return json_error("checklist_item_not_found", "404 Not Found")
        return json_response({"ok": True})
    return method_not_allowed()


def _checklist_bulk(checked: bool) -> Handler:
    @api_handler("checklist_failed")
    def handler(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
        if req.method != "POST":
            return method_not_allowed()
        item_id = _text(req.param("item_id"))
        if not item_id:
            return json_error("item_id_required")
        updated = user_store(conn, ctx).set_checklist_checked(item_id, checked)
        return json_response({"ok": True, "updated": updated})

    return handler


checklist_uncomplete_all = _checklist_bulk(False)
checklist_complete_all = _checklist_bulk(True)


@api_handler("labels_failed")
def labels(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    store = user_store(conn, ctx)
    if req.method == "GET":
        return json_response({"ok": True, "labels": store.list_labels()})
    if req.method == "POST":
        body = req.json
        name, color = _text(body.get("name")), _text(body.get("color"))
        if not name or not color:
            return json_error("name_and_color_required")
        return json_response({"ok": True, "label": store.create_label(name, color)})
    if req.method == "PUT":
        body = req.json
        label_id = _int(body.get("id"))
        if label_id is None:
            return json_error("id_required")
        label = store.update_label(label_id, name=_text(body.get("name")) or None, color=_text(body.get("color")) or None)
        if not label:
            return json_error("label_not_found", "404 Not Found")
        return json_response({"ok": True, "label": label})
    if req.method == "DELETE":
        label_id = _int(req.param("id"))
        if label_id is None:
            return json_error("id_required")
        if not store.delete_label(label_id):
            return json_error("label_not_found", "404 Not Found")
        return json_response({"ok": True})
    return method_not_allowed()


@api_handler("item_labels_failed")
def item_labels(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    store = user_store(conn, ctx)
    if req.method == "GET":
        item_id = _text(req.query.get("item_id")) or None
        return json_response({"ok": True, "item_labels": store.list_item_labels(item_id)})
    if req.method == "POST":
        body = req.json
        item_id, label_id = _text(body.get("item_id")), _int(body.get("label_id"))
        if not item_id or label_id is None:
            return json_error("item_id_and_label_id_required")
        link = store.add_item_label(item_id, label_id)
        if link is None:
            return json_error("label_not_found", "404 Not Found")
        return json_response({"ok": True, "item_label": link})
    if req.method == "PUT":
        body = req.json
        item_id, label_ids = _text(body.get("item_id")), body.get("label_ids")
        if not item_id or not isinstance(label_ids, list):
            return json_error("item_id_and_label_ids_required")
        ids = [_int(v) for v in label_ids]
        if any(v is None for v in ids):
            return json_error("invalid_label_id")
        return json_response({"ok": True, "item_labels": store.set_item_labels(item_id, ids)})
    if req.method == "DELETE":
        item_id, label_id = _text(req.param("item_id")), _int(req.param("label_id"))
        if not item_id or label_id is None:
            return json_error("item_id_and_label_id_required")
        store.remove_item_label(item_id, label_id)
        return json_response({"ok": True})
    return method_not_allowed()


@api_handler("trash_failed")
def trash(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    store = user_store(conn, ctx)
    if req.method == "GET":
        return json_response({"ok": True, "trashed": store.list_trashed()})
    if req.method == "POST":
        body = req.json
        item_id, item_type = _text(body.get("item_id")), _text(body.get("item_type"))
        previous = _int(body.get("previous_column_id"))
        if not item_id or not item_type or previous is None:
            return json_error("item_id_type_and_previous_column_required")
        snapshot = body.get("item_data") if isinstance(body.get("item_data"), dict) else None
        return json_response({"ok": True, "trashed": store.trash_item(item_id, item_type, previous, snapshot)})
    if req.method == "DELETE":
        item_id = _text(req.param("item_id"))
        if not item_id:
            return json_error("item_id_required")
        record = store.untrash(item_id)
        if record is None:
            return json_error("item_not_trashed", "404 Not Found")
        return json_response({"ok": True, "previous_column_id": record.get("previous_column_id")})
    return method_not_allowed()


@api_handler("feedback_failed")
def feedback(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    store = user_store(conn, ctx)
    if req.method == "GET":
        return json_response({"ok": True, "feedback": store.list_feedback()})
    if req.method == "POST":
        body = req.json
        message = _text(body.get("message"))
        if not message:
            return json_error("message_required")
        image = body.get("imageBase64") or body.get("image_base64") or None
        user = ctx["user"]
        created = store.add_feedback(user["email"], user.get("name") or "", message, image)
        logger.info("Feedback %s received from %s", created["id"], user["email"])
        return json_response({"ok": True, "id": created["id"]})
    return method_not_allowed()


# ---------------------------------------------------------------------------
# Push notifications
# ---------------------------------------------------------------------------


@api_handler("webhook_subscription_failed")
def webhooks_subscribe(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    gate = google_gate(ctx)
    if gate:
        return gate
    store = user_store(conn, ctx)
    if req.method == "POST":
        channel_id = str(uuid.uuid4())
        expires = utcnow() + dt.timedelta(days=config.WEBHOOK_CHANNEL_DAYS)
        watched = google_api.watch_calendar(
            ctx["access_token"],
            channel_id,
            config.WEBHOOK_URL,
            int(expires.timestamp() * 1000),
        )
        store.save_channel(channel_id, watched.get("resourceId"), "calendar", iso(expires))
        logger.info("Calendar watch channel %s created for user %s", channel_id, store.user_id)
        return json_response({"ok": True, "channelId": channel_id, "expiration": iso(expires)})
    if req.method == "DELETE":
        channel = store.get_channel("calendar")
        if channel:
            try:
                google_api.stop_channel(ctx["access_token"], channel["channel_id"], channel["resource_id"] or "")
            except GoogleAPIError as exc:
                logger.info("Channel %s stop failed (likely expired): %s", channel["channel_id"], exc)
            store.delete_channel("calendar")
        return json_response({"ok": True})
    return method_not_allowed()


def webhook_receiver(conn: Any, req: Request) -> Response:
    """Inbound Google push. Always answers 200 so Google does not retry."""
    if req.method == "GET":
        return Response("OK", content_type="text/plain; charset=utf-8")
    channel_id = req.header("X-Goog-Channel-Id")
    state = req.header("X-Goog-Resource-State")
    logger.info("Calendar webhook received (channel=%s, state=%s)", channel_id, state)
    if state == "sync" or not channel_id:
        return Response("", content_type="text/plain; charset=utf-8")
    try:
        owner = store_ops.channel_owner(conn, channel_id)
        if owner:
            realtime.notify_user(owner, {"type": "calendar_update", "timestamp": int(utcnow().timestamp() * 1000)})
            store_ops.record_pending_update(conn, owner, "calendar")
        else:
            logger.info("No owner for channel %s", channel_id)
    except Exception:
        logger.exception("Calendar webhook handling failed")
    return Response("", content_type="text/plain; charset=utf-8")


def webhooks_events(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "GET":
        return method_not_allowed()
    return StreamResponse(realtime.sse_stream(ctx["user"]["id"]))


@api_handler("check_updates_failed")
def webhooks_check_updates(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "GET":
        return method_not_allowed()
    updates = user_store(conn, ctx).pop_pending_updates()
    kinds = {row["update_type"] for row in updates}
    return json_response(
        {
            "ok": True,
            "hasCalendarUpdate": "calendar" in kinds,
            "hasTaskUpdate": "task" in kinds,
            "lastChecked": iso(),
        }
    )


# ---------------------------------------------------------------------------
# Board
# ---------------------------------------------------------------------------


def load_board(conn: Any, ctx: Dict[str, Any]) -> Board:
    board = Board(GoogleWorkspace(ctx["access_token"]), user_store(conn, ctx))
    ok, message = board.load()
    if not ok:
        raise RuntimeError(message)
    return board


@api_handler("board_failed")
def board_view(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    if req.method != "GET":
        return method_not_allowed()
    gate = google_gate(ctx)
    if gate:
        return gate
    board = load_board(conn, ctx)
    return json_response({"ok": True, "board": board.snapshot(req.query.get("date"))})


def _board_action(name: str, run: Callable[[Board, Dict[str, Any]], Any]) -> Handler:
    @api_handler("board_failed")
    def handler(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
        if req.method != "POST":
            return method_not_allowed()
        gate = google_gate(ctx)
        if gate:
            return gate
        body = req.json
        board = load_board(conn, ctx)
        ok, message = run(board, body)
        view_date = body.get("view_date") or body.get("date")
        payload = {"ok": ok, "message": message, "board": board.snapshot(view_date)}
        if ok and board.last_item_id:
            payload["item_id"] = board.last_item_id
        if not ok:
            payload["error"] = f"{name}_failed"
            return json_response(payload, status="400 Bad Request")
        return json_response(payload)

    handler.__name__ = f"board_{name}"
    return handler


board_move = _board_action(
    "move", lambda b, body: b.move_item(_text(body.get("item_id")), body.get("column_id"), body.get("view_date"))
)
board_trash = _board_action("trash", lambda b, body: b.trash_item(_text(body.get("item_id"))))
board_restore = _board_action(
    "restore", lambda b, body: b.restore_item(_text(body.get("item_id")), body.get("column_id"))
)
board_purge = _board_action("purge", lambda b, body: b.permanently_delete_item(_text(body.get("item_id"))))
board_reschedule = _board_action(
    "reschedule", lambda b, body: b.reschedule_item(_text(body.get("item_id")), body.get("date"))
)
board_refresh = _board_action("refresh", lambda b, body: b.refresh())
board_undo = _board_action("undo", lambda b, body: b.undo_last_trash())
board_create_task = _board_action(
    "create_task",
    lambda b, body: b.create_task(
        _text(body.get("title")), due=_text(body.get("due")) or None, notes=_text(body.get("notes")) or None
    ),
)


def _create_event(board: Board, body: Dict[str, Any]) -> Any:
    all_day = _bool(body.get("allDay"))
    return board.create_event(
        _text(body.get("title")),
        _text(body.get("date")),
        start_time=_text(body.get("startTime")) or None,
        end_time=_text(body.get("endTime")) or None,
        all_day=True if all_day is None else all_day,
        timezone=_text(body.get("timeZone")) or None,
        location=_text(body.get("location")) or None,
        description=_text(body.get("description")) or None,
    )


board_create_event = _board_action("create_event", _create_event)
board_add_column = _board_action(
    "add_column", lambda b, body: b.add_column(_text(body.get("name")), color=_text(body.get("color")) or None)
)
board_update_column = _board_action(
    "update_column",
    lambda b, body: b.update_column(
        body.get("column_id"),
        name=_text(body.get("name")) or None,
        position=_int(body.get("position")),
        color=_text(body.get("color")) or None,
    ),
)
board_delete_column = _board_action("delete_column", lambda b, body: b.delete_column(body.get("column_id")))


ROUTES: Dict[str, Handler] = {
    "/api/session": session_info,
    "/api/calendar": calendar,
    "/api/calendar/create": calendar_create,
    "/api/calendar/delete": calendar_delete,
    "/api/tasks": tasks,
    "/api/tasks/create": tasks_create,
    "/api/tasks/delete": tasks_delete,
    "/api/tasks/status": tasks_status,
    "/api/tasks/update-due": tasks_update_due,
    "/api/columns": columns,
    "/api/card-categories": card_categories,
    "/api/notes": notes,
    "/api/checklist": checklist,
    "/api/checklist/uncomplete-all": checklist_uncomplete_all,
    "/api/checklist/complete-all": checklist_complete_all,
    "/api/labels": labels,
    "/api/item-labels": item_labels,
    "/api/trash": trash,
    "/api/feedback": feedback,
    "/api/webhooks/subscribe": webhooks_subscribe,
    "/api/webhooks/events": webhooks_events,
    "/api/webhooks/check-updates": webhooks_check_updates,
    "/api/board": board_view,
    "/api/board/move": board_move,
    "/api/board/trash": board_trash,
    "/api/board/restore": board_restore,
    "/api/board/purge": board_purge,
    "/api/board/reschedule": board_reschedule,
    "/api/board/refresh": board_refresh,
    "/api/board/undo": board_undo,
    "/api/board/create-task": board_create_task,
    "/api/board/create-event": board_create_event,
    "/api/board/add-column": board_add_column,
    "/api/board/update-column": board_update_column,
    "/api/board/delete-column": board_delete_column,
}
