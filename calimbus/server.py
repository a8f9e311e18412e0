"""WSGI entrypoint: explicit dispatch, server-rendered pages and the server loop."""

from __future__ import annotations

import datetime as dt
import logging
from socketserver import ThreadingMixIn
from typing import Any, Dict, List, Optional
from urllib.parse import quote
from wsgiref.simple_server import WSGIServer, make_server

from calimbus import api, auth, config, google_api
from calimbus.board import Board, item_on_date
from calimbus.db import db_connect, ensure_bootstrap
from calimbus.web import Request, Response, h, json_error, redirect

logger = logging.getLogger(__name__)

STATIC_TYPES = {
    ".css": "text/css; charset=utf-8",
    ".js": "application/javascript; charset=utf-8",
    ".json": "application/json; charset=utf-8",
    ".html": "text/html; charset=utf-8",
    ".svg": "image/svg+xml",
}
ROOT_ASSETS = {
    "/sw.js": "sw.js",
    "/manifest.json": "manifest.json",
    "/offline.html": "offline.html",
}


class ThreadedWSGIServer(ThreadingMixIn, WSGIServer):
    """Thread-per-request WSGI server; SSE streams hold one thread each."""

    daemon_threads = True


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def static_file(name: str) -> Response:
    target = (config.STATIC_DIR / name).resolve()
    if config.STATIC_DIR.resolve() not in target.parents or not target.is_file():
        return Response("Not found", status="404 Not Found", content_type="text/plain; charset=utf-8")
    mime = STATIC_TYPES.get(target.suffix, "text/plain; charset=utf-8")
    resp = Response(target.read_bytes(), content_type=mime, cache="no-cache")
    if name == "sw.js":
        resp.headers.append(("Service-Worker-Allowed", "/"))
    return resp


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


def render_layout(title: str, content: str, ctx: Optional[Dict[str, Any]] = None, notice: str = "") -> str:
    user = (ctx or {}).get("user")
    account = ""
    if user:
        account = f"""
        <div class="account">
          <span>{h(user.get('name') or user.get('email'))}</span>
          <form method="post" action="/auth/logout?csrf_token={quote(str(ctx.get('csrf', '')))}">
            <button type="submit">Sign out</button>
          </form>
        </div>
        """
    flash = f"<p class='notice'>{h(notice)}</p>" if notice else ""
    csrf = h((ctx or {}).get("csrf", ""))
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <meta name="csrf-token" content="{csrf}" />
  <title>{h(title)} | {h(config.APP_NAME)}</title>
  <link rel="manifest" href="/manifest.json" />
  <link rel="stylesheet" href="/static/app.css" />
</head>
<body>
  <header class="topbar">
    <a class="brand" href="/">{h(config.APP_NAME)}</a>
    {account}
  </header>
  <main>
    {flash}
    {content}
  </main>
  <script src="/static/app.js"></script>
</body>
</html>"""


def render_signin(notice: str = "") -> str:
    if google_api.oauth_configured():
        action = "<a class='button' href='/auth/login'>Sign in with Google</a>"
    else:
        action = "<p class='muted'>Google sign-in is not configured on this server.</p>"
    content = f"""
    <section class="hero">
      <h1>{h(config.APP_NAME)}</h1>
      <p>{h(config.APP_TAGLINE)}</p>
      {action}
    </section>
    """
    return render_layout("Sign in", content, notice=notice)


FILTERS = ("all", "tasks", "events", "overdue")
VIEWS = ("day", "week")
EMPTY_COLUMN = "<p class='muted'>Empty</p>"


def dashboard_meta(store: Any) -> Dict[str, Any]:
    """Notes, checklists and labels for every card, read once per page."""
    item_labels: Dict[str, List[int]] = {}
    for link in store.list_item_labels():
        item_labels.setdefault(str(link["item_id"]), []).append(int(link["label_id"]))
    return {
        "notes": {str(n["item_id"]): n["notes"] for n in store.list_notes()},
        "checklists": store.checklist_map(),
        "labels": store.list_labels(),
        "item_labels": item_labels,
    }


def card_matches(item: Dict[str, Any], kind: str, label_id: Optional[int], meta: Dict[str, Any], today: dt.date) -> bool:
    if kind == "tasks" and item.get("type") != "task":
        return False
    if kind == "events" and item.get("type") != "event":
        return False
    if kind == "overdue":
        due = google_api.parse_iso_date(item.get("due"))
        if item.get("type") != "task" or item.get("status") == "completed" or due is None or due >= today:
            return False
    if label_id is not None and label_id not in meta["item_labels"].get(item["id"], []):
        return False
    return True


def _hidden(name: str, value: object) -> str:
    return f"<input type='hidden' name='{h(name)}' value='{h(value)}' />"


def render_card_details(item: Dict[str, Any], meta: Dict[str, Any]) -> str:
    item_id, item_type = item["id"], item.get("type") or "task"
    ident = _hidden("item_id", item_id) + _hidden("item_type", item_type)
    extra = ""
    if item_type == "event":
        for key in ("location", "description"):
            if item.get(key):
                extra += f"<p class='muted'>{h(item[key])}</p>"
    checks = "".join(
        f"""<li><label><input type="checkbox" class="check" data-checklist-id="{h(entry['id'])}"{' checked' if entry['checked'] else ''} />
        {h(entry['text'])}</label></li>"""
        for entry in meta["checklists"].get(item_id, [])
    )
    chosen = meta["item_labels"].get(item_id, [])
    label_boxes = "".join(
        f"""<label class="label-chip" data-color="{h(label['color'])}"><input type="checkbox" name="label_ids" value="{h(label['id'])}"{' checked' if int(label['id']) in chosen else ''} />
        {h(label['name'])}</label>"""
        for label in meta["labels"]
    )
    labels_form = ""
    if label_boxes:
        labels_form = f"""
        <form data-api="/api/item-labels" data-method="PUT">
          {_hidden('item_id', item_id)}{label_boxes}
          <button type="submit">Save labels</button>
        </form>"""
    return f"""
      <details class="sidebar">
        <summary>Details</summary>
        {extra}
        <form data-api="/api/board/reschedule">
          {_hidden('item_id', item_id)}
          <input type="date" name="date" aria-label="New date" required />
          <button type="submit">Reschedule</button>
        </form>
        <form data-api="/api/notes">
          {ident}
          <textarea name="notes" rows="3" aria-label="Notes">{h(meta['notes'].get(item_id, ''))}</textarea>
          <button type="submit">Save notes</button>
        </form>
        <ul class="checklist">{checks}</ul>
        <form data-api="/api/checklist">
          {ident}
          <input type="text" name="text" placeholder="Checklist item" required />
          <button type="submit">Add</button>
        </form>
        {labels_form}
      </details>"""


def render_card(item: Dict[str, Any], board: Board, meta: Dict[str, Any]) -> str:
    when = item.get("due") if item.get("type") == "task" else item.get("start")
    done = " done" if item.get("status") == "completed" else ""
    if item["id"] in board.trashed:
        controls = f"""
      <div class="card-actions">
        <button type="button" data-board-action="restore" data-item-id="{h(item['id'])}">Restore</button>
        <button type="button" class="danger" data-board-action="purge" data-item-id="{h(item['id'])}"
          data-confirm="Delete this item permanently?">Delete forever</button>
      </div>"""
    else:
        options = "".join(
            f"<option value='{h(col['id'])}'>{h(col['name'])}</option>"
            for col in board.columns
            if int(col["id"]) != board.column_for(item["id"])
        )
        controls = f"""
      <select class="move" data-item-id="{h(item['id'])}" aria-label="Move card">
        <option value="">Move to...</option>{options}
      </select>
      {render_card_details(item, meta)}"""
    return f"""
    <article class="card {h(item.get('type'))}{done}" data-item-id="{h(item['id'])}">
      <h3>{h(item.get('title'))}</h3>
      <p class="muted">{h(when or '')}</p>
      {controls}
    </article>
    """


def render_composers(day: str) -> str:
    return f"""
    <div class="composers">
      <details class="composer">
        <summary>New task</summary>
        <form data-api="/api/board/create-task">
          <input type="text" name="title" placeholder="Title" required />
          <input type="date" name="due" value="{h(day)}" aria-label="Due date" />
          <textarea name="notes" rows="2" placeholder="Notes"></textarea>
          <button type="submit">Create task</button>
        </form>
      </details>
      <details class="composer">
        <summary>New event</summary>
        <form data-api="/api/board/create-event">
          <input type="text" name="title" placeholder="Title" required />
          <input type="date" name="date" value="{h(day)}" aria-label="Date" required />
          <label><input type="checkbox" name="allDay" checked /> All day</label>
          <input type="time" name="startTime" aria-label="Start time" />
          <input type="time" name="endTime" aria-label="End time" />
          <input type="text" name="location" placeholder="Location" />
          <textarea name="description" rows="2" placeholder="Description"></textarea>
          <button type="submit">Create event</button>
        </form>
      </details>
      <details class="composer">
        <summary>New column</summary>
        <form data-api="/api/board/add-column">
          <input type="text" name="name" placeholder="Column name" required />
          <input type="color" name="color" value="#6b7280" aria-label="Column color" />
          <button type="submit">Add column</button>
        </form>
      </details>
    </div>
    """


def render_filter_bar(day: str, view: str, kind: str, label_id: Optional[int], labels: List[Dict[str, Any]]) -> str:
    kinds = "".join(
        f"<option value='{k}'{' selected' if k == kind else ''}>{k.title()}</option>" for k in FILTERS
    )
    label_options = "".join(
        f"<option value='{h(label['id'])}'{' selected' if int(label['id']) == label_id else ''}>{h(label['name'])}</option>"
        for label in labels
    )
    views = "".join(
        f"<a class='view-link{' active' if v == view else ''}' href='/dashboard?date={h(day)}&amp;view={v}&amp;filter={h(kind)}'>{v.title()}</a>"
        for v in VIEWS
    )
    return f"""
    <form class="filter-bar" method="get" action="/dashboard">
      {_hidden('date', day)}{_hidden('view', view)}
      <select name="filter" aria-label="Show">{kinds}</select>
      <select name="label" aria-label="Label"><option value="">All labels</option>{label_options}</select>
      <button type="submit">Filter</button>
      <span class="views">{views}</span>
    </form>
    """


def render_column(col: Dict[str, Any], cards: List[str]) -> str:
    return f"""
            <section class="column" data-color="{h(col['color'])}" data-column-id="{h(col['id'])}">
              <h2>{h(col['name'])} <span class="count">{len(cards)}</span></h2>
              {''.join(cards) or EMPTY_COLUMN}
              <details class="column-edit">
                <summary>Edit column</summary>
                <form data-api="/api/board/update-column">
                  {_hidden('column_id', col['id'])}
                  <input type="text" name="name" value="{h(col['name'])}" aria-label="Column name" />
                  <input type="color" name="color" value="{h(col['color'])}" aria-label="Column color" />
                  <button type="submit">Save</button>
                </form>
                <button type="button" class="danger" data-board-action="delete-column" data-column-id="{h(col['id'])}"
                  data-confirm="Delete this column?">Delete column</button>
              </details>
            </section>
            """


def render_week(board: Board, day: dt.date, kind: str, label_id: Optional[int], meta: Dict[str, Any]) -> str:
    start = day - dt.timedelta(days=day.isoweekday() % 7)
    days_html: List[str] = []
    for offset in range(7):
        current = start + dt.timedelta(days=offset)
        items = sorted(
            (
                item
                for item_id, item in board.items.items()
                if item_id not in board.trashed
                and item_on_date(item, current)
                and card_matches(item, kind, label_id, meta, board.today())
            ),
            key=lambda item: (str(item.get("start") or item.get("due") or ""), str(item.get("title") or "")),
        )
        cards = "".join(
            f"<li class='week-item {h(item.get('type'))}'>{h(item.get('title'))}</li>" for item in items
        ) or "<li class='muted'>Nothing</li>"
        today_class = " today" if current == board.today() else ""
        days_html.append(
            f"""
            <section class="week-day{today_class}" data-date="{current.isoformat()}">
              <h2><a href="/dashboard?date={current.isoformat()}">{current.strftime('%a %d %b')}</a></h2>
              <ul>{cards}</ul>
            </section>
            """
        )
    return f"<div class='week'>{''.join(days_html)}</div>"


def render_dashboard(
    board: Board,
    day: str,
    meta: Optional[Dict[str, Any]] = None,
    view: str = "day",
    kind: str = "all",
    label_id: Optional[int] = None,
) -> str:
    meta = meta or {"notes": {}, "checklists": {}, "labels": [], "item_labels": {}}
    view_day = google_api.parse_iso_date(day) or board.today()
    if view == "week":
        body = render_week(board, view_day, kind, label_id, meta)
    else:
        # Overdue tasks show regardless of the viewed date.
        on_date = None if kind == "overdue" else view_day
        columns_html: List[str] = []
        for col in board.columns:
            cards = [
                render_card(item, board, meta)
                for item in board.items_for_column(col["id"], on_date)
                if card_matches(item, kind, label_id, meta, board.today())
            ]
            columns_html.append(render_column(col, cards))
        body = f"<div class='board'>{''.join(columns_html)}</div>"
    return f"""
    <nav class="date-nav" data-date="{h(day)}">
      <form method="get" action="/dashboard">
        <input type="date" name="date" value="{h(day)}" />
        {_hidden('view', view)}
        <button type="submit">Go</button>
      </form>
      <button type="button" data-board-action="refresh">Refresh</button>
      <button type="button" data-board-action="undo">Undo trash</button>
    </nav>
    {render_filter_bar(day, view, kind, label_id, meta['labels'])}
    {render_composers(day)}
    {body}
    """


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def handle_auth(conn: Any, req: Request, ctx: Dict[str, Any]) -> Optional[Response]:
    if req.path == "/auth/login" and req.method == "GET":
        if not google_api.oauth_configured():
            return Response(render_signin("Google sign-in is not configured."), status="503 Service Unavailable")
        url, state_cookie = auth.begin_login()
        return redirect(url, cookies=[state_cookie])

    if req.path == "/auth/callback" and req.method == "GET":
        if req.query.get("error"):
            return redirect(f"/?msg={quote('Sign-in was cancelled')}", cookies=[auth.clear_cookie(auth.STATE_COOKIE)])
        try:
            raw_token, _ = auth.complete_login(
                conn,
                req.query.get("code", ""),
                req.query.get("state", ""),
                req.cookies.get(auth.STATE_COOKIE, ""),
                req.client_ip,
                req.header("User-Agent"),
            )
        except PermissionError:
            logger.warning("OAuth callback rejected: state mismatch")
            return redirect(f"/?msg={quote('Sign-in expired, try again')}", cookies=[auth.clear_cookie(auth.STATE_COOKIE)])
        except (google_api.GoogleAPIError, ValueError):
            logger.exception("OAuth callback failed")
            return redirect(f"/?msg={quote('Sign-in failed')}", cookies=[auth.clear_cookie(auth.STATE_COOKIE)])
        cookies = [
            auth.set_cookie(auth.SESSION_COOKIE, raw_token, max_age=config.SESSION_DAYS * 86400),
            auth.clear_cookie(auth.STATE_COOKIE),
        ]
        return redirect("/dashboard", cookies=cookies)

    if req.path == "/auth/logout" and req.method == "POST":
        if ctx.get("user") and not auth.validate_csrf(req, ctx):
            return Response("<h1>403 Forbidden</h1>", status="403 Forbidden")
        auth.end_session(conn, req.cookies.get(auth.SESSION_COOKIE, ""))
        return redirect("/", cookies=[auth.clear_cookie(auth.SESSION_COOKIE)])
    return None


def handle_api(conn: Any, req: Request, ctx: Dict[str, Any]) -> Response:
    handler = api.ROUTES.get(req.path.rstrip("/") or "/")
    if handler is None:
        return json_error("not_found", "404 Not Found")
    if not ctx.get("user"):
        return json_error("unauthorized", "401 Unauthorized")
    if not auth.validate_csrf(req, ctx):
        return json_error("csrf_failed", "403 Forbidden")
    if req.method in {"POST", "PUT", "PATCH", "DELETE"} and not req.json_ok():
        return json_error("invalid_json")
    return handler(conn, req, ctx)


def app(environ, start_response):
    """WSGI entrypoint. Routes are matched explicitly on the request path."""
    req = Request(environ)

    if req.path.startswith("/static/"):
        return static_file(req.path.replace("/static/", "", 1)).wsgi(start_response)
    if req.path in ROOT_ASSETS:
        return static_file(ROOT_ASSETS[req.path]).wsgi(start_response)
    if req.path == "/healthz":
        return Response("ok", content_type="text/plain").wsgi(start_response)
    if req.path == "/readyz":
        try:
            ensure_bootstrap()
            probe = db_connect()
            probe.execute("SELECT 1").fetchone()
            probe.close()
            return Response("ready", content_type="text/plain").wsgi(start_response)
        except Exception as exc:
            logger.exception("Readiness probe failed")
            return Response(
                f"not-ready: {h(str(exc))}",
                status="503 Service Unavailable",
                content_type="text/plain",
            ).wsgi(start_response)

    try:
        ensure_bootstrap()
    except Exception as exc:
        body = f"<h1>503 Service Unavailable</h1><p>Database bootstrap failed: {h(str(exc))}</p>"
        return Response(body, status="503 Service Unavailable").wsgi(start_response)

    conn = db_connect()
    is_api = req.path.startswith("/api/")
    try:
        if req.path == "/api/webhooks/calendar":
            return api.webhook_receiver(conn, req).wsgi(start_response)

        ctx = auth.get_auth_context(conn, req)

        if req.path.startswith("/auth/"):
            resp = handle_auth(conn, req, ctx)
            if resp is not None:
                return resp.wsgi(start_response)

        if is_api:
            return handle_api(conn, req, ctx).wsgi(start_response)

        notice = req.query.get("msg", "")
        if req.path == "/":
            if ctx.get("user"):
                return redirect("/dashboard").wsgi(start_response)
            return Response(render_signin(notice)).wsgi(start_response)

        if req.path == "/dashboard":
            if not ctx.get("user"):
                return redirect("/").wsgi(start_response)
            if ctx.get("error") or not ctx.get("access_token"):
                content = "<p>Your Google session expired. <a href='/auth/login'>Sign in again</a>.</p>"
                return Response(render_layout("Dashboard", content, ctx)).wsgi(start_response)
            day = google_api.parse_iso_date(req.query.get("date"))
            board = Board(google_api.GoogleWorkspace(ctx["access_token"]), api.user_store(conn, ctx))
            ok, message = board.load()
            if not ok:
                notice = message
            today = day or board.today()
            view = req.query.get("view") if req.query.get("view") in VIEWS else "day"
            kind = req.query.get("filter") if req.query.get("filter") in FILTERS else "all"
            raw_label = req.query.get("label", "")
            label_id = int(raw_label) if raw_label.isdigit() else None
            meta = dashboard_meta(api.user_store(conn, ctx))
            content = render_dashboard(board, today.isoformat(), meta, view=view, kind=kind, label_id=label_id)
            return Response(render_layout("Dashboard", content, ctx, notice)).wsgi(start_response)

        return Response("<h1>404 Not Found</h1>", status="404 Not Found").wsgi(start_response)
    except Exception:
        logger.exception("Unhandled error on %s %s", req.method, req.path)
        if is_api:
            return json_error("internal_error", "500 Internal Server Error").wsgi(start_response)
        return Response(
            "<h1>500 Internal Server Error</h1><p>An unexpected server error occurred.</p>",
            status="500 Internal Server Error",
        ).wsgi(start_response)
    finally:
        conn.close()


def run() -> None:
    configure_logging()
    ensure_bootstrap()
    server_mode = "threaded" if config.WSGI_THREADED else "single-threaded"
    logger.info(
        "%s running on http://%s:%s (db=%s, backend=%s, mode=%s)",
        config.APP_NAME,
        config.HOST,
        config.PORT,
        config.DB_PATH,
        config.DB_BACKEND,
        server_mode,
    )
    if config.WSGI_THREADED:
        server = make_server(config.HOST, config.PORT, app, server_class=ThreadedWSGIServer)
    else:
        server = make_server(config.HOST, config.PORT, app)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    run()
