"""Kanban projection over Google items plus per-user board metadata.

A Board keeps columns, items, item->column mappings and trash records in
memory. Mutations apply locally first, then call the remote workspace and
the store; if either raises, the local projection is put back and the
failure is logged. Operations return ``(ok, message)`` and never raise.
"""

from __future__ import annotations

import copy
import datetime as dt
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from calimbus.google_api import GoogleAPIError, event_body_from_item, in_listing_window, parse_iso_date

logger = logging.getLogger(__name__)

TRASH = "trash"
ROLL_OVER = "roll over"
DONE = "done"
EVENTS = "events"
TASKS = "tasks"

Result = Tuple[bool, str]


def _column_key(name: object) -> str:
    return str(name or "").strip().lower()


def _coerce_id(value: object) -> Optional[int]:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def item_on_date(item: Dict[str, Any], day: dt.date) -> bool:
    """Tasks match on due date; events on any day of their span."""
    if item.get("type") == "task":
        return parse_iso_date(item.get("due")) == day
    start = parse_iso_date(item.get("start"))
    if start is None:
        return False
    end_raw = str(item.get("end") or "")
    end = parse_iso_date(end_raw) or start
    # All-day end dates are exclusive.
    if len(end_raw) == 10 and end > start:
        end -= dt.timedelta(days=1)
    return start <= day <= end


def _sort_key(item: Dict[str, Any]) -> Tuple[int, str, str]:
    if item.get("type") == "event":
        return (0, str(item.get("start") or ""), str(item.get("title") or ""))
    return (1, str(item.get("due") or ""), str(item.get("title") or ""))


class Board:
    def __init__(self, remote: Any, store: Any, today: Optional[dt.date] = None):
        self.remote = remote
        self.store = store
        self._today = today
        self.columns: List[Dict[str, Any]] = []
        self.items: Dict[str, Dict[str, Any]] = {}
        self.categories: Dict[str, int] = {}
        self.trashed: Dict[str, Dict[str, Any]] = {}
        self.last_item_id: Optional[str] = None

    # -- helpers -------------------------------------------------------------

    def today(self) -> dt.date:
        return self._today or dt.date.today()

    @contextmanager
    def _optimistic(self, action: str) -> Iterator[Dict[str, Any]]:
        saved = copy.deepcopy((self.columns, self.items, self.categories, self.trashed))
        outcome: Dict[str, Any] = {"ok": True, "message": action}
        try:
            yield outcome
            if outcome.get("item_id"):
                self.last_item_id = outcome["item_id"]
        except Exception as exc:
            logger.exception("%s failed; reverting board state", action)
            self.columns, self.items, self.categories, self.trashed = saved
            outcome["ok"] = False
            outcome["message"] = f"{action} failed: {exc}"

    def column(self, column_id: object) -> Optional[Dict[str, Any]]:
        wanted = _coerce_id(column_id)
        for col in self.columns:
            if int(col["id"]) == wanted:
                return col
        return None

    def column_named(self, name: str) -> Optional[Dict[str, Any]]:
        key = _column_key(name)
        for col in self.columns:
            if _column_key(col.get("name")) == key:
                return col
        return None

    def _column_key_for(self, column_id: Optional[int]) -> str:
        col = self.column(column_id) if column_id is not None else None
        return _column_key(col.get("name")) if col else ""

    def default_column_id(self, item_type: str) -> Optional[int]:
        col = self.column_named(EVENTS if item_type == "event" else TASKS)
        if col is None and self.columns:
            col = self.columns[0]
        return int(col["id"]) if col else None

    def _merge_details(self, events: List[Dict[str, Any]], details: Dict[str, Dict[str, Any]]) -> None:
        for event in events:
            extra = details.get(event["id"])
            if not extra:
                continue
            for key in ("location", "description"):
                if not event.get(key) and extra.get(key):
                    event[key] = extra[key]

    def _fetch_remote(self) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        with ThreadPoolExecutor(max_workers=2) as pool:
            events_future = pool.submit(self.remote.list_events)
            tasks_future = pool.submit(self.remote.list_tasks)
            events = list(events_future.result())
            tasks = list(tasks_future.result())
        self._merge_details(events, self.store.event_details_map())
        return events, tasks

    def _remote_delete(self, item: Dict[str, Any]) -> None:
        try:
            if item.get("type") == "event":
                self.remote.delete_event(item["id"], item.get("calendarId") or "primary")
            else:
                self.remote.delete_task(item.get("taskListId"), item["id"])
        except GoogleAPIError as exc:
            if exc.status in (404, 410):
                logger.info("Item %s already gone upstream", item["id"])
                return
            raise

    def _recreate(self, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        if snapshot.get("type") == "event":
            created = self.remote.insert_event(event_body_from_item(snapshot), snapshot.get("calendarId") or "primary")
            for key in ("location", "description"):
                if snapshot.get(key) and not created.get(key):
                    created[key] = snapshot[key]
            return created
        created = self.remote.create_task(
            snapshot.get("title") or "Untitled",
            due=snapshot.get("due"),
            notes=snapshot.get("notes"),
            task_list_id=snapshot.get("taskListId"),
        )
        if snapshot.get("status") == "completed":
            self.remote.set_task_status(created["taskListId"], created["id"], True)
            created["status"] = "completed"
        return created

    def _replace_id(self, old_id: str, item: Dict[str, Any]) -> None:
        new_id = item["id"]
        self.store.rekey_item(old_id, new_id)
        self.store.remember_items([item])
        self.items.pop(old_id, None)
        self.items[new_id] = item
        if old_id in self.categories:
            self.categories[new_id] = self.categories.pop(old_id)

    def _reschedule_event(self, item: Dict[str, Any], new_date: dt.date) -> Dict[str, Any]:
        start = parse_iso_date(item.get("start"))
        offset = (new_date - start).days if start else 0
        calendar_id = item.get("calendarId") or "primary"
        created = self.remote.insert_event(event_body_from_item(item, day_offset=offset), calendar_id)
        self.remote.delete_event(item["id"], calendar_id)
        self._replace_id(item["id"], created)
        return created

    def _set_done(self, item: Dict[str, Any], done: bool) -> None:
        if item.get("type") == "task":
            self.remote.set_task_status(item.get("taskListId"), item["id"], done)
            item["status"] = "completed" if done else "needsAction"
        self.store.set_checklist_checked(item["id"], done)

    # -- reads ---------------------------------------------------------------

    def load(self) -> Result:
        """Fetch columns, items, mappings and trash records into memory."""
        with self._optimistic("Load") as outcome:
            with ThreadPoolExecutor(max_workers=2) as pool:
                events_future = pool.submit(self.remote.list_events)
                tasks_future = pool.submit(self.remote.list_tasks)
                columns = self.store.list_columns()
                categories = self.store.list_categories()
                trashed = self.store.list_trashed()
                details = self.store.event_details_map()
                events = list(events_future.result())
                tasks = list(tasks_future.result())
            self._merge_details(events, details)
            self.columns = columns
            self.items = {item["id"]: item for item in events + tasks}
            self.store.remember_items(events + tasks)
            self.categories = {str(row["item_id"]): int(row["column_id"]) for row in categories}
            self.trashed = {str(row["item_id"]): row for row in trashed}
            for item_id, record in self.trashed.items():
                snapshot = record.get("item_data")
                if item_id not in self.items and isinstance(snapshot, dict) and snapshot.get("id"):
                    self.items[item_id] = dict(snapshot)
            outcome["message"] = f"Loaded {len(self.items)} items in {len(self.columns)} columns"
        return outcome["ok"], outcome["message"]

    def column_for(self, item_id: str) -> Optional[int]:
        if item_id in self.trashed:
            trash = self.column_named(TRASH)
            if trash:
                return int(trash["id"])
        mapped = self.categories.get(item_id)
        if mapped is not None and self.column(mapped):
            return mapped
        item = self.items.get(item_id)
        if not item:
            return None
        return self.default_column_id(item.get("type", "task"))

    def items_for_column(self, column_id: object, on_date: object = None) -> List[Dict[str, Any]]:
        wanted = _coerce_id(column_id)
        day = on_date if isinstance(on_date, dt.date) else parse_iso_date(on_date)
        out = []
        for item_id, item in self.items.items():
            if self.column_for(item_id) != wanted:
                continue
            if day and item_id not in self.trashed and not item_on_date(item, day):
                continue
            out.append(item)
        return sorted(out, key=_sort_key)

    def snapshot(self, on_date: object = None) -> Dict[str, Any]:
        day = on_date if isinstance(on_date, dt.date) else parse_iso_date(on_date)
        return {
            "date": day.isoformat() if day else None,
            "columns": [
                dict(col, items=[dict(item) for item in self.items_for_column(col["id"], day)])
                for col in self.columns
            ],
            "trashed": sorted(self.trashed),
        }

    # -- moves ---------------------------------------------------------------

    def move_item(self, item_id: str, target_column_id: object, view_date: object = None) -> Result:
        item = self.items.get(item_id)
        target = self.column(target_column_id)
        if not item:
            return False, "Unknown item"
        if not target:
            return False, "Unknown column"
        target_id = int(target["id"])
        source_id = self.column_for(item_id)
        source_key = self._column_key_for(source_id)
        target_key = _column_key(target["name"])
        if source_id == target_id:
            return True, "Already in that column"

        if target_key == TRASH:
            return self.trash_item(item_id)
        if source_key == TRASH:
            return self.restore_item(item_id, target_id)
        if target_key == ROLL_OVER:
            return self._roll_over(item, view_date, leaving_done=source_key == DONE)

        with self._optimistic("Move") as outcome:
            self.categories[item_id] = target_id
            if target_key == DONE:
                self._set_done(item, True)
            elif source_key == DONE:
                self._set_done(item, False)
            self.store.set_category(item_id, item["type"], target_id)
            outcome["message"] = f"Moved {item.get('title')} to {target['name']}"
        return outcome["ok"], outcome["message"]

    def _roll_over(self, item: Dict[str, Any], view_date: object, leaving_done: bool = False) -> Result:
        anchor = item.get("due") if item.get("type") == "task" else item.get("start")
        base = parse_iso_date(view_date) or parse_iso_date(anchor) or self.today()
        new_date = base + dt.timedelta(days=1)
        with self._optimistic("Roll over") as outcome:
            self.categories.pop(item["id"], None)
            if leaving_done:
                self._set_done(item, False)
            if item.get("type") == "task":
                self.remote.update_task_due(item.get("taskListId"), item["id"], new_date.isoformat())
                item["due"] = new_date.isoformat()
                item_id = item["id"]
            else:
                item_id = self._reschedule_event(item, new_date)["id"]
            self.store.delete_category(item_id)
            outcome["message"] = f"Rolled {item.get('title')} over to {new_date.isoformat()}"
            outcome["item_id"] = item_id
        return outcome["ok"], outcome["message"]

    def reschedule_item(self, item_id: str, new_date: object) -> Result:
        item = self.items.get(item_id)
        day = parse_iso_date(new_date)
        if not item:
            return False, "Unknown item"
        if day is None:
            return False, "Invalid date"
        with self._optimistic("Reschedule") as outcome:
            if item.get("type") == "task":
                self.remote.update_task_due(item.get("taskListId"), item_id, day.isoformat())
                item["due"] = day.isoformat()
                outcome["item_id"] = item_id
            else:
                outcome["item_id"] = self._reschedule_event(item, day)["id"]
            outcome["message"] = f"Moved {item.get('title')} to {day.isoformat()}"
        return outcome["ok"], outcome["message"]

    # -- trash ---------------------------------------------------------------

    def trash_item(self, item_id: str) -> Result:
        item = self.items.get(item_id)
        if not item:
            return False, "Unknown item"
        if item_id in self.trashed:
            return True, "Already in trash"
        previous = self.column_for(item_id)
        if self._column_key_for(previous) == TRASH:
            previous = None
        with self._optimistic("Trash") as outcome:
            snapshot = dict(item)
            self.trashed[item_id] = {
                "item_id": item_id,
                "item_type": item["type"],
                "previous_column_id": previous,
                "item_data": snapshot,
            }
            record = self.store.trash_item(item_id, item["type"], previous, snapshot)
            try:
                self._remote_delete(item)
            except Exception:
                self.store.untrash(item_id)
                raise
            self.trashed[item_id] = record
            outcome["message"] = f"Moved {item.get('title')} to Trash"
        return outcome["ok"], outcome["message"]

    def restore_item(self, item_id: str, target_column_id: object = None) -> Result:
        record = self.trashed.get(item_id)
        if not record:
            return False, "Item is not in the trash"
        snapshot = record.get("item_data") or self.items.get(item_id)
        if not snapshot:
            return False, "Nothing to restore from"

        column_id = None
        for candidate in (target_column_id, record.get("previous_column_id")):
            col = self.column(candidate) if candidate is not None else None
            if col and _column_key(col["name"]) not in (TRASH, ROLL_OVER):
                column_id = int(col["id"])
                break

        with self._optimistic("Restore") as outcome:
            self.trashed.pop(item_id, None)
            created = self._recreate(snapshot)
            new_id = created["id"]
            self.store.untrash(item_id)
            self.categories.pop(item_id, None)
            self._replace_id(item_id, created)
            if column_id is not None:
                self.categories[new_id] = column_id
                self.store.set_category(new_id, created["type"], column_id)
            else:
                self.store.delete_category(new_id)
            if created["type"] == "event" and (created.get("location") or created.get("description")):
                self.store.save_event_details(new_id, created.get("location"), created.get("description"))
            outcome["message"] = f"Restored {created.get('title')}"
            outcome["item_id"] = new_id
        return outcome["ok"], outcome["message"]

    def permanently_delete_item(self, item_id: str) -> Result:
        item = self.items.get(item_id)
        record = self.trashed.get(item_id)
        if not item and not record:
            return False, "Unknown item"
        with self._optimistic("Delete") as outcome:
            self.items.pop(item_id, None)
            self.trashed.pop(item_id, None)
            self.categories.pop(item_id, None)
            if record is None and item:
                self._remote_delete(item)
            self.store.purge_item(item_id)
            title = (item or record.get("item_data") or {}).get("title")
            outcome["message"] = f"Deleted {title or item_id} permanently"
        return outcome["ok"], outcome["message"]

    def undo_last_trash(self) -> Result:
        if not self.trashed:
            return False, "Nothing to undo"
        item_id = max(self.trashed, key=lambda key: str(self.trashed[key].get("trashed_at") or ""))
        return self.restore_item(item_id)

    def refresh(self) -> Result:
        """Re-fetch items; anything gone upstream lands in Trash."""
        with self._optimistic("Refresh") as outcome:
            events, tasks = self._fetch_remote()
            fresh = {item["id"]: item for item in events + tasks}
            # Items seen by earlier requests count too; the board is rebuilt per request.
            known = self.store.known_items()
            known.update(self.items)
            missing = [item_id for item_id in known if item_id not in fresh and item_id not in self.trashed]
            # Events that merely aged out of the listing window are forgotten, not trashed.
            aged_out = [i for i in missing if not in_listing_window(known[i], self.today())]
            vanished = [i for i in missing if i not in aged_out]
            for item_id in aged_out:
                self.items.pop(item_id, None)
            for item_id in vanished:
                item = known[item_id]
                self.items.setdefault(item_id, item)
                previous = self.column_for(item_id)
                if self._column_key_for(previous) == TRASH:
                    previous = None
                self.trashed[item_id] = self.store.trash_item(item_id, item.get("type") or "task", previous, dict(item))
                logger.info("Item %s disappeared upstream; moved to trash", item_id)
            self.store.forget_items(missing)
            self.store.remember_items(fresh.values())
            for item_id, record in self.trashed.items():
                if item_id not in fresh:
                    kept = self.items.get(item_id) or record.get("item_data")
                    if kept:
                        fresh[item_id] = kept
            self.items = fresh
            outcome["message"] = f"Refreshed {len(fresh)} items"
            if vanished:
                outcome["message"] += f"; {len(vanished)} moved to Trash"
        return outcome["ok"], outcome["message"]

    # -- creation ------------------------------------------------------------

    def create_task(self, title: str, due: Optional[str] = None, notes: Optional[str] = None) -> Result:
        if not str(title or "").strip():
            return False, "Title is required"
        with self._optimistic("Create task") as outcome:
            task = self.remote.create_task(title.strip(), due=due, notes=notes)
            self.items[task["id"]] = task
            outcome["message"] = f"Created task {task['title']}"
            outcome["item_id"] = task["id"]
        return outcome["ok"], outcome["message"]

    def create_event(self, title: str, date: str, **kwargs: Any) -> Result:
        if not str(title or "").strip() or parse_iso_date(date) is None:
            return False, "Title and date are required"
        with self._optimistic("Create event") as outcome:
            event = self.remote.create_event(title.strip(), date, **kwargs)
            location, description = kwargs.get("location"), kwargs.get("description")
            if location or description:
                self.store.save_event_details(event["id"], location, description)
                event["location"] = event.get("location") or location
                event["description"] = event.get("description") or description
            self.items[event["id"]] = event
            outcome["message"] = f"Created event {event['title']}"
            outcome["item_id"] = event["id"]
        return outcome["ok"], outcome["message"]

    # -- columns -------------------------------------------------------------

    def add_column(self, name: str, color: Optional[str] = None) -> Result:
        if not str(name or "").strip():
            return False, "Column name is required"
        with self._optimistic("Add column") as outcome:
            col = self.store.create_column(name.strip(), color=color)
            self.columns.append(col)
            self.columns.sort(key=lambda c: (int(c["position"]), int(c["id"])))
            outcome["message"] = f"Added column {col['name']}"
        return outcome["ok"], outcome["message"]

    def update_column(
        self,
        column_id: object,
        name: Optional[str] = None,
        position: Optional[int] = None,
        color: Optional[str] = None,
    ) -> Result:
        if not self.column(column_id):
            return False, "Unknown column"
        with self._optimistic("Update column") as outcome:
            updated = self.store.update_column(_coerce_id(column_id), name=name, position=position, color=color)
            if not updated:
                raise LookupError(f"column {column_id} not found")
            self.columns = [updated if int(c["id"]) == int(updated["id"]) else c for c in self.columns]
            self.columns.sort(key=lambda c: (int(c["position"]), int(c["id"])))
            outcome["message"] = f"Updated column {updated['name']}"
        return outcome["ok"], outcome["message"]

    def delete_column(self, column_id: object) -> Result:
        col = self.column(column_id)
        if not col:
            return False, "Unknown column"
        with self._optimistic("Delete column") as outcome:
            wanted = int(col["id"])
            self.columns = [c for c in self.columns if int(c["id"]) != wanted]
            self.categories = {k: v for k, v in self.categories.items() if v != wanted}
            self.store.delete_column(wanted)
            outcome["message"] = f"Deleted column {col['name']}"
        return outcome["ok"], outcome["message"]
