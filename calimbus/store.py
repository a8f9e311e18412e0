"""Per-user persistence for board metadata.

Every query is filtered by the owning user id; callers never see or touch
another user's rows.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from calimbus import config
from calimbus.db import iso, row_to_dict, rows_to_dicts

logger = logging.getLogger(__name__)


def _checklist_row(row: Any) -> Dict[str, Any]:
    out = row_to_dict(row) or {}
    out["checked"] = bool(out.get("checked"))
    return out


def _trash_row(row: Any) -> Dict[str, Any]:
    out = row_to_dict(row) or {}
    raw = out.get("item_data")
    try:
        out["item_data"] = json.loads(raw) if raw else None
    except (TypeError, ValueError):
        out["item_data"] = None
    return out


class BoardStore:
    """Store operations bound to one connection and one user."""

    def __init__(self, conn: Any, user_id: str, autocommit: bool = True):
        self.conn = conn
        self.user_id = str(user_id)
        self.autocommit = autocommit

    def _commit(self) -> None:
        if self.autocommit:
            self.conn.commit()

    # -- columns -------------------------------------------------------------

    def list_columns(self, seed: bool = True) -> List[Dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT * FROM board_columns WHERE user_id = ? ORDER BY position, id",
            (self.user_id,),
        ).fetchall()
        if rows or not seed:
            return rows_to_dicts(rows)
        now = iso()
        for col in config.DEFAULT_COLUMNS:
            self.conn.execute(
                "INSERT INTO board_columns (user_id, name, position, color, created_at) VALUES (?, ?, ?, ?, ?)",
                (self.user_id, col["name"], col["position"], col["color"], now),
            )
        self._commit()
        logger.info("Seeded default columns for user %s", self.user_id)
        return self.list_columns(seed=False)

    def get_column(self, column_id: int) -> Optional[Dict[str, Any]]:
        return row_to_dict(
            self.conn.execute(
                "SELECT * FROM board_columns WHERE id = ? AND user_id = ?",
                (column_id, self.user_id),
            ).fetchone()
        )

    def create_column(self, name: str, position: Optional[int] = None, color: Optional[str] = None) -> Dict[str, Any]:
        if position is None:
            row = self.conn.execute(
                "SELECT MAX(position) AS p FROM board_columns WHERE user_id = ?",
                (self.user_id,),
            ).fetchone()
            position = int(row["p"]) + 1 if row and row["p"] is not None else 0
        cursor = self.conn.execute(
            "INSERT INTO board_columns (user_id, name, position, color, created_at) VALUES (?, ?, ?, ?, ?)",
            (self.user_id, name, position, color or config.DEFAULT_COLUMN_COLOR, iso()),
        )
        self._commit()
        return self.get_column(int(cursor.lastrowid)) or {}

    def update_column(
        self,
        column_id: int,
        name: Optional[str] = None,
        position: Optional[int] = None,
        color: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        existing = self.get_column(column_id)
        if not existing:
            return None
        self.conn.execute(
            "UPDATE board_columns SET name = ?, position = ?, color = ? WHERE id = ? AND user_id = ?",
            (
                name if name is not None else existing["name"],
                position if position is not None else existing["position"],
                color if color is not None else existing["color"],
                column_id,
                self.user_id,
            ),
        )
        self._commit()
        return self.get_column(column_id)

    def delete_column(self, column_id: int) -> bool:
        self.conn.execute(
            "DELETE FROM card_categories WHERE column_id = ? AND user_id = ?",
            (column_id, self.user_id),
        )
        cursor = self.conn.execute(
            "DELETE FROM board_columns WHERE id = ? AND user_id = ?",
            (column_id, self.user_id),
        )
        self._commit()
        return cursor.rowcount > 0

    # -- card categories -----------------------------------------------------

    def list_categories(self) -> List[Dict[str, Any]]:
        return rows_to_dicts(
            self.conn.execute("SELECT * FROM card_categories WHERE user_id = ?", (self.user_id,)).fetchall()
        )

    def get_category(self, item_id: str) -> Optional[Dict[str, Any]]:
        return row_to_dict(
            self.conn.execute(
                "SELECT * FROM card_categories WHERE user_id = ? AND item_id = ?",
                (self.user_id, item_id),
            ).fetchone()
        )

    def set_category(self, item_id: str, item_type: str, column_id: int) -> Dict[str, Any]:
        now = iso()
        self.conn.execute(
            """
            INSERT INTO card_categories (user_id, item_id, item_type, column_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, item_id) DO UPDATE SET column_id = excluded.column_id, updated_at = excluded.updated_at
            """,
            (self.user_id, item_id, item_type, column_id, now, now),
        )
        self._commit()
        return self.get_category(item_id) or {}

    def delete_category(self, item_id: str) -> None:
        self.conn.execute(
            "DELETE FROM card_categories WHERE user_id = ? AND item_id = ?",
            (self.user_id, item_id),
        )
        self._commit()

    # -- notes ---------------------------------------------------------------

    def list_notes(self) -> List[Dict[str, Any]]:
        return rows_to_dicts(
            self.conn.execute("SELECT * FROM item_notes WHERE user_id = ?", (self.user_id,)).fetchall()
        )

    def get_note(self, item_id: str) -> Optional[Dict[str, Any]]:
        return row_to_dict(
            self.conn.execute(
                "SELECT * FROM item_notes WHERE user_id = ? AND item_id = ?",
                (self.user_id, item_id),
            ).fetchone()
        )

    def save_note(self, item_id: str, item_type: str, notes: str) -> Dict[str, Any]:
        now = iso()
        self.conn.execute(
            """
            INSERT INTO item_notes (user_id, item_id, item_type, notes, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, item_id) DO UPDATE SET notes = excluded.notes, updated_at = excluded.updated_at
            """,
            (self.user_id, item_id, item_type, notes, now, now),
        )
        self._commit()
        return self.get_note(item_id) or {}

    # -- checklist -----------------------------------------------------------

    def list_checklist(self, item_id: str) -> List[Dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT * FROM checklist_items WHERE user_id = ? AND item_id = ? ORDER BY position, id",
            (self.user_id, item_id),
        ).fetchall()
        return [_checklist_row(r) for r in rows]

    def checklist_map(self) -> Dict[str, List[Dict[str, Any]]]:
        """Every checklist the user has, grouped by item id."""
        rows = self.conn.execute(
            "SELECT * FROM checklist_items WHERE user_id = ? ORDER BY item_id, position, id",
            (self.user_id,),
        ).fetchall()
        out: Dict[str, List[Dict[str, Any]]] = {}
        for row in rows:
            entry = _checklist_row(row)
            out.setdefault(str(entry["item_id"]), []).append(entry)
        return out

    def get_checklist_item(self, checklist_id: int) -> Optional[Dict[str, Any]]:
        row = self.conn.execute(
            "SELECT * FROM checklist_items WHERE id = ? AND user_id = ?",
            (checklist_id, self.user_id),
        ).fetchone()
        return _checklist_row(row) if row else None

    def add_checklist_item(self, item_id: str, item_type: str, text: str) -> Dict[str, Any]:
        row = self.conn.execute(
            "SELECT MAX(position) AS p FROM checklist_items WHERE user_id = ? AND item_id = ?",
            (self.user_id, item_id),
        ).fetchone()
        position = int(row["p"]) + 1 if row and row["p"] is not None else 0
        now = iso()
        cursor = self.conn.execute(
            """
            INSERT INTO checklist_items (user_id, item_id, item_type, text, checked, position, created_at, updated_at)
            VALUES (?, ?, ?, ?, 0, ?, ?, ?)
            """,
            (self.user_id, item_id, item_type, text, position, now, now),
        )
        self._commit()
        return self.get_checklist_item(int(cursor.lastrowid)) or {}

    def update_checklist_item(
        self,
        checklist_id: int,
        checked: Optional[bool] = None,
        text: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        existing = self.get_checklist_item(checklist_id)
        if not existing:
            return None
        self.conn.execute(
            "UPDATE checklist_items SET checked = ?, text = ?, updated_at = ? WHERE id = ? AND user_id = ?",
            (
                int(checked) if checked is not None else int(existing["checked"]),
                text if text is not None else existing["text"],
                iso(),
                checklist_id,
                self.user_id,
            ),
        )
        self._commit()
        return self.get_checklist_item(checklist_id)

    def delete_checklist_item(self, checklist_id: int) -> bool:
        cursor = self.conn.execute(
            "DELETE FROM checklist_items WHERE id = ? AND user_id = ?",
            (checklist_id, self.user_id),
        )
        self._commit()
        return cursor.rowcount > 0

    def set_checklist_checked(self, item_id: str, checked: bool) -> int:
        cursor = self.conn.execute(
            "UPDATE checklist_items SET checked = ?, updated_at = ? WHERE user_id = ? AND item_id = ?",
            (int(checked), iso(), self.user_id, item_id),
        )
        self._commit()
        return max(cursor.rowcount, 0)

    # -- labels --------------------------------------------------------------

    def list_labels(self) -> List[Dict[str, Any]]:
        return rows_to_dicts(
            self.conn.execute(
                "SELECT * FROM labels WHERE user_id = ? ORDER BY created_at, id",
                (self.user_id,),
            ).fetchall()
        )

    def get_label(self, label_id: int) -> Optional[Dict[str, Any]]:
        return row_to_dict(
            self.conn.execute(
                "SELECT * FROM labels WHERE id = ? AND user_id = ?",
                (label_id, self.user_id),
            ).fetchone()
        )

    def create_label(self, name: str, color: str) -> Dict[str, Any]:
        cursor = self.conn.execute(
            "INSERT INTO labels (user_id, name, color, created_at) VALUES (?, ?, ?, ?)",
            (self.user_id, name, color, iso()),
        )
        self._commit()
        return self.get_label(int(cursor.lastrowid)) or {}

    def update_label(self, label_id: int, name: Optional[str] = None, color: Optional[str] = None) -> Optional[Dict[str, Any]]:
        existing = self.get_label(label_id)
        if not existing:
            return None
        self.conn.execute(
            "UPDATE labels SET name = ?, color = ? WHERE id = ? AND user_id = ?",
            (name or existing["name"], color or existing["color"], label_id, self.user_id),
        )
        self._commit()
        return self.get_label(label_id)

    def delete_label(self, label_id: int) -> bool:
        if not self.get_label(label_id):
            return False
        self.conn.execute("DELETE FROM item_labels WHERE label_id = ?", (label_id,))
        self.conn.execute("DELETE FROM labels WHERE id = ? AND user_id = ?", (label_id, self.user_id))
        self._commit()
        return True

    def list_item_labels(self, item_id: Optional[str] = None) -> List[Dict[str, Any]]:
        sql = """
            SELECT il.id, il.item_id, il.label_id, il.created_at, l.name AS label_name, l.color AS label_color
            FROM item_labels il
            JOIN labels l ON l.id = il.label_id
            WHERE l.user_id = ?
        """
        params: List[Any] = [self.user_id]
        if item_id:
            sql += " AND il.item_id = ?"
            params.append(item_id)
        rows = self.conn.execute(sql + " ORDER BY il.id", tuple(params)).fetchall()
        out = []
        for row in rows:
            data = row_to_dict(row) or {}
            data["label"] = {"id": data["label_id"], "name": data.pop("label_name"), "color": data.pop("label_color")}
            out.append(data)
        return out

    def add_item_label(self, item_id: str, label_id: int) -> Optional[Dict[str, Any]]:
        if not self.get_label(label_id):
            return None
        existing = row_to_dict(
            self.conn.execute(
                "SELECT * FROM item_labels WHERE item_id = ? AND label_id = ?",
                (item_id, label_id),
            ).fetchone()
        )
        if existing:
            return existing
        cursor = self.conn.execute(
            "INSERT INTO item_labels (item_id, label_id, created_at) VALUES (?, ?, ?)",
            (item_id, label_id, iso()),
        )
        self._commit()
        return row_to_dict(
            self.conn.execute("SELECT * FROM item_labels WHERE id = ?", (int(cursor.lastrowid),)).fetchone()
        )

    def remove_item_label(self, item_id: str, label_id: int) -> None:
        self.conn.execute(
            """
            DELETE FROM item_labels
            WHERE item_id = ? AND label_id = ? AND label_id IN (SELECT id FROM labels WHERE user_id = ?)
            """,
            (item_id, label_id, self.user_id),
        )
        self._commit()

    def set_item_labels(self, item_id: str, label_ids: Iterable[int]) -> List[Dict[str, Any]]:
        owned = {int(label["id"]) for label in self.list_labels()}
        wanted = {int(label_id) for label_id in label_ids} & owned
        current = {int(link["label_id"]) for link in self.list_item_labels(item_id)}
        for label_id in current - wanted:
            self.conn.execute("DELETE FROM item_labels WHERE item_id = ? AND label_id = ?", (item_id, label_id))
        for label_id in sorted(wanted - current):
            self.conn.execute(
                "INSERT INTO item_labels (item_id, label_id, created_at) VALUES (?, ?, ?)",
                (item_id, label_id, iso()),
            )
        self._commit()
        return self.list_item_labels(item_id)

    # -- trash ---------------------------------------------------------------

    def list_trashed(self) -> List[Dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT * FROM trashed_items WHERE user_id = ? ORDER BY trashed_at DESC, id DESC",
            (self.user_id,),
        ).fetchall()
        return [_trash_row(r) for r in rows]

    def get_trashed(self, item_id: str) -> Optional[Dict[str, Any]]:
        row = self.conn.execute(
            "SELECT * FROM trashed_items WHERE user_id = ? AND item_id = ?",
            (self.user_id, item_id),
        ).fetchone()
        return _trash_row(row) if row else None

    def trash_item(
        self,
        item_id: str,
        item_type: str,
        previous_column_id: Optional[int],
        item_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        self.conn.execute(
            """
            INSERT INTO trashed_items (user_id, item_id, item_type, previous_column_id, item_data, trashed_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, item_id) DO UPDATE SET
                item_type = excluded.item_type,
                previous_column_id = excluded.previous_column_id,
                item_data = excluded.item_data,
                trashed_at = excluded.trashed_at
            """,
            (
                self.user_id,
                item_id,
                item_type,
                previous_column_id,
                json.dumps(item_data) if item_data is not None else None,
                iso(),
            ),
        )
        self._commit()
        logger.info("Trashed item %s (was in column %s)", item_id, previous_column_id)
        return self.get_trashed(item_id) or {}

    def untrash(self, item_id: str) -> Optional[Dict[str, Any]]:
        record = self.get_trashed(item_id)
        if not record:
            return None
        self.conn.execute(
            "DELETE FROM trashed_items WHERE user_id = ? AND item_id = ?",
            (self.user_id, item_id),
        )
        self._commit()
        return record

    # -- event details -------------------------------------------------------

    def save_event_details(self, event_id: str, location: Optional[str], description: Optional[str]) -> None:
        self.conn.execute(
            """
            INSERT INTO event_details (user_id, event_id, location, description, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (user_id, event_id) DO UPDATE SET
                location = excluded.location, description = excluded.description, updated_at = excluded.updated_at
            """,
            (self.user_id, event_id, location, description, iso()),
        )
        self._commit()

    def event_details_map(self) -> Dict[str, Dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT event_id, location, description FROM event_details WHERE user_id = ?",
            (self.user_id,),
        ).fetchall()
        return {str(r["event_id"]): {"location": r["location"], "description": r["description"]} for r in rows}

    # -- whole-item metadata -------------------------------------------------

    def purge_item(self, item_id: str, include_trash: bool = True) -> None:
        """Drop every metadata row attached to an item."""
        for table, key in (
            ("item_notes", "item_id"),
            ("checklist_items", "item_id"),
            ("card_categories", "item_id"),
            ("event_details", "event_id"),
            ("known_items", "item_id"),
        ):
            self.conn.execute(f"DELETE FROM {table} WHERE user_id = ? AND {key} = ?", (self.user_id, item_id))
        self.conn.execute(
            "DELETE FROM item_labels WHERE item_id = ? AND label_id IN (SELECT id FROM labels WHERE user_id = ?)",
            (item_id, self.user_id),
        )
        if include_trash:
            self.conn.execute(
                "DELETE FROM trashed_items WHERE user_id = ? AND item_id = ?",
                (self.user_id, item_id),
            )
        self._commit()

    def rekey_item(self, old_id: str, new_id: str) -> None:
        """Move metadata from an item's old id to the id it was recreated under."""
        for table, key in (
            ("item_notes", "item_id"),
            ("checklist_items", "item_id"),
            ("card_categories", "item_id"),
            ("event_details", "event_id"),
        ):
            self.conn.execute(
                f"UPDATE {table} SET {key} = ? WHERE user_id = ? AND {key} = ?",
                (new_id, self.user_id, old_id),
            )
        self.conn.execute(
            "UPDATE item_labels SET item_id = ? WHERE item_id = ? AND label_id IN (SELECT id FROM labels WHERE user_id = ?)",
            (new_id, old_id, self.user_id),
        )
        self.conn.execute("DELETE FROM known_items WHERE user_id = ? AND item_id = ?", (self.user_id, old_id))
        self._commit()

    # -- items seen upstream -------------------------------------------------

    def known_items(self) -> Dict[str, Dict[str, Any]]:
        """Last-seen snapshot of every item the board has shown, by item id."""
        rows = self.conn.execute(
            "SELECT item_id, item_type, item_data FROM known_items WHERE user_id = ?",
            (self.user_id,),
        ).fetchall()
        out: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            try:
                data = json.loads(row["item_data"]) if row["item_data"] else None
            except (TypeError, ValueError):
                data = None
            out[str(row["item_id"])] = data or {"id": str(row["item_id"]), "type": row["item_type"]}
        return out

    def remember_items(self, items: Iterable[Dict[str, Any]]) -> None:
        now = iso()
        for item in items:
            self.conn.execute(
                """
                INSERT INTO known_items (user_id, item_id, item_type, item_data, seen_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (user_id, item_id) DO UPDATE SET
                    item_type = excluded.item_type, item_data = excluded.item_data, seen_at = excluded.seen_at
                """,
                (self.user_id, item["id"], item.get("type") or "task", json.dumps(item), now),
            )
        self._commit()

    def forget_items(self, item_ids: Iterable[str]) -> None:
        for item_id in item_ids:
            self.conn.execute("DELETE FROM known_items WHERE user_id = ? AND item_id = ?", (self.user_id, item_id))
        self._commit()

    # -- feedback ------------------------------------------------------------

    def add_feedback(self, email: str, name: str, message: str, image_base64: Optional[str] = None) -> Dict[str, Any]:
        cursor = self.conn.execute(
            """
            INSERT INTO feedback (user_id, user_email, user_name, message, image_base64, status, created_at)
            VALUES (?, ?, ?, ?, ?, 'new', ?)
            """,
            (self.user_id, email, name or "Unknown", message, image_base64, iso()),
        )
        self._commit()
        return {"id": int(cursor.lastrowid)}

    def list_feedback(self) -> List[Dict[str, Any]]:
        return rows_to_dicts(
            self.conn.execute(
                "SELECT * FROM feedback WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (self.user_id,),
            ).fetchall()
        )

    # -- webhook channels / pending updates ----------------------------------

    def save_channel(self, channel_id: str, resource_id: Optional[str], channel_type: str, expiration: str) -> None:
        self.conn.execute(
            """
            INSERT INTO webhook_channels (user_id, channel_id, resource_id, channel_type, expiration, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (user_id, channel_type) DO UPDATE SET
                channel_id = excluded.channel_id, resource_id = excluded.resource_id, expiration = excluded.expiration
            """,
            (self.user_id, channel_id, resource_id, channel_type, expiration, iso()),
        )
        self._commit()

    def get_channel(self, channel_type: str) -> Optional[Dict[str, Any]]:
        return row_to_dict(
            self.conn.execute(
                "SELECT * FROM webhook_channels WHERE user_id = ? AND channel_type = ?",
                (self.user_id, channel_type),
            ).fetchone()
        )

    def delete_channel(self, channel_type: str) -> None:
        self.conn.execute(
            "DELETE FROM webhook_channels WHERE user_id = ? AND channel_type = ?",
            (self.user_id, channel_type),
        )
        self._commit()

    def pop_pending_updates(self) -> List[Dict[str, Any]]:
        updates = rows_to_dicts(
            self.conn.execute("SELECT * FROM pending_updates WHERE user_id = ?", (self.user_id,)).fetchall()
        )
        if updates:
            self.conn.execute("DELETE FROM pending_updates WHERE user_id = ?", (self.user_id,))
            self._commit()
        return updates


def channel_owner(conn: Any, channel_id: str) -> Optional[str]:
    row = conn.execute("SELECT user_id FROM webhook_channels WHERE channel_id = ?", (channel_id,)).fetchone()
    return str(row["user_id"]) if row else None


def record_pending_update(conn: Any, user_id: str, update_type: str) -> None:
    conn.execute(
        """
        INSERT INTO pending_updates (user_id, update_type, updated_at) VALUES (?, ?, ?)
        ON CONFLICT (user_id, update_type) DO UPDATE SET updated_at = excluded.updated_at
        """,
        (user_id, update_type, iso()),
    )
    conn.commit()
