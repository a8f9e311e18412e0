"""Board reconciliation against a fake Google workspace and a real per-user store."""

import datetime as dt

import pytest

from calimbus.board import Board, item_on_date
from conftest import FakeWorkspace, make_event, make_task


@pytest.fixture
def remote():
    return FakeWorkspace(
        events=[
            make_event("evt-1", "Team lunch", "2025-01-10", "2025-01-11", location="Cafe", description="Bring snacks"),
        ],
        tasks=[
            make_task("task-1", "Write report", due="2025-01-10", notes="Q4 numbers"),
            make_task("task-2", "Call mom", due="2025-01-12"),
        ],
    )


@pytest.fixture
def board(remote, store):
    b = Board(remote, store, today=dt.date(2025, 1, 10))
    ok, message = b.load()
    assert ok, message
    return b


def column_id(board, name):
    return int(board.column_named(name)["id"])


def test_load_seeds_columns_and_items(board):
    assert [c["name"] for c in board.columns] == ["Events", "Tasks", "Roll Over", "Done", "Trash"]
    assert set(board.items) == {"evt-1", "task-1", "task-2"}


def test_lookup_falls_back_to_type_default_column(board):
    assert board.column_for("evt-1") == column_id(board, "Events")
    assert board.column_for("task-1") == column_id(board, "Tasks")


def test_lookup_uses_first_column_when_default_missing(board):
    ok, _ = board.delete_column(column_id(board, "Tasks"))
    assert ok
    assert board.column_for("task-1") == int(board.columns[0]["id"])


def test_explicit_mapping_wins(board, store):
    done = column_id(board, "Done")
    store.set_category("task-2", "task", done)
    board.load()
    assert board.column_for("task-2") == done


def test_items_for_column_filters_by_date(board):
    tasks = column_id(board, "Tasks")
    events = column_id(board, "Events")
    assert [i["id"] for i in board.items_for_column(tasks, "2025-01-10")] == ["task-1"]
    assert [i["id"] for i in board.items_for_column(events, "2025-01-10")] == ["evt-1"]
    # all-day end date is exclusive
    assert board.items_for_column(events, "2025-01-11") == []
    assert len(board.items_for_column(tasks)) == 2


def test_item_on_date_spans_timed_events():
    event = make_event("e", "Offsite", "2025-03-01T09:00:00Z", "2025-03-03T17:00:00Z")
    assert item_on_date(event, dt.date(2025, 3, 2))
    assert item_on_date(event, dt.date(2025, 3, 3))
    assert not item_on_date(event, dt.date(2025, 3, 4))


def test_move_persists_mapping(board, store):
    events = column_id(board, "Events")
    ok, _ = board.move_item("task-2", events)
    assert ok
    assert board.column_for("task-2") == events
    assert store.get_category("task-2")["column_id"] == events


def test_move_into_done_completes_task_and_checks_checklist(board, remote, store):
    store.add_checklist_item("task-1", "task", "draft")
    store.add_checklist_item("task-1", "task", "review")

    ok, _ = board.move_item("task-1", column_id(board, "Done"))
    assert ok
    assert remote.tasks["task-1"]["status"] == "completed"
    assert board.items["task-1"]["status"] == "completed"
    assert all(item["checked"] for item in store.list_checklist("task-1"))

    ok, _ = board.move_item("task-1", column_id(board, "Tasks"))
    assert ok
    assert remote.tasks["task-1"]["status"] == "needsAction"
    assert not any(item["checked"] for item in store.list_checklist("task-1"))
    assert store.get_category("task-1")["column_id"] == column_id(board, "Tasks")


def test_roll_over_advances_due_from_viewed_date(board, remote, store):
    ok, _ = board.move_item("task-1", column_id(board, "Roll Over"), view_date="2025-01-10")
    assert ok
    assert remote.tasks["task-1"]["due"] == "2025-01-11"
    assert board.items["task-1"]["due"] == "2025-01-11"
    assert store.get_category("task-1") is None
    assert board.column_for("task-1") == column_id(board, "Tasks")
    assert [i["id"] for i in board.items_for_column(column_id(board, "Tasks"), "2025-01-11")] == ["task-1"]


def test_roll_over_without_view_date_uses_due(board, remote):
    ok, _ = board.move_item("task-2", column_id(board, "Roll Over"))
    assert ok
    assert remote.tasks["task-2"]["due"] == "2025-01-13"


def test_roll_over_reschedules_event_to_next_day(board, remote, store):
    store.save_note("evt-1", "event", "agenda")
    ok, _ = board.move_item("evt-1", column_id(board, "Roll Over"), view_date="2025-01-10")
    assert ok
    assert "evt-1" not in remote.events
    (new_id,) = [i for i in board.items if i.startswith("event-new")]
    assert board.items[new_id]["start"] == "2025-01-11"
    assert board.items[new_id]["end"] == "2025-01-12"
    assert store.get_note(new_id)["notes"] == "agenda"
    assert board.column_for(new_id) == column_id(board, "Events")


def test_roll_over_from_done_reopens_task(board, remote, store):
    store.add_checklist_item("task-1", "task", "draft")
    board.move_item("task-1", column_id(board, "Done"))
    assert remote.tasks["task-1"]["status"] == "completed"

    ok, _ = board.move_item("task-1", column_id(board, "Roll Over"), view_date="2025-01-10")
    assert ok
    assert remote.tasks["task-1"]["status"] == "needsAction"
    assert remote.tasks["task-1"]["due"] == "2025-01-11"
    assert board.items["task-1"]["status"] == "needsAction"
    assert not any(item["checked"] for item in store.list_checklist("task-1"))
    assert board.column_for("task-1") == column_id(board, "Tasks")


def test_failed_move_is_reverted(board, remote, store):
    remote.fail.add("set_task_status")
    ok, message = board.move_item("task-1", column_id(board, "Done"))
    assert not ok
    assert "failed" in message
    assert board.column_for("task-1") == column_id(board, "Tasks")
    assert board.items["task-1"]["status"] == "needsAction"
    assert store.get_category("task-1") is None


def test_trash_then_restore_reproduces_task(board, remote, store):
    store.save_note("task-1", "task", "remember the appendix")
    ok, _ = board.move_item("task-1", column_id(board, "Trash"))
    assert ok
    assert "task-1" not in remote.tasks
    assert board.column_for("task-1") == column_id(board, "Trash")
    record = store.get_trashed("task-1")
    assert record["previous_column_id"] == column_id(board, "Tasks")
    assert record["item_data"]["title"] == "Write report"

    ok, _ = board.restore_item("task-1")
    assert ok
    assert "task-1" not in board.items
    assert store.get_trashed("task-1") is None
    (new_id,) = [i for i in board.items if i.startswith("task-new")]
    restored = board.items[new_id]
    assert restored["title"] == "Write report"
    assert restored["notes"] == "Q4 numbers"
    assert restored["due"] == "2025-01-10"
    assert store.get_note(new_id)["notes"] == "remember the appendix"
    assert board.column_for(new_id) == column_id(board, "Tasks")


def test_trash_then_restore_reproduces_event_details(board, remote):
    board.trash_item("evt-1")
    ok, _ = board.move_item("evt-1", column_id(board, "Events"))
    assert ok
    (new_id,) = [i for i in board.items if i.startswith("event-new")]
    restored = board.items[new_id]
    assert restored["title"] == "Team lunch"
    assert restored["location"] == "Cafe"
    assert restored["description"] == "Bring snacks"
    assert restored["start"] == "2025-01-10"


def test_restore_recompletes_completed_task(remote, store):
    remote.tasks["done-1"] = make_task("done-1", "Finished", status="completed")
    board = Board(remote, store)
    board.load()
    board.trash_item("done-1")
    ok, _ = board.restore_item("done-1")
    assert ok
    (new_id,) = [i for i in board.items if i.startswith("task-new")]
    assert remote.tasks[new_id]["status"] == "completed"


def test_failed_remote_delete_withdraws_trash_record(board, remote, store):
    remote.fail.add("delete_task")
    ok, _ = board.trash_item("task-1")
    assert not ok
    assert store.get_trashed("task-1") is None
    assert "task-1" not in board.trashed
    assert board.column_for("task-1") == column_id(board, "Tasks")


def test_trash_tolerates_item_already_gone(board, remote, store):
    del remote.tasks["task-2"]
    ok, _ = board.trash_item("task-2")
    assert ok
    assert store.get_trashed("task-2") is not None


def test_refresh_moves_upstream_deletions_to_trash(board, remote, store):
    del remote.events["evt-1"]
    ok, message = board.refresh()
    assert ok
    assert "1 moved to Trash" in message
    assert board.column_for("evt-1") == column_id(board, "Trash")
    assert store.get_trashed("evt-1")["item_data"]["location"] == "Cafe"
    assert "evt-1" in board.items


def test_refresh_on_a_fresh_board_trashes_items_seen_by_earlier_loads(board, remote, store):
    del remote.tasks["task-2"]
    later = Board(remote, store, today=dt.date(2025, 1, 10))
    ok, _ = later.load()
    assert ok
    assert "task-2" not in later.items

    ok, message = later.refresh()
    assert ok, message
    assert "1 moved to Trash" in message
    assert later.column_for("task-2") == column_id(later, "Trash")
    assert store.get_trashed("task-2")["item_data"]["title"] == "Call mom"
    assert "task-2" not in store.known_items()


def test_refresh_forgets_events_outside_the_listing_window(board, remote, store):
    remote.events["evt-old"] = make_event("evt-old", "Old trip", "2024-11-05", "2024-11-06")
    board.load()
    assert "evt-old" in store.known_items()

    del remote.events["evt-old"]
    ok, message = board.refresh()
    assert ok
    assert "Trash" not in message
    assert store.get_trashed("evt-old") is None
    assert "evt-old" not in store.known_items()
    assert "evt-old" not in board.items


def test_known_items_follow_rekey_and_purge(store):
    store.remember_items([make_task("task-9", "Water plants"), make_event("evt-9", "Gym", "2025-01-10", "2025-01-11")])
    assert store.known_items()["task-9"]["title"] == "Water plants"

    store.rekey_item("evt-9", "evt-10")
    store.purge_item("task-9")
    assert store.known_items() == {}

    store.remember_items([make_task("task-9", "Water plants")])
    store.forget_items(["task-9"])
    assert store.known_items() == {}


def test_trashed_snapshot_survives_reload(board, remote, store):
    board.trash_item("task-2")
    reloaded = Board(remote, store)
    reloaded.load()
    assert reloaded.items["task-2"]["title"] == "Call mom"
    trash = column_id(reloaded, "Trash")
    assert [i["id"] for i in reloaded.items_for_column(trash, "2030-01-01")] == ["task-2"]


def test_undo_restores_most_recent_trash(board, store):
    board.trash_item("task-2")
    ok, message = board.undo_last_trash()
    assert ok, message
    assert store.list_trashed() == []
    assert not board.trashed


def test_undo_with_empty_trash(board):
    assert board.undo_last_trash() == (False, "Nothing to undo")


def test_permanent_delete_of_trashed_item_purges_metadata(board, remote, store):
    store.add_checklist_item("task-2", "task", "dial")
    board.trash_item("task-2")
    calls_before = len(remote.calls)
    ok, _ = board.permanently_delete_item("task-2")
    assert ok
    assert len(remote.calls) == calls_before
    assert store.get_trashed("task-2") is None
    assert store.list_checklist("task-2") == []
    assert "task-2" not in board.items


def test_permanent_delete_of_live_item_deletes_remotely(board, remote):
    ok, _ = board.permanently_delete_item("task-1")
    assert ok
    assert "task-1" not in remote.tasks


def test_reschedule_event_keeps_time_of_day(remote, store):
    remote.events["evt-2"] = make_event("evt-2", "Standup", "2025-01-10T09:00:00+00:00", "2025-01-10T09:15:00+00:00")
    board = Board(remote, store)
    board.load()
    ok, _ = board.reschedule_item("evt-2", "2025-01-14")
    assert ok
    (new_id,) = [i for i in board.items if i.startswith("event-new")]
    assert board.items[new_id]["start"] == "2025-01-14T09:00:00+00:00"
    assert board.items[new_id]["end"] == "2025-01-14T09:15:00+00:00"


def test_reschedule_task_patches_due(board, remote):
    ok, _ = board.reschedule_item("task-2", "2025-02-01")
    assert ok
    assert remote.tasks["task-2"]["due"] == "2025-02-01"


def test_create_task_and_event(board, store):
    ok, _ = board.create_task("Buy milk", due="2025-01-10")
    assert ok
    ok, _ = board.create_event("Dentist", "2025-01-15", location="Main St")
    assert ok
    titles = {item["title"] for item in board.items.values()}
    assert {"Buy milk", "Dentist"} <= titles
    assert any(v["location"] == "Main St" for v in store.event_details_map().values())


def test_create_records_the_new_item_id(board):
    board.create_event("Dentist", "2025-01-15")
    assert board.last_item_id == "event-new-1"
    board.create_task("Buy milk")
    assert board.last_item_id == "task-new-2"
    board.create_task("")
    assert board.last_item_id == "task-new-2"


def test_create_task_requires_title(board):
    assert board.create_task("   ") == (False, "Title is required")


def test_delete_column_drops_mappings(board, store):
    custom_ok, _ = board.add_column("Waiting", color="#f59e0b")
    assert custom_ok
    waiting = column_id(board, "Waiting")
    board.move_item("task-2", waiting)
    ok, _ = board.delete_column(waiting)
    assert ok
    assert "task-2" not in board.categories
    assert store.get_category("task-2") is None
    assert board.column_for("task-2") == column_id(board, "Tasks")


def test_update_column_renames(board):
    ok, _ = board.update_column(column_id(board, "Done"), name="Finished")
    assert ok
    assert board.column_named("finished") is not None


def test_snapshot_groups_items_by_column(board):
    snap = board.snapshot("2025-01-10")
    by_name = {col["name"]: [i["id"] for i in col["items"]] for col in snap["columns"]}
    assert by_name["Events"] == ["evt-1"]
    assert by_name["Tasks"] == ["task-1"]
    assert snap["date"] == "2025-01-10"


def test_load_failure_keeps_previous_state(board, remote):
    remote.fail.add("list_tasks")
    ok, _ = board.load()
    assert not ok
    assert "task-1" in board.items
