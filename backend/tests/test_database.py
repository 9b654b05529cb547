"""
Tests for database.py - key-value slots and task store operations.
"""
import pytest
import sys
import os
from datetime import date, datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import (
    DuplicateTaskId,
    InvalidTransition,
    TASKS_SLOT,
    get_conversation,
    save_conversation,
)
from fakes import make_task
from models import Task, TaskDraft


class TestStoreSlots:
    """Tests for raw slot get/set/delete."""

    def test_missing_slot_returns_default(self, store):
        assert store.get("nothing") is None
        assert store.get("nothing", []) == []

    def test_set_then_get(self, store):
        store.set("insight", {"text": "Keep going", "at": 1})
        assert store.get("insight") == {"text": "Keep going", "at": 1}

    def test_set_replaces_value(self, store):
        store.set("insight", {"text": "first", "at": 1})
        store.set("insight", {"text": "second", "at": 2})
        assert store.get("insight")["text"] == "second"

    def test_malformed_json_reads_as_default(self, store):
        with store.get_db() as conn:
            conn.execute(
                "INSERT INTO kv_store (slot, value, updated_at) VALUES (?, ?, ?)",
                ("priority_cache", "{not json", "2026-03-10T09:00:00")
            )
            conn.commit()

        assert store.get("priority_cache") is None

    def test_delete(self, store):
        store.set("insight", {"text": "x", "at": 1})
        assert store.delete("insight") is True
        assert store.delete("insight") is False
        assert store.get("insight") is None


class TestTaskCRUD:
    """Tests for basic task create/read/update/delete operations."""

    def test_list_tasks_empty(self, task_store):
        assert task_store.list_tasks() == []

    def test_add_task_assigns_identity(self, task_store):
        now = datetime(2026, 3, 10, 9, 0)
        task = task_store.add_task(TaskDraft(title="Buy groceries", category="personal"), now=now)

        assert task.id
        assert task.status == "active"
        assert task.created_at == now
        assert task.done_at is None
        assert task.category == "personal"

    def test_add_task_prepends(self, task_store):
        first = task_store.add_task(TaskDraft(title="First"))
        second = task_store.add_task(TaskDraft(title="Second"))

        assert [t.id for t in task_store.list_tasks()] == [second.id, first.id]

    def test_add_task_duplicate_id_rejected(self, task_store):
        task_store.add_task(TaskDraft(title="One"), task_id="id-1")

        with pytest.raises(DuplicateTaskId):
            task_store.add_task(TaskDraft(title="Two"), task_id="id-1")
        assert len(task_store.list_tasks()) == 1

    def test_save_tasks_rejects_duplicates(self, task_store):
        with pytest.raises(DuplicateTaskId):
            task_store.save_tasks([make_task("a"), make_task("a")])

    def test_round_trip_keeps_dates(self, task_store):
        task_store.save_tasks([make_task("a", deadline=date(2026, 3, 12), note="bring slides")])

        task = task_store.get_task("a")
        assert task.deadline == date(2026, 3, 12)
        assert task.note == "bring slides"

    def test_update_task_fields(self, task_store):
        task_store.save_tasks([make_task("a", title="Old title")])
        updated = task_store.update_task("a", title="New title", priority="high", note="call first")

        assert updated.title == "New title"
        assert updated.priority == "high"
        assert updated.note == "call first"
        assert task_store.get_task("a").title == "New title"

    def test_update_task_clears_deadline(self, task_store):
        task_store.save_tasks([make_task("a", deadline=date(2026, 3, 12))])
        updated = task_store.update_task("a", deadline=None)
        assert updated.deadline is None

    def test_update_task_ignores_protected_fields(self, task_store):
        task_store.save_tasks([make_task("a")])
        updated = task_store.update_task("a", status="done", id="b", created_at=datetime(2020, 1, 1))

        assert updated.id == "a"
        assert updated.status == "active"
        assert updated.created_at == datetime(2026, 3, 9, 12, 0)

    def test_update_task_not_found(self, task_store):
        assert task_store.update_task("missing", title="x") is None

    def test_delete_task(self, task_store):
        task_store.save_tasks([make_task("a"), make_task("b")])

        assert task_store.delete_task("a") is True
        assert [t.id for t in task_store.list_tasks()] == ["b"]
        assert task_store.delete_task("a") is False

    def test_find_task_by_title(self, task_store):
        task_store.save_tasks([make_task("a", title="Write report"), make_task("b", title="Buy milk")])

        assert task_store.find_task_by_title("MILK").id == "b"
        assert task_store.find_task_by_title("nothing") is None

    def test_malformed_record_skipped(self, task_store, store):
        good = make_task("a").model_dump(mode="json")
        store.set(TASKS_SLOT, [good, {"id": "broken"}])

        assert [t.id for t in task_store.list_tasks()] == ["a"]

    def test_non_list_slot_reads_empty(self, task_store, store):
        store.set(TASKS_SLOT, {"oops": True})
        assert task_store.list_tasks() == []


class TestCompletion:
    """Tests for the active -> done transition."""

    def test_complete_sets_done_at(self, task_store):
        task_store.save_tasks([make_task("a")])
        now = datetime(2026, 3, 10, 18, 0)
        done = task_store.complete_task("a", now=now)

        assert done.status == "done"
        assert done.done_at == now
        assert task_store.get_task("a").done_at == now

    def test_complete_twice_rejected(self, task_store):
        task_store.save_tasks([make_task("a")])
        task_store.complete_task("a")

        with pytest.raises(InvalidTransition):
            task_store.complete_task("a")

    def test_complete_missing(self, task_store):
        assert task_store.complete_task("missing") is None

    def test_done_at_requires_done_status(self):
        with pytest.raises(ValueError):
            Task.model_validate({
                **make_task("a").model_dump(),
                "done_at": datetime(2026, 3, 10),
            })


class TestSaveOrder:
    """Tests for persisting an ordering computed from an older read."""

    def test_applies_order_and_reasons(self, task_store):
        a, b = make_task("a"), make_task("b")
        task_store.save_tasks([a, b])

        ordered = [b.model_copy(update={"priority_reason": "quick"}), a]
        result = task_store.save_order(ordered)

        assert [t.id for t in result] == ["b", "a"]
        assert task_store.get_task("b").priority_reason == "quick"

    def test_keeps_concurrent_changes(self, task_store):
        a, b = make_task("a"), make_task("b")
        task_store.save_tasks([a, b])
        ordered = [b, a]

        # Meanwhile: a is deleted, b is renamed, c is added
        task_store.delete_task("a")
        task_store.update_task("b", title="Renamed")
        c = task_store.add_task(TaskDraft(title="New"))

        result = task_store.save_order(ordered)

        assert [t.id for t in result] == [c.id, "b"]
        assert result[1].title == "Renamed"


class TestSeed:
    """Tests for the first-start demo list."""

    def test_seed_if_empty(self, task_store):
        tasks = task_store.seed_if_empty(now=datetime(2026, 3, 10, 9, 0))

        assert len(tasks) == 5
        assert sum(1 for t in tasks if t.is_active) == 4
        assert task_store.list_tasks() == tasks

    def test_seed_skipped_when_tasks_exist(self, task_store):
        task_store.save_tasks([make_task("a")])
        tasks = task_store.seed_if_empty()

        assert [t.id for t in tasks] == ["a"]


class TestConversation:
    """Tests for conversation save/load."""

    def test_empty_conversation(self, store):
        assert get_conversation(store) == []

    def test_save_and_load(self, store):
        messages = [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello!"},
        ]
        save_conversation(store, messages)
        assert get_conversation(store) == messages
