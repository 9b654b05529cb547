import json
import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import ValidationError

from models import Task, TaskDraft

logger = logging.getLogger(__name__)

BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))

# Logical slots in the key-value table
TASKS_SLOT = "tasks"
PRIORITY_CACHE_SLOT = "priority_cache"
INSIGHT_SLOT = "insight"
CONVERSATION_SLOT = "conversation"

# Fields a user may change through update_task
EDITABLE_FIELDS = {"title", "deadline", "priority", "category", "energy", "note"}


class DuplicateTaskId(ValueError):
    pass


class InvalidTransition(ValueError):
    pass


class Store:
    """Key-value persistence over a single sqlite table.

    Every value is stored as JSON under a named slot. Reads of a slot whose
    JSON no longer parses behave as if the slot were empty.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    @contextmanager
    def get_db(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        """Initialize the database by running Alembic migrations."""
        from alembic import command
        from alembic.config import Config

        config = Config()
        config.set_main_option("script_location", os.path.join(BACKEND_DIR, "alembic"))
        config.set_main_option("sqlalchemy.url", f"sqlite:///{self.db_path}")
        command.upgrade(config, "head")

    def get(self, slot: str, default: Any = None) -> Any:
        with self.get_db() as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE slot = ?", (slot,)
            ).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning(f"Slot {slot!r} holds malformed JSON; treating as empty")
            return default

    def set(self, slot: str, value: Any) -> None:
        now = datetime.now().isoformat()
        with self.get_db() as conn:
            conn.execute(
                """INSERT INTO kv_store (slot, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(slot) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
                (slot, json.dumps(value), now)
            )
            conn.commit()

    def delete(self, slot: str) -> bool:
        with self.get_db() as conn:
            cursor = conn.execute("DELETE FROM kv_store WHERE slot = ?", (slot,))
            conn.commit()
            return cursor.rowcount > 0


class TaskStore:
    """Ordered task list kept in the ``tasks`` slot.

    Every mutation builds a new list and writes it back whole.
    """

    def __init__(self, store: Store):
        self.store = store

    def list_tasks(self) -> list[Task]:
        raw = self.store.get(TASKS_SLOT, [])
        if not isinstance(raw, list):
            logger.warning(f"Stored task list is a {type(raw).__name__}, not a list; ignoring it")
            return []
        tasks = []
        for item in raw:
            try:
                tasks.append(Task.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed task record: {e}")
        return tasks

    def save_tasks(self, tasks: list[Task]) -> None:
        seen = set()
        for task in tasks:
            if task.id in seen:
                raise DuplicateTaskId(f"Duplicate task id: {task.id}")
            seen.add(task.id)
        self.store.set(TASKS_SLOT, [task.model_dump(mode="json") for task in tasks])

    def save_order(self, ordered: list[Task]) -> list[Task]:
        """
        Persist an ordering computed from an earlier read of the list.

        The stored records win over the ones in ``ordered`` except for
        priority_reason. Tasks deleted in the meantime stay deleted and tasks
        added in the meantime go to the top, as add_task puts them.
        """
        current = {t.id: t for t in self.list_tasks()}
        kept = [
            current[t.id].model_copy(update={"priority_reason": t.priority_reason})
            for t in ordered if t.id in current
        ]
        placed = {t.id for t in kept}
        added = [t for t in current.values() if t.id not in placed]
        result = [*added, *kept]
        self.save_tasks(result)
        return result

    def get_task(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.list_tasks() if t.id == task_id), None)

    def find_task_by_title(self, title: str) -> Optional[Task]:
        """Find a task by partial title match (case-insensitive)."""
        title_lower = title.lower()
        for task in self.list_tasks():
            if title_lower in task.title.lower():
                return task
        return None

    def add_task(
        self,
        draft: TaskDraft,
        task_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Task:
        """Create a task from a draft and put it at the top of the list."""
        tasks = self.list_tasks()
        task = Task(
            id=task_id or str(uuid.uuid4()),
            status="active",
            created_at=now or datetime.now(),
            **draft.model_dump(),
        )
        self.save_tasks([task, *tasks])
        logger.info(f"Task {task.id} added: {task.title!r}")
        return task

    def update_task(self, task_id: str, **updates) -> Optional[Task]:
        """
        Update a task with the editable fields provided.
        Unknown or protected fields (id, status, timestamps) are ignored.
        Returns None if the task does not exist.
        """
        tasks = self.list_tasks()
        index = next((i for i, t in enumerate(tasks) if t.id == task_id), None)
        if index is None:
            return None

        changes = {k: v for k, v in updates.items() if k in EDITABLE_FIELDS}
        if not changes:
            return tasks[index]

        updated = Task.model_validate({**tasks[index].model_dump(), **changes})
        self.save_tasks([*tasks[:index], updated, *tasks[index + 1:]])
        return updated

    def complete_task(self, task_id: str, now: Optional[datetime] = None) -> Optional[Task]:
        """Move a task from active to done. Done tasks never go back."""
        tasks = self.list_tasks()
        index = next((i for i, t in enumerate(tasks) if t.id == task_id), None)
        if index is None:
            return None

        task = tasks[index]
        if not task.is_active:
            raise InvalidTransition(f"Task {task_id} is already done")

        done = task.model_copy(update={"status": "done", "done_at": now or datetime.now()})
        self.save_tasks([*tasks[:index], done, *tasks[index + 1:]])
        logger.info(f"Task {task_id} completed")
        return done

    def delete_task(self, task_id: str) -> bool:
        tasks = self.list_tasks()
        remaining = [t for t in tasks if t.id != task_id]
        if len(remaining) == len(tasks):
            return False
        self.save_tasks(remaining)
        return True

    def seed_if_empty(self, now: Optional[datetime] = None) -> list[Task]:
        """Put a small demo list in place on first start."""
        tasks = self.list_tasks()
        if tasks:
            return tasks

        now = now or datetime.now()
        today = now.date()
        seeds = [
            ("Prepare the presentation", today + timedelta(days=1), "high", "work", "high",
             "Start in the morning while your head is fresh"),
            ("Write the hackathon report", today + timedelta(days=2), "high", "study", "high",
             "Tasks like this take 2-3 hours"),
            ("Review the pull request", None, "medium", "work", "medium",
             "Goes well after lunch"),
            ("Buy groceries", None, "low", "personal", "low", "About 30 minutes"),
        ]
        tasks = [
            Task(
                id=str(uuid.uuid4()),
                title=title,
                deadline=deadline,
                priority=priority,
                category=category,
                energy=energy,
                ai_hint=hint,
                created_at=now,
            )
            for title, deadline, priority, category, energy, hint in seeds
        ]
        tasks.append(Task(
            id=str(uuid.uuid4()),
            title="Read the ML article",
            priority="low",
            category="study",
            energy="medium",
            status="done",
            created_at=now - timedelta(days=1),
            done_at=now - timedelta(days=1),
        ))
        self.save_tasks(tasks)
        logger.info(f"Seeded {len(tasks)} demo tasks")
        return tasks


# Conversation operations
def get_conversation(store: Store) -> list[dict]:
    """Get the saved conversation history."""
    messages = store.get(CONVERSATION_SLOT, [])
    return messages if isinstance(messages, list) else []


def save_conversation(store: Store, messages: list[dict]) -> None:
    store.set(CONVERSATION_SLOT, messages)
