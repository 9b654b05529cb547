"""
Shared pytest fixtures for backend tests.
Each test gets its own sqlite file so slots never leak between tests.
"""
import pytest
import sqlite3
import sys
import os
from datetime import datetime

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Settings
from database import Store, TaskStore
from fakes import FakeClock, FakeLLM, FakeOracle
from priority_cache import PriorityCache


@pytest.fixture
def store(tmp_path):
    """
    Create an isolated store for each test.
    Tables are created directly; alembic is skipped in tests.
    """
    db_path = str(tmp_path / "test.db")
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE kv_store (
            slot TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
    """)
    conn.commit()
    conn.close()

    return Store(db_path)


@pytest.fixture
def task_store(store):
    return TaskStore(store)


@pytest.fixture
def clock():
    """Tuesday 2026-03-10, 09:30 local time (morning)."""
    return FakeClock(datetime(2026, 3, 10, 9, 30))


@pytest.fixture
def cache(store, clock):
    return PriorityCache(store, clock=clock)


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def app_client(store, clock, oracle, llm):
    """
    Create a test client for the FastAPI app with fake AI collaborators.
    Demo seeding and migrations are off so every test starts empty.
    """
    from fastapi.testclient import TestClient
    from main import create_app

    app = create_app(
        settings=Settings(),
        store=store,
        llm=llm,
        oracle=oracle,
        clock=clock,
        run_migrations=False,
        seed_demo_tasks=False,
    )
    with TestClient(app) as client:
        yield client
