"""
Shared pytest fixtures for backend tests.
Each test gets its own temporary SQLite database and no language model.
"""
import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
import executor
import model_parser
from confirmation import ConfirmationStore
from models import Owner


SCHEMA = """
    CREATE TABLE tasks (
        id TEXT PRIMARY KEY,
        owner_id TEXT,
        guest_id TEXT,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'completed')),
        due_at TEXT,
        due_date TEXT,
        recurrence_rule TEXT,
        recurrence_timezone TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        CHECK ((owner_id IS NULL) != (guest_id IS NULL))
    );

    CREATE TABLE subscriptions (
        user_id TEXT PRIMARY KEY,
        status TEXT NOT NULL,
        current_period_end TEXT
    );
"""


@pytest.fixture(autouse=True)
def isolated_collaborators(monkeypatch):
    """No real model calls and no task-list listeners leaking between tests."""
    monkeypatch.setattr(model_parser, "get_model_client", lambda: None)
    monkeypatch.setattr(executor, "_task_list_listeners", [])


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def owner():
    return Owner(id="user-1")


@pytest.fixture
def guest():
    return Owner(id="guest-1", is_guest=True)


@pytest.fixture
def app_client(test_db, monkeypatch):
    """
    Create a test client for the FastAPI app.
    Fresh confirmation store and revision counters per test.
    """
    from fastapi.testclient import TestClient
    import main

    monkeypatch.setattr(main, "confirmation_store", ConfirmationStore())
    monkeypatch.setattr(main, "task_list_revisions", {})

    with TestClient(main.app) as client:
        yield client
