import os
import sqlite3
import subprocess
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

import config
from datetimes import due_fields, format_instant, utc_now
from models import Owner, Task

DATABASE_PATH = config.DATABASE_PATH

# Columns update_task_db accepts; due_date is derived from due_at, never written directly
UPDATABLE_FIELDS = ("title", "description", "status", "due_at", "recurrence_rule", "recurrence_timezone")


class StoreError(Exception):
    """Any failure talking to the task store."""


@contextmanager
def get_db():
    """Context manager for database connections."""
    try:
        conn = sqlite3.connect(DATABASE_PATH)
    except sqlite3.Error as e:
        raise StoreError(str(e)) from e
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    except sqlite3.Error as e:
        raise StoreError(str(e)) from e
    finally:
        conn.close()


def init_db():
    """Initialize database by running Alembic migrations."""
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    env = dict(os.environ, TASKS_DATABASE_URL=f"sqlite:///{os.path.abspath(DATABASE_PATH)}")
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        env=env,
        check=True
    )


def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    return Task(
        id=row["id"],
        owner_id=row["owner_id"],
        guest_id=row["guest_id"],
        title=row["title"],
        description=row["description"],
        status=row["status"],
        due_at=row["due_at"],
        due_date=row["due_date"],
        recurrence_rule=row["recurrence_rule"] or None,
        recurrence_timezone=row["recurrence_timezone"] or None,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _select(owner: Owner, where: str = "", params: tuple = (), limit: Optional[int] = None) -> list[Task]:
    sql = f"SELECT * FROM tasks WHERE {owner.column} = ?"
    if where:
        sql += f" AND {where}"
    sql += " ORDER BY created_at, rowid"
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    with get_db() as conn:
        rows = conn.execute(sql, (owner.id, *params)).fetchall()
        return [_row_to_task(row) for row in rows]


def get_all_tasks(owner: Owner) -> list[Task]:
    return _select(owner)


def get_task_db(owner: Owner, task_id: str) -> Optional[Task]:
    tasks = _select(owner, "id = ?", (task_id,), limit=1)
    return tasks[0] if tasks else None


# Title lookups, one per matching tier (see matching.TITLE_MATCHERS)
def find_tasks_by_title_exact(owner: Owner, title: str, limit: int = 100) -> list[Task]:
    """Exact, case-sensitive title match."""
    return _select(owner, "title = ?", (title,), limit)


def find_tasks_by_title_iexact(owner: Owner, title: str, limit: int = 100) -> list[Task]:
    """Whole-title match ignoring case."""
    return _select(owner, "lower(title) = lower(?)", (title,), limit)


def find_tasks_by_title_contains(owner: Owner, title: str, limit: int = 100) -> list[Task]:
    """Case-insensitive substring match."""
    return _select(owner, "instr(lower(title), lower(?)) > 0", (title,), limit)


def count_tasks_db(owner: Owner) -> int:
    with get_db() as conn:
        return conn.execute(
            f"SELECT COUNT(*) FROM tasks WHERE {owner.column} = ?", (owner.id,)
        ).fetchone()[0]


def create_task_db(
    owner: Owner,
    title: str,
    description: Optional[str] = None,
    status: str = "pending",
    due_at: Optional[datetime] = None,
    recurrence_rule: Optional[str] = None,
    recurrence_timezone: Optional[str] = None,
    task_id: Optional[str] = None,
) -> Task:
    """Insert a task for owner. due_date is derived from due_at."""
    task_id = task_id or str(uuid.uuid4())
    now = format_instant(utc_now())
    due = due_fields(due_at)
    owner_id = None if owner.is_guest else owner.id
    guest_id = owner.id if owner.is_guest else None

    with get_db() as conn:
        conn.execute(
            """INSERT INTO tasks
               (id, owner_id, guest_id, title, description, status, due_at, due_date,
                recurrence_rule, recurrence_timezone, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (task_id, owner_id, guest_id, title, description, status, due["due_at"], due["due_date"],
             recurrence_rule, recurrence_timezone, now, now)
        )
        conn.commit()

    return Task(
        id=task_id,
        owner_id=owner_id,
        guest_id=guest_id,
        title=title,
        description=description,
        status=status,
        due_at=due["due_at"],
        due_date=due["due_date"],
        recurrence_rule=recurrence_rule,
        recurrence_timezone=recurrence_timezone,
        created_at=now,
        updated_at=now,
    )


def update_task_db(owner: Owner, task_id: str, **updates) -> Optional[Task]:
    """
    Update an owner's task with any fields provided.
    Only writes fields that differ from current values; a due_at update
    always rewrites due_date as its projection (None clears both).

    Args:
        owner: Owner the task must belong to
        task_id: Task ID to update
        **updates: title, description, status, due_at, recurrence_rule, recurrence_timezone
    """
    unknown = set(updates) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    if "due_at" in updates:
        updates = {**updates, **due_fields(updates["due_at"])}

    with get_db() as conn:
        scope = f"id = ? AND {owner.column} = ?"
        row = conn.execute(f"SELECT * FROM tasks WHERE {scope}", (task_id, owner.id)).fetchone()
        if not row:
            return None

        # Filter updates: only include fields that differ from current values
        changes = {
            field: value
            for field, value in updates.items()
            if row[field] != value
        }

        if changes:
            changes["updated_at"] = format_instant(utc_now())
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [task_id, owner.id]
            conn.execute(f"UPDATE tasks SET {set_clause} WHERE {scope}", values)
            conn.commit()

        # Re-fetch to get current state
        updated_row = conn.execute(f"SELECT * FROM tasks WHERE {scope}", (task_id, owner.id)).fetchone()
        return _row_to_task(updated_row)


def delete_tasks_db(owner: Owner, task_ids: list[str]) -> int:
    if not task_ids:
        return 0
    placeholders = ", ".join("?" for _ in task_ids)
    with get_db() as conn:
        cursor = conn.execute(
            f"DELETE FROM tasks WHERE {owner.column} = ? AND id IN ({placeholders})",
            (owner.id, *task_ids)
        )
        conn.commit()
        return cursor.rowcount


def delete_all_tasks_db(owner: Owner) -> int:
    with get_db() as conn:
        cursor = conn.execute(f"DELETE FROM tasks WHERE {owner.column} = ?", (owner.id,))
        conn.commit()
        return cursor.rowcount


# Subscription operations (used by the quota policy)
def get_subscription_status(user_id: str) -> Optional[dict]:
    """Return {"status", "current_period_end", "is_valid"} or None when the user never subscribed."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT status, current_period_end FROM subscriptions WHERE user_id = ?",
            (user_id,)
        ).fetchone()
    if not row:
        return None
    return {
        "status": row["status"],
        "current_period_end": row["current_period_end"],
        "is_valid": row["status"] in ("active", "trialing"),
    }


def save_subscription_db(user_id: str, status: str, current_period_end: Optional[str] = None):
    with get_db() as conn:
        conn.execute(
            """INSERT INTO subscriptions (user_id, status, current_period_end) VALUES (?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET status = excluded.status,
                   current_period_end = excluded.current_period_end""",
            (user_id, status, current_period_end)
        )
        conn.commit()
