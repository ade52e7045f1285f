"""Initial schema - owner-scoped tasks with due instant and recurrence

Revision ID: 001
Revises: None
Create Date: 2026-01-05

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Exactly one of owner_id / guest_id identifies the owner
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS tasks (
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
        )
    """))
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_tasks_owner_id ON tasks (owner_id)"))
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_tasks_guest_id ON tasks (guest_id)"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP TABLE IF EXISTS tasks"))
