"""Add subscriptions table for the free plan task limit

Revision ID: 002
Revises: 001
Create Date: 2026-01-19

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # One row per paying user; status mirrors the billing provider
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS subscriptions (
            user_id TEXT PRIMARY KEY,
            status TEXT NOT NULL,
            current_period_end TEXT
        )
    """))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP TABLE IF EXISTS subscriptions"))
