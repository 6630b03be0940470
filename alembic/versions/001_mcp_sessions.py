"""Session table — durable protocol sessions for the database backend.

Revision ID: 001_mcp_sessions
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_mcp_sessions"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "mcp_sessions",
        sa.Column("session_id", sa.String(64), primary_key=True),
        sa.Column("state", sa.String(20), nullable=False, server_default="initializing"),
        sa.Column("data", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_mcp_sessions_last_used_at", "mcp_sessions", ["last_used_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_mcp_sessions_last_used_at", table_name="mcp_sessions")
    op.drop_table("mcp_sessions")
