"""SessionRecord ORM — durable half of a protocol session.

Invariants:
    - session_id is the opaque token issued to the client (primary key)
    - data is an opaque JSON document owned by service code
    - last_used_at is indexed: the sweeper deletes by it

Design Decisions:
    - JSON column for data: the runtime never queries inside it
    - Timestamps stored timezone-aware (UTC)
"""

from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from toolhost.db.base import Base


class SessionRecord(Base):
    """One row per live or resumable session."""
    __tablename__ = "mcp_sessions"

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default="initializing",
    )
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
