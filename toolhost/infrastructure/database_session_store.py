"""Database Session Store — SQL-backed SessionBackend over SessionRecord.

Invariants:
    - put() is an upsert keyed by session_id; commits before returning
    - get() returns the same snapshot shape the runtime wrote (ISO timestamps)
    - delete() of an unknown id is a no-op
    - Every failure surfaces as DatabaseError via DatabaseSessionManager.session()

Design Decisions:
    - session.merge() for upsert: portable across PostgreSQL and SQLite
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete

from toolhost.core.session_snapshot import parse_timestamp
from toolhost.infrastructure.database import DatabaseSessionManager
from toolhost.models.session_record import SessionRecord

logger = logging.getLogger(__name__)


class DatabaseSessionStore:
    """SessionBackend persisting snapshots in the mcp_sessions table."""

    def __init__(self, manager: DatabaseSessionManager):
        self._manager = manager

    async def get(self, session_id: str) -> dict[str, Any] | None:
        async with self._manager.session() as db:
            record = await db.get(SessionRecord, session_id)
            if record is None:
                return None
            return {
                "session_id": record.session_id,
                "state": record.state,
                "created_at": record.created_at.isoformat(),
                "last_used_at": record.last_used_at.isoformat(),
                "data": dict(record.data or {}),
            }

    async def put(self, session_id: str, data: dict[str, Any]) -> None:
        record = SessionRecord(
            session_id=session_id,
            state=data.get("state", "active"),
            data=data.get("data") or {},
        )
        created_at = parse_timestamp(data.get("created_at"))
        last_used_at = parse_timestamp(data.get("last_used_at"))
        if created_at is not None:
            record.created_at = created_at
        if last_used_at is not None:
            record.last_used_at = last_used_at
        async with self._manager.session() as db:
            await db.merge(record)
            await db.commit()

    async def delete(self, session_id: str) -> None:
        async with self._manager.session() as db:
            await db.execute(
                delete(SessionRecord).where(SessionRecord.session_id == session_id),
            )
            await db.commit()

    async def purge_idle(self, cutoff: datetime) -> int:
        async with self._manager.session() as db:
            result = await db.execute(
                delete(SessionRecord).where(SessionRecord.last_used_at < cutoff),
            )
            await db.commit()
        purged = result.rowcount or 0
        if purged:
            logger.info(f"Purged {purged} idle session records")
        return purged

    async def health_check(self) -> bool:
        return await self._manager.health_check()
