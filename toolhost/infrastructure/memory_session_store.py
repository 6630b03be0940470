"""In-Memory Session Store — default, in-process session backend.

Invariants:
    - get/put hand out deep copies: callers never alias stored data
    - delete of an unknown id is a no-op
    - Contents vanish with the process (use the database backend to survive restarts)
"""

import copy
from datetime import datetime
from typing import Any

from toolhost.core.session_snapshot import parse_timestamp


class InMemorySessionStore:
    """dict-backed SessionBackend."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    async def get(self, session_id: str) -> dict[str, Any] | None:
        record = self._records.get(session_id)
        return copy.deepcopy(record) if record is not None else None

    async def put(self, session_id: str, data: dict[str, Any]) -> None:
        self._records[session_id] = copy.deepcopy(data)

    async def delete(self, session_id: str) -> None:
        self._records.pop(session_id, None)

    async def purge_idle(self, cutoff: datetime) -> int:
        stale = [
            session_id for session_id, record in self._records.items()
            if (last := parse_timestamp(record.get("last_used_at"))) is not None
            and last < cutoff
        ]
        for session_id in stale:
            del self._records[session_id]
        return len(stale)

    async def health_check(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._records)
