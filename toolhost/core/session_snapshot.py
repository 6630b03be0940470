"""Session Snapshot — serialization / deserialization of a Session's durable half.

Invariants:
    - to_snapshot produces a JSON-safe dict (ISO timestamps, str state)
    - from_snapshot rebuilds a Session around a fresh handler from any valid snapshot
    - Missing keys fall back to defaults (forward-compatible with older records)
    - The handler is never serialized — only data survives a restart

Design Decisions:
    - Snapshot is the unit handed to backends: the runtime never needs to know
      how a backend lays it out (dict, row, document)
"""

from datetime import datetime, timezone
from typing import Any

from toolhost.core.session_state import Session, SessionStatus


def to_snapshot(session: Session) -> dict[str, Any]:
    return {
        "session_id": session.session_id,
        "state": session.state.value,
        "created_at": session.created_at.isoformat(),
        "last_used_at": session.last_used_at.isoformat(),
        "data": session.data,
    }


def from_snapshot(
    snapshot: dict[str, Any], handler: Any, now: datetime | None = None,
) -> Session:
    now = now or datetime.now(timezone.utc)
    created_at = parse_timestamp(snapshot.get("created_at")) or now
    return Session(
        session_id=snapshot.get("session_id"),
        handler=handler,
        created_at=created_at,
        last_used_at=parse_timestamp(snapshot.get("last_used_at")) or created_at,
        state=_parse_state(snapshot.get("state")),
        data=dict(snapshot.get("data") or {}),
    )


def parse_timestamp(value: Any) -> datetime | None:
    """ISO string or datetime -> aware UTC datetime; None when absent/unparseable."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_state(value: Any) -> SessionStatus:
    try:
        return SessionStatus(value)
    except ValueError:
        return SessionStatus.ACTIVE
