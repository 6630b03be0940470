"""Session State — lifecycle of one logical client connection.

Invariants:
    - States: initializing -> active -> closed (closed is terminal)
    - Exactly one bound protocol handler per session
    - close() is idempotent; activate() on a closed session is rejected
    - data is an opaque JSON-safe dict owned by service code

Design Decisions:
    - Pure dataclass, no IO: the runtime persists it through a backend
    - Timestamps are timezone-aware UTC datetimes, injected by the caller (testable clocks)
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any


class SessionStatus(str, Enum):
    """Session lifecycle states — persisted as the `state` column."""
    INITIALIZING = "initializing"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class Session:
    """Per-session state — pure dataclass, no IO."""

    session_id: str | None
    handler: Any
    created_at: datetime
    last_used_at: datetime
    state: SessionStatus = SessionStatus.INITIALIZING
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_closed(self) -> bool:
        return self.state is SessionStatus.CLOSED

    def activate(self) -> None:
        if self.state is SessionStatus.CLOSED:
            raise ValueError(f"Session {self.session_id} is closed")
        self.state = SessionStatus.ACTIVE

    def close(self) -> None:
        self.state = SessionStatus.CLOSED

    def touch(self, now: datetime) -> None:
        self.last_used_at = now


def is_idle_expired(
    last_used_at: datetime, now: datetime, ttl_seconds: int | None,
) -> bool:
    """True when ttl is enabled (> 0) and the session idled past it."""
    if not ttl_seconds or ttl_seconds <= 0:
        return False
    return now - last_used_at > timedelta(seconds=ttl_seconds)
