"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Backends store opaque snapshot dicts (core/session_snapshot.py); they never
      interpret `data`
"""

from datetime import datetime
from typing import Any, Protocol

from toolhost.core.auth_types import AuthFailure, Identity


class SessionBackend(Protocol):
    """Contract for session data persistence — in-process or remote."""
    async def get(self, session_id: str) -> dict[str, Any] | None: ...
    async def put(self, session_id: str, data: dict[str, Any]) -> None: ...
    async def delete(self, session_id: str) -> None: ...
    async def purge_idle(self, cutoff: datetime) -> int: ...
    async def health_check(self) -> bool: ...


class AuthProvider(Protocol):
    """Contract for credential verification and per-scope secret bundles."""
    name: str

    async def verify(self, credential: str) -> Identity | AuthFailure: ...
    async def fetch_secrets(self, identity: Identity, scope: str) -> dict[str, str]: ...
