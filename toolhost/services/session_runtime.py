"""Session Runtime — owns session id -> bound handler, decides create / resume / recreate.

Invariants:
    - no id + initialize      -> new session (uuid4), state initializing
    - no id + anything else   -> BadSessionRequestError (400), before any routing
    - known id                -> that session's bound handler
    - unknown id              -> recreate from backend data (state active) or
                                 SessionNotFoundError (404); never a fresh session
    - notifications/initialized moves initializing -> active
    - close: remove the binding, THEN delete from the backend; idempotent
    - Session data is written to the backend after every stateful request
    - Idle sessions past ttl_seconds are evicted lazily on access and by the sweeper
    - A failed sweep is logged and the sweeper keeps running on its interval
    - Stateless mode: a fresh handler per request, no id issued, nothing persisted

Design Decisions:
    - Per-session-id asyncio.Lock around recreate and close: two racing recreates
      of the same id bind exactly once, and a recreate cannot interleave a close
    - Requests on one session are ordered by the handler's own lock
      (services/protocol_handler.py), not here — the runtime never holds a lock
      while a handler runs
    - A request that finishes after its session was closed does not write back,
      so a close is never undone by a late persist
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from toolhost.core.errors import (
    BadSessionRequestError, SessionNotFoundError, ToolhostError,
)
from toolhost.core.repository_protocols import SessionBackend
from toolhost.core.request_context import RequestContext, request_scope
from toolhost.core.session_snapshot import from_snapshot, parse_timestamp, to_snapshot
from toolhost.core.session_state import Session, SessionStatus, is_idle_expired
from toolhost.schemas.jsonrpc import JsonRpcRequest
from toolhost.services.protocol_handler import ProtocolHandler

logger = logging.getLogger(__name__)

HandlerFactory = Callable[[], ProtocolHandler]


@dataclass(frozen=True)
class RuntimeResponse:
    """Handler answer plus the session id to echo back (None when stateless)."""
    body: dict | None
    session_id: str | None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRuntime:
    """Maps session ids to live protocol handlers over a pluggable backend."""

    def __init__(
        self,
        handler_factory: HandlerFactory,
        backend: SessionBackend,
        *,
        ttl_seconds: int | None = 86_400,
        stateless: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._factory = handler_factory
        self._backend = backend
        self.ttl_seconds = ttl_seconds
        self.stateless = stateless
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._sweeper: asyncio.Task | None = None

    @property
    def mode(self) -> str:
        return "stateless" if self.stateless else "stateful"

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    # ─── Resolution ─────────────────────────────────────────────

    async def resolve(self, session_id: str | None, is_initialize: bool) -> Session:
        if self.stateless:
            now = self._clock()
            return Session(
                session_id=None, handler=self._factory(),
                created_at=now, last_used_at=now, state=SessionStatus.ACTIVE,
            )
        if not session_id:
            if not is_initialize:
                raise BadSessionRequestError()
            return await self._create()

        session = self._sessions.get(session_id)
        if session is None:
            return await self._recreate(session_id)
        if self._expired(session.last_used_at):
            logger.info("Session expired on access", extra={"session_id": session_id})
            await self.close(session_id)
            raise SessionNotFoundError(session_id)
        return session

    def bind_handler(
        self, session_id: str, handler: ProtocolHandler,
        state: SessionStatus = SessionStatus.INITIALIZING,
    ) -> Session:
        now = self._clock()
        session = Session(
            session_id=session_id, handler=handler,
            created_at=now, last_used_at=now, state=state,
        )
        self._sessions[session_id] = session
        return session

    def unbind(self, session_id: str) -> Session | None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()
        return session

    async def _create(self) -> Session:
        session_id = str(uuid.uuid4())
        session = self.bind_handler(session_id, self._factory())
        await self._backend.put(session_id, to_snapshot(session))
        logger.info("Session created", extra={"session_id": session_id})
        return session

    async def _recreate(self, session_id: str) -> Session:
        async with self._lock_for(session_id):
            try:
                session = self._sessions.get(session_id)
                if session is not None:
                    return session
                snapshot = await self._backend.get(session_id)
                if snapshot is None or snapshot.get("state") == SessionStatus.CLOSED.value:
                    raise SessionNotFoundError(session_id)
                last_used = parse_timestamp(snapshot.get("last_used_at"))
                if last_used is not None and self._expired(last_used):
                    await self._backend.delete(session_id)
                    raise SessionNotFoundError(session_id)

                handler = self._factory()
                handler.mark_restored()
                session = from_snapshot(snapshot, handler, self._clock())
                session.session_id = session_id
                session.activate()
                self._sessions[session_id] = session
                logger.info(
                    "Session recreated from backend", extra={"session_id": session_id},
                )
                return session
            finally:
                if session_id not in self._sessions:
                    self._locks.pop(session_id, None)

    # ─── Request handling ───────────────────────────────────────

    async def handle(
        self,
        request: JsonRpcRequest,
        *,
        session_id: str | None = None,
        credential: str | None = None,
    ) -> RuntimeResponse:
        session = await self.resolve(session_id, request.is_initialize)
        ctx = RequestContext(
            session_id=session.session_id,
            credential=credential,
            session_data=session.data,
        )
        with request_scope(ctx):
            body = await session.handler.handle(request, credential)

        if (
            request.method == "notifications/initialized"
            and session.state is SessionStatus.INITIALIZING
        ):
            session.activate()
        if self.stateless:
            return RuntimeResponse(body, None)

        session.touch(self._clock())
        if self._sessions.get(session.session_id) is session:
            await self._backend.put(session.session_id, to_snapshot(session))
        return RuntimeResponse(body, session.session_id)

    # ─── Close / eviction ───────────────────────────────────────

    async def close(self, session_id: str) -> bool:
        """Unbind then delete. Returns whether a live binding existed."""
        async with self._lock_for(session_id):
            session = self.unbind(session_id)
            await self._backend.delete(session_id)
        self._locks.pop(session_id, None)
        if session is not None:
            logger.info("Session closed", extra={"session_id": session_id})
        return session is not None

    async def sweep_expired(self) -> int:
        """Evict idle bound sessions and purge idle backend records."""
        if not self.ttl_seconds or self.ttl_seconds <= 0:
            return 0
        expired = [
            session_id for session_id, session in list(self._sessions.items())
            if self._expired(session.last_used_at)
        ]
        for session_id in expired:
            await self.close(session_id)
        cutoff = self._clock() - timedelta(seconds=self.ttl_seconds)
        purged = await self._backend.purge_idle(cutoff)
        return len(expired) + purged

    def start_sweeper(self, interval_seconds: float) -> None:
        if self._sweeper is not None or self.stateless or not self.ttl_seconds:
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(interval_seconds))

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def health_check(self) -> bool:
        return await self._backend.health_check()

    async def _sweep_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                evicted = await self.sweep_expired()
            except ToolhostError as e:
                logger.error(
                    f"Session sweep failed: {e.message}", extra={"error_code": e.code},
                )
                continue
            except Exception:
                logger.error("Session sweep failed unexpectedly", exc_info=True)
                continue
            if evicted:
                logger.info(f"Evicted {evicted} idle sessions")

    def _expired(self, last_used_at: datetime) -> bool:
        return is_idle_expired(last_used_at, self._clock(), self.ttl_seconds)

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        return self._locks.setdefault(session_id, asyncio.Lock())
