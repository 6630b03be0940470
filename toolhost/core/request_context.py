"""Request Context — session and identity of the in-flight call, without parameter threading.

Invariants:
    - A context is visible only inside request_scope() and tasks spawned within it
    - current_session_data() returns the live dict persisted after the call; outside
      a stateful session it returns a fresh throwaway dict
    - require_request_context() fails loudly when called outside a request

Design Decisions:
    - Same ContextVar mechanism as the secret scope; same propagation caveat for
      executor threads (copy the context explicitly)
"""

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
from typing import Any, Iterator

from toolhost.core.auth_types import Identity


@dataclass(frozen=True)
class RequestContext:
    session_id: str | None = None
    credential: str | None = None
    session_data: dict[str, Any] | None = None
    identity: Identity | None = None

    def with_identity(self, identity: Identity | None) -> "RequestContext":
        return replace(self, identity=identity)


_current_request: ContextVar[RequestContext | None] = ContextVar(
    "toolhost_request", default=None,
)


@contextmanager
def request_scope(ctx: RequestContext) -> Iterator[RequestContext]:
    token = _current_request.set(ctx)
    try:
        yield ctx
    finally:
        _current_request.reset(token)


def current_request() -> RequestContext | None:
    return _current_request.get()


def require_request_context() -> RequestContext:
    ctx = _current_request.get()
    if ctx is None:
        raise RuntimeError("No request context is active")
    return ctx


def current_session_id() -> str | None:
    ctx = _current_request.get()
    return ctx.session_id if ctx else None


def current_session_data() -> dict[str, Any]:
    ctx = _current_request.get()
    if ctx is None or ctx.session_data is None:
        return {}
    return ctx.session_data


def current_identity() -> Identity | None:
    ctx = _current_request.get()
    return ctx.identity if ctx else None
