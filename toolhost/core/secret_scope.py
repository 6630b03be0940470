"""Secret Scope — request-scoped, concurrency-safe secrets for handler code.

Invariants:
    - get_secret(key) inside a scope returns that scope's value (None if the key is absent)
    - get_secret(key) outside any scope raises SecretScopeError (usage error)
    - Concurrent calls each see only their own scope; nested scopes shadow and restore
    - The snapshot is an immutable MappingProxyType built once per call
    - require_keys() checks every key before the handler body runs and names
      exactly the missing ones

Design Decisions:
    - contextvars.ContextVar, not a module global: asyncio tasks copy the current
      context when created, so tasks spawned inside a call inherit its scope while
      unrelated tasks never see it
    - Propagation only covers the call's execution extent. Work handed to
      loop.run_in_executor() or a raw threading.Thread does NOT inherit the scope
      unless the caller wraps it with contextvars.copy_context().run(...)
"""

import functools
import inspect
from collections.abc import Callable, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any, Iterator

from toolhost.core.domain_types import MetaKey
from toolhost.core.errors import MissingConfigurationError, SecretScopeError
from toolhost.core.metadata_registry import stash

_current_secrets: ContextVar[Mapping[str, str] | None] = ContextVar(
    "toolhost_secrets", default=None,
)


@contextmanager
def secret_scope(secrets: Mapping[str, str]) -> Iterator[Mapping[str, str]]:
    """Make `secrets` visible to get_secret() for the body of the with-block."""
    snapshot = MappingProxyType(dict(secrets))
    token = _current_secrets.set(snapshot)
    try:
        yield snapshot
    finally:
        _current_secrets.reset(token)


async def run_with_secrets(
    secrets: Mapping[str, str], fn: Callable[..., Any], *args: Any, **kwargs: Any,
) -> Any:
    """Call fn (sync or async) inside a secret scope and return its result."""
    with secret_scope(secrets):
        result = fn(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result


def has_secret_scope() -> bool:
    return _current_secrets.get() is not None


def get_secret(key: str) -> str | None:
    scope = _current_secrets.get()
    if scope is None:
        raise SecretScopeError(key)
    return scope.get(key)


def get_all_secrets() -> dict[str, str]:
    """Copy of the current scope; empty outside any scope."""
    scope = _current_secrets.get()
    return dict(scope) if scope is not None else {}


def missing_keys(keys: tuple[str, ...] | list[str]) -> list[str]:
    scope = _current_secrets.get() or {}
    return [key for key in keys if not scope.get(key)]


def _check_required(keys: tuple[str, ...]) -> None:
    if _current_secrets.get() is None:
        raise MissingConfigurationError(list(keys), reason="scope_not_configured")
    absent = missing_keys(keys)
    if absent:
        raise MissingConfigurationError(absent)


def require_keys(*keys: str) -> Callable:
    """Fail fast with MissingConfigurationError unless every key is non-empty in scope."""

    def decorator(fn: Callable) -> Callable:
        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                _check_required(keys)
                return await fn(*args, **kwargs)
            wrapper: Callable = async_wrapper
        else:
            @functools.wraps(fn)
            def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
                _check_required(keys)
                return fn(*args, **kwargs)
            wrapper = sync_wrapper
        stash(wrapper, MetaKey.REQUIRED_KEYS, list(keys), merge=True)
        return wrapper

    return decorator
