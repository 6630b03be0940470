"""Declarative Decorators — attach capability metadata to service classes and methods.

Usage:

    @service
    class WeatherService:
        @tool(description="Forecast for a city", input_class=ForecastInput)
        @ui_app(component="ForecastCard")
        async def getForecast(self, args: ForecastInput) -> dict: ...

        @resource(mime_type="application/json")
        def stations(self) -> list[dict]: ...

Invariants:
    - Method decorators only stash marks; nothing reaches the registry until @service
    - @service flushes marks once, at class-definition time, and flags the class
    - @authenticated on a class writes a class-level record directly; on a
      method it stashes a member-level record (method-level wins at dispatch)
    - @deprecated and @ui_app follow the same class/method split; a class-level
      record applies to every capability the member does not override
    - Security scheme lists from @tool(security=...) and @authenticated merge
      additively, in application order

Design Decisions:
    - Decorators return the original function unchanged, so a decorated
      method stays directly callable in unit tests
    - Bare and called forms both accepted (@tool and @tool(...))
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from toolhost.core.auth_types import AuthRequirement
from toolhost.core.domain_types import (
    CapabilityKind, MetaKey, ProviderName, RenderFormat, DEFAULT_PROVIDER,
)
from toolhost.core.metadata_registry import (
    MetadataRegistry, flush_marks, registry as default_registry, stash,
)


@dataclass(frozen=True)
class CapabilitySpec:
    """Payload stored under MetaKey.CAPABILITY."""
    kind: CapabilityKind
    name: str | None = None
    description: str | None = None
    input_class: type | None = None
    output_class: type | None = None
    uri: str | None = None
    mime_type: str | None = None


@dataclass(frozen=True)
class UiAppSpec:
    """Payload stored under MetaKey.UI_APP."""
    component: str
    uri: str | None = None
    title: str | None = None


# ─── Class decorators ───────────────────────────────────────────

def service(
    cls: type | None = None, *, registry: MetadataRegistry | None = None,
) -> Any:
    """Register a class as a service and flush its methods' pending marks."""
    target_registry = registry or default_registry

    def apply(klass: type) -> type:
        # bases first; undecorated mixins contribute their methods too
        for owner in reversed(klass.__mro__[:-1]):
            flush_marks(target_registry, owner)
        target_registry.set(klass, None, MetaKey.SERVICE, True)
        return klass

    if cls is not None:
        return apply(cls)
    return apply


def is_service(cls: Any, registry: MetadataRegistry | None = None) -> bool:
    target_registry = registry or default_registry
    return isinstance(cls, type) and bool(
        target_registry.get(cls, None, MetaKey.SERVICE),
    )


def authenticated(
    provider: str = DEFAULT_PROVIDER,
    *,
    project_id: str | bool | None = None,
    scopes: Iterable[str] = (),
    registry: MetadataRegistry | None = None,
) -> Callable[[Any], Any]:
    """Require a verified credential for a whole service or a single method.

    project_id names the secret scope fetched after verification; True uses
    the configured default project (AUTH_PROJECT_ID).
    """
    requirement = AuthRequirement(
        provider=ProviderName(provider),
        project_id=project_id,
        scopes=tuple(scopes),
    )
    scheme = {"type": "oauth2", "scopes": list(requirement.scopes)}
    target_registry = registry or default_registry

    def apply(target: Any) -> Any:
        if isinstance(target, type):
            target_registry.set(target, None, MetaKey.AUTH, requirement)
            target_registry.merge(target, None, MetaKey.SECURITY, [scheme])
        elif callable(target):
            stash(target, MetaKey.AUTH, requirement)
            stash(target, MetaKey.SECURITY, [scheme], merge=True)
        else:
            raise TypeError("@authenticated applies to classes or methods")
        return target

    return apply


# ─── Capability decorators ──────────────────────────────────────

def _capability(fn: Callable | None, spec: CapabilitySpec) -> Any:
    def apply(method: Callable) -> Callable:
        stash(method, MetaKey.CAPABILITY, spec)
        return method

    if fn is not None:
        return apply(fn)
    return apply


def tool(
    fn: Callable | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    input_class: type | None = None,
    output_class: type | None = None,
    security: Iterable[dict] | None = None,
) -> Any:
    spec = CapabilitySpec(
        kind=CapabilityKind.TOOL,
        name=name,
        description=description,
        input_class=input_class,
        output_class=output_class,
    )
    schemes = list(security or [])

    def apply(method: Callable) -> Callable:
        if schemes:
            stash(method, MetaKey.SECURITY, schemes, merge=True)
        return _capability(method, spec)

    if fn is not None:
        return apply(fn)
    return apply


def prompt(
    fn: Callable | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    input_class: type | None = None,
) -> Any:
    return _capability(fn, CapabilitySpec(
        kind=CapabilityKind.PROMPT,
        name=name,
        description=description,
        input_class=input_class,
    ))


def resource(
    fn: Callable | None = None,
    *,
    uri: str | None = None,
    name: str | None = None,
    description: str | None = None,
    mime_type: str = "application/json",
    input_class: type | None = None,
) -> Any:
    return _capability(fn, CapabilitySpec(
        kind=CapabilityKind.RESOURCE,
        name=name,
        description=description,
        input_class=input_class,
        uri=uri,
        mime_type=mime_type,
    ))


# ─── Presentation decorators ────────────────────────────────────

def ui_app(
    component: str,
    *,
    uri: str | None = None,
    title: str | None = None,
    registry: MetadataRegistry | None = None,
) -> Callable[[Any], Any]:
    """Link a tool to a UI resource (ui://{service}/{method} unless uri is given).

    On a class, every tool of the service without its own @ui_app gets a UI
    resource of its own; a fixed uri only makes sense on a single method.
    """
    spec = UiAppSpec(component, uri, title)
    target_registry = registry or default_registry

    def apply(target: Any) -> Any:
        if isinstance(target, type):
            if uri is not None:
                raise TypeError("@ui_app(uri=...) applies to a single method")
            target_registry.set(target, None, MetaKey.UI_APP, spec)
        elif callable(target):
            stash(target, MetaKey.UI_APP, spec)
        else:
            raise TypeError("@ui_app applies to classes or methods")
        return target
    return apply


def render(format: RenderFormat | str) -> Callable[[Callable], Callable]:
    fmt = RenderFormat(format)

    def apply(method: Callable) -> Callable:
        stash(method, MetaKey.RENDER, fmt)
        return method
    return apply


def deprecated(
    fn: Any = None,
    *,
    message: str | None = None,
    registry: MetadataRegistry | None = None,
) -> Any:
    """Mark a capability, or every capability of a service, as deprecated."""
    target_registry = registry or default_registry

    def apply(target: Any) -> Any:
        if not callable(target):
            raise TypeError("@deprecated applies to classes or methods")
        text = message or f"{target.__name__} is deprecated"
        if isinstance(target, type):
            target_registry.set(target, None, MetaKey.DEPRECATED, text)
        else:
            stash(target, MetaKey.DEPRECATED, text)
        return target

    if fn is not None:
        return apply(fn)
    return apply


def elicitation(fn: Callable | None = None) -> Any:
    """Let a tool ask the client for more input.

    A result dict with a truthy "needsElicitation" key goes back to the client
    tagged type="elicitation" instead of as ordinary tool output.
    """
    def apply(method: Callable) -> Callable:
        stash(method, MetaKey.ELICITATION, True)
        return method

    if fn is not None:
        return apply(fn)
    return apply
