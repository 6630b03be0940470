"""Service Registrar — builds the immutable routing table from service instances.

Invariants:
    - Exactly one Route Entry per externally visible name per namespace
      (tool names, prompt names, resource URIs)
    - A duplicate name is a DuplicateCapabilityError raised before any traffic
    - Unknown auth provider names fail registration, never the first call
    - Auto-generated URIs are deterministic: {service}://{method}, ui://{service}/{method}
    - Every UI-linked tool gets its HTML resource registered alongside it
    - The table is read-only once build() returns

Design Decisions:
    - Registration walks registry.list_members(): declaration order, bases first,
      so tools/list output is stable across restarts
    - Method-level @authenticated replaces the class-level requirement; security
      scheme lists are merged (class first, then method)
    - Method-level @deprecated and @ui_app likewise win over the class-level
      record; a class-level @ui_app links only tools, each to its own resource
"""

import inspect
import logging
from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass
from html import escape
from types import MappingProxyType
from typing import Any

from toolhost.core.auth_types import AuthRequirement
from toolhost.core.decorators import CapabilitySpec, UiAppSpec, is_service
from toolhost.core.domain_types import (
    CapabilityKind, MetaKey, RenderFormat, UI_RESOURCE_MIME_TYPE,
)
from toolhost.core.errors import (
    DuplicateCapabilityError, ErrorContext, RegistrationError,
)
from toolhost.core.metadata_registry import MetadataRegistry, registry as default_registry
from toolhost.core.naming import resource_uri, ui_resource_uri
from toolhost.core.schema_deriver import DerivedSchema, derive_schema

logger = logging.getLogger(__name__)

_UI_SHELL = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body><div id="root" data-component="{component}"></div></body>
</html>
"""


@dataclass(frozen=True)
class RouteEntry:
    """Registered binding from one capability's external name to its handler."""
    name: str
    kind: CapabilityKind
    handler: Callable[..., Any]
    service_name: str
    method_name: str
    description: str | None = None
    title: str | None = None
    input_schema: DerivedSchema | None = None
    output_schema: DerivedSchema | None = None
    accepts_arguments: bool = False
    auth: AuthRequirement | None = None
    security: tuple[dict, ...] = ()
    mime_type: str | None = None
    ui_resource_uri: str | None = None
    render_format: RenderFormat | None = None
    deprecated: str | None = None
    elicitation: bool = False
    required_keys: tuple[str, ...] = ()

    @property
    def qualified_name(self) -> str:
        return f"{self.service_name}.{self.method_name}"


class RoutingTable:
    """Read-only lookup: (capability kind, external name) -> RouteEntry."""

    def __init__(self, entries: dict[CapabilityKind, dict[str, RouteEntry]]):
        self._entries = {
            kind: MappingProxyType(dict(entries.get(kind, {})))
            for kind in CapabilityKind
        }

    def lookup(self, kind: CapabilityKind, name: str) -> RouteEntry | None:
        return self._entries[kind].get(name)

    def entries(self, kind: CapabilityKind) -> list[RouteEntry]:
        return list(self._entries[kind].values())

    def __len__(self) -> int:
        return sum(len(m) for m in self._entries.values())


class ServiceRegistrar:
    """Accumulates service instances into route entries, then freezes them."""

    def __init__(
        self,
        *,
        providers: Collection[str] = (),
        default_project_id: str | None = None,
        registry: MetadataRegistry | None = None,
    ):
        self._providers = set(providers)
        self._default_project_id = default_project_id
        self._registry = registry or default_registry
        self._entries: dict[CapabilityKind, dict[str, RouteEntry]] = {
            kind: {} for kind in CapabilityKind
        }
        self._built = False

    def register(self, instance: object) -> list[RouteEntry]:
        if self._built:
            raise RegistrationError("Routing table already built")
        cls = type(instance)
        if not is_service(cls, self._registry):
            raise RegistrationError(
                f"{cls.__name__} is not a service (missing @service)",
            )
        notice = self._registry.resolve(cls, None, MetaKey.DEPRECATED)
        if notice:
            logger.warning(f"Registering deprecated service {cls.__name__}: {notice}")
        added = []
        for member in self._registry.list_members(cls, MetaKey.CAPABILITY):
            for entry in self._entries_for(instance, cls, member):
                self._add(entry)
                added.append(entry)
        logger.info(
            f"Registered service {cls.__name__} ({len(added)} capabilities)",
            extra={"service": cls.__name__},
        )
        return added

    def build(self) -> RoutingTable:
        self._built = True
        return RoutingTable(self._entries)

    # ─── Entry construction ─────────────────────────────────────

    def _entries_for(
        self, instance: object, cls: type, member: str,
    ) -> list[RouteEntry]:
        spec: CapabilitySpec = self._registry.resolve(cls, member, MetaKey.CAPABILITY)
        method = getattr(instance, member)
        context = ErrorContext(service=cls.__name__, capability=member)

        common: dict[str, Any] = dict(
            kind=spec.kind,
            handler=method,
            service_name=cls.__name__,
            method_name=member,
            description=spec.description or _first_doc_line(method),
            input_schema=derive_schema(spec.input_class) if spec.input_class else None,
            output_schema=derive_schema(spec.output_class) if spec.output_class else None,
            accepts_arguments=spec.input_class is None and _takes_arguments(method),
            auth=self._resolve_auth(cls, member, context),
            security=tuple(self._merged_security(cls, member)),
            render_format=self._registry.resolve(cls, member, MetaKey.RENDER),
            deprecated=(
                self._registry.resolve(cls, member, MetaKey.DEPRECATED)
                or self._registry.resolve(cls, None, MetaKey.DEPRECATED)
            ),
            elicitation=bool(self._registry.resolve(cls, member, MetaKey.ELICITATION)),
            required_keys=tuple(
                self._registry.resolve(cls, member, MetaKey.REQUIRED_KEYS) or (),
            ),
        )

        if spec.kind is CapabilityKind.RESOURCE:
            uri = spec.uri or resource_uri(cls.__name__, member)
            return [RouteEntry(
                name=uri, title=spec.name or member,
                mime_type=spec.mime_type, **common,
            )]

        name = spec.name or member
        if spec.kind is CapabilityKind.PROMPT:
            return [RouteEntry(name=name, **common)]

        ui: UiAppSpec | None = (
            self._registry.resolve(cls, member, MetaKey.UI_APP)
            or self._registry.resolve(cls, None, MetaKey.UI_APP)
        )
        if ui is None:
            return [RouteEntry(name=name, **common)]
        ui_uri = ui.uri or ui_resource_uri(cls.__name__, member)
        tool_entry = RouteEntry(
            name=name, title=ui.title, ui_resource_uri=ui_uri, **common,
        )
        ui_entry = RouteEntry(
            name=ui_uri,
            kind=CapabilityKind.RESOURCE,
            handler=_ui_shell(ui, ui.title or name),
            service_name=cls.__name__,
            method_name=member,
            description=f"UI for {name}",
            title=ui.title or name,
            mime_type=UI_RESOURCE_MIME_TYPE,
        )
        return [tool_entry, ui_entry]

    def _resolve_auth(
        self, cls: type, member: str, context: ErrorContext,
    ) -> AuthRequirement | None:
        requirement: AuthRequirement | None = (
            self._registry.resolve(cls, member, MetaKey.AUTH)
            or self._registry.resolve(cls, None, MetaKey.AUTH)
        )
        if requirement is None:
            return None
        if requirement.provider not in self._providers:
            raise RegistrationError(
                f"Unknown auth provider '{requirement.provider}' "
                f"required by {cls.__name__}.{member}",
                context,
            )
        if requirement.project_id is True:
            if not self._default_project_id:
                raise RegistrationError(
                    f"{cls.__name__}.{member} uses the default project "
                    "but AUTH_PROJECT_ID is not configured",
                    context,
                )
            return AuthRequirement(
                requirement.provider, self._default_project_id, requirement.scopes,
            )
        if requirement.project_id is False:
            return AuthRequirement(requirement.provider, None, requirement.scopes)
        return requirement

    def _merged_security(self, cls: type, member: str) -> list[dict]:
        merged: list[dict] = []
        for schemes in (
            self._registry.resolve(cls, None, MetaKey.SECURITY),
            self._registry.resolve(cls, member, MetaKey.SECURITY),
        ):
            for scheme in schemes or ():
                if scheme not in merged:
                    merged.append(scheme)
        return merged

    def _add(self, entry: RouteEntry) -> None:
        namespace = self._entries[entry.kind]
        existing = namespace.get(entry.name)
        if existing is not None:
            raise DuplicateCapabilityError(
                entry.kind.value, entry.name,
                existing.qualified_name, entry.qualified_name,
                ErrorContext(service=entry.service_name, capability=entry.name),
            )
        namespace[entry.name] = entry


def build_routing_table(
    instances: Iterable[object],
    *,
    providers: Collection[str] = (),
    default_project_id: str | None = None,
    registry: MetadataRegistry | None = None,
) -> RoutingTable:
    """Register every instance in order and return the frozen table."""
    registrar = ServiceRegistrar(
        providers=providers,
        default_project_id=default_project_id,
        registry=registry,
    )
    for instance in instances:
        registrar.register(instance)
    return registrar.build()


def _first_doc_line(fn: Callable) -> str | None:
    doc = inspect.getdoc(fn)
    return doc.strip().splitlines()[0] if doc else None


def _takes_arguments(method: Callable) -> bool:
    try:
        parameters = inspect.signature(method).parameters
    except (TypeError, ValueError):
        return False
    return len(parameters) > 0


def _ui_shell(spec: UiAppSpec, title: str) -> Callable[[], str]:
    if spec.component.lstrip().startswith("<"):
        document = spec.component
    else:
        document = _UI_SHELL.format(
            title=escape(title), component=escape(spec.component),
        )

    def read_ui() -> str:
        return document

    return read_ui
