"""Toolhost API — FastAPI application factory.

Invariants:
    - Routes registered explicitly (no auto-discovery of routers)
    - The routing table is built eagerly: registration errors (duplicates, bad
      constraints, unknown providers) fail create_app, never the first request
    - CORS configured from settings (not hardcoded)
    - Session backend and auth providers are chosen by settings, or injected

Design Decisions:
    - Factory over a module-level app: tests build isolated apps with their own
      services, providers and backends (uvicorn runs it with factory=True)
    - Lifespan over @app.on_event: starts the idle-session sweeper, closes
      provider HTTP clients and the database pool on shutdown
"""

import logging
from collections.abc import Iterable, Mapping
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toolhost.api.error_handlers import register_error_handlers
from toolhost.api.routes import health, mcp_endpoint, well_known
from toolhost.config import Settings, get_settings
from toolhost.core.domain_types import DEFAULT_PROVIDER, SESSION_HEADER, SessionBackendKind
from toolhost.core.metadata_registry import MetadataRegistry
from toolhost.core.repository_protocols import AuthProvider, SessionBackend
from toolhost.infrastructure.database import DatabaseSessionManager, init_db
from toolhost.infrastructure.database_session_store import DatabaseSessionStore
from toolhost.infrastructure.http_auth_provider import HttpAuthProvider
from toolhost.infrastructure.memory_session_store import InMemorySessionStore
from toolhost.infrastructure.observability import setup_logging
from toolhost.infrastructure.static_token_provider import StaticTokenProvider
from toolhost.services.auth_gate import AuthGate
from toolhost.services.discovery import discover_services
from toolhost.services.dispatch import Dispatcher
from toolhost.services.protocol_handler import ProtocolHandler, ServerInfo
from toolhost.services.registrar import build_routing_table
from toolhost.services.session_runtime import SessionRuntime

logger = logging.getLogger(__name__)


def build_providers(settings: Settings) -> dict[str, AuthProvider]:
    """Providers from AUTH_PROVIDER; the configured one is also "default"."""
    if settings.auth_provider == "static":
        provider: AuthProvider = StaticTokenProvider.from_subjects(settings.auth_static_tokens)
    elif settings.auth_provider == "http":
        provider = HttpAuthProvider(
            settings.auth_api_url,
            settings.auth_api_key,
            max_retries=settings.auth_max_retries,
            base_delay_ms=settings.auth_base_delay_ms,
            max_delay_ms=settings.auth_max_delay_ms,
            timeout_seconds=settings.auth_timeout_seconds,
        )
    else:
        return {}
    return {provider.name: provider, DEFAULT_PROVIDER: provider}


def build_backend(
    settings: Settings,
) -> tuple[SessionBackend, DatabaseSessionManager | None]:
    if settings.session_backend is SessionBackendKind.DATABASE:
        manager = init_db(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )
        return DatabaseSessionStore(manager), manager
    return InMemorySessionStore(), None


def create_app(
    settings: Settings | None = None,
    *,
    services: Iterable[object] | None = None,
    providers: Mapping[str, AuthProvider] | None = None,
    backend: SessionBackend | None = None,
    registry: MetadataRegistry | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    if providers is None:
        providers = build_providers(settings)
    manager: DatabaseSessionManager | None = None
    if backend is None:
        backend, manager = build_backend(settings)
    if services is None:
        services = (
            discover_services(settings.services_dir, registry=registry)
            if settings.services_dir else []
        )

    table = build_routing_table(
        services,
        providers=providers.keys(),
        default_project_id=settings.auth_project_id,
        registry=registry,
    )
    dispatcher = Dispatcher(table, AuthGate(providers, settings.discovery_url))
    server_info = ServerInfo(settings.server_name, settings.server_version)

    def handler_factory() -> ProtocolHandler:
        return ProtocolHandler(
            dispatcher, server_info, serialize=settings.serialize_session_requests,
        )

    runtime = SessionRuntime(
        handler_factory,
        backend,
        ttl_seconds=settings.session_ttl_seconds,
        stateless=settings.stateless,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown lifecycle."""
        setup_logging(settings.log_level, settings.log_format)
        if manager is not None and settings.database_create_tables:
            await manager.create_tables()
        if (
            not settings.stateless
            and settings.session_ttl_seconds
            and settings.session_sweep_interval_seconds > 0
        ):
            runtime.start_sweeper(settings.session_sweep_interval_seconds)
        logger.info(
            f"Toolhost started ({runtime.mode}, {len(table)} capabilities)",
        )
        yield
        logger.info("Toolhost shutting down")
        await runtime.stop_sweeper()
        for provider in {id(p): p for p in providers.values()}.values():
            aclose = getattr(provider, "aclose", None)
            if aclose is not None:
                await aclose()
        if manager is not None:
            await manager.dispose()

    app = FastAPI(
        title=settings.server_name, version=settings.server_version, lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.routing_table = table
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )
    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(well_known.router)
    app.include_router(mcp_endpoint.router)
    return app


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run("toolhost.main:create_app", factory=True, host="0.0.0.0", port=8000)
