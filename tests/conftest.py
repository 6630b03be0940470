"""Root conftest — shared test configuration and service fixtures.

Invariants:
    - Tests never read a developer's .env (every Settings is built with _env_file=None)
    - Services come from tests/fixtures/services through real discovery
    - The app fixture injects providers and backend, so no network or database is touched

Design Decisions:
    - ASGITransport does not run the lifespan: no sweeper task, no provider clients to close
"""

import os
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

# Ensure tests don't accidentally pick up real deployment settings
os.environ.setdefault("SESSION_BACKEND", "memory")
os.environ.setdefault("AUTH_PROVIDER", "none")

from toolhost.config import Settings  # noqa: E402
from toolhost.core.auth_types import Identity  # noqa: E402
from toolhost.infrastructure.memory_session_store import InMemorySessionStore  # noqa: E402
from toolhost.infrastructure.static_token_provider import StaticTokenProvider  # noqa: E402
from toolhost.main import create_app  # noqa: E402
from toolhost.services.auth_gate import AuthGate  # noqa: E402
from toolhost.services.discovery import discover_services  # noqa: E402
from toolhost.services.dispatch import Dispatcher  # noqa: E402
from toolhost.services.registrar import build_routing_table  # noqa: E402

SERVICES_DIR = Path(__file__).parent / "fixtures" / "services"
PROJECT_ID = "weather-pro"
PUBLIC_URL = "https://tools.example.com"


class SpyTokenProvider(StaticTokenProvider):
    """StaticTokenProvider that records every verify / fetch_secrets call."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.verified: list[str] = []
        self.fetched: list[tuple[str, str]] = []

    async def verify(self, credential):
        self.verified.append(credential)
        return await super().verify(credential)

    async def fetch_secrets(self, identity, scope):
        self.fetched.append((identity.subject, scope))
        return await super().fetch_secrets(identity, scope)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        server_name="toolhost-test",
        server_version="9.9.9",
        auth_project_id=PROJECT_ID,
        public_url=PUBLIC_URL,
        authorization_servers=["https://auth.example.com"],
        scopes_supported=["forecast:read"],
    )


@pytest.fixture
def auth_provider() -> SpyTokenProvider:
    """token-a / token-b carry the forecast scope and secrets; token-c has no secrets."""
    scoped = ("forecast:read",)
    return SpyTokenProvider(
        {
            "token-a": Identity(subject="alice", scopes=scoped),
            "token-b": Identity(subject="bob", scopes=scoped),
            "token-c": Identity(subject="carol", scopes=scoped),
            "token-noscope": Identity(subject="dave"),
        },
        secrets={
            "alice": {PROJECT_ID: {"WEATHER_API_KEY": "key-aaaa"}},
            "bob": {PROJECT_ID: {"WEATHER_API_KEY": "key-bbbb"}},
        },
    )


@pytest.fixture
def providers(auth_provider):
    return {"static": auth_provider, "default": auth_provider}


@pytest.fixture
def services() -> list[object]:
    return discover_services(SERVICES_DIR)


@pytest.fixture
def routing_table(services, providers):
    return build_routing_table(
        services, providers=providers.keys(), default_project_id=PROJECT_ID,
    )


@pytest.fixture
def dispatcher(routing_table, providers, settings):
    return Dispatcher(routing_table, AuthGate(providers, settings.discovery_url))


@pytest.fixture
def backend() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def app(settings, services, providers, backend):
    return create_app(settings, services=services, providers=providers, backend=backend)


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c


@pytest.fixture
def rpc(client):
    """POST one JSON-RPC message to /mcp."""
    async def send(
        method: str,
        params: dict | None = None,
        *,
        session_id: str | None = None,
        token: str | None = None,
        request_id: int = 1,
        notification: bool = False,
    ):
        body: dict = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            body["params"] = params
        if not notification:
            body["id"] = request_id
        headers = {}
        if session_id:
            headers["Mcp-Session-Id"] = session_id
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return await client.post("/mcp", json=body, headers=headers)

    return send


@pytest.fixture
def open_session(rpc):
    """Run the initialize handshake and return the issued session id."""
    async def handshake() -> str:
        res = await rpc("initialize", {
            "protocolVersion": "2025-06-18",
            "clientInfo": {"name": "pytest", "version": "1.0"},
        })
        session_id = res.headers["Mcp-Session-Id"]
        await rpc("notifications/initialized", session_id=session_id, notification=True)
        return session_id

    return handshake
