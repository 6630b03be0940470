"""MCP Endpoint — end-to-end tests over HTTP (httpx ASGITransport).

Tests cover:
    - Handshake: session id issued in the Mcp-Session-Id header, 202 for notifications
    - Session errors: 400 without id, 404 for unknown ids, both with JSON-RPC bodies
    - State survives across requests; DELETE is idempotent, final and scoped to one session
    - Parse / envelope errors
    - Credentials from the Authorization header reach the auth gate
    - Health, readiness and protected resource metadata
    - Stateless mode
    - Backend and unexpected failures on /mcp still answer with JSON-RPC envelopes
"""

import json

from httpx import ASGITransport, AsyncClient

from toolhost.config import Settings
from toolhost.core.errors import DatabaseError
from toolhost.infrastructure.memory_session_store import InMemorySessionStore
from toolhost.main import create_app


def _text(res) -> str:
    return res.json()["result"]["content"][0]["text"]


async def test_initialize_issues_a_session_id(rpc):
    res = await rpc("initialize", {"protocolVersion": "2025-06-18"})
    assert res.status_code == 200
    assert res.headers["Mcp-Session-Id"]
    body = res.json()
    assert body["id"] == 1
    assert body["result"]["serverInfo"] == {"name": "toolhost-test", "version": "9.9.9"}


async def test_notification_is_accepted_without_body(rpc):
    res = await rpc("initialize")
    session_id = res.headers["Mcp-Session-Id"]
    res = await rpc("notifications/initialized", session_id=session_id, notification=True)
    assert res.status_code == 202
    assert res.content == b""


async def test_request_without_session_is_400(rpc):
    res = await rpc("tools/list", request_id=7)
    assert res.status_code == 400
    body = res.json()
    assert body["id"] == 7
    assert body["error"]["code"] == -32000


async def test_unknown_session_is_404(rpc):
    res = await rpc("tools/list", session_id="0f7c7d2e-unknown")
    assert res.status_code == 404
    assert res.json()["error"]["code"] == -32001


async def test_counter_resumes_across_requests(rpc, open_session):
    session_id = await open_session()
    await rpc("tools/call", {"name": "increment", "arguments": {"by": 2}}, session_id=session_id)
    res = await rpc("tools/call", {"name": "increment", "arguments": {}}, session_id=session_id)
    assert json.loads(_text(res)) == {"count": 3}
    assert res.headers["Mcp-Session-Id"] == session_id


async def test_delete_closes_the_session(client, rpc, open_session):
    session_id = await open_session()
    res = await client.delete("/mcp", headers={"Mcp-Session-Id": session_id})
    assert res.status_code == 204

    res = await rpc("tools/list", session_id=session_id)
    assert res.status_code == 404

    res = await client.delete("/mcp", headers={"Mcp-Session-Id": session_id})
    assert res.status_code == 204


async def test_repeated_delete_leaves_other_sessions_untouched(client, rpc, open_session, backend):
    closed = await open_session()
    kept = await open_session()
    await rpc("tools/call", {"name": "increment", "arguments": {}}, session_id=kept)

    for _ in range(2):
        res = await client.delete("/mcp", headers={"Mcp-Session-Id": closed})
        assert res.status_code == 204

    assert await backend.get(closed) is None
    assert (await backend.get(kept))["data"] == {"count": 1}
    res = await rpc("tools/call", {"name": "increment", "arguments": {}}, session_id=kept)
    assert res.status_code == 200
    assert json.loads(_text(res)) == {"count": 2}


async def test_delete_without_session_is_400(client):
    res = await client.delete("/mcp")
    assert res.status_code == 400
    assert res.json()["error"]["code"] == -32000


async def test_get_is_not_allowed(client):
    res = await client.get("/mcp")
    assert res.status_code == 405
    assert "POST" in res.headers["Allow"]


async def test_invalid_json_is_a_parse_error(client):
    res = await client.post(
        "/mcp", content=b"{not json", headers={"Content-Type": "application/json"},
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == -32700


async def test_invalid_envelope_is_an_invalid_request(client):
    res = await client.post("/mcp", json={"jsonrpc": "1.0", "id": 3, "method": "ping"})
    assert res.status_code == 400
    body = res.json()
    assert body["id"] == 3
    assert body["error"]["code"] == -32600


async def test_batches_are_rejected(client):
    res = await client.post("/mcp", json=[{"jsonrpc": "2.0", "id": 1, "method": "ping"}])
    assert res.status_code == 400
    assert res.json()["error"]["code"] == -32600


async def test_bearer_header_reaches_the_auth_gate(rpc, open_session):
    session_id = await open_session()
    res = await rpc(
        "tools/call", {"name": "premiumForecast", "arguments": {"city": "Lisbon"}},
        session_id=session_id, token="token-b",
    )
    assert json.loads(_text(res)) == {"city": "Lisbon", "keySuffix": "bbbb"}


async def test_unauthenticated_call_gets_a_challenge(rpc, open_session):
    session_id = await open_session()
    res = await rpc(
        "tools/call", {"name": "premiumForecast", "arguments": {"city": "Lisbon"}},
        session_id=session_id,
    )
    assert res.status_code == 200
    result = res.json()["result"]
    assert result["isError"] is True
    assert result["challenge"]["discoveryUrl"] == (
        "https://tools.example.com/.well-known/oauth-protected-resource"
    )


async def test_health(client, open_session):
    await open_session()
    res = await client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "mode": "stateful", "activeSessions": 1}


async def test_readiness(client):
    res = await client.get("/health/ready")
    assert res.status_code == 200
    assert res.json()["status"] == "ready"


async def test_readiness_fails_when_backend_is_down(client, backend, monkeypatch):
    async def down() -> bool:
        return False

    monkeypatch.setattr(backend, "health_check", down)
    res = await client.get("/health/ready")
    assert res.status_code == 503


async def test_protected_resource_metadata(client):
    res = await client.get("/.well-known/oauth-protected-resource")
    assert res.status_code == 200
    assert res.json() == {
        "resource": "https://tools.example.com",
        "authorization_servers": ["https://auth.example.com"],
        "scopes_supported": ["forecast:read"],
        "bearer_methods_supported": ["header"],
    }


async def test_stateless_mode(services, providers, backend):
    settings = Settings(_env_file=None, stateless=True, auth_project_id="weather-pro")
    app = create_app(settings, services=services, providers=providers, backend=backend)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        res = await c.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "initialize"})
        assert res.status_code == 200
        assert "Mcp-Session-Id" not in res.headers

        res = await c.post("/mcp", json={
            "jsonrpc": "2.0", "id": 2, "method": "tools/call",
            "params": {"name": "increment", "arguments": {}},
        })
        assert json.loads(_text(res)) == {"count": 1}

        res = await c.delete("/mcp", headers={"Mcp-Session-Id": "anything"})
        assert res.status_code == 405

        res = await c.get("/health")
        assert res.json()["mode"] == "stateless"


class _BrokenStore(InMemorySessionStore):
    def __init__(self, error: Exception):
        super().__init__()
        self._error = error

    async def put(self, session_id, data):
        raise self._error


async def test_backend_failure_is_a_jsonrpc_error(settings, services, providers):
    store = _BrokenStore(DatabaseError("connection refused", "execute"))
    app = create_app(settings, services=services, providers=providers, backend=store)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        res = await c.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "initialize"})
    assert res.status_code == 503
    body = res.json()
    assert body["id"] is None
    assert body["error"]["code"] == -32603
    assert body["error"]["data"]["code"] == "DATABASE_ERROR"


async def test_unexpected_failure_does_not_leak(settings, services, providers):
    store = _BrokenStore(RuntimeError("password=hunter2"))
    app = create_app(settings, services=services, providers=providers, backend=store)
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        res = await c.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "initialize"})
    assert res.status_code == 500
    assert res.json()["error"] == {"code": -32603, "message": "Internal error"}
    assert "hunter2" not in res.text
