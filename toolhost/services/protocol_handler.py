"""Protocol Handler — per-session JSON-RPC method table over the dispatcher.

Invariants:
    - Every method -> handler mapping is visible in one dict, no getattr magic
    - Notifications never produce a response; unknown notifications are ignored
    - Unknown methods answer -32601, malformed params -32602 with violations
    - tools/call surfaces auth challenges and handler failures as isError results;
      not_found / validation / configuration stay JSON-RPC errors so a client can
      tell "does not exist", "bad input" and "must configure" apart
    - An @elicitation tool whose result carries needsElicitation answers with that
      result tagged type="elicitation", never with structuredContent
    - With serialize=True, requests on one handler (one session) run one at a time
      in arrival order (asyncio.Lock is FIFO)

Design Decisions:
    - One handler instance per session, sharing the dispatcher and routing table:
      per-session state lives here (initialized flag, client info, lock), service
      state lives in the service instances
    - Credential precedence: Authorization header, then _meta.authorization.token
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from toolhost.core.domain_types import (
    CapabilityKind, RenderFormat, LATEST_PROTOCOL_VERSION,
)
from toolhost.core.errors import JsonRpcCode
from toolhost.schemas.jsonrpc import (
    JsonRpcRequest, PromptGetParams, ResourceReadParams, ToolCallParams,
    jsonrpc_error, jsonrpc_result,
)
from toolhost.services.dispatch import CallOutcome, Dispatcher, OutcomeKind
from toolhost.services.registrar import RouteEntry

logger = logging.getLogger(__name__)

MethodHandler = Callable[[dict, str | None], Awaitable[Any]]


@dataclass(frozen=True)
class ServerInfo:
    name: str
    version: str


class RpcError(Exception):
    """Raised inside method handlers to produce a JSON-RPC error response."""

    def __init__(self, code: JsonRpcCode, message: str, data: dict | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


class ProtocolHandler:
    """Answers JSON-RPC messages for one session."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        server_info: ServerInfo,
        *,
        serialize: bool = True,
    ):
        self._dispatcher = dispatcher
        self._server_info = server_info
        self._lock = asyncio.Lock() if serialize else None
        self.initialized = False
        self.client_info: dict | None = None

        self._methods: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "notifications/initialized": self._initialized,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "prompts/list": self._list_prompts,
            "prompts/get": self._get_prompt,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
        }

    def mark_restored(self) -> None:
        """Handler rebuilt for a persisted session: the handshake already happened."""
        self.initialized = True

    async def handle(
        self, request: JsonRpcRequest, credential: str | None = None,
    ) -> dict | None:
        if self._lock is None:
            return await self._handle(request, credential)
        async with self._lock:
            return await self._handle(request, credential)

    async def _handle(
        self, request: JsonRpcRequest, credential: str | None,
    ) -> dict | None:
        method = self._methods.get(request.method)
        if method is None:
            if request.is_notification:
                return None
            logger.warning(f"Unknown JSON-RPC method: {request.method}")
            return jsonrpc_error(
                request.id, JsonRpcCode.METHOD_NOT_FOUND,
                f"Method not found: {request.method}",
            )
        try:
            result = await method(request.params or {}, credential)
        except ValidationError as e:
            return jsonrpc_error(
                request.id, JsonRpcCode.INVALID_PARAMS, "Invalid params",
                {"kind": "validation", "violations": [
                    {
                        "field": ".".join(str(p) for p in err["loc"]),
                        "message": err["msg"],
                        "type": err["type"],
                    }
                    for err in e.errors()
                ]},
            )
        except RpcError as e:
            return jsonrpc_error(request.id, e.code, e.message, e.data)
        if request.is_notification:
            return None
        return jsonrpc_result(request.id, result)

    # ─── Lifecycle ──────────────────────────────────────────────

    async def _initialize(self, params: dict, credential: str | None) -> dict:
        self.client_info = params.get("clientInfo")
        return {
            "protocolVersion": params.get("protocolVersion") or LATEST_PROTOCOL_VERSION,
            "capabilities": {
                "tools": {"listChanged": False},
                "prompts": {"listChanged": False},
                "resources": {"listChanged": False},
            },
            "serverInfo": {
                "name": self._server_info.name,
                "version": self._server_info.version,
            },
        }

    async def _initialized(self, params: dict, credential: str | None) -> None:
        self.initialized = True

    async def _ping(self, params: dict, credential: str | None) -> dict:
        return {}

    # ─── Tools ──────────────────────────────────────────────────

    async def _list_tools(self, params: dict, credential: str | None) -> dict:
        table = self._dispatcher.table
        return {"tools": [_describe_tool(e) for e in table.entries(CapabilityKind.TOOL)]}

    async def _call_tool(self, params: dict, credential: str | None) -> dict:
        call = ToolCallParams.model_validate(params)
        outcome = await self._dispatcher.call(
            CapabilityKind.TOOL, call.name, call.arguments,
            credential or call.meta_token,
        )
        if outcome.kind is OutcomeKind.OK:
            return _tool_result(outcome.entry, outcome.result)
        if outcome.kind is OutcomeKind.AUTHENTICATION:
            return outcome.challenge.to_result()
        if outcome.kind is OutcomeKind.INTERNAL:
            return {
                "isError": True,
                "content": [{"type": "text", "text": outcome.message}],
            }
        raise _rpc_error(outcome)

    # ─── Prompts ────────────────────────────────────────────────

    async def _list_prompts(self, params: dict, credential: str | None) -> dict:
        table = self._dispatcher.table
        return {"prompts": [
            _describe_prompt(e) for e in table.entries(CapabilityKind.PROMPT)
        ]}

    async def _get_prompt(self, params: dict, credential: str | None) -> dict:
        call = PromptGetParams.model_validate(params)
        outcome = await self._dispatcher.call(
            CapabilityKind.PROMPT, call.name, call.arguments,
            credential or call.meta_token,
        )
        if not outcome.ok:
            raise _rpc_error(outcome)
        return _prompt_result(outcome.entry, outcome.result)

    # ─── Resources ──────────────────────────────────────────────

    async def _list_resources(self, params: dict, credential: str | None) -> dict:
        table = self._dispatcher.table
        return {"resources": [
            _describe_resource(e) for e in table.entries(CapabilityKind.RESOURCE)
        ]}

    async def _read_resource(self, params: dict, credential: str | None) -> dict:
        call = ResourceReadParams.model_validate(params)
        outcome = await self._dispatcher.call(
            CapabilityKind.RESOURCE, call.uri, None, credential or call.meta_token,
        )
        if not outcome.ok:
            raise _rpc_error(outcome)
        return _resource_result(outcome.entry, outcome.result)


# ─── Outcome -> wire shapes ─────────────────────────────────────

_OUTCOME_CODES: dict[OutcomeKind, JsonRpcCode] = {
    OutcomeKind.NOT_FOUND: JsonRpcCode.INVALID_PARAMS,
    OutcomeKind.VALIDATION: JsonRpcCode.INVALID_PARAMS,
    OutcomeKind.CONFIGURATION: JsonRpcCode.MISSING_CONFIGURATION,
    OutcomeKind.AUTHENTICATION: JsonRpcCode.AUTHENTICATION_REQUIRED,
    OutcomeKind.INTERNAL: JsonRpcCode.INTERNAL_ERROR,
}


def _rpc_error(outcome: CallOutcome) -> RpcError:
    data: dict[str, Any] = {"kind": outcome.kind.value}
    if outcome.kind is OutcomeKind.AUTHENTICATION and outcome.challenge:
        result = outcome.challenge.to_result()
        data["challenge"] = result["challenge"]
        data["_meta"] = result["_meta"]
    elif outcome.detail:
        data.update(outcome.detail)
    return RpcError(_OUTCOME_CODES[outcome.kind], outcome.message or "", data)


def _render_text(result: Any, render_format: RenderFormat | None) -> str:
    if result is None:
        return ""
    if isinstance(result, str) and render_format is not RenderFormat.JSON:
        return result
    return json.dumps(result, indent=2, ensure_ascii=False, default=str)


def _tool_result(entry: RouteEntry, result: Any) -> dict:
    if entry.elicitation and isinstance(result, dict) and result.get("needsElicitation"):
        request = {"type": "elicitation", **result}
        return {
            "content": [{"type": "text", "text": _render_text(request, RenderFormat.JSON)}],
            "isError": False,
        }
    if (
        entry.output_schema is None
        and isinstance(result, dict)
        and isinstance(result.get("content"), list)
    ):
        return result
    payload: dict[str, Any] = {
        "content": [{"type": "text", "text": _render_text(result, entry.render_format)}],
    }
    if entry.output_schema is not None and isinstance(result, dict):
        payload["structuredContent"] = result
    return payload


def _prompt_result(entry: RouteEntry, result: Any) -> dict:
    if isinstance(result, dict) and isinstance(result.get("messages"), list):
        normalized = dict(result)
    elif isinstance(result, list):
        normalized = {"messages": result}
    else:
        normalized = {"messages": [{
            "role": "user",
            "content": {"type": "text", "text": _render_text(result, None)},
        }]}
    if entry.description and "description" not in normalized:
        normalized["description"] = entry.description
    return normalized


def _resource_result(entry: RouteEntry, result: Any) -> dict:
    if isinstance(result, dict) and isinstance(result.get("contents"), list):
        return result
    return {"contents": [{
        "uri": entry.name,
        "mimeType": entry.mime_type,
        "text": _render_text(result, None),
    }]}


def _describe_tool(entry: RouteEntry) -> dict:
    tool: dict[str, Any] = {
        "name": entry.name,
        "inputSchema": (
            entry.input_schema.json_schema if entry.input_schema
            else {"type": "object", "properties": {}}
        ),
    }
    if entry.title:
        tool["title"] = entry.title
    if entry.description:
        tool["description"] = entry.description
    if entry.output_schema is not None:
        tool["outputSchema"] = entry.output_schema.json_schema
    if entry.security:
        tool["securitySchemes"] = [dict(s) for s in entry.security]
    meta: dict[str, Any] = {}
    if entry.ui_resource_uri:
        meta["ui"] = {"resourceUri": entry.ui_resource_uri}
        meta["ui/resourceUri"] = entry.ui_resource_uri
    if entry.deprecated:
        meta["deprecated"] = entry.deprecated
    if meta:
        tool["_meta"] = meta
    return tool


def _describe_prompt(entry: RouteEntry) -> dict:
    fields = entry.input_schema.fields if entry.input_schema else ()
    described: dict[str, Any] = {
        "name": entry.name,
        "arguments": [
            {
                "name": f.name,
                "description": f.constraint.description,
                "required": f.required,
            }
            for f in fields
        ],
    }
    if entry.description:
        described["description"] = entry.description
    return described


def _describe_resource(entry: RouteEntry) -> dict:
    described: dict[str, Any] = {
        "uri": entry.name,
        "name": entry.title or entry.method_name,
        "mimeType": entry.mime_type,
    }
    if entry.description:
        described["description"] = entry.description
    return described
