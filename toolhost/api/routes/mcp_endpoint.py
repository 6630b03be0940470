"""MCP Endpoint — JSON-RPC over HTTP with session negotiation via the Mcp-Session-Id header.

Invariants:
    - POST /mcp carries exactly one JSON-RPC message; the session id travels in
      the Mcp-Session-Id header both ways
    - Notifications are answered 202 with no body
    - Session errors answer with their HTTP status (400/404) AND a JSON-RPC error body
    - DELETE /mcp is idempotent: 204 whether or not the session was still live
    - GET /mcp is 405: this server does not open server-to-client streams

Design Decisions:
    - Thin route: parsing and header plumbing only, all decisions in SessionRuntime
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from toolhost.core.auth_types import extract_bearer
from toolhost.core.domain_types import SESSION_HEADER
from toolhost.core.errors import (
    BadSessionRequestError, JsonRpcCode, MethodNotAllowedError,
    SessionNotFoundError, ToolhostError,
)
from toolhost.schemas.jsonrpc import JsonRpcRequest, jsonrpc_error
from toolhost.services.session_runtime import SessionRuntime

logger = logging.getLogger(__name__)
router = APIRouter(tags=["mcp"])


def get_runtime(request: Request) -> SessionRuntime:
    return request.app.state.runtime


@router.post("/mcp")
async def post_message(
    request: Request,
    runtime: SessionRuntime = Depends(get_runtime),
    mcp_session_id: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
):
    """Handle one JSON-RPC request or notification."""
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonrpc_error(None, JsonRpcCode.PARSE_ERROR, "Parse error"),
        )
    try:
        message = JsonRpcRequest.model_validate(payload)
    except ValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonrpc_error(
                _request_id(payload), JsonRpcCode.INVALID_REQUEST, "Invalid Request",
                {"violations": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors()
                ]},
            ),
        )

    try:
        answer = await runtime.handle(
            message,
            session_id=mcp_session_id,
            credential=extract_bearer(authorization),
        )
    except (BadSessionRequestError, SessionNotFoundError) as e:
        return _session_error(e, message.id, mcp_session_id)

    headers = {SESSION_HEADER: answer.session_id} if answer.session_id else {}
    if answer.body is None:
        return Response(status_code=status.HTTP_202_ACCEPTED, headers=headers)
    return JSONResponse(content=answer.body, headers=headers)


@router.delete("/mcp")
async def delete_session(
    runtime: SessionRuntime = Depends(get_runtime),
    mcp_session_id: str | None = Header(default=None),
):
    """Close a session. Unknown or already-closed ids are not an error."""
    if runtime.stateless:
        return _session_error(
            MethodNotAllowedError("Session termination not supported in stateless mode"),
            None, None,
        )
    if not mcp_session_id:
        return _session_error(
            BadSessionRequestError(f"Bad Request: {SESSION_HEADER} header is required"),
            None, None,
        )
    await runtime.close(mcp_session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/mcp")
async def open_stream():
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content=jsonrpc_error(
            None, JsonRpcCode.BAD_SESSION,
            "Method not allowed: server-to-client streams are not supported",
        ),
        headers={"Allow": "POST, DELETE"},
    )


def _session_error(
    error: ToolhostError, request_id: Any, session_id: str | None,
) -> JSONResponse:
    logger.warning(
        f"Session request rejected: {error.message}",
        extra={"error_code": error.code, "session_id": session_id},
    )
    return JSONResponse(
        status_code=error.http_status,
        content={"jsonrpc": "2.0", "id": request_id, "error": error.to_jsonrpc_error()},
    )


def _request_id(payload: Any) -> Any:
    if isinstance(payload, dict) and isinstance(payload.get("id"), (int, str)):
        return payload["id"]
    return None
