"""Error Handlers — global exception handlers for the toolhost API.

Invariants:
    - On /mcp every failure is a JSON-RPC error envelope (id null), so MCP clients
      always receive something they can parse
    - Elsewhere: ToolhostError -> {"error": {code, message, category, severity}}
    - Unexpected exceptions never leak internal details on either surface

Design Decisions:
    - Three-layer handler: domain (ToolhostError), validation (Pydantic), catch-all (Exception)
    - Session errors on /mcp normally never reach these handlers: the endpoint
      renders them itself (api/routes/mcp_endpoint.py) so it can echo the request id
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from toolhost.core.errors import ErrorSeverity, JsonRpcCode, ToolhostError
from toolhost.schemas.jsonrpc import jsonrpc_error

logger = logging.getLogger(__name__)

MCP_PATH = "/mcp"


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_domain_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _is_mcp(request: Request) -> bool:
    return request.url.path == MCP_PATH


def _register_domain_error_handler(app: FastAPI) -> None:

    @app.exception_handler(ToolhostError)
    async def toolhost_error_handler(request: Request, exc: ToolhostError):
        logger.error(
            f"ToolhostError: {exc.message}",
            extra={"error_code": exc.code, "path": request.url.path},
        )
        if _is_mcp(request):
            content = {"jsonrpc": "2.0", "id": None, "error": exc.to_jsonrpc_error()}
        else:
            content = exc.to_response()
        return JSONResponse(status_code=exc.http_status, content=content)


def _register_validation_error_handler(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
        details = [
            {
                "field": ".".join(str(loc) for loc in e["loc"]),
                "message": e["msg"],
                "type": e["type"],
            }
            for e in exc.errors()
        ]
        if _is_mcp(request):
            content = jsonrpc_error(
                None, JsonRpcCode.INVALID_REQUEST, "Invalid Request",
                {"violations": details},
            )
        else:
            content = {"error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "category": "validation",
                "severity": ErrorSeverity.ERROR.value,
                "details": details,
            }}
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


def _register_generic_error_handler(app: FastAPI) -> None:

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all — never leaks internal details."""
        logger.error(
            f"Unhandled exception on {request.url.path}: {type(exc).__name__}",
            exc_info=True,
        )
        if _is_mcp(request):
            content = jsonrpc_error(None, JsonRpcCode.INTERNAL_ERROR, "Internal error")
        else:
            content = {"error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "category": "internal",
                "severity": ErrorSeverity.CRITICAL.value,
            }}
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content,
        )
