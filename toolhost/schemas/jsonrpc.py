"""JSON-RPC Schemas — Pydantic models for the protocol envelope and method params.

Invariants:
    - jsonrpc must be exactly "2.0"; method must be non-empty
    - A message without an "id" member is a notification (no response)
    - _meta is exposed as `meta` (pydantic reserves leading underscores)

Design Decisions:
    - Envelope parsed at the HTTP boundary so the session runtime can tell an
      initialize request apart before any routing happens
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class JsonRpcRequest(BaseModel):
    """One inbound JSON-RPC request or notification."""
    model_config = ConfigDict(extra="ignore")

    jsonrpc: Literal["2.0"]
    method: str = Field(min_length=1)
    id: int | str | None = None
    params: dict[str, Any] | None = None

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set

    @property
    def is_initialize(self) -> bool:
        return self.method == "initialize"


class _MetaParams(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    meta: dict[str, Any] | None = Field(None, alias="_meta")

    @property
    def meta_token(self) -> str | None:
        """Credential from `_meta.authorization.token`, if present."""
        authorization = (self.meta or {}).get("authorization")
        if isinstance(authorization, dict):
            token = authorization.get("token")
            if isinstance(token, str) and token:
                return token
        return None


class ToolCallParams(_MetaParams):
    name: str
    arguments: dict[str, Any] | None = None


class PromptGetParams(_MetaParams):
    name: str
    arguments: dict[str, Any] | None = None


class ResourceReadParams(_MetaParams):
    uri: str


def jsonrpc_result(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def jsonrpc_error(
    request_id: Any, code: int, message: str, data: dict | None = None,
) -> dict:
    error: dict[str, Any] = {"code": int(code), "message": message}
    if data:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}
