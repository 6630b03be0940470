"""JSON-RPC Schemas — tests for envelope parsing and method params.

Tests cover:
    - Notification detection (absent id vs explicit null id)
    - Envelope rejection (wrong version, empty method)
    - _meta.authorization.token extraction
    - Error builder emits integer codes
"""

import pytest
from pydantic import ValidationError

from toolhost.core.errors import JsonRpcCode
from toolhost.schemas.jsonrpc import (
    JsonRpcRequest, ToolCallParams, jsonrpc_error, jsonrpc_result,
)


def test_message_without_id_is_a_notification():
    message = JsonRpcRequest.model_validate(
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
    )
    assert message.is_notification


def test_explicit_null_id_is_a_request():
    message = JsonRpcRequest.model_validate({"jsonrpc": "2.0", "method": "ping", "id": None})
    assert not message.is_notification


def test_initialize_detection():
    message = JsonRpcRequest.model_validate({"jsonrpc": "2.0", "method": "initialize", "id": 1})
    assert message.is_initialize


@pytest.mark.parametrize("payload", [
    {"jsonrpc": "1.0", "method": "ping", "id": 1},
    {"jsonrpc": "2.0", "method": "", "id": 1},
    {"jsonrpc": "2.0", "id": 1},
])
def test_malformed_envelopes_are_rejected(payload):
    with pytest.raises(ValidationError):
        JsonRpcRequest.model_validate(payload)


def test_meta_token_is_extracted():
    params = ToolCallParams.model_validate({
        "name": "whoami",
        "_meta": {"authorization": {"token": "token-a"}},
    })
    assert params.meta_token == "token-a"
    assert ToolCallParams.model_validate({"name": "whoami"}).meta_token is None


def test_envelope_builders():
    assert jsonrpc_result(7, {}) == {"jsonrpc": "2.0", "id": 7, "result": {}}
    error = jsonrpc_error(7, JsonRpcCode.METHOD_NOT_FOUND, "Method not found: x")
    assert error["error"] == {"code": -32601, "message": "Method not found: x"}
    assert type(error["error"]["code"]) is int
