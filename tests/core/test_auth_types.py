"""Auth Types — tests for bearer extraction and the structured auth challenge.

Tests cover:
    - extract_bearer() accepted and rejected header forms
    - AuthChallenge.to_result() wire shape
    - WWW-Authenticate value escaping
    - Identity never reveals the credential in repr
"""

from toolhost.core.auth_types import (
    AuthChallenge, Identity, build_www_authenticate, extract_bearer,
)
from toolhost.core.domain_types import AuthErrorCode

DISCOVERY = "https://tools.example.com/.well-known/oauth-protected-resource"


def test_extract_bearer_accepts_bearer_scheme_case_insensitively():
    assert extract_bearer("Bearer abc") == "abc"
    assert extract_bearer("bearer  abc ") == "abc"


def test_extract_bearer_rejects_other_forms():
    assert extract_bearer(None) is None
    assert extract_bearer("") is None
    assert extract_bearer("Basic dXNlcjpwYXNz") is None
    assert extract_bearer("Bearer") is None
    assert extract_bearer("Bearer   ") is None


def test_challenge_result_shape():
    challenge = AuthChallenge(
        error_code=AuthErrorCode.INSUFFICIENT_SCOPE,
        description="Missing required scopes: forecast:read",
        discovery_url=DISCOVERY,
        required_scopes=("forecast:read",),
    )
    result = challenge.to_result()
    assert result["isError"] is True
    assert result["content"] == [
        {"type": "text", "text": "Missing required scopes: forecast:read"},
    ]
    assert result["challenge"] == {
        "discoveryUrl": DISCOVERY,
        "errorCode": "insufficient_scope",
        "requiredScopes": ["forecast:read"],
    }
    assert result["_meta"]["mcp/www_authenticate"] == [challenge.www_authenticate()]


def test_www_authenticate_escapes_quotes():
    value = build_www_authenticate(DISCOVERY, AuthErrorCode.INVALID_TOKEN, 'bad "token"')
    assert value == (
        f'Bearer resource_metadata="{DISCOVERY}", '
        'error="invalid_token", error_description="bad \\"token\\""'
    )


def test_www_authenticate_without_credential_has_no_error_attribute():
    value = build_www_authenticate(
        DISCOVERY, AuthErrorCode.MISSING_CREDENTIAL, "Authentication required",
    )
    assert value == f'Bearer resource_metadata="{DISCOVERY}"'


def test_identity_repr_hides_credential():
    identity = Identity(subject="alice", credential="token-secret")
    assert "token-secret" not in repr(identity)
    assert identity == Identity(subject="alice")
