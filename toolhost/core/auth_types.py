"""Auth Value Types — requirements, identities, and the structured challenge.

Invariants:
    - Expected auth failures are values (AuthFailure, AuthChallenge), never exceptions
    - AuthChallenge.to_result() always has isError=True, text content, and a
      challenge block {discoveryUrl, errorCode, requiredScopes}
    - The `_meta["mcp/www_authenticate"]` entry mirrors an RFC 6750 header value
    - Identity.credential is excluded from repr (never logged)

Design Decisions:
    - Frozen dataclasses: requirements live in Route Entries, which are immutable
    - Bearer extraction accepts the Authorization header form only; the
      `_meta.authorization.token` form is unpacked by the protocol handler
"""

from dataclasses import dataclass, field
from typing import Any

from toolhost.core.domain_types import AuthErrorCode, ProviderName, DEFAULT_PROVIDER


@dataclass(frozen=True)
class AuthRequirement:
    """Declared on a class or method by @authenticated.

    project_id=True means "use the configured default project"; the
    registrar resolves it to a concrete string or fails registration.
    """
    provider: ProviderName = DEFAULT_PROVIDER
    project_id: str | bool | None = None
    scopes: tuple[str, ...] = ()


@dataclass(frozen=True)
class Identity:
    """Verified caller, as returned by an auth provider."""
    subject: str
    email: str | None = None
    name: str | None = None
    scopes: tuple[str, ...] = ()
    claims: dict[str, Any] = field(default_factory=dict)
    credential: str | None = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class AuthFailure:
    """Provider verdict for a credential it could not verify."""
    error_code: AuthErrorCode = AuthErrorCode.INVALID_TOKEN
    description: str = "Invalid or expired token"


@dataclass(frozen=True)
class AuthGranted:
    identity: Identity | None = None
    secrets: dict[str, str] | None = None


@dataclass(frozen=True)
class AuthChallenge:
    """Structured authentication failure, rendered by the protocol layer."""
    error_code: AuthErrorCode
    description: str
    discovery_url: str
    required_scopes: tuple[str, ...] = ()

    def www_authenticate(self) -> str:
        return build_www_authenticate(
            self.discovery_url, self.error_code, self.description,
        )

    def to_result(self) -> dict:
        return {
            "isError": True,
            "content": [{"type": "text", "text": self.description}],
            "challenge": {
                "discoveryUrl": self.discovery_url,
                "errorCode": self.error_code.value,
                "requiredScopes": list(self.required_scopes),
            },
            "_meta": {"mcp/www_authenticate": [self.www_authenticate()]},
        }


def build_www_authenticate(
    discovery_url: str, error_code: AuthErrorCode, description: str,
) -> str:
    if error_code is AuthErrorCode.MISSING_CREDENTIAL:
        # RFC 6750 3.1: no error attribute when the request carried no credential
        return f'Bearer resource_metadata="{discovery_url}"'
    escaped = description.replace("\\", "\\\\").replace('"', '\\"')
    return (
        f'Bearer resource_metadata="{discovery_url}", '
        f'error="{error_code.value}", error_description="{escaped}"'
    )


def extract_bearer(authorization: str | None) -> str | None:
    """Token from an `Authorization: Bearer <token>` value, else None."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
