"""Static Token Provider — fixed token -> identity table, for development and tests.

Invariants:
    - Unknown tokens verify to AuthFailure(invalid_token), never raise
    - Secret bundles are looked up by (identity subject, scope); missing -> {}
    - Returned bundles are copies
"""

from collections.abc import Mapping

from toolhost.core.auth_types import AuthFailure, Identity


class StaticTokenProvider:
    """AuthProvider backed by in-process dicts."""

    def __init__(
        self,
        identities: Mapping[str, Identity],
        secrets: Mapping[str, Mapping[str, Mapping[str, str]]] | None = None,
        name: str = "static",
    ):
        self.name = name
        self._identities = dict(identities)
        self._secrets = {
            subject: {scope: dict(bundle) for scope, bundle in scopes.items()}
            for subject, scopes in (secrets or {}).items()
        }

    @classmethod
    def from_subjects(cls, tokens: Mapping[str, str], name: str = "static") -> "StaticTokenProvider":
        """Build from a token -> subject map (AUTH_STATIC_TOKENS)."""
        return cls(
            {token: Identity(subject=subject) for token, subject in tokens.items()},
            name=name,
        )

    async def verify(self, credential: str) -> Identity | AuthFailure:
        identity = self._identities.get(credential)
        if identity is None:
            return AuthFailure(description="Invalid or expired token")
        return identity

    async def fetch_secrets(self, identity: Identity, scope: str) -> dict[str, str]:
        return dict(self._secrets.get(identity.subject, {}).get(scope, {}))
