"""Auth Gate — per-call verification: unauthenticated -> verifying -> authorized | rejected.

Invariants:
    - No requirement: AuthGranted immediately, provider never consulted
    - Missing credential (missing_credential), failed verification (invalid_token)
      and missing scope (insufficient_scope) all yield an
      AuthChallenge carrying the discovery URL and the required scopes
    - Expected failures are returned, never raised
    - Secrets are fetched only after a successful verification, and only when
      the requirement names a project scope
    - Provider transport failures during verify() are an auth rejection; during
      fetch_secrets() they propagate (the call cannot run without its secrets)

Design Decisions:
    - Providers looked up by name in an explicit dict built at startup; the
      registrar has already rejected unknown names
"""

import logging
from collections.abc import Mapping
from dataclasses import replace

from toolhost.core.auth_types import (
    AuthChallenge, AuthFailure, AuthGranted, AuthRequirement,
)
from toolhost.core.domain_types import AuthErrorCode
from toolhost.core.errors import ExternalServiceError
from toolhost.core.repository_protocols import AuthProvider

logger = logging.getLogger(__name__)

MISSING_CREDENTIAL = (
    "Authentication required. Provide a bearer token in the Authorization "
    "header or in _meta.authorization.token"
)


class AuthGate:
    """Runs a capability's auth requirement against the call's credential."""

    def __init__(self, providers: Mapping[str, AuthProvider], discovery_url: str):
        self._providers = dict(providers)
        self.discovery_url = discovery_url

    @property
    def provider_names(self) -> list[str]:
        return list(self._providers)

    async def check(
        self, requirement: AuthRequirement | None, credential: str | None,
    ) -> AuthGranted | AuthChallenge:
        if requirement is None:
            return AuthGranted()
        if not credential:
            return self._challenge(
                AuthErrorCode.MISSING_CREDENTIAL, MISSING_CREDENTIAL, requirement,
            )

        provider = self._providers[requirement.provider]
        try:
            verdict = await provider.verify(credential)
        except ExternalServiceError as e:
            logger.warning(
                f"Credential verification failed: {e.message}",
                extra={"error_code": e.code},
            )
            return self._challenge(
                AuthErrorCode.INVALID_TOKEN, "Token verification failed", requirement,
            )
        if isinstance(verdict, AuthFailure):
            return self._challenge(verdict.error_code, verdict.description, requirement)

        missing = [s for s in requirement.scopes if s not in verdict.scopes]
        if missing:
            return self._challenge(
                AuthErrorCode.INSUFFICIENT_SCOPE,
                f"Missing required scopes: {', '.join(missing)}",
                requirement,
            )

        identity = verdict if verdict.credential else replace(verdict, credential=credential)
        secrets = None
        if requirement.project_id:
            secrets = await provider.fetch_secrets(identity, str(requirement.project_id))
        return AuthGranted(identity=identity, secrets=secrets)

    def _challenge(
        self, code: AuthErrorCode, description: str, requirement: AuthRequirement,
    ) -> AuthChallenge:
        return AuthChallenge(
            error_code=code,
            description=description,
            discovery_url=self.discovery_url,
            required_scopes=requirement.scopes,
        )

