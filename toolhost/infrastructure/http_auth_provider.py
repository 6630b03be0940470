"""HTTP Auth Provider — remote identity + secrets service over httpx, with retry and backoff.

Endpoints (relative to AUTH_API_URL, every call carries `x-api-key`):
    POST /public/auth/verify-user          {"token": ...} -> {uid, email, name, scopes?}
    GET  /public/secrets/user/{project_id}  Bearer <user token> -> {"secrets": {...}}

Invariants:
    - Rate limits (429): exponential backoff with jitter, respects Retry-After header
    - Transient errors (5xx, connection): max_retries retries with exponential backoff
    - Timeouts: immediate failure, no retry
    - verify(): 4xx verdicts become AuthFailure (invalid_token), never raise
    - A 2xx body that is not a JSON object is treated like a rejection
    - fetch_secrets(): 4xx yields {} with a warning, so require_keys reports the
      exact missing keys; exhausted retries raise ExternalServiceError

Design Decisions:
    - ±25% jitter on backoff: prevents thundering herd on a shared identity service
    - The AsyncClient is injectable (tests pass httpx.MockTransport); a client the
      provider created itself is closed by aclose()
"""

import asyncio
import logging
import random
from typing import Any

import httpx

from toolhost.core.auth_types import AuthFailure, Identity
from toolhost.core.errors import ErrorContext, ExternalServiceError

logger = logging.getLogger(__name__)


class HttpAuthProvider:
    """AuthProvider backed by the remote identity/secrets API."""

    def __init__(
        self,
        api_url: str,
        api_key: str | None = None,
        *,
        name: str = "http",
        client: httpx.AsyncClient | None = None,
        max_retries: int = 3,
        base_delay_ms: int = 200,
        max_delay_ms: int = 5_000,
        timeout_seconds: float = 10.0,
    ):
        self.name = name
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def verify(self, credential: str) -> Identity | AuthFailure:
        response = await self._request(
            "POST", "/public/auth/verify-user", json={"token": credential},
        )
        if response.is_error:
            logger.info(
                f"Identity service rejected token (HTTP {response.status_code})",
            )
            return AuthFailure(description="Invalid or expired token")
        data = _json_object(response)
        if data is None:
            logger.warning("Identity service returned a malformed verify response")
            return AuthFailure(
                description="Identity service returned a malformed response",
            )
        subject = data.get("uid") or data.get("sub")
        if not subject:
            return AuthFailure(description="Identity service returned no subject")
        return Identity(
            subject=str(subject),
            email=data.get("email"),
            name=data.get("name"),
            scopes=tuple(data.get("scopes") or ()),
            claims=data,
            credential=credential,
        )

    async def fetch_secrets(self, identity: Identity, scope: str) -> dict[str, str]:
        headers = {}
        if identity.credential:
            headers["Authorization"] = f"Bearer {identity.credential}"
        response = await self._request(
            "GET", f"/public/secrets/user/{scope}", headers=headers,
        )
        if response.is_error:
            logger.warning(
                f"Failed to fetch secrets for scope {scope} "
                f"(HTTP {response.status_code})",
            )
            return {}
        data = _json_object(response)
        secrets = data.get("secrets") if data is not None else None
        if not isinstance(secrets, dict):
            logger.warning(f"Malformed secrets response for scope {scope}")
            return {}
        return {str(key): str(value) for key, value in secrets.items()}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ─── Transport with retry ───────────────────────────────────

    async def _request(
        self, method: str, path: str, *, headers: dict | None = None, **kwargs: Any,
    ) -> httpx.Response:
        merged = dict(headers or {})
        if self._api_key:
            merged["x-api-key"] = self._api_key
        url = f"{self._api_url}{path}"
        context = ErrorContext(debug_info={"path": path})

        for attempt in range(self.max_retries + 1):
            try:
                response = await self._client.request(
                    method, url, headers=merged, **kwargs,
                )
            except httpx.TimeoutException:
                raise ExternalServiceError(
                    "Identity service timeout", "timeout", context=context,
                )
            except httpx.TransportError as e:
                await self._handle_transient_error(e, attempt, context)
                continue

            if response.status_code == 429:
                await self._handle_rate_limit(response, attempt, context)
                continue
            if response.status_code >= 500:
                await self._handle_transient_error(
                    f"HTTP {response.status_code}", attempt, context,
                )
                continue
            return response

        raise ExternalServiceError(
            "Retries exhausted", "connection_error", context=context,
        )

    async def _handle_rate_limit(
        self, response: httpx.Response, attempt: int, context: ErrorContext,
    ) -> None:
        retry_after_ms = _retry_after_ms(response)
        if attempt >= self.max_retries:
            raise ExternalServiceError(
                "Rate limit exceeded after retries",
                "rate_limit",
                retry_after_ms=retry_after_ms,
                context=context,
            )
        delay = retry_after_ms or self._backoff(attempt)
        logger.warning(
            f"Rate limit hit, retry after {delay}ms (attempt {attempt + 1})",
            extra={"attempt": attempt + 1},
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, error: Exception | str, attempt: int, context: ErrorContext,
    ) -> None:
        if attempt >= self.max_retries:
            raise ExternalServiceError(
                f"Transient failure after {self.max_retries} retries: {error}",
                "connection_error",
                context=context,
            )
        delay = self._backoff(attempt)
        logger.warning(
            f"Transient error, retry after {delay}ms: {error}",
            extra={"attempt": attempt + 1},
        )
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311


def _retry_after_ms(response: httpx.Response) -> int | None:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return int(float(value) * 1000)
    except ValueError:
        return None


def _json_object(response: httpx.Response) -> dict[str, Any] | None:
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
