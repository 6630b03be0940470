"""Error Hierarchy — typed, categorized exceptions for every toolhost failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Registration/configuration errors are fatal at startup; the server never accepts traffic
    - Per-call errors (session, configuration) carry an HTTP status and a JSON-RPC code
    - to_response() produces REST envelope; to_jsonrpc_error() produces JSON-RPC error object
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with ToolhostError base: FastAPI global handler catches all
    - Expected per-call failures (bad input, missing credential) are NOT exceptions —
      they travel as typed values (ValidationResult, AuthChallenge, CallOutcome)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    REGISTRATION = "registration"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    SESSION = "session"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"


class JsonRpcCode(int, Enum):
    """JSON-RPC 2.0 error codes used on the wire."""
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    BAD_SESSION = -32000
    SESSION_NOT_FOUND = -32001
    MISSING_CONFIGURATION = -32002
    AUTHENTICATION_REQUIRED = -32003


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: str | None = None
    capability: str | None = None
    service: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class ToolhostError(Exception):
    """Base exception for all toolhost errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
        jsonrpc_code: JsonRpcCode = JsonRpcCode.INTERNAL_ERROR,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status
        self.jsonrpc_code = jsonrpc_code

    def detail(self) -> dict[str, Any]:
        """Structured, client-safe detail. Subclasses extend."""
        return {}

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "session_id": self.context.session_id,
                    "capability": self.context.capability,
                },
                **({"detail": self.detail()} if self.detail() else {}),
            }
        }

    def to_jsonrpc_error(self) -> dict:
        """Convert to a JSON-RPC error object (the `error` member of a response)."""
        return {
            "code": self.jsonrpc_code.value,
            "message": self.message,
            "data": {
                "kind": self.category.value,
                "code": self.code,
                **self.detail(),
            },
        }


# ─── Registration Errors (fatal at startup) ─────────────────────

class RegistrationError(ToolhostError):
    """Service registration failed — the server must not start."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "REGISTRATION_ERROR", ErrorCategory.REGISTRATION,
            ErrorSeverity.CRITICAL, context, 500,
        )


class DuplicateCapabilityError(RegistrationError):
    """Two capabilities resolve to the same externally visible name."""
    def __init__(
        self, kind: str, name: str, first: str, second: str,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Duplicate {kind} '{name}': declared by {first} and {second}",
            context,
        )
        self.code = "DUPLICATE_CAPABILITY"
        self.kind = kind
        self.name = name


class InvalidConstraintError(RegistrationError):
    """A field constraint is malformed (contradictory bounds, bad pattern...)."""
    def __init__(
        self, owner: str, field_name: str, reason: str,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Invalid constraint on {owner}.{field_name}: {reason}", context,
        )
        self.code = "INVALID_CONSTRAINT"
        self.field_name = field_name


# ─── Per-call Errors (400-level) ────────────────────────────────

class MissingConfigurationError(ToolhostError):
    """Required scoped secrets are absent for the current call."""
    def __init__(
        self, missing_keys: list[str], reason: str = "missing_keys",
        context: ErrorContext | None = None,
    ):
        if reason == "scope_not_configured":
            message = (
                "Secret scope is not configured for this capability; "
                f"required keys: {', '.join(missing_keys)}"
            )
        else:
            message = f"Missing required configuration: {', '.join(missing_keys)}"
        super().__init__(
            message, "MISSING_CONFIGURATION", ErrorCategory.CONFIGURATION,
            ErrorSeverity.ERROR, context, 400, JsonRpcCode.MISSING_CONFIGURATION,
        )
        self.missing_keys = missing_keys
        self.reason = reason

    def detail(self) -> dict[str, Any]:
        return {"missingKeys": list(self.missing_keys), "reason": self.reason}


class SecretScopeError(ToolhostError):
    """Secret read outside any secret scope — a usage error."""
    def __init__(self, key: str, context: ErrorContext | None = None):
        super().__init__(
            f"get_secret('{key}') called outside of a secret scope. "
            "Declare a scope key on @authenticated(..., project_id=...) "
            "for this capability.",
            "SECRET_SCOPE_MISSING", ErrorCategory.CONFIGURATION,
            ErrorSeverity.ERROR, context, 500,
        )
        self.key = key


class BadSessionRequestError(ToolhostError):
    """Request carries no session id and is not an initialize request."""
    def __init__(self, message: str | None = None, context: ErrorContext | None = None):
        super().__init__(
            message or "Bad Request: no session id and not an initialize request",
            "BAD_SESSION_REQUEST", ErrorCategory.SESSION,
            ErrorSeverity.WARNING, context, 400, JsonRpcCode.BAD_SESSION,
        )


class SessionNotFoundError(ToolhostError):
    """Session id unknown in memory and in the persistence backend."""
    def __init__(self, session_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.session_id = session_id
        super().__init__(
            "Session not found", "SESSION_NOT_FOUND", ErrorCategory.SESSION,
            ErrorSeverity.WARNING, ctx, 404, JsonRpcCode.SESSION_NOT_FOUND,
        )


class MethodNotAllowedError(ToolhostError):
    """HTTP verb not supported in the current server mode."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "METHOD_NOT_ALLOWED", ErrorCategory.SESSION,
            ErrorSeverity.WARNING, context, 405, JsonRpcCode.BAD_SESSION,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(ToolhostError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class ExternalServiceError(ToolhostError):
    """Remote identity/secrets service call failed."""
    def __init__(
        self,
        message: str,
        service_error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Identity service error ({service_error_type}): {message}",
            "EXTERNAL_SERVICE_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.service_error_type = service_error_type
