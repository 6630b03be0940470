"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - SessionId wraps an opaque string token — never parsed, only compared
    - All valid kinds/states encoded as Enums — no raw string matching
    - MetaKey values are the only attribute kinds ever written to the registry

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON without custom encoders (wire format is JSON-RPC)
"""

from enum import Enum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

SessionId = NewType("SessionId", str)
CapabilityName = NewType("CapabilityName", str)     # tool/prompt name or resource URI
ProviderName = NewType("ProviderName", str)


# ─── Enums ───────────────────────────────────────────────────────

class CapabilityKind(str, Enum):
    """Externally callable unit kinds — one routing namespace each."""
    TOOL = "tool"
    PROMPT = "prompt"
    RESOURCE = "resource"


class MetaKey(str, Enum):
    """Attribute kinds stored in the metadata registry."""
    SERVICE = "service"
    CAPABILITY = "capability"
    AUTH = "auth"
    SECURITY = "security"
    UI_APP = "ui_app"
    RENDER = "render"
    DEPRECATED = "deprecated"
    ELICITATION = "elicitation"
    REQUIRED_KEYS = "required_keys"


class SemanticType(str, Enum):
    """Field types understood by the schema deriver (JSON Schema names)."""
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class RenderFormat(str, Enum):
    """How a tool result is turned into text content."""
    MARKDOWN = "markdown"
    TEXT = "text"
    JSON = "json"


class AuthErrorCode(str, Enum):
    """Auth challenge codes: the RFC 6750 error codes plus "no credential sent"."""
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_TOKEN = "invalid_token"
    INSUFFICIENT_SCOPE = "insufficient_scope"


class SessionBackendKind(str, Enum):
    """Deployment choice for session data persistence."""
    MEMORY = "memory"
    DATABASE = "database"


# ─── Protocol Constants ─────────────────────────────────────────

SESSION_HEADER = "Mcp-Session-Id"
LATEST_PROTOCOL_VERSION = "2025-06-18"
DEFAULT_PROVIDER: ProviderName = ProviderName("default")
UI_RESOURCE_MIME_TYPE = "text/html;profile=mcp-app"
