"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - Missing configuration for the selected backend/provider fails at load time,
      never on the first request

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for every non-secret setting: in-memory sessions and no
      auth provider work out of the box
"""

from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

from toolhost.core.domain_types import SessionBackendKind


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore",
    )

    # Server
    server_name: str = "toolhost"
    server_version: str = "0.1.0"
    services_dir: str | None = None
    stateless: bool = False
    serialize_session_requests: bool = True

    # Sessions
    session_backend: SessionBackendKind = SessionBackendKind.MEMORY
    session_ttl_seconds: int = 86_400
    session_sweep_interval_seconds: int = 300

    # Database (required when SESSION_BACKEND=database)
    database_url: str | None = None
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_create_tables: bool = False

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str | None) -> str | None:
        """Hosted Postgres URLs use postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    # Auth
    auth_provider: Literal["none", "static", "http"] = "none"
    auth_api_url: str | None = None
    auth_api_key: str | None = None
    auth_project_id: str | None = None
    auth_static_tokens: dict[str, str] = {}
    auth_max_retries: int = 3
    auth_timeout_seconds: float = 10.0
    auth_base_delay_ms: int = 200
    auth_max_delay_ms: int = 5_000

    # Protected resource metadata (RFC 9728)
    public_url: str = "http://localhost:8000"
    authorization_servers: list[str] = []
    scopes_supported: list[str] = []
    resource_documentation: str | None = None
    resource_metadata_url: str | None = None

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @model_validator(mode="after")
    def check_selected_backends(self) -> "Settings":
        if self.session_backend is SessionBackendKind.DATABASE and not self.database_url:
            raise ValueError("DATABASE_URL is required when SESSION_BACKEND=database")
        if self.auth_provider == "http" and not self.auth_api_url:
            raise ValueError("AUTH_API_URL is required when AUTH_PROVIDER=http")
        if self.auth_provider == "static" and not self.auth_static_tokens:
            raise ValueError("AUTH_STATIC_TOKENS is required when AUTH_PROVIDER=static")
        return self

    @property
    def discovery_url(self) -> str:
        if self.resource_metadata_url:
            return self.resource_metadata_url
        return f"{self.public_url.rstrip('/')}/.well-known/oauth-protected-resource"


@lru_cache
def get_settings() -> Settings:
    return Settings()
