"""Client configuration.

Environment variables are loaded from .env file and can be overridden.
All settings default to the production library backend.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal, get_args

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

Environment = Literal["development", "production", "test"]
ENVIRONMENTS: tuple[str, ...] = get_args(Environment)


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    # ==========================================================================
    # Backend
    # ==========================================================================

    environment: Environment = Field(
        default="production",
        alias="LIBRARY_API_ENVIRONMENT",
        description="Selected backend: 'development', 'production' or 'test'.",
    )
    api_url_override: str | None = Field(
        default=None,
        alias="LIBRARY_API_URL",
        description="Explicit base URL. Takes precedence over the environment table.",
    )
    api_url_development: str = Field(
        default="http://127.0.0.1:8000/api", alias="LIBRARY_API_URL_DEVELOPMENT"
    )
    api_url_production: str = Field(
        default="https://werev.co.in/laravel/backend/library-backend/public/api",
        alias="LIBRARY_API_URL_PRODUCTION",
    )
    api_url_test: str = Field(
        default="http://localhost:8000/api", alias="LIBRARY_API_URL_TEST"
    )
    request_timeout_seconds: float = Field(
        default=30.0, alias="LIBRARY_API_TIMEOUT_SECONDS", gt=0
    )

    # ==========================================================================
    # Response cache
    # ==========================================================================

    cache_ttl_seconds: float = Field(
        default=300.0, alias="LIBRARY_CACHE_TTL_SECONDS", ge=0
    )
    cacheable_endpoints: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["/course", "/books", "/resources"],
        alias="LIBRARY_CACHEABLE_ENDPOINTS",
    )

    # ==========================================================================
    # Session
    # ==========================================================================

    session_file: Path | None = Field(
        default=Path.home() / ".werev-library" / "session.json",
        alias="LIBRARY_SESSION_FILE",
    )
    session_teardown_delay_seconds: float = Field(
        default=0.1, alias="LIBRARY_SESSION_TEARDOWN_DELAY_SECONDS", ge=0
    )
    sign_in_path: str = Field(default="/signin", alias="LIBRARY_SIGN_IN_PATH")

    # ==========================================================================
    # Uploads and logging
    # ==========================================================================

    upload_chunk_size: int = Field(
        default=64 * 1024, alias="LIBRARY_UPLOAD_CHUNK_SIZE", gt=0
    )
    log_level: str = Field(default="INFO", alias="LIBRARY_LOG_LEVEL")

    # ==========================================================================
    # OpenTelemetry (optional)
    # ==========================================================================

    otel_enabled: bool = Field(default=False, alias="OTEL_ENABLED")
    otel_service_name: str = Field(
        default="werev-library-client", alias="OTEL_SERVICE_NAME"
    )
    otel_service_version: str = Field(default="1.0.0", alias="OTEL_SERVICE_VERSION")
    otel_exporter_otlp_endpoint: str = Field(
        default="http://localhost:4317", alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    otel_exporter_otlp_headers: str | None = Field(
        default=None, alias="OTEL_EXPORTER_OTLP_HEADERS"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("cacheable_endpoints", mode="before")
    @classmethod
    def parse_cacheable_endpoints(cls, value: Any) -> list[str]:
        """Parse a comma-separated endpoint allow-list."""
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return list(value) if value else []

    @field_validator("api_url_override", mode="before")
    @classmethod
    def blank_override_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def environment_urls(self) -> dict[str, str]:
        return {
            "development": self.api_url_development,
            "production": self.api_url_production,
            "test": self.api_url_test,
        }


class ApiConfig:
    """Resolves the active backend base URL.

    The override wins over the environment table. Switching environments only
    affects requests built after the switch.
    """

    def __init__(self, settings: Settings) -> None:
        self._override = settings.api_url_override
        self._urls = settings.environment_urls()
        self._environment: str = settings.environment

    @property
    def current_environment(self) -> str:
        return self._environment

    def get_base_url(self) -> str:
        if self._override:
            return self._override.rstrip("/")
        return self._urls[self._environment].rstrip("/")

    def set_environment(self, environment: str) -> str:
        """Select a named environment and return the resulting base URL."""
        if environment not in self._urls:
            raise ValueError(
                f"Unknown environment '{environment}'. "
                f"Expected one of: {', '.join(ENVIRONMENTS)}."
            )
        self._environment = environment
        return self.get_base_url()

    def is_development(self) -> bool:
        return self._environment == "development"

    def is_production(self) -> bool:
        return self._environment == "production"

    def is_test(self) -> bool:
        return self._environment == "test"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


@lru_cache
def get_api_config() -> ApiConfig:
    """Return the process-wide base URL resolver."""
    return ApiConfig(get_settings())


def get_base_url() -> str:
    return get_api_config().get_base_url()


def set_environment(environment: str) -> str:
    return get_api_config().set_environment(environment)
