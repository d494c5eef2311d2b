"""Configuration management."""

import logging
from functools import cache

from pydantic import AliasChoices, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .consts import (
    DEFAULT_API_KEY_HEADER,
    DEFAULT_BASE_URL,
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    DISCOVERY_CACHE_TTL_SECONDS,
    LOGIN_URL_PATH,
    METADATA_URL_PATH,
    SERVER_NAME,
    SERVICE_DOCUMENT_URL_PATH,
    TOKEN_REFRESH_SKEW_SECONDS,
)
from .exceptions import ConfigError
from .models import Credentials


class Config(BaseSettings):
    """Configuration with computed vendor endpoints.

    Credentials are optional here; their absence is reported by
    ``credentials()`` when a token is first needed.
    """

    model_config = SettingsConfigDict(
        env_prefix="SMARTSEARCH_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        validation_alias=AliasChoices("SMARTSEARCH_BASE_URL", "SMARTSEARCH_BASE"),
        description="Base URL of the SmartSearch OpenAPI",
    )
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SMARTSEARCH_API_KEY"),
        description="Static vendor API key",
    )
    api_key_header: str = Field(
        default=DEFAULT_API_KEY_HEADER, description="Header carrying the API key"
    )
    username: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SMARTSEARCH_USERNAME", "SS_USER"),
        description="Service account username",
    )
    password: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SMARTSEARCH_PASSWORD", "SS_PASS"),
        description="Service account password",
        repr=False,
    )
    proxy_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SMARTSEARCH_PROXY_KEY", "PROXY_KEY"),
        description="Optional shared secret gating inbound proxy access",
        repr=False,
    )
    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(
        default=10000,
        gt=0,
        lt=65536,
        validation_alias=AliasChoices("SMARTSEARCH_PORT", "PORT"),
        description="Listen port",
    )
    log_level: str = Field(
        default="INFO",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
        description="Logging level",
    )
    timeout_seconds: int = Field(
        default=30, gt=0, le=300, description="Per-call upstream timeout in seconds"
    )
    token_skew_seconds: int = Field(
        default=TOKEN_REFRESH_SKEW_SECONDS,
        ge=0,
        description="Refresh the token this many seconds before it expires",
    )
    token_fallback_lifetime_seconds: int = Field(
        default=DEFAULT_TOKEN_LIFETIME_SECONDS,
        gt=0,
        description="Token lifetime assumed when the login response has no expiry",
    )
    discovery_enabled: bool = Field(
        default=True, description="Augment candidates from the vendor schema"
    )
    discovery_cache_ttl: int = Field(
        default=DISCOVERY_CACHE_TTL_SECONDS,
        ge=0,
        description="Seconds a discovery result is reused",
    )

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @computed_field
    @property
    def login_url(self) -> str:
        """URL for the credential login exchange."""
        return f"{self.base_url}{LOGIN_URL_PATH}"

    @computed_field
    @property
    def metadata_url(self) -> str:
        """URL for the OData ``$metadata`` schema document."""
        return f"{self.base_url}{METADATA_URL_PATH}"

    @computed_field
    @property
    def service_document_url(self) -> str:
        """URL for the JSON service document listing entity sets."""
        return f"{self.base_url}{SERVICE_DOCUMENT_URL_PATH}"

    def credentials(self) -> Credentials:
        """Return login credentials, or raise naming everything missing.

        Raises:
            ConfigError: If the base URL or any credential field is unset.
        """
        if not self.base_url:
            raise ConfigError(
                "SmartSearch base URL is not configured",
                suggestions=["Set SMARTSEARCH_BASE_URL"],
            )

        required = {
            "SMARTSEARCH_API_KEY": self.api_key,
            "SMARTSEARCH_USERNAME": self.username,
            "SMARTSEARCH_PASSWORD": self.password,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigError(
                "SmartSearch credentials are not configured",
                errors=[f"Missing setting: {name}" for name in missing],
                suggestions=[
                    "Set the missing environment variables and restart the proxy"
                ],
                context={"missing": missing},
            )

        return Credentials(
            api_key=self.api_key, username=self.username, password=self.password
        )


@cache
def get_config() -> Config:
    """Get a cached Config instance."""
    return Config()


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """Configure logging for the entire application."""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,  # Override any existing configuration
    )
    return logging.getLogger(SERVER_NAME)
