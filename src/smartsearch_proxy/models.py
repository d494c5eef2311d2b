import json
from datetime import datetime
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, computed_field

from .exceptions import ProxyError, UpstreamAuthError

# =============================================================================
# UNIFIED RESPONSE MODEL
# =============================================================================
# JSON payload for errors and diagnostics produced by the proxy itself


class Response(BaseModel):
    """Unified response type for proxy-generated JSON payloads."""

    status: Literal["success", "error"] = Field(
        ..., description="Response status indicating outcome"
    )
    message: str = Field(..., description="Human-readable summary of the response")
    data: Any | None = Field(None, description="Response payload")
    errors: list[str] = Field(
        default_factory=list, description="List of error messages"
    )
    suggestions: list[str] = Field(
        default_factory=list, description="Actionable suggestions for the operator"
    )
    metadata: dict[str, Any] | None = Field(
        None, description="Additional context and domain-specific information"
    )

    @classmethod
    def from_error(cls, error: Exception) -> "Response":
        """Create Response from any Exception, with potentially helpful info for recovery.

        Args:
            error: Any Exception instance

        Returns:
            Response object with error details
        """
        if isinstance(error, ProxyError):
            metadata = {**error.context, "exception_type": type(error).__name__}
            if isinstance(error, UpstreamAuthError) and error.upstream_status:
                metadata["upstream_status"] = error.upstream_status
            return cls(
                status="error",
                message=error.message,
                errors=error.errors,
                suggestions=error.suggestions,
                metadata=metadata,
            )
        elif isinstance(error, httpx.RequestError):
            metadata = {"exception_type": type(error).__name__}
            try:
                metadata["url"] = str(error.request.url)
            except RuntimeError:
                # request was never attached to the exception
                pass

            return cls(
                status="error",
                message=f"Network error: {str(error)}",
                errors=[str(error)],
                suggestions=[
                    "Verify the SmartSearch base URL is correct",
                    "Try again - this may be a temporary network issue",
                ],
                metadata=metadata,
            )
        else:
            return cls(
                status="error",
                message=f"Unexpected error: {str(error)}",
                errors=[str(error)],
                suggestions=["Check server logs for detailed information"],
                metadata={"exception_type": type(error).__name__},
            )


# =============================================================================
# CREDENTIALS AND TOKEN STATE
# =============================================================================


class Credentials(BaseModel):
    """Vendor login credentials, loaded once from configuration."""

    model_config = ConfigDict(frozen=True)

    api_key: str = Field(repr=False)
    username: str
    password: str = Field(repr=False)


class TokenStatus(BaseModel):
    """Diagnostic view of the cached token. Never carries the full token."""

    has_token: bool
    token_preview: str | None = None
    expires_at: datetime | None = None
    seconds_remaining: int | None = None


# =============================================================================
# RESOLUTION MODELS
# =============================================================================


class UpstreamResponse(BaseModel):
    """Raw upstream reply relayed to the caller unchanged."""

    status_code: int
    content_type: str = "application/json"
    body: bytes = b""
    url: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json_body(self) -> Any:
        """Decode the body as JSON; raises ValueError when it is not JSON."""
        return json.loads(self.body)


class Attempt(BaseModel):
    """One candidate URL tried during a resolution."""

    path: str
    url: str
    status_code: int | None = Field(
        None, description="HTTP status, or None on transport failure"
    )
    error: str | None = None

    def __str__(self) -> str:
        status = self.status_code if self.status_code is not None else "ERR"
        return f"{status}@{self.path}"


class Resolution(BaseModel):
    """Outcome of resolving one logical resource against candidate paths."""

    resource: str
    status_code: int
    content_type: str = "application/json"
    body: bytes = b""
    url: str | None = Field(None, description="Winning or final upstream URL")
    path: str | None = Field(None, description="Winning or final candidate path")
    attempts: list[Attempt] = Field(default_factory=list)
    matched: bool = False
    permitted: bool = True

    @computed_field
    @property
    def trace(self) -> str:
        """Attempt sequence formatted as ``status@path`` joined by ``|``."""
        return "|".join(str(attempt) for attempt in self.attempts)
