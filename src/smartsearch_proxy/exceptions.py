"""SmartSearch proxy custom exceptions.

Exception Design Principles:
1. Use these custom exceptions only when additional useful context can be provided
2. Handle exceptions as late as possible (the HTTP layer turns them into responses)
3. Split on domain of actionable information:
   - Recoverable by operator reconfiguration (ConfigError)
   - Recoverable by the vendor or on the next request (UpstreamAuthError)

A resource that no candidate path could serve is NOT an exception: the
resolver returns the last upstream response so callers see the vendor's own
error detail. Transport failures on resource candidates stay as httpx
exceptions and are recorded in the attempt trace.
"""


class ProxyError(Exception):
    """Base exception for all SmartSearch proxy errors.

    Provides rich context and actionable suggestions beyond standard exceptions.
    """

    def __init__(
        self,
        message: str,  # the error message
        *,
        errors: list[str] = None,  # detailed list of errors (if available)
        suggestions: list[str] = None,  # remedial actions
        context: dict = None,  # additional detailed context
    ):
        """Initialize ProxyError.

        Args:
            message: Primary error message for operators
            errors: List of specific error details
            suggestions: List of actionable suggestions for resolution
            context: Additional context information as key-value pairs
        """
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        self.suggestions = suggestions or []
        self.context = context or {}


class ConfigError(ProxyError):
    """Application configuration errors - recoverable by operator reconfiguration.

    Raised at the point of use, not at startup:
    - Missing API key, username or password
    - Missing vendor base URL

    Never retried; surfaced to the caller as a 500 with explanatory detail.
    """

    pass


class UpstreamAuthError(ProxyError):
    """Login exchange failures.

    Covers every way the vendor login can fail:
    - Non-success HTTP status (status and body are surfaced)
    - Success status but no access token in the payload (body echoed)
    - Transport failure reaching the login endpoint

    Not retried automatically; the next token request starts from scratch.
    """

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        upstream_body: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body
