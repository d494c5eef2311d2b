"""Protocol definitions for dependency injection and interface contracts."""

from typing import Protocol


class TokenProvider(Protocol):
    """Protocol for bearer token providers."""

    async def get_valid_token(self) -> str:
        """Get a valid bearer token.

        Returns:
            Valid bearer token string.

        Raises:
            ConfigError: If credentials are not configured.
            UpstreamAuthError: If the login exchange fails.
        """
        ...


class EntityDiscoverer(Protocol):
    """Protocol for best-effort upstream entity-set discovery."""

    async def discover(self, resource: str) -> list[str]:
        """Return discovered entity-set names matching a logical resource.

        Never raises; returns an empty list when nothing can be discovered.
        """
        ...
