"""SmartSearch client — handles low-level API calls."""

import logging
from collections.abc import Sequence
from functools import cache

import httpx

from .config import Config, get_config
from .consts import USER_AGENT
from .models import Credentials, UpstreamResponse

logger = logging.getLogger("smartsearch-proxy.client")

QueryParams = Sequence[tuple[str, str]]


def _to_upstream(response: httpx.Response) -> UpstreamResponse:
    return UpstreamResponse(
        status_code=response.status_code,
        content_type=response.headers.get("content-type", "application/json"),
        body=response.content,
        url=str(response.url),
    )


class VendorClient:
    """SmartSearch API client.

    Responsibilities:
    - Own the outbound HTTP connection pool and its per-call timeout
    - Perform the credential login exchange
    - Issue authenticated GETs and return raw replies without raising on
      non-2xx statuses, so callers can relay vendor errors verbatim
    """

    def __init__(
        self,
        config: Config | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize VendorClient.

        Args:
            config: Config instance. If None, uses get_config().
            http_client: HTTP client. If None, creates a new one.
        """
        self.config = config or get_config()

        self.http_client = http_client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=self.config.timeout_seconds,
            follow_redirects=True,
        )

        logger.info(f"SmartSearch client created for {self.config.base_url}")

    async def __aenter__(self) -> "VendorClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self.http_client.aclose()

    async def login(self, credentials: Credentials) -> UpstreamResponse:
        """POST credentials to the login endpoint.

        Args:
            credentials: Vendor login credentials.

        Returns:
            Raw login reply, whatever its status.

        Raises:
            httpx.RequestError: For network errors, timeouts, DNS failures.
        """
        logger.debug(f"POST {self.config.login_url}")
        response = await self.http_client.post(
            self.config.login_url,
            json={"username": credentials.username, "password": credentials.password},
            headers={
                self.config.api_key_header: credentials.api_key,
                "Accept": "application/json",
            },
        )
        logger.debug(f"POST {self.config.login_url} returned {response.status_code}")
        return _to_upstream(response)

    async def get(
        self,
        url: str,
        *,
        token: str,
        params: QueryParams | None = None,
        accept: str = "application/json",
    ) -> UpstreamResponse:
        """GET a vendor URL with the bearer token and API key attached.

        Args:
            url: Complete URL to fetch.
            token: Bearer token from the token provider.
            params: Query parameters, attached in order.
            accept: Accept header value.

        Returns:
            Raw reply, whatever its status.

        Raises:
            httpx.RequestError: For network errors, timeouts, DNS failures.
        """
        headers = {"Authorization": f"Bearer {token}", "Accept": accept}
        if self.config.api_key:
            headers[self.config.api_key_header] = self.config.api_key

        logger.debug(f"GET {url}")
        response = await self.http_client.get(
            url, headers=headers, params=list(params) if params else None
        )
        logger.debug(f"GET {url} returned {response.status_code}")
        return _to_upstream(response)


@cache
def get_client() -> VendorClient:
    """Get a cached VendorClient instance with default configuration.

    Raises:
        May propagate exceptions from Config() initialization via get_config().
    """
    return VendorClient()
