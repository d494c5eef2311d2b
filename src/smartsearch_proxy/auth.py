"""Bearer token management with early refresh."""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from .client import VendorClient
from .config import Config
from .consts import EXPIRY_FIELDS, TOKEN_FIELDS
from .exceptions import ProxyError, UpstreamAuthError
from .models import TokenStatus
from .utils import mask_token

logger = logging.getLogger("smartsearch-proxy.auth")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def parse_expiry(value: Any, now: datetime, fallback_seconds: int) -> datetime:
    """Turn a login response expiry indicator into an absolute UTC instant.

    Args:
        value: Relative lifetime in seconds (int, float or numeric string), an
            absolute timestamp (ISO 8601 or RFC 2822), or None.
        now: Current time, used as the origin for relative lifetimes.
        fallback_seconds: Lifetime assumed when value is absent or unparseable.

    Returns:
        Timezone-aware expiry instant. Naive timestamps are taken as UTC.
    """
    fallback = now + timedelta(seconds=fallback_seconds)

    if value is None or isinstance(value, bool):
        return fallback

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return fallback
        try:
            value = float(text)
        except ValueError:
            return _parse_timestamp(text, fallback)

    if not isinstance(value, (int, float)):
        return fallback

    try:
        return now + timedelta(seconds=value)
    except (OverflowError, ValueError):
        # inf, nan or out of datetime range
        return fallback


def _parse_timestamp(text: str, fallback: datetime) -> datetime:
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError):
            logger.warning(f"Unparseable token expiry {text!r}, using fallback")
            return fallback

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _first_field(payload: dict[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        if payload.get(name) not in (None, ""):
            return payload[name]
    return None


class TokenManager:
    """Process-wide bearer token cache.

    Responsibilities:
    - Serve the cached token while it is outside the refresh margin
    - Exchange configured credentials for a new token otherwise
    - Share one in-flight login between concurrent callers
    """

    def __init__(
        self,
        config: Config,
        client: VendorClient,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize TokenManager.

        Args:
            config: Config instance with credentials and token settings.
            client: Vendor client used for the login exchange only.
            clock: Returns the current aware UTC time.
        """
        self.config = config
        self.client = client
        self._clock = clock
        self._access_token: str | None = None
        self._token_expires_at: datetime | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def expires_at(self) -> datetime | None:
        return self._token_expires_at

    async def get_valid_token(self) -> str:
        """Get a valid bearer token, logging in when needed.

        Returns:
            Valid bearer token string.

        Raises:
            ConfigError: If credentials are not configured.
            UpstreamAuthError: If the login exchange fails.
        """
        if self._needs_refresh():
            await self._refresh_shared()

        if not self._access_token:
            raise ProxyError("No valid token available")

        return self._access_token

    def invalidate(self) -> None:
        """Drop the cached token so the next call logs in again."""
        self._access_token = None
        self._token_expires_at = None

    def status(self) -> TokenStatus:
        """Masked view of the cached token for diagnostics."""
        if not self._access_token or self._token_expires_at is None:
            return TokenStatus(has_token=False)

        remaining = (self._token_expires_at - self._clock()).total_seconds()
        return TokenStatus(
            has_token=True,
            token_preview=mask_token(self._access_token),
            expires_at=self._token_expires_at,
            seconds_remaining=max(int(remaining), 0),
        )

    def _needs_refresh(self) -> bool:
        """Check if token is missing or inside the refresh margin."""
        if self._token_expires_at is None or self._access_token is None:
            return True

        refresh_time = self._token_expires_at - timedelta(
            seconds=self.config.token_skew_seconds
        )
        return self._clock() >= refresh_time

    async def _refresh_shared(self) -> None:
        """Join the in-flight refresh, or start one."""
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._refresh_token())
            self._refresh_task = task
            task.add_done_callback(self._clear_refresh_task)
        await asyncio.shield(task)

    def _clear_refresh_task(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # Retrieve the exception so an unawaited failure is not reported twice
            task.exception()

    async def _refresh_token(self) -> None:
        """Exchange credentials for a new token and replace the cache."""
        logger.debug("Refreshing bearer token")

        credentials = self.config.credentials()
        try:
            response = await self.client.login(credentials)
        except httpx.RequestError as e:
            logger.error(f"Login request failed: {e}")
            raise UpstreamAuthError(
                "Could not reach the SmartSearch login endpoint",
                errors=[str(e)],
                suggestions=["Check SMARTSEARCH_BASE_URL and network access"],
                context={"login_url": self.config.login_url},
            ) from e

        if not response.ok:
            body = response.body.decode("utf-8", errors="replace")
            logger.error(f"Login rejected with status {response.status_code}")
            raise UpstreamAuthError(
                f"SmartSearch login failed ({response.status_code})",
                errors=[body] if body else [],
                suggestions=[
                    "Verify SMARTSEARCH_USERNAME and SMARTSEARCH_PASSWORD",
                    "Verify SMARTSEARCH_API_KEY",
                ],
                context={"login_url": self.config.login_url},
                upstream_status=response.status_code,
                upstream_body=body,
            )

        body = response.body.decode("utf-8", errors="replace")
        try:
            payload = response.json_body()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            payload = {}
        token = _first_field(payload, TOKEN_FIELDS)
        if not token:
            logger.error("Missing access token in login response")
            raise UpstreamAuthError(
                "SmartSearch login returned no access token",
                errors=[f"Expected one of {', '.join(TOKEN_FIELDS)}", body],
                suggestions=["The login response format may have changed"],
                context={"login_url": self.config.login_url},
                upstream_body=body,
            )

        now = self._clock()
        expires_at = parse_expiry(
            _first_field(payload, EXPIRY_FIELDS),
            now,
            self.config.token_fallback_lifetime_seconds,
        )

        # Replace both together so readers never see a mixed state
        self._access_token, self._token_expires_at = str(token), expires_at
        logger.info(f"Token refreshed, expires at {expires_at.isoformat()}")
