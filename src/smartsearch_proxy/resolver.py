"""Multi-candidate resource resolution with sequential fallback."""

import json
import logging
from collections.abc import Iterable, Mapping, Sequence

import httpx

from .client import QueryParams, VendorClient
from .config import Config
from .consts import ALLOWED_RESOURCES, NAMESPACE_PREFIXES, PATH_ALIASES
from .models import Attempt, Resolution
from .protocols import EntityDiscoverer, TokenProvider
from .utils import is_dot_segment, join_path

logger = logging.getLogger("smartsearch-proxy.resolver")


def static_candidates(
    resource: str,
    aliases: Mapping[str, Sequence[str]] = PATH_ALIASES,
    namespaces: Sequence[str] = NAMESPACE_PREFIXES,
) -> list[str]:
    """Ordered static path templates for a resource.

    The resource name comes first, then its known aliases, then the resource
    under each namespace prefix.
    """
    templates = [resource, *aliases.get(resource, ())]
    templates.extend(f"{prefix}/{resource}" for prefix in namespaces)
    return templates


def dedupe_candidates(
    templates: Iterable[str], entity_id: str | None = None
) -> list[str]:
    """Resolve templates to paths, keeping the first occurrence of each."""
    return list(dict.fromkeys(join_path(template, entity_id) for template in templates))


def _json_body(payload: dict) -> bytes:
    return json.dumps(payload).encode("utf-8")


class ResourceResolver:
    """Resolve a logical resource by trying candidate upstream paths in order.

    Static candidates always precede discovered ones. Attempts are sequential;
    the first 2xx wins. When every candidate misses, the last upstream reply is
    returned unchanged.
    """

    def __init__(
        self,
        client: VendorClient,
        token_provider: TokenProvider,
        discovery: EntityDiscoverer | None = None,
        config: Config | None = None,
        allowed: Iterable[str] = ALLOWED_RESOURCES,
        aliases: Mapping[str, Sequence[str]] = PATH_ALIASES,
        namespaces: Sequence[str] = NAMESPACE_PREFIXES,
    ):
        """Initialize ResourceResolver.

        Args:
            client: VendorClient instance for API calls.
            token_provider: Source of bearer tokens.
            discovery: Optional entity discovery; None disables it.
            config: Config instance. If None, uses the client's.
            allowed: Resource names that may be proxied.
            aliases: Known alternative paths per resource.
            namespaces: Prefixes tried after the aliases.
        """
        self.client = client
        self.token_provider = token_provider
        self.config = config or client.config
        self.discovery = discovery if self.config.discovery_enabled else None
        self.allowed = frozenset(allowed)
        self.aliases = aliases
        self.namespaces = namespaces

    def is_permitted(self, resource: str, entity_id: str | None = None) -> bool:
        """Allow-listed resource, with an id that cannot climb out of it."""
        if entity_id is not None and is_dot_segment(entity_id):
            return False
        return resource in self.allowed

    async def candidates(self, resource: str, entity_id: str | None = None) -> list[str]:
        """Deduplicated candidate paths for a resource, in attempt order."""
        templates = static_candidates(resource, self.aliases, self.namespaces)
        if self.discovery is not None:
            templates.extend(await self._discover(resource))
        return dedupe_candidates(templates, entity_id)

    async def resolve(
        self,
        resource: str,
        entity_id: str | None = None,
        params: QueryParams | None = None,
    ) -> Resolution:
        """Fetch a resource, falling back across candidate paths.

        Args:
            resource: Logical resource name, e.g. ``applicants``.
            entity_id: Optional entity id appended as the last path segment.
            params: Query parameters forwarded identically to every candidate.

        Returns:
            Resolution carrying the winning or last upstream reply and the
            attempt trace.

        Raises:
            ConfigError: From auth if credentials are not configured.
            UpstreamAuthError: From auth if the login exchange fails.
        """
        if not self.is_permitted(resource, entity_id):
            logger.warning(
                f"Rejected resource not in allow-list: {resource!r} id={entity_id!r}"
            )
            return Resolution(
                resource=resource,
                status_code=403,
                body=_json_body(
                    {"error": "Resource not permitted", "resource": resource}
                ),
                permitted=False,
            )

        token = await self.token_provider.get_valid_token()
        paths = await self.candidates(resource, entity_id)
        params = list(params) if params else None

        attempts: list[Attempt] = []
        last = None
        for path in paths:
            url = f"{self.config.base_url}{path}"
            try:
                response = await self.client.get(url, token=token, params=params)
            except httpx.RequestError as e:
                logger.warning(f"Transport error for {url}: {e}")
                attempts.append(Attempt(path=path, url=url, error=str(e)))
                continue

            attempts.append(
                Attempt(path=path, url=response.url, status_code=response.status_code)
            )
            last = (path, response)
            if response.ok:
                logger.info(
                    f"Resolved {resource} via {path} after {len(attempts)} attempt(s)"
                )
                return Resolution(
                    resource=resource,
                    status_code=response.status_code,
                    content_type=response.content_type,
                    body=response.body,
                    url=response.url,
                    path=path,
                    attempts=attempts,
                    matched=True,
                )

        if last is None:
            logger.error(f"No upstream response for {resource} ({len(attempts)} tried)")
            return Resolution(
                resource=resource,
                status_code=502,
                body=_json_body(
                    {
                        "error": "No upstream matched",
                        "resource": resource,
                        "attempts": [str(attempt) for attempt in attempts],
                    }
                ),
                url=attempts[-1].url if attempts else None,
                path=attempts[-1].path if attempts else None,
                attempts=attempts,
            )

        path, response = last
        logger.info(
            f"No candidate matched {resource}; relaying {response.status_code} from {path}"
        )
        return Resolution(
            resource=resource,
            status_code=response.status_code,
            content_type=response.content_type,
            body=response.body,
            url=response.url,
            path=path,
            attempts=attempts,
        )

    async def _discover(self, resource: str) -> list[str]:
        try:
            return list(await self.discovery.discover(resource))
        except Exception as e:
            logger.warning(f"Discovery failed for {resource}: {e}")
            return []
