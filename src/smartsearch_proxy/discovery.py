"""Best-effort discovery of upstream entity-set names with caching."""

import logging
import re
import time
from collections.abc import Callable, Iterable
from typing import Any
from xml.etree import ElementTree

from .client import VendorClient
from .config import Config
from .consts import DISCOVERY_KEYWORDS
from .models import UpstreamResponse
from .protocols import TokenProvider
from .utils import matches_keywords

logger = logging.getLogger("smartsearch-proxy.discovery")

_ENTITY_SET_RE = re.compile(r"<(?:\w+:)?EntitySet\b[^>]*?\bName\s*=\s*[\"']([^\"']+)[\"']")


def extract_entity_sets_from_metadata(xml: str) -> list[str]:
    """Extract ``EntitySet`` names from an OData ``$metadata`` document.

    Well-formed documents are parsed as XML, so comments and CDATA are
    ignored. Documents that fail to parse are scanned textually, which still
    yields names from partially broken metadata.
    """
    try:
        root = ElementTree.fromstring(xml)
    except (ElementTree.ParseError, ValueError):
        logger.debug("Unparseable $metadata, falling back to text scan")
        return _unique(_ENTITY_SET_RE.findall(xml))

    names = [
        element.get("Name", "")
        for element in root.iter()
        if isinstance(element.tag, str)
        and element.tag.rpartition("}")[2] == "EntitySet"
    ]
    return _unique(names)


def extract_entity_sets_from_service_document(document: Any) -> list[str]:
    """Extract entity-set names from a JSON service document.

    Understands the OData v4 layout (``{"value": [{"name", "url"}]}``) and the
    v2 layout (``{"d": {"EntitySets": [...]}}``). Anything else yields nothing.
    """
    if not isinstance(document, dict):
        return []

    names: list[str] = []
    entries = document.get("value")
    for entry in entries if isinstance(entries, list) else []:
        if isinstance(entry, dict):
            if entry.get("kind", "EntitySet") != "EntitySet":
                continue
            name = entry.get("url") or entry.get("name")
            if isinstance(name, str) and name:
                names.append(name)
        elif isinstance(entry, str):
            names.append(entry)

    legacy = document.get("d")
    if isinstance(legacy, dict):
        entity_sets = legacy.get("EntitySets")
        if isinstance(entity_sets, list):
            names.extend(n for n in entity_sets if isinstance(n, str))

    return _unique(names)


def _unique(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(name.strip() for name in names if name.strip()))


class EntityDiscovery:
    """Entity-set discovery from the vendor's schema documents.

    Requires a client and a token provider. Results are cached for
    ``config.discovery_cache_ttl`` seconds; concurrent refreshes may race and
    the last writer wins.
    """

    def __init__(
        self,
        client: VendorClient,
        token_provider: TokenProvider,
        config: Config | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize EntityDiscovery.

        Args:
            client: VendorClient instance for API calls.
            token_provider: Source of bearer tokens.
            config: Config instance. If None, uses the client's.
            clock: Monotonic seconds, used for cache expiry.
        """
        self.client = client
        self.token_provider = token_provider
        self.config = config or client.config
        self._clock = clock
        self._cache: dict[str, tuple[float, list[str]]] = {}

    async def discover(self, resource: str) -> list[str]:
        """Return discovered entity-set names matching a logical resource.

        Only resources with configured keyword patterns qualify. Never raises.
        """
        keywords = DISCOVERY_KEYWORDS.get(resource)
        if not keywords:
            return []

        names = await self.entity_sets()
        matched = [name for name in names if matches_keywords(name, keywords)]
        logger.debug(f"Discovered {len(matched)} candidates for {resource}: {matched}")
        return matched

    async def entity_sets(self) -> list[str]:
        """All entity-set names the vendor advertises, metadata first.

        Returns an empty list when neither document can be fetched or parsed.
        """
        cache_key = "entity_sets"

        cached = self._cache.get(cache_key)
        if cached and self._clock() - cached[0] < self.config.discovery_cache_ttl:
            logger.debug("Using cached entity sets")
            return cached[1]

        try:
            token = await self.token_provider.get_valid_token()
        except Exception as e:
            logger.warning(f"Discovery skipped, no token: {e}")
            return []

        from_metadata = await self._fetch_names(
            self.config.metadata_url, token, "application/xml", self._parse_metadata
        )
        from_service = await self._fetch_names(
            self.config.service_document_url,
            token,
            "application/json",
            self._parse_service_document,
        )

        names = _unique([*from_metadata, *from_service])
        logger.info(f"Discovered {len(names)} entity sets")
        self._cache[cache_key] = (self._clock(), names)
        return names

    async def get_metadata(self) -> UpstreamResponse:
        """Fetch the raw ``$metadata`` document for operator debugging.

        Raises:
            ConfigError: From auth if there is a config issue.
            UpstreamAuthError: From auth if login fails.
            httpx.RequestError: For network errors.
        """
        token = await self.token_provider.get_valid_token()
        return await self.client.get(
            self.config.metadata_url, token=token, accept="application/xml"
        )

    def clear_cache(self) -> None:
        """Clear all cached data."""
        self._cache.clear()

    async def _fetch_names(
        self,
        url: str,
        token: str,
        accept: str,
        parse: Callable[[UpstreamResponse], list[str]],
    ) -> list[str]:
        try:
            response = await self.client.get(url, token=token, accept=accept)
            if not response.ok:
                logger.debug(f"Discovery document {url} returned {response.status_code}")
                return []
            return parse(response)
        except Exception as e:
            logger.warning(f"Discovery from {url} failed: {e}")
            return []

    @staticmethod
    def _parse_metadata(response: UpstreamResponse) -> list[str]:
        return extract_entity_sets_from_metadata(
            response.body.decode("utf-8", errors="replace")
        )

    @staticmethod
    def _parse_service_document(response: UpstreamResponse) -> list[str]:
        return extract_entity_sets_from_service_document(response.json_body())
