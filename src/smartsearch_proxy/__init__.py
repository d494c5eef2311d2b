"""SmartSearch Proxy Package

A credential-caching HTTP proxy for the SmartSearch OData API that hides the
login exchange behind a refreshed bearer token and resolves each resource by
trying several candidate upstream paths in order.
"""

from .auth import TokenManager, parse_expiry
from .client import VendorClient, get_client
from .config import Config, get_config
from .consts import PACKAGE_VERSION
from .discovery import EntityDiscovery
from .exceptions import ConfigError, ProxyError, UpstreamAuthError
from .models import Attempt, Resolution
from .resolver import ResourceResolver
from .server import create_app

__version__ = PACKAGE_VERSION

__all__ = [
    "__version__",
    "get_config",
    "get_client",
    "create_app",
    "parse_expiry",
    "Config",
    "VendorClient",
    "TokenManager",
    "EntityDiscovery",
    "ResourceResolver",
    "Attempt",
    "Resolution",
    "ProxyError",
    "ConfigError",
    "UpstreamAuthError",
]
