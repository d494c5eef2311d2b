"""High-value constants for the SmartSearch proxy package."""

# Package metadata
PACKAGE_VERSION = "0.1.0"
SERVER_NAME = "smartsearch-proxy"
USER_AGENT = f"{SERVER_NAME}/{PACKAGE_VERSION}"

# External API contract consts
DEFAULT_BASE_URL = "https://api2.smartsearchonline.com/openapi/v1"
LOGIN_URL_PATH = "/auth/login"
METADATA_URL_PATH = "/$metadata"
SERVICE_DOCUMENT_URL_PATH = "/"
DEFAULT_API_KEY_HEADER = "x-api-key"

# Field names tried, in order, when reading the login response
TOKEN_FIELDS = ("access_token", "accessToken", "token")
EXPIRY_FIELDS = (
    "expires_in",
    "expiresIn",
    "expires_at",
    "expiresAt",
    "expiration",
    "expires",
)

# Business logic consts
TOKEN_REFRESH_SKEW_SECONDS = 120  # refresh 2min early
DEFAULT_TOKEN_LIFETIME_SECONDS = 1800  # 30 minutes
DISCOVERY_CACHE_TTL_SECONDS = 600

# Resources that may be proxied; anything else is rejected before network access
ALLOWED_RESOURCES = frozenset(
    {
        "applicants",
        "businesses",
        "candidates",
        "contacts",
        "documents",
        "hires",
        "jobs",
        "notes",
        "offers",
        "projects",
    }
)

# Known alternative upstream paths, tried right after the resource name itself
PATH_ALIASES: dict[str, tuple[str, ...]] = {
    "applicants": ("job/applicants", "jobs/applicants"),
    "hires": ("job/hires",),
    "offers": ("job/offers",),
    "notes": ("candidate/notes",),
}

# Namespace prefixes some tenants mount the API under
NAMESPACE_PREFIXES = ("odata",)

# Case-insensitive substrings matched against discovered entity-set names
DISCOVERY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "applicants": ("applicant", "application"),
    "businesses": ("business", "compan"),
    "candidates": ("candidate",),
    "contacts": ("contact",),
    "documents": ("document", "attachment"),
    "hires": ("hire", "placement"),
    "jobs": ("job", "requisition"),
    "notes": ("note",),
    "offers": ("offer",),
    "projects": ("project",),
}

# Diagnostic response headers
HEADER_UPSTREAM_URL = "X-Upstream-Url"
HEADER_UPSTREAM_PATH = "X-Upstream-Path"
HEADER_UPSTREAM_ATTEMPTS = "X-Upstream-Attempts"
HEADER_PROXY_KEY = "X-Proxy-Key"
PROXY_KEY_QUERY_PARAM = "proxy_key"
