"""Pytest configuration and shared fixtures"""

import json
import os
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from smartsearch_proxy.auth import TokenManager
from smartsearch_proxy.client import VendorClient
from smartsearch_proxy.config import Config
from smartsearch_proxy.consts import LOGIN_URL_PATH

BASE_URL = "https://vendor.test/openapi/v1"
BASE_PATH = "/openapi/v1"

ENV_NAMES = ("SS_USER", "SS_PASS", "PROXY_KEY", "PORT")


class FakeClock:
    """Controllable UTC clock for token expiry tests"""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeVendor:
    """In-memory SmartSearch API served through httpx.MockTransport.

    Routes are keyed by path relative to BASE_URL. Unknown paths return 404.
    """

    def __init__(self):
        self.routes: dict[str, tuple[int, object, str]] = {}
        self.broken: set[str] = set()
        self.requests: list[httpx.Request] = []
        self.login_status = 200
        self.login_broken = False
        self.login_payload: object = {"access_token": "tok-abcdef123456", "expires_in": 3600}

    def route(self, path: str, status: int = 200, body: object = None, content_type=None):
        if content_type is None:
            content_type = (
                "application/xml" if isinstance(body, str) else "application/json"
            )
        self.routes[path] = (status, body, content_type)

    def fail(self, path: str):
        """Make a path raise a transport error"""
        self.broken.add(path)

    @property
    def logins(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    @property
    def gets(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "GET"]

    def resource_gets(self) -> list[httpx.Request]:
        """GETs excluding schema discovery documents"""
        return [
            r
            for r in self.gets
            if not r.url.path.endswith("$metadata") and r.url.path != f"{BASE_PATH}/"
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        relative = path[len(BASE_PATH):] if path.startswith(BASE_PATH) else path

        if request.method == "POST" and relative == LOGIN_URL_PATH:
            if self.login_broken:
                raise httpx.ConnectError("connection refused", request=request)
            return self._respond(self.login_status, self.login_payload)

        if relative in self.broken:
            raise httpx.ConnectError("connection refused", request=request)

        status, body, content_type = self.routes.get(
            relative, (404, {"error": f"{relative} not found"}, "application/json")
        )
        return self._respond(status, body, content_type)

    @staticmethod
    def _respond(status, body, content_type="application/json") -> httpx.Response:
        if isinstance(body, (dict, list)):
            content = json.dumps(body).encode()
        elif isinstance(body, str):
            content = body.encode()
        elif body is None:
            content = b""
        else:
            content = body
        return httpx.Response(
            status, content=content, headers={"content-type": content_type}
        )


@pytest.fixture
def clean_env():
    """Temporarily clear SMARTSEARCH_* and legacy environment variables."""
    saved = {
        key: value
        for key, value in os.environ.items()
        if key.startswith("SMARTSEARCH_") or key in ENV_NAMES
    }
    for key in saved:
        os.environ.pop(key, None)

    try:
        yield
    finally:
        for key in list(os.environ):
            if key.startswith("SMARTSEARCH_") or key in ENV_NAMES:
                os.environ.pop(key, None)
        os.environ.update(saved)


@pytest.fixture
def clean_config(clean_env):
    """Config built from defaults only"""
    return Config()


@pytest.fixture
def config(clean_env):
    """Config with complete credentials, discovery disabled"""
    return Config(
        base_url=BASE_URL,
        api_key="key-123",
        username="svc-user",
        password="svc-pass",
        discovery_enabled=False,
    )


@pytest.fixture
def discovery_config(clean_env):
    """Config with complete credentials and discovery enabled"""
    return Config(
        base_url=BASE_URL,
        api_key="key-123",
        username="svc-user",
        password="svc-pass",
        discovery_enabled=True,
    )


@pytest.fixture
def vendor():
    return FakeVendor()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def http_client(vendor):
    return httpx.AsyncClient(transport=httpx.MockTransport(vendor.handler))


@pytest.fixture
def client(config, http_client):
    return VendorClient(config, http_client=http_client)


@pytest.fixture
def token_manager(config, client, clock):
    return TokenManager(config, client, clock=clock)
