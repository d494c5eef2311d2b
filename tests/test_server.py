"""Tests for the FastAPI proxy surface"""

import pytest
from fastapi.testclient import TestClient

from smartsearch_proxy.auth import TokenManager
from smartsearch_proxy.client import VendorClient
from smartsearch_proxy.config import Config
from smartsearch_proxy.server import create_app

from tests.conftest import BASE_URL


def make_app(config, http_client, clock):
    client = VendorClient(config, http_client=http_client)
    return create_app(config, client, TokenManager(config, client, clock=clock))


@pytest.fixture
def api(config, http_client, clock):
    with TestClient(make_app(config, http_client, clock)) as test_client:
        yield test_client


@pytest.fixture
def gated_api(config, http_client, clock):
    config = config.model_copy(update={"proxy_key": "s3cret"})
    with TestClient(make_app(config, http_client, clock)) as test_client:
        yield test_client


class TestProxyRoutes:
    """Test /proxy relaying and diagnostic headers"""

    def test_end_to_end_applicants(self, api, vendor):
        vendor.route("/applicants", 404, {"error": "nope"})
        vendor.route("/job/applicants", 200, {"value": []})

        response = api.get("/proxy/applicants")

        assert response.status_code == 200
        assert response.json() == {"value": []}
        assert response.headers["content-type"] == "application/json"
        assert response.headers["x-upstream-attempts"] == (
            "404@/applicants|200@/job/applicants"
        )
        assert response.headers["x-upstream-url"] == f"{BASE_URL}/job/applicants"
        assert response.headers["x-upstream-path"] == "/job/applicants"

    def test_entity_route(self, api, vendor):
        vendor.route("/jobs/9", 200, {"id": 9})

        response = api.get("/proxy/jobs/9")

        assert response.json() == {"id": 9}
        assert response.headers["x-upstream-attempts"] == "200@/jobs/9"

    def test_exhaustion_relays_last_vendor_error(self, api, vendor):
        vendor.route("/odata/contacts", 410, "<error>gone</error>", content_type="text/xml")

        response = api.get("/proxy/contacts")

        assert response.status_code == 410
        assert response.text == "<error>gone</error>"
        assert response.headers["content-type"] == "text/xml"
        assert response.headers["x-upstream-attempts"] == (
            "404@/contacts|410@/odata/contacts"
        )

    def test_not_permitted(self, api, vendor):
        response = api.get("/proxy/admin")

        assert response.status_code == 403
        assert response.json()["error"] == "Resource not permitted"
        assert "x-upstream-attempts" not in response.headers
        assert vendor.requests == []

    def test_query_forwarded(self, api, vendor):
        api.get("/proxy/contacts", params={"$top": "10", "$skip": "20"})

        gets = vendor.resource_gets()
        assert len(gets) == 2
        for request in gets:
            assert request.url.params["$top"] == "10"
            assert request.url.params["$skip"] == "20"

    def test_config_error_is_500(self, clean_env, http_client, clock, vendor):
        config = Config(base_url=BASE_URL, discovery_enabled=False)
        with TestClient(make_app(config, http_client, clock)) as api:
            response = api.get("/proxy/jobs")

        assert response.status_code == 500
        body = response.json()
        assert body["status"] == "error"
        assert body["metadata"]["exception_type"] == "ConfigError"
        assert vendor.requests == []

    def test_login_rejection_relays_status(self, api, vendor):
        vendor.login_status = 401
        vendor.login_payload = {"message": "bad credentials"}

        response = api.get("/proxy/jobs")

        assert response.status_code == 401
        body = response.json()
        assert body["metadata"]["exception_type"] == "UpstreamAuthError"
        assert "bad credentials" in body["errors"][0]

    def test_login_transport_failure_is_500(self, api, vendor):
        vendor.login_broken = True

        response = api.get("/proxy/jobs")

        assert response.status_code == 500


class TestProxyKeyGate:
    """Test the optional shared-secret gate"""

    def test_missing_key_rejected(self, gated_api, vendor):
        response = gated_api.get("/proxy/jobs")

        assert response.status_code == 401
        assert vendor.requests == []

    def test_wrong_key_rejected(self, gated_api):
        response = gated_api.get("/proxy/jobs", headers={"X-Proxy-Key": "nope"})
        assert response.status_code == 401

    def test_header_key_accepted(self, gated_api, vendor):
        vendor.route("/jobs", 200, {"value": []})

        response = gated_api.get("/proxy/jobs", headers={"X-Proxy-Key": "s3cret"})

        assert response.status_code == 200

    def test_query_key_accepted_and_not_forwarded(self, gated_api, vendor):
        vendor.route("/jobs", 200, {"value": []})

        response = gated_api.get("/proxy/jobs", params={"proxy_key": "s3cret", "q": "x"})

        assert response.status_code == 200
        request = vendor.resource_gets()[0]
        assert "proxy_key" not in request.url.params
        assert request.url.params["q"] == "x"

    def test_health_not_gated(self, gated_api):
        assert gated_api.get("/health").json() == {"ok": True}

    def test_diagnostics_gated(self, gated_api):
        assert gated_api.get("/auth/status").status_code == 401
        assert gated_api.get("/schema/metadata").status_code == 401


class TestDiagnostics:
    """Test diagnostic endpoints"""

    def test_auth_status_masks_token(self, api, vendor):
        response = api.get("/auth/status")

        assert response.status_code == 200
        body = response.json()
        assert body["has_token"] is True
        assert body["token_preview"] == "tok-...3456"
        assert "tok-abcdef123456" not in response.text
        assert body["expires_at"].startswith("2024-01-01T13:00:00")
        assert body["seconds_remaining"] == 3600

    def test_auth_status_reuses_token(self, api, vendor):
        api.get("/auth/status")
        api.get("/proxy/jobs")
        assert len(vendor.logins) == 1

    def test_schema_metadata_passthrough(self, api, vendor):
        vendor.route("/$metadata", 200, "<edmx:Edmx/>")

        response = api.get("/schema/metadata")

        assert response.status_code == 200
        assert response.text == "<edmx:Edmx/>"
        assert response.headers["content-type"] == "application/xml"

    def test_schema_metadata_transport_error(self, api, vendor):
        vendor.fail("/$metadata")

        response = api.get("/schema/metadata")

        assert response.status_code == 500
        assert "Network error" in response.json()["message"]

    def test_schema_entities(self, api, vendor):
        vendor.route("/", 200, {"value": [{"name": "Jobs", "url": "Jobs"}]})

        body = api.get("/schema/entities").json()

        assert body["status"] == "success"
        assert body["data"] == ["Jobs"]

    def test_cors_exposes_diagnostic_headers(self, api, vendor):
        vendor.route("/jobs", 200, {"value": []})

        response = api.get("/proxy/jobs", headers={"Origin": "https://app.example.com"})

        assert response.headers["access-control-allow-origin"] == "*"
        exposed = response.headers["access-control-expose-headers"].lower()
        assert "x-upstream-attempts" in exposed

    def test_non_ascii_entity_set_headers(
        self, discovery_config, http_client, clock, vendor
    ):
        """Discovered names outside latin-1 reach the diagnostic headers encoded"""
        vendor.route(
            "/$metadata",
            200,
            '<Schema><EntitySet Name="Applicants€"/></Schema>',
            content_type="application/xml",
        )
        vendor.route("/Applicants€", 200, {"value": []})

        with TestClient(make_app(discovery_config, http_client, clock)) as api:
            response = api.get("/proxy/applicants")

        assert response.status_code == 200
        assert response.headers["x-upstream-path"] == "/Applicants%E2%82%AC"
        assert response.headers["x-upstream-attempts"].endswith(
            "200@/Applicants%E2%82%AC"
        )
        assert response.headers["x-upstream-url"].isascii()
