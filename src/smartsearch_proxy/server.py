"""SmartSearch proxy HTTP server implementation."""

import logging
import secrets
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response as HTTPResponse

from .auth import TokenManager
from .client import VendorClient
from .config import Config, get_config
from .consts import (
    HEADER_PROXY_KEY,
    HEADER_UPSTREAM_ATTEMPTS,
    HEADER_UPSTREAM_PATH,
    HEADER_UPSTREAM_URL,
    PACKAGE_VERSION,
    PROXY_KEY_QUERY_PARAM,
    SERVER_NAME,
)
from .discovery import EntityDiscovery
from .exceptions import ConfigError, ProxyError, UpstreamAuthError
from .models import Resolution, Response, TokenStatus, UpstreamResponse
from .resolver import ResourceResolver

logger = logging.getLogger("smartsearch-proxy.server")


def _error_status(error: Exception) -> int:
    """HTTP status for an error: the vendor's when known, else 500."""
    if isinstance(error, UpstreamAuthError) and error.upstream_status:
        return error.upstream_status
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _relay(upstream: Resolution | UpstreamResponse) -> HTTPResponse:
    """Relay an upstream reply with its status, content type and body unchanged."""
    return HTTPResponse(
        content=upstream.body,
        status_code=upstream.status_code,
        headers={"content-type": upstream.content_type},
    )


def require_proxy_key(request: Request) -> None:
    """Shared-secret gate; open when no proxy key is configured."""
    expected = request.app.state.config.proxy_key
    if not expected:
        return

    supplied = request.headers.get(HEADER_PROXY_KEY) or request.query_params.get(
        PROXY_KEY_QUERY_PARAM
    )
    if not supplied or not secrets.compare_digest(supplied, expected):
        logger.warning(f"Rejected request without valid proxy key: {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing proxy key"
        )


def create_app(
    config: Config | None = None,
    client: VendorClient | None = None,
    token_manager: TokenManager | None = None,
) -> FastAPI:
    """Create and configure the proxy application.

    Args:
        config: Config instance. If None, uses get_config().
        client: Vendor client. If None, one is created from config.
        token_manager: Token cache. If None, one is created for the client.

    Returns:
        Configured FastAPI application. Nothing touches the network until the
        first request.
    """
    config = config or get_config()
    client = client or VendorClient(config)
    token_manager = token_manager or TokenManager(config, client)
    discovery = EntityDiscovery(client, token_manager, config)
    resolver = ResourceResolver(client, token_manager, discovery, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Proxy ready for {config.base_url}")
        yield
        await client.aclose()
        logger.info("Client disconnected")

    app = FastAPI(title=SERVER_NAME, version=PACKAGE_VERSION, lifespan=lifespan)
    app.state.config = config
    app.state.client = client
    app.state.token_manager = token_manager
    app.state.discovery = discovery
    app.state.resolver = resolver

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=[
            HEADER_UPSTREAM_URL,
            HEADER_UPSTREAM_PATH,
            HEADER_UPSTREAM_ATTEMPTS,
        ],
    )

    @app.middleware("http")
    async def request_logger(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} "
            f"{elapsed_ms:.1f}ms"
        )
        return response

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        if isinstance(exc, ConfigError):
            logger.error(f"Configuration error: {exc.message}")
        else:
            logger.error(f"Upstream error: {exc.message}")
        return JSONResponse(
            status_code=_error_status(exc),
            content=Response.from_error(exc).model_dump(mode="json"),
        )

    @app.exception_handler(httpx.RequestError)
    async def transport_error_handler(
        request: Request, exc: httpx.RequestError
    ) -> JSONResponse:
        logger.error(f"Transport error: {exc}")
        return JSONResponse(
            status_code=_error_status(exc),
            content=Response.from_error(exc).model_dump(mode="json"),
        )

    @app.get("/health", summary="Liveness check")
    async def health() -> JSONResponse:
        return JSONResponse(content={"ok": True})

    @app.get(
        "/auth/status",
        response_model=TokenStatus,
        dependencies=[Depends(require_proxy_key)],
        summary="Masked token preview and expiry",
    )
    async def auth_status(request: Request) -> TokenStatus:
        manager: TokenManager = request.app.state.token_manager
        await manager.get_valid_token()
        return manager.status()

    @app.get(
        "/schema/metadata",
        dependencies=[Depends(require_proxy_key)],
        summary="Raw $metadata passthrough",
    )
    async def schema_metadata(request: Request) -> HTTPResponse:
        return _relay(await request.app.state.discovery.get_metadata())

    @app.get(
        "/schema/entities",
        dependencies=[Depends(require_proxy_key)],
        summary="Discovered entity-set names",
    )
    async def schema_entities(request: Request) -> Response:
        names = await request.app.state.discovery.entity_sets()
        return Response(
            status="success",
            message=f"Discovered {len(names)} entity sets",
            data=names,
            metadata={"entity_count": len(names)},
        )

    @app.get(
        "/proxy/{resource}",
        dependencies=[Depends(require_proxy_key)],
        summary="Fetch a resource collection",
    )
    async def proxy_collection(resource: str, request: Request) -> HTTPResponse:
        return await _proxy(request, resource, None)

    @app.get(
        "/proxy/{resource}/{entity_id}",
        dependencies=[Depends(require_proxy_key)],
        summary="Fetch a single resource entity",
    )
    async def proxy_entity(
        resource: str, entity_id: str, request: Request
    ) -> HTTPResponse:
        return await _proxy(request, resource, entity_id)

    return app


async def _proxy(request: Request, resource: str, entity_id: str | None) -> HTTPResponse:
    params = [
        (key, value)
        for key, value in request.query_params.multi_items()
        if key != PROXY_KEY_QUERY_PARAM
    ]
    resolution = await request.app.state.resolver.resolve(resource, entity_id, params)

    response = _relay(resolution)
    if resolution.url:
        response.headers[HEADER_UPSTREAM_URL] = resolution.url
    if resolution.path:
        response.headers[HEADER_UPSTREAM_PATH] = resolution.path
    if resolution.attempts:
        response.headers[HEADER_UPSTREAM_ATTEMPTS] = resolution.trace
    return response
