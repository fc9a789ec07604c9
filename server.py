"""Marvin -> Toggl relay server (FastMCP + Starlette).

Receives Amazing Marvin start/stop webhooks and mirrors them as Toggl
Track time entries, creating the client/project/task/tag hierarchy on
demand. A leisure balance earned by productive time is exposed through
plain HTTP admin routes and as MCP tools guarded by a static bearer token.
"""

from __future__ import annotations

import importlib.metadata
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP
from fastmcp.server.auth.providers.jwt import StaticTokenVerifier
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from _constants import (
    CACHE_TTL_SECONDS,
    DEFAULT_LEISURE_RATE,
    MARVIN_BASE_URL,
    MARVIN_MIN_INTERVAL,
    TOGGL_BASE_URL,
)
from clients import MarvinClient, ServiceUnavailableError, TogglClient
from relay import RelayRegistry, set_registry
from relay.cache import RelayCaches
from relay.leisure import LeisureLedger
from tools import load_domains

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("relay.server")

# Configure logging; LOG_LEVEL env var overrides the default INFO level.
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.critical("%s must be a number, got %r", name, raw)
        raise SystemExit(1) from None


def _env_int(name: str) -> int | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.critical("%s must be an integer, got %r", name, raw)
        raise SystemExit(1) from None


MARVIN_API_BASE_URL: str = os.environ.get("MARVIN_API_BASE_URL", MARVIN_BASE_URL)
TOGGL_API_BASE_URL: str = os.environ.get("TOGGL_API_BASE_URL", TOGGL_BASE_URL)
MARVIN_PACING: float = _env_float("MARVIN_MIN_INTERVAL", MARVIN_MIN_INTERVAL)
CACHE_TTL: float = _env_float("CACHE_TTL_SECONDS", CACHE_TTL_SECONDS)
LEISURE_RATE: float = _env_float("LEISURE_RATE", DEFAULT_LEISURE_RATE)
TOGGL_WORKSPACE_ID: int | None = _env_int("TOGGL_WORKSPACE_ID")

REQUIRED_ENV: tuple[str, ...] = (
    "MARVIN_API_TOKEN",
    "MARVIN_FULL_ACCESS_TOKEN",
    "TOGGL_API_TOKEN",
    "MARVIN_WEBHOOK_TOKEN",
    "THIRD_TIME_WEBHOOK_TOKEN",
)

try:
    _APP_VERSION: str = importlib.metadata.version("marvin-toggl-relay")
except importlib.metadata.PackageNotFoundError:
    _APP_VERSION = os.environ.get("APP_VERSION", "dev")

# ---------------------------------------------------------------------------
# Auth provider + FastMCP instance
# ---------------------------------------------------------------------------

# MCP tools accept the leisure admin secret as a bearer token. The webhook
# routes check the raw Authorization header themselves (see _auth).
_admin_token: str = os.environ.get("THIRD_TIME_WEBHOOK_TOKEN", "")

auth = StaticTokenVerifier(
    tokens={_admin_token: {"client_id": "leisure-admin", "scopes": []}} if _admin_token else {},
)


@asynccontextmanager
async def _lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Build the relay registry for the lifetime of the server."""
    missing = [name for name in REQUIRED_ENV if not os.environ.get(name)]
    if missing:
        logger.critical("Missing required environment variables: %s", ", ".join(missing))
        raise SystemExit(1)

    marvin = MarvinClient.create(
        os.environ["MARVIN_API_TOKEN"],
        os.environ["MARVIN_FULL_ACCESS_TOKEN"],
        base_url=MARVIN_API_BASE_URL,
        min_interval=MARVIN_PACING,
    )
    toggl = TogglClient.create(os.environ["TOGGL_API_TOKEN"], base_url=TOGGL_API_BASE_URL)

    workspace_id = TOGGL_WORKSPACE_ID
    if workspace_id is None:
        try:
            workspace_id = await toggl.get_default_workspace_id()
        except ServiceUnavailableError:
            logger.critical("Could not determine the Toggl workspace; set TOGGL_WORKSPACE_ID")
            await marvin.close()
            await toggl.close()
            raise SystemExit(1) from None

    registry = RelayRegistry(
        marvin=marvin,
        toggl=toggl,
        workspace_id=workspace_id,
        caches=RelayCaches.with_ttl(CACHE_TTL),
        ledger=LeisureLedger(rate=LEISURE_RATE),
    )
    set_registry(registry)
    logger.info(
        "Relay %s starting up (workspace=%d, cache_ttl=%ss, leisure_rate=%s)",
        _APP_VERSION,
        workspace_id,
        CACHE_TTL,
        LEISURE_RATE,
    )
    try:
        yield
    finally:
        logger.info("Relay shutting down")
        set_registry(None)
        await registry.close()


mcp = FastMCP(name="marvin-toggl-relay", auth=auth, lifespan=_lifespan)


# ---------------------------------------------------------------------------
# Security headers middleware (defense-in-depth for HTTP responses)
# ---------------------------------------------------------------------------


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject hardening headers into every HTTP response."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Cache-Control"] = "no-store"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


# Marvin's web app posts webhooks cross-origin, so FastMCP's Host/Origin guard
# stays off and CORS admits any origin.
_middleware: list[Middleware] = [
    Middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    ),
    Middleware(SecurityHeadersMiddleware),
]


# ---------------------------------------------------------------------------
# Health check endpoint (used by Docker HEALTHCHECK)
# ---------------------------------------------------------------------------


@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> JSONResponse:
    """Return 200 OK for Docker health checks and load balancers."""
    return JSONResponse({"status": "ok"})


# ---------------------------------------------------------------------------
# Domain routes and tools
# ---------------------------------------------------------------------------

loaded_domains: list[str] = load_domains(mcp)


def create_app() -> Any:
    """Return the ASGI app (routes, MCP endpoint and middleware)."""
    return mcp.http_app(
        middleware=list(_middleware),
        stateless_http=True,
        host_origin_protection=False,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    mcp.run(
        transport="http",
        host=os.environ.get("RELAY_HOST", "0.0.0.0"),
        port=int(os.environ.get("RELAY_PORT", "3000")),
        stateless_http=True,
        host_origin_protection=False,
        middleware=list(_middleware),
    )
