"""Unit tests for server assembly: lifespan, registry and bearer-token auth.

Upstream clients are replaced with AsyncMocks; we never hit real Marvin or
Toggl APIs.
"""

from __future__ import annotations

import os
from unittest.mock import AsyncMock, patch

import pytest

import server as server_module
from clients._base import ServiceUnavailableError
from relay import RelayRegistry, get_registry, set_registry
from relay.tracking import TrackingController

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clients():
    """Patch the client factories used by the lifespan."""
    marvin = AsyncMock()
    toggl = AsyncMock()
    toggl.get_default_workspace_id.return_value = 7
    with (
        patch("server.MarvinClient.create", return_value=marvin) as marvin_create,
        patch("server.TogglClient.create", return_value=toggl) as toggl_create,
    ):
        yield marvin, toggl, marvin_create, toggl_create


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


class TestLifespan:
    async def test_builds_and_clears_registry(self, clients) -> None:
        marvin, toggl, marvin_create, toggl_create = clients
        async with server_module._lifespan(server_module.mcp):
            registry = get_registry()
            assert registry.marvin is marvin
            assert registry.toggl is toggl
            assert registry.workspace_id == 42
            assert isinstance(registry.tracking, TrackingController)
        marvin_create.assert_called_once_with(
            "test-marvin-token",
            "test-marvin-full-token",
            base_url=server_module.MARVIN_API_BASE_URL,
            min_interval=server_module.MARVIN_PACING,
        )
        toggl_create.assert_called_once()
        marvin.close.assert_awaited_once()
        toggl.close.assert_awaited_once()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_registry()

    async def test_workspace_from_profile(self, clients) -> None:
        _, toggl, _, _ = clients
        with patch("server.TOGGL_WORKSPACE_ID", None):
            async with server_module._lifespan(server_module.mcp):
                assert get_registry().workspace_id == 7
        toggl.get_default_workspace_id.assert_awaited_once()

    async def test_workspace_lookup_failure_exits(self, clients) -> None:
        marvin, toggl, _, _ = clients
        toggl.get_default_workspace_id.side_effect = ServiceUnavailableError("down")
        with patch("server.TOGGL_WORKSPACE_ID", None):
            with pytest.raises(SystemExit):
                async with server_module._lifespan(server_module.mcp):
                    pass
        marvin.close.assert_awaited_once()
        toggl.close.assert_awaited_once()

    async def test_missing_secret_exits(self, clients) -> None:
        _, _, marvin_create, _ = clients
        env = os.environ.copy()
        env.pop("TOGGL_API_TOKEN")
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(SystemExit):
                async with server_module._lifespan(server_module.mcp):
                    pass
        marvin_create.assert_not_called()

    async def test_configured_cache_ttl_and_rate(self, clients) -> None:
        with (
            patch("server.CACHE_TTL", 60.0),
            patch("server.LEISURE_RATE", 0.25),
        ):
            async with server_module._lifespan(server_module.mcp):
                registry = get_registry()
                assert registry.caches.toggl_clients.ttl == 60.0
                assert registry.ledger.rate == 0.25


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_get_without_set_raises(self) -> None:
        set_registry(None)
        with pytest.raises(RuntimeError):
            get_registry()

    async def test_close_closes_both_clients(self) -> None:
        registry = RelayRegistry(marvin=AsyncMock(), toggl=AsyncMock(), workspace_id=1)
        await registry.close()
        registry.marvin.close.assert_awaited_once()
        registry.toggl.close.assert_awaited_once()

    def test_controller_shares_state(self) -> None:
        registry = RelayRegistry(marvin=AsyncMock(), toggl=AsyncMock(), workspace_id=1)
        assert registry.tracking.entities._caches is registry.caches
        assert registry.tracking._ledger is registry.ledger


# ---------------------------------------------------------------------------
# Bearer-token auth for MCP tools
# ---------------------------------------------------------------------------


class TestStaticTokenAuth:
    async def test_leisure_secret_accepted(self) -> None:
        token = await server_module.auth.verify_token("leisure-secret")
        assert token is not None
        assert token.client_id == "leisure-admin"

    async def test_other_tokens_rejected(self) -> None:
        assert await server_module.auth.verify_token("marvin-secret") is None
        assert await server_module.auth.verify_token("") is None
