"""Pytest configuration for relay tests.

Sets required environment variables before any test module imports
server.py, which reads the webhook secrets at module level.
"""

from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, patch

os.environ.setdefault("MARVIN_API_TOKEN", "test-marvin-token")
os.environ.setdefault("MARVIN_FULL_ACCESS_TOKEN", "test-marvin-full-token")
os.environ.setdefault("TOGGL_API_TOKEN", "test-toggl-token")
os.environ.setdefault("TOGGL_WORKSPACE_ID", "42")
os.environ.setdefault("MARVIN_WEBHOOK_TOKEN", "marvin-secret")
os.environ.setdefault("THIRD_TIME_WEBHOOK_TOKEN", "leisure-secret")
os.environ.setdefault("MARVIN_MIN_INTERVAL", "0")

# ---------------------------------------------------------------------------
# Shared test helpers
# ---------------------------------------------------------------------------

import pytest
from fastmcp.server.auth import AccessToken
from fastmcp.tools.function_tool import FunctionTool

import server as server_module
from models import MarvinLabel, TimeEntry, TogglEntity
from relay import RelayRegistry, set_registry
from relay.cache import RelayCaches
from relay.leisure import LeisureLedger

WORKSPACE_ID = 42
MARVIN_AUTH = {"Authorization": "marvin-secret"}
LEISURE_AUTH = {"Authorization": "leisure-secret"}


def get_tool_fn(name: str):
    """Get a registered tool's underlying async function by name.

    Looks up the tool in ``mcp.local_provider._components``.
    Raises ``KeyError`` with available tool names if not found.
    """
    lp = server_module.mcp.local_provider
    for comp in lp._components.values():
        if isinstance(comp, FunctionTool) and comp.name == name:
            return comp.fn
    available = sorted(
        comp.name for comp in lp._components.values() if isinstance(comp, FunctionTool)
    )
    raise KeyError(f"Tool {name!r} not found. Available: {available}")


def make_access_token(token: str = "leisure-secret") -> AccessToken:
    """Build a fake ``AccessToken`` as StaticTokenVerifier produces it."""
    return AccessToken(
        token=token,
        client_id="leisure-admin",
        scopes=[],
        expires_at=int(time.time()) + 3600,
    )


def patch_token(token: AccessToken | None):
    """Shorthand for patching ``get_access_token`` in the _auth module."""
    return patch("_auth.get_access_token", return_value=token)


def entity(id: int, name: str, parent_id: int | None = None) -> TogglEntity:
    return TogglEntity(id=id, name=name, parent_id=parent_id)


def running_entry(
    *,
    id: int = 900,
    start: datetime = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
    project_id: int | None = 20,
    description: str = "Write report",
    tags: tuple[str, ...] = (),
) -> TimeEntry:
    return TimeEntry(
        id=id,
        start=start,
        workspace_id=WORKSPACE_ID,
        project_id=project_id,
        description=description,
        tags=tags,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_marvin() -> AsyncMock:
    """A mocked ``MarvinClient`` serving a Work > Acme > Website tree."""
    docs: dict[str, dict[str, Any]] = {
        "p-website": {"title": "Website", "parentId": "p-acme"},
        "p-acme": {"title": "Acme", "parentId": "p-work"},
        "p-work": {"title": "Work", "parentId": "root"},
    }
    client = AsyncMock()
    client.read_doc.side_effect = lambda doc_id: docs[doc_id]
    client.get_labels.return_value = [
        MarvinLabel(id="l-deep", title="deep"),
        MarvinLabel(id="l-prod", title="productiveOverride"),
        MarvinLabel(id="l-unprod", title="unproductiveOverride"),
    ]
    return client


@pytest.fixture
def mock_toggl() -> AsyncMock:
    """A mocked ``TogglClient`` with an empty workspace."""
    client = AsyncMock()
    client.list_clients.return_value = []
    client.list_projects.return_value = []
    client.list_project_tasks.return_value = []
    client.list_tags.return_value = []
    client.create_client.side_effect = lambda ws, name: entity(10, name)
    client.create_project.side_effect = lambda ws, name, cid: entity(20, name, cid)
    client.create_task.side_effect = lambda ws, pid, name: entity(30, name, pid)
    client.create_tag.side_effect = lambda ws, name: entity(40, name)
    client.get_current_time_entry.return_value = None
    client.start_time_entry.return_value = running_entry(id=901)
    client.stop_time_entry.return_value = running_entry()
    return client


@pytest.fixture
def registry(mock_marvin: AsyncMock, mock_toggl: AsyncMock):
    """Install a registry built from the mocked clients; cleared afterwards."""
    reg = RelayRegistry(
        marvin=mock_marvin,
        toggl=mock_toggl,
        workspace_id=WORKSPACE_ID,
        caches=RelayCaches(),
        ledger=LeisureLedger(rate=0.5),
    )
    set_registry(reg)
    yield reg
    set_registry(None)
