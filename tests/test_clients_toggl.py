"""Unit tests for clients/toggl.py -- TogglClient against Toggl API v9 routes.

HTTP calls are intercepted at the transport layer by respx.
"""

from __future__ import annotations

import base64
import json
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio
import respx

from clients._base import ServiceUnavailableError
from clients.toggl import TogglClient
from models import TogglEntity

BASE_URL = "https://toggl.example.com/api/v9"
WS = 42


@pytest_asyncio.fixture
async def toggl() -> AsyncGenerator[TogglClient, None]:
    client = TogglClient.create("tok", base_url=BASE_URL)
    yield client
    await client.close()


def _entry(**overrides) -> dict:
    data = {
        "id": 900,
        "workspace_id": WS,
        "project_id": 20,
        "task_id": None,
        "description": "Write report",
        "start": "2024-05-01T09:00:00Z",
        "duration": -1,
        "tags": ["productive"],
        "tag_ids": [40],
    }
    data.update(overrides)
    return data


class TestAccount:
    @respx.mock
    async def test_basic_auth_with_api_token(self, toggl: TogglClient) -> None:
        route = respx.get(f"{BASE_URL}/me").mock(
            return_value=httpx.Response(200, json={"default_workspace_id": WS})
        )
        assert await toggl.get_default_workspace_id() == WS
        expected = base64.b64encode(b"tok:api_token").decode()
        assert route.calls.last.request.headers["Authorization"] == f"Basic {expected}"

    @respx.mock
    async def test_missing_default_workspace(self, toggl: TogglClient) -> None:
        respx.get(f"{BASE_URL}/me").mock(return_value=httpx.Response(200, json={}))
        with pytest.raises(ServiceUnavailableError):
            await toggl.get_default_workspace_id()


class TestEntities:
    @respx.mock
    async def test_list_clients(self, toggl: TogglClient) -> None:
        respx.get(f"{BASE_URL}/workspaces/{WS}/clients").mock(
            return_value=httpx.Response(200, json=[{"id": 1, "name": "Work", "wid": WS}])
        )
        assert await toggl.list_clients(WS) == [TogglEntity(1, "Work")]

    @respx.mock
    async def test_null_list_is_empty(self, toggl: TogglClient) -> None:
        respx.get(f"{BASE_URL}/workspaces/{WS}/clients").mock(
            return_value=httpx.Response(200, json=None)
        )
        assert await toggl.list_clients(WS) == []

    @respx.mock
    async def test_list_projects_carries_client(self, toggl: TogglClient) -> None:
        respx.get(f"{BASE_URL}/workspaces/{WS}/projects").mock(
            return_value=httpx.Response(
                200,
                json=[
                    {"id": 20, "name": "Acme", "client_id": 10},
                    {"id": 21, "name": "Loose", "client_id": None},
                ],
            )
        )
        assert await toggl.list_projects(WS) == [
            TogglEntity(20, "Acme", 10),
            TogglEntity(21, "Loose", None),
        ]

    @respx.mock
    async def test_create_project_payload(self, toggl: TogglClient) -> None:
        route = respx.post(f"{BASE_URL}/workspaces/{WS}/projects").mock(
            return_value=httpx.Response(200, json={"id": 20, "name": "Acme", "client_id": 10})
        )
        project = await toggl.create_project(WS, "Acme", 10)
        assert project == TogglEntity(20, "Acme", 10)
        assert json.loads(route.calls.last.request.content) == {
            "name": "Acme",
            "client_id": 10,
            "active": True,
            "auto_estimates": False,
            "billable": False,
            "color": "#ffffff",
            "is_private": True,
        }

    @respx.mock
    async def test_create_task_payload(self, toggl: TogglClient) -> None:
        route = respx.post(f"{BASE_URL}/workspaces/{WS}/projects/20/tasks").mock(
            return_value=httpx.Response(200, json={"id": 30, "name": "Website", "project_id": 20})
        )
        task = await toggl.create_task(WS, 20, "Website")
        assert task == TogglEntity(30, "Website", 20)
        assert json.loads(route.calls.last.request.content) == {
            "name": "Website",
            "active": True,
            "estimated_seconds": 0,
        }

    @respx.mock
    async def test_create_tag(self, toggl: TogglClient) -> None:
        route = respx.post(f"{BASE_URL}/workspaces/{WS}/tags").mock(
            return_value=httpx.Response(200, json={"id": 40, "name": "deep"})
        )
        assert await toggl.create_tag(WS, "deep") == TogglEntity(40, "deep")
        assert json.loads(route.calls.last.request.content) == {"name": "deep"}

    @respx.mock
    async def test_malformed_entity_raises(self, toggl: TogglClient) -> None:
        respx.get(f"{BASE_URL}/workspaces/{WS}/tags").mock(
            return_value=httpx.Response(200, json=[{"name": "no id"}])
        )
        with pytest.raises(ServiceUnavailableError, match="malformed"):
            await toggl.list_tags(WS)

    @respx.mock
    async def test_creation_failure_raises(self, toggl: TogglClient) -> None:
        respx.post(f"{BASE_URL}/workspaces/{WS}/clients").mock(
            return_value=httpx.Response(400, json="name has already been taken")
        )
        with pytest.raises(ServiceUnavailableError) as exc_info:
            await toggl.create_client(WS, "Work")
        assert exc_info.value.status_code == 400


class TestTimeEntries:
    @respx.mock
    async def test_current_entry_parsed(self, toggl: TogglClient) -> None:
        respx.get(f"{BASE_URL}/me/time_entries/current").mock(
            return_value=httpx.Response(200, json=_entry())
        )
        entry = await toggl.get_current_time_entry()
        assert entry is not None
        assert entry.id == 900
        assert entry.project_id == 20
        assert entry.tags == ("productive",)
        assert entry.start == datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    @respx.mock
    async def test_current_entry_null_means_nothing_running(self, toggl: TogglClient) -> None:
        respx.get(f"{BASE_URL}/me/time_entries/current").mock(
            return_value=httpx.Response(200, json=None)
        )
        assert await toggl.get_current_time_entry() is None

    @respx.mock
    async def test_current_entry_404_means_nothing_running(self, toggl: TogglClient) -> None:
        respx.get(f"{BASE_URL}/me/time_entries/current").mock(
            return_value=httpx.Response(404)
        )
        assert await toggl.get_current_time_entry() is None

    @respx.mock
    async def test_current_entry_server_error_raises(self, toggl: TogglClient) -> None:
        respx.get(f"{BASE_URL}/me/time_entries/current").mock(
            return_value=httpx.Response(503)
        )
        with pytest.raises(ServiceUnavailableError):
            await toggl.get_current_time_entry()

    @respx.mock
    async def test_current_entry_without_tags(self, toggl: TogglClient) -> None:
        respx.get(f"{BASE_URL}/me/time_entries/current").mock(
            return_value=httpx.Response(200, json=_entry(tags=None, tag_ids=None))
        )
        entry = await toggl.get_current_time_entry()
        assert entry is not None
        assert entry.tags == ()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"tags": [None]},
            {"tags": "productive"},
            {"tags": {"productive": True}},
            {"description": 42},
            {"start": "yesterday"},
            {"id": None},
        ],
    )
    @respx.mock
    async def test_malformed_current_entry_raises(
        self, toggl: TogglClient, overrides: dict
    ) -> None:
        respx.get(f"{BASE_URL}/me/time_entries/current").mock(
            return_value=httpx.Response(200, json=_entry(**overrides))
        )
        with pytest.raises(ServiceUnavailableError, match="malformed"):
            await toggl.get_current_time_entry()

    @respx.mock
    async def test_start_entry_payload(self, toggl: TogglClient) -> None:
        route = respx.post(f"{BASE_URL}/workspaces/{WS}/time_entries").mock(
            return_value=httpx.Response(200, json=_entry(id=901))
        )
        entry = await toggl.start_time_entry(WS, 20, 30, "Write report", (40, 41))
        assert entry.id == 901
        body = json.loads(route.calls.last.request.content)
        assert body["duration"] == -1
        assert body["created_with"] == "MarvinWebhook"
        assert body["workspace_id"] == WS
        assert body["project_id"] == 20
        assert body["task_id"] == 30
        assert body["description"] == "Write report"
        assert body["tag_ids"] == [40, 41]
        assert body["tag_action"] == "add"
        assert datetime.fromisoformat(body["start"]).tzinfo is not None

    @respx.mock
    async def test_stop_entry(self, toggl: TogglClient) -> None:
        route = respx.patch(f"{BASE_URL}/workspaces/{WS}/time_entries/900/stop").mock(
            return_value=httpx.Response(200, json=_entry(duration=3600))
        )
        entry = await toggl.stop_time_entry(WS, 900)
        assert route.called
        assert entry.id == 900
