"""Domain client for the Toggl Track API v9.

Uses composition: holds a reference to :class:`BaseAPIClient` for HTTP
transport and delegates all network I/O through ``self._base._request()``.
All workspace-scoped methods take ``workspace_id`` as the first argument.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from _constants import CREATED_WITH, DEFAULT_PROJECT_COLOR, TOGGL_BASE_URL
from clients._base import BaseAPIClient, ServiceUnavailableError, check_result
from models import TimeEntry, TogglEntity

__all__ = ["TogglClient"]


def _entities(data: Any, action: str, parent_key: str | None = None) -> list[TogglEntity]:
    # Toggl answers ``null`` instead of ``[]`` for empty collections.
    if data is None:
        return []
    if not isinstance(data, list):
        raise ServiceUnavailableError(f"{action} returned a non-list response")
    try:
        return [TogglEntity.from_dict(item, parent_key) for item in data]
    except (ValueError, AttributeError) as exc:
        raise ServiceUnavailableError(f"{action} returned malformed data") from exc


def _entity(data: Any, action: str, parent_key: str | None = None) -> TogglEntity:
    if not isinstance(data, dict):
        raise ServiceUnavailableError(f"{action} returned a non-object response")
    try:
        return TogglEntity.from_dict(data, parent_key)
    except ValueError as exc:
        raise ServiceUnavailableError(f"{action} returned malformed data") from exc


def _time_entry(data: Any, action: str) -> TimeEntry:
    if not isinstance(data, dict):
        raise ServiceUnavailableError(f"{action} returned a non-object response")
    try:
        return TimeEntry.from_dict(data)
    except ValueError as exc:
        raise ServiceUnavailableError(f"{action} returned malformed data") from exc


class TogglClient:
    """Operations on Toggl clients, projects, tasks, tags and time entries."""

    def __init__(self, base: BaseAPIClient) -> None:
        self._base = base

    @classmethod
    def create(cls, api_token: str, base_url: str = TOGGL_BASE_URL) -> TogglClient:
        """Build a client authenticating with ``<api_token>:api_token``."""
        base = BaseAPIClient(base_url, name="Toggl", auth=(api_token, "api_token"))
        return cls(base)

    async def close(self) -> None:
        await self._base.close()

    # -- account ------------------------------------------------------------

    async def get_me(self) -> dict[str, Any]:
        data = check_result(await self._base._request("GET", "me"), "Fetching Toggl profile")
        if not isinstance(data, dict):
            raise ServiceUnavailableError("Toggl profile response is not an object")
        return data

    async def get_default_workspace_id(self) -> int:
        me = await self.get_me()
        workspace_id = me.get("default_workspace_id")
        if not isinstance(workspace_id, int):
            raise ServiceUnavailableError("Toggl profile has no default_workspace_id")
        return workspace_id

    # -- clients ------------------------------------------------------------

    async def list_clients(self, workspace_id: int) -> list[TogglEntity]:
        action = "Listing Toggl clients"
        result = await self._base._request("GET", f"workspaces/{workspace_id}/clients")
        return _entities(check_result(result, action), action)

    async def create_client(self, workspace_id: int, name: str) -> TogglEntity:
        action = f"Creating Toggl client {name!r}"
        result = await self._base._request(
            "POST", f"workspaces/{workspace_id}/clients", data={"name": name}
        )
        return _entity(check_result(result, action), action)

    # -- projects -----------------------------------------------------------

    async def list_projects(self, workspace_id: int) -> list[TogglEntity]:
        action = "Listing Toggl projects"
        result = await self._base._request("GET", f"workspaces/{workspace_id}/projects")
        return _entities(check_result(result, action), action, parent_key="client_id")

    async def create_project(self, workspace_id: int, name: str, client_id: int) -> TogglEntity:
        action = f"Creating Toggl project {name!r}"
        body = {
            "name": name,
            "client_id": client_id,
            "active": True,
            "auto_estimates": False,
            "billable": False,
            "color": DEFAULT_PROJECT_COLOR,
            "is_private": True,
        }
        result = await self._base._request(
            "POST", f"workspaces/{workspace_id}/projects", data=body
        )
        return _entity(check_result(result, action), action, parent_key="client_id")

    # -- tasks --------------------------------------------------------------

    async def list_project_tasks(self, workspace_id: int, project_id: int) -> list[TogglEntity]:
        action = f"Listing Toggl tasks of project {project_id}"
        result = await self._base._request(
            "GET", f"workspaces/{workspace_id}/projects/{project_id}/tasks"
        )
        return _entities(check_result(result, action), action, parent_key="project_id")

    async def create_task(self, workspace_id: int, project_id: int, name: str) -> TogglEntity:
        action = f"Creating Toggl task {name!r}"
        body = {"name": name, "active": True, "estimated_seconds": 0}
        result = await self._base._request(
            "POST", f"workspaces/{workspace_id}/projects/{project_id}/tasks", data=body
        )
        return _entity(check_result(result, action), action, parent_key="project_id")

    # -- tags ---------------------------------------------------------------

    async def list_tags(self, workspace_id: int) -> list[TogglEntity]:
        action = "Listing Toggl tags"
        result = await self._base._request("GET", f"workspaces/{workspace_id}/tags")
        return _entities(check_result(result, action), action)

    async def create_tag(self, workspace_id: int, name: str) -> TogglEntity:
        action = f"Creating Toggl tag {name!r}"
        result = await self._base._request(
            "POST", f"workspaces/{workspace_id}/tags", data={"name": name}
        )
        return _entity(check_result(result, action), action)

    # -- time entries -------------------------------------------------------

    async def get_current_time_entry(self) -> TimeEntry | None:
        """Return the running entry, or ``None`` when nothing is running."""
        action = "Fetching current Toggl time entry"
        result = await self._base._request("GET", "me/time_entries/current")
        if result.get("status_code") == 404:
            return None
        data = check_result(result, action)
        if data is None:
            return None
        return _time_entry(data, action)

    async def start_time_entry(
        self,
        workspace_id: int,
        project_id: int | None,
        task_id: int | None,
        description: str,
        tag_ids: list[int] | tuple[int, ...] = (),
    ) -> TimeEntry:
        """Create a running entry (``duration=-1``) starting now."""
        action = "Starting Toggl time entry"
        body = {
            "billable": False,
            "created_with": CREATED_WITH,
            "description": description,
            "duration": -1,
            "project_id": project_id,
            "start": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "tag_action": "add",
            "tag_ids": list(tag_ids),
            "task_id": task_id,
            "workspace_id": workspace_id,
        }
        result = await self._base._request(
            "POST", f"workspaces/{workspace_id}/time_entries", data=body
        )
        return _time_entry(check_result(result, action), action)

    async def stop_time_entry(self, workspace_id: int, entry_id: int) -> TimeEntry:
        action = f"Stopping Toggl time entry {entry_id}"
        result = await self._base._request(
            "PATCH", f"workspaces/{workspace_id}/time_entries/{entry_id}/stop"
        )
        return _time_entry(check_result(result, action), action)
