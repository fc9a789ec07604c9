"""Payload and entity models exchanged between Marvin, the relay and Toggl.

Only the fields the relay reads are modelled; everything else in the
upstream JSON is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

__all__ = [
    "MarvinLabel",
    "MarvinTask",
    "ResolvedTogglIds",
    "TimeEntry",
    "TogglEntity",
]


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class MarvinTask:
    """The task document Marvin posts to the tracking webhooks."""

    id: str
    title: str
    parent_id: str
    label_ids: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, data: Any) -> MarvinTask:
        """Build a task from webhook JSON.

        Raises:
            ValueError: If the payload is not an object or lacks
                ``title`` / ``parentId``.
        """
        if not isinstance(data, dict):
            raise ValueError("Task payload must be a JSON object")
        label_ids = data.get("labelIds") or []
        if not isinstance(label_ids, list):
            raise ValueError("'labelIds' must be a list")
        return cls(
            id=str(data.get("_id", "")),
            title=_require_str(data, "title"),
            parent_id=_require_str(data, "parentId"),
            label_ids=tuple(str(label_id) for label_id in label_ids),
        )


@dataclass(frozen=True)
class MarvinLabel:
    id: str
    title: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MarvinLabel:
        return cls(id=str(data.get("_id", "")), title=str(data.get("title") or ""))


@dataclass(frozen=True)
class TogglEntity:
    """A Toggl client, project, task or tag.

    ``parent_id`` is the owning client id for projects and the owning
    project id for tasks; ``None`` otherwise.
    """

    id: int
    name: str
    parent_id: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], parent_key: str | None = None) -> TogglEntity:
        entity_id = _optional_int(data.get("id"))
        name = data.get("name")
        if entity_id is None or not isinstance(name, str):
            raise ValueError(f"Malformed Toggl entity: {data!r}")
        parent_id = _optional_int(data.get(parent_key)) if parent_key else None
        return cls(id=entity_id, name=name, parent_id=parent_id)


@dataclass(frozen=True)
class TimeEntry:
    """A Toggl time entry."""

    id: int
    start: datetime
    workspace_id: int | None = None
    project_id: int | None = None
    task_id: int | None = None
    description: str = ""
    tags: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimeEntry:
        entry_id = _optional_int(data.get("id"))
        start_raw = data.get("start")
        description = data.get("description") or ""
        tags = data.get("tags") or []
        if (
            entry_id is None
            or not isinstance(start_raw, str)
            or not isinstance(description, str)
            or not isinstance(tags, list)
            or not all(isinstance(tag, str) for tag in tags)
        ):
            raise ValueError(f"Malformed Toggl time entry: {data!r}")
        start = datetime.fromisoformat(start_raw.replace("Z", "+00:00"))
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        return cls(
            id=entry_id,
            start=start,
            workspace_id=_optional_int(data.get("workspace_id") or data.get("wid")),
            project_id=_optional_int(data.get("project_id")),
            task_id=_optional_int(data.get("task_id")),
            description=description,
            tags=tuple(tags),
        )

    def elapsed_ms(self, now: datetime | None = None) -> int:
        """Milliseconds between the entry start and *now* (UTC)."""
        now = now or datetime.now(timezone.utc)
        return (now - self.start) // timedelta(milliseconds=1)


@dataclass(frozen=True)
class ResolvedTogglIds:
    """Toggl identities resolved for one Marvin task."""

    client_id: int | None
    project_id: int | None
    task_id: int | None
    description: str
    tag_ids: tuple[int, ...] = field(default_factory=tuple)
