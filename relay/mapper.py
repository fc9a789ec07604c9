"""Maps a Marvin ancestor chain onto Toggl's client -> project -> task model.

Two stages:

1. :func:`map_hierarchy` picks the client/project/task *names* from the
   ancestor titles by position.
2. :class:`EntityResolver` turns those names into Toggl ids, reading and
   filling the cache at every step and optionally creating what is missing.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import TypeVar

from clients.toggl import TogglClient
from models import TogglEntity
from relay.cache import RelayCaches, TTLCache
from relay.normalize import normalize_title

__all__ = ["EntityResolver", "ResolvedEntities", "TargetNames", "map_hierarchy"]

logger = logging.getLogger("relay.resolve")

K = TypeVar("K", bound=Hashable)


@dataclass(frozen=True)
class TargetNames:
    client: str | None
    project: str | None
    task: str | None
    description: str


@dataclass(frozen=True)
class ResolvedEntities:
    client_id: int | None = None
    project_id: int | None = None
    task_id: int | None = None


def map_hierarchy(ancestors: list[str], leaf_title: str) -> TargetNames:
    """Choose Toggl names from ancestor titles (immediate parent first).

    ===  ========  ========  ====
    N    client    project   task
    ===  ========  ========  ====
    0    --        --        --
    1    a[0]      a[0]      --
    2    a[1]      a[0]      --
    3    a[2]      a[1]      a[0]
    4+   a[N-1]    a[N-2]    a[0]
    ===  ========  ========  ====

    Every name is normalized here, so a title the walker already stripped
    loses one more leading stamp.
    """
    description = normalize_title(leaf_title)
    names = [normalize_title(title) for title in ancestors]
    n = len(names)
    if n == 0:
        return TargetNames(None, None, None, description)
    if n == 1:
        return TargetNames(names[0], names[0], None, description)
    if n == 2:
        return TargetNames(names[1], names[0], None, description)
    return TargetNames(names[n - 1], names[n - 2], names[0], description)


class EntityResolver:
    """Resolves (or creates) Toggl clients, projects and tasks by name."""

    def __init__(self, toggl: TogglClient, caches: RelayCaches, workspace_id: int) -> None:
        self._toggl = toggl
        self._caches = caches
        self._workspace_id = workspace_id

    async def _resolve(
        self,
        kind: str,
        cache: TTLCache[K, int],
        key: K,
        matches: Callable[[TogglEntity], bool],
        key_of: Callable[[TogglEntity], K | None],
        list_entities: Callable[[], Awaitable[list[TogglEntity]]],
        create_entity: Callable[[], Awaitable[TogglEntity]],
        create_if_missing: bool,
    ) -> int | None:
        cached = await cache.aget(key)
        if cached is not None:
            return cached

        found: int | None = None
        for entity in await list_entities():
            if matches(entity):
                found = entity.id
            entity_key = key_of(entity)
            if entity_key is not None:
                await cache.aput(entity_key, entity.id)
        if found is not None:
            return found

        if not create_if_missing:
            logger.info("Toggl %s %r not found; creation disabled", kind, key)
            return None

        created = await create_entity()
        logger.info("Created Toggl %s %r (id=%d)", kind, key, created.id)
        await cache.aput(key, created.id)
        return created.id

    async def resolve_client(self, name: str, create_if_missing: bool) -> int | None:
        ws = self._workspace_id
        return await self._resolve(
            "client",
            self._caches.toggl_clients,
            name,
            matches=lambda c: c.name == name,
            key_of=lambda c: c.name,
            list_entities=lambda: self._toggl.list_clients(ws),
            create_entity=lambda: self._toggl.create_client(ws, name),
            create_if_missing=create_if_missing,
        )

    async def resolve_project(
        self, client_id: int, name: str, create_if_missing: bool
    ) -> int | None:
        ws = self._workspace_id
        return await self._resolve(
            "project",
            self._caches.toggl_projects,
            (client_id, name),
            matches=lambda p: p.name == name and p.parent_id == client_id,
            # Projects without a client cannot be addressed by (client, name).
            key_of=lambda p: (p.parent_id, p.name) if p.parent_id is not None else None,
            list_entities=lambda: self._toggl.list_projects(ws),
            create_entity=lambda: self._toggl.create_project(ws, name, client_id),
            create_if_missing=create_if_missing,
        )

    async def resolve_task(
        self, project_id: int, name: str, create_if_missing: bool
    ) -> int | None:
        ws = self._workspace_id
        return await self._resolve(
            "task",
            self._caches.toggl_tasks,
            (project_id, name),
            matches=lambda t: t.name == name,
            key_of=lambda t: (project_id, t.name),
            list_entities=lambda: self._toggl.list_project_tasks(ws, project_id),
            create_entity=lambda: self._toggl.create_task(ws, project_id, name),
            create_if_missing=create_if_missing,
        )

    async def resolve(self, names: TargetNames, create_if_missing: bool) -> ResolvedEntities:
        """Resolve client, then project under it, then task under that."""
        if names.client is None:
            return ResolvedEntities()

        client_id = await self.resolve_client(names.client, create_if_missing)
        project_id: int | None = None
        if client_id is not None and names.project is not None:
            project_id = await self.resolve_project(client_id, names.project, create_if_missing)
        task_id: int | None = None
        if project_id is not None and names.task is not None:
            task_id = await self.resolve_task(project_id, names.task, create_if_missing)
        return ResolvedEntities(client_id, project_id, task_id)
