"""Resolves Marvin label ids to label titles and Toggl tag ids."""

from __future__ import annotations

import logging

from clients.marvin import MarvinClient
from clients.toggl import TogglClient
from relay.cache import RelayCaches

__all__ = ["LabelResolver"]

logger = logging.getLogger("relay.resolve")


class LabelResolver:
    """Label id -> title -> Toggl tag id, cached at both hops.

    Labels or tags that cannot be resolved are dropped, not reported.
    """

    def __init__(
        self,
        marvin: MarvinClient,
        toggl: TogglClient,
        caches: RelayCaches,
        workspace_id: int,
    ) -> None:
        self._marvin = marvin
        self._toggl = toggl
        self._caches = caches
        self._workspace_id = workspace_id

    async def label_titles(self, label_ids: tuple[str, ...] | list[str]) -> list[str]:
        """Titles for *label_ids*, skipping unknown and empty ones.

        The full label list is fetched at most once per call.
        """
        cache = self._caches.marvin_labels
        fetched: dict[str, str] | None = None
        titles: list[str] = []
        for label_id in label_ids:
            title = await cache.aget(label_id)
            if title is None:
                if fetched is None:
                    fetched = {}
                    for label in await self._marvin.get_labels():
                        fetched[label.id] = label.title
                        await cache.aput(label.id, label.title)
                title = fetched.get(label_id, "")
            if title:
                titles.append(title)
        return titles

    async def tag_ids(self, titles: list[str], create_if_missing: bool) -> list[int]:
        """Toggl tag ids for *titles*, creating tags when allowed."""
        cache = self._caches.toggl_tags
        ws = self._workspace_id
        listed: dict[str, int] | None = None
        ids: list[int] = []
        for title in titles:
            tag_id = await cache.aget(title)
            if tag_id is None:
                if listed is None:
                    listed = {}
                    for tag in await self._toggl.list_tags(ws):
                        listed[tag.name] = tag.id
                        await cache.aput(tag.name, tag.id)
                tag_id = listed.get(title)
                if tag_id is None and create_if_missing:
                    tag = await self._toggl.create_tag(ws, title)
                    logger.info("Created Toggl tag %r (id=%d)", tag.name, tag.id)
                    await cache.aput(tag.name, tag.id)
                    listed[tag.name] = tag.id
                    tag_id = tag.id
            if tag_id is None:
                logger.info("Dropping unresolved tag %r", title)
                continue
            ids.append(tag_id)
        return ids

    async def resolve_tags(
        self, label_ids: tuple[str, ...] | list[str], create_if_missing: bool
    ) -> list[int]:
        return await self.tag_ids(await self.label_titles(label_ids), create_if_missing)
