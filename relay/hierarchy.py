"""Walks a Marvin task's parent chain up to the root."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from _constants import ROOT_PARENT_IDS
from clients._base import ServiceUnavailableError
from relay.cache import TTLCache
from relay.normalize import normalize_title

__all__ = ["DocReader", "HierarchyWalker"]

logger = logging.getLogger("relay.resolve")


class DocReader(Protocol):
    async def read_doc(self, doc_id: str) -> dict[str, Any]: ...


class HierarchyWalker:
    """Collects normalized ancestor titles for a task.

    Cycles are not detected: Marvin's tree is trusted to reach ``root`` or
    ``unassigned``.
    """

    def __init__(self, marvin: DocReader, cache: TTLCache[str, tuple[str, str]]) -> None:
        self._marvin = marvin
        self._cache = cache

    async def _read_parent(self, parent_id: str) -> tuple[str, str]:
        cached = await self._cache.aget(parent_id)
        if cached is not None:
            return cached

        doc = await self._marvin.read_doc(parent_id)
        title = doc.get("title")
        next_parent = doc.get("parentId")
        if not isinstance(title, str) or not isinstance(next_parent, str):
            raise ServiceUnavailableError(
                f"Marvin doc {parent_id} lacks a string title/parentId"
            )
        return title, next_parent

    async def ancestors(self, parent_id: str) -> list[str]:
        """Return ancestor titles, immediate parent first."""
        titles: list[str] = []
        while parent_id not in ROOT_PARENT_IDS:
            title, next_parent = await self._read_parent(parent_id)
            await self._cache.aput(parent_id, (title, next_parent))
            titles.append(normalize_title(title))
            parent_id = next_parent
        logger.info("Parent hierarchy (len=%d): %s", len(titles), titles)
        return titles
