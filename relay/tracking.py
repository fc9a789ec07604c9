"""Start/stop orchestration between Marvin tasks and Toggl time entries."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from _constants import (
    NEUTRAL_OVERRIDE_LABEL,
    PRODUCTIVE_OVERRIDE_LABEL,
    PRODUCTIVE_TAG,
    UNPRODUCTIVE_OVERRIDE_LABEL,
    UNPRODUCTIVE_TAG,
)
from clients._base import ServiceUnavailableError
from clients.marvin import MarvinClient
from clients.toggl import TogglClient
from models import MarvinTask, ResolvedTogglIds, TimeEntry
from relay.cache import RelayCaches
from relay.hierarchy import HierarchyWalker
from relay.labels import LabelResolver
from relay.leisure import LeisureLedger, Productivity
from relay.mapper import EntityResolver, map_hierarchy

__all__ = [
    "StopOutcome",
    "TrackingController",
    "classify_tags",
    "detect_override",
]

logger = logging.getLogger("relay.tracking")

START_MESSAGE = "Webhook processed successfully"

_OVERRIDES: dict[str, Productivity] = {
    PRODUCTIVE_OVERRIDE_LABEL: Productivity.PRODUCTIVE,
    UNPRODUCTIVE_OVERRIDE_LABEL: Productivity.UNPRODUCTIVE,
    NEUTRAL_OVERRIDE_LABEL: Productivity.NEUTRAL,
}


class StopOutcome(str, enum.Enum):
    STOPPED = "Webhook processed successfully"
    NOTHING_RUNNING = "No current time entry"
    MISMATCH = "Current time entry does not match task"


def classify_tags(tags: Iterable[str]) -> Productivity:
    """Productivity of a time entry from its Toggl tag names.

    An entry tagged both productive and unproductive nets out to neutral.
    """
    tags = set(tags)
    score = (PRODUCTIVE_TAG in tags) - (UNPRODUCTIVE_TAG in tags)
    return Productivity(score)


def detect_override(label_titles: Iterable[str]) -> Productivity | None:
    """Last override label wins; ``None`` when there is none."""
    override: Productivity | None = None
    for title in label_titles:
        if title in _OVERRIDES:
            override = _OVERRIDES[title]
    return override


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackingController:
    """Drives Toggl from Marvin start/stop webhooks.

    Holds no state of its own; caches and the leisure ledger are injected.
    """

    def __init__(
        self,
        marvin: MarvinClient,
        toggl: TogglClient,
        caches: RelayCaches,
        ledger: LeisureLedger,
        workspace_id: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._toggl = toggl
        self._caches = caches
        self._ledger = ledger
        self._workspace_id = workspace_id
        self._clock = clock
        self.walker = HierarchyWalker(marvin, caches.marvin_projects)
        self.entities = EntityResolver(toggl, caches, workspace_id)
        self.labels = LabelResolver(marvin, toggl, caches, workspace_id)

    # -- resolution ---------------------------------------------------------

    async def resolve(self, task: MarvinTask, create_if_missing: bool) -> ResolvedTogglIds:
        """Resolve *task* to Toggl ids.

        Raises:
            ServiceUnavailableError: If any remote lookup or creation fails.
        """
        logger.info(
            "Resolving task %r (parent=%s, create_if_missing=%s)",
            task.title,
            task.parent_id,
            create_if_missing,
        )
        self._caches.log_toggl_state()

        ancestors = await self.walker.ancestors(task.parent_id)
        tag_ids = await self.labels.resolve_tags(task.label_ids, create_if_missing)
        names = map_hierarchy(ancestors, task.title)
        logger.info(
            "Resolved names -> client: %r, project: %r, task: %r, description: %r",
            names.client,
            names.project,
            names.task,
            names.description,
        )
        entities = await self.entities.resolve(names, create_if_missing)
        resolved = ResolvedTogglIds(
            client_id=entities.client_id,
            project_id=entities.project_id,
            task_id=entities.task_id,
            description=names.description,
            tag_ids=tuple(tag_ids),
        )
        logger.info("Resolved Toggl ids: %s", resolved)
        return resolved

    # -- session helpers ----------------------------------------------------

    async def _finish(self, entry: TimeEntry, override: Productivity | None) -> int:
        """Stop *entry* and book its leisure; return the balance change."""
        productivity = override if override is not None else classify_tags(entry.tags)
        elapsed_ms = entry.elapsed_ms(self._clock())
        await self._toggl.stop_time_entry(entry.workspace_id or self._workspace_id, entry.id)
        logger.info("Stopped time entry %d after %d ms", entry.id, elapsed_ms)
        return self._ledger.record(elapsed_ms, productivity)

    async def stop_current(self) -> bool:
        """Stop whatever is running.  Returns ``False`` when nothing was."""
        entry = await self._toggl.get_current_time_entry()
        if entry is None:
            logger.info("No current time entry running, nothing to stop")
            return False
        await self._finish(entry, None)
        return True

    # -- webhook operations -------------------------------------------------

    async def start(self, task: MarvinTask) -> str:
        """Stop the running entry (best effort) and start one for *task*.

        Raises:
            ServiceUnavailableError: If resolution or the start call fails.
        """
        resolved = await self.resolve(task, create_if_missing=True)

        try:
            await self.stop_current()
        except ServiceUnavailableError as exc:
            logger.warning("Stop current time entry error: %s", exc)

        entry = await self._toggl.start_time_entry(
            self._workspace_id,
            resolved.project_id,
            resolved.task_id,
            resolved.description,
            resolved.tag_ids,
        )
        logger.info("Started time entry %d for %r", entry.id, resolved.description)
        return START_MESSAGE

    async def stop(self, task: MarvinTask) -> StopOutcome:
        """Stop the running entry if it belongs to *task*.

        Raises:
            ServiceUnavailableError: If a remote call fails.
        """
        current = await self._toggl.get_current_time_entry()
        if current is None:
            logger.info("No current time entry running, nothing to stop")
            return StopOutcome.NOTHING_RUNNING

        resolved = await self.resolve(task, create_if_missing=False)
        project_matches = current.project_id == resolved.project_id
        description_matches = current.description == resolved.description
        if not (project_matches and description_matches):
            logger.info(
                "Current time entry does not match task. Project match: %s, "
                "Description match: %s (current: %r, expected: %r)",
                project_matches,
                description_matches,
                current.description,
                resolved.description,
            )
            return StopOutcome.MISMATCH

        titles = await self.labels.label_titles(task.label_ids)
        override = detect_override(titles)
        await self._finish(current, override)
        return StopOutcome.STOPPED
