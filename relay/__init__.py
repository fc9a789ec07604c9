"""Service registry for the relay.

Provides get_registry() / set_registry(); the server lifespan builds one
registry per process and tests inject their own via set_registry().
"""

from __future__ import annotations

from dataclasses import dataclass, field

from clients.marvin import MarvinClient
from clients.toggl import TogglClient
from relay.cache import RelayCaches
from relay.leisure import LeisureLedger
from relay.tracking import TrackingController

__all__ = ["RelayRegistry", "get_registry", "set_registry"]


@dataclass
class RelayRegistry:
    """Holds the upstream clients and all process-lifetime state."""

    marvin: MarvinClient
    toggl: TogglClient
    workspace_id: int
    caches: RelayCaches = field(default_factory=RelayCaches)
    ledger: LeisureLedger = field(default_factory=LeisureLedger)
    tracking: TrackingController = field(init=False)

    def __post_init__(self) -> None:
        self.tracking = TrackingController(
            self.marvin, self.toggl, self.caches, self.ledger, self.workspace_id
        )

    async def close(self) -> None:
        await self.marvin.close()
        await self.toggl.close()


_registry: RelayRegistry | None = None


def get_registry() -> RelayRegistry:
    """Return the active registry, or raise if not initialized."""
    if _registry is None:
        raise RuntimeError("RelayRegistry not initialized. Server lifespan has not started.")
    return _registry


def set_registry(registry: RelayRegistry | None) -> None:
    """Set (or clear) the global registry. Used by lifespan and tests."""
    global _registry
    _registry = registry
