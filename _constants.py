"""Shared constants for the Marvin -> Toggl relay."""

from __future__ import annotations

CACHE_TTL_SECONDS: float = 300.0

# Marvin parent ids that terminate the ancestor walk.
ROOT_PARENT_IDS: frozenset[str] = frozenset({"root", "unassigned"})

MARVIN_BASE_URL: str = "https://serv.amazingmarvin.com/api"
MARVIN_MIN_INTERVAL: float = 1.0
TOGGL_BASE_URL: str = "https://api.track.toggl.com/api/v9"

MAX_RETRIES: int = 5
INITIAL_BACKOFF_SECS: float = 2.0

CREATED_WITH: str = "MarvinWebhook"
DEFAULT_PROJECT_COLOR: str = "#ffffff"

PRODUCTIVE_TAG: str = "productive"
UNPRODUCTIVE_TAG: str = "unproductive"
PRODUCTIVE_OVERRIDE_LABEL: str = "productiveOverride"
UNPRODUCTIVE_OVERRIDE_LABEL: str = "unproductiveOverride"
NEUTRAL_OVERRIDE_LABEL: str = "neutralOverride"

DEFAULT_LEISURE_RATE: float = 1.0 / 3.0
