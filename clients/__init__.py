"""Upstream API clients for Marvin and Toggl."""

from __future__ import annotations

from clients._base import BaseAPIClient, RateLimiter, ServiceUnavailableError, check_result
from clients.marvin import MarvinClient
from clients.toggl import TogglClient

__all__ = [
    "BaseAPIClient",
    "MarvinClient",
    "RateLimiter",
    "ServiceUnavailableError",
    "TogglClient",
    "check_result",
]
