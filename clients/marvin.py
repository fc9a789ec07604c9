"""Domain client for the Amazing Marvin API.

Uses composition: holds a reference to :class:`BaseAPIClient` for HTTP
transport and delegates all network I/O through ``self._base._request()``.
"""

from __future__ import annotations

from typing import Any

from _constants import MARVIN_BASE_URL, MARVIN_MIN_INTERVAL
from clients._base import BaseAPIClient, ServiceUnavailableError, check_result
from models import MarvinLabel

__all__ = ["MarvinClient"]


class MarvinClient:
    """Read access to Marvin documents and labels."""

    def __init__(self, base: BaseAPIClient) -> None:
        self._base = base

    @classmethod
    def create(
        cls,
        api_token: str,
        full_access_token: str,
        base_url: str = MARVIN_BASE_URL,
        min_interval: float = MARVIN_MIN_INTERVAL,
    ) -> MarvinClient:
        """Build a client with its own transport.

        ``min_interval`` paces every call to the API; Marvin rate-limits
        aggressively and does not document the limit.
        """
        base = BaseAPIClient(
            base_url,
            name="Marvin",
            headers={"X-API-Token": api_token, "X-Full-Access-Token": full_access_token},
            min_interval=min_interval,
        )
        return cls(base)

    async def close(self) -> None:
        await self._base.close()

    async def read_doc(self, doc_id: str) -> dict[str, Any]:
        """Read any document (requires the full-access token)."""
        data = check_result(
            await self._base._request("GET", "doc", params={"id": doc_id}),
            f"Reading Marvin doc {doc_id}",
        )
        if not isinstance(data, dict):
            raise ServiceUnavailableError(f"Marvin doc {doc_id} is not an object")
        return data

    async def get_labels(self) -> list[MarvinLabel]:
        data = check_result(await self._base._request("GET", "labels"), "Listing Marvin labels")
        if not isinstance(data, list):
            raise ServiceUnavailableError("Marvin labels response is not a list")
        return [MarvinLabel.from_dict(item) for item in data if isinstance(item, dict)]
