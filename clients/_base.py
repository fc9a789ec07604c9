"""Base HTTP client shared by the Marvin and Toggl API clients.

Provides ``BaseAPIClient`` -- a thin async wrapper around ``httpx.AsyncClient``
that turns every response into a result dict, retries HTTP 429 with
exponential backoff and paces calls through an optional ``RateLimiter``.

Controls:
    ``_request`` returns error dicts for transport errors and 4xx/5xx -- it
    never raises.  Domain clients convert error dicts into
    ``ServiceUnavailableError`` via :func:`check_result`.
    ``httpx.AsyncClient(follow_redirects=False)``.
    Constructor rejects non-HTTPS base_url for non-localhost targets.
"""

from __future__ import annotations

import asyncio
import ipaddress
import json
import logging
import time
from typing import Any
from urllib.parse import urlparse

import httpx

from _constants import INITIAL_BACKOFF_SECS, MAX_RETRIES

__all__ = ["BaseAPIClient", "RateLimiter", "ServiceUnavailableError", "check_result"]

logger = logging.getLogger("relay.client")


class ServiceUnavailableError(ConnectionError):
    """A remote call failed or returned data we cannot use.

    Retryable from the webhook caller's point of view.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def check_result(result: dict[str, Any], action: str) -> Any:
    """Return the payload of a success dict, raise ServiceUnavailableError otherwise."""
    if result.get("status") != "success":
        raise ServiceUnavailableError(
            f"{action} failed: {result.get('message', 'API error')}",
            status_code=result.get("status_code"),
        )
    return result.get("data")


# ---------------------------------------------------------------------------
# RateLimiter
# ---------------------------------------------------------------------------


class RateLimiter:
    """Spaces calls at least ``min_interval`` seconds apart.

    The first call goes through immediately.  Later callers wait for the next
    free slot.  ``min_interval <= 0`` disables pacing.
    """

    __slots__ = ("_lock", "_min_interval", "_next_slot")

    def __init__(self, min_interval: float = 0.0) -> None:
        self._min_interval = max(0.0, min_interval)
        self._next_slot = 0.0
        self._lock = asyncio.Lock()

    @property
    def min_interval(self) -> float:
        return self._min_interval

    async def acquire(self) -> None:
        if self._min_interval <= 0:
            return
        async with self._lock:
            wait = self._next_slot - time.monotonic()
            if wait > 0:
                await asyncio.sleep(wait)
            self._next_slot = time.monotonic() + self._min_interval


# ---------------------------------------------------------------------------
# BaseAPIClient
# ---------------------------------------------------------------------------


class BaseAPIClient:
    """Async HTTP transport for one upstream API."""

    # -- construction -------------------------------------------------------

    def __init__(
        self,
        base_url: str,
        *,
        name: str = "api",
        headers: dict[str, str] | None = None,
        auth: tuple[str, str] | None = None,
        min_interval: float = 0.0,
        max_retries: int = MAX_RETRIES,
        initial_backoff: float = INITIAL_BACKOFF_SECS,
    ) -> None:
        parsed = urlparse(base_url)
        host = (parsed.hostname or "").lower()

        if parsed.scheme != "https" and not self._is_loopback(host):
            raise ValueError(
                f"Non-HTTPS base_url is only permitted for localhost. Got: {base_url}"
            )
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self._base_url: str = base_url.rstrip("/")
        self._name = name
        self._max_retries = max_retries
        self._initial_backoff = initial_backoff
        self._limiter = RateLimiter(min_interval)
        self._http: httpx.AsyncClient = httpx.AsyncClient(
            follow_redirects=False,
            timeout=httpx.Timeout(connect=5.0, read=30.0, write=30.0, pool=5.0),
            headers=headers,
            auth=auth,
            verify=True,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._http.aclose()

    async def __aenter__(self) -> BaseAPIClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @staticmethod
    def _is_loopback(host: str) -> bool:
        """Check if host is a loopback address (localhost, 127.x.x.x, ::1, etc.)."""
        if host in ("localhost",):
            return True
        # Strip brackets for IPv6 (e.g., "[::1]" -> "::1")
        stripped = host.strip("[]")
        try:
            return ipaddress.ip_address(stripped).is_loopback
        except ValueError:
            return False

    # -- generic request helper ---------------------------------------------

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a request.  Returns a result dict, never raises on HTTP errors."""
        url = f"{self._base_url}/{endpoint.lstrip('/')}"
        headers: dict[str, str] = {"Accept": "application/json"}
        if data is not None:
            headers["Content-Type"] = "application/json"

        retries = 0
        backoff = self._initial_backoff
        while True:
            await self._limiter.acquire()
            try:
                response = await self._http.request(
                    method,
                    url,
                    json=data,
                    params=params,
                    headers=headers,
                )
            except httpx.TransportError as exc:
                logger.warning(
                    "%s API %s %s transport error: %s",
                    self._name,
                    method,
                    endpoint,
                    exc,
                )
                return {
                    "status": "error",
                    "message": f"{self._name} service temporarily unavailable.",
                }

            if response.status_code != 429:
                break
            if retries >= self._max_retries:
                logger.warning(
                    "%s API %s %s rate limited, max retries (%d) exceeded",
                    self._name,
                    method,
                    endpoint,
                    self._max_retries,
                )
                break
            retries += 1
            logger.info(
                "%s API rate limited (429), retry %d/%d after %.1fs backoff",
                self._name,
                retries,
                self._max_retries,
                backoff,
            )
            await asyncio.sleep(backoff)
            backoff *= 2

        # Parse response body.
        response_data: Any
        if not response.content:
            response_data = None
        else:
            try:
                response_data = response.json()
            except (json.JSONDecodeError, ValueError):
                response_data = {"text": response.text[:500]}

        if response.status_code >= 400:
            logger.warning(
                "%s API %s %s returned status=%d",
                self._name,
                method,
                endpoint,
                response.status_code,
            )
            error_msg: Any = f"API error: {response.status_code}"
            if isinstance(response_data, dict):
                error_msg = (
                    response_data.get("error")
                    or response_data.get("message")
                    or response_data.get("text")
                    or error_msg
                )
            error_msg = str(error_msg)
            if len(error_msg) > 500:
                error_msg = error_msg[:500] + "..."
            return {
                "status": "error",
                "message": error_msg,
                "status_code": response.status_code,
            }

        return {
            "status": "success",
            "data": response_data,
            "status_code": response.status_code,
        }
