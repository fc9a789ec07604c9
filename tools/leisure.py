"""Leisure balance admin surface: HTTP routes and MCP tools."""

from __future__ import annotations

import logging
import math
from typing import Any

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from _auth import require_access_token, require_token, route_error_handler, tool_error_handler
from relay import get_registry

logger = logging.getLogger("relay.server")

__all__ = [
    "add_balance",
    "change_rate",
    "get_balance",
    "get_rate",
    "register",
    "reset_balance",
    "stop_current",
]

ADMIN_TOKEN_ENV = "THIRD_TIME_WEBHOOK_TOKEN"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be an integer number of milliseconds, got {amount!r}")
    return amount


def _validate_rate(rate: Any) -> float:
    if isinstance(rate, bool) or not isinstance(rate, (int, float)):
        raise ValueError(f"rate must be a number, got {rate!r}")
    if not math.isfinite(rate) or rate < 0:
        raise ValueError(f"rate must be a finite non-negative number, got {rate!r}")
    return float(rate)


async def _json_field(request: Request, name: str) -> Any:
    body = await request.json()
    if not isinstance(body, dict) or name not in body:
        raise ValueError(f"request body must be an object with a {name!r} field")
    return body[name]


def _balance_seconds(balance_ms: int) -> int:
    """Whole seconds, truncated toward zero."""
    return int(balance_ms / 1000)


# ---------------------------------------------------------------------------
# HTTP routes
# ---------------------------------------------------------------------------


@require_token(ADMIN_TOKEN_ENV)
@route_error_handler("Failed to reset balance.")
async def reset_balance(request: Request) -> Response:
    get_registry().ledger.reset()
    logger.info("Leisure balance reset")
    return PlainTextResponse("Balance reset to 0")


@require_token(ADMIN_TOKEN_ENV)
@route_error_handler("Failed to add balance.")
async def add_balance(request: Request) -> Response:
    amount = _validate_amount(await _json_field(request, "amount"))
    balance = get_registry().ledger.add(amount)
    logger.info("Leisure balance adjusted by %+d ms -> %d ms", amount, balance)
    return PlainTextResponse(f"Balance is now {balance}")


@require_token(ADMIN_TOKEN_ENV)
@route_error_handler("Failed to change rate.")
async def change_rate(request: Request) -> Response:
    rate = get_registry().ledger.set_rate(_validate_rate(await _json_field(request, "rate")))
    logger.info("Leisure rate changed to %s", rate)
    return PlainTextResponse(f"Rate is now {rate}")


@require_token(ADMIN_TOKEN_ENV)
@route_error_handler("Failed to read balance.")
async def get_balance(request: Request) -> Response:
    return PlainTextResponse(str(_balance_seconds(get_registry().ledger.balance_ms)))


@require_token(ADMIN_TOKEN_ENV)
@route_error_handler("Failed to read rate.")
async def get_rate(request: Request) -> Response:
    return PlainTextResponse(str(get_registry().ledger.rate))


@require_token(ADMIN_TOKEN_ENV)
@route_error_handler("Failed to stop current time entry.")
async def stop_current(request: Request) -> Response:
    stopped = await get_registry().tracking.stop_current()
    logger.info("Admin stop-current (stopped=%s)", stopped)
    return PlainTextResponse("")


def register(mcp: FastMCP) -> None:
    """Register leisure routes and tools on the given FastMCP instance."""

    mcp.custom_route("/reset-balance", methods=["POST"])(reset_balance)
    mcp.custom_route("/add-balance", methods=["POST"])(add_balance)
    mcp.custom_route("/change-rate", methods=["POST"])(change_rate)
    mcp.custom_route("/get-balance", methods=["GET"])(get_balance)
    mcp.custom_route("/get-rate", methods=["GET"])(get_rate)
    mcp.custom_route("/stop-current", methods=["GET"])(stop_current)

    # ------------------------------------------------------------------
    # MCP tools
    # ------------------------------------------------------------------

    @mcp.tool
    @tool_error_handler("Failed to read leisure balance. Please try again.")
    async def leisure_get_balance() -> dict[str, Any]:
        """Get the current leisure balance.

        Productive time earns leisure and unproductive time spends it.
        """
        require_access_token()
        balance_ms = get_registry().ledger.balance_ms
        return {"balance_ms": balance_ms, "balance_seconds": _balance_seconds(balance_ms)}

    @mcp.tool
    @tool_error_handler("Failed to read leisure rate. Please try again.")
    async def leisure_get_rate() -> dict[str, Any]:
        """Get the leisure rate (leisure earned per unit of tracked time)."""
        require_access_token()
        return {"rate": get_registry().ledger.rate}

    @mcp.tool
    @tool_error_handler("Failed to change leisure rate. Please try again.")
    async def leisure_change_rate(rate: float) -> dict[str, Any]:
        """Set the leisure rate.

        Args:
            rate: New rate, a finite non-negative number (e.g. 0.333).
        """
        require_access_token()
        new_rate = get_registry().ledger.set_rate(_validate_rate(rate))
        logger.info("WRITE_OP tool=leisure_change_rate rate=%s", new_rate)
        return {"rate": new_rate}

    @mcp.tool
    @tool_error_handler("Failed to add leisure balance. Please try again.")
    async def leisure_add_balance(amount_ms: int) -> dict[str, Any]:
        """Add to (or, if negative, subtract from) the leisure balance.

        Args:
            amount_ms: Milliseconds to add.
        """
        require_access_token()
        balance = get_registry().ledger.add(_validate_amount(amount_ms))
        logger.info("WRITE_OP tool=leisure_add_balance amount_ms=%d", amount_ms)
        return {"balance_ms": balance}

    @mcp.tool
    @tool_error_handler("Failed to reset leisure balance. Please try again.")
    async def leisure_reset_balance() -> dict[str, Any]:
        """Reset the leisure balance to zero."""
        require_access_token()
        get_registry().ledger.reset()
        logger.info("WRITE_OP tool=leisure_reset_balance")
        return {"balance_ms": 0}
