"""Marvin webhook routes: start/stop Toggl tracking for a task."""

from __future__ import annotations

import logging

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from _auth import require_token, route_error_handler
from models import MarvinTask
from relay import get_registry

logger = logging.getLogger("relay.server")

__all__ = ["marvin_other", "register", "start_tracking", "stop_tracking"]

WEBHOOK_TOKEN_ENV = "MARVIN_WEBHOOK_TOKEN"


async def _read_task(request: Request) -> MarvinTask:
    """Parse the webhook body; ValueError (-> 400) when malformed."""
    return MarvinTask.from_payload(await request.json())


@require_token(WEBHOOK_TOKEN_ENV)
@route_error_handler("Failed to start tracking. Please try again.")
async def start_tracking(request: Request) -> Response:
    task = await _read_task(request)
    logger.info("Start tracking webhook for %r", task.title)
    message = await get_registry().tracking.start(task)
    return PlainTextResponse(message)


@require_token(WEBHOOK_TOKEN_ENV)
@route_error_handler("Failed to stop tracking. Please try again.")
async def stop_tracking(request: Request) -> Response:
    task = await _read_task(request)
    logger.info("Stop tracking webhook for %r", task.title)
    outcome = await get_registry().tracking.stop(task)
    return PlainTextResponse(outcome.value)


@require_token(WEBHOOK_TOKEN_ENV)
@route_error_handler("Failed to process webhook. Please try again.")
async def marvin_other(request: Request) -> Response:
    """Catch-all for Marvin events the relay does not act on."""
    body = await request.body()
    logger.info("Other Marvin webhook received (%d bytes)", len(body))
    logger.debug("Other webhook body: %s", body.decode(errors="replace"))
    return PlainTextResponse("Other webhook processed")


def register(mcp: FastMCP) -> None:
    """Register the Marvin webhook routes on the given FastMCP instance."""
    mcp.custom_route("/start-tracking", methods=["POST"])(start_tracking)
    mcp.custom_route("/stop-tracking", methods=["POST"])(stop_tracking)
    mcp.custom_route("/marvin-other", methods=["POST"])(marvin_other)
