"""Shared authentication and error-handling helpers for routes and MCP tools."""

from __future__ import annotations

import functools
import logging
import os
import secrets
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from fastmcp.exceptions import ToolError
from fastmcp.server.auth import AccessToken
from fastmcp.server.dependencies import get_access_token
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from clients._base import ServiceUnavailableError

logger = logging.getLogger("relay.server")

P = ParamSpec("P")
R = TypeVar("R")

Handler = Callable[[Request], Awaitable[Response]]


def require_token(env_var: str) -> Callable[[Handler], Handler]:
    """Decorator that checks the raw ``Authorization`` header of a route.

    Marvin's webhooks send the configured secret verbatim (no ``Bearer``
    prefix). Returns 500 if the secret itself is not configured.
    """

    def decorator(fn: Handler) -> Handler:
        @functools.wraps(fn)
        async def wrapper(request: Request) -> Response:
            expected = os.environ.get(env_var, "")
            if not expected:
                logger.error("%s is not set; rejecting %s", env_var, request.url.path)
                return PlainTextResponse("Server misconfigured", status_code=500)
            supplied = request.headers.get("authorization", "")
            if not secrets.compare_digest(supplied.encode(), expected.encode()):
                logger.warning("Unauthorized request to %s", request.url.path)
                return PlainTextResponse("Unauthorized", status_code=401)
            return await fn(request)

        return wrapper

    return decorator


def route_error_handler(error_message: str) -> Callable[[Handler], Handler]:
    """Decorator that maps route exceptions onto HTTP status codes.

    ServiceUnavailableError -> 503, ValueError (bad payload) -> 400; anything
    else is logged and answered with a generic 500.
    """

    def decorator(fn: Handler) -> Handler:
        @functools.wraps(fn)
        async def wrapper(request: Request) -> Response:
            try:
                return await fn(request)
            except ServiceUnavailableError as exc:
                logger.warning("%s: upstream unavailable: %s", request.url.path, exc)
                return PlainTextResponse(str(exc), status_code=503)
            except ValueError as exc:
                return PlainTextResponse(f"Invalid request: {exc}", status_code=400)
            except Exception:
                logger.exception("%s failed", fn.__name__)
                return PlainTextResponse(error_message, status_code=500)

        return wrapper

    return decorator


def tool_error_handler(
    error_message: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator that wraps MCP tool functions with standard error handling.

    Converts PermissionError, ValueError and ServiceUnavailableError to
    ToolError (preserving message), and catches all other exceptions with a
    generic message.
    """

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await fn(*args, **kwargs)
            except ToolError:
                raise
            except (PermissionError, ValueError, ServiceUnavailableError) as exc:
                raise ToolError(str(exc)) from exc
            except Exception:
                logger.exception("%s failed", fn.__name__)
                raise ToolError(error_message) from None

        return wrapper

    return decorator


def require_access_token() -> AccessToken:
    """Return the caller's verified bearer token.

    Raises:
        PermissionError: If the request carries no verified token.
    """
    access_token: AccessToken | None = get_access_token()
    if access_token is None:
        raise PermissionError("Authentication required. Supply the leisure bearer token.")
    return access_token
