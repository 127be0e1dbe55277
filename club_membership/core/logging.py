"""Structured logging with caller and club context.

Request-scoped values live in ContextVars so they survive async context
switches; services merge ``get_logging_context()`` into the ``extra`` of every
log call.

Usage:

    import logging
    from club_membership.core.logging import get_logging_context

    logger = logging.getLogger(__name__)

    async def join_club(session, club_id, user_id):
        logger.info(
            "club_joined",
            extra={**get_logging_context(), "club_id": str(club_id)},
        )
"""

from __future__ import annotations

import logging
import logging.config
import uuid
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from typing import Any

from ecs_logging import StdlibFormatter
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from club_membership.core.config import settings

LOGGER = logging.getLogger(__name__)

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
_club_id_var: ContextVar[str | None] = ContextVar("club_id", default=None)


def configure_logging(level: str) -> None:
    """Send root and uvicorn records to stdout as ECS JSON."""
    level = level.upper()
    uvicorn_logger = {"handlers": ["stdout"], "level": level, "propagate": False}
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"ecs": {"()": StdlibFormatter}},
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "ecs",
                    "stream": "ext://sys.stdout",
                }
            },
            "root": {"handlers": ["stdout"], "level": level},
            "loggers": {name: dict(uvicorn_logger) for name in ("uvicorn", "uvicorn.error", "uvicorn.access")},
        }
    )


def set_request_id(request_id: str) -> None:
    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def set_user_context(user_id: str, club_id: str | None = None) -> None:
    """Record the caller, and the club when the route already knows it.

    A missing ``club_id`` leaves any club set earlier in the request alone.
    """
    _user_id_var.set(user_id)
    if club_id:
        _club_id_var.set(club_id)


def set_club_context(club_id: str) -> None:
    _club_id_var.set(club_id)


def get_user_id() -> str | None:
    return _user_id_var.get()


def get_club_id() -> str | None:
    return _club_id_var.get()


def get_logging_context() -> dict[str, str | None]:
    return {
        "request_id": _request_id_var.get(),
        "user_id": _user_id_var.get(),
        "club_id": _club_id_var.get(),
    }


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    extra: dict[str, Any] | None = None,
) -> None:
    """Emit ``message`` with the request, caller and club ids attached.

    Keys in ``extra`` override the ambient values, so an invite redemption
    can name the club it admitted the caller to.
    """
    logger.log(level, message, extra={**get_logging_context(), **(extra or {})})


class LoggingMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id and log its start and outcome.

    The id comes from REQUEST_ID_HEADER when the client sends one and is
    generated otherwise. It is echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        header = settings.request_id_header
        request_id = request.headers.get(header) or str(uuid.uuid4())
        set_request_id(request_id)
        verbose = settings.include_request_context_in_logs
        route = {"request_id": request_id, "method": request.method, "path": request.url.path}

        if verbose:
            client_host = request.client.host if request.client else None
            LOGGER.info("request_started", extra={**route, "client_host": client_host})

        response = await call_next(request)
        response.headers[header] = request_id

        if verbose:
            outcome: dict[str, Any] = {**route, "status_code": response.status_code}
            caller = getattr(request.state, "user", None)
            if caller is not None:
                outcome["user_id"] = str(caller.id)
            LOGGER.info("request_completed", extra=outcome)
        return response
