"""ASGI application for the club membership service.

Starlette wraps middleware so the one added last is outermost. Requests pass
through the stack in this order:

    SlowAPIMiddleware -> LoggingMiddleware -> GatewayAuthMiddleware -> CORSMiddleware

so a throttled request is rejected before anything else runs, and every
request that gets further already carries a request id when the caller is
resolved.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_pagination import add_pagination
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import text
from sqlalchemy.engine import make_url

from club_membership.api.routes import router as api_router
from club_membership.core.auth import GatewayAuthMiddleware
from club_membership.core.config import ConfigurationError, settings
from club_membership.core.errors import ClubError
from club_membership.core.logging import LoggingMiddleware, configure_logging, get_logging_context
from club_membership.core.metrics import metrics_app
from club_membership.db import session as db_session

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


def _error_body(status_code: int, error_code: str, message: str, **extra: Any) -> JSONResponse:  # noqa: ANN401
    return JSONResponse(
        status_code=status_code,
        content={"status_code": status_code, "error_code": error_code, "message": message, **extra},
    )


async def _check_database() -> None:
    try:
        async with db_session.engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
    except Exception as exc:
        msg = f"Membership database is unreachable at startup: {exc}"
        raise RuntimeError(msg) from exc
    logger.info(
        "database_connected",
        extra={"database": make_url(settings.database_url).render_as_string(hide_password=True)},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    try:
        config_warnings = settings.validate_config()
    except ConfigurationError:
        logger.exception("configuration_invalid")
        raise
    for warning in config_warnings:
        logger.warning("configuration_warning: %s", warning)

    app.state.engine = db_session.engine
    app.state.async_session_maker = db_session.async_session_maker
    await _check_database()

    yield

    await app.state.engine.dispose()
    logger.info("database_pool_disposed")


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.include_router(api_router)
add_pagination(app)

if settings.enable_metrics:
    app.mount("/metrics", metrics_app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
# The gateway must strip any client supplied copy of USER_ID_HEADER.
app.add_middleware(GatewayAuthMiddleware)
app.add_middleware(LoggingMiddleware)

app.state.limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[
        f"{settings.rate_limit_per_minute}/minute",
        f"{settings.rate_limit_per_hour}/hour",
    ],
    enabled=settings.rate_limit_enabled,
)
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(ClubError)
async def club_error_handler(_request: Request, exc: ClubError) -> JSONResponse:
    """Map a membership outcome onto its HTTP status."""
    logger.info(
        "club_error",
        extra={**get_logging_context(), "error_code": exc.code.value, "status_code": exc.status_code},
    )
    return _error_body(exc.status_code, exc.code.value, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_body(422, "VALIDATION_ERROR", "Request validation failed", details=exc.errors())


@app.exception_handler(Exception)
async def generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    # Units of work have already rolled back by the time a failure gets here.
    logger.exception("unhandled_exception", exc_info=exc)
    return _error_body(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An internal server error occurred",
    )
