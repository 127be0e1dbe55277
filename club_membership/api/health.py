"""Liveness endpoint backed by a bounded database round trip."""

import asyncio
import logging
import time

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from club_membership.core.logging import log_with_context
from club_membership.db.session import SessionDep

LOGGER = logging.getLogger(__name__)
router = APIRouter(tags=["health"])
HEALTH_DB_TIMEOUT_SECONDS = 2.0


@router.get("/health")
async def health(session: SessionDep) -> dict[str, str]:
    """Report ``ok`` when the membership store answers ``SELECT 1`` in time.

    Raises:
        HTTPException: 503 if the database is unreachable, failing or slow
    """
    started = time.perf_counter()
    try:
        await asyncio.wait_for(session.execute(text("SELECT 1")), timeout=HEALTH_DB_TIMEOUT_SECONDS)
    except TimeoutError as exc:
        log_with_context(
            LOGGER,
            logging.WARNING,
            "health_check_timeout",
            extra={"timeout_seconds": HEALTH_DB_TIMEOUT_SECONDS},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database timeout",
        ) from exc
    except DBAPIError as exc:
        # OperationalError and the other driver-level failures
        log_with_context(
            LOGGER,
            logging.ERROR,
            "health_check_database_error",
            extra={"exception_type": type(exc).__name__},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        ) from exc

    log_with_context(
        LOGGER,
        logging.DEBUG,
        "health_check_success",
        extra={"db_response_time_ms": round((time.perf_counter() - started) * 1000, 2)},
    )
    return {"status": "ok", "database": "ok"}
