"""Re-run club units of work after transient database failures.

Membership writes (joins, approvals, invite redemptions) each commit one
transaction. When Postgres drops the connection, reports a deadlock or a
serialization failure, the whole unit is safe to repeat once the session has
been rolled back, so these functions are wrapped with ``db_retry``:

    @db_retry
    async def join_club(session: AsyncSession, club_id: UUID, user_id: UUID) -> Membership:
        ...
        try:
            ...
            await session.commit()
        except Exception:
            await session.rollback()
            raise

Only ``OperationalError`` triggers another attempt. ``ClubError`` outcomes and
``IntegrityError`` are answers, not glitches, and surface on the first try.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import OperationalError
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from club_membership.core.logging import get_logging_context

LOGGER = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_WAIT_MULTIPLIER = 1
DEFAULT_MIN_WAIT = 1
DEFAULT_MAX_WAIT = 10


def _log_retry_attempt(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    LOGGER.warning(
        "db_operation_retry",
        extra={
            **get_logging_context(),
            "operation": getattr(retry_state.fn, "__name__", "unknown"),
            "attempt": retry_state.attempt_number,
            "wait_seconds": retry_state.next_action.sleep if retry_state.next_action else 0,
            "exception_type": type(error).__name__ if error else "unknown",
        },
    )


def create_db_retry(
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    wait_multiplier: int = DEFAULT_WAIT_MULTIPLIER,
    min_wait: int = DEFAULT_MIN_WAIT,
    max_wait: int = DEFAULT_MAX_WAIT,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Build a retry decorator for one unit of work.

    Waits grow exponentially from ``min_wait`` to ``max_wait`` seconds. After
    ``max_attempts`` the last ``OperationalError`` is re-raised unchanged.
    """
    return retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=wait_multiplier, min=min_wait, max=max_wait),
        before_sleep=_log_retry_attempt,
        reraise=True,
    )


db_retry: Callable[[Callable[P, T]], Callable[P, T]] = create_db_retry()
