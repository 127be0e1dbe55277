"""Tests for the database retry decorator."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from club_membership.core.errors import ClubError, ClubErrorCode
from club_membership.db.retry import DEFAULT_MAX_ATTEMPTS, create_db_retry

# No backoff in tests
fast_retry = create_db_retry(min_wait=0, max_wait=0, wait_multiplier=0)


def _operational_error() -> OperationalError:
    return OperationalError("database is locked", None, None)


class TestDbRetry:
    @pytest.mark.asyncio
    async def test_retries_operational_error(self) -> None:
        calls = 0

        @fast_retry
        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 2:
                raise _operational_error()
            return "ok"

        assert await flaky() == "ok"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self) -> None:
        calls = 0

        @fast_retry
        async def always_fails() -> None:
            nonlocal calls
            calls += 1
            raise _operational_error()

        with pytest.raises(OperationalError):
            await always_fails()
        assert calls == DEFAULT_MAX_ATTEMPTS

    @pytest.mark.asyncio
    async def test_domain_errors_are_not_retried(self) -> None:
        calls = 0

        @fast_retry
        async def denied() -> None:
            nonlocal calls
            calls += 1
            raise ClubError(ClubErrorCode.INSUFFICIENT_PERMISSIONS)

        with pytest.raises(ClubError):
            await denied()
        assert calls == 1

    @pytest.mark.asyncio
    async def test_integrity_errors_are_not_retried(self) -> None:
        calls = 0

        @fast_retry
        async def duplicate() -> None:
            nonlocal calls
            calls += 1
            raise IntegrityError("duplicate", None, Exception())

        with pytest.raises(IntegrityError):
            await duplicate()
        assert calls == 1

    @pytest.mark.asyncio
    async def test_logs_each_retry(self) -> None:
        calls = 0

        @fast_retry
        async def flaky() -> None:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise _operational_error()

        with patch("club_membership.db.retry.LOGGER") as logger:
            await flaky()
        assert logger.warning.call_count == 2
        assert logger.warning.call_args.args[0] == "db_operation_retry"
