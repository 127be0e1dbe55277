"""Join-request workflow for PRIVATE clubs.

A request moves PENDING -> APPROVED or PENDING -> REJECTED exactly once.
Approval activates the requester's membership and flips the request in the
same transaction, so neither can be observed without the other.
"""

from __future__ import annotations

import logging
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col

from club_membership.core.errors import ClubError, ClubErrorCode
from club_membership.core.logging import log_with_context
from club_membership.core.metrics import join_requests_total, memberships_activated_total
from club_membership.core.permissions import require_permission
from club_membership.db.retry import db_retry
from club_membership.models.base import utcnow
from club_membership.models.club import ClubVisibility
from club_membership.models.membership import ClubRole, Membership, MembershipStatus
from club_membership.models.membership_request import MembershipRequest, RequestStatus
from club_membership.services.membership_service import (
    dialect_insert,
    get_club_or_404,
    get_membership,
    membership_conflict,
    touch_last_active,
    upsert_active_membership,
)

LOGGER = logging.getLogger(__name__)


async def get_request(session: AsyncSession, request_id: UUID) -> MembershipRequest | None:
    return await session.get(MembershipRequest, request_id)


async def get_request_for_user(
    session: AsyncSession,
    club_id: UUID,
    user_id: UUID,
) -> MembershipRequest | None:
    result = await session.execute(
        select(MembershipRequest).where(
            col(MembershipRequest.club_id) == club_id,
            col(MembershipRequest.user_id) == user_id,
        )
    )
    return result.scalar_one_or_none()


@db_retry
async def request_to_join(
    session: AsyncSession,
    club_id: UUID,
    user_id: UUID,
    message: str | None = None,
) -> MembershipRequest:
    """Ask to join a PRIVATE club.

    ACTIVE members and banned users cannot ask. There is at most one
    request row per (club, user): asking again after a review overwrites
    the old row back to PENDING and clears the review.
    """
    club = await get_club_or_404(session, club_id)
    conflict = membership_conflict(await get_membership(session, club_id, user_id))
    if conflict is not None:
        raise ClubError(conflict)
    if club.visibility == ClubVisibility.PUBLIC:
        raise ClubError(ClubErrorCode.PUBLIC_CLUB_NO_REQUEST_NEEDED)
    if club.visibility == ClubVisibility.INVITE_ONLY:
        raise ClubError(ClubErrorCode.INVITE_ONLY_CLUB)

    existing = await get_request_for_user(session, club_id, user_id)
    if existing is not None and existing.status == RequestStatus.PENDING:
        raise ClubError(ClubErrorCode.REQUEST_ALREADY_PENDING)

    now = utcnow()
    stmt = dialect_insert(session, MembershipRequest).values(
        id=uuid4(),
        club_id=club_id,
        user_id=user_id,
        status=RequestStatus.PENDING,
        message=message,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["club_id", "user_id"],
        set_={
            "status": stmt.excluded.status,
            "message": stmt.excluded.message,
            "reviewed_by": None,
            "reviewed_at": None,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    try:
        await session.execute(stmt)
        result = await session.execute(
            select(MembershipRequest)
            .where(
                col(MembershipRequest.club_id) == club_id,
                col(MembershipRequest.user_id) == user_id,
            )
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one()
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    join_requests_total.labels(outcome="submitted").inc()
    log_with_context(
        LOGGER,
        logging.INFO,
        "membership_requested",
        extra={"club_id": str(club_id), "user_id": str(user_id), "request_id": str(request.id)},
    )
    return request


async def list_pending_requests(
    session: AsyncSession,
    club_id: UUID,
    caller_id: UUID,
) -> list[MembershipRequest]:
    """PENDING requests for a club, oldest first. Requires ADMIN."""
    await get_club_or_404(session, club_id)
    await require_permission(session, club_id, caller_id, ClubRole.ADMIN)

    result = await session.execute(
        select(MembershipRequest)
        .where(
            col(MembershipRequest.club_id) == club_id,
            col(MembershipRequest.status) == RequestStatus.PENDING,
        )
        .order_by(col(MembershipRequest.created_at))
    )
    return list(result.scalars().all())


async def _get_reviewable_request(
    session: AsyncSession,
    club_id: UUID,
    request_id: UUID,
    reviewer_id: UUID,
) -> MembershipRequest:
    await require_permission(session, club_id, reviewer_id, ClubRole.ADMIN)

    request = await get_request(session, request_id)
    if request is None or request.club_id != club_id:
        raise ClubError(ClubErrorCode.REQUEST_NOT_FOUND)
    if request.status != RequestStatus.PENDING:
        raise ClubError(ClubErrorCode.REQUEST_ALREADY_REVIEWED)
    return request


async def _close_request(
    session: AsyncSession,
    request_id: UUID,
    outcome: RequestStatus,
    reviewer_id: UUID,
) -> MembershipRequest:
    """Move a PENDING request to ``outcome`` inside the current transaction.

    The WHERE clause re-checks PENDING when the row is written, so of two
    concurrent reviews only one matches; the other gets REQUEST_ALREADY_REVIEWED.
    """
    now = utcnow()
    result = await session.execute(
        update(MembershipRequest)
        .where(
            col(MembershipRequest.id) == request_id,
            col(MembershipRequest.status) == RequestStatus.PENDING,
        )
        .values(status=outcome, reviewed_by=reviewer_id, reviewed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ClubError(ClubErrorCode.REQUEST_ALREADY_REVIEWED)

    reloaded = await session.execute(
        select(MembershipRequest)
        .where(col(MembershipRequest.id) == request_id)
        .execution_options(populate_existing=True)
    )
    return reloaded.scalar_one()


@db_retry
async def approve_request(
    session: AsyncSession,
    club_id: UUID,
    request_id: UUID,
    approver_id: UUID,
) -> tuple[MembershipRequest, Membership]:
    """Approve a pending request.

    Marks the request APPROVED, activates the requester's membership and
    touches the club's activity time, all in one commit. A requester who is
    already ACTIVE keeps their role.
    """
    club = await get_club_or_404(session, club_id)
    pending = await _get_reviewable_request(session, club_id, request_id, approver_id)
    requester_id = pending.user_id
    existing = await get_membership(session, club_id, requester_id)
    if existing is not None and existing.status == MembershipStatus.BANNED:
        raise ClubError(ClubErrorCode.BANNED_FROM_CLUB)

    try:
        request = await _close_request(session, request_id, RequestStatus.APPROVED, approver_id)
        membership = await upsert_active_membership(session, club_id, requester_id)
        touch_last_active(session, club)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    join_requests_total.labels(outcome="approved").inc()
    memberships_activated_total.labels(source="approval").inc()
    log_with_context(
        LOGGER,
        logging.INFO,
        "request_approved",
        extra={
            "club_id": str(club_id),
            "request_id": str(request_id),
            "user_id": str(requester_id),
            "approved_by": str(approver_id),
        },
    )
    return request, membership


async def reject_request(
    session: AsyncSession,
    club_id: UUID,
    request_id: UUID,
    reviewer_id: UUID,
) -> MembershipRequest:
    """Reject a pending request. Membership is not touched."""
    await get_club_or_404(session, club_id)
    await _get_reviewable_request(session, club_id, request_id, reviewer_id)

    try:
        request = await _close_request(session, request_id, RequestStatus.REJECTED, reviewer_id)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    join_requests_total.labels(outcome="rejected").inc()
    log_with_context(
        LOGGER,
        logging.INFO,
        "request_rejected",
        extra={
            "club_id": str(club_id),
            "request_id": str(request_id),
            "user_id": str(request.user_id),
            "rejected_by": str(reviewer_id),
        },
    )
    return request
