"""Invite issuance, lookup, redemption and deletion.

Redemption is the concurrency-sensitive path. Many callers may race for the
last remaining use of one code, so the usage counter is only ever advanced by
a conditional UPDATE whose WHERE clause re-checks the cap and the expiry. The
increment and the membership upsert commit together or not at all.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col

from club_membership.core.config import settings
from club_membership.core.errors import ClubError, ClubErrorCode
from club_membership.core.invite_codes import generate_invite_code
from club_membership.core.logging import log_with_context
from club_membership.core.metrics import (
    database_query_duration_seconds,
    invite_redemptions_total,
    memberships_activated_total,
)
from club_membership.core.permissions import require_permission
from club_membership.db.retry import db_retry
from club_membership.models.base import utcnow
from club_membership.models.club import Club
from club_membership.models.invite import Invite, InviteCreate, InvitePreview
from club_membership.models.membership import ClubRole, Membership
from club_membership.services.membership_service import (
    admit_member,
    count_active_members,
    get_club_or_404,
    get_membership,
    membership_conflict,
    touch_last_active,
)

LOGGER = logging.getLogger(__name__)


async def get_invite(session: AsyncSession, invite_id: UUID) -> Invite | None:
    return await session.get(Invite, invite_id)


async def get_invite_by_code(session: AsyncSession, code: str) -> Invite | None:
    result = await session.execute(
        select(Invite).where(col(Invite.code) == code).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def generate_unique_code(session: AsyncSession) -> str:
    """Draw codes until one is not already stored.

    Raises:
        ClubError: INVITE_CODE_EXHAUSTED after ``invite_code_max_attempts`` collisions
    """
    for _ in range(settings.invite_code_max_attempts):
        code = generate_invite_code(settings.invite_code_length)
        if await get_invite_by_code(session, code) is None:
            return code
    log_with_context(
        LOGGER,
        logging.ERROR,
        "invite_code_exhausted",
        extra={"attempts": settings.invite_code_max_attempts, "code_length": settings.invite_code_length},
    )
    raise ClubError(ClubErrorCode.INVITE_CODE_EXHAUSTED)


async def issue_invite(
    session: AsyncSession,
    club_id: UUID,
    created_by: UUID,
    *,
    max_uses: int | None = None,
    expires_at: datetime | None = None,
) -> Invite:
    """Add an invite with a fresh code to the current unit of work. Does not commit."""
    invite = Invite(
        club_id=club_id,
        code=await generate_unique_code(session),
        created_by=created_by,
        max_uses=max_uses,
        expires_at=expires_at,
    )
    session.add(invite)
    await session.flush()
    return invite


async def create_invite(
    session: AsyncSession,
    club_id: UUID,
    caller_id: UUID,
    payload: InviteCreate,
) -> Invite:
    """Mint an invite. Any ACTIVE member may do this, whatever their role."""
    await get_club_or_404(session, club_id)
    await require_permission(session, club_id, caller_id, ClubRole.MEMBER)

    expires_at = None
    if payload.expires_in_days is not None:
        expires_at = utcnow() + timedelta(days=payload.expires_in_days)

    try:
        invite = await issue_invite(
            session,
            club_id,
            caller_id,
            max_uses=payload.max_uses,
            expires_at=expires_at,
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    log_with_context(
        LOGGER,
        logging.INFO,
        "invite_created",
        extra={
            "club_id": str(club_id),
            "invite_id": str(invite.id),
            "max_uses": payload.max_uses,
            "expires_in_days": payload.expires_in_days,
        },
    )
    return invite


async def get_invite_preview(session: AsyncSession, code: str) -> InvitePreview:
    """Resolve a code to what it admits to, without redeeming it."""
    invite = await get_invite_by_code(session, code)
    if invite is None:
        raise ClubError(ClubErrorCode.INVALID_INVITE)
    club = await get_club_or_404(session, invite.club_id)

    uses_remaining = None
    if invite.max_uses is not None:
        uses_remaining = max(invite.max_uses - invite.current_uses, 0)

    return InvitePreview(
        code=invite.code,
        club_id=club.id,
        club_name=club.name,
        club_description=club.description,
        club_image_url=club.image_url,
        club_visibility=club.visibility,
        member_count=await count_active_members(session, club.id),
        expires_at=invite.expires_at,
        uses_remaining=uses_remaining,
    )


async def list_invites(session: AsyncSession, club_id: UUID, caller_id: UUID) -> list[Invite]:
    """All invites of a club, newest first. Only the club creator may list them."""
    club = await get_club_or_404(session, club_id)
    if club.creator_id != caller_id:
        raise ClubError(ClubErrorCode.INSUFFICIENT_PERMISSIONS)

    result = await session.execute(
        select(Invite).where(col(Invite.club_id) == club_id).order_by(col(Invite.created_at).desc())
    )
    return list(result.scalars().all())


async def get_shareable_invite(session: AsyncSession, club_id: UUID, caller_id: UUID) -> Invite:
    """Oldest permanent invite of the club, minted for the caller if none exists."""
    await get_club_or_404(session, club_id)
    await require_permission(session, club_id, caller_id, ClubRole.MEMBER)

    result = await session.execute(
        select(Invite)
        .where(
            col(Invite.club_id) == club_id,
            col(Invite.max_uses).is_(None),
            col(Invite.expires_at).is_(None),
        )
        .order_by(col(Invite.created_at))
        .limit(1)
    )
    invite = result.scalar_one_or_none()
    if invite is not None:
        return invite

    try:
        invite = await issue_invite(session, club_id, caller_id)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    log_with_context(
        LOGGER,
        logging.INFO,
        "invite_created",
        extra={"club_id": str(club_id), "invite_id": str(invite.id), "shareable": True},
    )
    return invite


async def _claim_invite_use(session: AsyncSession, invite_id: UUID, now: datetime) -> bool:
    """Advance ``current_uses`` by one if the invite is still usable at ``now``.

    The cap and expiry are evaluated by the database against the row as it is
    when the UPDATE runs, so two concurrent claims cannot both take the last use.
    """
    with database_query_duration_seconds.labels(query_type="invite_claim").time():
        result = await session.execute(
            update(Invite)
            .where(
                col(Invite.id) == invite_id,
                or_(
                    col(Invite.max_uses).is_(None),
                    col(Invite.current_uses) < col(Invite.max_uses),
                ),
                or_(
                    col(Invite.expires_at).is_(None),
                    col(Invite.expires_at) > now,
                ),
            )
            .values(current_uses=col(Invite.current_uses) + 1)
            .execution_options(synchronize_session=False)
        )
    return result.rowcount == 1


async def _unclaimable_reason(session: AsyncSession, invite_id: UUID, now: datetime) -> ClubErrorCode:
    result = await session.execute(
        select(Invite).where(col(Invite.id) == invite_id).execution_options(populate_existing=True)
    )
    invite = result.scalar_one_or_none()
    if invite is None:
        return ClubErrorCode.INVALID_INVITE
    if invite.is_expired(now):
        return ClubErrorCode.INVITE_EXPIRED
    return ClubErrorCode.INVITE_MAX_USES_REACHED


async def redeem_invite_use(
    session: AsyncSession,
    invite: Invite,
    user_id: UUID,
    now: datetime | None = None,
) -> Membership:
    """Atomic unit: activate the caller's membership and claim one use of ``invite``.

    ``invite`` may be stale; nothing is trusted from it beyond its identity,
    club and creator. The membership is written first and only reuses a LEFT
    row, so a caller who became ACTIVE in a concurrent transaction never
    spends a second use. Either both rows change and commit, or neither does.

    Raises:
        ClubError: ALREADY_MEMBER or BANNED_FROM_CLUB from the membership
            write; INVITE_EXPIRED, INVITE_MAX_USES_REACHED or INVALID_INVITE
            when the claim finds the invite no longer usable
    """
    now = now or utcnow()
    invite_id, club_id, created_by = invite.id, invite.club_id, invite.created_by

    try:
        membership = await admit_member(session, club_id, user_id, invited_by=created_by)
        if not await _claim_invite_use(session, invite_id, now):
            raise ClubError(await _unclaimable_reason(session, invite_id, now))
        club = await session.get(Club, club_id)
        if club is not None:
            touch_last_active(session, club, now)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return membership


@db_retry
async def redeem_invite(session: AsyncSession, code: str, user_id: UUID) -> Membership:
    """Join a club by invite code.

    Steps:
    1. INVALID_INVITE if the code is unknown
    2. INVITE_EXPIRED if the expiry has passed
    3. INVITE_MAX_USES_REACHED if the cap is already used up
    4. ALREADY_MEMBER / BANNED_FROM_CLUB from the caller's current membership
    5. Activate the membership and claim a use in one transaction; both writes
       re-validate steps 2 to 4 inside the database
    """
    now = utcnow()
    try:
        invite = await get_invite_by_code(session, code)
        if invite is None:
            raise ClubError(ClubErrorCode.INVALID_INVITE)
        if invite.is_expired(now):
            raise ClubError(ClubErrorCode.INVITE_EXPIRED)
        if invite.is_exhausted:
            raise ClubError(ClubErrorCode.INVITE_MAX_USES_REACHED)
        conflict = membership_conflict(await get_membership(session, invite.club_id, user_id))
        if conflict is not None:
            raise ClubError(conflict)

        invite_id, invited_by = invite.id, invite.created_by
        membership = await redeem_invite_use(session, invite, user_id, now)
    except ClubError as err:
        invite_redemptions_total.labels(outcome=err.code.value.lower()).inc()
        raise
    except Exception:
        await session.rollback()
        raise

    invite_redemptions_total.labels(outcome="redeemed").inc()
    memberships_activated_total.labels(source="invite").inc()
    log_with_context(
        LOGGER,
        logging.INFO,
        "invite_redeemed",
        extra={
            "club_id": str(membership.club_id),
            "user_id": str(user_id),
            "invite_id": str(invite_id),
            "invited_by": str(invited_by),
        },
    )
    return membership


async def delete_invite(
    session: AsyncSession,
    invite_id: UUID,
    caller_id: UUID,
    club_id: UUID | None = None,
) -> None:
    """Delete an invite. Allowed for the club creator or the invite's own creator.

    When ``club_id`` is given, an invite belonging to another club is reported
    as not found.
    """
    invite = await get_invite(session, invite_id)
    if invite is None or (club_id is not None and invite.club_id != club_id):
        raise ClubError(ClubErrorCode.INVITE_NOT_FOUND)

    club = await get_club_or_404(session, invite.club_id)
    if caller_id not in (club.creator_id, invite.created_by):
        raise ClubError(ClubErrorCode.INSUFFICIENT_PERMISSIONS)

    try:
        await session.delete(invite)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    log_with_context(
        LOGGER,
        logging.INFO,
        "invite_deleted",
        extra={"club_id": str(club.id), "invite_id": str(invite_id)},
    )
