"""Membership store: the single source of truth for who belongs to a club."""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col

from club_membership.core.errors import ClubError, ClubErrorCode
from club_membership.models.base import as_utc, utcnow
from club_membership.models.club import Club
from club_membership.models.membership import ROLE_RANK, ClubRole, Membership, MembershipStatus

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(session: AsyncSession, table: type) -> sa.Insert:
    """Return an INSERT supporting ``on_conflict_do_update`` for the bound backend."""
    dialect_name = session.get_bind().dialect.name
    try:
        insert_factory = _UPSERT_DIALECTS[dialect_name]
    except KeyError as err:
        msg = f"Upserts are not supported on the {dialect_name!r} dialect"
        raise NotImplementedError(msg) from err
    return insert_factory(table)


async def get_club(session: AsyncSession, club_id: UUID) -> Club | None:
    return await session.get(Club, club_id)


async def get_club_or_404(session: AsyncSession, club_id: UUID) -> Club:
    club = await get_club(session, club_id)
    if club is None:
        raise ClubError(ClubErrorCode.CLUB_NOT_FOUND)
    return club


def touch_last_active(session: AsyncSession, club: Club, now: datetime | None = None) -> None:
    club.last_active_at = now or utcnow()
    session.add(club)


async def get_membership(session: AsyncSession, club_id: UUID, user_id: UUID) -> Membership | None:
    result = await session.execute(
        select(Membership)
        .where(
            col(Membership.club_id) == club_id,
            col(Membership.user_id) == user_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_membership(session: AsyncSession, club_id: UUID, user_id: UUID) -> Membership | None:
    result = await session.execute(
        select(Membership).where(
            col(Membership.club_id) == club_id,
            col(Membership.user_id) == user_id,
            col(Membership.status) == MembershipStatus.ACTIVE,
        )
    )
    return result.scalar_one_or_none()


def _activation_upsert(
    session: AsyncSession,
    club_id: UUID,
    user_id: UUID,
    role: ClubRole,
    invited_by: UUID | None,
    reusable: Collection[MembershipStatus] | None,
) -> sa.Insert:
    now = utcnow()
    stmt = dialect_insert(session, Membership).values(
        id=uuid4(),
        club_id=club_id,
        user_id=user_id,
        role=role,
        status=MembershipStatus.ACTIVE,
        joined_at=now,
        invited_by=invited_by,
        created_at=now,
        updated_at=now,
    )
    # SET expressions read the row as it was before the update.
    return stmt.on_conflict_do_update(
        index_elements=["club_id", "user_id"],
        set_={
            "status": stmt.excluded.status,
            "role": sa.case(
                (col(Membership.status) == MembershipStatus.ACTIVE, col(Membership.role)),
                (col(Membership.role) == ClubRole.OWNER, col(Membership.role)),
                else_=stmt.excluded.role,
            ),
            "invited_by": func.coalesce(stmt.excluded.invited_by, col(Membership.invited_by)),
            "updated_at": stmt.excluded.updated_at,
        },
        where=col(Membership.status).in_(list(reusable)) if reusable is not None else None,
    )


async def upsert_active_membership(
    session: AsyncSession,
    club_id: UUID,
    user_id: UUID,
    *,
    role: ClubRole = ClubRole.MEMBER,
    invited_by: UUID | None = None,
) -> Membership:
    """Insert or reactivate the (club, user) membership row.

    Runs as one ``INSERT ... ON CONFLICT DO UPDATE`` so concurrent joins for the
    same pair converge on a single row. A reused row becomes ACTIVE with
    ``role``, except that a row that is already ACTIVE or holds OWNER keeps its
    role; ``joined_at`` is preserved and ``invited_by`` is only overwritten
    when a new inviter is given.

    Does not commit; callers include it in their own unit of work.
    """
    await session.execute(_activation_upsert(session, club_id, user_id, role, invited_by, None))
    membership = await get_membership(session, club_id, user_id)
    if membership is None:
        msg = f"membership for club {club_id} and user {user_id} vanished after upsert"
        raise RuntimeError(msg)
    return membership


async def activate_membership_from(
    session: AsyncSession,
    club_id: UUID,
    user_id: UUID,
    reusable: Collection[MembershipStatus],
    *,
    role: ClubRole = ClubRole.MEMBER,
    invited_by: UUID | None = None,
) -> Membership | None:
    """Like ``upsert_active_membership`` but only reuses rows in ``reusable`` statuses.

    The status check happens inside the upsert, so a row activated or banned by
    a concurrent transaction is seen. Returns None when an existing row blocks
    activation; nothing is written in that case.
    """
    stmt = _activation_upsert(session, club_id, user_id, role, invited_by, reusable)
    result = await session.execute(stmt.returning(col(Membership.id)))
    if result.scalar_one_or_none() is None:
        return None
    return await get_membership(session, club_id, user_id)


def membership_conflict(membership: Membership | None) -> ClubErrorCode | None:
    """Error code for a caller whose current membership forbids joining again."""
    if membership is None:
        return None
    if membership.status == MembershipStatus.ACTIVE:
        return ClubErrorCode.ALREADY_MEMBER
    if membership.status == MembershipStatus.BANNED:
        return ClubErrorCode.BANNED_FROM_CLUB
    return None


async def admit_member(
    session: AsyncSession,
    club_id: UUID,
    user_id: UUID,
    *,
    invited_by: UUID | None = None,
) -> Membership:
    """Activate a MEMBER row for someone who is neither ACTIVE nor BANNED.

    Raises:
        ClubError: ALREADY_MEMBER or BANNED_FROM_CLUB when the existing row,
            as the database sees it at upsert time, forbids joining
    """
    membership = await activate_membership_from(
        session, club_id, user_id, (MembershipStatus.LEFT,), invited_by=invited_by
    )
    if membership is None:
        existing = await get_membership(session, club_id, user_id)
        raise ClubError(membership_conflict(existing) or ClubErrorCode.ALREADY_MEMBER)
    return membership


async def set_membership_status(
    session: AsyncSession,
    membership: Membership,
    status: MembershipStatus,
) -> Membership:
    """Soft status change; rows are never deleted so join history survives."""
    membership.status = status
    membership.updated_at = utcnow()
    session.add(membership)
    await session.flush()
    return membership


async def set_membership_role(session: AsyncSession, membership: Membership, role: ClubRole) -> Membership:
    membership.role = role
    membership.updated_at = utcnow()
    session.add(membership)
    await session.flush()
    return membership


async def count_active_members(session: AsyncSession, club_id: UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Membership)
        .where(
            col(Membership.club_id) == club_id,
            col(Membership.status) == MembershipStatus.ACTIVE,
        )
    )
    return int(result.scalar_one())


async def count_active_members_by_club(session: AsyncSession, club_ids: list[UUID]) -> dict[UUID, int]:
    if not club_ids:
        return {}
    result = await session.execute(
        select(col(Membership.club_id), func.count())
        .where(
            col(Membership.club_id).in_(club_ids),
            col(Membership.status) == MembershipStatus.ACTIVE,
        )
        .group_by(col(Membership.club_id))
    )
    return {club_id: int(count) for club_id, count in result.all()}


async def list_active_members(session: AsyncSession, club_id: UUID) -> list[Membership]:
    """Active roster, highest role first, then by join date."""
    result = await session.execute(
        select(Membership)
        .where(
            col(Membership.club_id) == club_id,
            col(Membership.status) == MembershipStatus.ACTIVE,
        )
    )
    members = list(result.scalars().all())
    return sorted(members, key=lambda member: (ROLE_RANK[member.role], as_utc(member.joined_at)))


async def list_clubs_for_user(session: AsyncSession, user_id: UUID) -> list[Club]:
    """Clubs where the user's membership is ACTIVE, most recently active first."""
    result = await session.execute(
        select(Club)
        .join(Membership, col(Membership.club_id) == col(Club.id))
        .where(
            col(Membership.user_id) == user_id,
            col(Membership.status) == MembershipStatus.ACTIVE,
        )
        .order_by(col(Club.last_active_at).desc())
    )
    return list(result.scalars().all())


async def active_club_ids_for_user(session: AsyncSession, user_id: UUID) -> set[UUID]:
    result = await session.execute(
        select(col(Membership.club_id)).where(
            col(Membership.user_id) == user_id,
            col(Membership.status) == MembershipStatus.ACTIVE,
        )
    )
    return set(result.scalars().all())
