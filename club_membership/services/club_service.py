"""Club lifecycle, direct joins, leaving and member management."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col

from club_membership.core.config import settings
from club_membership.core.errors import ClubError, ClubErrorCode
from club_membership.core.logging import log_with_context
from club_membership.core.metrics import clubs_created_total, memberships_activated_total
from club_membership.core.permissions import require_permission
from club_membership.db.retry import db_retry
from club_membership.models.base import utcnow
from club_membership.models.club import Club, ClubCreate, ClubSummary, ClubUpdate, ClubVisibility
from club_membership.models.invite import Invite
from club_membership.models.membership import ClubRole, Membership, MembershipRead, MembershipStatus
from club_membership.models.membership_request import MembershipRequest, RequestStatus
from club_membership.models.room import Room, RoomRead
from club_membership.models.shared import ClubDetail, ClubPreview
from club_membership.services.invite_service import issue_invite
from club_membership.services.membership_service import (
    active_club_ids_for_user,
    admit_member,
    count_active_members,
    count_active_members_by_club,
    get_active_membership,
    get_club_or_404,
    get_membership,
    list_active_members,
    list_clubs_for_user,
    membership_conflict,
    set_membership_role,
    set_membership_status,
    touch_last_active,
)

LOGGER = logging.getLogger(__name__)


@db_retry
async def create_club(session: AsyncSession, creator_id: UUID, payload: ClubCreate) -> Club:
    """Create a club together with everything it needs to be usable.

    One transaction inserts the club, the creator's OWNER membership, the
    default room and (when enabled) a permanent invite.
    """
    if not payload.name:
        raise ClubError(ClubErrorCode.INVALID_CLUB_NAME)

    club = Club(**payload.model_dump(), creator_id=creator_id)
    try:
        session.add(club)
        await session.flush()
        session.add(
            Membership(
                club_id=club.id,
                user_id=creator_id,
                role=ClubRole.OWNER,
                status=MembershipStatus.ACTIVE,
            )
        )
        session.add(Room(club_id=club.id, name=settings.default_room_name))
        if settings.seed_default_invite:
            await issue_invite(session, club.id, creator_id)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    clubs_created_total.labels(environment=settings.environment, visibility=club.visibility.value).inc()
    log_with_context(
        LOGGER,
        logging.INFO,
        "club_created",
        extra={"club_id": str(club.id), "visibility": club.visibility.value},
    )
    return club


async def update_club(
    session: AsyncSession,
    club_id: UUID,
    caller_id: UUID,
    payload: ClubUpdate,
) -> Club:
    """Apply a partial settings update. Requires ADMIN."""
    club = await get_club_or_404(session, club_id)
    await require_permission(session, club_id, caller_id, ClubRole.ADMIN)

    updates = payload.model_dump(exclude_unset=True)
    if "name" in updates and not updates["name"]:
        raise ClubError(ClubErrorCode.INVALID_CLUB_NAME)
    if updates.get("visibility", club.visibility) is None:
        updates.pop("visibility")

    for field, value in updates.items():
        setattr(club, field, value)
    club.updated_at = utcnow()
    session.add(club)
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    log_with_context(
        LOGGER,
        logging.INFO,
        "club_updated",
        extra={"club_id": str(club_id), "fields": sorted(updates)},
    )
    return club


@db_retry
async def delete_club(session: AsyncSession, club_id: UUID, caller_id: UUID) -> None:
    """Delete a club and every row that depends on it. Requires OWNER."""
    club = await get_club_or_404(session, club_id)
    await require_permission(session, club_id, caller_id, ClubRole.OWNER)

    try:
        for model in (Room, Invite, MembershipRequest, Membership):
            await session.execute(delete(model).where(col(model.club_id) == club_id))
        await session.delete(club)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    log_with_context(LOGGER, logging.INFO, "club_deleted", extra={"club_id": str(club_id)})


@db_retry
async def join_club(session: AsyncSession, club_id: UUID, user_id: UUID) -> Membership:
    """Join a PUBLIC club directly.

    Existing membership state is checked before visibility, so an active
    member of a private club still hears ALREADY_MEMBER rather than
    REQUIRES_APPROVAL.
    """
    club = await get_club_or_404(session, club_id)

    conflict = membership_conflict(await get_membership(session, club_id, user_id))
    if conflict is not None:
        raise ClubError(conflict)
    if club.visibility != ClubVisibility.PUBLIC:
        raise ClubError(ClubErrorCode.REQUIRES_APPROVAL)

    try:
        membership = await admit_member(session, club_id, user_id)
        touch_last_active(session, club)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    memberships_activated_total.labels(source="join").inc()
    log_with_context(
        LOGGER,
        logging.INFO,
        "club_joined",
        extra={"club_id": str(club_id), "user_id": str(user_id)},
    )
    return membership


async def leave_club(session: AsyncSession, club_id: UUID, user_id: UUID) -> Membership:
    """Leave a club.

    The owner may only leave once nobody else is active; leaving then
    retires the club rather than handing it over.
    """
    await get_club_or_404(session, club_id)

    membership = await get_active_membership(session, club_id, user_id)
    if membership is None:
        raise ClubError(ClubErrorCode.NOT_A_MEMBER)

    if membership.role == ClubRole.OWNER:
        other_active = await count_active_members(session, club_id) - 1
        if other_active > 0:
            raise ClubError(ClubErrorCode.OWNER_MUST_TRANSFER_OWNERSHIP)

    try:
        await set_membership_status(session, membership, MembershipStatus.LEFT)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    log_with_context(
        LOGGER,
        logging.INFO,
        "club_left",
        extra={"club_id": str(club_id), "user_id": str(user_id), "role": membership.role.value},
    )
    return membership


async def remove_member(
    session: AsyncSession,
    club_id: UUID,
    target_user_id: UUID,
    remover_id: UUID,
) -> Membership:
    """Soft-remove an active member. Requires ADMIN; the owner can never be removed."""
    await get_club_or_404(session, club_id)
    await require_permission(session, club_id, remover_id, ClubRole.ADMIN)

    target = await get_membership(session, club_id, target_user_id)
    if target is None or target.status != MembershipStatus.ACTIVE:
        raise ClubError(ClubErrorCode.MEMBER_NOT_FOUND)
    if target.role == ClubRole.OWNER:
        raise ClubError(ClubErrorCode.CANNOT_REMOVE_OWNER)

    try:
        await set_membership_status(session, target, MembershipStatus.LEFT)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    log_with_context(
        LOGGER,
        logging.INFO,
        "member_removed",
        extra={
            "club_id": str(club_id),
            "target_user_id": str(target_user_id),
            "removed_by": str(remover_id),
        },
    )
    return target


async def update_member_role(
    session: AsyncSession,
    club_id: UUID,
    target_user_id: UUID,
    new_role: ClubRole,
    caller_id: UUID,
) -> Membership:
    """Reassign a member's role. Only the owner may do this.

    OWNER is neither assignable nor removable through this operation.
    """
    await get_club_or_404(session, club_id)
    await require_permission(session, club_id, caller_id, ClubRole.OWNER)

    if new_role == ClubRole.OWNER:
        raise ClubError(ClubErrorCode.CANNOT_CHANGE_OWNER_ROLE)

    target = await get_membership(session, club_id, target_user_id)
    if target is None:
        raise ClubError(ClubErrorCode.MEMBER_NOT_FOUND)
    if target.role == ClubRole.OWNER:
        raise ClubError(ClubErrorCode.CANNOT_CHANGE_OWNER_ROLE)

    previous_role = target.role
    try:
        await set_membership_role(session, target, new_role)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    log_with_context(
        LOGGER,
        logging.INFO,
        "member_role_updated",
        extra={
            "club_id": str(club_id),
            "target_user_id": str(target_user_id),
            "previous_role": previous_role.value,
            "new_role": new_role.value,
        },
    )
    return target


async def discover_clubs(
    session: AsyncSession,
    caller_id: UUID | None = None,
    category: str | None = None,
) -> list[ClubSummary]:
    """Clubs a caller can see in discovery, most recently active first.

    PUBLIC and PRIVATE clubs are always listed. INVITE_ONLY clubs are listed
    only for their creator and their active members.
    """
    member_club_ids: set[UUID] = set()
    visible = col(Club.visibility).in_([ClubVisibility.PUBLIC, ClubVisibility.PRIVATE])
    if caller_id is not None:
        member_club_ids = await active_club_ids_for_user(session, caller_id)
        visible = or_(
            visible,
            col(Club.creator_id) == caller_id,
            col(Club.id).in_(member_club_ids),
        )

    query = select(Club).where(visible)
    if category:
        query = query.where(col(Club.category) == category)
    result = await session.execute(query.order_by(col(Club.last_active_at).desc()))
    clubs = list(result.scalars().all())

    counts = await count_active_members_by_club(session, [club.id for club in clubs])
    return [
        ClubSummary.model_validate(
            club,
            update={"member_count": counts.get(club.id, 0), "is_member": club.id in member_club_ids},
        )
        for club in clubs
    ]


async def get_club_preview(
    session: AsyncSession,
    club_id: UUID,
    caller_id: UUID | None = None,
) -> ClubPreview:
    """Limited view for prospective members.

    INVITE_ONLY clubs are indistinguishable from missing ones to outsiders.
    """
    club = await get_club_or_404(session, club_id)

    is_member = False
    has_pending_request = False
    if caller_id is not None:
        is_member = caller_id == club.creator_id or (
            await get_active_membership(session, club_id, caller_id) is not None
        )
        result = await session.execute(
            select(MembershipRequest.id).where(
                col(MembershipRequest.club_id) == club_id,
                col(MembershipRequest.user_id) == caller_id,
                col(MembershipRequest.status) == RequestStatus.PENDING,
            )
        )
        has_pending_request = result.scalar_one_or_none() is not None

    if club.visibility == ClubVisibility.INVITE_ONLY and not is_member:
        raise ClubError(ClubErrorCode.CLUB_NOT_FOUND)

    return ClubPreview(
        id=club.id,
        name=club.name,
        description=club.description,
        image_url=club.image_url,
        category=club.category,
        visibility=club.visibility,
        creator_id=club.creator_id,
        last_active_at=club.last_active_at,
        member_count=await count_active_members(session, club_id),
        is_member=is_member,
        has_pending_request=has_pending_request,
        can_join=not is_member and club.visibility == ClubVisibility.PUBLIC,
        can_request=(
            not is_member and club.visibility == ClubVisibility.PRIVATE and not has_pending_request
        ),
    )


async def get_club_detail(session: AsyncSession, club_id: UUID, caller_id: UUID) -> ClubDetail:
    """Full club view with roster and rooms. Active members only."""
    club = await get_club_or_404(session, club_id)
    if await get_active_membership(session, club_id, caller_id) is None:
        raise ClubError(ClubErrorCode.ACCESS_DENIED)

    members = await list_active_members(session, club_id)
    result = await session.execute(
        select(Room).where(col(Room.club_id) == club_id).order_by(col(Room.created_at))
    )
    rooms = list(result.scalars().all())

    return ClubDetail.model_validate(
        club,
        update={
            "members": [MembershipRead.model_validate(member) for member in members],
            "rooms": [RoomRead.model_validate(room) for room in rooms],
        },
    )


async def list_members(session: AsyncSession, club_id: UUID, caller_id: UUID) -> list[Membership]:
    """Active roster. The caller must be an active member."""
    await get_club_or_404(session, club_id)
    if await get_active_membership(session, club_id, caller_id) is None:
        raise ClubError(ClubErrorCode.ACCESS_DENIED)
    return await list_active_members(session, club_id)


async def list_my_clubs(session: AsyncSession, user_id: UUID) -> list[Club]:
    return await list_clubs_for_user(session, user_id)
