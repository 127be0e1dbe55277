"""Club role checks.

Key Security Principles:
- ROLE HIERARCHY: OWNER > ADMIN > MODERATOR > MEMBER, compared by numeric rank
- ACTIVE ONLY: a LEFT or BANNED membership carries no privileges at all
- FAIL CLOSED: a missing membership never satisfies any requirement

Exports:
    role_satisfies: Pure rank comparison
    has_permission: Boolean check against the membership store
    require_permission: Raising variant used by the services

The room and messaging subsystem calls ``has_permission`` to decide moderation
capabilities; it never writes membership state.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col

from club_membership.core.errors import ClubError, ClubErrorCode
from club_membership.core.logging import log_with_context
from club_membership.core.metrics import permission_denials_total
from club_membership.models.membership import ROLE_RANK, ClubRole, Membership, MembershipStatus

__all__ = [
    "has_permission",
    "require_permission",
    "role_satisfies",
]

LOGGER = logging.getLogger(__name__)


def role_satisfies(role: ClubRole, minimum_role: ClubRole) -> bool:
    """Check if ``role`` is at least as privileged as ``minimum_role``.

    Examples:
        OWNER satisfies ADMIN requirement: True
        MODERATOR satisfies MEMBER requirement: True
        ADMIN satisfies OWNER requirement: False
        MEMBER satisfies MODERATOR requirement: False
    """
    return ROLE_RANK[role] <= ROLE_RANK[minimum_role]


async def _get_active_role(session: AsyncSession, club_id: UUID, user_id: UUID) -> ClubRole | None:
    result = await session.execute(
        select(Membership.role).where(
            col(Membership.club_id) == club_id,
            col(Membership.user_id) == user_id,
            col(Membership.status) == MembershipStatus.ACTIVE,
        )
    )
    return result.scalar_one_or_none()


async def has_permission(
    session: AsyncSession,
    club_id: UUID,
    user_id: UUID,
    minimum_role: ClubRole,
) -> bool:
    """Return True iff the user holds an ACTIVE membership ranked at or above ``minimum_role``.

    No side effects.
    """
    role = await _get_active_role(session, club_id, user_id)
    if role is None:
        return False
    return role_satisfies(role, minimum_role)


async def require_permission(
    session: AsyncSession,
    club_id: UUID,
    user_id: UUID,
    minimum_role: ClubRole,
) -> None:
    """Raise INSUFFICIENT_PERMISSIONS unless ``has_permission`` holds.

    Raises:
        ClubError: INSUFFICIENT_PERMISSIONS when the check fails
    """
    if await has_permission(session, club_id, user_id, minimum_role):
        return

    permission_denials_total.labels(required_role=minimum_role.value).inc()
    log_with_context(
        LOGGER,
        logging.WARNING,
        "permission_denied",
        extra={
            "club_id": str(club_id),
            "user_id": str(user_id),
            "required_role": minimum_role.value,
        },
    )
    raise ClubError(ClubErrorCode.INSUFFICIENT_PERMISSIONS)
