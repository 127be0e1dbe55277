"""Club roster and member management endpoints."""

from uuid import UUID

from fastapi import APIRouter, status
from fastapi_pagination import Page, paginate

from club_membership.core.auth import CurrentUserDep
from club_membership.core.logging import set_club_context
from club_membership.core.pagination import ParamsDep
from club_membership.db.session import SessionDep
from club_membership.models.membership import MembershipRead, MembershipRoleUpdate
from club_membership.services import club_service

router = APIRouter(prefix="/clubs/{club_id}/members", tags=["members"])


@router.get("", response_model=Page[MembershipRead])
async def list_members_endpoint(
    club_id: UUID,
    session: SessionDep,
    params: ParamsDep,
    current_user: CurrentUserDep,
) -> Page[MembershipRead]:
    """Active members, highest role first. Visible to active members only."""
    set_club_context(str(club_id))
    members = await club_service.list_members(session, club_id, current_user.id)
    return paginate([MembershipRead.model_validate(member) for member in members], params)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member_endpoint(
    club_id: UUID,
    user_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> None:
    """Remove a member (soft: status becomes LEFT). Requires ADMIN or higher."""
    set_club_context(str(club_id))
    await club_service.remove_member(session, club_id, user_id, current_user.id)


@router.patch("/{user_id}", response_model=MembershipRead)
async def update_member_role_endpoint(
    club_id: UUID,
    user_id: UUID,
    payload: MembershipRoleUpdate,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> MembershipRead:
    """Change a member's role. OWNER only; ownership itself cannot move."""
    set_club_context(str(club_id))
    membership = await club_service.update_member_role(
        session, club_id, user_id, payload.role, current_user.id
    )
    return MembershipRead.model_validate(membership)
