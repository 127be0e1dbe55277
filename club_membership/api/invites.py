"""Invite endpoints: minting and managing codes per club, previewing and redeeming by code."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status
from fastapi_pagination import Page, paginate

from club_membership.core.auth import CurrentUserDep
from club_membership.core.config import MAX_INVITE_CODE_LENGTH
from club_membership.core.logging import set_club_context
from club_membership.core.pagination import ParamsDep
from club_membership.db.session import SessionDep
from club_membership.models.invite import InviteCreate, InvitePreview, InviteRead
from club_membership.models.membership import MembershipRead
from club_membership.services import invite_service

club_invites_router = APIRouter(prefix="/clubs/{club_id}/invites", tags=["invites"])
router = APIRouter(prefix="/invites", tags=["invites"])

InviteCode = Annotated[str, Path(min_length=1, max_length=MAX_INVITE_CODE_LENGTH)]


@club_invites_router.post("", response_model=InviteRead, status_code=status.HTTP_201_CREATED)
async def create_invite_endpoint(
    club_id: UUID,
    payload: InviteCreate,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> InviteRead:
    """Mint an invite. Any active member may do this."""
    set_club_context(str(club_id))
    invite = await invite_service.create_invite(session, club_id, current_user.id, payload)
    return InviteRead.model_validate(invite)


@club_invites_router.get("", response_model=Page[InviteRead])
async def list_invites_endpoint(
    club_id: UUID,
    session: SessionDep,
    params: ParamsDep,
    current_user: CurrentUserDep,
) -> Page[InviteRead]:
    """All invites of the club, newest first. Club creator only."""
    set_club_context(str(club_id))
    invites = await invite_service.list_invites(session, club_id, current_user.id)
    return paginate([InviteRead.model_validate(invite) for invite in invites], params)


@club_invites_router.get("/shareable", response_model=InviteRead)
async def get_shareable_invite_endpoint(
    club_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> InviteRead:
    set_club_context(str(club_id))
    invite = await invite_service.get_shareable_invite(session, club_id, current_user.id)
    return InviteRead.model_validate(invite)


@club_invites_router.delete("/{invite_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invite_endpoint(
    club_id: UUID,
    invite_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> None:
    """Delete an invite. Allowed for the club creator and the invite's creator."""
    set_club_context(str(club_id))
    await invite_service.delete_invite(session, invite_id, current_user.id, club_id=club_id)


@router.get("/{code}", response_model=InvitePreview)
async def get_invite_preview_endpoint(
    code: InviteCode,
    session: SessionDep,
    current_user: CurrentUserDep,  # noqa: ARG001
) -> InvitePreview:
    return await invite_service.get_invite_preview(session, code)


@router.post("/{code}/redeem", response_model=MembershipRead)
async def redeem_invite_endpoint(
    code: InviteCode,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> MembershipRead:
    """Join the invite's club. Counts as one use of the code."""
    membership = await invite_service.redeem_invite(session, code, current_user.id)
    return MembershipRead.model_validate(membership)
