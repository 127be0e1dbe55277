"""Club endpoints: lifecycle, discovery, direct join and leave."""

from uuid import UUID

from fastapi import APIRouter, Query, status
from fastapi_pagination import Page, paginate

from club_membership.core.auth import CurrentUserDep, OptionalUserDep
from club_membership.core.logging import set_club_context
from club_membership.core.pagination import ParamsDep
from club_membership.db.session import SessionDep
from club_membership.models.club import ClubCreate, ClubRead, ClubSummary, ClubUpdate
from club_membership.models.membership import MembershipRead
from club_membership.models.shared import ClubDetail, ClubPreview
from club_membership.services import club_service

router = APIRouter(prefix="/clubs", tags=["clubs"])


@router.post("", response_model=ClubRead, status_code=status.HTTP_201_CREATED)
async def create_club_endpoint(
    payload: ClubCreate,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> ClubRead:
    """Create a club. The caller becomes its OWNER."""
    club = await club_service.create_club(session, current_user.id, payload)
    return ClubRead.model_validate(club)


@router.get("", response_model=Page[ClubSummary])
async def discover_clubs_endpoint(
    session: SessionDep,
    params: ParamsDep,
    current_user: OptionalUserDep,
    category: str | None = Query(default=None, max_length=100),
) -> Page[ClubSummary]:
    caller_id = current_user.id if current_user else None
    clubs = await club_service.discover_clubs(session, caller_id, category)
    return paginate(clubs, params)


@router.get("/mine", response_model=Page[ClubRead])
async def list_my_clubs_endpoint(
    session: SessionDep,
    params: ParamsDep,
    current_user: CurrentUserDep,
) -> Page[ClubRead]:
    clubs = await club_service.list_my_clubs(session, current_user.id)
    return paginate([ClubRead.model_validate(club) for club in clubs], params)


@router.get("/{club_id}", response_model=ClubDetail)
async def get_club_endpoint(
    club_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> ClubDetail:
    """Full club details. Active members only."""
    set_club_context(str(club_id))
    return await club_service.get_club_detail(session, club_id, current_user.id)


@router.get("/{club_id}/preview", response_model=ClubPreview)
async def get_club_preview_endpoint(
    club_id: UUID,
    session: SessionDep,
    current_user: OptionalUserDep,
) -> ClubPreview:
    caller_id = current_user.id if current_user else None
    return await club_service.get_club_preview(session, club_id, caller_id)


@router.patch("/{club_id}", response_model=ClubRead)
async def update_club_endpoint(
    club_id: UUID,
    payload: ClubUpdate,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> ClubRead:
    """Update club settings. Requires ADMIN or higher."""
    set_club_context(str(club_id))
    club = await club_service.update_club(session, club_id, current_user.id, payload)
    return ClubRead.model_validate(club)


@router.delete("/{club_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_club_endpoint(
    club_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> None:
    """Delete a club and all of its memberships, requests, invites and rooms. OWNER only."""
    set_club_context(str(club_id))
    await club_service.delete_club(session, club_id, current_user.id)


@router.post("/{club_id}/join", response_model=MembershipRead)
async def join_club_endpoint(
    club_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> MembershipRead:
    """Join a PUBLIC club directly."""
    set_club_context(str(club_id))
    membership = await club_service.join_club(session, club_id, current_user.id)
    return MembershipRead.model_validate(membership)


@router.post("/{club_id}/leave", response_model=MembershipRead)
async def leave_club_endpoint(
    club_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> MembershipRead:
    set_club_context(str(club_id))
    membership = await club_service.leave_club(session, club_id, current_user.id)
    return MembershipRead.model_validate(membership)
