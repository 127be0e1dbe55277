"""Join-request endpoints for PRIVATE clubs."""

from uuid import UUID

from fastapi import APIRouter, Body, status
from fastapi_pagination import Page, paginate

from club_membership.core.auth import CurrentUserDep
from club_membership.core.logging import set_club_context
from club_membership.core.pagination import ParamsDep
from club_membership.db.session import SessionDep
from club_membership.models.membership import MembershipRead
from club_membership.models.membership_request import JoinRequestCreate, MembershipRequestRead
from club_membership.models.shared import RequestApproval
from club_membership.services import join_request_service

router = APIRouter(prefix="/clubs/{club_id}/requests", tags=["join-requests"])


@router.post("", response_model=MembershipRequestRead, status_code=status.HTTP_201_CREATED)
async def request_to_join_endpoint(
    club_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
    payload: JoinRequestCreate | None = Body(default=None),
) -> MembershipRequestRead:
    set_club_context(str(club_id))
    message = payload.message if payload else None
    request = await join_request_service.request_to_join(session, club_id, current_user.id, message)
    return MembershipRequestRead.model_validate(request)


@router.get("", response_model=Page[MembershipRequestRead])
async def list_pending_requests_endpoint(
    club_id: UUID,
    session: SessionDep,
    params: ParamsDep,
    current_user: CurrentUserDep,
) -> Page[MembershipRequestRead]:
    """Pending requests, oldest first. Requires ADMIN or higher."""
    set_club_context(str(club_id))
    requests = await join_request_service.list_pending_requests(session, club_id, current_user.id)
    return paginate([MembershipRequestRead.model_validate(request) for request in requests], params)


@router.post("/{request_id}/approve", response_model=RequestApproval)
async def approve_request_endpoint(
    club_id: UUID,
    request_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> RequestApproval:
    set_club_context(str(club_id))
    request, membership = await join_request_service.approve_request(
        session, club_id, request_id, current_user.id
    )
    return RequestApproval(
        request=MembershipRequestRead.model_validate(request),
        membership=MembershipRead.model_validate(membership),
    )


@router.post("/{request_id}/reject", response_model=MembershipRequestRead)
async def reject_request_endpoint(
    club_id: UUID,
    request_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
) -> MembershipRequestRead:
    set_club_context(str(club_id))
    request = await join_request_service.reject_request(session, club_id, request_id, current_user.id)
    return MembershipRequestRead.model_validate(request)
