"""Service tests for the join-request workflow."""

from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from club_membership.core.errors import ClubError, ClubErrorCode
from club_membership.models.club import Club, ClubCreate, ClubVisibility
from club_membership.models.membership import ClubRole, Membership, MembershipStatus
from club_membership.models.membership_request import MembershipRequest, RequestStatus
from club_membership.services import invite_service, join_request_service
from club_membership.services.club_service import create_club, get_club_preview, join_club, update_member_role
from club_membership.services.membership_service import get_active_membership, get_membership


@pytest.mark.asyncio
async def test_request_starts_pending(session: AsyncSession, private_club: Club, user_id: UUID) -> None:
    request = await join_request_service.request_to_join(
        session, private_club.id, user_id, message="Big fan of mysteries"
    )

    assert request.status == RequestStatus.PENDING
    assert request.message == "Big fan of mysteries"
    assert request.reviewed_by is None
    assert await get_membership(session, private_club.id, user_id) is None


@pytest.mark.asyncio
async def test_public_club_needs_no_request(session: AsyncSession, public_club: Club, user_id: UUID) -> None:
    with pytest.raises(ClubError) as exc_info:
        await join_request_service.request_to_join(session, public_club.id, user_id)
    assert exc_info.value.code == ClubErrorCode.PUBLIC_CLUB_NO_REQUEST_NEEDED


@pytest.mark.asyncio
async def test_invite_only_club_rejects_requests(
    session: AsyncSession, invite_only_club: Club, user_id: UUID
) -> None:
    with pytest.raises(ClubError) as exc_info:
        await join_request_service.request_to_join(session, invite_only_club.id, user_id)
    assert exc_info.value.code == ClubErrorCode.INVITE_ONLY_CLUB


@pytest.mark.asyncio
async def test_missing_club(session: AsyncSession, user_id: UUID) -> None:
    with pytest.raises(ClubError) as exc_info:
        await join_request_service.request_to_join(session, uuid4(), user_id)
    assert exc_info.value.code == ClubErrorCode.CLUB_NOT_FOUND


@pytest.mark.asyncio
async def test_duplicate_pending_request(session: AsyncSession, private_club: Club, user_id: UUID) -> None:
    await join_request_service.request_to_join(session, private_club.id, user_id)
    with pytest.raises(ClubError) as exc_info:
        await join_request_service.request_to_join(session, private_club.id, user_id)
    assert exc_info.value.code == ClubErrorCode.REQUEST_ALREADY_PENDING


@pytest.mark.asyncio
async def test_approve_activates_membership(session: AsyncSession, private_club: Club, user_id: UUID) -> None:
    owner_id = private_club.creator_id
    pending = await join_request_service.request_to_join(session, private_club.id, user_id)

    request, membership = await join_request_service.approve_request(
        session, private_club.id, pending.id, owner_id
    )

    assert request.status == RequestStatus.APPROVED
    assert request.reviewed_by == owner_id
    assert request.reviewed_at is not None
    assert membership.user_id == user_id
    assert membership.role == ClubRole.MEMBER
    assert membership.status == MembershipStatus.ACTIVE
    assert await get_active_membership(session, private_club.id, user_id) is not None


@pytest.mark.asyncio
async def test_reject_leaves_membership_alone(session: AsyncSession, private_club: Club, user_id: UUID) -> None:
    pending = await join_request_service.request_to_join(session, private_club.id, user_id)

    request = await join_request_service.reject_request(
        session, private_club.id, pending.id, private_club.creator_id
    )

    assert request.status == RequestStatus.REJECTED
    assert request.reviewed_by == private_club.creator_id
    assert await get_membership(session, private_club.id, user_id) is None


@pytest.mark.asyncio
async def test_request_reviewed_only_once(session: AsyncSession, private_club: Club, user_id: UUID) -> None:
    owner_id = private_club.creator_id
    pending = await join_request_service.request_to_join(session, private_club.id, user_id)
    await join_request_service.approve_request(session, private_club.id, pending.id, owner_id)

    with pytest.raises(ClubError) as exc_info:
        await join_request_service.reject_request(session, private_club.id, pending.id, owner_id)
    assert exc_info.value.code == ClubErrorCode.REQUEST_ALREADY_REVIEWED

    with pytest.raises(ClubError) as exc_info:
        await join_request_service.approve_request(session, private_club.id, pending.id, owner_id)
    assert exc_info.value.code == ClubErrorCode.REQUEST_ALREADY_REVIEWED


@pytest.mark.asyncio
async def test_new_request_after_rejection_reuses_row(
    session: AsyncSession, private_club: Club, user_id: UUID
) -> None:
    first = await join_request_service.request_to_join(session, private_club.id, user_id, message="first")
    first_id = first.id
    await join_request_service.reject_request(session, private_club.id, first_id, private_club.creator_id)

    again = await join_request_service.request_to_join(session, private_club.id, user_id, message="second")

    assert again.id == first_id
    assert again.status == RequestStatus.PENDING
    assert again.message == "second"
    assert again.reviewed_by is None
    assert again.reviewed_at is None

    result = await session.execute(
        select(func.count()).select_from(MembershipRequest).where(MembershipRequest.club_id == private_club.id)
    )
    assert result.scalar_one() == 1


@pytest.mark.asyncio
async def test_request_from_another_club_is_not_found(
    session: AsyncSession, private_club: Club, owner_id: UUID, user_id: UUID
) -> None:
    other = await join_request_service.request_to_join(session, private_club.id, user_id)

    second_club = await create_club(
        session, owner_id, ClubCreate(name="Second Shelf", visibility=ClubVisibility.PRIVATE)
    )

    with pytest.raises(ClubError) as exc_info:
        await join_request_service.approve_request(session, second_club.id, other.id, owner_id)
    assert exc_info.value.code == ClubErrorCode.REQUEST_NOT_FOUND

    with pytest.raises(ClubError) as exc_info:
        await join_request_service.reject_request(session, second_club.id, uuid4(), owner_id)
    assert exc_info.value.code == ClubErrorCode.REQUEST_NOT_FOUND


@pytest.mark.asyncio
async def test_reviewing_requires_admin(session: AsyncSession, private_club: Club, user_id: UUID) -> None:
    pending = await join_request_service.request_to_join(session, private_club.id, user_id)
    outsider = uuid4()

    with pytest.raises(ClubError) as exc_info:
        await join_request_service.approve_request(session, private_club.id, pending.id, outsider)
    assert exc_info.value.code == ClubErrorCode.INSUFFICIENT_PERMISSIONS

    with pytest.raises(ClubError) as exc_info:
        await join_request_service.list_pending_requests(session, private_club.id, outsider)
    assert exc_info.value.code == ClubErrorCode.INSUFFICIENT_PERMISSIONS


@pytest.mark.asyncio
async def test_admin_can_review(session: AsyncSession, private_club: Club, user_id: UUID) -> None:
    owner_id = private_club.creator_id
    admin_id = uuid4()
    admin_request = await join_request_service.request_to_join(session, private_club.id, admin_id)
    await join_request_service.approve_request(session, private_club.id, admin_request.id, owner_id)
    await update_member_role(session, private_club.id, admin_id, ClubRole.ADMIN, owner_id)

    pending = await join_request_service.request_to_join(session, private_club.id, user_id)
    request, _ = await join_request_service.approve_request(session, private_club.id, pending.id, admin_id)
    assert request.reviewed_by == admin_id


@pytest.mark.asyncio
async def test_pending_list_is_oldest_first(session: AsyncSession, private_club: Club) -> None:
    first, second, rejected = uuid4(), uuid4(), uuid4()
    for uid in (first, second, rejected):
        await join_request_service.request_to_join(session, private_club.id, uid)
    to_reject = await join_request_service.get_request_for_user(session, private_club.id, rejected)
    assert to_reject is not None
    await join_request_service.reject_request(session, private_club.id, to_reject.id, private_club.creator_id)

    pending = await join_request_service.list_pending_requests(session, private_club.id, private_club.creator_id)
    assert [request.user_id for request in pending] == [first, second]


@pytest.mark.asyncio
async def test_preview_reflects_pending_request(session: AsyncSession, private_club: Club, user_id: UUID) -> None:
    before = await get_club_preview(session, private_club.id, user_id)
    assert before.can_request is True
    assert before.has_pending_request is False

    await join_request_service.request_to_join(session, private_club.id, user_id)

    after = await get_club_preview(session, private_club.id, user_id)
    assert after.has_pending_request is True
    assert after.can_request is False
    assert after.can_join is False


@pytest.mark.asyncio
async def test_approved_member_cannot_join_again(session: AsyncSession, private_club: Club, user_id: UUID) -> None:
    pending = await join_request_service.request_to_join(session, private_club.id, user_id)
    await join_request_service.approve_request(session, private_club.id, pending.id, private_club.creator_id)

    with pytest.raises(ClubError) as exc_info:
        await join_club(session, private_club.id, user_id)
    assert exc_info.value.code == ClubErrorCode.ALREADY_MEMBER


@pytest.mark.asyncio
async def test_active_member_cannot_request(session: AsyncSession, private_club: Club) -> None:
    with pytest.raises(ClubError) as exc_info:
        await join_request_service.request_to_join(session, private_club.id, private_club.creator_id)
    assert exc_info.value.code == ClubErrorCode.ALREADY_MEMBER
    assert await join_request_service.get_request_for_user(session, private_club.id, private_club.creator_id) is None


@pytest.mark.asyncio
async def test_banned_user_cannot_request(session: AsyncSession, private_club: Club, user_id: UUID) -> None:
    session.add(Membership(club_id=private_club.id, user_id=user_id, status=MembershipStatus.BANNED))
    await session.commit()

    with pytest.raises(ClubError) as exc_info:
        await join_request_service.request_to_join(session, private_club.id, user_id)
    assert exc_info.value.code == ClubErrorCode.BANNED_FROM_CLUB
    assert await join_request_service.get_request_for_user(session, private_club.id, user_id) is None


@pytest.mark.asyncio
async def test_approval_does_not_lift_a_ban(session: AsyncSession, private_club: Club, user_id: UUID) -> None:
    pending = await join_request_service.request_to_join(session, private_club.id, user_id)
    session.add(Membership(club_id=private_club.id, user_id=user_id, status=MembershipStatus.BANNED))
    await session.commit()

    with pytest.raises(ClubError) as exc_info:
        await join_request_service.approve_request(session, private_club.id, pending.id, private_club.creator_id)
    assert exc_info.value.code == ClubErrorCode.BANNED_FROM_CLUB

    request = await join_request_service.get_request_for_user(session, private_club.id, user_id)
    assert request is not None
    assert request.status == RequestStatus.PENDING
    membership = await get_membership(session, private_club.id, user_id)
    assert membership is not None
    assert membership.status == MembershipStatus.BANNED


@pytest.mark.asyncio
async def test_approving_stale_request_keeps_current_role(
    session: AsyncSession, private_club: Club, user_id: UUID
) -> None:
    owner_id = private_club.creator_id
    pending = await join_request_service.request_to_join(session, private_club.id, user_id)

    # The requester gets in through an invite and is promoted before anyone reviews
    invite = await invite_service.issue_invite(session, private_club.id, owner_id)
    await session.commit()
    await invite_service.redeem_invite(session, invite.code, user_id)
    await update_member_role(session, private_club.id, user_id, ClubRole.ADMIN, owner_id)

    request, membership = await join_request_service.approve_request(
        session, private_club.id, pending.id, owner_id
    )

    assert request.status == RequestStatus.APPROVED
    assert membership.status == MembershipStatus.ACTIVE
    assert membership.role == ClubRole.ADMIN


@pytest.mark.asyncio
async def test_concurrent_review_is_applied_once(
    session: AsyncSession,
    session_maker: async_sessionmaker[AsyncSession],
    private_club: Club,
    user_id: UUID,
) -> None:
    club_id, owner_id = private_club.id, private_club.creator_id
    pending = await join_request_service.request_to_join(session, club_id, user_id)
    request_id = pending.id

    # Another reviewer rejects it while this session still holds it as PENDING
    async with session_maker() as other:
        await join_request_service.reject_request(other, club_id, request_id, owner_id)
    assert pending.status == RequestStatus.PENDING

    with pytest.raises(ClubError) as exc_info:
        await join_request_service.approve_request(session, club_id, request_id, owner_id)
    assert exc_info.value.code == ClubErrorCode.REQUEST_ALREADY_REVIEWED

    assert await get_membership(session, club_id, user_id) is None
    request = await join_request_service.get_request_for_user(session, club_id, user_id)
    assert request is not None
    assert request.status == RequestStatus.REJECTED


@pytest.mark.asyncio
async def test_failed_approval_leaves_request_pending(
    session: AsyncSession,
    private_club: Club,
    user_id: UUID,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    club_id, owner_id = private_club.id, private_club.creator_id
    pending = await join_request_service.request_to_join(session, club_id, user_id)
    request_id = pending.id

    def _fail_touch(*_args: object) -> None:
        raise RuntimeError("storage went away")

    monkeypatch.setattr(join_request_service, "touch_last_active", _fail_touch)

    with pytest.raises(RuntimeError, match="storage went away"):
        await join_request_service.approve_request(session, club_id, request_id, owner_id)

    assert await get_membership(session, club_id, user_id) is None
    request = await join_request_service.get_request_for_user(session, club_id, user_id)
    assert request is not None
    assert request.status == RequestStatus.PENDING
    assert request.reviewed_by is None
