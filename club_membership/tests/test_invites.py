"""Service tests for invite issuance, preview, redemption and deletion."""

from datetime import timedelta
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from club_membership.core.errors import ClubError, ClubErrorCode
from club_membership.models.base import utcnow
from club_membership.models.club import Club
from club_membership.models.invite import Invite, InviteCreate
from club_membership.models.membership import ClubRole, Membership, MembershipStatus
from club_membership.services import invite_service
from club_membership.services.club_service import join_club, leave_club
from club_membership.services.membership_service import get_membership


async def _issue(
    session: AsyncSession,
    club: Club,
    *,
    max_uses: int | None = None,
    expires_in: timedelta | None = None,
) -> Invite:
    expires_at = utcnow() + expires_in if expires_in is not None else None
    invite = await invite_service.issue_invite(
        session, club.id, club.creator_id, max_uses=max_uses, expires_at=expires_at
    )
    await session.commit()
    return invite


async def _current_uses(session: AsyncSession, invite_id: UUID) -> int:
    result = await session.execute(
        select(Invite).where(Invite.id == invite_id).execution_options(populate_existing=True)
    )
    return result.scalar_one().current_uses


class TestCreateInvite:
    @pytest.mark.asyncio
    async def test_member_can_create(self, session: AsyncSession, public_club: Club, user_id: UUID) -> None:
        await join_club(session, public_club.id, user_id)

        invite = await invite_service.create_invite(
            session, public_club.id, user_id, InviteCreate(max_uses=5, expires_in_days=7)
        )

        assert invite.created_by == user_id
        assert invite.max_uses == 5
        assert invite.current_uses == 0
        assert invite.expires_at is not None
        assert invite.expires_at - utcnow() > timedelta(days=6)
        assert len(invite.code) == 8

    @pytest.mark.asyncio
    async def test_non_member_cannot_create(self, session: AsyncSession, public_club: Club, user_id: UUID) -> None:
        with pytest.raises(ClubError) as exc_info:
            await invite_service.create_invite(session, public_club.id, user_id, InviteCreate())
        assert exc_info.value.code == ClubErrorCode.INSUFFICIENT_PERMISSIONS

    @pytest.mark.asyncio
    async def test_code_space_exhausted(
        self, session: AsyncSession, public_club: Club, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        existing = (
            await session.execute(select(Invite.code).where(Invite.club_id == public_club.id))
        ).scalar_one()
        club_id, owner_id = public_club.id, public_club.creator_id
        monkeypatch.setattr(invite_service, "generate_invite_code", lambda length: existing)

        with pytest.raises(ClubError) as exc_info:
            await invite_service.create_invite(session, club_id, owner_id, InviteCreate())
        assert exc_info.value.code == ClubErrorCode.INVITE_CODE_EXHAUSTED


class TestInviteQueries:
    @pytest.mark.asyncio
    async def test_preview(self, session: AsyncSession, private_club: Club) -> None:
        invite = await _issue(session, private_club, max_uses=3)

        preview = await invite_service.get_invite_preview(session, invite.code)

        assert preview.club_id == private_club.id
        assert preview.club_name == private_club.name
        assert preview.club_visibility == private_club.visibility
        assert preview.member_count == 1
        assert preview.uses_remaining == 3
        assert preview.expires_at is None

    @pytest.mark.asyncio
    async def test_preview_unknown_code(self, session: AsyncSession) -> None:
        with pytest.raises(ClubError) as exc_info:
            await invite_service.get_invite_preview(session, "NOPE1234")
        assert exc_info.value.code == ClubErrorCode.INVALID_INVITE

    @pytest.mark.asyncio
    async def test_list_is_creator_only_and_newest_first(
        self, session: AsyncSession, public_club: Club, user_id: UUID
    ) -> None:
        newer = await _issue(session, public_club, max_uses=2)

        invites = await invite_service.list_invites(session, public_club.id, public_club.creator_id)
        assert len(invites) == 2
        assert invites[0].id == newer.id

        await join_club(session, public_club.id, user_id)
        with pytest.raises(ClubError) as exc_info:
            await invite_service.list_invites(session, public_club.id, user_id)
        assert exc_info.value.code == ClubErrorCode.INSUFFICIENT_PERMISSIONS

    @pytest.mark.asyncio
    async def test_shareable_reuses_oldest_permanent_invite(
        self, session: AsyncSession, public_club: Club, user_id: UUID
    ) -> None:
        seeded = (
            await session.execute(select(Invite).where(Invite.club_id == public_club.id))
        ).scalar_one()
        await _issue(session, public_club)
        await _issue(session, public_club, max_uses=1)
        await join_club(session, public_club.id, user_id)

        shareable = await invite_service.get_shareable_invite(session, public_club.id, user_id)
        assert shareable.id == seeded.id

    @pytest.mark.asyncio
    async def test_shareable_minted_when_missing(self, session: AsyncSession, public_club: Club) -> None:
        seeded = (
            await session.execute(select(Invite).where(Invite.club_id == public_club.id))
        ).scalar_one()
        await invite_service.delete_invite(session, seeded.id, public_club.creator_id)

        shareable = await invite_service.get_shareable_invite(session, public_club.id, public_club.creator_id)
        assert shareable.max_uses is None
        assert shareable.expires_at is None
        assert shareable.created_by == public_club.creator_id


class TestDeleteInvite:
    @pytest.mark.asyncio
    async def test_invite_creator_and_club_creator_may_delete(
        self, session: AsyncSession, public_club: Club
    ) -> None:
        creator, bystander = uuid4(), uuid4()
        for uid in (creator, bystander):
            await join_club(session, public_club.id, uid)
        mine = await invite_service.create_invite(session, public_club.id, creator, InviteCreate())
        theirs = await invite_service.create_invite(session, public_club.id, creator, InviteCreate())

        with pytest.raises(ClubError) as exc_info:
            await invite_service.delete_invite(session, mine.id, bystander)
        assert exc_info.value.code == ClubErrorCode.INSUFFICIENT_PERMISSIONS

        await invite_service.delete_invite(session, mine.id, creator)
        await invite_service.delete_invite(session, theirs.id, public_club.creator_id)
        assert await invite_service.get_invite(session, mine.id) is None
        assert await invite_service.get_invite(session, theirs.id) is None

    @pytest.mark.asyncio
    async def test_unknown_or_foreign_invite(
        self, session: AsyncSession, public_club: Club, private_club: Club
    ) -> None:
        foreign = await _issue(session, private_club)

        with pytest.raises(ClubError) as exc_info:
            await invite_service.delete_invite(session, uuid4(), public_club.creator_id)
        assert exc_info.value.code == ClubErrorCode.INVITE_NOT_FOUND

        with pytest.raises(ClubError) as exc_info:
            await invite_service.delete_invite(
                session, foreign.id, public_club.creator_id, club_id=public_club.id
            )
        assert exc_info.value.code == ClubErrorCode.INVITE_NOT_FOUND


class TestRedeemInvite:
    @pytest.mark.asyncio
    async def test_redeem_joins_invite_only_club(
        self, session: AsyncSession, invite_only_club: Club, user_id: UUID
    ) -> None:
        invite = await _issue(session, invite_only_club, max_uses=2)

        membership = await invite_service.redeem_invite(session, invite.code, user_id)

        assert membership.club_id == invite_only_club.id
        assert membership.role == ClubRole.MEMBER
        assert membership.status == MembershipStatus.ACTIVE
        assert membership.invited_by == invite_only_club.creator_id
        assert await _current_uses(session, invite.id) == 1

    @pytest.mark.asyncio
    async def test_unknown_code(self, session: AsyncSession, user_id: UUID) -> None:
        with pytest.raises(ClubError) as exc_info:
            await invite_service.redeem_invite(session, "MISSING1", user_id)
        assert exc_info.value.code == ClubErrorCode.INVALID_INVITE

    @pytest.mark.asyncio
    async def test_expired(self, session: AsyncSession, private_club: Club, user_id: UUID) -> None:
        invite = await _issue(session, private_club, expires_in=timedelta(hours=-1))

        with pytest.raises(ClubError) as exc_info:
            await invite_service.redeem_invite(session, invite.code, user_id)
        assert exc_info.value.code == ClubErrorCode.INVITE_EXPIRED
        assert await get_membership(session, private_club.id, user_id) is None

    @pytest.mark.asyncio
    async def test_exhausted(self, session: AsyncSession, private_club: Club) -> None:
        invite = await _issue(session, private_club, max_uses=1)
        await invite_service.redeem_invite(session, invite.code, uuid4())

        late = uuid4()
        with pytest.raises(ClubError) as exc_info:
            await invite_service.redeem_invite(session, invite.code, late)
        assert exc_info.value.code == ClubErrorCode.INVITE_MAX_USES_REACHED
        assert await get_membership(session, private_club.id, late) is None
        assert await _current_uses(session, invite.id) == 1

    @pytest.mark.asyncio
    async def test_already_member_does_not_consume_a_use(
        self, session: AsyncSession, public_club: Club, user_id: UUID
    ) -> None:
        invite = await _issue(session, public_club, max_uses=1)
        await join_club(session, public_club.id, user_id)

        with pytest.raises(ClubError) as exc_info:
            await invite_service.redeem_invite(session, invite.code, user_id)
        assert exc_info.value.code == ClubErrorCode.ALREADY_MEMBER
        assert await _current_uses(session, invite.id) == 0

    @pytest.mark.asyncio
    async def test_banned_user(self, session: AsyncSession, invite_only_club: Club, user_id: UUID) -> None:
        invite = await _issue(session, invite_only_club)
        session.add(
            Membership(club_id=invite_only_club.id, user_id=user_id, status=MembershipStatus.BANNED)
        )
        await session.commit()

        with pytest.raises(ClubError) as exc_info:
            await invite_service.redeem_invite(session, invite.code, user_id)
        assert exc_info.value.code == ClubErrorCode.BANNED_FROM_CLUB
        assert await _current_uses(session, invite.id) == 0

    @pytest.mark.asyncio
    async def test_redeem_after_leaving_reactivates_row(
        self, session: AsyncSession, public_club: Club, user_id: UUID
    ) -> None:
        first = await join_club(session, public_club.id, user_id)
        first_id = first.id
        await leave_club(session, public_club.id, user_id)
        invite = await _issue(session, public_club)

        membership = await invite_service.redeem_invite(session, invite.code, user_id)
        assert membership.id == first_id
        assert membership.status == MembershipStatus.ACTIVE
        assert membership.invited_by == public_club.creator_id


class TestRedeemInviteUse:
    @pytest.mark.asyncio
    async def test_stale_invite_cannot_overshoot_cap(self, session: AsyncSession, private_club: Club) -> None:
        club_id = private_club.id
        invite = await _issue(session, private_club, max_uses=1)
        invite_id = invite.id
        await invite_service.redeem_invite_use(session, invite, uuid4())

        # The in-memory copy still shows zero uses
        assert invite.current_uses == 0
        late = uuid4()
        with pytest.raises(ClubError) as exc_info:
            await invite_service.redeem_invite_use(session, invite, late)
        assert exc_info.value.code == ClubErrorCode.INVITE_MAX_USES_REACHED
        # the membership written before the failed claim is rolled back with it
        assert await get_membership(session, club_id, late) is None
        assert await _current_uses(session, invite_id) == 1

    @pytest.mark.asyncio
    async def test_expiry_rechecked_at_claim_time(
        self, session: AsyncSession, private_club: Club, user_id: UUID
    ) -> None:
        club_id = private_club.id
        invite = await _issue(session, private_club, expires_in=timedelta(days=1))
        invite_id = invite.id

        with pytest.raises(ClubError) as exc_info:
            await invite_service.redeem_invite_use(session, invite, user_id, now=utcnow() + timedelta(days=2))
        assert exc_info.value.code == ClubErrorCode.INVITE_EXPIRED
        assert await get_membership(session, club_id, user_id) is None
        assert await _current_uses(session, invite_id) == 0

    @pytest.mark.asyncio
    async def test_active_member_spends_no_use(
        self, session: AsyncSession, public_club: Club, user_id: UUID
    ) -> None:
        club_id = public_club.id
        invite = await _issue(session, public_club, max_uses=2)
        invite_id = invite.id
        await join_club(session, club_id, user_id)

        # Skips the pre-checks in redeem_invite, as a concurrent redemption would
        with pytest.raises(ClubError) as exc_info:
            await invite_service.redeem_invite_use(session, invite, user_id)
        assert exc_info.value.code == ClubErrorCode.ALREADY_MEMBER
        assert await _current_uses(session, invite_id) == 0

    @pytest.mark.asyncio
    async def test_banned_user_spends_no_use(
        self, session: AsyncSession, invite_only_club: Club, user_id: UUID
    ) -> None:
        club_id = invite_only_club.id
        invite = await _issue(session, invite_only_club, max_uses=2)
        invite_id = invite.id
        session.add(Membership(club_id=club_id, user_id=user_id, status=MembershipStatus.BANNED))
        await session.commit()

        with pytest.raises(ClubError) as exc_info:
            await invite_service.redeem_invite_use(session, invite, user_id)
        assert exc_info.value.code == ClubErrorCode.BANNED_FROM_CLUB
        assert await _current_uses(session, invite_id) == 0
        banned = await get_membership(session, club_id, user_id)
        assert banned is not None
        assert banned.status == MembershipStatus.BANNED

    @pytest.mark.asyncio
    async def test_failure_after_claim_rolls_back_both_rows(
        self,
        session: AsyncSession,
        private_club: Club,
        user_id: UUID,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        club_id = private_club.id
        invite = await _issue(session, private_club, max_uses=1)
        invite_id = invite.id

        def _fail_touch(*_args: object) -> None:
            raise RuntimeError("storage went away")

        monkeypatch.setattr(invite_service, "touch_last_active", _fail_touch)

        with pytest.raises(RuntimeError, match="storage went away"):
            await invite_service.redeem_invite_use(session, invite, user_id)
        assert await _current_uses(session, invite_id) == 0
        assert await get_membership(session, club_id, user_id) is None
