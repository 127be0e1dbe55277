"""Membership table and API schemas for user-club links."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import ClassVar
from uuid import UUID

import sqlalchemy as sa
from pydantic import ConfigDict
from sqlmodel import Field, SQLModel

from club_membership.models.base import TimestampedTable, utcnow


class ClubRole(StrEnum):
    """Role levels for club members.

    Roles enforce a hierarchy: OWNER > ADMIN > MODERATOR > MEMBER

    - OWNER: The club creator. Deletes the club and assigns roles
    - ADMIN: Updates settings, reviews join requests, removes members
    - MODERATOR: Moderation capabilities in the club's rooms
    - MEMBER: Participates in the club
    """

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"
    MEMBER = "MEMBER"


# Lower rank means more privilege. Permission checks compare ranks numerically.
ROLE_RANK: dict[ClubRole, int] = {
    ClubRole.OWNER: 0,
    ClubRole.ADMIN: 1,
    ClubRole.MODERATOR: 2,
    ClubRole.MEMBER: 3,
}


class MembershipStatus(StrEnum):
    """Lifecycle state of a membership row.

    Rows are never deleted when someone leaves or is removed; the status
    flips to LEFT so ``joined_at`` history is preserved.
    """

    ACTIVE = "ACTIVE"
    LEFT = "LEFT"
    BANNED = "BANNED"


class MembershipBase(SQLModel):
    club_id: UUID = Field(
        sa_column=sa.Column(
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("club.id", ondelete="CASCADE"),
            nullable=False,
        )
    )
    user_id: UUID = Field(sa_column=sa.Column(sa.Uuid(as_uuid=True), nullable=False))
    role: ClubRole = Field(
        default=ClubRole.MEMBER,
        sa_column=sa.Column(
            sa.Enum(ClubRole, name="club_role", native_enum=False),
            nullable=False,
            server_default=ClubRole.MEMBER.value,
        ),
    )
    status: MembershipStatus = Field(
        default=MembershipStatus.ACTIVE,
        sa_column=sa.Column(
            sa.Enum(MembershipStatus, name="membership_status", native_enum=False),
            nullable=False,
            server_default=MembershipStatus.ACTIVE.value,
        ),
    )


class Membership(TimestampedTable, MembershipBase, table=True):
    __tablename__ = "club_membership"

    joined_at: datetime = Field(
        default_factory=utcnow,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now(), "nullable": False},
    )
    invited_by: UUID | None = Field(default=None, sa_type=sa.Uuid(as_uuid=True))

    __table_args__ = (
        sa.UniqueConstraint(
            "club_id",
            "user_id",
            name="uq_club_membership_club_user",
        ),
        sa.Index("ix_club_membership_user_id", "user_id"),
        sa.Index("ix_club_membership_club_status", "club_id", "status"),
    )


class MembershipRoleUpdate(SQLModel):
    """Schema for changing a member's role."""

    role: ClubRole


class MembershipRead(MembershipBase):
    id: UUID
    joined_at: datetime
    invited_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    # SQLModel expects SQLModelConfig but accepts ConfigDict at runtime
    model_config: ClassVar[ConfigDict] = ConfigDict(from_attributes=True)  # type: ignore[assignment]
