"""Invite codes granting direct admission to a club."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar
from uuid import UUID

import sqlalchemy as sa
from pydantic import ConfigDict
from sqlmodel import Field, SQLModel

from club_membership.core.config import MAX_INVITE_CODE_LENGTH
from club_membership.models.base import TimestampedTable, as_utc
from club_membership.models.club import ClubVisibility


class InviteBase(SQLModel):
    club_id: UUID = Field(
        sa_column=sa.Column(
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("club.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    code: str = Field(
        sa_column=sa.Column(sa.String(MAX_INVITE_CODE_LENGTH), nullable=False, unique=True)
    )
    created_by: UUID = Field(sa_column=sa.Column(sa.Uuid(as_uuid=True), nullable=False))
    max_uses: int | None = None
    current_uses: int = Field(
        default=0,
        sa_column=sa.Column(sa.Integer(), nullable=False, server_default="0"),
    )
    expires_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))


class Invite(TimestampedTable, InviteBase, table=True):
    __tablename__ = "club_invite"

    __table_args__ = (
        sa.CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="ck_club_invite_uses_within_cap",
        ),
    )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and as_utc(self.expires_at) <= now

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses


class InviteCreate(SQLModel):
    """Options for minting an invite. Both bounds are optional."""

    max_uses: int | None = Field(default=None, ge=1)
    expires_in_days: int | None = Field(default=None, ge=1, le=365)


class InviteRead(InviteBase):
    id: UUID
    created_at: datetime

    # SQLModel expects SQLModelConfig but accepts ConfigDict at runtime
    model_config: ClassVar[ConfigDict] = ConfigDict(from_attributes=True)  # type: ignore[assignment]


class InvitePreview(SQLModel):
    """What a code leads to, shown before redeeming it."""

    code: str
    club_id: UUID
    club_name: str
    club_description: str | None = None
    club_image_url: str | None = None
    club_visibility: ClubVisibility
    member_count: int
    expires_at: datetime | None = None
    uses_remaining: int | None = None
