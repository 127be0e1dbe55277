"""Join requests for approval-gated clubs."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import ClassVar
from uuid import UUID

import sqlalchemy as sa
from pydantic import ConfigDict, field_validator
from sqlmodel import Field, SQLModel

from club_membership.models.base import TimestampedTable

MAX_REQUEST_MESSAGE_LENGTH = 1000


class RequestStatus(StrEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class MembershipRequestBase(SQLModel):
    club_id: UUID = Field(
        sa_column=sa.Column(
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("club.id", ondelete="CASCADE"),
            nullable=False,
        )
    )
    user_id: UUID = Field(sa_column=sa.Column(sa.Uuid(as_uuid=True), nullable=False))
    status: RequestStatus = Field(
        default=RequestStatus.PENDING,
        sa_column=sa.Column(
            sa.Enum(RequestStatus, name="request_status", native_enum=False),
            nullable=False,
            server_default=RequestStatus.PENDING.value,
        ),
    )
    message: str | None = Field(default=None, max_length=MAX_REQUEST_MESSAGE_LENGTH)


class MembershipRequest(TimestampedTable, MembershipRequestBase, table=True):
    __tablename__ = "membership_request"

    reviewed_by: UUID | None = Field(default=None, sa_type=sa.Uuid(as_uuid=True))
    reviewed_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))

    __table_args__ = (
        sa.UniqueConstraint(
            "club_id",
            "user_id",
            name="uq_membership_request_club_user",
        ),
        sa.Index("ix_membership_request_club_status", "club_id", "status"),
    )


class JoinRequestCreate(SQLModel):
    """Body for asking to join a private club."""

    message: str | None = Field(default=None, max_length=MAX_REQUEST_MESSAGE_LENGTH)

    @field_validator("message")
    @classmethod
    def strip_message(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class MembershipRequestRead(MembershipRequestBase):
    id: UUID
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    # SQLModel expects SQLModelConfig but accepts ConfigDict at runtime
    model_config: ClassVar[ConfigDict] = ConfigDict(from_attributes=True)  # type: ignore[assignment]
