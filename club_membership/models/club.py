"""Club table and related API schemas."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import ClassVar
from uuid import UUID

import sqlalchemy as sa
from pydantic import ConfigDict, field_validator
from sqlmodel import Field, SQLModel

from club_membership.models.base import TimestampedTable, utcnow

MAX_CLUB_NAME_LENGTH = 255
MAX_CLUB_DESCRIPTION_LENGTH = 2000
MAX_CLUB_CATEGORY_LENGTH = 100


class ClubVisibility(StrEnum):
    """How prospective members are admitted.

    - PUBLIC: anyone may join directly
    - PRIVATE: admission through an approved join request (or an invite)
    - INVITE_ONLY: admission only by redeeming an invite code
    """

    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"
    INVITE_ONLY = "INVITE_ONLY"


class ClubBase(SQLModel):
    name: str = Field(max_length=MAX_CLUB_NAME_LENGTH)
    description: str | None = Field(default=None, max_length=MAX_CLUB_DESCRIPTION_LENGTH)
    image_url: str | None = None
    category: str | None = Field(default=None, max_length=MAX_CLUB_CATEGORY_LENGTH)
    visibility: ClubVisibility = Field(
        default=ClubVisibility.PUBLIC,
        sa_column=sa.Column(
            sa.Enum(ClubVisibility, name="club_visibility", native_enum=False),
            nullable=False,
            server_default=ClubVisibility.PUBLIC.value,
        ),
    )


class Club(TimestampedTable, ClubBase, table=True):
    __tablename__ = "club"

    creator_id: UUID = Field(sa_type=sa.Uuid(as_uuid=True), nullable=False, index=True)
    last_active_at: datetime = Field(
        default_factory=utcnow,
        sa_type=sa.DateTime(timezone=True),
        sa_column_kwargs={"server_default": sa.func.now(), "nullable": False},
        index=True,
    )

    __table_args__ = (
        sa.Index("ix_club_visibility_category", "visibility", "category"),
    )


def _clean_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ClubCreate(SQLModel):
    """Schema for creating a club.

    The name is trimmed here; an empty result is rejected by the service so
    direct callers get the same INVALID_CLUB_NAME outcome as API callers.
    """

    name: str = Field(max_length=MAX_CLUB_NAME_LENGTH)
    description: str | None = Field(default=None, max_length=MAX_CLUB_DESCRIPTION_LENGTH)
    image_url: str | None = None
    category: str | None = Field(default=None, max_length=MAX_CLUB_CATEGORY_LENGTH)
    visibility: ClubVisibility = ClubVisibility.PUBLIC

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("description", "image_url", "category")
    @classmethod
    def clean_optional_text(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)


class ClubUpdate(SQLModel):
    """Mutable club settings. Unset fields are left untouched."""

    name: str | None = Field(default=None, max_length=MAX_CLUB_NAME_LENGTH)
    description: str | None = Field(default=None, max_length=MAX_CLUB_DESCRIPTION_LENGTH)
    image_url: str | None = None
    category: str | None = Field(default=None, max_length=MAX_CLUB_CATEGORY_LENGTH)
    visibility: ClubVisibility | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str | None) -> str | None:
        return value.strip() if value is not None else None


class ClubRead(ClubBase):
    id: UUID
    creator_id: UUID
    last_active_at: datetime
    created_at: datetime
    updated_at: datetime

    # SQLModel expects SQLModelConfig but accepts ConfigDict at runtime
    model_config: ClassVar[ConfigDict] = ConfigDict(from_attributes=True)  # type: ignore[assignment]


class ClubSummary(ClubRead):
    """Discovery listing entry."""

    member_count: int = 0
    is_member: bool = False
