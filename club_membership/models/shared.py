"""Composite response schemas that span several club resources."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar
from uuid import UUID

from pydantic import ConfigDict
from sqlmodel import Field, SQLModel

from club_membership.models.club import ClubRead, ClubVisibility
from club_membership.models.membership import MembershipRead
from club_membership.models.membership_request import MembershipRequestRead
from club_membership.models.room import RoomRead


class ClubPreview(SQLModel):
    """Limited club view for prospective members."""

    id: UUID
    name: str
    description: str | None = None
    image_url: str | None = None
    category: str | None = None
    visibility: ClubVisibility
    creator_id: UUID
    last_active_at: datetime
    member_count: int
    is_member: bool
    has_pending_request: bool
    can_join: bool
    can_request: bool

    # SQLModel expects SQLModelConfig but accepts ConfigDict at runtime
    model_config: ClassVar[ConfigDict] = ConfigDict(from_attributes=True)  # type: ignore[assignment]


class ClubDetail(ClubRead):
    """Full club view for members, with the active roster and rooms."""

    members: list[MembershipRead] = Field(default_factory=list)
    rooms: list[RoomRead] = Field(default_factory=list)


class RequestApproval(SQLModel):
    """Outcome of approving a join request: the request and the activated membership."""

    request: MembershipRequestRead
    membership: MembershipRead
