"""Model imports for SQLModel metadata discovery.

Alembic autogenerate uses SQLModel.metadata. Importing this module registers all
table models by importing their modules, so keep new models listed here.
"""

from club_membership.models.club import Club
from club_membership.models.invite import Invite
from club_membership.models.membership import Membership
from club_membership.models.membership_request import MembershipRequest
from club_membership.models.room import Room

__all__ = [
    "Club",
    "Invite",
    "Membership",
    "MembershipRequest",
    "Room",
]
