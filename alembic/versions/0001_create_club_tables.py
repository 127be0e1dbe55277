"""create club membership tables

Revision ID: 0001_create_club_tables
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_create_club_tables"
down_revision = None
branch_labels = None
depends_on = None

CLUB_VISIBILITY = ("PUBLIC", "PRIVATE", "INVITE_ONLY")
CLUB_ROLE = ("OWNER", "ADMIN", "MODERATOR", "MEMBER")
MEMBERSHIP_STATUS = ("ACTIVE", "LEFT", "BANNED")
REQUEST_STATUS = ("PENDING", "APPROVED", "REJECTED")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _club_fk() -> sa.Column:
    return sa.Column(
        "club_id",
        sa.Uuid(as_uuid=True),
        sa.ForeignKey("club.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    """Create clubs, memberships, join requests, invites and rooms.

    Enums are stored as constrained strings (native_enum=False) so new
    values never need an ALTER TYPE.
    """
    op.create_table(
        "club",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column(
            "visibility",
            sa.Enum(*CLUB_VISIBILITY, name="club_visibility", native_enum=False),
            nullable=False,
            server_default="PUBLIC",
        ),
        sa.Column("creator_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("last_active_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_club_creator_id", "club", ["creator_id"])
    op.create_index("ix_club_last_active_at", "club", ["last_active_at"])
    op.create_index("ix_club_created_at", "club", ["created_at"])
    op.create_index("ix_club_visibility_category", "club", ["visibility", "category"])

    op.create_table(
        "club_membership",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        _club_fk(),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "role",
            sa.Enum(*CLUB_ROLE, name="club_role", native_enum=False),
            nullable=False,
            server_default="MEMBER",
        ),
        sa.Column(
            "status",
            sa.Enum(*MEMBERSHIP_STATUS, name="membership_status", native_enum=False),
            nullable=False,
            server_default="ACTIVE",
        ),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("invited_by", sa.Uuid(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("club_id", "user_id", name="uq_club_membership_club_user"),
    )
    op.create_index("ix_club_membership_user_id", "club_membership", ["user_id"])
    op.create_index("ix_club_membership_club_status", "club_membership", ["club_id", "status"])
    op.create_index("ix_club_membership_created_at", "club_membership", ["created_at"])

    op.create_table(
        "membership_request",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        _club_fk(),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*REQUEST_STATUS, name="request_status", native_enum=False),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("message", sa.String(1000), nullable=True),
        sa.Column("reviewed_by", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("club_id", "user_id", name="uq_membership_request_club_user"),
    )
    op.create_index("ix_membership_request_club_status", "membership_request", ["club_id", "status"])
    op.create_index("ix_membership_request_created_at", "membership_request", ["created_at"])

    op.create_table(
        "club_invite",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        _club_fk(),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("created_by", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("current_uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="ck_club_invite_uses_within_cap",
        ),
    )
    op.create_index("ix_club_invite_club_id", "club_invite", ["club_id"])
    op.create_index("ix_club_invite_created_at", "club_invite", ["created_at"])

    op.create_table(
        "club_room",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        _club_fk(),
        sa.Column("name", sa.String(100), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_club_room_club_id", "club_room", ["club_id"])
    op.create_index("ix_club_room_created_at", "club_room", ["created_at"])


def downgrade() -> None:
    op.drop_table("club_room")
    op.drop_table("club_invite")
    op.drop_table("membership_request")
    op.drop_table("club_membership")
    op.drop_table("club")
