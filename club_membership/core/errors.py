"""Categorical error outcomes for club membership operations.

Every expected failure is a ``ClubError`` carrying one ``ClubErrorCode``.
Callers branch on the code; the HTTP layer maps it to a status with
``status_code_for``. Unexpected storage failures are not wrapped and surface
as internal errors.
"""

from __future__ import annotations

from enum import StrEnum

from fastapi import status


class ClubErrorCode(StrEnum):
    """Named outcomes returned to callers.

    IMPORTANT: Inherit from StrEnum for proper JSON serialization.
    """

    # Not found
    CLUB_NOT_FOUND = "CLUB_NOT_FOUND"
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"
    INVITE_NOT_FOUND = "INVITE_NOT_FOUND"
    INVALID_INVITE = "INVALID_INVITE"
    MEMBER_NOT_FOUND = "MEMBER_NOT_FOUND"

    # Authorization
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    ACCESS_DENIED = "ACCESS_DENIED"
    BANNED_FROM_CLUB = "BANNED_FROM_CLUB"

    # Conflict / state
    ALREADY_MEMBER = "ALREADY_MEMBER"
    NOT_A_MEMBER = "NOT_A_MEMBER"
    REQUEST_ALREADY_PENDING = "REQUEST_ALREADY_PENDING"
    REQUEST_ALREADY_REVIEWED = "REQUEST_ALREADY_REVIEWED"
    INVITE_EXPIRED = "INVITE_EXPIRED"
    INVITE_MAX_USES_REACHED = "INVITE_MAX_USES_REACHED"
    CANNOT_REMOVE_OWNER = "CANNOT_REMOVE_OWNER"
    CANNOT_CHANGE_OWNER_ROLE = "CANNOT_CHANGE_OWNER_ROLE"
    OWNER_MUST_TRANSFER_OWNERSHIP = "OWNER_MUST_TRANSFER_OWNERSHIP"

    # Policy mismatch
    REQUIRES_APPROVAL = "REQUIRES_APPROVAL"
    PUBLIC_CLUB_NO_REQUEST_NEEDED = "PUBLIC_CLUB_NO_REQUEST_NEEDED"
    INVITE_ONLY_CLUB = "INVITE_ONLY_CLUB"

    # Validation
    INVALID_CLUB_NAME = "INVALID_CLUB_NAME"

    # Capacity
    INVITE_CODE_EXHAUSTED = "INVITE_CODE_EXHAUSTED"


_STATUS_BY_CODE: dict[ClubErrorCode, int] = {
    ClubErrorCode.CLUB_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ClubErrorCode.REQUEST_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ClubErrorCode.INVITE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ClubErrorCode.INVALID_INVITE: status.HTTP_404_NOT_FOUND,
    ClubErrorCode.MEMBER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ClubErrorCode.INSUFFICIENT_PERMISSIONS: status.HTTP_403_FORBIDDEN,
    ClubErrorCode.ACCESS_DENIED: status.HTTP_403_FORBIDDEN,
    ClubErrorCode.BANNED_FROM_CLUB: status.HTTP_403_FORBIDDEN,
    ClubErrorCode.ALREADY_MEMBER: status.HTTP_409_CONFLICT,
    ClubErrorCode.REQUEST_ALREADY_PENDING: status.HTTP_409_CONFLICT,
    ClubErrorCode.REQUEST_ALREADY_REVIEWED: status.HTTP_409_CONFLICT,
    ClubErrorCode.INVITE_MAX_USES_REACHED: status.HTTP_409_CONFLICT,
    ClubErrorCode.INVITE_CODE_EXHAUSTED: status.HTTP_503_SERVICE_UNAVAILABLE,
}

_DEFAULT_MESSAGES: dict[ClubErrorCode, str] = {
    ClubErrorCode.CLUB_NOT_FOUND: "Club not found",
    ClubErrorCode.REQUEST_NOT_FOUND: "Membership request not found",
    ClubErrorCode.INVITE_NOT_FOUND: "Invite not found",
    ClubErrorCode.INVALID_INVITE: "Invalid invite code",
    ClubErrorCode.MEMBER_NOT_FOUND: "Member not found",
    ClubErrorCode.INSUFFICIENT_PERMISSIONS: "Insufficient permissions",
    ClubErrorCode.ACCESS_DENIED: "Only club members can access this club",
    ClubErrorCode.BANNED_FROM_CLUB: "You are banned from this club",
    ClubErrorCode.ALREADY_MEMBER: "You are already a member of this club",
    ClubErrorCode.NOT_A_MEMBER: "You are not a member of this club",
    ClubErrorCode.REQUEST_ALREADY_PENDING: "A request to join this club is already pending",
    ClubErrorCode.REQUEST_ALREADY_REVIEWED: "This request has already been reviewed",
    ClubErrorCode.INVITE_EXPIRED: "This invite has expired",
    ClubErrorCode.INVITE_MAX_USES_REACHED: "This invite has reached its maximum uses",
    ClubErrorCode.CANNOT_REMOVE_OWNER: "The club owner cannot be removed",
    ClubErrorCode.CANNOT_CHANGE_OWNER_ROLE: "The owner role cannot be assigned or changed",
    ClubErrorCode.OWNER_MUST_TRANSFER_OWNERSHIP: "The owner cannot leave while other members remain",
    ClubErrorCode.REQUIRES_APPROVAL: "This club requires approval to join",
    ClubErrorCode.PUBLIC_CLUB_NO_REQUEST_NEEDED: "Public clubs can be joined directly",
    ClubErrorCode.INVITE_ONLY_CLUB: "This club can only be joined with an invite",
    ClubErrorCode.INVALID_CLUB_NAME: "Club name cannot be empty",
    ClubErrorCode.INVITE_CODE_EXHAUSTED: "Could not generate a unique invite code",
}


def status_code_for(code: ClubErrorCode) -> int:
    """HTTP status for an error code; state and policy outcomes default to 400."""
    return _STATUS_BY_CODE.get(code, status.HTTP_400_BAD_REQUEST)


class ClubError(Exception):
    """Expected, recoverable outcome of a club operation."""

    def __init__(self, code: ClubErrorCode, message: str | None = None) -> None:
        self.code = code
        self.message = message or _DEFAULT_MESSAGES.get(code, code.value)
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return status_code_for(self.code)

    def __repr__(self) -> str:
        return f"ClubError({self.code.value!r})"
