"""Invite code generation."""

import secrets
import string

INVITE_CODE_ALPHABET = string.ascii_letters + string.digits
DEFAULT_INVITE_CODE_LENGTH = 8


def generate_invite_code(length: int = DEFAULT_INVITE_CODE_LENGTH) -> str:
    """Return a random ``[A-Za-z0-9]`` code of ``length`` characters.

    Uses the ``secrets`` CSPRNG; at the default length there are 62**8
    possible codes. Uniqueness against stored codes is the caller's job.

    Raises:
        ValueError: If length is less than 1
    """
    if length < 1:
        msg = "Invite code length must be at least 1"
        raise ValueError(msg)
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))
