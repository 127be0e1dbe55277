"""Caller identity forwarded by the API gateway.

The gateway verifies the bearer token and forwards the extracted user id in a
trusted header (``X-User-ID`` by default). This service never sees or checks
the token; it only trusts the forwarded id. The gateway must strip client
supplied copies of these headers, and the service must not be exposed
directly.

Usage:

    # In main.py - Add middleware
    from club_membership.core.auth import GatewayAuthMiddleware
    app.add_middleware(GatewayAuthMiddleware)

    # In endpoints - Require a caller
    from club_membership.core.auth import CurrentUserDep

    @router.post("/clubs/{club_id}/join")
    async def join(club_id: UUID, current_user: CurrentUserDep) -> MembershipRead:
        ...

    # In endpoints - Optional caller
    from club_membership.core.auth import OptionalUserDep
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from club_membership.core.config import settings
from club_membership.core.logging import get_logging_context, set_user_context

LOGGER = logging.getLogger(__name__)

USER_EMAIL_HEADER = "x-user-email"
USER_NAME_HEADER = "x-user-name"


class CurrentUser(BaseModel):
    """Caller context forwarded by the gateway.

    Attributes:
        id: User identifier extracted from the verified token
        email: Email claim, when the gateway forwards it
        name: Display name, when the gateway forwards it
    """

    id: UUID = Field(..., description="User ID forwarded by the gateway")
    email: str | None = Field(default=None, description="User email forwarded by the gateway")
    name: str | None = Field(default=None, description="Display name forwarded by the gateway")


class IdentityHeaderError(Exception):
    """Raised when the forwarded identity header is malformed."""


def extract_user_from_headers(request: Request) -> CurrentUser | None:
    """Build a CurrentUser from gateway headers.

    Returns:
        CurrentUser, or None when no identity header is present

    Raises:
        IdentityHeaderError: If the user id header is not a UUID
    """
    raw_user_id = request.headers.get(settings.user_id_header)
    if raw_user_id is None or not raw_user_id.strip():
        return None

    try:
        user_id = UUID(raw_user_id.strip())
    except ValueError as err:
        msg = f"Invalid user id in {settings.user_id_header} header"
        raise IdentityHeaderError(msg) from err

    return CurrentUser(
        id=user_id,
        email=request.headers.get(USER_EMAIL_HEADER) or None,
        name=request.headers.get(USER_NAME_HEADER) or None,
    )


class GatewayAuthMiddleware(BaseHTTPMiddleware):
    """Populate ``request.state.user`` from the gateway identity headers.

    Requests without the header continue anonymously; endpoints that need a
    caller reject them through ``CurrentUserDep``. A malformed header is a 401.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            current_user = extract_user_from_headers(request)
        except IdentityHeaderError as err:
            context = get_logging_context()
            context["error"] = str(err)
            LOGGER.warning("identity_header_rejected", extra=context)
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": str(err)},
            )

        request.state.user = current_user
        if current_user is not None:
            set_user_context(str(current_user.id))
            LOGGER.debug(
                "user_resolved",
                extra={**get_logging_context(), "user_id": str(current_user.id)},
            )

        return await call_next(request)


def get_current_user(request: Request) -> CurrentUser:
    """Dependency for endpoints that require a caller.

    Raises:
        HTTPException: 401 if the gateway forwarded no identity
    """
    user = getattr(request.state, "user", None)
    if not user:
        msg = "Authentication required"
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=msg)
    return user


def get_current_user_optional(request: Request) -> CurrentUser | None:
    """Dependency for endpoints that work with or without a caller."""
    return getattr(request.state, "user", None)


CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]
OptionalUserDep = Annotated[CurrentUser | None, Depends(get_current_user_optional)]
