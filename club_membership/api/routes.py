"""API router composition for the service."""

from fastapi import APIRouter

from club_membership.api import clubs, health, invites, join_requests, members

router = APIRouter()
router.include_router(health.router)
router.include_router(clubs.router)
router.include_router(members.router)
router.include_router(join_requests.router)
router.include_router(invites.club_invites_router)
router.include_router(invites.router)
