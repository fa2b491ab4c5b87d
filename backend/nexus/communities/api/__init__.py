"""FastAPI routers for communities domain."""

from __future__ import annotations

from fastapi import APIRouter

from nexus.communities.api import (
	affiliations,
	communities,
	join_requests,
	members,
	sub_clubs,
)

router = APIRouter(prefix="/api/communities/v1")

router.include_router(communities.router)
router.include_router(sub_clubs.router)
router.include_router(affiliations.router)
router.include_router(join_requests.router)
router.include_router(members.router)

__all__ = ["router"]
