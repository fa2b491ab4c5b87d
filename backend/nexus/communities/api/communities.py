"""Community CRUD and discovery endpoints."""

from __future__ import annotations

from uuid import UUID

import asyncpg
from fastapi import APIRouter, Depends, Query, Response

from nexus.communities.api._deps import caller_id
from nexus.communities.api._errors import to_http_error
from nexus.communities.domain.groups_service import GroupsService
from nexus.communities.schemas import dto
from nexus.infra.auth import AuthenticatedUser, get_current_user
from nexus.infra.postgres import get_connection

router = APIRouter(tags=["communities:groups"])
_service = GroupsService()


@router.post("/communities", response_model=dto.CommunityResponse, status_code=201)
async def create_community_endpoint(
	payload: dto.CommunityCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.CommunityResponse:
	try:
		community = await _service.create_community(conn, caller_id(auth_user), payload)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.CommunityResponse.model_validate(community)


@router.get("/communities", response_model=list[dto.CommunityResponse])
async def list_communities_endpoint(
	kind: str | None = Query(default=None, pattern="^(location_bound|agnostic)$"),
	location: str | None = Query(default=None, max_length=255),
	tags: list[str] = Query(default=[]),
	search: str | None = Query(default=None, max_length=255),
	limit: int = Query(default=20, ge=1, le=100),
	offset: int = Query(default=0, ge=0),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> list[dto.CommunityResponse]:
	try:
		items = await _service.list_communities(
			conn,
			kind=kind,
			location=location,
			tags=tags,
			search=search,
			limit=limit,
			offset=offset,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return [dto.CommunityResponse.model_validate(item) for item in items]


@router.get("/communities/nearby", response_model=list[dto.NearbyCommunityResponse])
async def nearby_communities_endpoint(
	lat: float = Query(ge=-90, le=90),
	lng: float = Query(ge=-180, le=180),
	max_distance_km: float | None = Query(default=None, gt=0),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> list[dto.NearbyCommunityResponse]:
	try:
		items = await _service.list_nearby_communities(conn, lat, lng, max_distance_km)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return [
		dto.NearbyCommunityResponse(
			community=dto.CommunityResponse.model_validate(item.community),
			distance_km=item.distance_km,
		)
		for item in items
	]


@router.get("/communities/mine", response_model=list[dto.CommunityResponse])
async def my_communities_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> list[dto.CommunityResponse]:
	try:
		items = await _service.list_user_communities(conn, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc
	return [dto.CommunityResponse.model_validate(item) for item in items]


@router.get("/communities/{community_id}", response_model=dto.CommunityDetailResponse)
async def get_community_endpoint(
	community_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.CommunityDetailResponse:
	try:
		return await _service.get_community(conn, community_id, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.patch("/communities/{community_id}", response_model=dto.CommunityResponse)
async def update_community_endpoint(
	community_id: UUID,
	payload: dto.CommunityUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.CommunityResponse:
	try:
		community = await _service.update_community(conn, community_id, caller_id(auth_user), payload)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.CommunityResponse.model_validate(community)


@router.put("/communities/{community_id}/radius", response_model=dto.CommunityResponse)
async def update_radius_endpoint(
	community_id: UUID,
	payload: dto.RadiusUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.CommunityResponse:
	try:
		community = await _service.update_radius(conn, community_id, caller_id(auth_user), payload.radius_km)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.CommunityResponse.model_validate(community)


@router.delete(
	"/communities/{community_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_community_endpoint(
	community_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> None:
	try:
		await _service.delete_community(conn, community_id, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc


__all__ = ["router"]
