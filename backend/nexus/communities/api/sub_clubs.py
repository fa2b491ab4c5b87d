"""Sub-club endpoints, parented and independent."""

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

router = APIRouter(tags=["communities:sub-clubs"])
_service = GroupsService()


@router.post("/communities/{community_id}/sub-clubs", response_model=dto.SubClubResponse, status_code=201)
async def create_sub_club_endpoint(
	community_id: UUID,
	payload: dto.SubClubCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.SubClubResponse:
	try:
		sub_club = await _service.create_sub_club(conn, caller_id(auth_user), community_id, payload)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.SubClubResponse.model_validate(sub_club)


@router.get("/communities/{community_id}/sub-clubs", response_model=list[dto.SubClubResponse])
async def list_sub_clubs_endpoint(
	community_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> list[dto.SubClubResponse]:
	try:
		items = await _service.list_sub_clubs(conn, community_id, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc
	return [dto.SubClubResponse.model_validate(item) for item in items]


@router.get("/sub-clubs", response_model=list[dto.SubClubResponse])
async def list_all_sub_clubs_endpoint(
	kind: str | None = Query(default=None, pattern="^(location_bound|agnostic)$"),
	location: str | None = Query(default=None, max_length=255),
	search: str | None = Query(default=None, max_length=255),
	independent: bool | None = Query(default=None),
	seeking_community: bool | None = Query(default=None),
	limit: int = Query(default=20, ge=1, le=100),
	offset: int = Query(default=0, ge=0),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> list[dto.SubClubResponse]:
	try:
		items = await _service.list_sub_clubs_filtered(
			conn,
			kind=kind,
			location=location,
			search=search,
			independent=independent,
			seeking_community=seeking_community,
			limit=limit,
			offset=offset,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return [dto.SubClubResponse.model_validate(item) for item in items]


@router.post("/sub-clubs/independent", response_model=dto.SubClubResponse, status_code=201)
async def create_independent_sub_club_endpoint(
	payload: dto.SubClubCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.SubClubResponse:
	try:
		sub_club = await _service.create_independent_sub_club(conn, caller_id(auth_user), payload)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.SubClubResponse.model_validate(sub_club)


@router.get("/sub-clubs/mine", response_model=list[dto.SubClubResponse])
async def my_sub_clubs_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> list[dto.SubClubResponse]:
	try:
		items = await _service.list_user_sub_clubs(conn, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc
	return [dto.SubClubResponse.model_validate(item) for item in items]


@router.get("/sub-clubs/{sub_club_id}", response_model=dto.SubClubDetailResponse)
async def get_sub_club_endpoint(
	sub_club_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.SubClubDetailResponse:
	try:
		return await _service.get_sub_club(conn, sub_club_id, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.patch("/sub-clubs/{sub_club_id}", response_model=dto.SubClubResponse)
async def update_sub_club_endpoint(
	sub_club_id: UUID,
	payload: dto.SubClubUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.SubClubResponse:
	try:
		sub_club = await _service.update_sub_club(conn, sub_club_id, caller_id(auth_user), payload)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.SubClubResponse.model_validate(sub_club)


@router.delete(
	"/sub-clubs/{sub_club_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_sub_club_endpoint(
	sub_club_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> None:
	try:
		await _service.delete_sub_club(conn, sub_club_id, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc


__all__ = ["router"]
