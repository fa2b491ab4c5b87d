"""Membership endpoints shared by communities and sub-clubs."""

from __future__ import annotations

from uuid import UUID

import asyncpg
from fastapi import APIRouter, Depends, Query, Response, status

from nexus.communities.api._deps import GroupPath, caller_id, group_ref
from nexus.communities.api._errors import to_http_error
from nexus.communities.domain import models
from nexus.communities.domain.groups_service import GroupsService
from nexus.communities.domain.membership_service import MembershipService
from nexus.communities.schemas import dto
from nexus.infra.auth import AuthenticatedUser, get_current_user
from nexus.infra.postgres import get_connection

router = APIRouter(tags=["communities:members"])
_service = MembershipService()
_groups = GroupsService()


@router.post(
	"/{group_kind}/{group_id}/join",
	response_model=dto.JoinResultResponse,
	status_code=status.HTTP_201_CREATED,
	responses={202: {"model": dto.JoinResultResponse, "description": "Join request submitted"}},
)
async def join_group_endpoint(
	group_kind: GroupPath,
	group_id: UUID,
	response: Response,
	payload: dto.JoinGroupRequest | None = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.JoinResultResponse:
	payload = payload or dto.JoinGroupRequest()
	try:
		outcome = await _service.join_group(
			conn,
			caller_id(auth_user),
			group_ref(group_kind, group_id),
			message=payload.message,
			latitude=payload.latitude,
			longitude=payload.longitude,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
	if isinstance(outcome, models.Membership):
		return dto.JoinResultResponse(result="joined", membership=dto.MembershipResponse.model_validate(outcome))
	response.status_code = status.HTTP_202_ACCEPTED
	return dto.JoinResultResponse(result="requested", join_request=dto.JoinRequestResponse.model_validate(outcome))


@router.post(
	"/{group_kind}/{group_id}/leave",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def leave_group_endpoint(
	group_kind: GroupPath,
	group_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> None:
	try:
		await _service.leave_group(conn, caller_id(auth_user), group_ref(group_kind, group_id))
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.get("/{group_kind}/{group_id}/members", response_model=list[dto.MembershipResponse])
async def list_members_endpoint(
	group_kind: GroupPath,
	group_id: UUID,
	role: str | None = Query(default=None),
	member_status: str | None = Query(default=None, alias="status"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> list[dto.MembershipResponse]:
	try:
		items = await _groups.list_members(
			conn,
			group_ref(group_kind, group_id),
			caller_id(auth_user),
			role=role,
			status=member_status,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return [dto.MembershipResponse.model_validate(item) for item in items]


@router.post("/{group_kind}/{group_id}/check-access", response_model=dto.LocationAccessResponse)
async def check_access_endpoint(
	group_kind: GroupPath,
	group_id: UUID,
	payload: dto.LocationCheckRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.LocationAccessResponse:
	try:
		access = await _service.check_location_access(
			conn,
			group_ref(group_kind, group_id),
			payload.latitude,
			payload.longitude,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.LocationAccessResponse(**access.model_dump())


@router.put("/memberships/{membership_id}/role", response_model=dto.MembershipResponse)
async def update_member_role_endpoint(
	membership_id: UUID,
	payload: dto.MemberRoleUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.MembershipResponse:
	try:
		membership = await _service.update_member_role(conn, membership_id, payload.role, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.MembershipResponse.model_validate(membership)


@router.delete(
	"/memberships/{membership_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def remove_member_endpoint(
	membership_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> None:
	try:
		await _service.remove_member(conn, membership_id, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc


__all__ = ["router"]
