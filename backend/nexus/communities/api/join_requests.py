"""Moderator review of join requests for private groups."""

from __future__ import annotations

from uuid import UUID

import asyncpg
from fastapi import APIRouter, Depends, Query

from nexus.communities.api._deps import GroupPath, caller_id, group_ref
from nexus.communities.api._errors import to_http_error
from nexus.communities.domain import models
from nexus.communities.domain.membership_service import MembershipService
from nexus.communities.schemas import dto
from nexus.infra.auth import AuthenticatedUser, get_current_user
from nexus.infra.postgres import get_connection

router = APIRouter(tags=["communities:join-requests"])
_service = MembershipService()


@router.get("/{group_kind}/{group_id}/join-requests", response_model=list[dto.JoinRequestResponse])
async def list_join_requests_endpoint(
	group_kind: GroupPath,
	group_id: UUID,
	request_status: str | None = Query(default=models.REQUEST_PENDING, alias="status"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> list[dto.JoinRequestResponse]:
	try:
		items = await _service.list_join_requests(
			conn,
			group_ref(group_kind, group_id),
			caller_id(auth_user),
			status=request_status,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return [dto.JoinRequestResponse.model_validate(item) for item in items]


@router.post("/join-requests/{request_id}/review", response_model=dto.JoinRequestReviewResponse)
async def review_join_request_endpoint(
	request_id: UUID,
	payload: dto.JoinRequestReviewRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.JoinRequestReviewResponse:
	try:
		outcome = await _service.handle_join_request(conn, request_id, payload.action, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc
	if isinstance(outcome, models.Membership):
		return dto.JoinRequestReviewResponse(
			action=payload.action,
			membership=dto.MembershipResponse.model_validate(outcome),
		)
	return dto.JoinRequestReviewResponse(
		action=payload.action,
		join_request=dto.JoinRequestResponse.model_validate(outcome),
	)


__all__ = ["router"]
