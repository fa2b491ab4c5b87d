"""Affiliation requests between independent sub-clubs and communities."""

from __future__ import annotations

from uuid import UUID

import asyncpg
from fastapi import APIRouter, Depends, Query, Response

from nexus.communities.api._deps import caller_id
from nexus.communities.api._errors import to_http_error
from nexus.communities.domain.affiliation_service import AffiliationService
from nexus.communities.schemas import dto
from nexus.infra.auth import AuthenticatedUser, get_current_user
from nexus.infra.postgres import get_connection

router = APIRouter(tags=["communities:affiliations"])
_service = AffiliationService()


@router.post(
	"/sub-clubs/{sub_club_id}/affiliations",
	response_model=dto.AffiliationRequestResponse,
	status_code=201,
)
async def request_affiliation_endpoint(
	sub_club_id: UUID,
	payload: dto.AffiliationCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.AffiliationRequestResponse:
	try:
		request = await _service.request_affiliation(
			conn,
			sub_club_id,
			payload.community_id,
			caller_id(auth_user),
			message=payload.message,
			proposed_name=payload.proposed_name,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.AffiliationRequestResponse.model_validate(request)


@router.get("/communities/{community_id}/affiliations", response_model=list[dto.AffiliationRequestResponse])
async def list_affiliations_endpoint(
	community_id: UUID,
	request_status: str | None = Query(default=None, alias="status"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> list[dto.AffiliationRequestResponse]:
	try:
		items = await _service.list_affiliation_requests(
			conn,
			community_id,
			caller_id(auth_user),
			status=request_status,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return [dto.AffiliationRequestResponse.model_validate(item) for item in items]


@router.get("/communities/{community_id}/affiliations/pending-count", response_model=dto.PendingCountResponse)
async def pending_affiliation_count_endpoint(
	community_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.PendingCountResponse:
	try:
		pending = await _service.pending_affiliation_count(conn, community_id, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.PendingCountResponse(community_id=community_id, pending=pending)


@router.get("/affiliations/mine", response_model=list[dto.AffiliationRequestResponse])
async def my_affiliations_endpoint(
	request_status: str | None = Query(default=None, alias="status"),
	community_id: UUID | None = Query(default=None),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> list[dto.AffiliationRequestResponse]:
	try:
		items = await _service.list_user_affiliation_requests(
			conn,
			caller_id(auth_user),
			status=request_status,
			community_id=community_id,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return [dto.AffiliationRequestResponse.model_validate(item) for item in items]


@router.post("/affiliations/{request_id}/approve", response_model=dto.AffiliationRequestResponse)
async def approve_affiliation_endpoint(
	request_id: UUID,
	payload: dto.AffiliationApproveRequest | None = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.AffiliationRequestResponse:
	payload = payload or dto.AffiliationApproveRequest()
	try:
		request = await _service.approve_affiliation(
			conn,
			request_id,
			caller_id(auth_user),
			final_name=payload.final_name,
			review_message=payload.review_message,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.AffiliationRequestResponse.model_validate(request)


@router.post("/affiliations/{request_id}/reject", response_model=dto.AffiliationRequestResponse)
async def reject_affiliation_endpoint(
	request_id: UUID,
	payload: dto.AffiliationRejectRequest | None = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> dto.AffiliationRequestResponse:
	payload = payload or dto.AffiliationRejectRequest()
	try:
		request = await _service.reject_affiliation(
			conn,
			request_id,
			caller_id(auth_user),
			review_message=payload.review_message,
		)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.AffiliationRequestResponse.model_validate(request)


@router.delete(
	"/affiliations/{request_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def cancel_affiliation_endpoint(
	request_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	conn: asyncpg.Connection = Depends(get_connection),
) -> None:
	try:
		await _service.cancel_affiliation(conn, request_id, caller_id(auth_user))
	except Exception as exc:
		raise to_http_error(exc) from exc


__all__ = ["router"]
