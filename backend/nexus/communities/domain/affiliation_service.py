"""Adoption of independent sub-clubs by communities."""

from __future__ import annotations

import logging
from uuid import UUID

import asyncpg

from nexus.communities.domain import models, policies, repo as repo_module
from nexus.communities.domain.events import EventPublisher
from nexus.communities.domain.exceptions import (
	AlreadyPendingError,
	ForbiddenError,
	NotFoundError,
	RequestAlreadyProcessedError,
	SubClubNotIndependentError,
)
from nexus.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)

SUPERSEDED_MESSAGE = "Sub-club joined another community"


class AffiliationService:
	"""Request, approve, reject and cancel sub-club affiliation requests."""

	def __init__(
		self,
		*,
		repository: repo_module.CommunitiesRepository | None = None,
		publisher: EventPublisher | None = None,
	) -> None:
		self.repo = repository or repo_module.CommunitiesRepository()
		self.events = publisher or EventPublisher()

	async def request_affiliation(
		self,
		conn: asyncpg.Connection,
		sub_club_id: UUID,
		community_id: UUID,
		requester_id: UUID,
		*,
		message: str | None = None,
		proposed_name: str | None = None,
	) -> models.AffiliationRequest:
		if proposed_name is not None:
			proposed_name = policies.normalize_name(proposed_name)
		async with conn.transaction():
			sub_club = await self._require_sub_club(conn, sub_club_id)
			if not sub_club.is_independent:
				raise SubClubNotIndependentError()
			community = await self.repo.get_community(conn, community_id)
			if community is None:
				raise NotFoundError("community_not_found")
			if not community.allow_affiliation_requests:
				raise ForbiddenError("affiliation_requests_closed")
			membership = await self.repo.get_membership(conn, requester_id, sub_club.ref)
			policies.assert_can_manage_affiliation(membership)
			if await self.repo.get_pending_affiliation(conn, sub_club_id, community_id) is not None:
				raise AlreadyPendingError("affiliation_already_pending")
			request = await self.repo.insert_affiliation_request(
				conn,
				sub_club_id=sub_club_id,
				community_id=community_id,
				requester_id=requester_id,
				message=(message or "").strip() or None,
				proposed_name=proposed_name,
			)

		obs_metrics.inc_affiliation("requested")
		_LOG.info(
			"affiliation.requested",
			extra={"request_id": str(request.id), "sub_club": str(sub_club_id), "community": str(community_id)},
		)
		await self.events.affiliation("affiliation.requested", request, actor_id=requester_id)
		return request

	async def approve_affiliation(
		self,
		conn: asyncpg.Connection,
		request_id: UUID,
		reviewer_id: UUID,
		*,
		final_name: str | None = None,
		review_message: str | None = None,
	) -> models.AffiliationRequest:
		"""Re-parent the sub-club under the community and mark the request approved.

		Both writes share one transaction. The sub-club takes ``final_name``
		when given, else the proposed name, else keeps its own.
		"""
		async with conn.transaction():
			request = await self._require_pending(conn, request_id)
			reviewer = await self.repo.get_membership(conn, reviewer_id, models.GroupRef.community(request.community_id))
			policies.assert_can_review_affiliation(reviewer)
			sub_club = await self._require_sub_club(conn, request.sub_club_id, for_update=True)
			if not sub_club.is_independent:
				raise SubClubNotIndependentError()
			name = policies.normalize_name(final_name or request.proposed_name or sub_club.name)
			await self.repo.reparent_sub_club(
				conn,
				sub_club.id,
				community_id=request.community_id,
				name=name,
			)
			await self.repo.adjust_community_counters(conn, request.community_id, subclubs=1)
			approved = await self.repo.resolve_affiliation_request(
				conn,
				request_id,
				status=models.REQUEST_APPROVED,
				reviewer_id=reviewer_id,
				review_message=review_message,
			)
			superseded = await self.repo.reject_other_pending_affiliations(
				conn,
				sub_club.id,
				keep_id=request_id,
				reviewer_id=reviewer_id,
				review_message=SUPERSEDED_MESSAGE,
			)

		obs_metrics.inc_affiliation("approved")
		_LOG.info(
			"affiliation.approved",
			extra={
				"request_id": str(request_id),
				"sub_club": str(sub_club.id),
				"community": str(request.community_id),
				"superseded": superseded,
			},
		)
		await self.events.affiliation("affiliation.approved", approved, actor_id=reviewer_id)
		return approved

	async def reject_affiliation(
		self,
		conn: asyncpg.Connection,
		request_id: UUID,
		reviewer_id: UUID,
		*,
		review_message: str | None = None,
	) -> models.AffiliationRequest:
		async with conn.transaction():
			request = await self._require_pending(conn, request_id)
			reviewer = await self.repo.get_membership(conn, reviewer_id, models.GroupRef.community(request.community_id))
			policies.assert_can_review_affiliation(reviewer)
			rejected = await self.repo.resolve_affiliation_request(
				conn,
				request_id,
				status=models.REQUEST_REJECTED,
				reviewer_id=reviewer_id,
				review_message=review_message,
			)

		obs_metrics.inc_affiliation("rejected")
		_LOG.info("affiliation.rejected", extra={"request_id": str(request_id), "reviewer": str(reviewer_id)})
		await self.events.affiliation("affiliation.rejected", rejected, actor_id=reviewer_id)
		return rejected

	async def cancel_affiliation(self, conn: asyncpg.Connection, request_id: UUID, requester_id: UUID) -> None:
		async with conn.transaction():
			request = await self.repo.get_affiliation_request(conn, request_id, for_update=True)
			if request is None:
				raise NotFoundError("affiliation_request_not_found")
			if request.requester_id != requester_id:
				raise ForbiddenError("requester_only")
			if request.status != models.REQUEST_PENDING:
				raise RequestAlreadyProcessedError()
			await self.repo.delete_affiliation_request(conn, request_id)

		obs_metrics.inc_affiliation("cancelled")
		_LOG.info("affiliation.cancelled", extra={"request_id": str(request_id)})
		await self.events.affiliation("affiliation.cancelled", request, actor_id=requester_id)

	async def list_affiliation_requests(
		self,
		conn: asyncpg.Connection,
		community_id: UUID,
		reviewer_id: UUID,
		*,
		status: str | None = None,
	) -> list[models.AffiliationRequest]:
		async with conn.transaction():
			await self._require_reviewer(conn, community_id, reviewer_id)
			return await self.repo.list_affiliation_requests_for_community(conn, community_id, status=status)

	async def list_user_affiliation_requests(
		self,
		conn: asyncpg.Connection,
		user_id: UUID,
		*,
		status: str | None = None,
		community_id: UUID | None = None,
	) -> list[models.AffiliationRequest]:
		return await self.repo.list_affiliation_requests_for_user(
			conn,
			user_id,
			status=status,
			community_id=community_id,
		)

	async def pending_affiliation_count(
		self,
		conn: asyncpg.Connection,
		community_id: UUID,
		reviewer_id: UUID,
	) -> int:
		async with conn.transaction():
			await self._require_reviewer(conn, community_id, reviewer_id)
			return await self.repo.count_pending_affiliations(conn, community_id)

	# --- Helpers -------------------------------------------------------------

	async def _require_pending(self, conn: asyncpg.Connection, request_id: UUID) -> models.AffiliationRequest:
		request = await self.repo.get_affiliation_request(conn, request_id, for_update=True)
		if request is None:
			raise NotFoundError("affiliation_request_not_found")
		if request.status != models.REQUEST_PENDING:
			raise RequestAlreadyProcessedError()
		return request

	async def _require_sub_club(
		self,
		conn: asyncpg.Connection,
		sub_club_id: UUID,
		*,
		for_update: bool = False,
	) -> models.SubClub:
		sub_club = await self.repo.get_sub_club(conn, sub_club_id, for_update=for_update)
		if sub_club is None:
			raise NotFoundError("sub_club_not_found")
		return sub_club

	async def _require_reviewer(self, conn: asyncpg.Connection, community_id: UUID, reviewer_id: UUID) -> None:
		community = await self.repo.get_community(conn, community_id)
		if community is None:
			raise NotFoundError("community_not_found")
		reviewer = await self.repo.get_membership(conn, reviewer_id, community.ref)
		policies.assert_can_review_affiliation(reviewer)
