"""Join, leave, review, promote and remove flows for group memberships.

Per (user, group) pair the states are absent, pending (a join request),
active, banned and suspended; leave and removal return the pair to absent.
Each public method is one transaction on the caller's connection.
"""

from __future__ import annotations

import logging
from typing import Union
from uuid import UUID

import asyncpg

from nexus.communities.domain import geofence, models, policies, repo as repo_module
from nexus.communities.domain.events import EventPublisher
from nexus.communities.domain.exceptions import (
	AlreadyMemberError,
	AlreadyPendingError,
	CannotChangeCreatorRoleError,
	CannotRemoveCreatorError,
	CreatorCannotLeaveError,
	LocationDeniedError,
	MustBeCommunityMemberError,
	NotAMemberError,
	NotFoundError,
	RequestAlreadyProcessedError,
)
from nexus.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)

JoinOutcome = Union[models.Membership, models.JoinRequest]
ReviewOutcome = Union[models.Membership, models.JoinRequest]


class MembershipService:
	"""Membership workflow for communities and sub-clubs."""

	def __init__(
		self,
		*,
		repository: repo_module.CommunitiesRepository | None = None,
		publisher: EventPublisher | None = None,
	) -> None:
		self.repo = repository or repo_module.CommunitiesRepository()
		self.events = publisher or EventPublisher()

	async def join_group(
		self,
		conn: asyncpg.Connection,
		caller_id: UUID,
		group: models.GroupRef,
		*,
		message: str | None = None,
		latitude: float | None = None,
		longitude: float | None = None,
	) -> JoinOutcome:
		"""Join a public group directly or file a request for a private one.

		Returns the new Membership, or the pending JoinRequest when the target
		is private.
		"""
		policies.ensure_coordinates(latitude, longitude)
		async with conn.transaction():
			target = await self._require_group(conn, group)
			if await self.repo.get_membership(conn, caller_id, group) is not None:
				raise AlreadyMemberError()
			await self._require_parent_membership(conn, caller_id, target)
			access = geofence.check_location_access(target, latitude, longitude)
			obs_metrics.inc_geofence_check("allowed" if access.allowed else "denied")
			if not access.allowed:
				raise LocationDeniedError(
					"location_required" if access.requires_location else "outside_radius",
					distance_km=access.distance_km,
					radius_km=access.radius_km,
				)
			outcome: JoinOutcome
			if policies.can_join_directly(target):
				outcome = await self._add_member(conn, caller_id, group)
			else:
				pending = await self.repo.get_pending_join_request(conn, caller_id, group)
				if not policies.can_request_join(target, pending):
					raise AlreadyPendingError()
				outcome = await self.repo.insert_join_request(
					conn,
					user_id=caller_id,
					target=group,
					message=(message or "").strip() or None,
				)

		if isinstance(outcome, models.Membership):
			obs_metrics.inc_membership("joined", group.kind)
			_LOG.info("membership.joined", extra={"group": str(group), "member": str(caller_id)})
			await self.events.membership("membership.joined", group, user_id=caller_id)
		else:
			obs_metrics.inc_membership("requested", group.kind)
			_LOG.info("membership.requested", extra={"group": str(group), "request_id": str(outcome.id)})
			await self.events.membership(
				"membership.requested",
				group,
				user_id=caller_id,
				ref_id=outcome.id,
			)
		return outcome

	async def leave_group(self, conn: asyncpg.Connection, caller_id: UUID, group: models.GroupRef) -> None:
		"""Leave a group; leaving a community also drops its sub-club memberships."""
		async with conn.transaction():
			membership = await self.repo.get_membership(conn, caller_id, group, for_update=True)
			if membership is None:
				raise NotAMemberError()
			if membership.role == models.ROLE_CREATOR:
				raise CreatorCannotLeaveError()
			removed = [membership]
			dropped_requests = 0
			if group.is_community:
				removed.extend(await self._sub_club_memberships_to_cascade(conn, caller_id, group.id))
				dropped_requests = await self.repo.reject_pending_sub_club_join_requests(conn, caller_id, group.id)
			await self._delete_memberships(conn, removed)

		obs_metrics.inc_membership("left", group.kind)
		_LOG.info(
			"membership.left",
			extra={
				"group": str(group),
				"member": str(caller_id),
				"cascaded": len(removed) - 1,
				"requests_rejected": dropped_requests,
			},
		)
		await self.events.membership("membership.left", group, user_id=caller_id)

	async def handle_join_request(
		self,
		conn: asyncpg.Connection,
		request_id: UUID,
		action: str,
		reviewer_id: UUID,
	) -> ReviewOutcome:
		"""Approve or reject a pending request.

		Approval returns the new Membership; rejection returns the resolved
		request. A request that is no longer pending cannot be processed again.
		"""
		policies.ensure_review_action(action)
		async with conn.transaction():
			request = await self.repo.get_join_request(conn, request_id, for_update=True)
			if request is None:
				raise NotFoundError("join_request_not_found")
			group = request.target
			reviewer = await self.repo.get_membership(conn, reviewer_id, group)
			policies.assert_can_moderate(reviewer)
			if request.status != models.REQUEST_PENDING:
				raise RequestAlreadyProcessedError()

			outcome: ReviewOutcome
			if action == "approve":
				target = await self._require_group(conn, group)
				await self._require_parent_membership(conn, request.user_id, target)
				await self.repo.resolve_join_request(
					conn,
					request_id,
					status=models.REQUEST_APPROVED,
					reviewer_id=reviewer_id,
				)
				existing = await self.repo.get_membership(conn, request.user_id, group)
				outcome = existing or await self._add_member(conn, request.user_id, group)
			else:
				outcome = await self.repo.resolve_join_request(
					conn,
					request_id,
					status=models.REQUEST_REJECTED,
					reviewer_id=reviewer_id,
				)

		result = "approved" if action == "approve" else "rejected"
		obs_metrics.inc_join_request_review(result)
		_LOG.info(
			"join_request.reviewed",
			extra={"request_id": str(request_id), "result": result, "reviewer": str(reviewer_id)},
		)
		await self.events.membership(
			f"join_request.{result}",
			group,
			user_id=request.user_id,
			actor_id=reviewer_id,
			ref_id=request_id,
		)
		return outcome

	async def list_join_requests(
		self,
		conn: asyncpg.Connection,
		group: models.GroupRef,
		reviewer_id: UUID,
		*,
		status: str | None = models.REQUEST_PENDING,
	) -> list[models.JoinRequest]:
		async with conn.transaction():
			await self._require_group(conn, group)
			reviewer = await self.repo.get_membership(conn, reviewer_id, group)
			policies.assert_can_moderate(reviewer)
			return await self.repo.list_join_requests(conn, group, status=status)

	async def update_member_role(
		self,
		conn: asyncpg.Connection,
		membership_id: UUID,
		new_role: str,
		updater_id: UUID,
	) -> models.Membership:
		policies.ensure_assignable_role(new_role)
		async with conn.transaction():
			target = await self._require_membership(conn, membership_id)
			updater = await self.repo.get_membership(conn, updater_id, target.group)
			policies.assert_can_administer(updater)
			if target.role == models.ROLE_CREATOR:
				raise CannotChangeCreatorRoleError()
			if target.role == new_role:
				return target
			updated = await self.repo.update_membership_role(conn, membership_id, new_role)

		obs_metrics.inc_membership("role_changed", target.group.kind)
		_LOG.info(
			"membership.role_changed",
			extra={"membership_id": str(membership_id), "from": target.role, "to": new_role},
		)
		await self.events.membership(
			"membership.role_changed",
			target.group,
			user_id=target.user_id,
			actor_id=updater_id,
		)
		return updated

	async def remove_member(self, conn: asyncpg.Connection, membership_id: UUID, remover_id: UUID) -> None:
		"""Remove someone from a group.

		Moderators may remove plain members; removing another moderator or an
		admin takes the creator. Removal from a community drops the target's
		sub-club memberships inside it as well.
		"""
		async with conn.transaction():
			target = await self._require_membership(conn, membership_id)
			group = target.group
			remover = await self.repo.get_membership(conn, remover_id, group)
			policies.assert_can_moderate(remover)
			if target.role == models.ROLE_CREATOR:
				raise CannotRemoveCreatorError()
			if target.role != models.ROLE_MEMBER and target.user_id != remover_id:
				policies.assert_can_administer(remover)
			removed = [target]
			if group.is_community:
				try:
					removed.extend(await self._sub_club_memberships_to_cascade(conn, target.user_id, group.id))
				except CreatorCannotLeaveError as exc:
					raise CannotRemoveCreatorError("sub_club_creator_cannot_be_removed") from exc
				await self.repo.reject_pending_sub_club_join_requests(
					conn,
					target.user_id,
					group.id,
					reviewer_id=remover_id,
				)
			await self._delete_memberships(conn, removed)

		obs_metrics.inc_membership("removed", group.kind)
		_LOG.info(
			"membership.removed",
			extra={"group": str(group), "member": str(target.user_id), "actor": str(remover_id)},
		)
		await self.events.membership(
			"membership.removed",
			group,
			user_id=target.user_id,
			actor_id=remover_id,
		)

	async def check_location_access(
		self,
		conn: asyncpg.Connection,
		group: models.GroupRef,
		latitude: float | None = None,
		longitude: float | None = None,
	) -> models.LocationAccess:
		policies.ensure_coordinates(latitude, longitude)
		target = await self._require_group(conn, group)
		access = geofence.check_location_access(target, latitude, longitude)
		obs_metrics.inc_geofence_check("allowed" if access.allowed else "denied")
		return access

	# --- Helpers -------------------------------------------------------------

	async def _require_group(self, conn: asyncpg.Connection, group: models.GroupRef) -> models.Group:
		target = await self.repo.get_group(conn, group)
		if target is None:
			raise NotFoundError(f"{group.kind}_not_found")
		return target

	async def _require_membership(self, conn: asyncpg.Connection, membership_id: UUID) -> models.Membership:
		membership = await self.repo.get_membership_by_id(conn, membership_id, for_update=True)
		if membership is None:
			raise NotFoundError("membership_not_found")
		return membership

	async def _require_parent_membership(
		self,
		conn: asyncpg.Connection,
		user_id: UUID,
		target: models.Group,
	) -> None:
		"""Parented sub-clubs are only open to active members of the parent."""
		if not isinstance(target, models.SubClub) or target.community_id is None:
			return
		# Locked so a concurrent leave of the parent waits for this join to commit.
		parent = await self.repo.get_membership(
			conn,
			user_id,
			models.GroupRef.community(target.community_id),
			for_update=True,
		)
		if parent is None or not parent.is_active:
			raise MustBeCommunityMemberError()

	async def _sub_club_memberships_to_cascade(
		self,
		conn: asyncpg.Connection,
		user_id: UUID,
		community_id: UUID,
	) -> list[models.Membership]:
		memberships = await self.repo.list_sub_club_memberships_in_community(conn, user_id, community_id)
		if any(m.role == models.ROLE_CREATOR for m in memberships):
			raise CreatorCannotLeaveError("sub_club_creator_cannot_leave")
		return memberships

	async def _add_member(self, conn: asyncpg.Connection, user_id: UUID, group: models.GroupRef) -> models.Membership:
		membership = await self.repo.insert_membership(
			conn,
			user_id=user_id,
			group=group,
			role=models.ROLE_MEMBER,
			status=models.STATUS_ACTIVE,
		)
		await self._bump_counter(conn, group, 1)
		return membership

	async def _delete_memberships(self, conn: asyncpg.Connection, memberships: list[models.Membership]) -> None:
		await self.repo.delete_memberships(conn, [m.id for m in memberships])
		for membership in memberships:
			if membership.is_active:
				await self._bump_counter(conn, membership.group, -1)

	async def _bump_counter(self, conn: asyncpg.Connection, group: models.GroupRef, delta: int) -> None:
		if group.is_community:
			await self.repo.adjust_community_counters(conn, group.id, members=delta)
		else:
			await self.repo.adjust_sub_club_counters(conn, group.id, members=delta)
