"""Community and sub-club lifecycle.

Every public method takes the caller's connection first and runs its reads
and writes inside one ``conn.transaction()`` block. Post-commit side effects
(metrics, logs, stream events) run only once that block has exited cleanly.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Sequence
from uuid import UUID

import asyncpg

from nexus.communities.domain import geofence, models, policies, repo as repo_module
from nexus.communities.domain.events import EventPublisher
from nexus.communities.domain.exceptions import MustBeCommunityMemberError, NotFoundError
from nexus.communities.schemas import dto
from nexus.obs import metrics as obs_metrics
from nexus.settings import settings

_LOG = logging.getLogger(__name__)

_KM_PER_DEGREE_LAT = 111.32
MAX_PAGE_SIZE = 100
_NULLABLE_FIELDS = frozenset({"location_name", "latitude", "longitude"})


def _bounding_box(lat: float, lon: float, distance_km: float) -> tuple[float, float, float | None, float | None]:
	d_lat = distance_km / _KM_PER_DEGREE_LAT
	min_lat, max_lat = max(-90.0, lat - d_lat), min(90.0, lat + d_lat)
	cos_lat = math.cos(math.radians(lat))
	if cos_lat < 0.01:
		return min_lat, max_lat, None, None
	d_lon = distance_km / (_KM_PER_DEGREE_LAT * cos_lat)
	min_lon, max_lon = lon - d_lon, lon + d_lon
	if min_lon < -180.0 or max_lon > 180.0:
		# Box wraps the antimeridian; fall back to latitude-only filtering.
		return min_lat, max_lat, None, None
	return min_lat, max_lat, min_lon, max_lon


def _changes_from(payload: dto.CommunityUpdateRequest | dto.SubClubUpdateRequest) -> dict[str, Any]:
	changes = payload.model_dump(exclude_unset=True)
	changes = {k: v for k, v in changes.items() if v is not None or k in _NULLABLE_FIELDS}
	if "name" in changes:
		changes["name"] = policies.normalize_name(changes["name"])
	return changes


def _viewer_state(
	membership: models.Membership | None,
	pending: models.JoinRequest | None,
) -> dto.ViewerState:
	return dto.ViewerState(
		role=membership.role if membership else None,
		status=membership.status if membership else None,
		join_request_status=pending.status if pending else None,
	)


class GroupsService:
	"""Creates, reads, updates and deletes communities and sub-clubs."""

	def __init__(
		self,
		*,
		repository: repo_module.CommunitiesRepository | None = None,
		publisher: EventPublisher | None = None,
	) -> None:
		self.repo = repository or repo_module.CommunitiesRepository()
		self.events = publisher or EventPublisher()

	# --- Communities -------------------------------------------------------

	async def create_community(
		self,
		conn: asyncpg.Connection,
		creator_id: UUID,
		payload: dto.CommunityCreateRequest,
	) -> models.Community:
		name = policies.normalize_name(payload.name)
		policies.ensure_visibility(payload.visibility)
		policies.ensure_location(payload.kind, payload.location_name, payload.latitude, payload.longitude)
		policies.ensure_radius(payload.radius_km)
		async with conn.transaction():
			community = await self.repo.insert_community(
				conn,
				name=name,
				description=payload.description.strip(),
				visibility=payload.visibility,
				kind=payload.kind,
				location_name=payload.location_name,
				latitude=payload.latitude,
				longitude=payload.longitude,
				radius_km=payload.radius_km,
				creator_id=creator_id,
				tags=payload.tags,
				allow_affiliation_requests=payload.allow_affiliation_requests,
			)
			await self.repo.insert_membership(
				conn,
				user_id=creator_id,
				group=community.ref,
				role=models.ROLE_CREATOR,
				status=models.STATUS_ACTIVE,
			)
			await self.repo.adjust_community_counters(conn, community.id, members=1)
			community = await self._require_community(conn, community.id)
		obs_metrics.inc_group_created("community")
		_LOG.info("group.created", extra={"group": str(community.ref), "actor": str(creator_id)})
		await self.events.group_created(community.ref, actor_id=creator_id)
		return community

	async def get_community(
		self,
		conn: asyncpg.Connection,
		community_id: UUID,
		viewer_id: UUID,
	) -> dto.CommunityDetailResponse:
		async with conn.transaction():
			community = await self._require_community(conn, community_id)
			membership = await self.repo.get_membership(conn, viewer_id, community.ref)
			policies.assert_can_view(community, membership)
			pending = await self.repo.get_pending_join_request(conn, viewer_id, community.ref)
		return dto.CommunityDetailResponse(
			community=dto.CommunityResponse.model_validate(community),
			viewer=_viewer_state(membership, pending),
		)

	async def list_communities(
		self,
		conn: asyncpg.Connection,
		*,
		kind: str | None = None,
		location: str | None = None,
		tags: Sequence[str] = (),
		search: str | None = None,
		limit: int = 20,
		offset: int = 0,
	) -> list[models.Community]:
		if kind:
			policies.ensure_kind(kind)
		return await self.repo.list_public_communities(
			conn,
			kind=kind,
			location=location,
			tags=tags,
			search=search,
			limit=max(1, min(limit, MAX_PAGE_SIZE)),
			offset=max(0, offset),
		)

	async def list_nearby_communities(
		self,
		conn: asyncpg.Connection,
		latitude: float,
		longitude: float,
		max_distance_km: float | None = None,
	) -> list[models.NearbyCommunity]:
		"""Public location-bound communities around a point, nearest first."""
		policies.ensure_coordinates(latitude, longitude)
		ceiling = float(settings.nearby_max_distance_km)
		distance_cap = ceiling if max_distance_km is None else max(0.0, min(max_distance_km, ceiling))
		min_lat, max_lat, min_lon, max_lon = _bounding_box(latitude, longitude, distance_cap)
		candidates = await self.repo.list_location_bound_in_box(
			conn,
			min_lat=min_lat,
			max_lat=max_lat,
			min_lon=min_lon,
			max_lon=max_lon,
		)
		nearby: list[models.NearbyCommunity] = []
		for community in candidates:
			if community.latitude is None or community.longitude is None:
				continue
			distance = geofence.distance_km(latitude, longitude, community.latitude, community.longitude)
			if distance <= distance_cap:
				nearby.append(models.NearbyCommunity(community=community, distance_km=round(distance, 3)))
		nearby.sort(key=lambda item: item.distance_km)
		return nearby

	async def list_user_communities(self, conn: asyncpg.Connection, user_id: UUID) -> list[models.Community]:
		return await self.repo.list_user_communities(conn, user_id)

	async def update_community(
		self,
		conn: asyncpg.Connection,
		community_id: UUID,
		actor_id: UUID,
		payload: dto.CommunityUpdateRequest,
	) -> models.Community:
		changes = _changes_from(payload)
		async with conn.transaction():
			community = await self._require_community(conn, community_id, for_update=True)
			membership = await self.repo.get_membership(conn, actor_id, community.ref)
			policies.assert_can_moderate(membership)
			merged = community.model_copy(update=changes)
			policies.ensure_visibility(merged.visibility)
			policies.ensure_location(merged.kind, merged.location_name, merged.latitude, merged.longitude)
			updated = await self.repo.update_community(conn, community_id, changes)
		_LOG.info("group.updated", extra={"group": str(community.ref), "fields": sorted(changes)})
		return updated or community

	async def update_radius(
		self,
		conn: asyncpg.Connection,
		community_id: UUID,
		actor_id: UUID,
		radius_km: float,
	) -> models.Community:
		policies.ensure_radius(radius_km)
		async with conn.transaction():
			community = await self._require_community(conn, community_id, for_update=True)
			membership = await self.repo.get_membership(conn, actor_id, community.ref)
			policies.assert_can_administer(membership)
			updated = await self.repo.update_community(conn, community_id, {"radius_km": radius_km})
		_LOG.info("group.radius_updated", extra={"group": str(community.ref), "radius_km": radius_km})
		return updated or community

	async def delete_community(self, conn: asyncpg.Connection, community_id: UUID, actor_id: UUID) -> None:
		"""Delete a community; memberships, requests and owned sub-clubs cascade."""
		async with conn.transaction():
			community = await self._require_community(conn, community_id, for_update=True)
			membership = await self.repo.get_membership(conn, actor_id, community.ref)
			policies.assert_can_administer(membership)
			await self.repo.delete_community(conn, community_id)
		_LOG.info("group.deleted", extra={"group": str(community.ref), "actor": str(actor_id)})

	async def list_members(
		self,
		conn: asyncpg.Connection,
		group: models.GroupRef,
		viewer_id: UUID,
		*,
		role: str | None = None,
		status: str | None = None,
	) -> list[models.Membership]:
		async with conn.transaction():
			target = await self.repo.get_group(conn, group)
			if target is None:
				raise NotFoundError(f"{group.kind}_not_found")
			membership = await self.repo.get_membership(conn, viewer_id, group)
			policies.assert_can_view(target, membership)
			return await self.repo.list_members(conn, group, role=role, status=status)

	# --- Sub-clubs ---------------------------------------------------------

	async def create_sub_club(
		self,
		conn: asyncpg.Connection,
		creator_id: UUID,
		community_id: UUID,
		payload: dto.SubClubCreateRequest,
	) -> models.SubClub:
		name = policies.normalize_name(payload.name)
		policies.ensure_visibility(payload.visibility)
		policies.ensure_location(payload.kind, payload.location_name, payload.latitude, payload.longitude)
		async with conn.transaction():
			community = await self._require_community(conn, community_id)
			parent_membership = await self.repo.get_membership(conn, creator_id, community.ref)
			if parent_membership is None or not parent_membership.is_active:
				raise MustBeCommunityMemberError()
			sub_club = await self._insert_sub_club_with_creator(conn, creator_id, community_id, name, payload)
			await self.repo.adjust_community_counters(conn, community_id, subclubs=1)
		obs_metrics.inc_group_created("sub_club")
		_LOG.info("group.created", extra={"group": str(sub_club.ref), "parent": str(community.ref)})
		await self.events.group_created(sub_club.ref, actor_id=creator_id)
		return sub_club

	async def create_independent_sub_club(
		self,
		conn: asyncpg.Connection,
		creator_id: UUID,
		payload: dto.SubClubCreateRequest,
	) -> models.SubClub:
		"""Create a parentless sub-club and its founder's creator membership atomically."""
		name = policies.normalize_name(payload.name)
		policies.ensure_visibility(payload.visibility)
		policies.ensure_location(payload.kind, payload.location_name, payload.latitude, payload.longitude)
		async with conn.transaction():
			sub_club = await self._insert_sub_club_with_creator(conn, creator_id, None, name, payload)
		obs_metrics.inc_group_created("independent_sub_club")
		_LOG.info("group.created", extra={"group": str(sub_club.ref), "independent": True})
		await self.events.group_created(sub_club.ref, actor_id=creator_id)
		return sub_club

	async def get_sub_club(
		self,
		conn: asyncpg.Connection,
		sub_club_id: UUID,
		viewer_id: UUID,
	) -> dto.SubClubDetailResponse:
		async with conn.transaction():
			sub_club = await self._require_sub_club(conn, sub_club_id)
			membership = await self.repo.get_membership(conn, viewer_id, sub_club.ref)
			policies.assert_can_view(sub_club, membership)
			pending = await self.repo.get_pending_join_request(conn, viewer_id, sub_club.ref)
		return dto.SubClubDetailResponse(
			sub_club=dto.SubClubResponse.model_validate(sub_club),
			viewer=_viewer_state(membership, pending),
		)

	async def list_sub_clubs(
		self,
		conn: asyncpg.Connection,
		community_id: UUID,
		viewer_id: UUID,
	) -> list[models.SubClub]:
		async with conn.transaction():
			community = await self._require_community(conn, community_id)
			membership = await self.repo.get_membership(conn, viewer_id, community.ref)
			policies.assert_can_view(community, membership)
			return await self.repo.list_sub_clubs(conn, community_id)

	async def list_sub_clubs_filtered(
		self,
		conn: asyncpg.Connection,
		*,
		kind: str | None = None,
		location: str | None = None,
		search: str | None = None,
		independent: bool | None = None,
		seeking_community: bool | None = None,
		limit: int = 20,
		offset: int = 0,
	) -> list[models.SubClub]:
		"""Public sub-club directory.

		``seeking_community=True`` lists independent sub-clubs looking for a
		parent, which is where communities find affiliation candidates.
		"""
		if kind:
			policies.ensure_kind(kind)
		return await self.repo.list_sub_clubs_filtered(
			conn,
			kind=kind,
			location=location,
			search=search,
			independent=independent,
			seeking_community=seeking_community,
			limit=max(1, min(limit, MAX_PAGE_SIZE)),
			offset=max(0, offset),
		)

	async def list_user_sub_clubs(self, conn: asyncpg.Connection, user_id: UUID) -> list[models.SubClub]:
		return await self.repo.list_user_sub_clubs(conn, user_id)

	async def update_sub_club(
		self,
		conn: asyncpg.Connection,
		sub_club_id: UUID,
		actor_id: UUID,
		payload: dto.SubClubUpdateRequest,
	) -> models.SubClub:
		changes = _changes_from(payload)
		async with conn.transaction():
			sub_club = await self._require_sub_club(conn, sub_club_id, for_update=True)
			membership = await self.repo.get_membership(conn, actor_id, sub_club.ref)
			policies.assert_can_moderate(membership)
			if not sub_club.is_independent:
				# Only independent sub-clubs can advertise for a parent.
				changes.pop("seeking_community", None)
			merged = sub_club.model_copy(update=changes)
			policies.ensure_visibility(merged.visibility)
			policies.ensure_location(merged.kind, merged.location_name, merged.latitude, merged.longitude)
			updated = await self.repo.update_sub_club(conn, sub_club_id, changes)
		_LOG.info("group.updated", extra={"group": str(sub_club.ref), "fields": sorted(changes)})
		return updated or sub_club

	async def delete_sub_club(self, conn: asyncpg.Connection, sub_club_id: UUID, actor_id: UUID) -> None:
		async with conn.transaction():
			sub_club = await self._require_sub_club(conn, sub_club_id, for_update=True)
			membership = await self.repo.get_membership(conn, actor_id, sub_club.ref)
			policies.assert_can_administer(membership)
			await self.repo.delete_sub_club(conn, sub_club_id)
			if sub_club.community_id is not None:
				await self.repo.adjust_community_counters(conn, sub_club.community_id, subclubs=-1)
		_LOG.info("group.deleted", extra={"group": str(sub_club.ref), "actor": str(actor_id)})

	# --- Helpers -------------------------------------------------------------

	async def _insert_sub_club_with_creator(
		self,
		conn: asyncpg.Connection,
		creator_id: UUID,
		community_id: UUID | None,
		name: str,
		payload: dto.SubClubCreateRequest,
	) -> models.SubClub:
		sub_club = await self.repo.insert_sub_club(
			conn,
			community_id=community_id,
			name=name,
			description=payload.description.strip(),
			visibility=payload.visibility,
			kind=payload.kind,
			location_name=payload.location_name,
			latitude=payload.latitude,
			longitude=payload.longitude,
			creator_id=creator_id,
			tags=payload.tags,
			rules=payload.rules,
			seeking_community=payload.seeking_community,
		)
		await self.repo.insert_membership(
			conn,
			user_id=creator_id,
			group=sub_club.ref,
			role=models.ROLE_CREATOR,
			status=models.STATUS_ACTIVE,
		)
		await self.repo.adjust_sub_club_counters(conn, sub_club.id, members=1)
		return await self._require_sub_club(conn, sub_club.id)

	async def _require_community(
		self,
		conn: asyncpg.Connection,
		community_id: UUID,
		*,
		for_update: bool = False,
	) -> models.Community:
		community = await self.repo.get_community(conn, community_id, for_update=for_update)
		if community is None:
			raise NotFoundError("community_not_found")
		return community

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
