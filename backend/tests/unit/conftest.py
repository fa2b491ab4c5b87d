"""In-memory stand-ins for the asyncpg repository and connection."""

from __future__ import annotations

import copy
import itertools
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Sequence
from uuid import UUID, uuid4

import pytest

from nexus.communities.domain import models
from nexus.communities.domain.affiliation_service import AffiliationService
from nexus.communities.domain.events import EventPublisher
from nexus.communities.domain.exceptions import AlreadyMemberError, AlreadyPendingError, DuplicateNameError
from nexus.communities.domain.groups_service import GroupsService
from nexus.communities.domain.membership_service import MembershipService

_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)
_ROLE_ORDER = {models.ROLE_CREATOR: 0, models.ROLE_ADMIN: 1, models.ROLE_MODERATOR: 2}
_STATUS_ORDER = {models.REQUEST_PENDING: 0, models.REQUEST_APPROVED: 1}


@dataclass
class _State:
	communities: dict[UUID, models.Community] = field(default_factory=dict)
	sub_clubs: dict[UUID, models.SubClub] = field(default_factory=dict)
	memberships: dict[UUID, models.Membership] = field(default_factory=dict)
	join_requests: dict[UUID, models.JoinRequest] = field(default_factory=dict)
	affiliations: dict[UUID, models.AffiliationRequest] = field(default_factory=dict)


class FakeConnection:
	"""Mimics ``conn.transaction()``: state is restored when the block raises."""

	def __init__(self, repo: "FakeRepository") -> None:
		self.repo = repo
		self.transactions = 0

	@asynccontextmanager
	async def transaction(self):
		snapshot = copy.deepcopy(self.repo.state)
		self.transactions += 1
		try:
			yield self
		except BaseException:
			self.repo.state = snapshot
			raise


class FakeRepository:
	"""Implements the CommunitiesRepository surface over plain dicts."""

	def __init__(self) -> None:
		self.state = _State()
		self._clock = itertools.count(1)

	def _now(self) -> datetime:
		return _EPOCH + timedelta(seconds=next(self._clock))

	# --- Communities -------------------------------------------------------

	async def insert_community(self, conn, **fields: Any) -> models.Community:
		if any(c.name == fields["name"] for c in self.state.communities.values()):
			raise DuplicateNameError()
		now = self._now()
		community = models.Community(
			id=uuid4(),
			created_at=now,
			updated_at=now,
			last_active_at=now,
			**{**fields, "tags": list(fields["tags"])},
		)
		self.state.communities[community.id] = community
		return community

	async def get_community(self, conn, community_id: UUID, *, for_update: bool = False) -> models.Community | None:
		return self.state.communities.get(community_id)

	async def update_community(self, conn, community_id: UUID, changes: Mapping[str, Any]) -> models.Community | None:
		current = self.state.communities.get(community_id)
		if current is None:
			return None
		if "name" in changes and any(
			c.name == changes["name"] and c.id != community_id for c in self.state.communities.values()
		):
			raise DuplicateNameError()
		updated = current.model_copy(update={**changes, "updated_at": self._now()})
		self.state.communities[community_id] = updated
		return updated

	async def delete_community(self, conn, community_id: UUID) -> bool:
		if self.state.communities.pop(community_id, None) is None:
			return False
		owned = {s.id for s in self.state.sub_clubs.values() if s.community_id == community_id}
		for sub_club_id in owned:
			del self.state.sub_clubs[sub_club_id]
		self.state.memberships = {
			k: m
			for k, m in self.state.memberships.items()
			if m.community_id != community_id and m.sub_club_id not in owned
		}
		self.state.join_requests = {
			k: r
			for k, r in self.state.join_requests.items()
			if r.community_id != community_id and r.sub_club_id not in owned
		}
		self.state.affiliations = {
			k: a
			for k, a in self.state.affiliations.items()
			if a.community_id != community_id and a.sub_club_id not in owned
		}
		return True

	async def list_public_communities(
		self,
		conn,
		*,
		kind: str | None = None,
		location: str | None = None,
		tags: Sequence[str] = (),
		search: str | None = None,
		limit: int = 20,
		offset: int = 0,
	) -> list[models.Community]:
		items = [c for c in self.state.communities.values() if c.visibility == models.VISIBILITY_PUBLIC]
		if kind:
			items = [c for c in items if c.kind == kind]
		if location:
			items = [c for c in items if location.lower() in (c.location_name or "").lower()]
		if tags:
			items = [c for c in items if set(tags) & set(c.tags)]
		if search:
			needle = search.lower()
			items = [c for c in items if needle in c.name.lower() or needle in c.description.lower()]
		items.sort(key=lambda c: c.created_at, reverse=True)
		return items[offset : offset + limit]

	async def list_location_bound_in_box(self, conn, *, min_lat, max_lat, min_lon, max_lon) -> list[models.Community]:
		items = []
		for c in self.state.communities.values():
			if c.kind != models.KIND_LOCATION_BOUND or c.visibility != models.VISIBILITY_PUBLIC:
				continue
			if c.latitude is None or not min_lat <= c.latitude <= max_lat:
				continue
			if min_lon is not None and not min_lon <= (c.longitude or 0.0) <= max_lon:
				continue
			items.append(c)
		return items

	async def list_user_communities(self, conn, user_id: UUID) -> list[models.Community]:
		rows = [
			m
			for m in self.state.memberships.values()
			if m.user_id == user_id and m.community_id is not None and m.is_active
		]
		rows.sort(key=lambda m: m.joined_at, reverse=True)
		return [self.state.communities[m.community_id] for m in rows]

	async def adjust_community_counters(self, conn, community_id: UUID, *, members: int = 0, subclubs: int = 0) -> None:
		current = self.state.communities.get(community_id)
		if current is None:
			return
		self.state.communities[community_id] = current.model_copy(
			update={
				"member_count": max(current.member_count + members, 0),
				"subclub_count": max(current.subclub_count + subclubs, 0),
				"last_active_at": self._now(),
			}
		)

	async def get_group(self, conn, group: models.GroupRef, *, for_update: bool = False) -> models.Group | None:
		if group.is_community:
			return self.state.communities.get(group.id)
		return self.state.sub_clubs.get(group.id)

	# --- Sub-clubs ---------------------------------------------------------

	def _sub_club_name_taken(self, community_id: UUID | None, name: str, *, exclude: UUID | None = None) -> bool:
		if community_id is None:
			return False
		return any(
			s.community_id == community_id and s.name == name and s.id != exclude
			for s in self.state.sub_clubs.values()
		)

	async def insert_sub_club(self, conn, *, community_id: UUID | None, seeking_community: bool, **fields: Any) -> models.SubClub:
		if self._sub_club_name_taken(community_id, fields["name"]):
			raise DuplicateNameError()
		now = self._now()
		sub_club = models.SubClub(
			id=uuid4(),
			community_id=community_id,
			is_independent=community_id is None,
			seeking_community=seeking_community and community_id is None,
			created_at=now,
			updated_at=now,
			last_active_at=now,
			**{**fields, "tags": list(fields["tags"]), "rules": list(fields["rules"])},
		)
		self.state.sub_clubs[sub_club.id] = sub_club
		return sub_club

	async def get_sub_club(self, conn, sub_club_id: UUID, *, for_update: bool = False) -> models.SubClub | None:
		return self.state.sub_clubs.get(sub_club_id)

	async def update_sub_club(self, conn, sub_club_id: UUID, changes: Mapping[str, Any]) -> models.SubClub | None:
		current = self.state.sub_clubs.get(sub_club_id)
		if current is None:
			return None
		if "name" in changes and self._sub_club_name_taken(current.community_id, changes["name"], exclude=sub_club_id):
			raise DuplicateNameError()
		updated = current.model_copy(update={**changes, "updated_at": self._now()})
		self.state.sub_clubs[sub_club_id] = updated
		return updated

	async def reparent_sub_club(self, conn, sub_club_id: UUID, *, community_id: UUID, name: str) -> models.SubClub:
		if self._sub_club_name_taken(community_id, name, exclude=sub_club_id):
			raise DuplicateNameError()
		updated = self.state.sub_clubs[sub_club_id].model_copy(
			update={
				"community_id": community_id,
				"name": name,
				"is_independent": False,
				"seeking_community": False,
				"updated_at": self._now(),
			}
		)
		self.state.sub_clubs[sub_club_id] = updated
		return updated

	async def delete_sub_club(self, conn, sub_club_id: UUID) -> bool:
		if self.state.sub_clubs.pop(sub_club_id, None) is None:
			return False
		self.state.memberships = {k: m for k, m in self.state.memberships.items() if m.sub_club_id != sub_club_id}
		self.state.join_requests = {k: r for k, r in self.state.join_requests.items() if r.sub_club_id != sub_club_id}
		self.state.affiliations = {k: a for k, a in self.state.affiliations.items() if a.sub_club_id != sub_club_id}
		return True

	async def list_sub_clubs(self, conn, community_id: UUID) -> list[models.SubClub]:
		items = [s for s in self.state.sub_clubs.values() if s.community_id == community_id]
		return sorted(items, key=lambda s: s.created_at)

	async def list_user_sub_clubs(self, conn, user_id: UUID) -> list[models.SubClub]:
		rows = [
			m
			for m in self.state.memberships.values()
			if m.user_id == user_id and m.sub_club_id is not None and m.is_active
		]
		rows.sort(key=lambda m: m.joined_at, reverse=True)
		return [self.state.sub_clubs[m.sub_club_id] for m in rows]

	async def list_sub_clubs_filtered(
		self,
		conn,
		*,
		kind: str | None = None,
		location: str | None = None,
		search: str | None = None,
		independent: bool | None = None,
		seeking_community: bool | None = None,
		limit: int = 20,
		offset: int = 0,
	) -> list[models.SubClub]:
		items = [s for s in self.state.sub_clubs.values() if s.visibility == models.VISIBILITY_PUBLIC]
		if kind:
			items = [s for s in items if s.kind == kind]
		if location:
			items = [s for s in items if location.lower() in (s.location_name or "").lower()]
		if search:
			needle = search.lower()
			items = [s for s in items if needle in s.name.lower() or needle in s.description.lower()]
		if independent is not None:
			items = [s for s in items if s.is_independent == independent]
		if seeking_community is not None:
			items = [s for s in items if s.seeking_community == seeking_community]
		items.sort(key=lambda s: s.created_at, reverse=True)
		return items[offset : offset + limit]

	async def adjust_sub_club_counters(self, conn, sub_club_id: UUID, *, members: int) -> None:
		current = self.state.sub_clubs.get(sub_club_id)
		if current is None:
			return
		self.state.sub_clubs[sub_club_id] = current.model_copy(
			update={"member_count": max(current.member_count + members, 0), "last_active_at": self._now()}
		)

	# --- Memberships -------------------------------------------------------

	async def insert_membership(self, conn, *, user_id: UUID, group: models.GroupRef, role: str, status: str) -> models.Membership:
		if await self.get_membership(conn, user_id, group) is not None:
			raise AlreadyMemberError()
		community_id, sub_club_id = group.columns()
		now = self._now()
		membership = models.Membership(
			id=uuid4(),
			user_id=user_id,
			community_id=community_id,
			sub_club_id=sub_club_id,
			role=role,
			status=status,
			joined_at=now,
			updated_at=now,
		)
		self.state.memberships[membership.id] = membership
		return membership

	async def get_membership(self, conn, user_id: UUID, group: models.GroupRef, *, for_update: bool = False) -> models.Membership | None:
		for membership in self.state.memberships.values():
			if membership.user_id == user_id and membership.group == group:
				return membership
		return None

	async def get_membership_by_id(self, conn, membership_id: UUID, *, for_update: bool = False) -> models.Membership | None:
		return self.state.memberships.get(membership_id)

	async def update_membership_role(self, conn, membership_id: UUID, role: str) -> models.Membership:
		updated = self.state.memberships[membership_id].model_copy(update={"role": role, "updated_at": self._now()})
		self.state.memberships[membership_id] = updated
		return updated

	async def delete_memberships(self, conn, membership_ids: Sequence[UUID]) -> int:
		removed = 0
		for membership_id in membership_ids:
			if self.state.memberships.pop(membership_id, None) is not None:
				removed += 1
		return removed

	async def list_sub_club_memberships_in_community(self, conn, user_id: UUID, community_id: UUID) -> list[models.Membership]:
		owned = {s.id for s in self.state.sub_clubs.values() if s.community_id == community_id}
		return [m for m in self.state.memberships.values() if m.user_id == user_id and m.sub_club_id in owned]

	async def list_members(self, conn, group: models.GroupRef, *, role: str | None = None, status: str | None = None) -> list[models.Membership]:
		items = [m for m in self.state.memberships.values() if m.group == group]
		if role:
			items = [m for m in items if m.role == role]
		if status:
			items = [m for m in items if m.status == status]
		return sorted(items, key=lambda m: (_ROLE_ORDER.get(m.role, 3), m.joined_at))

	# --- Join requests -----------------------------------------------------

	async def insert_join_request(self, conn, *, user_id: UUID, target: models.GroupRef, message: str | None) -> models.JoinRequest:
		if await self.get_pending_join_request(conn, user_id, target) is not None:
			raise AlreadyPendingError()
		community_id, sub_club_id = target.columns()
		request = models.JoinRequest(
			id=uuid4(),
			user_id=user_id,
			community_id=community_id,
			sub_club_id=sub_club_id,
			message=message,
			status=models.REQUEST_PENDING,
			created_at=self._now(),
		)
		self.state.join_requests[request.id] = request
		return request

	async def get_pending_join_request(self, conn, user_id: UUID, target: models.GroupRef) -> models.JoinRequest | None:
		for request in self.state.join_requests.values():
			if request.user_id == user_id and request.target == target and request.status == models.REQUEST_PENDING:
				return request
		return None

	async def get_join_request(self, conn, request_id: UUID, *, for_update: bool = False) -> models.JoinRequest | None:
		return self.state.join_requests.get(request_id)

	async def resolve_join_request(self, conn, request_id: UUID, *, status: str, reviewer_id: UUID) -> models.JoinRequest:
		updated = self.state.join_requests[request_id].model_copy(
			update={"status": status, "reviewed_by": reviewer_id, "reviewed_at": self._now()}
		)
		self.state.join_requests[request_id] = updated
		return updated

	async def list_join_requests(self, conn, target: models.GroupRef, *, status: str | None = models.REQUEST_PENDING) -> list[models.JoinRequest]:
		items = [r for r in self.state.join_requests.values() if r.target == target]
		if status:
			items = [r for r in items if r.status == status]
		return sorted(items, key=lambda r: r.created_at)

	async def reject_pending_sub_club_join_requests(
		self,
		conn,
		user_id: UUID,
		community_id: UUID,
		*,
		reviewer_id: UUID | None = None,
	) -> int:
		owned = {s.id for s in self.state.sub_clubs.values() if s.community_id == community_id}
		rejected = 0
		for key, request in list(self.state.join_requests.items()):
			if request.user_id == user_id and request.sub_club_id in owned and request.status == models.REQUEST_PENDING:
				self.state.join_requests[key] = request.model_copy(
					update={"status": models.REQUEST_REJECTED, "reviewed_by": reviewer_id, "reviewed_at": self._now()}
				)
				rejected += 1
		return rejected

	# --- Affiliation requests ----------------------------------------------

	async def insert_affiliation_request(self, conn, **fields: Any) -> models.AffiliationRequest:
		if await self.get_pending_affiliation(conn, fields["sub_club_id"], fields["community_id"]) is not None:
			raise AlreadyPendingError()
		now = self._now()
		request = models.AffiliationRequest(
			id=uuid4(),
			status=models.REQUEST_PENDING,
			created_at=now,
			updated_at=now,
			**fields,
		)
		self.state.affiliations[request.id] = request
		return request

	async def get_pending_affiliation(self, conn, sub_club_id: UUID, community_id: UUID) -> models.AffiliationRequest | None:
		for request in self.state.affiliations.values():
			if (
				request.sub_club_id == sub_club_id
				and request.community_id == community_id
				and request.status == models.REQUEST_PENDING
			):
				return request
		return None

	async def get_affiliation_request(self, conn, request_id: UUID, *, for_update: bool = False) -> models.AffiliationRequest | None:
		return self.state.affiliations.get(request_id)

	async def resolve_affiliation_request(
		self,
		conn,
		request_id: UUID,
		*,
		status: str,
		reviewer_id: UUID,
		review_message: str | None,
	) -> models.AffiliationRequest:
		now = self._now()
		updated = self.state.affiliations[request_id].model_copy(
			update={
				"status": status,
				"reviewed_by": reviewer_id,
				"reviewed_at": now,
				"review_message": review_message,
				"updated_at": now,
			}
		)
		self.state.affiliations[request_id] = updated
		return updated

	async def reject_other_pending_affiliations(
		self,
		conn,
		sub_club_id: UUID,
		*,
		keep_id: UUID,
		reviewer_id: UUID,
		review_message: str,
	) -> int:
		others = [
			r.id
			for r in self.state.affiliations.values()
			if r.sub_club_id == sub_club_id and r.id != keep_id and r.status == models.REQUEST_PENDING
		]
		for request_id in others:
			await self.resolve_affiliation_request(
				conn,
				request_id,
				status=models.REQUEST_REJECTED,
				reviewer_id=reviewer_id,
				review_message=review_message,
			)
		return len(others)

	async def delete_affiliation_request(self, conn, request_id: UUID) -> bool:
		return self.state.affiliations.pop(request_id, None) is not None

	async def list_affiliation_requests_for_community(self, conn, community_id: UUID, *, status: str | None = None) -> list[models.AffiliationRequest]:
		items = [r for r in self.state.affiliations.values() if r.community_id == community_id]
		if status:
			items = [r for r in items if r.status == status]
		items.sort(key=lambda r: r.created_at, reverse=True)
		return sorted(items, key=lambda r: _STATUS_ORDER.get(r.status, 2))

	async def list_affiliation_requests_for_user(
		self,
		conn,
		user_id: UUID,
		*,
		status: str | None = None,
		community_id: UUID | None = None,
	) -> list[models.AffiliationRequest]:
		items = [r for r in self.state.affiliations.values() if r.requester_id == user_id]
		if status:
			items = [r for r in items if r.status == status]
		if community_id:
			items = [r for r in items if r.community_id == community_id]
		return sorted(items, key=lambda r: r.created_at, reverse=True)

	async def count_pending_affiliations(self, conn, community_id: UUID) -> int:
		return sum(
			1
			for r in self.state.affiliations.values()
			if r.community_id == community_id and r.status == models.REQUEST_PENDING
		)

	# --- Counter reconciliation --------------------------------------------

	async def reconcile_counters(self, conn) -> int:
		fixed = 0
		for community in list(self.state.communities.values()):
			members = sum(1 for m in self.state.memberships.values() if m.community_id == community.id and m.is_active)
			subclubs = sum(1 for s in self.state.sub_clubs.values() if s.community_id == community.id)
			if (community.member_count, community.subclub_count) != (members, subclubs):
				self.state.communities[community.id] = community.model_copy(
					update={"member_count": members, "subclub_count": subclubs}
				)
				fixed += 1
		for sub_club in list(self.state.sub_clubs.values()):
			members = sum(1 for m in self.state.memberships.values() if m.sub_club_id == sub_club.id and m.is_active)
			if sub_club.member_count != members:
				self.state.sub_clubs[sub_club.id] = sub_club.model_copy(update={"member_count": members})
				fixed += 1
		return fixed


class RecordingPublisher(EventPublisher):
	"""Captures emitted events instead of writing to redis."""

	def __init__(self) -> None:
		self.events: list[tuple[str, dict[str, Any]]] = []

	async def group_created(self, group: models.GroupRef, *, actor_id: UUID) -> None:
		self.events.append(("group.created", {"group": group, "actor_id": actor_id}))

	async def membership(self, event: str, group: models.GroupRef, **kwargs: Any) -> None:
		self.events.append((event, {"group": group, **kwargs}))

	async def affiliation(self, event: str, request: models.AffiliationRequest, *, actor_id: UUID) -> None:
		self.events.append((event, {"request_id": request.id, "actor_id": actor_id}))

	def names(self) -> list[str]:
		return [name for name, _ in self.events]


@pytest.fixture()
def repo() -> FakeRepository:
	return FakeRepository()


@pytest.fixture()
def conn(repo: FakeRepository) -> FakeConnection:
	return FakeConnection(repo)


@pytest.fixture()
def publisher() -> RecordingPublisher:
	return RecordingPublisher()


@pytest.fixture()
def groups(repo, publisher) -> GroupsService:
	return GroupsService(repository=repo, publisher=publisher)


@pytest.fixture()
def memberships(repo, publisher) -> MembershipService:
	return MembershipService(repository=repo, publisher=publisher)


@pytest.fixture()
def affiliations(repo, publisher) -> AffiliationService:
	return AffiliationService(repository=repo, publisher=publisher)
