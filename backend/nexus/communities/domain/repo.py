"""Async repository helpers for communities domain.

The repository holds no pool. Every method runs on the connection handed in
by the caller, so a workflow's reads and writes all land in the transaction
the workflow opened.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence
from uuid import UUID, uuid4

import asyncpg

from nexus.communities.domain import models
from nexus.communities.domain.exceptions import (
	AlreadyMemberError,
	AlreadyPendingError,
	ConflictError,
	DuplicateNameError,
)

_COMMUNITY_UPDATABLE = frozenset(
	{
		"name",
		"description",
		"visibility",
		"kind",
		"location_name",
		"latitude",
		"longitude",
		"radius_km",
		"tags",
		"allow_affiliation_requests",
	}
)
_SUB_CLUB_UPDATABLE = frozenset(
	{
		"name",
		"description",
		"visibility",
		"kind",
		"location_name",
		"latitude",
		"longitude",
		"tags",
		"rules",
		"seeking_community",
	}
)

_CONSTRAINT_ERRORS: dict[str, type[ConflictError]] = {
	"communities_name_key": DuplicateNameError,
	"sub_clubs_community_name_key": DuplicateNameError,
	"memberships_user_community_key": AlreadyMemberError,
	"memberships_user_sub_club_key": AlreadyMemberError,
	"join_requests_pending_community_idx": AlreadyPendingError,
	"join_requests_pending_sub_club_idx": AlreadyPendingError,
	"affiliation_requests_pending_idx": AlreadyPendingError,
}

# creator first, then admins and moderators, then everyone else
_ROLE_ORDER_SQL = """
	CASE role WHEN 'creator' THEN 0 WHEN 'admin' THEN 1 WHEN 'moderator' THEN 2 ELSE 3 END
"""


def _conflict_from(exc: asyncpg.UniqueViolationError) -> ConflictError:
	name = getattr(exc, "constraint_name", None) or ""
	error_cls = _CONSTRAINT_ERRORS.get(name, ConflictError)
	return error_cls()


def _affected(status: str) -> int:
	"""Parse the row count out of an asyncpg command tag like 'UPDATE 3'."""
	try:
		return int(status.rsplit(" ", 1)[-1])
	except (ValueError, IndexError):
		return 0


def _group_column(group: models.GroupRef) -> str:
	return "community_id" if group.is_community else "sub_club_id"


def _set_clause(changes: Mapping[str, Any], allowed: frozenset[str], start: int) -> tuple[str, list[Any]]:
	assignments: list[str] = []
	values: list[Any] = []
	for idx, (column, value) in enumerate(
		((k, v) for k, v in changes.items() if k in allowed),
		start=start,
	):
		assignments.append(f"{column} = ${idx}")
		values.append(list(value) if column in ("tags", "rules") else value)
	return ", ".join(assignments), values


class CommunitiesRepository:
	"""Thin data-access layer around asyncpg."""

	# --- Communities -------------------------------------------------------

	async def insert_community(
		self,
		conn: asyncpg.Connection,
		*,
		name: str,
		description: str,
		visibility: str,
		kind: str,
		location_name: str | None,
		latitude: float | None,
		longitude: float | None,
		radius_km: float,
		creator_id: UUID,
		tags: Sequence[str],
		allow_affiliation_requests: bool,
	) -> models.Community:
		try:
			record = await conn.fetchrow(
				"""
				INSERT INTO communities (id, name, description, visibility, kind, location_name,
					latitude, longitude, radius_km, creator_id, tags, allow_affiliation_requests,
					last_active_at)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, NOW())
				RETURNING *
				""",
				uuid4(),
				name,
				description,
				visibility,
				kind,
				location_name,
				latitude,
				longitude,
				radius_km,
				creator_id,
				list(tags),
				allow_affiliation_requests,
			)
		except asyncpg.UniqueViolationError as exc:
			raise _conflict_from(exc) from exc
		return models.Community.model_validate(dict(record))

	async def get_community(
		self,
		conn: asyncpg.Connection,
		community_id: UUID,
		*,
		for_update: bool = False,
	) -> models.Community | None:
		query = "SELECT * FROM communities WHERE id = $1"
		if for_update:
			query += " FOR UPDATE"
		record = await conn.fetchrow(query, community_id)
		return models.Community.model_validate(dict(record)) if record else None

	async def update_community(
		self,
		conn: asyncpg.Connection,
		community_id: UUID,
		changes: Mapping[str, Any],
	) -> models.Community | None:
		clause, values = _set_clause(changes, _COMMUNITY_UPDATABLE, start=2)
		if not clause:
			return await self.get_community(conn, community_id)
		try:
			record = await conn.fetchrow(
				f"UPDATE communities SET {clause}, updated_at = NOW() WHERE id = $1 RETURNING *",
				community_id,
				*values,
			)
		except asyncpg.UniqueViolationError as exc:
			raise _conflict_from(exc) from exc
		return models.Community.model_validate(dict(record)) if record else None

	async def delete_community(self, conn: asyncpg.Connection, community_id: UUID) -> bool:
		status = await conn.execute("DELETE FROM communities WHERE id = $1", community_id)
		return _affected(status) > 0

	async def list_public_communities(
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
		conditions = ["visibility = 'public'"]
		params: list[Any] = []
		if kind:
			params.append(kind)
			conditions.append(f"kind = ${len(params)}")
		if location:
			params.append(f"%{location}%")
			conditions.append(f"location_name ILIKE ${len(params)}")
		if tags:
			params.append(list(tags))
			conditions.append(f"tags && ${len(params)}::text[]")
		if search:
			params.append(f"%{search}%")
			conditions.append(f"(name ILIKE ${len(params)} OR description ILIKE ${len(params)})")
		params.extend([limit, offset])
		rows = await conn.fetch(
			f"""
			SELECT * FROM communities
			WHERE {' AND '.join(conditions)}
			ORDER BY created_at DESC, id
			LIMIT ${len(params) - 1} OFFSET ${len(params)}
			""",
			*params,
		)
		return [models.Community.model_validate(dict(row)) for row in rows]

	async def list_location_bound_in_box(
		self,
		conn: asyncpg.Connection,
		*,
		min_lat: float,
		max_lat: float,
		min_lon: float | None,
		max_lon: float | None,
	) -> list[models.Community]:
		"""Coarse bounding-box prefilter; callers compute exact distances."""
		params: list[Any] = [min_lat, max_lat]
		lon_clause = ""
		if min_lon is not None and max_lon is not None:
			params.extend([min_lon, max_lon])
			lon_clause = "AND longitude BETWEEN $3 AND $4"
		rows = await conn.fetch(
			f"""
			SELECT * FROM communities
			WHERE kind = 'location_bound'
				AND visibility = 'public'
				AND latitude BETWEEN $1 AND $2
				{lon_clause}
			""",
			*params,
		)
		return [models.Community.model_validate(dict(row)) for row in rows]

	async def list_user_communities(self, conn: asyncpg.Connection, user_id: UUID) -> list[models.Community]:
		rows = await conn.fetch(
			"""
			SELECT c.* FROM communities c
			JOIN memberships m ON m.community_id = c.id
			WHERE m.user_id = $1 AND m.status = 'active'
			ORDER BY m.joined_at DESC
			""",
			user_id,
		)
		return [models.Community.model_validate(dict(row)) for row in rows]

	async def adjust_community_counters(
		self,
		conn: asyncpg.Connection,
		community_id: UUID,
		*,
		members: int = 0,
		subclubs: int = 0,
	) -> None:
		await conn.execute(
			"""
			UPDATE communities
			SET member_count = GREATEST(member_count + $2, 0),
				subclub_count = GREATEST(subclub_count + $3, 0),
				last_active_at = NOW()
			WHERE id = $1
			""",
			community_id,
			members,
			subclubs,
		)

	async def get_group(
		self,
		conn: asyncpg.Connection,
		group: models.GroupRef,
		*,
		for_update: bool = False,
	) -> models.Group | None:
		if group.is_community:
			return await self.get_community(conn, group.id, for_update=for_update)
		return await self.get_sub_club(conn, group.id, for_update=for_update)

	# --- Sub-clubs ---------------------------------------------------------

	async def insert_sub_club(
		self,
		conn: asyncpg.Connection,
		*,
		community_id: UUID | None,
		name: str,
		description: str,
		visibility: str,
		kind: str,
		location_name: str | None,
		latitude: float | None,
		longitude: float | None,
		creator_id: UUID,
		tags: Sequence[str],
		rules: Sequence[str],
		seeking_community: bool,
	) -> models.SubClub:
		try:
			record = await conn.fetchrow(
				"""
				INSERT INTO sub_clubs (id, community_id, name, description, visibility, kind,
					location_name, latitude, longitude, creator_id, tags, rules, is_independent,
					seeking_community, last_active_at)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, NOW())
				RETURNING *
				""",
				uuid4(),
				community_id,
				name,
				description,
				visibility,
				kind,
				location_name,
				latitude,
				longitude,
				creator_id,
				list(tags),
				list(rules),
				community_id is None,
				seeking_community and community_id is None,
			)
		except asyncpg.UniqueViolationError as exc:
			raise _conflict_from(exc) from exc
		return models.SubClub.model_validate(dict(record))

	async def get_sub_club(
		self,
		conn: asyncpg.Connection,
		sub_club_id: UUID,
		*,
		for_update: bool = False,
	) -> models.SubClub | None:
		query = "SELECT * FROM sub_clubs WHERE id = $1"
		if for_update:
			query += " FOR UPDATE"
		record = await conn.fetchrow(query, sub_club_id)
		return models.SubClub.model_validate(dict(record)) if record else None

	async def update_sub_club(
		self,
		conn: asyncpg.Connection,
		sub_club_id: UUID,
		changes: Mapping[str, Any],
	) -> models.SubClub | None:
		clause, values = _set_clause(changes, _SUB_CLUB_UPDATABLE, start=2)
		if not clause:
			return await self.get_sub_club(conn, sub_club_id)
		try:
			record = await conn.fetchrow(
				f"UPDATE sub_clubs SET {clause}, updated_at = NOW() WHERE id = $1 RETURNING *",
				sub_club_id,
				*values,
			)
		except asyncpg.UniqueViolationError as exc:
			raise _conflict_from(exc) from exc
		return models.SubClub.model_validate(dict(record)) if record else None

	async def reparent_sub_club(
		self,
		conn: asyncpg.Connection,
		sub_club_id: UUID,
		*,
		community_id: UUID,
		name: str,
	) -> models.SubClub:
		try:
			record = await conn.fetchrow(
				"""
				UPDATE sub_clubs
				SET community_id = $2,
					name = $3,
					is_independent = FALSE,
					seeking_community = FALSE,
					updated_at = NOW()
				WHERE id = $1
				RETURNING *
				""",
				sub_club_id,
				community_id,
				name,
			)
		except asyncpg.UniqueViolationError as exc:
			raise _conflict_from(exc) from exc
		return models.SubClub.model_validate(dict(record))

	async def delete_sub_club(self, conn: asyncpg.Connection, sub_club_id: UUID) -> bool:
		status = await conn.execute("DELETE FROM sub_clubs WHERE id = $1", sub_club_id)
		return _affected(status) > 0

	async def list_sub_clubs(self, conn: asyncpg.Connection, community_id: UUID) -> list[models.SubClub]:
		rows = await conn.fetch(
			"SELECT * FROM sub_clubs WHERE community_id = $1 ORDER BY created_at, id",
			community_id,
		)
		return [models.SubClub.model_validate(dict(row)) for row in rows]

	async def list_user_sub_clubs(self, conn: asyncpg.Connection, user_id: UUID) -> list[models.SubClub]:
		rows = await conn.fetch(
			"""
			SELECT s.* FROM sub_clubs s
			JOIN memberships m ON m.sub_club_id = s.id
			WHERE m.user_id = $1 AND m.status = 'active'
			ORDER BY m.joined_at DESC
			""",
			user_id,
		)
		return [models.SubClub.model_validate(dict(row)) for row in rows]

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
		conditions = ["visibility = 'public'"]
		params: list[Any] = []
		if kind:
			params.append(kind)
			conditions.append(f"kind = ${len(params)}")
		if location:
			params.append(f"%{location}%")
			conditions.append(f"location_name ILIKE ${len(params)}")
		if search:
			params.append(f"%{search}%")
			conditions.append(f"(name ILIKE ${len(params)} OR description ILIKE ${len(params)})")
		if independent is not None:
			params.append(independent)
			conditions.append(f"is_independent = ${len(params)}")
		if seeking_community is not None:
			params.append(seeking_community)
			conditions.append(f"seeking_community = ${len(params)}")
		params.extend([limit, offset])
		rows = await conn.fetch(
			f"""
			SELECT * FROM sub_clubs
			WHERE {' AND '.join(conditions)}
			ORDER BY created_at DESC, id
			LIMIT ${len(params) - 1} OFFSET ${len(params)}
			""",
			*params,
		)
		return [models.SubClub.model_validate(dict(row)) for row in rows]

	async def adjust_sub_club_counters(self, conn: asyncpg.Connection, sub_club_id: UUID, *, members: int) -> None:
		await conn.execute(
			"""
			UPDATE sub_clubs
			SET member_count = GREATEST(member_count + $2, 0),
				last_active_at = NOW()
			WHERE id = $1
			""",
			sub_club_id,
			members,
		)

	# --- Memberships -------------------------------------------------------

	async def insert_membership(
		self,
		conn: asyncpg.Connection,
		*,
		user_id: UUID,
		group: models.GroupRef,
		role: str,
		status: str,
	) -> models.Membership:
		community_id, sub_club_id = group.columns()
		try:
			record = await conn.fetchrow(
				"""
				INSERT INTO memberships (id, user_id, community_id, sub_club_id, role, status)
				VALUES ($1, $2, $3, $4, $5, $6)
				RETURNING *
				""",
				uuid4(),
				user_id,
				community_id,
				sub_club_id,
				role,
				status,
			)
		except asyncpg.UniqueViolationError as exc:
			raise _conflict_from(exc) from exc
		return models.Membership.model_validate(dict(record))

	async def get_membership(
		self,
		conn: asyncpg.Connection,
		user_id: UUID,
		group: models.GroupRef,
		*,
		for_update: bool = False,
	) -> models.Membership | None:
		query = f"SELECT * FROM memberships WHERE user_id = $1 AND {_group_column(group)} = $2"
		if for_update:
			query += " FOR UPDATE"
		record = await conn.fetchrow(query, user_id, group.id)
		return models.Membership.model_validate(dict(record)) if record else None

	async def get_membership_by_id(
		self,
		conn: asyncpg.Connection,
		membership_id: UUID,
		*,
		for_update: bool = False,
	) -> models.Membership | None:
		query = "SELECT * FROM memberships WHERE id = $1"
		if for_update:
			query += " FOR UPDATE"
		record = await conn.fetchrow(query, membership_id)
		return models.Membership.model_validate(dict(record)) if record else None

	async def update_membership_role(
		self,
		conn: asyncpg.Connection,
		membership_id: UUID,
		role: str,
	) -> models.Membership:
		record = await conn.fetchrow(
			"UPDATE memberships SET role = $2, updated_at = NOW() WHERE id = $1 RETURNING *",
			membership_id,
			role,
		)
		return models.Membership.model_validate(dict(record))

	async def delete_memberships(self, conn: asyncpg.Connection, membership_ids: Sequence[UUID]) -> int:
		if not membership_ids:
			return 0
		status = await conn.execute("DELETE FROM memberships WHERE id = ANY($1::uuid[])", list(membership_ids))
		return _affected(status)

	async def list_sub_club_memberships_in_community(
		self,
		conn: asyncpg.Connection,
		user_id: UUID,
		community_id: UUID,
	) -> list[models.Membership]:
		rows = await conn.fetch(
			"""
			SELECT m.* FROM memberships m
			JOIN sub_clubs s ON s.id = m.sub_club_id
			WHERE m.user_id = $1 AND s.community_id = $2
			FOR UPDATE OF m
			""",
			user_id,
			community_id,
		)
		return [models.Membership.model_validate(dict(row)) for row in rows]

	async def list_members(
		self,
		conn: asyncpg.Connection,
		group: models.GroupRef,
		*,
		role: str | None = None,
		status: str | None = None,
	) -> list[models.Membership]:
		conditions = [f"{_group_column(group)} = $1"]
		params: list[Any] = [group.id]
		if role:
			params.append(role)
			conditions.append(f"role = ${len(params)}")
		if status:
			params.append(status)
			conditions.append(f"status = ${len(params)}")
		rows = await conn.fetch(
			f"""
			SELECT * FROM memberships
			WHERE {' AND '.join(conditions)}
			ORDER BY {_ROLE_ORDER_SQL}, joined_at, id
			""",
			*params,
		)
		return [models.Membership.model_validate(dict(row)) for row in rows]

	# --- Join requests -----------------------------------------------------

	async def insert_join_request(
		self,
		conn: asyncpg.Connection,
		*,
		user_id: UUID,
		target: models.GroupRef,
		message: str | None,
	) -> models.JoinRequest:
		community_id, sub_club_id = target.columns()
		try:
			record = await conn.fetchrow(
				"""
				INSERT INTO join_requests (id, user_id, community_id, sub_club_id, message, status)
				VALUES ($1, $2, $3, $4, $5, 'pending')
				RETURNING *
				""",
				uuid4(),
				user_id,
				community_id,
				sub_club_id,
				message,
			)
		except asyncpg.UniqueViolationError as exc:
			raise _conflict_from(exc) from exc
		return models.JoinRequest.model_validate(dict(record))

	async def get_pending_join_request(
		self,
		conn: asyncpg.Connection,
		user_id: UUID,
		target: models.GroupRef,
	) -> models.JoinRequest | None:
		record = await conn.fetchrow(
			f"""
			SELECT * FROM join_requests
			WHERE user_id = $1 AND {_group_column(target)} = $2 AND status = 'pending'
			""",
			user_id,
			target.id,
		)
		return models.JoinRequest.model_validate(dict(record)) if record else None

	async def get_join_request(
		self,
		conn: asyncpg.Connection,
		request_id: UUID,
		*,
		for_update: bool = False,
	) -> models.JoinRequest | None:
		query = "SELECT * FROM join_requests WHERE id = $1"
		if for_update:
			query += " FOR UPDATE"
		record = await conn.fetchrow(query, request_id)
		return models.JoinRequest.model_validate(dict(record)) if record else None

	async def resolve_join_request(
		self,
		conn: asyncpg.Connection,
		request_id: UUID,
		*,
		status: str,
		reviewer_id: UUID,
	) -> models.JoinRequest:
		record = await conn.fetchrow(
			"""
			UPDATE join_requests
			SET status = $2, reviewed_by = $3, reviewed_at = NOW()
			WHERE id = $1
			RETURNING *
			""",
			request_id,
			status,
			reviewer_id,
		)
		return models.JoinRequest.model_validate(dict(record))

	async def list_join_requests(
		self,
		conn: asyncpg.Connection,
		target: models.GroupRef,
		*,
		status: str | None = models.REQUEST_PENDING,
	) -> list[models.JoinRequest]:
		params: list[Any] = [target.id]
		status_clause = ""
		if status:
			params.append(status)
			status_clause = "AND status = $2"
		rows = await conn.fetch(
			f"""
			SELECT * FROM join_requests
			WHERE {_group_column(target)} = $1 {status_clause}
			ORDER BY created_at, id
			""",
			*params,
		)
		return [models.JoinRequest.model_validate(dict(row)) for row in rows]

	async def reject_pending_sub_club_join_requests(
		self,
		conn: asyncpg.Connection,
		user_id: UUID,
		community_id: UUID,
		*,
		reviewer_id: UUID | None = None,
	) -> int:
		"""Close a user's open requests to sub-clubs inside ``community_id``."""
		status = await conn.execute(
			"""
			UPDATE join_requests
			SET status = 'rejected', reviewed_by = $3, reviewed_at = NOW()
			WHERE user_id = $1
				AND status = 'pending'
				AND sub_club_id IN (SELECT id FROM sub_clubs WHERE community_id = $2)
			""",
			user_id,
			community_id,
			reviewer_id,
		)
		return _affected(status)

	# --- Affiliation requests ----------------------------------------------

	async def insert_affiliation_request(
		self,
		conn: asyncpg.Connection,
		*,
		sub_club_id: UUID,
		community_id: UUID,
		requester_id: UUID,
		message: str | None,
		proposed_name: str | None,
	) -> models.AffiliationRequest:
		try:
			record = await conn.fetchrow(
				"""
				INSERT INTO affiliation_requests (id, sub_club_id, community_id, requester_id,
					message, proposed_name, status)
				VALUES ($1, $2, $3, $4, $5, $6, 'pending')
				RETURNING *
				""",
				uuid4(),
				sub_club_id,
				community_id,
				requester_id,
				message,
				proposed_name,
			)
		except asyncpg.UniqueViolationError as exc:
			raise _conflict_from(exc) from exc
		return models.AffiliationRequest.model_validate(dict(record))

	async def get_pending_affiliation(
		self,
		conn: asyncpg.Connection,
		sub_club_id: UUID,
		community_id: UUID,
	) -> models.AffiliationRequest | None:
		record = await conn.fetchrow(
			"""
			SELECT * FROM affiliation_requests
			WHERE sub_club_id = $1 AND community_id = $2 AND status = 'pending'
			""",
			sub_club_id,
			community_id,
		)
		return models.AffiliationRequest.model_validate(dict(record)) if record else None

	async def get_affiliation_request(
		self,
		conn: asyncpg.Connection,
		request_id: UUID,
		*,
		for_update: bool = False,
	) -> models.AffiliationRequest | None:
		query = "SELECT * FROM affiliation_requests WHERE id = $1"
		if for_update:
			query += " FOR UPDATE"
		record = await conn.fetchrow(query, request_id)
		return models.AffiliationRequest.model_validate(dict(record)) if record else None

	async def resolve_affiliation_request(
		self,
		conn: asyncpg.Connection,
		request_id: UUID,
		*,
		status: str,
		reviewer_id: UUID,
		review_message: str | None,
	) -> models.AffiliationRequest:
		record = await conn.fetchrow(
			"""
			UPDATE affiliation_requests
			SET status = $2, reviewed_by = $3, reviewed_at = NOW(), review_message = $4,
				updated_at = NOW()
			WHERE id = $1
			RETURNING *
			""",
			request_id,
			status,
			reviewer_id,
			review_message,
		)
		return models.AffiliationRequest.model_validate(dict(record))

	async def reject_other_pending_affiliations(
		self,
		conn: asyncpg.Connection,
		sub_club_id: UUID,
		*,
		keep_id: UUID,
		reviewer_id: UUID,
		review_message: str,
	) -> int:
		status = await conn.execute(
			"""
			UPDATE affiliation_requests
			SET status = 'rejected', reviewed_by = $3, reviewed_at = NOW(), review_message = $4,
				updated_at = NOW()
			WHERE sub_club_id = $1 AND id <> $2 AND status = 'pending'
			""",
			sub_club_id,
			keep_id,
			reviewer_id,
			review_message,
		)
		return _affected(status)

	async def delete_affiliation_request(self, conn: asyncpg.Connection, request_id: UUID) -> bool:
		status = await conn.execute("DELETE FROM affiliation_requests WHERE id = $1", request_id)
		return _affected(status) > 0

	async def list_affiliation_requests_for_community(
		self,
		conn: asyncpg.Connection,
		community_id: UUID,
		*,
		status: str | None = None,
	) -> list[models.AffiliationRequest]:
		params: list[Any] = [community_id]
		status_clause = ""
		if status:
			params.append(status)
			status_clause = "AND status = $2"
		rows = await conn.fetch(
			f"""
			SELECT * FROM affiliation_requests
			WHERE community_id = $1 {status_clause}
			ORDER BY CASE status WHEN 'pending' THEN 0 WHEN 'approved' THEN 1 ELSE 2 END,
				created_at DESC, id
			""",
			*params,
		)
		return [models.AffiliationRequest.model_validate(dict(row)) for row in rows]

	async def list_affiliation_requests_for_user(
		self,
		conn: asyncpg.Connection,
		user_id: UUID,
		*,
		status: str | None = None,
		community_id: UUID | None = None,
	) -> list[models.AffiliationRequest]:
		conditions = ["requester_id = $1"]
		params: list[Any] = [user_id]
		if status:
			params.append(status)
			conditions.append(f"status = ${len(params)}")
		if community_id:
			params.append(community_id)
			conditions.append(f"community_id = ${len(params)}")
		rows = await conn.fetch(
			f"""
			SELECT * FROM affiliation_requests
			WHERE {' AND '.join(conditions)}
			ORDER BY created_at DESC, id
			""",
			*params,
		)
		return [models.AffiliationRequest.model_validate(dict(row)) for row in rows]

	async def count_pending_affiliations(self, conn: asyncpg.Connection, community_id: UUID) -> int:
		value = await conn.fetchval(
			"SELECT COUNT(*) FROM affiliation_requests WHERE community_id = $1 AND status = 'pending'",
			community_id,
		)
		return int(value or 0)

	# --- Counter reconciliation --------------------------------------------

	async def reconcile_counters(self, conn: asyncpg.Connection) -> int:
		"""Recompute denormalised counters from source rows; returns rows corrected."""
		fixed = 0
		status = await conn.execute(
			"""
			UPDATE communities c
			SET member_count = counts.members, subclub_count = counts.subclubs
			FROM (
				SELECT c2.id,
					(SELECT COUNT(*) FROM memberships m
						WHERE m.community_id = c2.id AND m.status = 'active') AS members,
					(SELECT COUNT(*) FROM sub_clubs s WHERE s.community_id = c2.id) AS subclubs
				FROM communities c2
			) AS counts
			WHERE counts.id = c.id
				AND (c.member_count <> counts.members OR c.subclub_count <> counts.subclubs)
			"""
		)
		fixed += _affected(status)
		status = await conn.execute(
			"""
			UPDATE sub_clubs s
			SET member_count = counts.members
			FROM (
				SELECT s2.id,
					(SELECT COUNT(*) FROM memberships m
						WHERE m.sub_club_id = s2.id AND m.status = 'active') AS members
				FROM sub_clubs s2
			) AS counts
			WHERE counts.id = s.id AND s.member_count <> counts.members
			"""
		)
		fixed += _affected(status)
		return fixed


__all__ = ["CommunitiesRepository"]
