"""Domain models for communities, sub-clubs and their memberships."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

ROLE_MEMBER = "member"
ROLE_MODERATOR = "moderator"
ROLE_CREATOR = "creator"
ROLE_ADMIN = "admin"
ROLES = frozenset({ROLE_MEMBER, ROLE_MODERATOR, ROLE_CREATOR, ROLE_ADMIN})
# Roles a workflow may hand out; creator is only ever granted at group creation.
ASSIGNABLE_ROLES = frozenset({ROLE_MEMBER, ROLE_MODERATOR})

STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_BANNED = "banned"
STATUS_SUSPENDED = "suspended"
MEMBERSHIP_STATUSES = frozenset({STATUS_PENDING, STATUS_ACTIVE, STATUS_BANNED, STATUS_SUSPENDED})

REQUEST_PENDING = "pending"
REQUEST_APPROVED = "approved"
REQUEST_REJECTED = "rejected"
REQUEST_STATUSES = frozenset({REQUEST_PENDING, REQUEST_APPROVED, REQUEST_REJECTED})

VISIBILITY_PUBLIC = "public"
VISIBILITY_PRIVATE = "private"
VISIBILITIES = frozenset({VISIBILITY_PUBLIC, VISIBILITY_PRIVATE})

KIND_LOCATION_BOUND = "location_bound"
KIND_AGNOSTIC = "agnostic"
KINDS = frozenset({KIND_LOCATION_BOUND, KIND_AGNOSTIC})

GroupKind = Literal["community", "sub_club"]


@dataclass(frozen=True, slots=True)
class GroupRef:
	"""Reference to exactly one group: a community or a sub-club.

	Storage keeps two nullable columns; everything above the repository deals
	in GroupRef so a row can never point at both or neither.
	"""

	kind: GroupKind
	id: UUID

	@classmethod
	def community(cls, community_id: UUID) -> "GroupRef":
		return cls("community", community_id)

	@classmethod
	def sub_club(cls, sub_club_id: UUID) -> "GroupRef":
		return cls("sub_club", sub_club_id)

	@classmethod
	def from_columns(cls, community_id: UUID | None, sub_club_id: UUID | None) -> "GroupRef":
		if (community_id is None) == (sub_club_id is None):
			raise ValueError("exactly one of community_id/sub_club_id must be set")
		if community_id is not None:
			return cls.community(community_id)
		return cls.sub_club(sub_club_id)  # type: ignore[arg-type]

	@property
	def is_community(self) -> bool:
		return self.kind == "community"

	def columns(self) -> tuple[UUID | None, UUID | None]:
		"""Return the (community_id, sub_club_id) pair for storage."""
		if self.is_community:
			return self.id, None
		return None, self.id

	def __str__(self) -> str:
		return f"{self.kind}:{self.id}"


class Community(BaseModel):
	"""Top-level group, optionally geofenced."""

	id: UUID
	name: str
	description: str = ""
	visibility: str
	kind: str
	location_name: Optional[str] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	radius_km: float = 5.0
	creator_id: UUID
	tags: list[str] = Field(default_factory=list)
	allow_affiliation_requests: bool = True
	member_count: int = 0
	post_count: int = 0
	subclub_count: int = 0
	last_active_at: Optional[datetime] = None
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def ref(self) -> GroupRef:
		return GroupRef.community(self.id)


class SubClub(BaseModel):
	"""Second-level group; independent when it has no parent community."""

	id: UUID
	community_id: Optional[UUID] = None
	name: str
	description: str = ""
	visibility: str
	kind: str
	location_name: Optional[str] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	creator_id: UUID
	tags: list[str] = Field(default_factory=list)
	rules: list[str] = Field(default_factory=list)
	is_independent: bool = False
	seeking_community: bool = False
	member_count: int = 0
	post_count: int = 0
	last_active_at: Optional[datetime] = None
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def ref(self) -> GroupRef:
		return GroupRef.sub_club(self.id)


Group = Union[Community, SubClub]


class Membership(BaseModel):
	"""Links one user to exactly one group."""

	id: UUID
	user_id: UUID
	community_id: Optional[UUID] = None
	sub_club_id: Optional[UUID] = None
	role: str
	status: str
	joined_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def group(self) -> GroupRef:
		return GroupRef.from_columns(self.community_id, self.sub_club_id)

	@property
	def is_active(self) -> bool:
		return self.status == STATUS_ACTIVE


class JoinRequest(BaseModel):
	"""Pending application to join a private group."""

	id: UUID
	user_id: UUID
	community_id: Optional[UUID] = None
	sub_club_id: Optional[UUID] = None
	message: Optional[str] = None
	status: str
	reviewed_by: Optional[UUID] = None
	reviewed_at: Optional[datetime] = None
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def target(self) -> GroupRef:
		return GroupRef.from_columns(self.community_id, self.sub_club_id)


class AffiliationRequest(BaseModel):
	"""Request for an independent sub-club to be adopted by a community."""

	id: UUID
	sub_club_id: UUID
	community_id: UUID
	requester_id: UUID
	message: Optional[str] = None
	proposed_name: Optional[str] = None
	status: str
	reviewed_by: Optional[UUID] = None
	reviewed_at: Optional[datetime] = None
	review_message: Optional[str] = None
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class LocationAccess(BaseModel):
	"""Outcome of a geofence evaluation."""

	allowed: bool
	requires_location: bool = False
	reason: Optional[str] = None
	distance_km: Optional[float] = None
	radius_km: Optional[float] = None


class NearbyCommunity(BaseModel):
	community: Community
	distance_km: float
