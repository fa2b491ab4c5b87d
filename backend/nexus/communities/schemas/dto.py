"""Pydantic schemas for communities API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CommunityCreateRequest(BaseModel):
	name: str
	description: str = ""
	visibility: str = "public"
	kind: str = "agnostic"
	location_name: Optional[str] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	radius_km: float = 5.0
	tags: list[str] = Field(default_factory=list)
	allow_affiliation_requests: bool = True


class CommunityUpdateRequest(BaseModel):
	name: Optional[str] = None
	description: Optional[str] = None
	visibility: Optional[str] = None
	kind: Optional[str] = None
	location_name: Optional[str] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	tags: Optional[list[str]] = None
	allow_affiliation_requests: Optional[bool] = None


class RadiusUpdateRequest(BaseModel):
	radius_km: float


class SubClubCreateRequest(BaseModel):
	name: str
	description: str = ""
	visibility: str = "public"
	kind: str = "agnostic"
	location_name: Optional[str] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	tags: list[str] = Field(default_factory=list)
	rules: list[str] = Field(default_factory=list)
	# Only meaningful for independent sub-clubs.
	seeking_community: bool = False


class SubClubUpdateRequest(BaseModel):
	name: Optional[str] = None
	description: Optional[str] = None
	visibility: Optional[str] = None
	kind: Optional[str] = None
	location_name: Optional[str] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	tags: Optional[list[str]] = None
	rules: Optional[list[str]] = None
	seeking_community: Optional[bool] = None


class CommunityResponse(BaseModel):
	id: UUID
	name: str
	description: str
	visibility: str
	kind: str
	location_name: Optional[str] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	radius_km: float
	creator_id: UUID
	tags: list[str]
	allow_affiliation_requests: bool
	member_count: int
	post_count: int
	subclub_count: int
	last_active_at: Optional[datetime] = None
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class SubClubResponse(BaseModel):
	id: UUID
	community_id: Optional[UUID] = None
	name: str
	description: str
	visibility: str
	kind: str
	location_name: Optional[str] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	creator_id: UUID
	tags: list[str]
	rules: list[str]
	is_independent: bool
	seeking_community: bool
	member_count: int
	post_count: int
	last_active_at: Optional[datetime] = None
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class ViewerState(BaseModel):
	"""The caller's relationship to a group."""

	role: Optional[str] = None
	status: Optional[str] = None
	join_request_status: Optional[str] = None


class CommunityDetailResponse(BaseModel):
	community: CommunityResponse
	viewer: ViewerState


class SubClubDetailResponse(BaseModel):
	sub_club: SubClubResponse
	viewer: ViewerState


class NearbyCommunityResponse(BaseModel):
	community: CommunityResponse
	distance_km: float


class MembershipResponse(BaseModel):
	id: UUID
	user_id: UUID
	community_id: Optional[UUID] = None
	sub_club_id: Optional[UUID] = None
	role: str
	status: str
	joined_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class JoinGroupRequest(BaseModel):
	message: Optional[str] = Field(default=None, max_length=1000)
	latitude: Optional[float] = None
	longitude: Optional[float] = None


class JoinRequestResponse(BaseModel):
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


class JoinResultResponse(BaseModel):
	"""Either an immediate membership or a submitted request."""

	result: Literal["joined", "requested"]
	membership: Optional[MembershipResponse] = None
	join_request: Optional[JoinRequestResponse] = None


class JoinRequestReviewRequest(BaseModel):
	action: str


class JoinRequestReviewResponse(BaseModel):
	action: str
	membership: Optional[MembershipResponse] = None
	join_request: Optional[JoinRequestResponse] = None


class MemberRoleUpdateRequest(BaseModel):
	role: str


class LocationCheckRequest(BaseModel):
	latitude: Optional[float] = None
	longitude: Optional[float] = None


class LocationAccessResponse(BaseModel):
	allowed: bool
	requires_location: bool
	reason: Optional[str] = None
	distance_km: Optional[float] = None
	radius_km: Optional[float] = None


class AffiliationCreateRequest(BaseModel):
	community_id: UUID
	message: Optional[str] = Field(default=None, max_length=1000)
	proposed_name: Optional[str] = None


class AffiliationApproveRequest(BaseModel):
	final_name: Optional[str] = None
	review_message: Optional[str] = Field(default=None, max_length=1000)


class AffiliationRejectRequest(BaseModel):
	review_message: Optional[str] = Field(default=None, max_length=1000)


class AffiliationRequestResponse(BaseModel):
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


class PendingCountResponse(BaseModel):
	community_id: UUID
	pending: int
