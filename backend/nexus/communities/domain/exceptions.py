"""Custom exceptions for communities services."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - older Starlette builds
	_HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class CommunityError(Exception):
	"""Base class for community related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "community_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NotFoundError(CommunityError):
	"""Referenced community, sub-club, request or membership does not exist."""

	status_code = status.HTTP_404_NOT_FOUND
	detail = "not_found"


class ForbiddenError(CommunityError):
	"""Raised when a permission predicate fails."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "forbidden"


class ConflictError(CommunityError):
	"""Uniqueness violation surfaced as a domain condition."""

	status_code = status.HTTP_409_CONFLICT
	detail = "conflict"


class ValidationError(CommunityError):
	"""Raised for validation errors not covered by FastAPI schema validation."""

	status_code = _HTTP_422
	detail = "validation_error"


class InvariantViolationError(CommunityError):
	"""Attempted action would break a structural invariant."""

	status_code = status.HTTP_409_CONFLICT
	detail = "invariant_violation"


class LocationDeniedError(CommunityError):
	"""Geofence check failed or coordinates were missing for a location-bound join."""

	status_code = status.HTTP_403_FORBIDDEN
	detail = "location_denied"

	def __init__(
		self,
		detail: str | None = None,
		*,
		distance_km: float | None = None,
		radius_km: float | None = None,
	) -> None:
		super().__init__(detail)
		self.distance_km = distance_km
		self.radius_km = radius_km


class NotAMemberError(NotFoundError):
	detail = "not_a_member"


class MustBeCommunityMemberError(ForbiddenError):
	detail = "must_be_community_member"


class AlreadyMemberError(ConflictError):
	detail = "already_member"


class AlreadyPendingError(ConflictError):
	detail = "already_pending"


class DuplicateNameError(ConflictError):
	detail = "duplicate_name"


class RequestAlreadyProcessedError(ConflictError):
	detail = "request_already_processed"


class CreatorCannotLeaveError(InvariantViolationError):
	detail = "creator_cannot_leave"


class CannotChangeCreatorRoleError(InvariantViolationError):
	detail = "cannot_change_creator_role"


class CannotRemoveCreatorError(InvariantViolationError):
	detail = "cannot_remove_creator"


class SubClubNotIndependentError(InvariantViolationError):
	detail = "sub_club_not_independent"
