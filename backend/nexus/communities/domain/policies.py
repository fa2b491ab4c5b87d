"""Authorization predicates and input validation for communities operations.

Every predicate takes the caller's membership snapshot for the exact group
being acted on (or None) and returns a bool. Workflows call the matching
``assert_*`` wrapper, which raises ForbiddenError when the predicate fails.
"""

from __future__ import annotations

from nexus.communities.domain import models
from nexus.communities.domain.exceptions import ForbiddenError, ValidationError

MAX_NAME_LENGTH = 255
MIN_RADIUS_KM = 1.0
MAX_RADIUS_KM = 100.0

_MODERATOR_ROLES = frozenset({models.ROLE_CREATOR, models.ROLE_MODERATOR})
_AFFILIATION_OWNER_ROLES = frozenset({models.ROLE_CREATOR, models.ROLE_ADMIN})
_AFFILIATION_REVIEW_ROLES = frozenset({models.ROLE_CREATOR, models.ROLE_ADMIN, models.ROLE_MODERATOR})


def _active_with(membership: models.Membership | None, roles: frozenset[str]) -> bool:
	return membership is not None and membership.is_active and membership.role in roles


def can_view(target: models.Group, membership: models.Membership | None) -> bool:
	if target.visibility == models.VISIBILITY_PUBLIC:
		return True
	return membership is not None and membership.is_active


def can_moderate(membership: models.Membership | None) -> bool:
	return _active_with(membership, _MODERATOR_ROLES)


def can_administer(membership: models.Membership | None) -> bool:
	return _active_with(membership, frozenset({models.ROLE_CREATOR}))


def can_join_directly(target: models.Group) -> bool:
	return target.visibility == models.VISIBILITY_PUBLIC


def can_request_join(target: models.Group, existing_request: models.JoinRequest | None) -> bool:
	if target.visibility != models.VISIBILITY_PRIVATE:
		return False
	return existing_request is None or existing_request.status != models.REQUEST_PENDING


def can_manage_affiliation(membership: models.Membership | None) -> bool:
	"""Sub-club side: may the caller put this sub-club up for adoption."""
	return _active_with(membership, _AFFILIATION_OWNER_ROLES)


def can_review_affiliation(membership: models.Membership | None) -> bool:
	"""Community side: may the caller adopt or turn away a sub-club."""
	return _active_with(membership, _AFFILIATION_REVIEW_ROLES)


def assert_can_view(target: models.Group, membership: models.Membership | None) -> None:
	if not can_view(target, membership):
		raise ForbiddenError("membership_required")


def assert_can_moderate(membership: models.Membership | None) -> None:
	if not can_moderate(membership):
		raise ForbiddenError("moderator_role_required")


def assert_can_administer(membership: models.Membership | None) -> None:
	if not can_administer(membership):
		raise ForbiddenError("creator_role_required")


def assert_can_manage_affiliation(membership: models.Membership | None) -> None:
	if not can_manage_affiliation(membership):
		raise ForbiddenError("sub_club_admin_required")


def assert_can_review_affiliation(membership: models.Membership | None) -> None:
	if not can_review_affiliation(membership):
		raise ForbiddenError("community_moderator_required")


# --- Input validation ----------------------------------------------------


def normalize_name(name: str | None) -> str:
	value = (name or "").strip()
	if not value:
		raise ValidationError("name_required")
	if len(value) > MAX_NAME_LENGTH:
		raise ValidationError("name_too_long")
	return value


def ensure_visibility(visibility: str) -> None:
	if visibility not in models.VISIBILITIES:
		raise ValidationError("invalid_visibility")


def ensure_kind(kind: str) -> None:
	if kind not in models.KINDS:
		raise ValidationError("invalid_kind")


def ensure_assignable_role(role: str) -> None:
	if role not in models.ROLES:
		raise ValidationError("invalid_role")
	if role not in models.ASSIGNABLE_ROLES:
		raise ValidationError("role_not_assignable")


def ensure_radius(radius_km: float) -> None:
	if not MIN_RADIUS_KM <= radius_km <= MAX_RADIUS_KM:
		raise ValidationError("radius_out_of_range")


def ensure_coordinates(latitude: float | None, longitude: float | None) -> None:
	if latitude is not None and not -90.0 <= latitude <= 90.0:
		raise ValidationError("invalid_latitude")
	if longitude is not None and not -180.0 <= longitude <= 180.0:
		raise ValidationError("invalid_longitude")


def ensure_location(
	kind: str,
	location_name: str | None,
	latitude: float | None,
	longitude: float | None,
) -> None:
	"""Location-bound groups must carry a place name and a pin."""
	ensure_kind(kind)
	ensure_coordinates(latitude, longitude)
	if kind != models.KIND_LOCATION_BOUND:
		return
	if not (location_name or "").strip() or latitude is None or longitude is None:
		raise ValidationError("location_required_fields")


def ensure_review_action(action: str) -> str:
	if action not in ("approve", "reject"):
		raise ValidationError("invalid_action")
	return action
