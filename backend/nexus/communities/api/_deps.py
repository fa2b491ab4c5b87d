"""Shared path helpers for group-scoped routes."""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from fastapi import HTTPException, status

from nexus.communities.domain import models
from nexus.infra.auth import AuthenticatedUser


class GroupPath(str, Enum):
	communities = "communities"
	sub_clubs = "sub-clubs"


def group_ref(kind: GroupPath, group_id: UUID) -> models.GroupRef:
	if kind is GroupPath.communities:
		return models.GroupRef.community(group_id)
	return models.GroupRef.sub_club(group_id)


def caller_id(auth_user: AuthenticatedUser) -> UUID:
	"""User ids are UUIDs; anything else is an unusable identity."""
	try:
		return UUID(auth_user.id)
	except (TypeError, ValueError):
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_subject")
