"""Redis stream fan-out helpers for communities domain."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from nexus.infra.redis import redis_client

STREAM_MEMBERSHIP = "nexus:membership"
STREAM_AFFILIATION = "nexus:affiliation"
STREAM_GROUP = "nexus:group"


def _now_ts() -> str:
	return datetime.now(timezone.utc).isoformat()


async def publish_group_event(event: str, *, kind: str, group_id: str, actor_id: str) -> None:
	payload: dict[str, Any] = {
		"event": event,
		"entity": kind,
		"id": group_id,
		"actor_id": actor_id,
		"ts": _now_ts(),
	}
	await redis_client.append_event(STREAM_GROUP, payload)


async def publish_membership_event(
	event: str,
	*,
	kind: str,
	group_id: str,
	user_id: str,
	actor_id: str | None = None,
	ref_id: str | None = None,
) -> None:
	payload: dict[str, Any] = {
		"event": event,
		"entity": kind,
		"id": group_id,
		"user_id": user_id,
		"ts": _now_ts(),
	}
	if actor_id:
		payload["actor_id"] = actor_id
	if ref_id:
		payload["ref_id"] = ref_id
	await redis_client.append_event(STREAM_MEMBERSHIP, payload)


async def publish_affiliation_event(
	event: str,
	*,
	request_id: str,
	sub_club_id: str,
	community_id: str,
	actor_id: str,
) -> None:
	payload: dict[str, Any] = {
		"event": event,
		"entity": "affiliation",
		"id": request_id,
		"sub_club_id": sub_club_id,
		"community_id": community_id,
		"actor_id": actor_id,
		"ts": _now_ts(),
	}
	await redis_client.append_event(STREAM_AFFILIATION, payload)


__all__ = [
	"publish_group_event",
	"publish_membership_event",
	"publish_affiliation_event",
	"STREAM_GROUP",
	"STREAM_MEMBERSHIP",
	"STREAM_AFFILIATION",
]
