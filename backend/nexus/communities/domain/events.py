"""Post-commit notifications for membership and affiliation changes.

Emission happens after the workflow's transaction has committed. A failed
emit is logged and counted; it never surfaces to the caller and never undoes
the committed change.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable
from uuid import UUID

from nexus.communities.domain import models
from nexus.communities.infra import redis_streams
from nexus.obs import metrics as obs_metrics
from nexus.settings import settings

_LOG = logging.getLogger(__name__)


class EventPublisher:
	"""Fire-and-forget publisher backed by redis streams."""

	async def _emit(self, stream: str, event: str, send: Callable[[], Awaitable[None]]) -> None:
		if not settings.events_enabled:
			return
		try:
			await send()
		except Exception:
			obs_metrics.inc_event_emit_failure(stream)
			_LOG.warning("events.emit_failed", extra={"stream": stream, "event": event}, exc_info=True)

	async def group_created(self, group: models.GroupRef, *, actor_id: UUID) -> None:
		await self._emit(
			redis_streams.STREAM_GROUP,
			"group.created",
			lambda: redis_streams.publish_group_event(
				"group.created",
				kind=group.kind,
				group_id=str(group.id),
				actor_id=str(actor_id),
			),
		)

	async def membership(
		self,
		event: str,
		group: models.GroupRef,
		*,
		user_id: UUID,
		actor_id: UUID | None = None,
		ref_id: UUID | None = None,
	) -> None:
		await self._emit(
			redis_streams.STREAM_MEMBERSHIP,
			event,
			lambda: redis_streams.publish_membership_event(
				event,
				kind=group.kind,
				group_id=str(group.id),
				user_id=str(user_id),
				actor_id=str(actor_id) if actor_id else None,
				ref_id=str(ref_id) if ref_id else None,
			),
		)

	async def affiliation(self, event: str, request: models.AffiliationRequest, *, actor_id: UUID) -> None:
		await self._emit(
			redis_streams.STREAM_AFFILIATION,
			event,
			lambda: redis_streams.publish_affiliation_event(
				event,
				request_id=str(request.id),
				sub_club_id=str(request.sub_club_id),
				community_id=str(request.community_id),
				actor_id=str(actor_id),
			),
		)


__all__ = ["EventPublisher"]
