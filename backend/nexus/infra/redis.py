"""Redis access for post-commit event streams and health probes.

`redis_client` is a stable proxy: modules import it once and the underlying
client can be swapped at runtime (fakeredis in tests). The real client is built
from settings on first use, so importing the app never opens a socket.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

import redis.asyncio as redis

from nexus.settings import settings


class RedisProxy:
	"""Forwards attribute access to a lazily created Redis client."""

	def __init__(self, client: Optional[redis.Redis] = None):
		self._client: Optional[redis.Redis] = client

	@property
	def client(self) -> redis.Redis:
		if self._client is None:
			self._client = redis.from_url(settings.redis_url, decode_responses=True)
		return self._client

	def set_client(self, client: Optional[redis.Redis]) -> None:
		self._client = client

	async def append_event(self, stream: str, fields: Mapping[str, Any]) -> str:
		"""XADD capped at roughly `events_stream_maxlen` entries."""
		return await self.client.xadd(
			stream,
			dict(fields),
			maxlen=settings.events_stream_maxlen,
			approximate=True,
		)

	async def close(self) -> None:
		if self._client is not None:
			await self._client.aclose()
			self._client = None

	def __getattr__(self, item):
		return getattr(self.client, item)


redis_client: RedisProxy = RedisProxy()


def set_redis_client(client: Optional[redis.Redis]) -> None:
	redis_client.set_client(client)
