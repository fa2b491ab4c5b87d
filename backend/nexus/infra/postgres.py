"""AsyncPG pool management for the backend.

Workflows never reach for the pool themselves: callers acquire a connection
through :func:`connection` and hand it to the service, which opens its own
transaction on it.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from nexus.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(
			dsn=settings.postgres_url,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			ssl="require" if settings.postgres_ssl else "disable",
			server_settings={"statement_timeout": str(settings.postgres_statement_timeout_ms)},
		)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is None:
		await init_pool()
	assert _pool is not None
	return _pool


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None


@asynccontextmanager
async def connection() -> AsyncIterator[asyncpg.Connection]:
	"""Acquire one pooled connection for the duration of a request."""
	pool = await get_pool()
	async with pool.acquire() as conn:
		yield conn


async def get_connection() -> AsyncIterator[asyncpg.Connection]:
	"""FastAPI dependency yielding one pooled connection per request."""
	async with connection() as conn:
		yield conn
