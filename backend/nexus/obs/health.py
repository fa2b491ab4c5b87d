"""Liveness, readiness and startup probes.

Readiness needs postgres reachable with the communities schema migrated.
Redis only carries post-commit events, so it gates readiness only while
events are enabled; otherwise it is reported but not required.
"""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from nexus.infra import postgres
from nexus.infra.redis import redis_client
from nexus.obs import metrics
from nexus.settings import settings

LOGGER = logging.getLogger(__name__)

CORE_TABLES = ("communities", "sub_clubs", "memberships", "join_requests", "affiliation_requests")


async def _timed(
	name: str,
	probe: Callable[[], Awaitable[Any]],
	mark: Callable[..., None],
	timeout: float,
) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(probe(), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		mark(False)
		LOGGER.warning("health.%s_unavailable", name, exc_info=True)
		return {"ok": False, "error": str(exc)}
	latency = perf_counter() - start
	mark(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def _schema_status(pool: Any) -> Dict[str, Any]:
	async with pool.acquire() as conn:
		version = await conn.fetchval("SELECT version FROM schema_migrations ORDER BY version DESC LIMIT 1")
		present = await conn.fetch(
			"SELECT table_name FROM information_schema.tables WHERE table_schema = 'public' AND table_name = ANY($1::text[])",
			list(CORE_TABLES),
		)
	missing = sorted(set(CORE_TABLES) - {row["table_name"] for row in present})
	if version is None:
		return {"ok": False, "error": "no_migrations", "missing_tables": missing}
	current = str(version)
	return {
		"ok": current >= settings.health_min_migration and not missing,
		"version": current,
		"required": settings.health_min_migration,
		"missing_tables": missing,
	}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	pool: Optional[Any] = None
	try:
		pool = await postgres.get_pool()
	except Exception as exc:  # pragma: no cover - connection bootstrap failure
		metrics.mark_postgres(False)
		LOGGER.warning("health.postgres_pool_unavailable", exc_info=True)
		postgres_state: Dict[str, Any] = {"ok": False, "error": str(exc)}
	else:
		async def _select_one() -> None:
			async with pool.acquire() as conn:
				await conn.execute("SELECT 1")

		postgres_state = await _timed("postgres", _select_one, metrics.mark_postgres, 0.3)

	redis_state = await _timed("redis", redis_client.ping, metrics.mark_redis, 0.2)
	redis_state["required"] = settings.events_enabled

	if postgres_state["ok"] and pool is not None:
		try:
			schema_state = await _schema_status(pool)
		except Exception as exc:  # pragma: no cover - schema_migrations missing
			schema_state = {"ok": False, "error": str(exc)}
	else:
		schema_state = {"ok": False, "error": "postgres_unavailable"}

	ok = postgres_state["ok"] and schema_state["ok"] and (redis_state["ok"] or not settings.events_enabled)
	return (
		200 if ok else 503,
		{
			"status": "ok" if ok else "degraded",
			"checks": {"postgres": postgres_state, "schema": schema_state, "redis": redis_state},
		},
	)


async def startup() -> Tuple[int, Dict[str, Any]]:
	if not settings.secret_key:
		return 503, {"status": "error", "error": "missing_secret_key"}
	return 200, {"status": "ok"}
