"""Recomputes denormalised member and sub-club counters from source rows."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from nexus.communities.domain import repo as repo_module
from nexus.infra import postgres
from nexus.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)
_JOB_NAME = "communities-counter-reconcile"


class CounterReconcileJob:
	"""Repairs member_count/subclub_count drift; returns the number of rows fixed."""

	def __init__(self, *, repository: repo_module.CommunitiesRepository | None = None) -> None:
		self.repo = repository or repo_module.CommunitiesRepository()

	async def run_once(self) -> int:
		started = datetime.now(timezone.utc)
		result = "error"
		try:
			async with postgres.connection() as conn:
				async with conn.transaction():
					fixed = await self.repo.reconcile_counters(conn)
			result = "success"
		finally:
			duration = (datetime.now(timezone.utc) - started).total_seconds()
			obs_metrics.record_job_run(_JOB_NAME, result=result, duration_seconds=duration)
		if fixed:
			_LOG.warning("counter_reconcile.drift_fixed", extra={"rows": fixed})
		return fixed
