"""Observability bootstrap: JSON logs, request middleware and build metadata."""

from __future__ import annotations

from fastapi import FastAPI

from nexus.obs import logging as obs_logging
from nexus.obs import metrics, middleware
from nexus.settings import settings

_initialised = False


def init(app: FastAPI) -> None:
	"""Wire observability into the app once; a no-op when OBS_ENABLED is off."""
	global _initialised
	if _initialised or not settings.obs_enabled:
		return
	logger = obs_logging.configure_logging()
	middleware.install(app)
	metrics.set_build_info(
		service=settings.service_name,
		env=settings.environment,
		commit=settings.git_commit,
	)
	logger.info("obs.initialised", extra={"log_level": settings.obs_log_level})
	_initialised = True


__all__ = ["init"]
