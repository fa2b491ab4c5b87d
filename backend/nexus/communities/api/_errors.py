"""Error translation helpers for communities API."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from nexus.communities.domain import exceptions

_LOG = logging.getLogger(__name__)


def to_http_error(exc: Exception) -> HTTPException:
	"""Translate domain exceptions to FastAPI HTTP errors."""
	if isinstance(exc, HTTPException):
		return exc
	if isinstance(exc, exceptions.LocationDeniedError):
		detail: dict[str, object] = {"code": exc.detail}
		if exc.distance_km is not None:
			detail["distance_km"] = exc.distance_km
		if exc.radius_km is not None:
			detail["radius_km"] = exc.radius_km
		return HTTPException(status_code=exc.status_code, detail=detail)
	if isinstance(exc, exceptions.CommunityError):
		return HTTPException(status_code=exc.status_code, detail=exc.detail)
	_LOG.error("communities.unhandled_error", exc_info=exc)
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal_error")
