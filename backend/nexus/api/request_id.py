"""Request ID helper for error responses."""

from __future__ import annotations

from fastapi import Request

from nexus.obs import logging as obs_logging


def get_request_id(request: Request | None = None, default: str = "unknown") -> str:
	"""Return the current request id, preferring the one bound by the middleware."""
	rid = obs_logging.current_request_id()
	if rid:
		return rid
	if request is not None:
		state_rid = getattr(request.state, "request_id", None)
		if state_rid:
			return str(state_rid)
		header_rid = request.headers.get("X-Request-Id")
		if header_rid:
			return header_rid
	return default
