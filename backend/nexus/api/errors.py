"""Global error handlers; every JSON error body carries the request_id."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nexus.api.request_id import get_request_id
from nexus.communities.api._errors import to_http_error
from nexus.communities.domain.exceptions import CommunityError


def _error_response(
	request: Request,
	status_code: int,
	detail: Any,
	*,
	extra: Optional[Mapping[str, Any]] = None,
	headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
	payload = {"detail": detail, **(extra or {}), "request_id": get_request_id(request)}
	return JSONResponse(status_code=status_code, content=jsonable_encoder(payload), headers=dict(headers or {}))


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		return _error_response(request, exc.status_code, exc.detail, headers=exc.headers)

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		return _error_response(request, 422, "validation_error", extra={"errors": exc.errors()})

	# Domain errors that escape a router (dependencies, future endpoints) get
	# the same mapping the routers apply.
	@app.exception_handler(CommunityError)
	async def community_exc_handler(request: Request, exc: CommunityError):  # type: ignore[override]
		http_exc = to_http_error(exc)
		return _error_response(request, http_exc.status_code, http_exc.detail)
