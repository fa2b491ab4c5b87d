from __future__ import annotations

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from pydantic import BaseModel

from nexus.api.errors import install_error_handlers
from nexus.communities.domain.exceptions import LocationDeniedError, NotFoundError


class _Body(BaseModel):
	radius_km: float


def _app() -> FastAPI:
	app = FastAPI()
	install_error_handlers(app)

	@app.get("/missing")
	async def missing():
		raise NotFoundError("community_not_found")

	@app.get("/denied")
	async def denied():
		raise LocationDeniedError("outside_radius", distance_km=12.5, radius_km=5.0)

	@app.post("/radius")
	async def radius(body: _Body):
		return body

	return app


@pytest_asyncio.fixture()
async def client():
	transport = httpx.ASGITransport(app=_app())
	async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
		yield ac


@pytest.mark.asyncio
async def test_escaped_domain_error_is_mapped(client):
	resp = await client.get("/missing", headers={"X-Request-Id": "rid-1"})
	assert resp.status_code == 404
	assert resp.json() == {"detail": "community_not_found", "request_id": "rid-1"}


@pytest.mark.asyncio
async def test_escaped_location_denial_keeps_distance(client):
	resp = await client.get("/denied")
	assert resp.status_code == 403
	assert resp.json()["detail"] == {"code": "outside_radius", "distance_km": 12.5, "radius_km": 5.0}
	assert resp.json()["request_id"] == "unknown"


@pytest.mark.asyncio
async def test_validation_errors_are_listed(client):
	resp = await client.post("/radius", json={"radius_km": "far"})
	assert resp.status_code == 422
	body = resp.json()
	assert body["detail"] == "validation_error"
	assert body["errors"][0]["loc"] == ["body", "radius_km"]
