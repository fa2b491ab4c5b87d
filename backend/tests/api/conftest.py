from __future__ import annotations

from uuid import uuid4

import pytest

from nexus.infra import postgres
from nexus.main import app


class _NullConnection:
	"""Placeholder handed to stubbed services; real queries never run here."""


@pytest.fixture(autouse=True)
def override_connection():
	async def _connection():
		yield _NullConnection()

	app.dependency_overrides[postgres.get_connection] = _connection
	try:
		yield
	finally:
		app.dependency_overrides.pop(postgres.get_connection, None)


@pytest.fixture()
def user_headers() -> dict[str, str]:
	return {"X-User-Id": str(uuid4())}
