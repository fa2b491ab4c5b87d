from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

import pytest

from nexus.communities.api import join_requests as join_requests_api
from nexus.communities.api import members as members_api
from nexus.communities.domain import models
from nexus.communities.domain.exceptions import (
	AlreadyMemberError,
	CreatorCannotLeaveError,
	ForbiddenError,
	LocationDeniedError,
	RequestAlreadyProcessedError,
)


def _membership(user_id: UUID, group: models.GroupRef, role: str = models.ROLE_MEMBER) -> models.Membership:
	now = datetime.now(timezone.utc)
	community_id, sub_club_id = group.columns()
	return models.Membership(
		id=uuid4(),
		user_id=user_id,
		community_id=community_id,
		sub_club_id=sub_club_id,
		role=role,
		status=models.STATUS_ACTIVE,
		joined_at=now,
		updated_at=now,
	)


def _join_request(user_id: UUID, group: models.GroupRef, message: str | None = None) -> models.JoinRequest:
	community_id, sub_club_id = group.columns()
	return models.JoinRequest(
		id=uuid4(),
		user_id=user_id,
		community_id=community_id,
		sub_club_id=sub_club_id,
		message=message,
		status=models.REQUEST_PENDING,
		created_at=datetime.now(timezone.utc),
	)


class StubMembershipService:
	def __init__(self, *, private: bool = False, error: Exception | None = None) -> None:
		self.private = private
		self.error = error
		self.calls: list[tuple] = []

	async def join_group(self, conn, user_id, group, *, message=None, latitude=None, longitude=None):
		self.calls.append(("join", user_id, group, message, latitude, longitude))
		if self.error:
			raise self.error
		if self.private:
			return _join_request(user_id, group, message)
		return _membership(user_id, group)

	async def leave_group(self, conn, user_id, group):
		self.calls.append(("leave", user_id, group))
		if self.error:
			raise self.error

	async def check_location_access(self, conn, group, latitude, longitude):
		return models.LocationAccess(allowed=False, reason="You are 55.6km away (radius 5.0km)", distance_km=55.6, radius_km=5.0)

	async def update_member_role(self, conn, membership_id, role, actor_id):
		return _membership(uuid4(), models.GroupRef.community(uuid4()), role=role)

	async def remove_member(self, conn, membership_id, actor_id):
		if self.error:
			raise self.error

	async def handle_join_request(self, conn, request_id, action, reviewer_id):
		if self.error:
			raise self.error
		group = models.GroupRef.sub_club(uuid4())
		if action == "approve":
			return _membership(uuid4(), group)
		request = _join_request(uuid4(), group)
		return request.model_copy(update={"status": models.REQUEST_REJECTED, "reviewed_by": reviewer_id})

	async def list_join_requests(self, conn, group, actor_id, *, status=None):
		self.calls.append(("list_requests", group, status))
		return [_join_request(uuid4(), group, "let me in")]


@pytest.mark.asyncio
async def test_public_join_returns_membership(api_client, monkeypatch, user_headers):
	stub = StubMembershipService()
	monkeypatch.setattr(members_api, "_service", stub)
	community_id = uuid4()

	resp = await api_client.post(f"/api/communities/v1/communities/{community_id}/join", headers=user_headers)

	assert resp.status_code == 201
	data = resp.json()
	assert data["result"] == "joined"
	assert data["membership"]["community_id"] == str(community_id)
	assert data["join_request"] is None
	_, user_id, group, *_ = stub.calls[0]
	assert user_id == UUID(user_headers["X-User-Id"])
	assert group == models.GroupRef.community(community_id)


@pytest.mark.asyncio
async def test_private_join_returns_accepted_request(api_client, monkeypatch, user_headers):
	stub = StubMembershipService(private=True)
	monkeypatch.setattr(members_api, "_service", stub)
	sub_club_id = uuid4()

	resp = await api_client.post(
		f"/api/communities/v1/sub-clubs/{sub_club_id}/join",
		headers=user_headers,
		json={"message": "hello", "latitude": 37.0, "longitude": -122.0},
	)

	assert resp.status_code == 202
	data = resp.json()
	assert data["result"] == "requested"
	assert data["join_request"]["sub_club_id"] == str(sub_club_id)
	assert data["join_request"]["message"] == "hello"
	assert stub.calls[0][3:] == ("hello", 37.0, -122.0)


@pytest.mark.asyncio
async def test_geofence_denial_carries_distance(api_client, monkeypatch, user_headers):
	error = LocationDeniedError("outside_radius", distance_km=55.6, radius_km=5.0)
	monkeypatch.setattr(members_api, "_service", StubMembershipService(error=error))

	resp = await api_client.post(
		f"/api/communities/v1/communities/{uuid4()}/join",
		headers=user_headers,
		json={"latitude": 37.5, "longitude": -122.0},
	)

	assert resp.status_code == 403
	assert resp.json()["detail"] == {"code": "outside_radius", "distance_km": 55.6, "radius_km": 5.0}


@pytest.mark.asyncio
async def test_missing_location_detail_has_code_only(api_client, monkeypatch, user_headers):
	monkeypatch.setattr(members_api, "_service", StubMembershipService(error=LocationDeniedError("location_required")))

	resp = await api_client.post(f"/api/communities/v1/communities/{uuid4()}/join", headers=user_headers)

	assert resp.status_code == 403
	assert resp.json()["detail"] == {"code": "location_required"}


@pytest.mark.asyncio
async def test_duplicate_join_conflicts(api_client, monkeypatch, user_headers):
	monkeypatch.setattr(members_api, "_service", StubMembershipService(error=AlreadyMemberError()))

	resp = await api_client.post(f"/api/communities/v1/communities/{uuid4()}/join", headers=user_headers)

	assert resp.status_code == 409
	assert resp.json()["detail"] == "already_member"


@pytest.mark.asyncio
async def test_unknown_group_kind_is_rejected(api_client, user_headers):
	resp = await api_client.post(f"/api/communities/v1/teams/{uuid4()}/join", headers=user_headers)

	assert resp.status_code in (404, 422)


@pytest.mark.asyncio
async def test_leave(api_client, monkeypatch, user_headers):
	monkeypatch.setattr(members_api, "_service", StubMembershipService())
	resp = await api_client.post(f"/api/communities/v1/sub-clubs/{uuid4()}/leave", headers=user_headers)
	assert resp.status_code == 204
	assert resp.content == b""

	monkeypatch.setattr(members_api, "_service", StubMembershipService(error=CreatorCannotLeaveError()))
	resp = await api_client.post(f"/api/communities/v1/communities/{uuid4()}/leave", headers=user_headers)
	assert resp.status_code == 409
	assert resp.json()["detail"] == "creator_cannot_leave"


@pytest.mark.asyncio
async def test_check_access_reports_reason(api_client, monkeypatch, user_headers):
	monkeypatch.setattr(members_api, "_service", StubMembershipService())

	resp = await api_client.post(
		f"/api/communities/v1/communities/{uuid4()}/check-access",
		headers=user_headers,
		json={"latitude": 37.5, "longitude": -122.0},
	)

	assert resp.status_code == 200
	data = resp.json()
	assert data["allowed"] is False
	assert data["requires_location"] is False
	assert data["distance_km"] == 55.6
	assert "55.6km away" in data["reason"]


@pytest.mark.asyncio
async def test_role_update_and_removal(api_client, monkeypatch, user_headers):
	monkeypatch.setattr(members_api, "_service", StubMembershipService())

	resp = await api_client.put(
		f"/api/communities/v1/memberships/{uuid4()}/role",
		headers=user_headers,
		json={"role": "moderator"},
	)
	assert resp.status_code == 200
	assert resp.json()["role"] == "moderator"

	resp = await api_client.delete(f"/api/communities/v1/memberships/{uuid4()}", headers=user_headers)
	assert resp.status_code == 204

	monkeypatch.setattr(members_api, "_service", StubMembershipService(error=ForbiddenError("moderator_required")))
	resp = await api_client.delete(f"/api/communities/v1/memberships/{uuid4()}", headers=user_headers)
	assert resp.status_code == 403
	assert resp.json()["detail"] == "moderator_required"


@pytest.mark.asyncio
async def test_members_listing_forwards_filters(api_client, monkeypatch, user_headers):
	seen: dict[str, object] = {}

	class StubGroupsService:
		async def list_members(self, conn, group, viewer_id, *, role=None, status=None):
			seen.update(group=group, role=role, status=status)
			return [_membership(viewer_id, group, role=models.ROLE_ADMIN)]

	monkeypatch.setattr(members_api, "_groups", StubGroupsService())
	sub_club_id = uuid4()

	resp = await api_client.get(
		f"/api/communities/v1/sub-clubs/{sub_club_id}/members",
		headers=user_headers,
		params={"role": "admin", "status": "active"},
	)

	assert resp.status_code == 200
	assert resp.json()[0]["role"] == "admin"
	assert seen == {"group": models.GroupRef.sub_club(sub_club_id), "role": "admin", "status": "active"}


@pytest.mark.asyncio
async def test_join_request_listing_defaults_to_pending(api_client, monkeypatch, user_headers):
	stub = StubMembershipService()
	monkeypatch.setattr(join_requests_api, "_service", stub)

	resp = await api_client.get(f"/api/communities/v1/communities/{uuid4()}/join-requests", headers=user_headers)

	assert resp.status_code == 200
	assert resp.json()[0]["message"] == "let me in"
	assert stub.calls[0][2] == "pending"


@pytest.mark.asyncio
async def test_review_join_request(api_client, monkeypatch, user_headers):
	monkeypatch.setattr(join_requests_api, "_service", StubMembershipService())

	resp = await api_client.post(
		f"/api/communities/v1/join-requests/{uuid4()}/review",
		headers=user_headers,
		json={"action": "approve"},
	)
	assert resp.status_code == 200
	assert resp.json()["action"] == "approve"
	assert resp.json()["membership"]["role"] == "member"

	resp = await api_client.post(
		f"/api/communities/v1/join-requests/{uuid4()}/review",
		headers=user_headers,
		json={"action": "reject"},
	)
	assert resp.json()["join_request"]["status"] == "rejected"
	assert resp.json()["join_request"]["reviewed_by"] == user_headers["X-User-Id"]
	assert resp.json()["membership"] is None

	monkeypatch.setattr(join_requests_api, "_service", StubMembershipService(error=RequestAlreadyProcessedError()))
	resp = await api_client.post(
		f"/api/communities/v1/join-requests/{uuid4()}/review",
		headers=user_headers,
		json={"action": "approve"},
	)
	assert resp.status_code == 409
	assert resp.json()["detail"] == "request_already_processed"
