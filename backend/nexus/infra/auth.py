"""Caller identity resolution for FastAPI endpoints.

The engine trusts an already-authenticated caller. A verified bearer token is
required outside development; in development the X-User-Id header is accepted
so local tools can act as any user.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from nexus.infra import jwt as jwt_helper
from nexus.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	handle: Optional[str] = None
	roles: Tuple[str, ...] = ()

	def has_role(self, role: str) -> bool:
		return role in self.roles


_bearer_scheme = HTTPBearer(auto_error=False)


def _parse_roles(claim: object) -> Tuple[str, ...]:
	if isinstance(claim, (list, tuple)):
		return tuple(str(r).strip() for r in claim if str(r).strip())
	if isinstance(claim, str):
		return tuple(part.strip() for part in claim.split(",") if part.strip())
	return ()


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode an access JWT into an AuthenticatedUser or fail with 401."""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	handle = payload.get("handle")
	return AuthenticatedUser(
		id=str(payload["sub"]).strip(),
		handle=str(handle) if handle is not None else None,
		roles=_parse_roles(payload.get("roles") or payload.get("role")),
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=x_user_id.strip(), roles=_parse_roles(x_user_roles))

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
