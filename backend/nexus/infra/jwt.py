"""Access token decoding for the caller identity dependency.

Tokens are issued by the platform's identity service; this backend only
verifies them. HS256 with the shared secret, standard claims enforced.
"""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from nexus.settings import settings


ISSUER = "nexus-identity"
AUDIENCE = "nexus-api"


def encode_access(payload: dict[str, object]) -> str:
    """Encode an access token with required issuer/audience defaults.

    Used by local tooling and tests; production tokens come from identity.
    """
    now = int(time.time())
    body: Dict[str, Any] = {"iss": ISSUER, "aud": AUDIENCE, "iat": now, "exp": now + 3600}
    body.update(payload)
    return jwt.encode(body, settings.secret_key, algorithm="HS256")


def decode_access(token: str) -> dict[str, object]:
    """Decode and validate an access token.

    Raises jwt.InvalidTokenError subclasses on failure.
    """
    options = {"require": ["exp", "iat", "iss", "aud", "sub"]}
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=["HS256"],
        audience=AUDIENCE,
        issuer=ISSUER,
        leeway=5,
        options=options,
    )
    if not str(payload.get("sub") or "").strip():
        raise InvalidTokenError("missing_claim:sub")
    return payload  # type: ignore[return-value]
