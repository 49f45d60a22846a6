"""
Bearer tokens.

Accounts and sign-in live in the separate auth service; this API only verifies
the HS256 tokens it issues (shared JWT_SECRET) and reads `sub` / `role` from them.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

import jwt

from propertyhub.config import jwt_secret


class InvalidTokenError(ValueError):
    pass


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: str


def create_access_token(*, user_id: int, role: str, ttl: dt.timedelta | None = None) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    payload = {"sub": str(user_id), "role": role, "iat": int(now.timestamp())}
    if ttl is not None:
        payload["exp"] = int((now + ttl).timestamp())
    return jwt.encode(payload, jwt_secret(), algorithm="HS256")


def decode_access_token(token: str) -> TokenClaims:
    try:
        payload = jwt.decode(token, jwt_secret(), algorithms=["HS256"])
    except jwt.PyJWTError as e:
        raise InvalidTokenError(str(e)) from e
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError) as e:
        raise InvalidTokenError("Token subject is not a user id") from e
    return TokenClaims(user_id=user_id, role=str(payload.get("role") or "user"))
