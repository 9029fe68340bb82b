"""Issue and verify the JWTs carried in the session cookies."""

from __future__ import annotations

import re
import time
from typing import Any, Mapping

import jwt

from ..config import AuthConfig
from ..errors import AuthenticationError
from ..persistence.models import User

ALGORITHM = "HS256"
ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
JWT_PATTERN = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")


def looks_like_jwt(token: str) -> bool:
    return bool(JWT_PATTERN.match(token))


class TokenManager:
    """Signs short-lived access tokens and long-lived refresh tokens."""

    def __init__(self, config: AuthConfig) -> None:
        self.secret = config.jwt_secret
        self.access_ttl = config.access_token_ttl_seconds
        self.refresh_ttl = config.refresh_token_ttl_seconds

    def _encode(self, user: User, token_type: str, ttl: int) -> str:
        now = int(time.time())
        payload = {
            "userId": user.id,
            "email": user.email,
            "role": user.role,
            "type": token_type,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    def create_access_token(self, user: User) -> str:
        return self._encode(user, "access", self.access_ttl)

    def create_refresh_token(self, user: User) -> str:
        return self._encode(user, "refresh", self.refresh_ttl)

    def verify(self, token: str, expected_type: str = "access") -> Mapping[str, Any]:
        """Decode ``token`` and check its type claim.

        Raises:
            AuthenticationError: ``TOKEN_EXPIRED`` for expired tokens and
                ``INVALID_TOKEN`` for anything else that fails verification.
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token expired", "TOKEN_EXPIRED")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token", "INVALID_TOKEN")
        if payload.get("type", "access") != expected_type or "userId" not in payload:
            raise AuthenticationError("Invalid token", "INVALID_TOKEN")
        return payload
