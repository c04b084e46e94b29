"""Signed session tokens.

Tokens are HS256 JWTs carrying the user's id, username and role. They are
stateless and cannot be revoked: the ``exp`` claim is the only cutoff.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from app.config import Settings
from app.errors import ConfigurationError, Unauthenticated

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ("id", "username", "role", "exp")


@dataclass(frozen=True)
class Claims:
    id: int
    username: str
    role: str
    expires_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class TokenService:
    def __init__(self, secret: str, algorithm: str = "HS256", expires_minutes: int = 10080):
        if not secret:
            raise ConfigurationError("JWT_SECRET is not set")
        self._secret = secret
        self.algorithm = algorithm
        self.expires_delta = timedelta(minutes=expires_minutes)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            expires_minutes=settings.jwt_expiration_minutes,
        )

    def issue(self, user) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "id": user.id,
            "username": user.username,
            "role": user.role,
            "iat": now,
            "exp": now + self.expires_delta,
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Claims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": list(REQUIRED_CLAIMS)},
            )
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("Invalid or expired token")
        except jwt.InvalidTokenError as exc:
            logger.warning(f"Rejected token: {exc}")
            raise Unauthenticated("Invalid or expired token")

        try:
            return Claims(
                id=int(payload["id"]),
                username=str(payload["username"]),
                role=str(payload["role"]),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (TypeError, ValueError):
            raise Unauthenticated("Invalid or expired token")
