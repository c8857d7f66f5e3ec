"""
Signed access tokens (HS256 JWT) and the revocation list used by logout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt

from .database import Database, serialize_datetime, utcnow
from .errors import InvalidTokenError
from .models import Token

logger = logging.getLogger(__name__)

TOKEN_DURATION = timedelta(minutes=60)
DEFAULT_LEEWAY = timedelta(seconds=5)


@dataclass
class TokenClaims:
    user_id: int
    jti: str
    issued_at: datetime
    expires_at: datetime


class TokenManager:
    def __init__(self, secret: str, algorithm: str = "HS256", leeway: timedelta = DEFAULT_LEEWAY):
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self.algorithm = algorithm
        self.leeway = leeway

    def generate(self, user_id: int, duration: timedelta = TOKEN_DURATION) -> Token:
        # JWT timestamps have second resolution
        issued_at = utcnow().replace(microsecond=0)
        expires_at = issued_at + duration
        payload = {
            "user_id": user_id,
            "jti": uuid4().hex,
            "iat": issued_at,
            "exp": expires_at,
        }
        access_token = jwt.encode(payload, self._secret, algorithm=self.algorithm)
        return Token(access_token=access_token, expires_at=expires_at, issued_at=issued_at)

    def parse(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                leeway=self.leeway,
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidTokenError("could not parse token: token has expired") from exc
        except jwt.PyJWTError as exc:
            raise InvalidTokenError(f"could not parse token: {exc}") from exc

        user_id = payload.get("user_id")
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise InvalidTokenError("invalid token")

        return TokenClaims(
            user_id=user_id,
            jti=str(payload.get("jti") or ""),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


class RevokedTokenStore:
    """Token ids invalidated by logout, kept until their natural expiry."""

    def __init__(self, db: Database):
        self.db = db

    def revoke(self, claims: TokenClaims) -> None:
        if not claims.jti:
            return
        with self.db.connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO revoked_tokens (jti, user_id, expires_at, revoked_at)
                VALUES (?, ?, ?, ?)
                """,
                (claims.jti, claims.user_id, serialize_datetime(claims.expires_at), serialize_datetime(utcnow())),
            )
        logger.info("Revoked token %s for user %s", claims.jti, claims.user_id)

    def is_revoked(self, jti: str) -> bool:
        if not jti:
            return False
        with self.db.connect() as conn:
            row = conn.execute("SELECT 1 FROM revoked_tokens WHERE jti = ?", (jti,)).fetchone()
        return row is not None

    def purge_expired(self) -> int:
        """Drop revocations whose tokens have expired anyway."""
        with self.db.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM revoked_tokens WHERE expires_at < ?",
                (serialize_datetime(utcnow()),),
            )
            return cursor.rowcount
