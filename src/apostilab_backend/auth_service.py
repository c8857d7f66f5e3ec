"""
Registration, login, logout and bearer-token authentication.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from passlib.context import CryptContext

from .errors import (
    InvalidCredentialsError,
    InvalidInputError,
    InvalidTokenError,
    UserNotFoundError,
)
from .models import LoginInput, RegisterInput, Token
from .tokens import TOKEN_DURATION, RevokedTokenStore, TokenClaims, TokenManager
from .users import UserStore

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        # Unrecognised hash format
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Pull the token out of an ``Authorization: Bearer <token>`` header.

    Raises:
        InvalidTokenError: header missing, malformed, wrong scheme or empty token
    """
    if not authorization:
        raise InvalidTokenError("authorization header missing")

    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2:
        logger.info("Invalid authorization header format")
        raise InvalidTokenError("invalid authorization header format")

    scheme, token = parts
    if scheme.lower() != "bearer":
        logger.info("Invalid authorization scheme: %s", scheme)
        raise InvalidTokenError("invalid authorization scheme")

    token = token.strip()
    if not token:
        raise InvalidTokenError("empty token")
    return token


class AuthService:
    def __init__(
        self,
        users: UserStore,
        tokens: TokenManager,
        revoked: RevokedTokenStore,
        token_duration: timedelta = TOKEN_DURATION,
    ):
        self.users = users
        self.tokens = tokens
        self.revoked = revoked
        self.token_duration = token_duration

    def register(self, data: RegisterInput) -> Token:
        name = data.name.strip()
        email = normalize_email(data.email)
        if not name or not email or not data.password:
            raise InvalidInputError("name, email and password required")

        user = self.users.insert(name, email, hash_password(data.password))
        return self.tokens.generate(user.id, self.token_duration)

    def login(self, data: LoginInput) -> Token:
        # Every failure looks the same to the caller.
        email = normalize_email(data.email)
        if not email or not data.password:
            raise InvalidCredentialsError("invalid credentials")

        try:
            user = self.users.find_by_email(email)
        except UserNotFoundError as exc:
            # Spend the same hashing time as a real check
            pwd_context.dummy_verify()
            raise InvalidCredentialsError("invalid credentials") from exc

        if not verify_password(data.password, user.password):
            logger.info("Failed login for user %s", user.id)
            raise InvalidCredentialsError("invalid credentials")

        return self.tokens.generate(user.id, self.token_duration)

    def logout(self, token: Optional[str]) -> None:
        """Revoke the presented token. Missing or already-invalid tokens are ignored."""
        if not token:
            return
        try:
            claims = self.tokens.parse(token)
        except InvalidTokenError:
            return
        self.revoked.revoke(claims)
        self.revoked.purge_expired()

    def authenticate(self, token: str) -> TokenClaims:
        claims = self.tokens.parse(token)
        if self.revoked.is_revoked(claims.jti):
            raise InvalidTokenError("token has been revoked")
        return claims
