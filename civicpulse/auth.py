"""Bearer-token authentication for REST calls and the live handshake.

Tokens are HS256 JWTs issued by the authentication service with the user id
in `sub`. They are verified on every request: the `userId` hint a live
client sends is only ever compared against the verified identity, never
trusted on its own.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from civicpulse.config import settings
from civicpulse.db.engine import async_session_factory, get_session
from civicpulse.errors import AuthError
from civicpulse.models.enums import UserRole
from civicpulse.models.user import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """A verified caller, as bound to a live connection."""

    user_id: uuid.UUID
    role: UserRole


def create_access_token(user_id: uuid.UUID, expires_minutes: int | None = None) -> str:
    """Issue a token for `user_id` (used by seed scripts and tests)."""
    lifetime = expires_minutes or settings.security.access_token_expire_minutes
    now = datetime.now(timezone.utc)
    payload = {"sub": str(user_id), "iat": now, "exp": now + timedelta(minutes=lifetime)}
    return jwt.encode(payload, settings.security.jwt_secret, algorithm=settings.security.jwt_algorithm)


def decode_access_token(token: str) -> uuid.UUID:
    """Verify signature and expiry and return the user id.

    Raises:
        AuthError: token invalid, expired, or without a usable subject.
    """
    try:
        payload = jwt.decode(
            token,
            settings.security.jwt_secret,
            algorithms=[settings.security.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.PyJWTError as exc:
        raise AuthError("Token is not valid") from exc

    try:
        return uuid.UUID(str(payload["sub"]))
    except (KeyError, ValueError) as exc:
        raise AuthError("Token is not valid") from exc


async def load_user(db: AsyncSession, token: str) -> User:
    """Resolve a token to an existing user."""
    user = await db.get(User, decode_access_token(token))
    if user is None:
        raise AuthError("Token is not valid or user no longer exists")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),  # noqa: B008
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> User:
    """FastAPI dependency — the authenticated caller of a REST endpoint."""
    if credentials is None or not credentials.credentials:
        raise AuthError("No authentication token, access denied")
    return await load_user(db, credentials.credentials)


async def verify_live_token(token: str) -> Identity:
    """Authenticator for the live channel handshake."""
    async with async_session_factory() as db:
        user = await load_user(db, token)
    logger.debug("Live token verified for user %s", user.id)
    return Identity(user_id=user.id, role=UserRole(user.role))
