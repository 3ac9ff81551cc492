"""Ed25519 signature verification dependency for FastAPI."""

import uuid

import redis.asyncio as aioredis
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.config import settings
from gigescrow.database import get_db
from gigescrow.errors import AuthenticationError, AuthorizationError
from gigescrow.models.user import AppRole, User, UserStatus
from gigescrow.redis import get_redis, nonce_key
from gigescrow.utils.crypto import is_timestamp_valid, verify_signature

AUTH_SCHEME = "UserSig "


class AuthenticatedUser:
    """Container for the verified user context."""

    def __init__(self, user_id: uuid.UUID, user: User) -> None:
        self.user_id = user_id
        self.user = user

    @property
    def is_admin(self) -> bool:
        return self.user.has_role(AppRole.ADMIN)


async def verify_request(
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> AuthenticatedUser:
    """Verify the Ed25519 signature on an incoming request."""
    auth_header = request.headers.get("Authorization")
    timestamp = request.headers.get("X-Timestamp")
    nonce = request.headers.get("X-Nonce")

    if not auth_header or not timestamp:
        raise AuthenticationError("Missing authentication headers")

    # Authorization: UserSig <user_id>:<signature>
    if not auth_header.startswith(AUTH_SCHEME):
        raise AuthenticationError("Invalid authorization scheme")

    try:
        user_id_str, signature = auth_header[len(AUTH_SCHEME):].split(":", 1)
        user_id = uuid.UUID(user_id_str)
    except ValueError:
        raise AuthenticationError("Malformed authorization header")

    if not is_timestamp_valid(timestamp, settings.signature_max_age_seconds):
        raise AuthenticationError("Request timestamp expired")

    # Replay protection
    if nonce:
        fresh = await redis.set(nonce_key(nonce), "1", nx=True, ex=settings.nonce_ttl_seconds)
        if not fresh:
            raise AuthenticationError("Nonce already used")

    result = await db.execute(select(User).where(User.user_id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise AuthenticationError("User not found")
    if user.status != UserStatus.ACTIVE:
        raise AuthorizationError("User account is suspended")

    body = await request.body()
    if not verify_signature(
        user.public_key, signature, timestamp, request.method.upper(), request.url.path, body
    ):
        raise AuthenticationError("Invalid signature")

    return AuthenticatedUser(user_id=user_id, user=user)


async def require_admin(
    auth: AuthenticatedUser = Depends(verify_request),
) -> AuthenticatedUser:
    if not auth.is_admin:
        raise AuthorizationError("Admin access required")
    return auth
