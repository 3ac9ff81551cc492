"""User registration and lookup."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.errors import NotFoundError, PreconditionError
from gigescrow.models.user import AppRole, User, UserRole
from gigescrow.schemas.user import UserCreate

logger = logging.getLogger(__name__)


async def register_user(db: AsyncSession, data: UserCreate) -> User:
    existing = await db.execute(
        select(User).where((User.email == data.email) | (User.public_key == data.public_key))
    )
    if existing.scalars().first() is not None:
        raise PreconditionError("A user with this email or public key already exists")

    user = User(
        user_id=uuid.uuid4(),
        email=data.email,
        full_name=data.full_name,
        public_key=data.public_key,
    )
    user.roles = [UserRole(role=AppRole(r)) for r in data.roles]
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info("Registered user %s with roles %s", user.user_id, data.roles)
    return user


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(select(User).where(User.user_id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def grant_role(db: AsyncSession, user_id: uuid.UUID, role: AppRole) -> User:
    """Grant a role (idempotent). Used by admin tooling to promote admins."""
    user = await get_user(db, user_id)
    if not user.has_role(role):
        db.add(UserRole(user_id=user_id, role=role))
        await db.commit()
        await db.refresh(user, attribute_names=["roles"])
        logger.info("Granted role %s to user %s", role.value, user_id)
    return user
