"""User registration and profile endpoints."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gigescrow.auth.middleware import AuthenticatedUser, verify_request
from gigescrow.auth.rate_limit import check_rate_limit
from gigescrow.database import get_db
from gigescrow.schemas.user import UserCreate, UserResponse
from gigescrow.services import user as user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserResponse, status_code=201, dependencies=[Depends(check_rate_limit)])
async def register_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Register with an Ed25519 public key. No auth required."""
    user = await user_service.register_user(db, data)
    return UserResponse.model_validate(user)


@router.get("/me", response_model=UserResponse, dependencies=[Depends(check_rate_limit)])
async def get_me(auth: AuthenticatedUser = Depends(verify_request)) -> UserResponse:
    return UserResponse.model_validate(auth.user)


@router.get("/{user_id}", response_model=UserResponse, dependencies=[Depends(check_rate_limit)])
async def get_user(
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await user_service.get_user(db, user_id)
    return UserResponse.model_validate(user)
