"""Authentication API routes — register, login, refresh, me."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.api.deps import get_current_active_user, get_db
from recipe_forge.auth.jwt import REFRESH, create_token_pair, decode_token
from recipe_forge.auth.passwords import hash_password, verify_password
from recipe_forge.auth.permissions import Role
from recipe_forge.models.user import User
from recipe_forge.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from recipe_forge.services.subscription_service import get_or_create_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)) -> AuthResponse:
    """Register a new member with email and password, on the default plan."""
    result = await db.execute(select(User).where(User.email == body.email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )

    user = User(
        email=body.email,
        hashed_password=hash_password(body.password),
        name=body.name,
        role=Role.MEMBER.value,
    )
    db.add(user)
    await db.flush()

    await get_or_create_subscription(db, user)
    await db.refresh(user)
    logger.info("Registered user %s", user.id)

    return AuthResponse(
        user=UserResponse.model_validate(user),
        tokens=TokenResponse(**create_token_pair(str(user.id))),
    )


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)) -> AuthResponse:
    """Authenticate with email and password."""
    result = await db.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.hashed_password):
        raise _unauthorized("Invalid email or password")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    return AuthResponse(
        user=UserResponse.model_validate(user),
        tokens=TokenResponse(**create_token_pair(str(user.id))),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    """Exchange a valid refresh token for a new token pair."""
    try:
        payload = decode_token(body.refresh_token)
    except JWTError:
        raise _unauthorized("Invalid or expired refresh token") from None

    if payload.get("type") != REFRESH:
        raise _unauthorized("Invalid token type")

    try:
        user_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise _unauthorized("Invalid token payload") from None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise _unauthorized("User not found or inactive")

    return TokenResponse(**create_token_pair(str(user.id)))


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_active_user)) -> UserResponse:
    """Return the currently authenticated user's profile."""
    return UserResponse.model_validate(current_user)
