"""FastAPI authentication and role dependencies for route protection."""

import logging
import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recipe_forge.auth.jwt import ACCESS, decode_token
from recipe_forge.auth.permissions import Role, can_create_member_content, is_admin, parse_role
from recipe_forge.database import get_db
from recipe_forge.entitlements.errors import UnknownRole
from recipe_forge.models.user import User

logger = logging.getLogger(__name__)

# Strict bearer: raises 403 automatically if no token provided
_bearer_scheme = HTTPBearer()

# Optional bearer: returns None if no token provided
_bearer_scheme_optional = HTTPBearer(auto_error=False)


class _InvalidToken(Exception):
    pass


async def _load_token_user(token: str, db: AsyncSession) -> User:
    """Resolve an access token to its user or raise ``_InvalidToken``."""
    try:
        payload = decode_token(token)
    except JWTError:
        raise _InvalidToken("Could not validate credentials") from None

    # Only accept access tokens, not refresh tokens
    if payload.get("type") != ACCESS:
        raise _InvalidToken("Invalid token type")

    try:
        user_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise _InvalidToken("Could not validate credentials") from None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise _InvalidToken("Could not validate credentials")
    if not user.is_active:
        raise _InvalidToken("User account is inactive")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the Bearer token, then return the authenticated user.

    Raises:
        HTTPException 401: If the token is invalid, expired, wrong type, or user not found.
    """
    try:
        return await _load_token_user(credentials.credentials, db)
    except _InvalidToken as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from None


async def get_current_active_user(
    user: User = Depends(get_current_user),
) -> User:
    """Return the current user only if their account is active.

    Raises:
        HTTPException 403: If the user account is inactive or banned.
    """
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme_optional),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Optionally authenticate a user from a Bearer token.

    Returns ``None`` (an anonymous guest) instead of raising when no valid
    token is provided. Used by public recipe and feed listings.
    """
    if credentials is None:
        return None
    try:
        return await _load_token_user(credentials.credentials, db)
    except _InvalidToken:
        return None


def actor_role(user: User | None) -> Role:
    """Role of the caller; anonymous callers are guests.

    Raises:
        HTTPException 403: If the stored role is not a known role.
    """
    if user is None:
        return Role.GUEST
    try:
        return parse_role(user.role)
    except UnknownRole:
        logger.error("User %s has unknown role %r", user.id, user.role)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account role is not recognised",
        ) from None


async def require_member(
    user: User = Depends(get_current_active_user),
) -> User:
    """Allow MEMBER and ADMIN; reject GUEST accounts with 403."""
    if not can_create_member_content(actor_role(user)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only members can create content",
        )
    return user


async def require_admin(
    user: User = Depends(get_current_active_user),
) -> User:
    """Allow ADMIN only."""
    if not is_admin(actor_role(user)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return user
