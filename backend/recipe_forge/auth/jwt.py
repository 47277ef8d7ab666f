"""JWT access and refresh tokens."""

from datetime import datetime, timedelta, timezone

from jose import jwt

from recipe_forge.config import settings

ACCESS = "access"
REFRESH = "refresh"


def _encode(data: dict, token_type: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {**data, "iat": now, "exp": now + lifetime, "type": token_type}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a short-lived access token. ``data`` must carry ``sub`` (user UUID)."""
    return _encode(
        data,
        ACCESS,
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes),
    )


def create_refresh_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a long-lived refresh token used only by ``/auth/refresh``."""
    return _encode(
        data,
        REFRESH,
        expires_delta or timedelta(days=settings.jwt_refresh_token_expire_days),
    )


def decode_token(token: str) -> dict:
    """Decode and verify a JWT.

    Raises:
        jose.JWTError: If the token is invalid, expired, or malformed.
    """
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def create_token_pair(user_id: str) -> dict[str, str]:
    """Access + refresh tokens for ``user_id`` in the login response shape."""
    payload = {"sub": user_id}
    return {
        "access_token": create_access_token(payload),
        "refresh_token": create_refresh_token(payload),
        "token_type": "bearer",
    }
