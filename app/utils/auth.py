"""Access token utilities.

Tokens are issued by the identity provider; this service only verifies
them. ``create_access_token`` exists for scripts and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from app.config import settings
from app.models.user import CurrentUser, UserRole


def create_access_token(
    user_id: str,
    role: UserRole = UserRole.EMPLOYEE,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token for a user.

    Args:
        user_id: User ID to encode in token
        role: Role claim
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string

    Example:
        >>> token = create_access_token(user_id="user123", role=UserRole.MANAGER)
        >>> verify_access_token(token).role
        <UserRole.MANAGER: 'manager'>
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expiration_minutes)

    to_encode = {
        "sub": user_id,
        "role": role.value,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }

    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str) -> CurrentUser:
    """
    Verify and decode a JWT access token.

    Args:
        token: JWT token string to verify

    Returns:
        Identity carried by the token

    Raises:
        JWTError: If token is invalid, expired, or carries an unknown role
    """
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])

    user_id = payload.get("sub")
    if user_id is None:
        raise JWTError("Token payload missing 'sub' claim")

    try:
        role = UserRole(payload.get("role", UserRole.EMPLOYEE.value))
    except ValueError:
        raise JWTError("Token carries an unknown role")

    return CurrentUser(id=user_id, role=role)
