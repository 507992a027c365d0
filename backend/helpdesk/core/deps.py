"""
FastAPI dependencies for authentication and authorization.

WHY: Dependencies provide reusable authentication and authorization logic
that can be injected into route handlers, so every endpoint enforces the
same rules and produces the same 401/403 bodies.
"""

from typing import Optional
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.auth import verify_token
from helpdesk.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    FieldRequiredError,
    TokenExpiredError,
    TokenInvalidError,
    ValidationError,
)
from helpdesk.db.session import get_db
from helpdesk.models.user import User, UserRole
from helpdesk.dao.user import UserDAO


# HTTP Bearer token security scheme
# WHY: auto_error=False so a missing header yields our 401 body instead of
# Starlette's 403 "Not authenticated".
security = HTTPBearer(auto_error=False)

IDEMPOTENCY_KEY_MAX_LENGTH = 255


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT token.

    WHY: This dependency:
    1. Extracts token from Authorization header
    2. Verifies token signature and expiration
    3. Fetches user from database (the token's role claim is not trusted)

    Usage:
        @router.get("/protected")
        async def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}

    Raises:
        AuthenticationError: If token is missing, invalid, expired, or the
            user no longer exists
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(message="Authentication required")

    try:
        payload = verify_token(credentials.credentials)
    except (TokenExpiredError, TokenInvalidError) as e:
        raise AuthenticationError(message=str(e))

    user_id = payload.get("user_id")
    if not isinstance(user_id, int):
        raise AuthenticationError(message="Invalid token: missing user_id")

    user_dao = UserDAO(User, db)
    user = await user_dao.get_by_id(user_id)

    if not user:
        # WHY: User might have been deleted after token was issued
        raise AuthenticationError(message="User not found", user_id=user_id)

    return user


def require_roles(*roles: UserRole):
    """
    Factory function to create a role requirement dependency.

    Usage:
        @router.get("/users")
        async def list_users(admin: User = Depends(require_roles(UserRole.ADMIN))):
            ...

    Args:
        roles: Roles allowed through

    Returns:
        Dependency function that checks the caller's role
    """

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise AuthorizationError(
                message="Insufficient permissions",
                user_id=current_user.id,
                user_role=current_user.role.value,
                required_roles=[role.value for role in roles],
            )
        return current_user

    return role_checker


# Admins manage users and delete tickets
require_admin = require_roles(UserRole.ADMIN)

# Agents and admins see the whole queue and its analytics
require_staff = require_roles(UserRole.AGENT, UserRole.ADMIN)


async def require_idempotency_key(
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
) -> str:
    """
    Read the Idempotency-Key header required on creating requests.

    Returns:
        The key, stripped of surrounding whitespace

    Raises:
        FieldRequiredError: If the header is absent or blank
        ValidationError: If the key is longer than 255 characters
    """
    key = (idempotency_key or "").strip()
    if not key:
        raise FieldRequiredError(
            message="Idempotency-Key header is required",
            field="idempotency-key",
        )
    if len(key) > IDEMPOTENCY_KEY_MAX_LENGTH:
        raise ValidationError(
            message=f"Idempotency-Key must be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters",
            field="idempotency-key",
        )
    return key
