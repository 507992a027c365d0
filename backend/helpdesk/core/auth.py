"""
JWT authentication and password hashing utilities.

WHY: This module provides the two primitives every auth endpoint needs:
1. Password hashing with bcrypt
2. JWT token generation and verification

Tokens are stateless; there is no server-side session or revocation list.
A token stays valid until it expires (JWT_EXPIRATION_MINUTES, 24 hours).
"""

from datetime import timedelta
from typing import Dict, Any, Optional
from jose import jwt, JWTError
from passlib.context import CryptContext

from helpdesk.core.clock import utcnow
from helpdesk.core.config import settings
from helpdesk.core.exceptions import (
    TokenExpiredError,
    TokenInvalidError,
)
from helpdesk.models.user import User


# Password hashing context
# WHY: bcrypt's cost factor makes offline brute force of a leaked table slow.
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# ============================================================================
# Password Hashing
# ============================================================================


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Hashed password (60 characters, includes salt and cost factor)

    Example:
        >>> hashed = hash_password("agent123")
        >>> len(hashed)
        60
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    WHY: Constant-time comparison (built into passlib) prevents timing
    attacks that could leak information about the password.

    Args:
        plain_password: Password provided by user
        hashed_password: Hashed password from database

    Returns:
        True if password matches, False otherwise
    """
    return pwd_context.verify(plain_password, hashed_password)


# ============================================================================
# JWT Token Management
# ============================================================================


def token_claims(user: User) -> Dict[str, Any]:
    """
    Claims identifying a user inside an access token.

    WHY: The role is included for clients that render role-specific UI;
    the server always re-reads the user and trusts only the database role.
    """
    return {
        "user_id": user.id,
        "email": user.email,
        "role": user.role.value,
    }


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Token includes:
    - User data (user_id, email, role)
    - exp: Expiration time (default: JWT_EXPIRATION_MINUTES)
    - iat: Issued at time
    - nbf: Not before time

    Args:
        data: Claims to encode (see token_claims)
        expires_delta: Optional custom expiration time

    Returns:
        JWT token string

    Security Notes:
        - NEVER include passwords or sensitive data in tokens
        - Tokens are signed but not encrypted (base64 encoded)
    """
    to_encode = data.copy()
    now = utcnow()

    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)

    to_encode.update(
        {
            "exp": expire,
            "iat": now,
            "nbf": now,
        }
    )

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload with user data

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is malformed or signature invalid
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )

    except jwt.ExpiredSignatureError:
        raise TokenExpiredError(message="Token has expired")

    except JWTError as e:
        # Bad signature, malformed segments, wrong algorithm
        raise TokenInvalidError(message="Invalid token", error=str(e))
