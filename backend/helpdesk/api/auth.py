"""
Authentication API endpoints.

WHAT: Registration, login and password change.

WHY: Every other endpoint requires a bearer token; these are the only
routes reachable without one (apart from health).

HOW: Passwords are bcrypt-hashed, tokens are stateless JWTs carrying the
user id, email and role.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.auth import (
    create_access_token,
    hash_password,
    token_claims,
    verify_password,
)
from helpdesk.core.deps import get_current_user
from helpdesk.core.exceptions import InvalidCredentialsError, InvalidPasswordError
from helpdesk.dao.user import UserDAO
from helpdesk.db.session import get_db
from helpdesk.models.user import User
from helpdesk.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
)
from helpdesk.schemas.user import UserResponse


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _auth_response(message: str, user: User) -> AuthResponse:
    return AuthResponse(
        message=message,
        user=UserResponse.model_validate(user),
        token=create_access_token(token_claims(user)),
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    description="Create an account and return a token for it",
)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """
    Register a new account.

    Raises:
        UserExistsError (409): If the email is taken (case-insensitive)
    """
    user_dao = UserDAO(User, db)
    user = await user_dao.create_user(
        email=data.email,
        hashed_password=hash_password(data.password),
        name=data.name,
        role=data.role,
    )

    logger.info(f"Registered user {user.id} with role {user.role.value}")
    return _auth_response("User created successfully", user)


@router.post(
    "/login",
    response_model=AuthResponse,
    status_code=status.HTTP_200_OK,
    summary="Login",
    description="Authenticate with email and password",
)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """
    Authenticate user and return JWT access token.

    Security:
    - Passwords are compared using constant-time comparison (bcrypt)
    - Unknown email and wrong password give the same error, so the
      endpoint can't be used to probe for accounts

    Raises:
        InvalidCredentialsError (401): If credentials are invalid
    """
    user_dao = UserDAO(User, db)
    user = await user_dao.get_by_email(credentials.email)

    if not user or not verify_password(credentials.password, user.hashed_password):
        logger.warning(
            "Failed login attempt",
            extra={"reason": "unknown_email" if not user else "bad_password"},
        )
        raise InvalidCredentialsError()

    logger.info(f"User {user.id} logged in")
    return _auth_response("Login successful", user)


@router.post(
    "/change-password",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Change password",
)
async def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Change the caller's password.

    Raises:
        InvalidPasswordError (400): If current_password is wrong
    """
    if not verify_password(data.current_password, current_user.hashed_password):
        raise InvalidPasswordError(field="current_password", user_id=current_user.id)

    user_dao = UserDAO(User, db)
    await user_dao.update(current_user.id, hashed_password=hash_password(data.new_password))

    logger.info(f"User {current_user.id} changed their password")
    return MessageResponse(message="Password updated successfully")
