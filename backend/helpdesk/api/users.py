"""
User management API endpoints.

WHAT: Profile self-service plus staff/admin user management.

WHY: Agents need the user directory to assign tickets; admins fix roles
and remove accounts. A user that still created or holds tickets can't be
removed, so support history never loses its people.

HOW: FastAPI router; role checks through require_roles dependencies.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.deps import get_current_user, require_admin, require_staff
from helpdesk.core.exceptions import (
    CannotDeleteSelfError,
    EmailExistsError,
    NoUpdatesError,
    UserHasTicketsError,
    UserNotFoundError,
)
from helpdesk.dao.idempotency import IdempotencyDAO
from helpdesk.dao.user import UserDAO
from helpdesk.db.session import get_db
from helpdesk.models.user import User
from helpdesk.schemas.auth import MessageResponse
from helpdesk.schemas.user import AdminUserUpdate, ProfileUpdate, UserResponse


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


async def _apply_update(user_dao: UserDAO, user_id: int, changes: dict) -> User:
    """
    Apply a profile/admin edit.

    Raises:
        NoUpdatesError: If changes is empty
        EmailExistsError: If the new email belongs to another account
    """
    if not changes:
        raise NoUpdatesError()

    if "email" in changes and await user_dao.email_exists(changes["email"], exclude_user_id=user_id):
        raise EmailExistsError(field="email", user_id=user_id)

    user = await user_dao.update(user_id, **changes)
    if user is None:
        raise UserNotFoundError(user_id=user_id)
    return user


@router.get(
    "",
    response_model=List[UserResponse],
    summary="List users",
    description="All users sorted by name (agent/admin)",
)
async def list_users(
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> List[UserResponse]:
    user_dao = UserDAO(User, db)
    users = await user_dao.list_by_name()
    return [UserResponse.model_validate(u) for u in users]


@router.get("/me", response_model=UserResponse, summary="Get own profile")
async def get_me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.put("/me", response_model=UserResponse, summary="Update own profile")
async def update_me(
    data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """
    Change the caller's name and/or email.

    Raises:
        NoUpdatesError (400): If neither field was sent
        EmailExistsError (409): If the email is taken
    """
    user = await _apply_update(UserDAO(User, db), current_user.id, data.changes())
    return UserResponse.model_validate(user)


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user",
    description="Single user (agent/admin)",
)
async def get_user(
    user_id: int,
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await UserDAO(User, db).get_by_id(user_id)
    if not user:
        raise UserNotFoundError(user_id=user_id)
    return UserResponse.model_validate(user)


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update user",
    description="Change name, email or role of any user (admin)",
)
async def update_user(
    user_id: int,
    data: AdminUserUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user_dao = UserDAO(User, db)
    if not await user_dao.get_by_id(user_id):
        raise UserNotFoundError(user_id=user_id)

    user = await _apply_update(user_dao, user_id, data.changes())
    logger.info(f"Admin {current_user.id} updated user {user_id}")
    return UserResponse.model_validate(user)


@router.delete(
    "/{user_id}",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete user",
    description="Remove an account that owns no tickets (admin)",
)
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Delete a user.

    Raises:
        CannotDeleteSelfError (400): If an admin targets their own account
        UserNotFoundError (404): If the user doesn't exist
        UserHasTicketsError (409): If the user created or holds tickets
    """
    if user_id == current_user.id:
        raise CannotDeleteSelfError(user_id=user_id)

    user_dao = UserDAO(User, db)
    if not await user_dao.get_by_id(user_id):
        raise UserNotFoundError(user_id=user_id)

    if await user_dao.has_tickets(user_id):
        raise UserHasTicketsError(user_id=user_id)

    await IdempotencyDAO(db).delete_for_user(user_id)
    await user_dao.delete(user_id)

    logger.info(f"Admin {current_user.id} deleted user {user_id}")
    return MessageResponse(message="User deleted successfully")
