"""
User Data Access Object.

WHY: UserDAO provides database operations for the User model; email lookups
are case-insensitive everywhere so "Bob@x.com" and "bob@x.com" are one
account.
"""

from typing import Optional, List
from sqlalchemy import select, func, or_, exists
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.dao.base import BaseDAO
from helpdesk.models.user import User, UserRole
from helpdesk.models.ticket import Ticket
from helpdesk.core.exceptions import UserExistsError


class UserDAO(BaseDAO[User]):
    """Data Access Object for User model."""

    def __init__(self, model: type[User], session: AsyncSession):
        """Initialize UserDAO with model and session."""
        super().__init__(model, session)

    async def get_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve user by email address (case-insensitive).

        Args:
            email: User's email address

        Returns:
            User instance if found, None otherwise
        """
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def email_exists(self, email: str, exclude_user_id: Optional[int] = None) -> bool:
        """
        Check if email already belongs to a user.

        Args:
            email: Email address to check
            exclude_user_id: Ignore this user (for "change my email" checks)

        Returns:
            True if another account uses the email
        """
        query = select(User.id).where(func.lower(User.email) == email.strip().lower())
        if exclude_user_id is not None:
            query = query.where(User.id != exclude_user_id)

        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    async def create_user(
        self,
        email: str,
        hashed_password: str,
        name: str,
        role: UserRole = UserRole.USER,
    ) -> User:
        """
        Create a new user.

        Args:
            email: User's email address
            hashed_password: Already hashed password (use hash_password())
            name: Display name
            role: User role

        Returns:
            Created User instance

        Raises:
            UserExistsError: If email already exists
        """
        if await self.email_exists(email):
            raise UserExistsError(field="email", email=email)

        return await self.create(
            email=email.strip().lower(),
            hashed_password=hashed_password,
            name=name,
            role=role,
        )

    async def list_by_name(self) -> List[User]:
        """All users sorted by display name."""
        return await self.get_all(order_by=User.name)

    async def has_tickets(self, user_id: int) -> bool:
        """
        Check whether the user created or is assigned any ticket.

        WHY: Tickets keep non-null references to their creator; such users
        can't be deleted without orphaning support history.
        """
        query = select(
            exists().where(
                or_(Ticket.created_by_id == user_id, Ticket.assigned_to_id == user_id)
            )
        )
        result = await self.session.execute(query)
        return bool(result.scalar())
