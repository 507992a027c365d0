"""
User model.

WHY: Users file tickets, work them, or administer the desk; the role column
decides which of those a user may do.
"""

import enum
from sqlalchemy import Column, String

from helpdesk.models.base import Base, TimestampMixin, PrimaryKeyMixin, enum_type


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    WHY: Enum ensures only valid roles can be assigned, preventing typos
    and making role-based access control (RBAC) more reliable.
    """

    USER = "user"  # Files tickets, sees only their own
    AGENT = "agent"  # Works any ticket
    ADMIN = "admin"  # Agent rights plus deletion and user management


class User(Base, PrimaryKeyMixin, TimestampMixin):
    """
    User model representing individuals who use the helpdesk.

    WHY: Tickets reference users twice (creator, assignee); a user row can
    only be removed once neither reference exists.
    """

    __tablename__ = "users"

    # User identification
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # Authentication
    hashed_password = Column(String(255), nullable=False)

    # Authorization
    # WHY: Default is least privilege.
    role = Column(enum_type(UserRole, "userrole"), nullable=False, default=UserRole.USER)

    @property
    def is_staff(self) -> bool:
        """Agents and admins work the whole queue."""
        return self.role in (UserRole.AGENT, UserRole.ADMIN)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"
