"""
Demo account seeding.

WHAT: Creates one account per role so a fresh install can be explored
without registering first.

WHY: Only runs when SEED_DEFAULT_USERS is enabled; existing accounts are
never touched, so restarting the service is safe.
"""

import logging
from typing import List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.auth import hash_password
from helpdesk.dao.user import UserDAO
from helpdesk.models.user import User, UserRole


logger = logging.getLogger(__name__)

# (email, password, name, role)
DEFAULT_USERS: List[Tuple[str, str, str, UserRole]] = [
    ("admin@helpdesk.com", "admin123", "Admin User", UserRole.ADMIN),
    ("agent@helpdesk.com", "agent123", "Support Agent", UserRole.AGENT),
    ("user@helpdesk.com", "user123", "Regular User", UserRole.USER),
]


async def seed_default_users(session: AsyncSession) -> int:
    """
    Create any missing demo account.

    Args:
        session: Session the caller commits

    Returns:
        Number of accounts created
    """
    user_dao = UserDAO(User, session)
    created = 0

    for email, password, name, role in DEFAULT_USERS:
        if await user_dao.email_exists(email):
            continue
        await user_dao.create_user(
            email=email,
            hashed_password=hash_password(password),
            name=name,
            role=role,
        )
        created += 1

    if created:
        logger.info(f"Seeded {created} default users")
    return created
