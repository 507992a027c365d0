"""
Pydantic schemas for user endpoints.

WHY: Profile edits and admin edits share one shape; only admins may send
a role, which the admin schema adds.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from helpdesk.models.user import UserRole


class UserResponse(BaseModel):
    """
    User response schema.

    WHY: Returns user data without sensitive information (no password hash).
    """

    id: int = Field(..., description="User ID")
    email: str = Field(..., description="User's email address")
    name: str = Field(..., description="Display name")
    role: UserRole = Field(..., description="user, agent or admin")
    created_at: datetime = Field(..., description="Account creation timestamp")
    updated_at: datetime = Field(..., description="Last profile change")

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    """Self-service profile update."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = Field(default=None)

    model_config = ConfigDict(str_strip_whitespace=True)

    def changes(self) -> Dict[str, Any]:
        """Non-null fields to apply, with email lowercased."""
        values = self.model_dump(exclude_none=True)
        if "email" in values:
            values["email"] = values["email"].lower()
        return values


class AdminUserUpdate(ProfileUpdate):
    """Admin edit of any account; may also change the role."""

    role: Optional[UserRole] = Field(default=None)
