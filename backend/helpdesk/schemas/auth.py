"""
Pydantic schemas for authentication endpoints.

WHY: Schemas define request/response contracts, providing:
1. Automatic validation of request data
2. API documentation (OpenAPI/Swagger)
3. Clear separation between API and database models (no password hash
   ever leaves the server)
"""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints

from helpdesk.models.user import UserRole
from helpdesk.schemas.user import UserResponse


PASSWORD_MIN_LENGTH = 6


class LoginRequest(BaseModel):
    """
    Login request schema.

    WHY: Only presence is checked here; a wrong password and an unknown
    email must fail identically further down.
    """

    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., min_length=1, max_length=100, description="User's password")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "agent@helpdesk.com",
                "password": "agent123",
            }
        }
    )


class RegisterRequest(BaseModel):
    """
    User registration request schema.

    WHY: Validates registration data:
    1. Email format validation
    2. Minimum password length
    3. Role restricted to user/agent/admin, default user
    """

    email: EmailStr = Field(..., description="User's email address (must be unique)")
    password: str = Field(
        ...,
        min_length=PASSWORD_MIN_LENGTH,
        max_length=100,
        description=f"Password (min {PASSWORD_MIN_LENGTH} characters)",
    )
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)] = Field(
        ..., description="Display name"
    )
    role: UserRole = Field(default=UserRole.USER, description="Account role")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "jane@example.com",
                "password": "secret1",
                "name": "Jane Doe",
                "role": "user",
            }
        },
    )


class ChangePasswordRequest(BaseModel):
    """Password change for the logged-in user."""

    current_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(
        ...,
        min_length=PASSWORD_MIN_LENGTH,
        max_length=100,
        description=f"New password (min {PASSWORD_MIN_LENGTH} characters)",
    )


class AuthResponse(BaseModel):
    """
    Login/registration response schema.

    WHAT: The token plus the user it was issued for.
    """

    message: str = Field(..., description="Outcome message")
    user: UserResponse = Field(..., description="Authenticated user")
    token: str = Field(..., description="JWT bearer token")


class MessageResponse(BaseModel):
    message: str
