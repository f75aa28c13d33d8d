"""User schemas (DTOs)."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator


def validate_password_strength(password: str) -> str:
    """Require at least one uppercase letter, one lowercase letter and one digit."""
    if not any(c.isupper() for c in password):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in password):
        raise ValueError("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in password):
        raise ValueError("Password must contain at least one digit")
    return password


# Request schemas
class UserRegisterRequest(BaseModel):
    """User registration request."""

    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9._-]+$")
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str | None = Field(None, max_length=100)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return validate_password_strength(value)


class UserUpdateRequest(BaseModel):
    """User update request."""

    email: EmailStr | None = None
    full_name: str | None = Field(None, min_length=1, max_length=100)


# Response schemas
class UserResponse(BaseModel):
    """Public view of a user; never includes the password hash."""

    id: int
    username: str
    email: EmailStr
    full_name: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
