"""Authentication schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from app.modules.shared.schemas import CamelModel
from app.modules.users.models import MembershipStatus, UserRole


class LoginRequest(CamelModel):
    """Login request schema."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRequest(CamelModel):
    """Self-service registration request."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(default="", max_length=100)
    username: str | None = Field(default=None, min_length=3, max_length=50)
    student_number: str | None = Field(default=None, max_length=32)
    department: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=32)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("first_name", "last_name", "username", "department", "phone")
    @classmethod
    def strip_text(cls, v: str | None) -> str | None:
        return v.strip() if isinstance(v, str) else v

    @field_validator("student_number")
    @classmethod
    def normalize_student_number(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class UserResponse(CamelModel):
    """Public view of an account."""

    id: UUID
    username: str
    email: str
    first_name: str
    last_name: str
    student_number: str | None = None
    department: str | None = None
    role: UserRole
    permissions: list[str] = []
    is_active: bool
    membership_status: MembershipStatus
    roster_verified: bool
    must_change_password: bool
    created_at: datetime


class LoginResponse(CamelModel):
    """Login response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


class RegisterResponse(CamelModel):
    success: bool = True
    message: str
    data: UserResponse


class MeResponse(CamelModel):
    """Claims of the authenticated caller."""

    id: UUID
    email: str
    role: str
    name: str | None = None
