"""
Membership Application Schemas

Request and response models for the membership application endpoints.
Wire format is camelCase.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.modules.membership_applications.models import ApplicationStatus
from app.modules.shared.schemas import CamelModel, Pagination


class MembershipApplicationCreate(BaseModel):
    """Validated applicant fields from the multipart submission."""

    full_name: str = Field(..., min_length=2, max_length=200)
    department: str = Field(..., min_length=1, max_length=200)
    student_number: str = Field(..., min_length=1, max_length=32)
    phone_number: str | None = Field(None, max_length=32)
    payment_amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    email: EmailStr | None = None

    @field_validator("full_name", "department")
    @classmethod
    def _collapse_whitespace(cls, v: str) -> str:
        return " ".join(v.split())

    @field_validator("student_number")
    @classmethod
    def _strip_student_number(cls, v: str) -> str:
        cleaned = "".join(v.split())
        if not cleaned:
            raise ValueError("Student number is required")
        return cleaned

    @field_validator("phone_number")
    @classmethod
    def _blank_phone_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str | None) -> str | None:
        return v.lower() if v else v


class ApplicationSubmitResult(CamelModel):
    application_id: UUID
    status: ApplicationStatus
    is_eligible: bool


class ApplicationSubmitResponse(CamelModel):
    """Response for a successful submission."""

    success: bool = True
    message: str
    data: ApplicationSubmitResult


class ApplicationResponse(CamelModel):
    """Application as seen by admins. The stored receipt path is not exposed."""

    id: UUID
    full_name: str
    email: str | None = None
    student_number: str
    department: str
    phone_number: str | None = None
    payment_amount: float
    receipt_filename: str
    receipt_original_name: str
    receipt_mimetype: str
    receipt_size: int
    is_eligible: bool
    roster_checked_at: datetime | None = None
    status: ApplicationStatus
    admin_notes: str
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    created_user_id: UUID | None = None
    created_at: datetime
    updated_at: datetime


class ApplicationListResponse(CamelModel):
    """Paginated application list."""

    success: bool = True
    data: list[ApplicationResponse]
    pagination: Pagination


class ApplicationDetailResponse(CamelModel):
    success: bool = True
    data: ApplicationResponse


class ReviewRequest(CamelModel):
    """
    Admin review decision.

    adminNotes is the rejection reason when status is REJECTED.
    """

    status: Literal["APPROVED", "REJECTED"]
    admin_notes: str = Field("", max_length=2000)
    assign_permissions: list[str] = Field(default_factory=list, max_length=50)

    @field_validator("assign_permissions")
    @classmethod
    def _normalize_permissions(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for permission in v:
            cleaned = permission.strip()
            if not cleaned:
                continue
            if len(cleaned) > 64:
                raise ValueError("Permission names must be at most 64 characters")
            if cleaned not in seen:
                seen.append(cleaned)
        return seen


class CreatedUserSummary(CamelModel):
    id: UUID
    username: str
    email: str
    temporary_password: str | None = None


class ReviewResult(CamelModel):
    application: ApplicationResponse
    user: CreatedUserSummary | None = None


class ReviewResponse(CamelModel):
    """Response for an approve/reject review."""

    success: bool = True
    message: str
    data: ReviewResult
