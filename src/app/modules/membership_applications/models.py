"""
Membership Application Models

Membership requests submitted by prospective community members, with the
uploaded payment receipt descriptor and review audit fields.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.modules.shared import BaseModel


class ApplicationStatus(str, enum.Enum):
    """Review status of a membership application."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class MembershipApplication(BaseModel):
    """
    Membership application.

    Created PENDING on submission and moved exactly once to APPROVED or
    REJECTED by an admin review. reviewed_by, reviewed_at and created_user_id
    are only written by that transition.
    """

    __tablename__ = "membership_applications"

    # Applicant information
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    student_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    department: Mapped[str] = mapped_column(String(200), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Payment receipt
    receipt_filename: Mapped[str] = mapped_column(String(255), nullable=False)
    receipt_original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    receipt_path: Mapped[str] = mapped_column(String(500), nullable=False)
    receipt_mimetype: Mapped[str] = mapped_column(String(100), nullable=False)
    receipt_size: Mapped[int] = mapped_column(Integer, nullable=False)

    # Roster verdict at submission time
    is_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    roster_checked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Review
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="membership_application_status"),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )
    admin_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_membership_applications_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<MembershipApplication(id={self.id}, student_number={self.student_number}, "
            f"status={self.status.value})>"
        )
