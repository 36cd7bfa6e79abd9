"""
Membership Applications Repository

Database operations for membership applications. Functions here only touch
the database; transaction boundaries belong to the service layer, except
``create`` which commits the new application on its own.

The review transition is a single conditional UPDATE guarded on
status = PENDING, so two concurrent reviewers can never both succeed.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.storage import StoredReceipt

from .models import ApplicationStatus, MembershipApplication
from .schemas import MembershipApplicationCreate

# Status state machine: PENDING is the only state with outgoing transitions
VALID_STATUS_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.PENDING: {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED},
    ApplicationStatus.APPROVED: set(),
    ApplicationStatus.REJECTED: set(),
}


class DuplicateStudentNumberError(ValueError):
    """Raised when the unique student number constraint is violated."""

    def __init__(self, student_number: str):
        self.student_number = student_number
        super().__init__(f"An application for student number {student_number} already exists")


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(
        self,
        current_status: ApplicationStatus,
        new_status: ApplicationStatus,
    ):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def ensure_transition_allowed(
    current_status: ApplicationStatus, new_status: ApplicationStatus
) -> None:
    """Raise InvalidStatusTransitionError unless current -> new is allowed."""
    if new_status not in VALID_STATUS_TRANSITIONS.get(current_status, set()):
        raise InvalidStatusTransitionError(current_status, new_status)


async def create(
    db: AsyncSession,
    data: MembershipApplicationCreate,
    receipt: StoredReceipt,
    *,
    is_eligible: bool,
) -> MembershipApplication:
    """
    Create a new PENDING application.

    Raises:
        DuplicateStudentNumberError: If the student number already has an application.
    """
    new_application = MembershipApplication(
        full_name=data.full_name,
        email=data.email,
        student_number=data.student_number,
        department=data.department,
        phone_number=data.phone_number,
        payment_amount=data.payment_amount,
        receipt_filename=receipt.filename,
        receipt_original_name=receipt.original_name,
        receipt_path=receipt.path,
        receipt_mimetype=receipt.mimetype,
        receipt_size=receipt.size,
        is_eligible=is_eligible,
        roster_checked_at=datetime.now(UTC),
        status=ApplicationStatus.PENDING,
        admin_notes="",
    )

    db.add(new_application)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateStudentNumberError(data.student_number) from e
    await db.refresh(new_application)

    return new_application


async def get_by_id(db: AsyncSession, id: UUID) -> MembershipApplication | None:
    """Get application by ID."""
    return await db.get(MembershipApplication, id)


async def get_by_student_number(
    db: AsyncSession, student_number: str
) -> MembershipApplication | None:
    """Get the application filed under a student number, if any."""
    result = await db.execute(
        select(MembershipApplication).where(MembershipApplication.student_number == student_number)
    )
    return result.scalar_one_or_none()


async def list_by_status(
    db: AsyncSession,
    *,
    status: ApplicationStatus | None = ApplicationStatus.PENDING,
    skip: int = 0,
    limit: int = 10,
) -> tuple[list[MembershipApplication], int]:
    """
    List applications newest first.

    Returns:
        Tuple of (page of applications, total count matching the filter)
    """
    query = select(MembershipApplication)
    if status is not None:
        query = query.where(MembershipApplication.status == status)

    count_query = select(func.count()).select_from(query.subquery())
    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    query = (
        query.order_by(desc(MembershipApplication.created_at), desc(MembershipApplication.id))
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total


async def claim_for_review(
    db: AsyncSession,
    application_id: UUID,
    new_status: ApplicationStatus,
    *,
    reviewed_by: UUID,
    admin_notes: str,
) -> MembershipApplication | None:
    """
    Move a PENDING application to new_status in one conditional UPDATE.

    Does not commit. Returns the updated application, or None when no PENDING
    row with that id exists (already reviewed, or lost a race).
    """
    ensure_transition_allowed(ApplicationStatus.PENDING, new_status)

    statement = (
        update(MembershipApplication)
        .where(
            MembershipApplication.id == application_id,
            MembershipApplication.status == ApplicationStatus.PENDING,
        )
        .values(
            status=new_status,
            admin_notes=admin_notes,
            reviewed_by=reviewed_by,
            reviewed_at=datetime.now(UTC),
            updated_at=func.now(),
        )
        .returning(MembershipApplication)
        .execution_options(synchronize_session="fetch")
    )
    result = await db.execute(statement)
    return result.scalar_one_or_none()


async def set_created_user(
    db: AsyncSession, application: MembershipApplication, user_id: UUID
) -> MembershipApplication:
    """Link the account provisioned on approval. Does not commit."""
    application.created_user_id = user_id
    await db.flush()
    return application


async def get_referenced_receipt_paths(db: AsyncSession) -> set[str]:
    """Return every receipt path still referenced by an application."""
    result = await db.execute(select(MembershipApplication.receipt_path))
    return {path for path in result.scalars().all() if path}
