"""
Membership Applications Service Layer

Business logic for membership applications.

1. Submission:
   - Reject duplicate student numbers (pre-check plus the unique index)
   - Stage the payment receipt; it is deleted on every path that does not
     end with a persisted application
   - Record the roster eligibility verdict (fails closed)

2. Review (admin):
   - PENDING -> APPROVED | REJECTED, enforced with a conditional UPDATE
   - Rejection requires a reason, checked before anything is read or written
   - Approval provisions the member account in the same transaction as the
     status change; if provisioning fails the application stays PENDING
   - After an approval commits, the receipt file is deleted and a notice is
     emailed. Both are best-effort.
"""

import logging
import math
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.email import send_membership_approved, send_membership_rejected
from app.core.security import generate_temporary_password, hash_password
from app.core.storage import ReceiptStorage, ReceiptValidationError
from app.modules.membership_applications import repository
from app.modules.membership_applications.models import ApplicationStatus, MembershipApplication
from app.modules.membership_applications.schemas import (
    ApplicationSubmitResult,
    MembershipApplicationCreate,
)
from app.modules.roster.service import RosterService
from app.modules.users.models import MembershipStatus, User, UserRole
from app.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ApplicationServiceError(Exception):
    """Base exception for application service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class DuplicateApplicationError(ApplicationServiceError):
    """Raised when the student number already has an application."""

    def __init__(self, student_number: str):
        super().__init__(
            message=f"An application for student number {student_number} already exists.",
            error_code="DUPLICATE_APPLICATION",
        )


class InvalidReceiptError(ApplicationServiceError):
    """Raised when the uploaded payment receipt is rejected."""

    def __init__(self, message: str):
        super().__init__(message=message, error_code="INVALID_RECEIPT")


class ApplicationNotFoundError(ApplicationServiceError):
    """Raised when an application is not found."""

    def __init__(self, application_id: UUID | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(
            message=message,
            error_code="APPLICATION_NOT_FOUND",
            status_code=404,
        )


class ApplicationAlreadyProcessedError(ApplicationServiceError):
    """Raised when reviewing an application that is no longer PENDING."""

    def __init__(self, current_status: ApplicationStatus | None = None):
        suffix = f" (status: {current_status.value})" if current_status else ""
        super().__init__(
            message=f"This application has already been processed{suffix}.",
            error_code="APPLICATION_ALREADY_PROCESSED",
        )


class RejectionReasonRequiredError(ApplicationServiceError):
    """Raised when a rejection is attempted without a reason."""

    def __init__(self):
        super().__init__(
            message="A reason is required to reject an application.",
            error_code="REJECTION_REASON_REQUIRED",
        )


class AccountProvisioningError(ApplicationServiceError):
    """Raised when the member account cannot be created on approval."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(
            message=message,
            error_code="ACCOUNT_PROVISIONING_FAILED",
            status_code=status_code,
        )


def split_full_name(full_name: str) -> tuple[str, str]:
    """Split a full name on the first space into (first, last)."""
    parts = full_name.strip().split(" ", 1)
    first_name = parts[0]
    last_name = parts[1].strip() if len(parts) > 1 else ""
    return first_name, last_name


def member_email_for(application: MembershipApplication, student_email_domain: str) -> str:
    """Email for the provisioned account: the applicant's, else the student address."""
    if application.email:
        return application.email.lower()
    return f"{application.student_number}@{student_email_domain}".lower()


# ============================================
# Submission
# ============================================


async def submit_application(
    db: AsyncSession,
    data: MembershipApplicationCreate,
    receipt: UploadFile,
    *,
    storage: ReceiptStorage,
    roster: RosterService,
) -> ApplicationSubmitResult:
    """
    Submit a membership application.

    Args:
        db: Database session
        data: Validated applicant fields
        receipt: Uploaded payment receipt
        storage: Receipt storage
        roster: Roster service for the eligibility verdict

    Returns:
        Application id, status and eligibility verdict

    Raises:
        DuplicateApplicationError: If the student number already has an application
        InvalidReceiptError: If the receipt fails validation
    """
    existing = await repository.get_by_student_number(db, data.student_number)
    if existing:
        logger.warning(f"Duplicate application rejected for student {data.student_number}")
        raise DuplicateApplicationError(data.student_number)

    try:
        async with storage.stage(receipt) as staged:
            eligibility = await roster.check_eligibility(data.student_number, data.full_name)

            try:
                application = await repository.create(
                    db, data, staged.receipt, is_eligible=eligibility.is_eligible
                )
            except repository.DuplicateStudentNumberError as e:
                logger.warning(f"Concurrent duplicate application for {data.student_number}")
                raise DuplicateApplicationError(data.student_number) from e

            staged.keep()
    except ReceiptValidationError as e:
        logger.warning(f"Receipt rejected for student {data.student_number}: {e}")
        raise InvalidReceiptError(str(e)) from e

    logger.info(
        f"Application submitted: id={application.id}, student={application.student_number}, "
        f"eligible={application.is_eligible}"
    )

    return ApplicationSubmitResult(
        application_id=application.id,
        status=application.status,
        is_eligible=application.is_eligible,
    )


# ============================================
# Admin queries
# ============================================


async def admin_get_applications_list(
    db: AsyncSession,
    *,
    status: ApplicationStatus | None = ApplicationStatus.PENDING,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """
    Get a page of applications, newest first.

    Returns:
        Dict with applications, total, page, limit and pages
    """
    limit = min(max(1, limit), MAX_PAGE_SIZE)
    page = max(1, page)

    applications, total = await repository.list_by_status(
        db,
        status=status,
        skip=(page - 1) * limit,
        limit=limit,
    )

    logger.info(f"Listed applications: status={status}, page={page}, total={total}")

    return {
        "applications": applications,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


async def admin_get_application_detail(
    db: AsyncSession,
    application_id: UUID,
) -> MembershipApplication:
    """Get a single application or raise ApplicationNotFoundError."""
    application = await repository.get_by_id(db, application_id)
    if not application:
        raise ApplicationNotFoundError(application_id)
    return application


async def _get_pending(db: AsyncSession, application_id: UUID) -> MembershipApplication:
    application = await repository.get_by_id(db, application_id)

    if not application:
        logger.warning(f"Application not found: {application_id}")
        raise ApplicationNotFoundError(application_id)

    if application.status != ApplicationStatus.PENDING:
        logger.warning(
            f"Application {application_id} already processed: status={application.status.value}"
        )
        raise ApplicationAlreadyProcessedError(application.status)

    return application


# ============================================
# Review transitions
# ============================================


async def admin_reject_application(
    db: AsyncSession,
    application_id: UUID,
    admin_id: UUID,
    reason: str,
) -> MembershipApplication:
    """
    Reject a PENDING application.

    Raises:
        RejectionReasonRequiredError: If reason is blank (nothing is read or written)
        ApplicationNotFoundError: If application doesn't exist
        ApplicationAlreadyProcessedError: If application is not PENDING
    """
    if not reason or not reason.strip():
        raise RejectionReasonRequiredError()
    reason = reason.strip()

    logger.info(f"Admin {admin_id} rejecting application {application_id}")

    await _get_pending(db, application_id)

    updated = await repository.claim_for_review(
        db,
        application_id,
        ApplicationStatus.REJECTED,
        reviewed_by=admin_id,
        admin_notes=reason,
    )
    if updated is None:
        await db.rollback()
        logger.warning(f"Application {application_id} was reviewed concurrently")
        raise ApplicationAlreadyProcessedError()

    await db.commit()
    logger.info(f"Application {application_id} rejected by {admin_id}")

    if updated.email:
        try:
            await send_membership_rejected(
                to_email=updated.email,
                full_name=updated.full_name,
                reason=reason,
            )
        except Exception as e:
            logger.error(f"Failed to send rejection email: {e}", exc_info=True)

    return updated


async def _provision_member(
    db: AsyncSession,
    application: MembershipApplication,
    *,
    temp_password: str,
    permissions: list[str],
    student_email_domain: str,
) -> User:
    username = application.student_number
    email = member_email_for(application, student_email_domain)

    conflict = await UserRepository.find_conflicting(
        db,
        username=username,
        email=email,
        student_number=application.student_number,
    )
    if conflict:
        raise AccountProvisioningError(
            f"An account for student number {application.student_number} or email "
            f"{email} already exists.",
            status_code=409,
        )

    first_name, last_name = split_full_name(application.full_name)

    return await UserRepository.create(
        db,
        username=username,
        email=email,
        password_hash=hash_password(temp_password),
        first_name=first_name,
        last_name=last_name,
        role=UserRole.USER,
        student_number=application.student_number,
        department=application.department,
        phone=application.phone_number,
        permissions=permissions,
        is_active=True,
        is_email_verified=False,
        must_change_password=True,
        membership_status=MembershipStatus.APPROVED,
        roster_verified=application.is_eligible,
    )


async def admin_approve_application(
    db: AsyncSession,
    application_id: UUID,
    admin_id: UUID,
    *,
    admin_notes: str = "",
    permissions: list[str] | None = None,
    storage: ReceiptStorage,
    student_email_domain: str,
) -> dict:
    """
    Approve a PENDING application and provision the member account.

    The status change and the account creation commit together. If any step
    fails the transaction is rolled back and the application stays PENDING.

    Returns:
        Dict with the updated application and the created user

    Raises:
        ApplicationNotFoundError: If application doesn't exist
        ApplicationAlreadyProcessedError: If application is not PENDING
        AccountProvisioningError: If the account could not be created
    """
    logger.info(f"Admin {admin_id} approving application {application_id}")

    await _get_pending(db, application_id)

    temp_password = generate_temporary_password()

    try:
        # ============================================
        # ATOMIC TRANSACTION: claim + provision + link
        # ============================================
        application = await repository.claim_for_review(
            db,
            application_id,
            ApplicationStatus.APPROVED,
            reviewed_by=admin_id,
            admin_notes=admin_notes.strip(),
        )
        if application is None:
            logger.warning(f"Application {application_id} was reviewed concurrently")
            raise ApplicationAlreadyProcessedError()

        user = await _provision_member(
            db,
            application,
            temp_password=temp_password,
            permissions=list(permissions or []),
            student_email_domain=student_email_domain,
        )
        await repository.set_created_user(db, application, user.id)

        await db.commit()
        await db.refresh(application)
        await db.refresh(user)
    except ApplicationServiceError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Account for application {application_id} conflicts with existing data")
        raise AccountProvisioningError(
            "An account with the same username, email or student number already exists.",
            status_code=409,
        ) from e
    except Exception as e:
        await db.rollback()
        logger.error(f"Account provisioning failed for {application_id}: {e}", exc_info=True)
        raise AccountProvisioningError(
            "Failed to create the member account. The application is still pending."
        ) from e

    logger.info(
        f"Application {application_id} approved by {admin_id}. Created user {user.id} "
        f"({user.username})"
    )

    # The receipt has served its purpose once the membership is granted
    await storage.discard(application.receipt_path)

    credentials_sent = False
    if application.email:
        try:
            credentials_sent = await send_membership_approved(
                to_email=application.email,
                full_name=application.full_name,
                username=user.username,
                login_email=user.email,
                temp_password=temp_password,
            )
        except Exception as e:
            logger.error(
                f"Failed to send approval email: {e}. User {user.id} was created.",
                exc_info=True,
            )

    return {
        "application": application,
        "user": user,
        # Handed to the admin only when the member could not be emailed
        "temporary_password": None if credentials_sent else temp_password,
    }
