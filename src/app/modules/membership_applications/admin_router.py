"""
Membership Applications Admin Router

Endpoints for admins reviewing membership applications. Every endpoint
requires a valid access token for an active account with the 'admin' role.

Endpoints:
- GET /admin/applications - Paginated list filtered by status
- GET /admin/applications/{id} - Application detail
- PUT /admin/applications/{id} - Approve or reject a PENDING application
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import CurrentUser, get_current_admin_user
from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.rate_limit import RateLimitExceeded, check_rate_limit
from app.core.storage import ReceiptStorage, get_receipt_storage
from app.modules.membership_applications import service
from app.modules.membership_applications.models import ApplicationStatus
from app.modules.membership_applications.schemas import (
    ApplicationDetailResponse,
    ApplicationListResponse,
    ApplicationResponse,
    CreatedUserSummary,
    ReviewRequest,
    ReviewResponse,
    ReviewResult,
)
from app.modules.membership_applications.service import ApplicationServiceError
from app.modules.shared.schemas import Pagination

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_REVIEW = (20, 60)  # 20 review decisions per minute per admin


async def _check_admin_rate_limit(
    admin: CurrentUser,
    action: str,
    limit: int,
    window_seconds: int,
) -> None:
    """
    Check rate limit for an admin action.

    Raises:
        RateLimitExceeded: If rate limit is exceeded
    """
    key = f"admin:{action}:{admin.id}"
    allowed = await check_rate_limit(key, limit, window_seconds)

    if not allowed:
        logger.warning(
            f"Rate limit exceeded for admin {admin.id} on action '{action}': "
            f"{limit}/{window_seconds}s"
        )
        raise RateLimitExceeded(limit, window_seconds)


def _handle_service_error(e: ApplicationServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


@router.get(
    "",
    response_model=ApplicationListResponse,
    summary="List Membership Applications",
    description="""
List membership applications, newest first.

`status` defaults to `PENDING`; `limit` is capped at 100.

**Access:** Admin only
""",
)
async def list_applications(
    status_filter: ApplicationStatus = Query(
        ApplicationStatus.PENDING,
        alias="status",
        description="Filter by application status",
    ),
    page: int = Query(1, ge=1, description="Page number (1-based)"),
    limit: int = Query(10, ge=1, le=100, description="Page size"),
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> ApplicationListResponse:
    """List applications with pagination."""
    try:
        result = await service.admin_get_applications_list(
            db,
            status=status_filter,
            page=page,
            limit=limit,
        )

        logger.info(
            f"Admin {admin.id} listed applications: "
            f"total={result['total']}, returned={len(result['applications'])}"
        )

        return ApplicationListResponse(
            data=[ApplicationResponse.model_validate(app) for app in result["applications"]],
            pagination=Pagination(
                page=result["page"],
                limit=result["limit"],
                total=result["total"],
                pages=result["pages"],
            ),
        )

    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error listing applications: {e}")
        raise _internal_error() from e


@router.get(
    "/{application_id}",
    response_model=ApplicationDetailResponse,
    summary="Get Membership Application",
)
async def get_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
) -> ApplicationDetailResponse:
    """Get a single application."""
    try:
        application = await service.admin_get_application_detail(db, application_id)
        return ApplicationDetailResponse(data=ApplicationResponse.model_validate(application))

    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error fetching application {application_id}: {e}")
        raise _internal_error() from e


@router.put(
    "/{application_id}",
    response_model=ReviewResponse,
    summary="Review Membership Application",
    description="""
Approve or reject a PENDING application.

- `status: APPROVED` creates the member account (username is the student
  number), optionally assigns `assignPermissions`, and deletes the stored
  receipt. If the account cannot be created the application stays PENDING.
- `status: REJECTED` requires a non-empty `adminNotes` reason.

An application can be reviewed once; a second review returns 400.

**Access:** Admin only
""",
    responses={
        400: {"description": "Invalid status, missing reason, or already processed"},
        404: {"description": "Application not found"},
        409: {"description": "A conflicting member account already exists"},
    },
)
async def review_application(
    application_id: UUID,
    data: ReviewRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(get_current_admin_user),
    storage: ReceiptStorage = Depends(get_receipt_storage),
    settings: Settings = Depends(get_settings),
) -> ReviewResponse:
    """Approve or reject an application."""
    await _check_admin_rate_limit(admin, "review", *RATE_LIMIT_REVIEW)

    try:
        if data.status == ApplicationStatus.REJECTED.value:
            application = await service.admin_reject_application(
                db, application_id, admin.id, data.admin_notes
            )
            logger.info(f"Admin {admin.id} rejected application {application_id}")
            return ReviewResponse(
                message="Application rejected.",
                data=ReviewResult(application=ApplicationResponse.model_validate(application)),
            )

        result = await service.admin_approve_application(
            db,
            application_id,
            admin.id,
            admin_notes=data.admin_notes,
            permissions=data.assign_permissions,
            storage=storage,
            student_email_domain=settings.student_email_domain,
        )
        user = result["user"]
        logger.info(f"Admin {admin.id} approved application {application_id}, user {user.id}")

        return ReviewResponse(
            message="Application approved. Member account created.",
            data=ReviewResult(
                application=ApplicationResponse.model_validate(result["application"]),
                user=CreatedUserSummary(
                    id=user.id,
                    username=user.username,
                    email=user.email,
                    temporary_password=result["temporary_password"],
                ),
            ),
        )

    except ApplicationServiceError as e:
        if e.status_code >= 500:
            logger.error(f"Review of {application_id} failed: {e.message}")
        else:
            logger.warning(f"Review of {application_id} refused: {e.message}")
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error reviewing application {application_id}: {e}")
        raise _internal_error() from e
