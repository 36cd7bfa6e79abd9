"""
Membership Applications Public Router

Endpoints:
- POST /apply - Submit an application with a payment receipt (multipart)
- POST /check-eligibility - Look up a student in the member roster
"""

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.rate_limit import enforce_ip_rate_limit
from app.core.storage import ReceiptStorage, get_receipt_storage
from app.modules.membership_applications import service
from app.modules.membership_applications.schemas import (
    ApplicationSubmitResponse,
    MembershipApplicationCreate,
)
from app.modules.membership_applications.service import ApplicationServiceError
from app.modules.roster.schemas import EligibilityCheckRequest, EligibilityCheckResponse
from app.modules.roster.service import RosterService, get_roster_service

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_APPLY = (5, 3600)  # 5 submissions per hour per IP
RATE_LIMIT_ELIGIBILITY = (30, 60)  # 30 lookups per minute per IP


@router.post(
    "/apply",
    response_model=ApplicationSubmitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Membership Application",
    description="""
Submit a membership application with a payment receipt.

**Form fields:** `fullName`, `department`, `studentNumber`, `phoneNumber`,
`paymentAmount`, optional `email`, and the file `paymentReceipt`
(JPEG, PNG or PDF, at most 5MB).

The student number is checked against the member roster and the verdict is
returned as `isEligible`. Each student number may apply once.
""",
    responses={
        201: {"description": "Application submitted"},
        400: {"description": "Missing or invalid fields, invalid receipt, or duplicate student number"},
        429: {"description": "Too many submissions"},
    },
)
async def submit_application(
    request: Request,
    full_name: str = Form(..., alias="fullName", min_length=2, max_length=200),
    department: str = Form(..., min_length=1, max_length=200),
    student_number: str = Form(..., alias="studentNumber", min_length=1, max_length=32),
    phone_number: str | None = Form(None, alias="phoneNumber", max_length=32),
    payment_amount: Decimal = Form(..., alias="paymentAmount", ge=0),
    email: str | None = Form(None),
    payment_receipt: UploadFile = File(..., alias="paymentReceipt"),
    db: AsyncSession = Depends(get_db),
    storage: ReceiptStorage = Depends(get_receipt_storage),
    roster: RosterService = Depends(get_roster_service),
) -> ApplicationSubmitResponse:
    """
    Submit a new membership application.

    Raises:
        HTTPException 400: Invalid input, invalid receipt, or duplicate application
        HTTPException 429: Rate limit exceeded
    """
    await enforce_ip_rate_limit(request, "membership_apply", *RATE_LIMIT_APPLY)

    try:
        data = MembershipApplicationCreate(
            full_name=full_name,
            department=department,
            student_number=student_number,
            phone_number=phone_number,
            payment_amount=payment_amount,
            email=email or None,
        )
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "form"
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "VALIDATION_ERROR",
                "message": f"{field}: {first['msg']}",
            },
        ) from e

    try:
        result = await service.submit_application(
            db,
            data,
            payment_receipt,
            storage=storage,
            roster=roster,
        )
        return ApplicationSubmitResponse(
            message="Your membership application has been received.",
            data=result,
        )

    except ApplicationServiceError as e:
        logger.warning(f"Application rejected: {e.message}")
        raise HTTPException(
            status_code=e.status_code,
            detail={
                "error": e.error_code,
                "message": e.message,
            },
        ) from e
    except Exception as e:
        logger.exception(f"Unexpected error submitting application: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred. Please try again later.",
            },
        ) from e


@router.post(
    "/check-eligibility",
    response_model=EligibilityCheckResponse,
    summary="Check Membership Eligibility",
    description="""
Look up a student number in the member roster.

The roster is cached for a few minutes. When it cannot be reached the answer is
`isEligible: false` with `rosterAvailable: false`.
""",
)
async def check_eligibility(
    request: Request,
    body: EligibilityCheckRequest,
    roster: RosterService = Depends(get_roster_service),
) -> EligibilityCheckResponse:
    """Return the roster eligibility verdict for a student."""
    await enforce_ip_rate_limit(request, "membership_eligibility", *RATE_LIMIT_ELIGIBILITY)

    result = await roster.check_eligibility(body.student_number, body.full_name)
    return EligibilityCheckResponse(data=result)
