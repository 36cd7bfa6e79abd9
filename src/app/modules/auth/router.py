"""
Authentication router.

Endpoints:
- POST /login - Exchange email and password for JWTs
- POST /register - Self-service registration with a roster check
- GET /me - Claims of the authenticated caller
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import CurrentUser, get_current_user
from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.rate_limit import enforce_ip_rate_limit
from app.modules.auth import service
from app.modules.auth.schemas import (
    LoginRequest,
    LoginResponse,
    MeResponse,
    RegisterRequest,
    RegisterResponse,
    UserResponse,
)
from app.modules.auth.service import AuthServiceError
from app.modules.roster.service import RosterService, get_roster_service

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_LOGIN = (10, 60)  # 10 attempts per minute per IP
RATE_LIMIT_REGISTER = (5, 3600)  # 5 registrations per hour per IP


def _handle_service_error(e: AuthServiceError) -> None:
    raise HTTPException(
        status_code=e.status_code,
        detail={"error": e.error_code, "message": e.message},
    ) from e


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """
    Authenticate user and return JWT tokens.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 403: Account inactive
    """
    await enforce_ip_rate_limit(request, "auth_login", *RATE_LIMIT_LOGIN)

    try:
        result = await service.authenticate(db, credentials.email, credentials.password)
    except AuthServiceError as e:
        _handle_service_error(e)

    return LoginResponse(
        access_token=result["access_token"],
        refresh_token=result["refresh_token"],
        user=UserResponse.model_validate(result["user"]),
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid input or duplicate account"},
        403: {"description": "Student number is not on the member roster"},
        503: {"description": "Roster could not be reached"},
    },
)
async def register(
    request: Request,
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    roster: RosterService = Depends(get_roster_service),
    settings: Settings = Depends(get_settings),
) -> RegisterResponse:
    """Create an account, checking the student number against the roster."""
    await enforce_ip_rate_limit(request, "auth_register", *RATE_LIMIT_REGISTER)

    try:
        user = await service.register(
            db,
            data,
            roster=roster,
            policy=settings.registration_roster_policy,
        )
    except AuthServiceError as e:
        logger.warning(f"Registration refused: {e.message}")
        _handle_service_error(e)

    return RegisterResponse(
        message="Registration successful.",
        data=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=MeResponse)
async def me(user: CurrentUser = Depends(get_current_user)) -> MeResponse:
    """Return the authenticated caller's claims."""
    return MeResponse(id=user.id, email=user.email, role=user.role, name=user.name)
