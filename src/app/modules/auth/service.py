"""
Authentication Service

Login and self-service registration. Registration checks the member roster
when a student number is supplied, according to REGISTRATION_ROSTER_POLICY:

- enforce: not on roster -> 403, roster unavailable -> 503
- allow_unverified: not on roster -> 403, roster unavailable -> account is
  created with roster_verified = False
- disabled: no roster check
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    verify_password,
)
from app.modules.auth.schemas import RegisterRequest
from app.modules.roster.service import RosterService
from app.modules.users.models import MembershipStatus, User
from app.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

POLICY_ENFORCE = "enforce"
POLICY_ALLOW_UNVERIFIED = "allow_unverified"
POLICY_DISABLED = "disabled"


class AuthServiceError(Exception):
    """Base exception for authentication service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class InvalidCredentialsError(AuthServiceError):
    def __init__(self):
        super().__init__("Invalid email or password.", "INVALID_CREDENTIALS", 401)


class AccountInactiveError(AuthServiceError):
    def __init__(self):
        super().__init__("Your account has been deactivated.", "ACCOUNT_INACTIVE", 403)


class DuplicateAccountError(AuthServiceError):
    def __init__(self):
        super().__init__(
            "An account with this username, email or student number already exists.",
            "DUPLICATE_ACCOUNT",
            400,
        )


class NotOnRosterError(AuthServiceError):
    def __init__(self):
        super().__init__(
            "You are not registered as a community member. "
            "Please complete your membership first.",
            "NOT_ON_ROSTER",
            403,
        )


class RosterCheckUnavailableError(AuthServiceError):
    def __init__(self):
        super().__init__(
            "Membership could not be verified right now. Please try again later.",
            "ROSTER_UNAVAILABLE",
            503,
        )


async def authenticate(db: AsyncSession, email: str, password: str) -> dict:
    """
    Verify credentials and issue tokens.

    Returns:
        Dict with access_token, refresh_token and user

    Raises:
        InvalidCredentialsError: Unknown email or wrong password
        AccountInactiveError: Account is deactivated
    """
    user = await UserRepository.get_by_email(db, email)

    if user is None:
        logger.warning(f"Login attempt for non-existent email: {email}")
        raise InvalidCredentialsError()

    if not verify_password(password, user.password_hash):
        logger.warning(f"Invalid password for user: {user.id}")
        raise InvalidCredentialsError()

    if not user.is_active:
        logger.warning(f"Login attempt for inactive account: {user.id}")
        raise AccountInactiveError()

    claims = {
        "email": user.email,
        "role": user.role.value,
        "name": user.full_name,
    }

    logger.info(f"User logged in: {user.id} (role: {user.role.value})")
    return {
        "access_token": create_access_token(subject=str(user.id), additional_claims=claims),
        "refresh_token": create_refresh_token(subject=str(user.id)),
        "user": user,
    }


async def _verify_on_roster(
    roster: RosterService,
    data: RegisterRequest,
    policy: str,
) -> bool:
    """
    Apply the registration roster policy.

    Returns:
        Whether the student number was confirmed on the roster
    """
    if policy == POLICY_DISABLED or not data.student_number:
        return False

    full_name = f"{data.first_name} {data.last_name}".strip()
    result = await roster.check_eligibility(data.student_number, full_name)

    if result.is_eligible:
        return True

    if result.roster_available:
        logger.info(f"Registration refused: {data.student_number} is not on the roster")
        raise NotOnRosterError()

    if policy == POLICY_ALLOW_UNVERIFIED:
        logger.warning(
            f"Roster unavailable, registering {data.student_number} without roster verification"
        )
        return False

    logger.error(f"Roster unavailable, refusing registration for {data.student_number}")
    raise RosterCheckUnavailableError()


async def register(
    db: AsyncSession,
    data: RegisterRequest,
    *,
    roster: RosterService,
    policy: str,
) -> User:
    """
    Create a member account.

    Raises:
        DuplicateAccountError: Username, email or student number in use
        NotOnRosterError: Student number not on the roster
        RosterCheckUnavailableError: Roster unreachable under the enforce policy
    """
    username = data.username or data.student_number or data.email.split("@")[0]

    existing = await UserRepository.find_conflicting(
        db, username=username, email=data.email, student_number=data.student_number
    )
    if existing is not None:
        raise DuplicateAccountError()

    roster_verified = await _verify_on_roster(roster, data, policy)

    try:
        user = await UserRepository.create(
            db,
            username=username,
            email=data.email,
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            student_number=data.student_number,
            department=data.department,
            phone=data.phone,
            membership_status=(
                MembershipStatus.APPROVED if roster_verified else MembershipStatus.PENDING
            ),
            roster_verified=roster_verified,
        )
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateAccountError() from e

    logger.info(f"Registered user {user.id} (roster_verified={roster_verified})")
    return user
