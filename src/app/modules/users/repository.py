"""
User Repository

Database operations for member accounts.
"""

import logging
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.users.models import MembershipStatus, User, UserRole

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        username: str,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        role: UserRole = UserRole.USER,
        student_number: str | None = None,
        department: str | None = None,
        phone: str | None = None,
        permissions: list[str] | None = None,
        is_active: bool = True,
        is_email_verified: bool = False,
        must_change_password: bool = False,
        membership_status: MembershipStatus = MembershipStatus.PENDING,
        roster_verified: bool = False,
    ) -> User:
        """
        Create a new user record.

        The record is flushed, not committed; the caller owns the transaction.

        Returns:
            Created User instance
        """
        user = User(
            username=username,
            email=email,
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            role=role,
            student_number=student_number,
            department=department,
            phone=phone,
            permissions=list(permissions or []),
            is_active=is_active,
            is_email_verified=is_email_verified,
            must_change_password=must_change_password,
            membership_status=membership_status,
            roster_verified=roster_verified,
        )

        db.add(user)
        await db.flush()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} - {user.username} ({user.role.value})")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: UUID) -> User | None:
        """Get a user by ID."""
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Get a user by email address (case-insensitive)."""
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def find_conflicting(
        db: AsyncSession,
        *,
        username: str,
        email: str,
        student_number: str | None = None,
    ) -> User | None:
        """
        Return any existing user sharing the username, email or student number.

        Args:
            db: Database session
            username: Candidate username
            email: Candidate email address
            student_number: Candidate student number (optional)

        Returns:
            The first conflicting User, or None
        """
        conditions = [User.username == username, User.email == email.lower()]
        if student_number:
            conditions.append(User.student_number == student_number)

        result = await db.execute(select(User).where(or_(*conditions)).limit(1))
        return result.scalar_one_or_none()
