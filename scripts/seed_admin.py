"""
Seed Admin User

Creates the initial admin account so applications can be reviewed.
Credentials come from the environment; the password must be given explicitly.

Usage:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=... python scripts/seed_admin.py
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from app.core.database import async_session_maker, close_db
from app.core.security import hash_password
from app.modules.users.models import MembershipStatus, UserRole
from app.modules.users.repository import UserRepository

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger("seed_admin")


async def seed_admin() -> int:
    """Create the admin user if it doesn't exist. Returns a process exit code."""
    email = os.environ.get("ADMIN_EMAIL", "").strip().lower()
    password = os.environ.get("ADMIN_PASSWORD", "")
    username = os.environ.get("ADMIN_USERNAME", "admin").strip()
    first_name = os.environ.get("ADMIN_FIRST_NAME", "Community")
    last_name = os.environ.get("ADMIN_LAST_NAME", "Admin")

    if not email or len(password) < 8:
        logger.error("ADMIN_EMAIL and ADMIN_PASSWORD (at least 8 characters) are required")
        return 1

    async with async_session_maker() as db:
        existing = await UserRepository.find_conflicting(db, username=username, email=email)
        if existing:
            logger.info(f"Admin already exists: {existing.email} (role: {existing.role.value})")
            return 0

        admin = await UserRepository.create(
            db,
            username=username,
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=UserRole.ADMIN,
            is_email_verified=True,
            membership_status=MembershipStatus.APPROVED,
        )
        await db.commit()

        logger.info(f"Admin created: {admin.email} (id: {admin.id})")

    await close_db()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(seed_admin()))
