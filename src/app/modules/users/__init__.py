"""
Users module - Member accounts.
"""

from app.modules.users.models import MembershipStatus, User, UserRole
from app.modules.users.repository import UserRepository

__all__ = ["MembershipStatus", "User", "UserRole", "UserRepository"]
