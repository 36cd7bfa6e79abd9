"""
Core module - Configuration, database, security, storage and utilities.
"""

from app.core.config import get_settings, settings
from app.core.database import Base, close_db, get_db, init_db
from app.core.redis import close_redis, init_redis, is_redis_available
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_temporary_password,
    hash_password,
    verify_password,
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "init_redis",
    "is_redis_available",
    "close_redis",
    # Security
    "hash_password",
    "verify_password",
    "generate_temporary_password",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
]
