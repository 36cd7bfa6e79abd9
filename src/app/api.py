from fastapi import APIRouter

from app.modules.auth import router as auth_router
from app.modules.membership_applications import admin_router as membership_admin_router
from app.modules.membership_applications import router as membership_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(membership_router, prefix="/membership", tags=["Membership"])

api_router.include_router(
    membership_admin_router,
    prefix="/membership/admin/applications",
    tags=["Admin - Membership Applications"],
)
