"""Authentication module: login, registration and the current-user endpoint."""

from app.modules.auth.router import router
from app.modules.auth.schemas import LoginRequest, LoginResponse, RegisterRequest

__all__ = ["router", "LoginRequest", "LoginResponse", "RegisterRequest"]
