from fastapi import APIRouter, Depends, HTTPException
from app.modules.auth.schemas import (
    Identity, LoginRequest, RegisterRequest, TokenResponse, RegisterResponse
)
from app.modules.auth.service import AuthService
from app.core.dependencies import get_access_token, get_auth_service, require_identity
from typing import Optional

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    register_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Register a new identity. The founder profile is provisioned separately."""
    return service.register(register_data)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    token: Optional[str] = Depends(get_access_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and invalidate token"""
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=Identity)
async def get_current_user(current_user: Identity = Depends(require_identity)):
    """Get current authenticated identity"""
    return current_user
