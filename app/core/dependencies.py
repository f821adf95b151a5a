"""
Core dependencies: request identity and request-scoped Supabase clients
"""

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import create_supabase, get_anon_supabase
from app.modules.auth.schemas import Identity
from app.modules.auth.service import AuthService
from supabase import Client
from typing import Optional

# Missing credentials are not rejected here: an absent token means an
# anonymous actor, which the founders access policy denies with 403.
security = HTTPBearer(auto_error=False)


def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> Optional[str]:
    """Extract JWT token from Authorization header, if any"""
    return credentials.credentials if credentials else None


def get_auth_service(supabase: Client = Depends(get_anon_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_identity(
    token: Optional[str] = Depends(get_access_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> Optional[Identity]:
    """Identity behind the bearer token, or None for anonymous callers"""
    if not token:
        return None
    return auth_service.get_current_identity(token)


def require_identity(identity: Optional[Identity] = Depends(get_current_identity)) -> Identity:
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def get_supabase(token: Optional[str] = Depends(get_access_token)) -> Client:
    """Client acting as the caller so RLS evaluates against their identity"""
    return create_supabase(token)
