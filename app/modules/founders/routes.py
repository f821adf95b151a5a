from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse
from app.core.dependencies import get_current_identity, get_supabase
from app.core.errors import PolicyDeniedError
from app.modules.auth.schemas import Identity
from app.modules.founders.policy import Operation
from app.modules.founders.schemas import (
    AvatarUploadResponse, FounderFilters, FounderProfile, FounderUpdate,
    OnboardingData, ProvisionFields, VisibilityUpdate
)
from app.modules.founders.service import FounderService
from app.modules.founders.storage import AvatarStorage
from supabase import Client
from typing import List, Optional

router = APIRouter(prefix="/founders", tags=["founders"])


def get_founder_service(
    supabase: Client = Depends(get_supabase),
    identity: Optional[Identity] = Depends(get_current_identity),
) -> FounderService:
    return FounderService(supabase, identity)


def get_avatar_storage(supabase: Client = Depends(get_supabase)) -> AvatarStorage:
    return AvatarStorage(supabase)


def _own_id(identity: Optional[Identity], operation: Operation) -> str:
    if identity is None:
        raise PolicyDeniedError(
            f"Anonymous callers may not {operation.value} founder profiles",
            operation=operation.value,
        )
    return identity.id


def _found(profile: Optional[FounderProfile]) -> FounderProfile:
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Founder profile not found")
    return profile


@router.post("/provision", response_model=FounderProfile)
async def provision_founder(
    fields: Optional[ProvisionFields] = None,
    identity: Optional[Identity] = Depends(get_current_identity),
    service: FounderService = Depends(get_founder_service),
):
    """Create or merge the caller's founder profile. Safe to repeat."""
    identity_id = _own_id(identity, Operation.INSERT)
    return service.provision(identity_id, identity.email, fields)


@router.get("", response_model=List[FounderProfile])
async def list_founders(
    industry: Optional[str] = None,
    location_city: Optional[str] = None,
    role: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: FounderService = Depends(get_founder_service),
):
    """Discoverable founders who completed onboarding"""
    filters = FounderFilters(
        industry=industry, location_city=location_city, role=role,
        search=search, limit=limit, offset=offset,
    )
    return service.list_founders(filters)


@router.get("/me", response_model=FounderProfile)
def get_my_profile(
    identity: Optional[Identity] = Depends(get_current_identity),
    service: FounderService = Depends(get_founder_service),
):
    """
    Own profile; tolerates the row not being visible yet right after provisioning.
    Plain def: the retry backoff sleeps, so this runs in the threadpool.
    """
    result = service.fetch_profile(_own_id(identity, Operation.SELECT))
    if result.not_found:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "detail": "Founder profile not found",
                "retry_exhausted": result.retry_exhausted,
                "attempts": result.attempts,
            },
        )
    return result.profile


@router.patch("/me", response_model=FounderProfile)
async def update_my_profile(
    updates: FounderUpdate,
    identity: Optional[Identity] = Depends(get_current_identity),
    service: FounderService = Depends(get_founder_service),
):
    return _found(service.update_profile(_own_id(identity, Operation.UPDATE), updates))


@router.put("/me/visibility", response_model=FounderProfile)
async def set_my_visibility(
    body: VisibilityUpdate,
    identity: Optional[Identity] = Depends(get_current_identity),
    service: FounderService = Depends(get_founder_service),
):
    return _found(service.set_discoverability(_own_id(identity, Operation.UPDATE), body.profile_visible))


@router.post("/me/onboarding", response_model=FounderProfile)
async def complete_my_onboarding(
    onboarding_data: Optional[OnboardingData] = None,
    identity: Optional[Identity] = Depends(get_current_identity),
    service: FounderService = Depends(get_founder_service),
):
    """Store onboarding answers and mark onboarding complete"""
    return _found(service.complete_onboarding(_own_id(identity, Operation.UPDATE), onboarding_data))


@router.post("/me/avatar", response_model=AvatarUploadResponse)
async def upload_my_avatar(
    file: UploadFile = File(...),
    identity: Optional[Identity] = Depends(get_current_identity),
    service: FounderService = Depends(get_founder_service),
    storage: AvatarStorage = Depends(get_avatar_storage),
):
    founder_id = _own_id(identity, Operation.UPDATE)
    content = await file.read()
    profile = _found(service.upload_avatar(founder_id, content, file.content_type or "", storage))
    return AvatarUploadResponse(profile_photo_url=profile.profile_photo_url, profile=profile)


@router.delete("/me", status_code=204)
async def delete_my_profile(
    identity: Optional[Identity] = Depends(get_current_identity),
    service: FounderService = Depends(get_founder_service),
):
    if not service.delete_profile(_own_id(identity, Operation.DELETE)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Founder profile not found")
    return None


@router.get("/{founder_id}", response_model=FounderProfile)
async def get_founder(
    founder_id: str,
    service: FounderService = Depends(get_founder_service),
):
    """Own profile or a discoverable one; hidden profiles read as not found"""
    return _found(service.get_profile(founder_id))
