from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime


class FounderUpdate(BaseModel):
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    role: Optional[str] = None
    industry: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    tags: Optional[List[str]] = None
    linkedin_url: Optional[str] = None
    discoverability: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        """Trim, drop blanks and duplicates, keep first-seen order."""
        if value is None:
            return None
        cleaned: List[str] = []
        for tag in value:
            tag = tag.strip()
            if tag and tag not in cleaned:
                cleaned.append(tag)
        return cleaned


class ProvisionFields(FounderUpdate):
    # Only True is ever written; False/None leave the stored flag alone
    onboarding_completed: Optional[bool] = None


class OnboardingData(FounderUpdate):
    pass


class VisibilityUpdate(BaseModel):
    profile_visible: bool


class FounderFilters(BaseModel):
    industry: Optional[str] = None
    location_city: Optional[str] = None
    role: Optional[str] = None
    search: Optional[str] = None
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class FounderProfile(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    role: Optional[str] = None
    industry: Optional[str] = None
    bio: Optional[str] = None
    tags_or_interests: Optional[List[str]] = None
    location_city: Optional[str] = None
    linkedin_url: Optional[str] = None
    profile_photo_url: Optional[str] = None
    profile_visible: bool = True
    onboarding_completed: bool = False
    profile_progress: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FetchResult(BaseModel):
    """Outcome of a retried own-profile read. profile is None for NotFound."""
    profile: Optional[FounderProfile] = None
    attempts: int = 0
    retry_exhausted: bool = False

    @property
    def found(self) -> bool:
        return self.profile is not None

    @property
    def not_found(self) -> bool:
        return self.profile is None


class AvatarUploadResponse(BaseModel):
    profile_photo_url: str
    profile: FounderProfile
