from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import datetime


class Identity(BaseModel):
    """An authenticated actor issued by Supabase Auth."""
    id: str
    email: Optional[str] = None
    confirmed: bool = False
    created_at: Optional[datetime] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    confirmed: bool
    message: str
