"""
Request and response bodies.
Structure brings clarity.
"""

import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


def check_password_strength(password: str) -> str:
    """At least 8 characters with an uppercase, a lowercase and a digit."""
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        raise ValueError("Password must contain at least one number")
    return password


def normalize_email(email: str) -> str:
    """Addresses differing only in case are the same account."""
    return email.strip().lower()


class RegisterRequest(BaseModel):
    """Registration data. First step of the journey."""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str
    role: Literal["observer", "researcher"]
    research_id: Optional[str] = Field(default=None, max_length=64)
    organization: Optional[str] = Field(default=None, max_length=200)
    specialization: Optional[str] = Field(default=None, max_length=200)

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, v):
        return normalize_email(v)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("password")
    @classmethod
    def password_strong(cls, v):
        return check_password_strength(v)


class LoginRequest(BaseModel):
    """Authentication credentials. Identity verification."""
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, v):
        return normalize_email(v)


class ResearcherLoginRequest(LoginRequest):
    research_id: str = Field(..., min_length=1)


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1)


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_strong(cls, v):
        return check_password_strength(v)


class ResearcherInfo(BaseModel):
    researcher_id: str
    research_id: str
    organization: Optional[str] = None
    specialization: Optional[str] = None


class UserSummary(BaseModel):
    id: str
    name: str
    email: str
    role: str
    verified: bool = False
    research_id: Optional[str] = None
    researcher: Optional[ResearcherInfo] = None


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    user: UserSummary
    verification_link: str


class TokenResponse(BaseModel):
    """Access token response. Key to the observatory."""
    success: bool = True
    message: str
    token: str
    token_type: str = "bearer"
    user: UserSummary
    expires_in: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class WatchlistItemCreate(BaseModel):
    """Object to monitor. Chosen for observation."""
    asteroid_id: str = Field(..., min_length=1, max_length=64)
    asteroid_name: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=5000)


class PreferencesUpdate(BaseModel):
    """User's notification preferences. Customized vigilance."""
    email_alerts: bool = True
    sms_alerts: bool = False
    push_notifications: bool = True


class NoteCreate(BaseModel):
    asteroid_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    risk_override: Optional[int] = Field(default=None, ge=0, le=100)


class NoteUpdate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    risk_override: Optional[int] = Field(default=None, ge=0, le=100)


class ApiKeyCheck(BaseModel):
    api_key: str = Field(..., min_length=1)


class DataResponse(BaseModel):
    success: bool = True
    data: Any


class FeedResponse(BaseModel):
    success: bool = True
    date_range: Dict[str, str]
    stats: Dict[str, Any]
    asteroids: List[Dict[str, Any]]
