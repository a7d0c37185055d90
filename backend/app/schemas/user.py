"""User and authentication schemas"""

from pydantic import Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

from app.schemas.base import CamelModel


class UserStatus(str, Enum):
    """Coarse presence"""
    ONLINE = "online"
    AWAY = "away"
    OFFLINE = "offline"
    BUSY = "busy"


class UserRegister(CamelModel):
    """Registration payload"""
    username: str = Field(..., min_length=3, max_length=50, pattern=r'^[a-zA-Z0-9_.-]+$')
    password: str = Field(..., min_length=8, max_length=128)
    email: Optional[str] = Field(None, max_length=255)
    display_name: Optional[str] = Field(None, max_length=100)
    avatar_url: Optional[str] = Field(None, max_length=512)

    @field_validator('email', 'display_name', 'avatar_url')
    @classmethod
    def blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class UserLogin(CamelModel):
    """Login payload"""
    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1)


class UserSummary(CamelModel):
    """Public view of a user, as embedded in chats and search results"""
    id: int
    username: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    status: UserStatus = UserStatus.OFFLINE


class UserProfile(UserSummary):
    """The caller's own profile"""
    email: Optional[str] = None
    last_seen_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuthResponse(CamelModel):
    """Response body for register/login"""
    message: str
    user: UserProfile
