"""User and authentication schemas"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class UserStatus(str, Enum):
    """Account status enumeration"""
    PENDING = "pending"
    ACTIVE = "active"
    DISABLED = "disabled"


class UserRegister(BaseModel):
    """Self-service registration schema"""
    email: EmailStr
    username: str = Field(..., min_length=3, max_length=50, pattern=r'^[a-zA-Z0-9_-]+$')
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator('username')
    @classmethod
    def username_lowercase(cls, v):
        """Normalize username"""
        return v.lower()

    @field_validator('email')
    @classmethod
    def email_lowercase(cls, v):
        return v.lower()


class UserLogin(BaseModel):
    """User login schema"""
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    device_info: Optional[Dict[str, Any]] = None
    location_info: Optional[Dict[str, Any]] = None


class EmailVerificationRequest(BaseModel):
    token: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class UserStatusUpdate(BaseModel):
    status: UserStatus
    reason: Optional[str] = Field(None, min_length=1, max_length=200)


class ThemePreference(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    AUTO = "auto"


class LanguagePreference(str, Enum):
    ZH_CN = "zh-CN"
    EN_US = "en-US"


class ProfileFields(BaseModel):
    """Public profile details; omitted keys keep their stored value"""
    display_name: Optional[str] = Field(None, min_length=1, max_length=50)
    bio: Optional[str] = Field(None, max_length=500)
    avatar: Optional[HttpUrl] = None

    model_config = ConfigDict(extra="forbid")


class PreferenceFields(BaseModel):
    language: Optional[LanguagePreference] = None
    theme: Optional[ThemePreference] = None

    model_config = ConfigDict(extra="forbid")


class ProfileUpdate(BaseModel):
    """Partial profile/preferences update, shallow-merged into the stored documents"""
    profile: Optional[ProfileFields] = None
    preferences: Optional[PreferenceFields] = None

    model_config = ConfigDict(extra="forbid")


class UserResponse(BaseModel):
    """User response schema"""
    id: int
    email: str
    username: str
    role: str
    status: str
    email_verified: bool
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    profile: Optional[Dict[str, Any]] = None
    preferences: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class TokenPair(BaseModel):
    """Issued access/refresh token pair"""
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class LoginResponse(BaseModel):
    """Login response"""
    user: UserResponse
    tokens: TokenPair


class RefreshTokenRequest(BaseModel):
    """Refresh token request"""
    refresh_token: str = Field(..., min_length=1)
    device_info: Optional[Dict[str, Any]] = None
    location_info: Optional[Dict[str, Any]] = None


class LogoutRequest(BaseModel):
    """Logout request with the refresh token to revoke"""
    refresh_token: str = Field(..., min_length=1)


class TokenInfo(BaseModel):
    type: str
    issued_at: Optional[datetime] = None
    expires_at: datetime


class VerifyTokenResponse(BaseModel):
    user: UserResponse
    token: TokenInfo


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
