"""Pydantic schemas for API validation"""

from app.schemas.user import (
    UserRegister,
    UserLogin,
    UserResponse,
    TokenPair,
    LoginResponse,
    RefreshTokenRequest,
    LogoutRequest,
)
from app.schemas.session import SessionResponse, SessionListResponse
from app.schemas.rbac import (
    PermissionCreate,
    PermissionResponse,
    RoleCreate,
    RoleResponse,
    UserRoleAssign,
    UserPermissionsResponse,
)
from app.schemas.response import APIResponse, ErrorResponse
from app.schemas.audit import AuditEventResponse

__all__ = [
    "UserRegister", "UserLogin", "UserResponse", "TokenPair", "LoginResponse",
    "RefreshTokenRequest", "LogoutRequest",
    "SessionResponse", "SessionListResponse",
    "PermissionCreate", "PermissionResponse", "RoleCreate", "RoleResponse",
    "UserRoleAssign", "UserPermissionsResponse",
    "AuditEventResponse",
    "APIResponse", "ErrorResponse"
]
