"""Role and permission schemas"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

_NAME_PATTERN = r'^[a-z][a-z0-9_]*$'


class RoleType(str, Enum):
    SYSTEM = "system"
    CUSTOM = "custom"
    ORGANIZATION = "organization"


class GrantScope(str, Enum):
    GLOBAL = "global"
    ORGANIZATION = "organization"
    DEPARTMENT = "department"
    PROJECT = "project"


class PermissionCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100, pattern=_NAME_PATTERN)
    display_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    resource: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=50)
    module: str = Field(..., min_length=1, max_length=100)
    priority: int = 0


class PermissionUpdate(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None


class PermissionResponse(BaseModel):
    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    resource: str
    action: str
    module: str
    priority: int
    is_system: bool
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100, pattern=_NAME_PATTERN)
    display_name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: RoleType = RoleType.CUSTOM
    level: int = 0
    parent_role_id: Optional[int] = None
    settings: Optional[Dict[str, Any]] = None


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100, pattern=_NAME_PATTERN)
    type: Optional[RoleType] = None
    display_name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    level: Optional[int] = None
    parent_role_id: Optional[int] = None
    settings: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class RoleResponse(BaseModel):
    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    type: str
    level: int
    parent_role_id: Optional[int] = None
    is_system: bool
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class RolePermissionsAssign(BaseModel):
    permission_ids: List[int] = Field(..., min_length=1)


class RolePermissionsResponse(BaseModel):
    role: RoleResponse
    permissions: List[PermissionResponse]


class UserRoleAssign(BaseModel):
    role_id: int
    scope: GrantScope = GrantScope.GLOBAL
    scope_id: Optional[str] = None
    expires_at: Optional[datetime] = None


class UserRoleResponse(BaseModel):
    id: int
    user_id: int
    role_id: int
    scope: str
    scope_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class PermissionCheckRequest(BaseModel):
    resource: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)


class PermissionCheckResponse(BaseModel):
    has_permission: bool
    resource: str
    action: str


class UserPermissionsResponse(BaseModel):
    user_id: int
    roles: List[RoleResponse]
    permissions: List[PermissionResponse]
