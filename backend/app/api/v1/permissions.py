"""Role and permission management routes"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.database import get_db
from app.core.exceptions import ResourceNotFoundError
from app.schemas.rbac import (
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionCreate,
    PermissionResponse,
    PermissionUpdate,
    RoleCreate,
    RolePermissionsAssign,
    RolePermissionsResponse,
    RoleResponse,
    RoleUpdate,
    UserPermissionsResponse,
    UserRoleAssign,
    UserRoleResponse,
)
from app.schemas.response import APIResponse
from app.services.audit_service import audit_service
from app.services.permission_service import permission_service
from app.services.rbac_service import rbac_service
from app.services.user_service import user_service
from app.api.deps import get_current_user, require_permission
from app.models.user import User

router = APIRouter()


def _permissions_of(db: Session, user_id: int) -> UserPermissionsResponse:
    return UserPermissionsResponse(
        user_id=user_id,
        roles=[RoleResponse.model_validate(r) for r in permission_service.get_user_roles(db, user_id)],
        permissions=[PermissionResponse.model_validate(p) for p in permission_service.get_user_permissions(db, user_id)],
    )


# ----------------------------------------------------------------------
# Permissions
# ----------------------------------------------------------------------

@router.get("/permissions", response_model=List[PermissionResponse])
def list_permissions(
    module: Optional[str] = None,
    include_inactive: bool = False,
    current_user: User = Depends(require_permission("permissions", "read")),
    db: Session = Depends(get_db)
):
    """
    List registered permissions

    Args:
        module: Optional module filter
        include_inactive: Include deactivated permissions
    """
    return rbac_service.list_permissions(db, module, include_inactive)


@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
def create_permission(
    body: PermissionCreate,
    current_user: User = Depends(require_permission("permissions", "create")),
    db: Session = Depends(get_db)
):
    """Register a new permission"""
    permission = rbac_service.create_permission(db, body)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="permission_created",
        target_type="permission",
        target_id=str(permission.id),
        metadata={"name": permission.full_name},
    )
    return permission


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
def update_permission(
    permission_id: int,
    body: PermissionUpdate,
    current_user: User = Depends(require_permission("permissions", "update")),
    db: Session = Depends(get_db)
):
    """Update a permission's descriptive fields"""
    return rbac_service.update_permission(db, permission_id, body)


@router.delete("/permissions/{permission_id}", response_model=APIResponse)
def delete_permission(
    permission_id: int,
    current_user: User = Depends(require_permission("permissions", "delete")),
    db: Session = Depends(get_db)
):
    """Delete a custom permission; system permissions are protected"""
    rbac_service.delete_permission(db, permission_id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="permission_deleted",
        target_type="permission",
        target_id=str(permission_id),
    )
    return APIResponse(message=f"Permission {permission_id} deleted")


# ----------------------------------------------------------------------
# Roles
# ----------------------------------------------------------------------

@router.get("/roles", response_model=List[RoleResponse])
def list_roles(
    type: Optional[str] = None,
    include_inactive: bool = False,
    current_user: User = Depends(require_permission("roles", "read")),
    db: Session = Depends(get_db)
):
    """List roles, highest level first"""
    return rbac_service.list_roles(db, type, include_inactive)


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
def create_role(
    body: RoleCreate,
    current_user: User = Depends(require_permission("roles", "create")),
    db: Session = Depends(get_db)
):
    """Create a custom role"""
    role = rbac_service.create_role(db, body, created_by=current_user.id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="role_created",
        target_type="role",
        target_id=str(role.id),
        metadata={"name": role.name, "parent_role_id": role.parent_role_id},
    )
    return role


@router.put("/roles/{role_id}", response_model=RoleResponse)
def update_role(
    role_id: int,
    body: RoleUpdate,
    current_user: User = Depends(require_permission("roles", "update")),
    db: Session = Depends(get_db)
):
    """Update a role; system roles keep their name and type"""
    return rbac_service.update_role(db, role_id, body)


@router.delete("/roles/{role_id}", response_model=APIResponse)
def delete_role(
    role_id: int,
    current_user: User = Depends(require_permission("roles", "delete")),
    db: Session = Depends(get_db)
):
    """Delete an unused custom role"""
    rbac_service.delete_role(db, role_id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="role_deleted",
        target_type="role",
        target_id=str(role_id),
    )
    return APIResponse(message=f"Role {role_id} deleted")


@router.post("/roles/{role_id}/permissions", response_model=RolePermissionsResponse)
def assign_role_permissions(
    role_id: int,
    body: RolePermissionsAssign,
    current_user: User = Depends(require_permission("roles", "update")),
    db: Session = Depends(get_db)
):
    """Replace the role's directly granted permissions"""
    permissions = rbac_service.assign_permissions_to_role(
        db, role_id, body.permission_ids, granted_by=current_user.id
    )
    role = rbac_service.get_role(db, role_id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="role_permissions_assigned",
        target_type="role",
        target_id=str(role_id),
        metadata={"permission_ids": [p.id for p in permissions]},
    )
    return RolePermissionsResponse(
        role=RoleResponse.model_validate(role),
        permissions=[PermissionResponse.model_validate(p) for p in permissions],
    )


@router.get("/roles/{role_id}/permissions", response_model=RolePermissionsResponse)
def get_role_permissions(
    role_id: int,
    include_inherited: bool = True,
    current_user: User = Depends(require_permission("roles", "read")),
    db: Session = Depends(get_db)
):
    """Permissions of a role, including those inherited from its ancestors"""
    role = rbac_service.get_role(db, role_id)
    permissions = permission_service.get_role_permissions(db, role, include_inherited=include_inherited)
    return RolePermissionsResponse(
        role=RoleResponse.model_validate(role),
        permissions=[PermissionResponse.model_validate(p) for p in permissions],
    )


# ----------------------------------------------------------------------
# User grants
# ----------------------------------------------------------------------

@router.post("/users/{user_id}/roles", response_model=UserRoleResponse, status_code=status.HTTP_201_CREATED)
def assign_user_role(
    user_id: int,
    body: UserRoleAssign,
    current_user: User = Depends(require_permission("users", "update")),
    db: Session = Depends(get_db)
):
    """Grant a role to a user"""
    grant = rbac_service.assign_role_to_user(db, user_id, body, granted_by=current_user.id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="user_role_assigned",
        target_type="user",
        target_id=str(user_id),
        metadata={"role_id": grant.role_id, "scope": grant.scope},
    )
    return grant


@router.delete("/users/{user_id}/roles/{role_id}", response_model=APIResponse)
def remove_user_role(
    user_id: int,
    role_id: int,
    current_user: User = Depends(require_permission("users", "update")),
    db: Session = Depends(get_db)
):
    """Revoke a role grant"""
    rbac_service.remove_role_from_user(db, user_id, role_id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="user_role_removed",
        target_type="user",
        target_id=str(user_id),
        metadata={"role_id": role_id},
    )
    return APIResponse(message="Role removed from user")


@router.get("/users/{user_id}/permissions", response_model=UserPermissionsResponse)
def get_user_permissions(
    user_id: int,
    current_user: User = Depends(require_permission("users", "read")),
    db: Session = Depends(get_db)
):
    """Effective roles and permissions of a user"""
    if not user_service.get_user_by_id(db, user_id):
        raise ResourceNotFoundError("User")
    return _permissions_of(db, user_id)


@router.post("/users/{user_id}/check-permission", response_model=PermissionCheckResponse)
def check_user_permission(
    user_id: int,
    body: PermissionCheckRequest,
    current_user: User = Depends(require_permission("users", "read")),
    db: Session = Depends(get_db)
):
    """Check whether a user holds resource.action"""
    if not user_service.get_user_by_id(db, user_id):
        raise ResourceNotFoundError("User")
    allowed = permission_service.check_user_permission(db, user_id, body.resource, body.action)
    return PermissionCheckResponse(has_permission=allowed, resource=body.resource, action=body.action)


# ----------------------------------------------------------------------
# Current user
# ----------------------------------------------------------------------

@router.get("/me/permissions", response_model=UserPermissionsResponse)
def get_my_permissions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Roles and permissions of the current user"""
    return _permissions_of(db, current_user.id)


@router.post("/me/check-permission", response_model=PermissionCheckResponse)
def check_my_permission(
    body: PermissionCheckRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Check whether the current user holds resource.action"""
    allowed = permission_service.check_user_permission(db, current_user.id, body.resource, body.action)
    return PermissionCheckResponse(has_permission=allowed, resource=body.resource, action=body.action)
