"""Administrative writes over the role/permission graph."""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.clock import as_naive_utc, utcnow
from app.core.exceptions import (
    ConflictError,
    ProtectedResourceError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    ValidationError,
)
from app.models.rbac import Permission, Role, RolePermission, UserRole
from app.models.user import User
from app.schemas.rbac import (
    PermissionCreate,
    PermissionUpdate,
    RoleCreate,
    RoleUpdate,
    UserRoleAssign,
)

logger = logging.getLogger(__name__)


class RBACService:
    """Service for role, permission and grant management"""

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    @staticmethod
    def list_permissions(
        db: Session,
        module: Optional[str] = None,
        include_inactive: bool = False,
    ) -> List[Permission]:
        query = db.query(Permission)
        if module:
            query = query.filter(Permission.module == module)
        if not include_inactive:
            query = query.filter(Permission.is_active.is_(True))
        return query.order_by(Permission.module.asc(), Permission.priority.desc(), Permission.name.asc()).all()

    @staticmethod
    def get_permission(db: Session, permission_id: int) -> Permission:
        permission = db.query(Permission).filter(Permission.id == permission_id).first()
        if not permission:
            raise ResourceNotFoundError("Permission")
        return permission

    @staticmethod
    def create_permission(db: Session, data: PermissionCreate) -> Permission:
        if db.query(Permission).filter(Permission.name == data.name).first():
            raise ResourceAlreadyExistsError(f"Permission '{data.name}'")
        if (
            db.query(Permission)
            .filter(Permission.resource == data.resource, Permission.action == data.action)
            .first()
        ):
            raise ResourceAlreadyExistsError(f"Permission {data.resource}.{data.action}")

        permission = Permission(
            name=data.name,
            display_name=data.display_name,
            description=data.description,
            resource=data.resource,
            action=data.action,
            module=data.module,
            priority=data.priority,
            is_system=False,
            is_active=True,
        )
        db.add(permission)
        db.commit()
        db.refresh(permission)
        logger.info("Created permission %s (%s.%s)", permission.name, permission.resource, permission.action)
        return permission

    @staticmethod
    def update_permission(db: Session, permission_id: int, data: PermissionUpdate) -> Permission:
        permission = RBACService.get_permission(db, permission_id)
        for field in ("display_name", "description", "priority", "is_active"):
            value = getattr(data, field)
            if value is not None:
                setattr(permission, field, value)
        db.commit()
        db.refresh(permission)
        return permission

    @staticmethod
    def delete_permission(db: Session, permission_id: int) -> None:
        permission = RBACService.get_permission(db, permission_id)
        if permission.is_system:
            raise ProtectedResourceError("System permissions cannot be deleted")
        db.query(RolePermission).filter(RolePermission.permission_id == permission.id).delete()
        db.delete(permission)
        db.commit()
        logger.info("Deleted permission %s", permission.name)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    @staticmethod
    def list_roles(
        db: Session,
        role_type: Optional[str] = None,
        include_inactive: bool = False,
    ) -> List[Role]:
        query = db.query(Role)
        if role_type:
            query = query.filter(Role.type == role_type)
        if not include_inactive:
            query = query.filter(Role.is_active.is_(True))
        return query.order_by(Role.level.desc(), Role.name.asc()).all()

    @staticmethod
    def get_role(db: Session, role_id: int) -> Role:
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise ResourceNotFoundError("Role")
        return role

    @staticmethod
    def get_role_by_name(db: Session, name: str) -> Optional[Role]:
        return db.query(Role).filter(Role.name == name).first()

    @staticmethod
    def _validate_parent(db: Session, role_id: Optional[int], parent_role_id: int) -> None:
        """
        Reject a parent that is missing, the role itself, or a descendant of it.
        """
        if role_id is not None and parent_role_id == role_id:
            raise ValidationError("A role cannot inherit from itself")

        parent = db.query(Role).filter(Role.id == parent_role_id).first()
        if not parent:
            raise ResourceNotFoundError("Parent role")
        if role_id is None:
            return

        visited: Set[int] = set()
        cursor: Optional[Role] = parent
        while cursor is not None and cursor.id not in visited:
            if cursor.id == role_id:
                raise ValidationError(
                    "Role inheritance cycle",
                    details={"role_id": role_id, "parent_role_id": parent_role_id},
                )
            visited.add(cursor.id)
            if cursor.parent_role_id is None:
                break
            cursor = db.query(Role).filter(Role.id == cursor.parent_role_id).first()

    @staticmethod
    def create_role(db: Session, data: RoleCreate, created_by: Optional[int] = None) -> Role:
        if RBACService.get_role_by_name(db, data.name):
            raise ResourceAlreadyExistsError(f"Role '{data.name}'")
        if data.parent_role_id is not None:
            RBACService._validate_parent(db, None, data.parent_role_id)

        role = Role(
            name=data.name,
            display_name=data.display_name,
            description=data.description,
            type=data.type.value,
            level=data.level,
            parent_role_id=data.parent_role_id,
            settings=data.settings,
            is_system=False,
            is_active=True,
            created_by=created_by,
        )
        db.add(role)
        db.commit()
        db.refresh(role)
        logger.info("Created role %s (level %s)", role.name, role.level)
        return role

    @staticmethod
    def update_role(db: Session, role_id: int, data: RoleUpdate) -> Role:
        role = RBACService.get_role(db, role_id)
        fields = data.model_fields_set

        if role.is_system and (data.name is not None or data.type is not None):
            raise ProtectedResourceError("Core fields of a system role cannot be changed")

        if data.name is not None and data.name != role.name:
            if RBACService.get_role_by_name(db, data.name):
                raise ResourceAlreadyExistsError(f"Role '{data.name}'")
            role.name = data.name
        if data.type is not None:
            role.type = data.type.value

        if "parent_role_id" in fields:
            if data.parent_role_id is not None:
                RBACService._validate_parent(db, role.id, data.parent_role_id)
            role.parent_role_id = data.parent_role_id

        for field in ("display_name", "description", "level", "settings", "is_active"):
            value = getattr(data, field)
            if value is not None:
                setattr(role, field, value)

        db.commit()
        db.refresh(role)
        return role

    @staticmethod
    def delete_role(db: Session, role_id: int) -> None:
        role = RBACService.get_role(db, role_id)
        if role.is_system:
            raise ProtectedResourceError("System roles cannot be deleted")

        holders = (
            db.query(UserRole)
            .filter(UserRole.role_id == role.id, UserRole.is_active.is_(True))
            .count()
        )
        if holders:
            raise ConflictError("Role is still assigned to users")

        children = (
            db.query(Role)
            .filter(Role.parent_role_id == role.id, Role.is_active.is_(True))
            .count()
        )
        if children:
            raise ConflictError("Role still has child roles")

        db.delete(role)
        db.commit()
        logger.info("Deleted role %s", role.name)

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    @staticmethod
    def assign_permissions_to_role(
        db: Session,
        role_id: int,
        permission_ids: List[int],
        granted_by: Optional[int] = None,
    ) -> List[Permission]:
        """Replace the role's direct permission set."""
        role = RBACService.get_role(db, role_id)
        unique_ids = list(dict.fromkeys(permission_ids))
        if not unique_ids:
            raise ValidationError("permission_ids must not be empty")

        permissions = (
            db.query(Permission)
            .filter(Permission.id.in_(unique_ids), Permission.is_active.is_(True))
            .all()
        )
        if len(permissions) != len(unique_ids):
            found = {p.id for p in permissions}
            raise ResourceNotFoundError(
                "Permission(s) " + ", ".join(str(pid) for pid in unique_ids if pid not in found)
            )

        db.query(RolePermission).filter(RolePermission.role_id == role.id).delete()
        db.add_all(
            RolePermission(role_id=role.id, permission_id=pid, is_active=True, granted_by=granted_by)
            for pid in unique_ids
        )
        db.commit()
        logger.info("Assigned %d permissions to role %s", len(unique_ids), role.name)
        return permissions

    @staticmethod
    def assign_role_to_user(
        db: Session,
        user_id: int,
        data: UserRoleAssign,
        granted_by: Optional[int] = None,
    ) -> UserRole:
        if not db.query(User).filter(User.id == user_id).first():
            raise ResourceNotFoundError("User")
        role = RBACService.get_role(db, data.role_id)
        if not role.is_active:
            raise ValidationError("Role is not active")

        expires_at = as_naive_utc(data.expires_at)
        if expires_at is not None and expires_at <= utcnow():
            raise ValidationError("expires_at must be in the future")

        now = utcnow()
        stale = (
            db.query(UserRole)
            .filter(
                UserRole.user_id == user_id,
                UserRole.role_id == role.id,
                UserRole.is_active.is_(True),
                UserRole.expires_at.isnot(None),
                UserRole.expires_at <= now,
            )
            .all()
        )
        for lapsed in stale:
            lapsed.is_active = False

        existing = (
            db.query(UserRole)
            .filter(
                UserRole.user_id == user_id,
                UserRole.role_id == role.id,
                UserRole.is_active.is_(True),
                or_(UserRole.expires_at.is_(None), UserRole.expires_at > now),
            )
            .first()
        )
        if existing:
            raise ResourceAlreadyExistsError("User role")

        grant = UserRole(
            user_id=user_id,
            role_id=role.id,
            scope=data.scope.value,
            scope_id=data.scope_id,
            expires_at=expires_at,
            is_active=True,
            granted_by=granted_by,
        )
        db.add(grant)
        db.commit()
        db.refresh(grant)
        logger.info("Granted role %s to user %s (scope=%s)", role.name, user_id, grant.scope)
        return grant

    @staticmethod
    def remove_role_from_user(db: Session, user_id: int, role_id: int) -> None:
        """Revoke an active grant. Revocation is terminal; re-granting creates a new edge."""
        grant = (
            db.query(UserRole)
            .filter(UserRole.user_id == user_id, UserRole.role_id == role_id, UserRole.is_active.is_(True))
            .first()
        )
        if not grant:
            raise ResourceNotFoundError("User role")
        grant.is_active = False
        db.commit()
        logger.info("Revoked role %s from user %s", role_id, user_id)


rbac_service = RBACService()
