"""Effective-permission resolution across the role hierarchy."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.exceptions import InsufficientPermissionsError
from app.models.rbac import Permission, Role, RolePermission, UserRole

logger = logging.getLogger(__name__)


class PermissionService:
    """
    Resolve what a user may do.

    A user's effective roles are their active, unexpired UserRole grants onto
    active roles. Each role also holds every permission of its ancestors,
    found by following ``parent_role_id`` until a root. The walk keeps a
    visited set, so a cyclic parent chain terminates instead of recursing
    forever. Grant expiry is evaluated on every query; nothing sweeps grants.
    """

    @staticmethod
    def _effective_grants(db: Session, user_id: int, now: datetime):
        return (
            db.query(UserRole, Role)
            .join(Role, Role.id == UserRole.role_id)
            .filter(
                UserRole.user_id == user_id,
                UserRole.is_active.is_(True),
                or_(UserRole.expires_at.is_(None), UserRole.expires_at > now),
                Role.is_active.is_(True),
            )
        )

    @staticmethod
    def get_user_roles(db: Session, user_id: int, now: Optional[datetime] = None) -> List[Role]:
        """Effective roles, most senior first."""
        rows = (
            PermissionService._effective_grants(db, user_id, now or utcnow())
            .order_by(Role.level.desc(), Role.name.asc())
            .all()
        )
        roles: List[Role] = []
        seen: Set[int] = set()
        for _, role in rows:
            if role.id not in seen:
                seen.add(role.id)
                roles.append(role)
        return roles

    @staticmethod
    def iter_ancestors(db: Session, role: Role) -> Iterable[Role]:
        """
        Yield the active ancestors of ``role``, nearest first.

        Stops at a root, at an inactive ancestor, or when a parent link points
        back into the chain already walked.
        """
        visited: Set[int] = {role.id}
        stack: List[Optional[int]] = [role.parent_role_id]
        while stack:
            parent_id = stack.pop()
            if parent_id is None:
                continue
            if parent_id in visited:
                logger.warning("Role inheritance cycle detected at role %s (from role %s)", parent_id, role.id)
                continue
            visited.add(parent_id)
            parent = db.query(Role).filter(Role.id == parent_id).first()
            if parent is None or not parent.is_active:
                continue
            yield parent
            stack.append(parent.parent_role_id)

    @staticmethod
    def _direct_permissions(db: Session, role_ids: Sequence[int]) -> List[Permission]:
        if not role_ids:
            return []
        return (
            db.query(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .filter(
                RolePermission.role_id.in_(list(role_ids)),
                RolePermission.is_active.is_(True),
                Permission.is_active.is_(True),
            )
            .all()
        )

    @staticmethod
    def _role_grants(db: Session, role_id: int, permission_id: int) -> bool:
        return (
            db.query(RolePermission.id)
            .filter(
                RolePermission.role_id == role_id,
                RolePermission.permission_id == permission_id,
                RolePermission.is_active.is_(True),
            )
            .first()
            is not None
        )

    @staticmethod
    def get_user_permissions(db: Session, user_id: int, now: Optional[datetime] = None) -> List[Permission]:
        """Union of direct and inherited permissions over every effective role."""
        role_ids: List[int] = []
        seen: Set[int] = set()
        for role in PermissionService.get_user_roles(db, user_id, now=now):
            for candidate in [role, *PermissionService.iter_ancestors(db, role)]:
                if candidate.id not in seen:
                    seen.add(candidate.id)
                    role_ids.append(candidate.id)

        by_id: Dict[int, Permission] = {}
        for permission in PermissionService._direct_permissions(db, role_ids):
            by_id.setdefault(permission.id, permission)
        return sorted(by_id.values(), key=lambda p: (p.module, -p.priority, p.name))

    @staticmethod
    def get_role_permissions(db: Session, role: Role, include_inherited: bool = True) -> List[Permission]:
        role_ids = [role.id]
        if include_inherited:
            role_ids.extend(ancestor.id for ancestor in PermissionService.iter_ancestors(db, role))
        by_id: Dict[int, Permission] = {}
        for permission in PermissionService._direct_permissions(db, role_ids):
            by_id.setdefault(permission.id, permission)
        return sorted(by_id.values(), key=lambda p: (p.module, -p.priority, p.name))

    @staticmethod
    def find_permission(db: Session, resource: str, action: str) -> Optional[Permission]:
        return (
            db.query(Permission)
            .filter(
                Permission.resource == resource,
                Permission.action == action,
                Permission.is_active.is_(True),
            )
            .first()
        )

    @staticmethod
    def check_user_permission(
        db: Session,
        user_id: int,
        resource: str,
        action: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Can ``user_id`` perform ``action`` on ``resource``?

        Unregistered permissions are never grantable. Store failures deny.
        """
        try:
            permission = PermissionService.find_permission(db, resource, action)
            if permission is None:
                logger.warning("Permission not registered: %s.%s", resource, action)
                return False

            for role in PermissionService.get_user_roles(db, user_id, now=now):
                if PermissionService._role_grants(db, role.id, permission.id):
                    return True
                for ancestor in PermissionService.iter_ancestors(db, role):
                    if PermissionService._role_grants(db, ancestor.id, permission.id):
                        return True
            return False
        except SQLAlchemyError:
            logger.exception("Permission check failed for user %s on %s.%s; denying", user_id, resource, action)
            return False

    @staticmethod
    def has_any_role(db: Session, user_id: int, role_names: Sequence[str]) -> bool:
        try:
            names = {role.name for role in PermissionService.get_user_roles(db, user_id)}
        except SQLAlchemyError:
            logger.exception("Role lookup failed for user %s; denying", user_id)
            return False
        return bool(names.intersection(role_names))

    @staticmethod
    def authorize(db: Session, user_id: int, resource: str, action: str) -> None:
        """
        Raise unless the user holds ``resource.action``.

        Raises:
            InsufficientPermissionsError: On deny
        """
        if PermissionService.check_user_permission(db, user_id, resource, action):
            return
        try:
            role_names = [role.name for role in PermissionService.get_user_roles(db, user_id)]
        except SQLAlchemyError:
            role_names = []
        logger.warning(
            "Permission denied user=%s required=%s.%s roles=%s",
            user_id,
            resource,
            action,
            role_names,
        )
        raise InsufficientPermissionsError(resource, action)


permission_service = PermissionService()
