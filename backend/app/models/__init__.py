"""Database models"""

from app.models.user import User
from app.models.session import UserSession
from app.models.rbac import Role, Permission, RolePermission, UserRole
from app.models.audit import AuditEvent

__all__ = ["User", "UserSession", "Role", "Permission", "RolePermission", "UserRole", "AuditEvent"]
