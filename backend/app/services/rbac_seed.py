"""Bootstrap role hierarchy and permission catalog."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.rbac import Permission, Role, RolePermission

logger = logging.getLogger(__name__)

# (module, resource, action, display name)
PERMISSION_CATALOG: List[Tuple[str, str, str, str]] = [
    ("auth", "users", "read", "View users"),
    ("auth", "users", "create", "Create users"),
    ("auth", "users", "update", "Update users"),
    ("auth", "users", "delete", "Delete users"),
    ("knowledge", "knowledge_bases", "read", "View knowledge bases"),
    ("knowledge", "knowledge_bases", "create", "Create knowledge bases"),
    ("knowledge", "knowledge_bases", "update", "Edit knowledge bases"),
    ("knowledge", "knowledge_bases", "delete", "Delete knowledge bases"),
    ("knowledge", "documents", "read", "View documents"),
    ("knowledge", "documents", "create", "Create documents"),
    ("knowledge", "documents", "update", "Edit documents"),
    ("knowledge", "documents", "delete", "Delete documents"),
    ("knowledge", "faqs", "read", "View FAQs"),
    ("knowledge", "faqs", "create", "Create FAQs"),
    ("knowledge", "faqs", "update", "Edit FAQs"),
    ("knowledge", "faqs", "delete", "Delete FAQs"),
    ("conversation", "conversations", "read", "View conversations"),
    ("conversation", "conversations", "create", "Start conversations"),
    ("conversation", "conversations", "update", "Edit conversations"),
    ("conversation", "conversations", "delete", "Delete conversations"),
    ("files", "files", "read", "View files"),
    ("files", "files", "upload", "Upload files"),
    ("files", "files", "download", "Download files"),
    ("files", "files", "delete", "Delete files"),
    ("search", "search", "use", "Use search"),
    ("search", "search", "manage", "Manage search"),
    ("system", "admin", "full", "Full system administration"),
    ("system", "permissions", "read", "View permissions"),
    ("system", "permissions", "create", "Create permissions"),
    ("system", "permissions", "update", "Edit permissions"),
    ("system", "permissions", "delete", "Delete permissions"),
    ("system", "roles", "read", "View roles"),
    ("system", "roles", "create", "Create roles"),
    ("system", "roles", "update", "Edit roles"),
    ("system", "roles", "delete", "Delete roles"),
    ("system", "logs", "read", "View system logs"),
    ("system", "settings", "read", "View system settings"),
    ("system", "settings", "update", "Update system settings"),
]

_ACTION_PRIORITY = {
    "read": 1,
    "use": 1,
    "delete": 3,
    "manage": 3,
    "full": 3,
}

# name -> (display name, description, level, parent name)
ROLE_CATALOG: Dict[str, Tuple[str, str, int, Optional[str]]] = {
    "super_admin": ("Super administrator", "Holds every permission in the system", 100, None),
    "admin": ("Administrator", "Holds most management permissions", 90, "super_admin"),
    "editor": ("Editor", "Creates and edits content", 50, None),
    "viewer": ("Viewer", "Read-only access to content", 10, None),
}

ROLE_GRANTS: Dict[str, List[str]] = {
    "admin": [
        "users.read", "users.create", "users.update",
        "permissions.read", "roles.read",
        "knowledge_bases.read", "knowledge_bases.create", "knowledge_bases.update", "knowledge_bases.delete",
        "documents.read", "documents.create", "documents.update", "documents.delete",
        "faqs.read", "faqs.create", "faqs.update", "faqs.delete",
        "conversations.read", "conversations.create", "conversations.update", "conversations.delete",
        "files.read", "files.upload", "files.download", "files.delete",
        "search.use", "search.manage",
    ],
    "editor": [
        "knowledge_bases.read", "knowledge_bases.create", "knowledge_bases.update",
        "documents.read", "documents.create", "documents.update",
        "faqs.read", "faqs.create", "faqs.update",
        "conversations.read", "conversations.create", "conversations.update",
        "files.read", "files.upload", "files.download",
        "search.use",
    ],
    "viewer": [
        "knowledge_bases.read",
        "documents.read",
        "faqs.read",
        "conversations.read", "conversations.create",
        "files.read", "files.download",
        "search.use",
    ],
}


def seed_defaults(db: Session) -> Dict[str, int]:
    """
    Install the bootstrap roles, permissions and grants.

    Idempotent: existing rows (matched by name or resource/action) are kept
    as they are, missing ones are added.

    Returns:
        Counts of rows created per table
    """
    created = {"permissions": 0, "roles": 0, "role_permissions": 0}

    permissions: Dict[str, Permission] = {}
    for module, resource, action, display_name in PERMISSION_CATALOG:
        key = f"{resource}.{action}"
        permission = (
            db.query(Permission)
            .filter(Permission.resource == resource, Permission.action == action)
            .first()
        )
        if permission is None:
            permission = Permission(
                name=f"{action}_{resource}",
                display_name=display_name,
                resource=resource,
                action=action,
                module=module,
                priority=_ACTION_PRIORITY.get(action, 2),
                is_system=True,
                is_active=True,
            )
            db.add(permission)
            created["permissions"] += 1
        permissions[key] = permission
    db.flush()

    roles: Dict[str, Role] = {}
    for name, (display_name, description, level, _parent) in ROLE_CATALOG.items():
        role = db.query(Role).filter(Role.name == name).first()
        if role is None:
            role = Role(
                name=name,
                display_name=display_name,
                description=description,
                type="system",
                level=level,
                is_system=True,
                is_active=True,
            )
            db.add(role)
            created["roles"] += 1
        roles[name] = role
    db.flush()

    for name, (_display, _description, _level, parent) in ROLE_CATALOG.items():
        if parent and roles[name].parent_role_id is None:
            roles[name].parent_role_id = roles[parent].id

    grants: Dict[str, List[str]] = dict(ROLE_GRANTS)
    grants["super_admin"] = list(permissions.keys())
    for role_name, keys in grants.items():
        role = roles[role_name]
        existing = {
            rp.permission_id
            for rp in db.query(RolePermission).filter(RolePermission.role_id == role.id).all()
        }
        for key in keys:
            permission = permissions[key]
            if permission.id in existing:
                continue
            db.add(RolePermission(role_id=role.id, permission_id=permission.id, is_active=True))
            created["role_permissions"] += 1

    db.commit()
    if any(created.values()):
        logger.info("Seeded RBAC defaults: %s", created)
    return created
