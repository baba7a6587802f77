from datetime import timedelta

import pytest

from app.core.clock import utcnow
from app.core.exceptions import (
    ConflictError,
    ProtectedResourceError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    ValidationError,
)
from app.models.rbac import Permission, Role, RolePermission, UserRole
from app.schemas.rbac import PermissionCreate, RoleCreate, RoleUpdate, UserRoleAssign
from app.services.permission_service import permission_service
from app.services.rbac_seed import PERMISSION_CATALOG, ROLE_CATALOG, seed_defaults
from app.services.rbac_service import rbac_service


def _role(db, name, parent_role_id=None):
    return rbac_service.create_role(
        db,
        RoleCreate(name=name, display_name=name.title(), parent_role_id=parent_role_id),
    )


def test_seed_is_idempotent(db):
    first = seed_defaults(db)
    second = seed_defaults(db)

    assert first["permissions"] == len(PERMISSION_CATALOG)
    assert first["roles"] == len(ROLE_CATALOG)
    assert second == {"permissions": 0, "roles": 0, "role_permissions": 0}

    admin = db.query(Role).filter(Role.name == "admin").one()
    super_admin = db.query(Role).filter(Role.name == "super_admin").one()
    assert admin.parent_role_id == super_admin.id
    assert (
        db.query(RolePermission).filter(RolePermission.role_id == super_admin.id).count()
        == len(PERMISSION_CATALOG)
    )


def test_create_permission_enforces_resource_action_uniqueness(seeded_db):
    with pytest.raises(ResourceAlreadyExistsError):
        rbac_service.create_permission(
            seeded_db,
            PermissionCreate(
                name="read_users_again",
                display_name="Read users",
                resource="users",
                action="read",
                module="auth",
            ),
        )


def test_system_permission_cannot_be_deleted(seeded_db):
    permission = seeded_db.query(Permission).filter(Permission.is_system.is_(True)).first()
    with pytest.raises(ProtectedResourceError):
        rbac_service.delete_permission(seeded_db, permission.id)


def test_custom_permission_lifecycle(db):
    permission = rbac_service.create_permission(
        db,
        PermissionCreate(name="export_reports", display_name="Export", resource="reports", action="export", module="reports"),
    )
    role = _role(db, "analyst")
    rbac_service.assign_permissions_to_role(db, role.id, [permission.id])

    rbac_service.delete_permission(db, permission.id)
    assert db.query(RolePermission).filter(RolePermission.role_id == role.id).count() == 0
    with pytest.raises(ResourceNotFoundError):
        rbac_service.get_permission(db, permission.id)


def test_role_cannot_be_its_own_parent(db):
    role = _role(db, "solo")
    with pytest.raises(ValidationError):
        rbac_service.update_role(db, role.id, RoleUpdate(parent_role_id=role.id))


def test_multi_hop_cycle_is_rejected(db):
    a = _role(db, "role_a")
    b = _role(db, "role_b", parent_role_id=a.id)
    c = _role(db, "role_c", parent_role_id=b.id)

    with pytest.raises(ValidationError):
        rbac_service.update_role(db, a.id, RoleUpdate(parent_role_id=c.id))


def test_missing_parent_is_rejected(db):
    with pytest.raises(ResourceNotFoundError):
        _role(db, "orphan", parent_role_id=9999)


def test_parent_can_be_cleared(db):
    a = _role(db, "role_a")
    b = _role(db, "role_b", parent_role_id=a.id)

    updated = rbac_service.update_role(db, b.id, RoleUpdate(parent_role_id=None))
    assert updated.parent_role_id is None


def test_system_role_is_protected(seeded_db):
    viewer = rbac_service.get_role_by_name(seeded_db, "viewer")

    with pytest.raises(ProtectedResourceError):
        rbac_service.update_role(seeded_db, viewer.id, RoleUpdate(name="watcher"))
    with pytest.raises(ProtectedResourceError):
        rbac_service.delete_role(seeded_db, viewer.id)

    updated = rbac_service.update_role(seeded_db, viewer.id, RoleUpdate(description="Read only"))
    assert updated.description == "Read only"


def test_role_with_holders_or_children_cannot_be_deleted(db, make_user):
    parent = _role(db, "parent_role")
    child = _role(db, "child_role", parent_role_id=parent.id)
    user = make_user()
    rbac_service.assign_role_to_user(db, user.id, UserRoleAssign(role_id=child.id))

    with pytest.raises(ConflictError):
        rbac_service.delete_role(db, parent.id)
    with pytest.raises(ConflictError):
        rbac_service.delete_role(db, child.id)

    rbac_service.remove_role_from_user(db, user.id, child.id)
    rbac_service.delete_role(db, child.id)
    rbac_service.delete_role(db, parent.id)
    assert rbac_service.list_roles(db) == []


def test_assign_permissions_replaces_set(db):
    role = _role(db, "writer")
    first = rbac_service.create_permission(
        db, PermissionCreate(name="write_notes", display_name="Write", resource="notes", action="write", module="notes")
    )
    second = rbac_service.create_permission(
        db, PermissionCreate(name="read_notes", display_name="Read", resource="notes", action="read", module="notes")
    )

    rbac_service.assign_permissions_to_role(db, role.id, [first.id])
    rbac_service.assign_permissions_to_role(db, role.id, [second.id, second.id])

    assert [p.id for p in permission_service.get_role_permissions(db, role)] == [second.id]

    with pytest.raises(ResourceNotFoundError):
        rbac_service.assign_permissions_to_role(db, role.id, [second.id, 4242])


def test_assign_role_to_user_validations(db, make_user):
    role = _role(db, "helper")
    user = make_user()

    with pytest.raises(ResourceNotFoundError):
        rbac_service.assign_role_to_user(db, 9999, UserRoleAssign(role_id=role.id))
    with pytest.raises(ValidationError):
        rbac_service.assign_role_to_user(
            db, user.id, UserRoleAssign(role_id=role.id, expires_at=utcnow() - timedelta(minutes=1))
        )

    grant = rbac_service.assign_role_to_user(db, user.id, UserRoleAssign(role_id=role.id))
    assert grant.scope == "global"
    with pytest.raises(ResourceAlreadyExistsError):
        rbac_service.assign_role_to_user(db, user.id, UserRoleAssign(role_id=role.id))


def test_removed_grant_is_terminal(db, make_user):
    role = _role(db, "helper")
    user = make_user()
    grant = rbac_service.assign_role_to_user(db, user.id, UserRoleAssign(role_id=role.id))

    rbac_service.remove_role_from_user(db, user.id, role.id)
    db.refresh(grant)
    assert grant.is_active is False
    assert permission_service.get_user_roles(db, user.id) == []

    with pytest.raises(ResourceNotFoundError):
        rbac_service.remove_role_from_user(db, user.id, role.id)

    regrant = rbac_service.assign_role_to_user(db, user.id, UserRoleAssign(role_id=role.id))
    assert regrant.id != grant.id


def test_expired_grant_does_not_block_regrant(db, make_user):
    role = _role(db, "contractor")
    user = make_user()
    lapsed = UserRole(
        user_id=user.id,
        role_id=role.id,
        scope="global",
        expires_at=utcnow() - timedelta(days=1),
        is_active=True,
    )
    db.add(lapsed)
    db.commit()
    assert permission_service.get_user_roles(db, user.id) == []

    grant = rbac_service.assign_role_to_user(db, user.id, UserRoleAssign(role_id=role.id))

    db.refresh(lapsed)
    assert lapsed.is_active is False
    assert grant.id != lapsed.id
    assert [r.name for r in permission_service.get_user_roles(db, user.id)] == ["contractor"]
