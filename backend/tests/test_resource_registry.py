import pytest

from app.services.resource_registry import ResourceRegistry, UnknownResourceError, resource_registry
from app.services.token_service import token_service
from app.models.session import UserSession


def test_builtin_resources_are_registered():
    assert "users" in resource_registry
    assert "sessions" in resource_registry
    assert "knowledge_bases" not in resource_registry


def test_owner_lookup(db, make_user):
    user = make_user()
    token_service.issue_token_pair(db, user)
    session_id = db.query(UserSession.id).filter(UserSession.user_id == user.id).scalar()

    assert resource_registry.owner_of(db, "users", str(user.id)) == user.id
    assert resource_registry.owner_of(db, "sessions", session_id) == user.id
    assert resource_registry.owner_of(db, "sessions", "missing") is None
    assert resource_registry.owner_of(db, "users", "not-a-number") is None


def test_unknown_resource_raises(db):
    with pytest.raises(UnknownResourceError):
        resource_registry.owner_of(db, "widgets", "1")


def test_duplicate_registration_rejected():
    registry = ResourceRegistry()
    registry.register("notes", lambda db, rid: 1)
    with pytest.raises(ValueError):
        registry.register("notes", lambda db, rid: 2)
