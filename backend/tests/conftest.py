import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DB_INIT_MODE", "off")
os.environ.setdefault("SEED_RBAC_ON_STARTUP", "false")
os.environ.setdefault("LOG_FILE", os.path.join(os.path.dirname(__file__), ".logs", "auth-test.log"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.models.rbac import Role, UserRole
from app.schemas.user import UserRegister
from app.services.rbac_seed import seed_defaults
from app.services.user_service import user_service

DEFAULT_PASSWORD = "Str0ngPassw0rd!"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded_db(db):
    seed_defaults(db)
    return db


@pytest.fixture
def make_user(db):
    """Create an active, verified user; ``roles`` are granted by name."""
    counter = {"n": 0}

    def _make(email=None, password=DEFAULT_PASSWORD, roles=(), role=None, activate=True):
        counter["n"] += 1
        n = counter["n"]
        user = user_service.create_user(
            db,
            UserRegister(
                email=email or f"user{n}@example.com",
                username=f"user{n}",
                password=password,
            ),
            role=role or (roles[0] if roles else None),
            activate=activate,
        )
        for name in roles:
            role_row = db.query(Role).filter(Role.name == name).one()
            exists = (
                db.query(UserRole)
                .filter(UserRole.user_id == user.id, UserRole.role_id == role_row.id, UserRole.is_active.is_(True))
                .first()
            )
            if exists is None:
                db.add(UserRole(user_id=user.id, role_id=role_row.id, scope="global", is_active=True))
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_role(db):
    def _make(name, level=0, parent=None, is_active=True):
        role = Role(
            name=name,
            display_name=name.title(),
            type="custom",
            level=level,
            parent_role_id=parent.id if parent is not None else None,
            is_active=is_active,
        )
        db.add(role)
        db.commit()
        db.refresh(role)
        return role

    return _make


@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient

    from app.main import app
    from app.services.rate_limiter import SlidingWindowRateLimiter

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    previous_limiter = app.state.rate_limiter
    app.state.rate_limiter = SlidingWindowRateLimiter(max_keys=1000)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        app.state.rate_limiter = previous_limiter
