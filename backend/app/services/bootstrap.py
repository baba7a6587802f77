"""Startup provisioning of the administrator account."""

import logging

from sqlalchemy.orm import Session

from app.config import settings
from app.models.rbac import Role, UserRole
from app.models.user import User
from app.schemas.user import UserRegister
from app.services.user_service import user_service

logger = logging.getLogger(__name__)

ADMIN_ROLE_NAME = "super_admin"


def ensure_admin_user(db: Session) -> User:
    """
    Create the configured admin account if missing and grant it super_admin.

    Safe to run on every startup; an existing account keeps its password.
    """
    admin = user_service.get_user_by_email(db, settings.ADMIN_EMAIL)
    if admin is None:
        admin = user_service.create_user(
            db,
            UserRegister(
                email=settings.ADMIN_EMAIL,
                username=settings.ADMIN_USERNAME,
                password=settings.ADMIN_PASSWORD,
            ),
            role=ADMIN_ROLE_NAME,
            activate=True,
        )
        logger.info("Created admin user: %s", admin.email)

    role = db.query(Role).filter(Role.name == ADMIN_ROLE_NAME).first()
    if role is None:
        logger.warning("Role %s is not seeded; admin has no RBAC grant", ADMIN_ROLE_NAME)
        return admin

    granted = (
        db.query(UserRole)
        .filter(UserRole.user_id == admin.id, UserRole.role_id == role.id, UserRole.is_active.is_(True))
        .first()
    )
    if granted is None:
        db.add(UserRole(user_id=admin.id, role_id=role.id, scope="global", is_active=True))
        db.commit()
        logger.info("Granted %s to %s", ADMIN_ROLE_NAME, admin.email)
    return admin
