"""User service - handles credential storage and account lifecycle"""

from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import timedelta
from app.config import settings
from app.core.clock import as_naive_utc, utcnow
from app.models.session import REVOKE_REASON_ACCOUNT_DISABLED, REVOKE_REASON_PASSWORD_RESET
from app.models.rbac import Role, UserRole
from app.models.user import User, USER_STATUS_ACTIVE, USER_STATUS_DISABLED, USER_STATUS_PENDING
from app.schemas.user import ProfileUpdate, UserRegister, UserStatus
from app.core.security import generate_opaque_token, get_password_hash, verify_password
from app.core.exceptions import (
    AccountDisabledError,
    AuthenticationError,
    AccountLockedError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    ValidationError,
)
from app.services.email_service import mail_sender
from app.services.token_service import token_service
import logging

logger = logging.getLogger(__name__)


class UserService:
    """Service for user accounts and credential checks"""

    @staticmethod
    def create_user(
        db: Session,
        user_data: UserRegister,
        *,
        role: Optional[str] = None,
        activate: bool = False,
    ) -> User:
        """
        Create new user

        Self-registered users start pending with an emailed verification
        token; ``activate`` creates an already verified, active account.

        Args:
            db: Database session
            user_data: Registration data
            role: Display role copied into access tokens
            activate: Skip email verification

        Returns:
            Created user
        """
        if db.query(User).filter(User.email == user_data.email).first():
            raise ResourceAlreadyExistsError("Email")
        if db.query(User).filter(User.username == user_data.username).first():
            raise ResourceAlreadyExistsError("Username")

        user = User(
            email=user_data.email,
            username=user_data.username,
            password_hash=get_password_hash(user_data.password),
            role=role or settings.DEFAULT_USER_ROLE,
        )
        if activate:
            user.status = USER_STATUS_ACTIVE
            user.email_verified = True
        else:
            user.status = USER_STATUS_PENDING
            user.email_verified = False
            user.email_verification_token = generate_opaque_token()
            user.email_verification_expires = utcnow() + timedelta(
                hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS
            )

        db.add(user)
        db.flush()

        # The display role doubles as the initial RBAC grant when it is seeded.
        default_role = (
            db.query(Role)
            .filter(Role.name == user.role, Role.is_active.is_(True))
            .first()
        )
        if default_role is not None:
            db.add(UserRole(user_id=user.id, role_id=default_role.id, scope="global", is_active=True))

        db.commit()
        db.refresh(user)

        if not activate:
            mail_sender.send_verification_email(user.email, user.username, user.email_verification_token)

        logger.info(f"Created user: {user.username} (status: {user.status})")
        return user

    @staticmethod
    def verify_email(db: Session, token: str) -> User:
        user = db.query(User).filter(User.email_verification_token == token).first()
        if not user:
            raise ValidationError("Invalid verification token")

        expires = as_naive_utc(user.email_verification_expires)
        if expires and expires < utcnow():
            raise ValidationError("Verification token has expired")

        user.email_verified = True
        user.email_verification_token = None
        user.email_verification_expires = None
        if user.status == USER_STATUS_PENDING:
            user.status = USER_STATUS_ACTIVE
        db.commit()
        db.refresh(user)

        logger.info(f"Email verified for user: {user.username}")
        return user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> User:
        """
        Authenticate user with account lockout protection

        Unknown email and wrong password fail identically. Account state is
        only revealed after the password has been checked.

        Args:
            db: Database session
            email: Email address
            password: Password

        Returns:
            Authenticated user
        """
        user = db.query(User).filter(User.email == email.lower()).first()

        if not user:
            raise InvalidCredentialsError()

        # Check if account is locked
        locked_until = as_naive_utc(user.locked_until)
        if locked_until and locked_until > utcnow():
            raise AccountLockedError(locked_until.isoformat())

        # Verify password
        if not verify_password(password, user.password_hash):
            user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

            if user.failed_login_attempts >= settings.MAX_FAILED_LOGIN_ATTEMPTS:
                user.locked_until = utcnow() + timedelta(minutes=settings.LOCKOUT_DURATION_MINUTES)
                user.failed_login_attempts = 0
                db.commit()
                logger.warning(f"Account locked for user: {user.username}")
                raise AccountLockedError(user.locked_until.isoformat())

            db.commit()
            raise InvalidCredentialsError()

        if user.status == USER_STATUS_DISABLED:
            raise AccountDisabledError()
        if not user.email_verified:
            raise EmailNotVerifiedError()
        if user.status != USER_STATUS_ACTIVE:
            raise AuthenticationError("User account is not active")

        # Reset failed attempts on successful login
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login_at = utcnow()
        user.login_count = (user.login_count or 0) + 1
        db.commit()
        db.refresh(user)

        logger.info(f"User authenticated: {user.username}")
        return user

    @staticmethod
    def request_password_reset(db: Session, email: str) -> None:
        """Issue a reset token. Silent for unknown addresses."""
        user = db.query(User).filter(User.email == email.lower()).first()
        if not user or user.status == USER_STATUS_DISABLED:
            return

        user.password_reset_token = generate_opaque_token()
        user.password_reset_expires = utcnow() + timedelta(hours=settings.PASSWORD_RESET_EXPIRE_HOURS)
        db.commit()
        mail_sender.send_password_reset_email(user.email, user.username, user.password_reset_token)

    @staticmethod
    def reset_password(db: Session, token: str, new_password: str) -> User:
        """
        Set a new password and revoke every session of the user.

        Raises:
            ValidationError: Unknown or expired token
            AccountDisabledError: Account is disabled
        """
        user = db.query(User).filter(User.password_reset_token == token).first()
        if not user:
            raise ValidationError("Invalid reset token")

        expires = as_naive_utc(user.password_reset_expires)
        if expires and expires < utcnow():
            raise ValidationError("Reset token has expired")
        if user.status == USER_STATUS_DISABLED:
            raise AccountDisabledError()

        user.password_hash = get_password_hash(new_password)
        user.password_reset_token = None
        user.password_reset_expires = None
        user.failed_login_attempts = 0
        user.locked_until = None
        db.commit()

        token_service.revoke_all(db, user.id, REVOKE_REASON_PASSWORD_RESET)
        mail_sender.send_password_reset_confirmation(user.email, user.username)
        db.refresh(user)
        return user

    @staticmethod
    def update_profile(db: Session, user_id: int, data: ProfileUpdate) -> User:
        """
        Shallow-merge profile and preferences into the stored documents.

        Keys absent from the request keep their stored value.

        Raises:
            ResourceNotFoundError: If the user does not exist
        """
        user = UserService.get_user_by_id(db, user_id)
        if not user:
            raise ResourceNotFoundError("User")

        # JSON columns only notice reassignment, not in-place mutation
        if data.profile is not None:
            user.profile = {**(user.profile or {}), **data.profile.model_dump(mode="json", exclude_unset=True)}
        if data.preferences is not None:
            user.preferences = {
                **(user.preferences or {}),
                **data.preferences.model_dump(mode="json", exclude_unset=True),
            }
        db.commit()
        db.refresh(user)
        logger.info(f"User {user.username} updated profile")
        return user

    @staticmethod
    def set_status(db: Session, user_id: int, status: UserStatus) -> User:
        """Change account status; disabling revokes all sessions."""
        user = UserService.get_user_by_id(db, user_id)
        if not user:
            raise ResourceNotFoundError("User")

        user.status = status.value
        db.commit()

        if status == UserStatus.DISABLED:
            token_service.revoke_all(db, user.id, REVOKE_REASON_ACCOUNT_DISABLED)

        db.refresh(user)
        logger.info(f"User {user.username} status set to {user.status}")
        return user

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == email.lower()).first()

    @staticmethod
    def _filtered(db: Session, status: Optional[str] = None, search: Optional[str] = None):
        query = db.query(User)
        if status:
            query = query.filter(User.status == status)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter((User.email.ilike(pattern)) | (User.username.ilike(pattern)))
        return query

    @staticmethod
    def list_users(
        db: Session,
        status: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> List[User]:
        query = UserService._filtered(db, status, search)
        return query.order_by(User.id.asc()).offset(offset).limit(limit).all()

    @staticmethod
    def count_users(db: Session, status: Optional[str] = None, search: Optional[str] = None) -> int:
        return UserService._filtered(db, status, search).count()


# Singleton instance
user_service = UserService()
