"""Refresh token rotation and revocation service."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.core.clock import utcnow
from app.core.exceptions import InvalidOrExpiredTokenError, ResourceNotFoundError
from app.core.security import (
    access_token_ttl,
    create_access_token,
    create_refresh_token,
    refresh_token_ttl,
    verify_refresh_token,
)
from app.models.session import (
    REVOKE_REASON_LOGOUT,
    REVOKE_REASON_LOGOUT_ALL,
    REVOKE_REASON_REFRESH_TOKEN_USED,
    REVOKE_REASON_TOKEN_REUSE,
    REVOKE_REASON_USER_REVOKED,
    SESSION_STATUS_ACTIVE,
    UserSession,
)
from app.models.user import User
from app.services.session_store import session_store

logger = logging.getLogger(__name__)


class TokenService:
    """
    Manage the lifecycle of access/refresh token pairs.

    Every refresh token is backed by one UserSession row. Redeeming a refresh
    token revokes its row (reason ``refresh_token_used``) and issues a new
    pair whose session joins the same token family.
    """

    @staticmethod
    def _access_claims(user: User) -> Dict[str, Any]:
        return {
            "userId": user.id,
            "email": user.email,
            "role": user.role,
            "username": user.username,
        }

    @staticmethod
    def issue_token_pair(
        db: Session,
        user: User,
        session_info: Optional[Dict[str, Any]] = None,
        token_family: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Issue an access/refresh pair and persist the backing session.

        Args:
            db: Database session
            user: Authenticated user
            session_info: ip_address, user_agent, device_info, location_info
            token_family: Family to continue on rotation; a new one is minted on login

        Returns:
            dict with access_token, refresh_token, expires_in, token_type
        """
        family = token_family or str(uuid.uuid4())
        access_ttl = access_token_ttl()
        refresh_ttl = refresh_token_ttl()

        access_token = create_access_token(TokenService._access_claims(user), expires_delta=access_ttl)
        refresh_token = create_refresh_token({"userId": user.id}, expires_delta=refresh_ttl)

        session_store.create(
            db,
            user_id=user.id,
            refresh_token=refresh_token,
            token_family=family,
            expires_at=utcnow() + refresh_ttl,
            session_info=session_info,
        )
        db.commit()

        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "expires_in": int(access_ttl.total_seconds()),
            "token_type": "Bearer",
        }

    @staticmethod
    def refresh(
        db: Session,
        refresh_token: str,
        session_info: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Redeem a refresh token for a new pair (single use).

        Raises:
            InvalidOrExpiredTokenError: If the token fails verification, no
                active valid session matches it, another request already
                redeemed it, or the user is no longer active
        """
        payload = verify_refresh_token(refresh_token)
        user_id = payload["userId"]
        info = session_info or {}

        record = session_store.find_active_by_token(db, user_id, refresh_token)
        if record is None:
            TokenService._handle_unmatched(db, refresh_token)
            raise InvalidOrExpiredTokenError()

        if not session_store.is_valid(record):
            raise InvalidOrExpiredTokenError()

        user = db.query(User).filter(User.id == record.user_id).first()
        if not user or not user.is_active or not user.email_verified:
            raise InvalidOrExpiredTokenError()

        won = session_store.revoke_if_active(
            db,
            record.id,
            REVOKE_REASON_REFRESH_TOKEN_USED,
            ip_address=info.get("ip_address"),
            user_agent=info.get("user_agent"),
            commit=False,
        )
        if not won:
            db.rollback()
            logger.warning("Concurrent refresh lost the race for session %s", record.id)
            raise InvalidOrExpiredTokenError()

        family = record.token_family
        logger.info("Rotated refresh token for user %s family %s", user.id, family)
        return TokenService.issue_token_pair(db, user, info, token_family=family)

    @staticmethod
    def _handle_unmatched(db: Session, refresh_token: str) -> None:
        """Log (and optionally contain) replay of a token whose session is no longer active."""
        stale = session_store.find_by_token(db, refresh_token)
        if stale is None or stale.status == SESSION_STATUS_ACTIVE:
            return
        if stale.revoke_reason != REVOKE_REASON_REFRESH_TOKEN_USED:
            return
        logger.warning(
            "Reuse of rotated refresh token detected user=%s family=%s session=%s",
            stale.user_id,
            stale.token_family,
            stale.id,
        )
        if settings.REVOKE_FAMILY_ON_REUSE:
            count = session_store.revoke_family(db, stale.token_family, REVOKE_REASON_TOKEN_REUSE)
            logger.warning("Revoked %d sessions in family %s after reuse", count, stale.token_family)

    @staticmethod
    def revoke_one(db: Session, refresh_token: str, reason: str = REVOKE_REASON_LOGOUT) -> bool:
        """
        Revoke the session behind a refresh token.

        Returns:
            False when the token is invalid or no active session matches
        """
        try:
            payload = verify_refresh_token(refresh_token)
        except InvalidOrExpiredTokenError:
            return False

        record = session_store.find_active_by_token(db, payload["userId"], refresh_token)
        if record is None:
            return False
        return session_store.revoke_if_active(db, record.id, reason)

    @staticmethod
    def revoke_all(db: Session, user_id: int, reason: str = REVOKE_REASON_LOGOUT_ALL) -> int:
        """Revoke every active session of a user; returns the number revoked."""
        count = session_store.revoke_all_for_user(db, user_id, reason)
        logger.info("Revoked %d sessions for user %s (reason=%s)", count, user_id, reason)
        return count

    @staticmethod
    def revoke_session(
        db: Session,
        session_id: str,
        reason: str = REVOKE_REASON_USER_REVOKED,
        user_id: Optional[int] = None,
    ) -> None:
        """Revoke an active session by id, optionally restricted to one user's sessions."""
        record = session_store.get(db, session_id, user_id=user_id)
        if record is None or record.status != SESSION_STATUS_ACTIVE:
            raise ResourceNotFoundError("Session")
        session_store.revoke_if_active(db, record.id, reason)

    @staticmethod
    def revoke_other_sessions(
        db: Session,
        user_id: int,
        current_refresh_token: str,
        reason: str = REVOKE_REASON_USER_REVOKED,
    ) -> int:
        """Revoke every active session of a user except the one backing ``current_refresh_token``."""
        current = session_store.find_active_by_token(db, user_id, current_refresh_token)
        count = 0
        for record in session_store.list_active_for_user(db, user_id):
            if current is not None and record.id == current.id:
                continue
            if session_store.revoke_if_active(db, record.id, reason, commit=False):
                count += 1
        db.commit()
        return count

    @staticmethod
    def list_sessions(db: Session, user_id: int) -> List[UserSession]:
        return session_store.list_active_for_user(db, user_id)

    @staticmethod
    def cleanup_expired(db: Session) -> int:
        return session_store.sweep_expired(db)


token_service = TokenService()
