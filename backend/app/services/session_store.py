"""Persistence and state transitions for refresh-token sessions."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.core.clock import as_naive_utc, utcnow
from app.core.security import hash_refresh_token, tokens_match
from app.models.session import (
    REVOKE_REASON_EXPIRED,
    SESSION_STATUS_ACTIVE,
    SESSION_STATUS_EXPIRED,
    SESSION_STATUS_REVOKED,
    UserSession,
)

logger = logging.getLogger(__name__)


class SessionStore:
    """CRUD over UserSession rows plus validity, revocation and sweep."""

    @staticmethod
    def idle_timeout() -> timedelta:
        return timedelta(days=settings.SESSION_IDLE_TIMEOUT_DAYS)

    @staticmethod
    def is_valid(session: UserSession, now: Optional[datetime] = None) -> bool:
        """
        Check whether a session can still back a refresh.

        Valid iff active, not past expiry, and not idle for longer than
        SESSION_IDLE_TIMEOUT_DAYS.
        """
        now = now or utcnow()
        if session.status != SESSION_STATUS_ACTIVE:
            return False
        expires_at = as_naive_utc(session.expires_at)
        if expires_at is None or now >= expires_at:
            return False
        last_activity = as_naive_utc(session.last_activity_at)
        if last_activity is not None and now - last_activity >= SessionStore.idle_timeout():
            return False
        return True

    @staticmethod
    def create(
        db: Session,
        *,
        user_id: int,
        refresh_token: str,
        token_family: str,
        expires_at: datetime,
        session_info: Optional[Dict[str, Any]] = None,
    ) -> UserSession:
        """Insert an active session holding only the digest of ``refresh_token``."""
        SessionStore.sweep_expired(db, commit=False)

        info = session_info or {}
        record = UserSession(
            user_id=user_id,
            refresh_token_hash=hash_refresh_token(refresh_token),
            token_family=token_family,
            status=SESSION_STATUS_ACTIVE,
            expires_at=expires_at,
            ip_address=info.get("ip_address"),
            user_agent=info.get("user_agent"),
            device_info=info.get("device_info") or {},
            location_info=info.get("location_info") or {},
        )
        db.add(record)
        db.flush()
        return record

    @staticmethod
    def find_active_by_token(db: Session, user_id: int, refresh_token: str) -> Optional[UserSession]:
        """Locate the caller's active session whose stored digest matches the token."""
        digest = hash_refresh_token(refresh_token)
        candidates = (
            db.query(UserSession)
            .filter(
                UserSession.user_id == user_id,
                UserSession.status == SESSION_STATUS_ACTIVE,
                UserSession.refresh_token_hash == digest,
            )
            .all()
        )
        for candidate in candidates:
            if tokens_match(refresh_token, candidate.refresh_token_hash):
                return candidate
        return None

    @staticmethod
    def find_by_token(db: Session, refresh_token: str) -> Optional[UserSession]:
        """Locate a session of any status by token digest."""
        return (
            db.query(UserSession)
            .filter(UserSession.refresh_token_hash == hash_refresh_token(refresh_token))
            .first()
        )

    @staticmethod
    def get(db: Session, session_id: str, user_id: Optional[int] = None) -> Optional[UserSession]:
        query = db.query(UserSession).filter(UserSession.id == session_id)
        if user_id is not None:
            query = query.filter(UserSession.user_id == user_id)
        return query.first()

    @staticmethod
    def list_active_for_user(db: Session, user_id: int) -> List[UserSession]:
        return (
            db.query(UserSession)
            .filter(UserSession.user_id == user_id, UserSession.status == SESSION_STATUS_ACTIVE)
            .order_by(UserSession.created_at.desc())
            .all()
        )

    @staticmethod
    def revoke(db: Session, session: UserSession, reason: str, commit: bool = True) -> bool:
        """
        Revoke a session. Idempotent: already revoked or expired rows are left alone.

        Returns:
            True if this call transitioned the row
        """
        if session.status != SESSION_STATUS_ACTIVE:
            return False
        changed = SessionStore.revoke_if_active(db, session.id, reason, commit=commit)
        db.refresh(session)
        return changed

    @staticmethod
    def revoke_if_active(
        db: Session,
        session_id: str,
        reason: str,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        commit: bool = True,
    ) -> bool:
        """
        Compare-and-set revoke: ``UPDATE ... WHERE id = :id AND status = 'active'``.

        Only one concurrent caller can see a rowcount of 1 for a given session.
        """
        now = utcnow()
        values: Dict[Any, Any] = {
            UserSession.status: SESSION_STATUS_REVOKED,
            UserSession.revoked_at: now,
            UserSession.revoke_reason: reason,
            UserSession.last_activity_at: now,
        }
        if ip_address:
            values[UserSession.ip_address] = ip_address
        if user_agent:
            values[UserSession.user_agent] = user_agent

        updated = (
            db.query(UserSession)
            .filter(UserSession.id == session_id, UserSession.status == SESSION_STATUS_ACTIVE)
            .update(values, synchronize_session=False)
        )
        if commit:
            db.commit()
        else:
            db.flush()
        return updated == 1

    @staticmethod
    def revoke_all_for_user(db: Session, user_id: int, reason: str, commit: bool = True) -> int:
        now = utcnow()
        count = (
            db.query(UserSession)
            .filter(UserSession.user_id == user_id, UserSession.status == SESSION_STATUS_ACTIVE)
            .update(
                {
                    UserSession.status: SESSION_STATUS_REVOKED,
                    UserSession.revoked_at: now,
                    UserSession.revoke_reason: reason,
                },
                synchronize_session=False,
            )
        )
        if commit:
            db.commit()
        return count

    @staticmethod
    def revoke_family(db: Session, token_family: str, reason: str, commit: bool = True) -> int:
        now = utcnow()
        count = (
            db.query(UserSession)
            .filter(UserSession.token_family == token_family, UserSession.status == SESSION_STATUS_ACTIVE)
            .update(
                {
                    UserSession.status: SESSION_STATUS_REVOKED,
                    UserSession.revoked_at: now,
                    UserSession.revoke_reason: reason,
                },
                synchronize_session=False,
            )
        )
        if commit:
            db.commit()
        return count

    @staticmethod
    def sweep_expired(db: Session, commit: bool = True) -> int:
        """Mark every active session past its expiry as expired."""
        now = utcnow()
        count = (
            db.query(UserSession)
            .filter(UserSession.status == SESSION_STATUS_ACTIVE, UserSession.expires_at < now)
            .update(
                {
                    UserSession.status: SESSION_STATUS_EXPIRED,
                    UserSession.revoked_at: now,
                    UserSession.revoke_reason: REVOKE_REASON_EXPIRED,
                },
                synchronize_session=False,
            )
        )
        if commit:
            db.commit()
        if count:
            logger.info("Expired %d stale sessions", count)
        return count


session_store = SessionStore()
