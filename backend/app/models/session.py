"""Refresh-token session model."""

import uuid

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, Text, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base

SESSION_STATUS_ACTIVE = "active"
SESSION_STATUS_REVOKED = "revoked"
SESSION_STATUS_EXPIRED = "expired"

REVOKE_REASON_LOGOUT = "logout"
REVOKE_REASON_LOGOUT_ALL = "logout_all"
REVOKE_REASON_REFRESH_TOKEN_USED = "refresh_token_used"
REVOKE_REASON_PASSWORD_RESET = "password_reset"
REVOKE_REASON_ACCOUNT_DISABLED = "account_disabled"
REVOKE_REASON_USER_REVOKED = "user_revoked"
REVOKE_REASON_EXPIRED = "expired"
REVOKE_REASON_TOKEN_REUSE = "refresh_token_reuse"


def _new_session_id() -> str:
    return str(uuid.uuid4())


class UserSession(Base):
    """One row per issued refresh token. Rows are never deleted."""

    __tablename__ = "user_sessions"

    id = Column(String(36), primary_key=True, default=_new_session_id)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    refresh_token_hash = Column(String(64), unique=True, nullable=False)
    token_family = Column(String(36), nullable=False, index=True)
    status = Column(String(20), default=SESSION_STATUS_ACTIVE, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoke_reason = Column(String(100), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    device_info = Column(JSON, nullable=True, default=dict)
    location_info = Column(JSON, nullable=True, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("idx_user_sessions_user_status", "user_id", "status"),
        Index("idx_user_sessions_status_expires", "status", "expires_at"),
    )

    def __repr__(self):
        return f"<UserSession(id={self.id}, user_id={self.user_id}, status='{self.status}')>"
