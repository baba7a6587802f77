"""Append-only audit trail for auth and RBAC changes."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.models.audit import AuditEvent

logger = logging.getLogger(__name__)


class AuditService:
    """Writes and reads audit events. Token values must never be passed in ``metadata``."""

    @staticmethod
    def log_event(
        db: Session,
        *,
        user_id: Optional[int],
        action: str,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        client: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """
        Record one action

        Args:
            db: Database session
            user_id: Acting user
            action: Event name, e.g. ``login`` or ``user_role_assigned``
            target_type: Kind of object acted on
            target_id: Id of the object acted on
            client: Request metadata from ``get_client_info``
            metadata: Extra JSON-serializable detail
        """
        client = client or {}
        event = AuditEvent(
            user_id=user_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            ip_address=client.get("ip_address"),
            user_agent=client.get("user_agent"),
            request_id=client.get("request_id"),
            metadata_json=json.dumps(metadata or {}, ensure_ascii=False, default=str),
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        logger.info(
            "audit action=%s user=%s target=%s:%s",
            action,
            user_id,
            target_type or "-",
            target_id or "-",
        )
        return event

    @staticmethod
    def list_events(
        db: Session,
        *,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        target_type: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Newest first"""
        query = db.query(AuditEvent)
        if user_id is not None:
            query = query.filter(AuditEvent.user_id == user_id)
        if action:
            query = query.filter(AuditEvent.action == action)
        if target_type:
            query = query.filter(AuditEvent.target_type == target_type)
        return query.order_by(AuditEvent.id.desc()).limit(limit).all()


audit_service = AuditService()
