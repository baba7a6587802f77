"""Audit trail response schemas."""

import json
from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel

from app.models.audit import AuditEvent


class AuditEventResponse(BaseModel):
    id: int
    user_id: Optional[int]
    username: Optional[str] = None
    action: str
    target_type: Optional[str]
    target_id: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    metadata: Dict[str, Any] = {}
    created_at: Optional[datetime]

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditEventResponse":
        metadata: Dict[str, Any] = {}
        if event.metadata_json:
            try:
                metadata = json.loads(event.metadata_json)
            except ValueError:
                metadata = {"raw": event.metadata_json}
        return cls(
            id=event.id,
            user_id=event.user_id,
            username=event.user.username if event.user else None,
            action=event.action,
            target_type=event.target_type,
            target_id=event.target_id,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            request_id=event.request_id,
            metadata=metadata,
            created_at=event.created_at,
        )
