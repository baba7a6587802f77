"""Session schemas"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class SessionResponse(BaseModel):
    """Active session as shown to its owner; token digests are never exposed"""
    id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_info: Optional[Dict[str, Any]] = None
    location_info: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]
    total: int


class RevokeOthersRequest(BaseModel):
    refresh_token: str
