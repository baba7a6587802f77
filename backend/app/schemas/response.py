"""Response envelopes shared by all routes"""

from typing import Optional, Any

from pydantic import BaseModel, Field

from app.core.clock import utcnow


def _now_iso() -> str:
    return utcnow().isoformat()


class APIResponse(BaseModel):
    """Success envelope for commands that return no resource of their own"""
    success: bool = True
    message: str
    data: Optional[Any] = None
    timestamp: str = Field(default_factory=_now_iso)


class ErrorResponse(BaseModel):
    """
    Error envelope written by the exception handlers

    ``details`` is a mapping for API errors (e.g. ``required`` or
    ``retry_after``) and a list of field errors for validation failures.
    """
    success: bool = False
    error: str
    details: Optional[Any] = None
    path: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: str = Field(default_factory=_now_iso)
