"""User administration routes"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional

from app.core.database import get_db
from app.core.exceptions import ResourceNotFoundError, ValidationError
from app.schemas.audit import AuditEventResponse
from app.schemas.user import UserListResponse, UserResponse, UserStatus, UserStatusUpdate
from app.services.audit_service import audit_service
from app.services.user_service import user_service
from app.api.deps import get_client_info, get_current_admin_user, require_ownership
from app.models.user import User

router = APIRouter()


@router.get("/", response_model=UserListResponse)
def get_all_users(
    status: Optional[UserStatus] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Get users page by page (admin only)

    Args:
        status: Optional status filter
        search: Substring matched against email and username
        page: 1-based page number
        limit: Page size
        current_user: Current admin user
        db: Database session

    Returns:
        Users on the page and the total match count
    """
    status_value = status.value if status else None
    users = user_service.list_users(db, status_value, search, offset=(page - 1) * limit, limit=limit)
    total = user_service.count_users(db, status_value, search)
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users], total=total)


@router.get("/audit-events", response_model=List[AuditEventResponse])
def get_audit_events(
    limit: int = 100,
    action: Optional[str] = None,
    user_id: Optional[int] = None,
    target_type: Optional[str] = None,
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """List recent audit trail entries, newest first (admin only)."""
    events = audit_service.list_events(
        db,
        user_id=user_id,
        action=action,
        target_type=target_type,
        limit=max(1, min(limit, 500)),
    )
    return [AuditEventResponse.from_event(ev) for ev in events]


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    current_user: User = Depends(require_ownership("users", "user_id")),
    db: Session = Depends(get_db)
):
    """
    Get one user; users may read themselves, admins anyone
    """
    user = user_service.get_user_by_id(db, user_id)
    if not user:
        raise ResourceNotFoundError("User")
    return UserResponse.model_validate(user)


@router.put("/{user_id}/status", response_model=UserResponse)
def update_user_status(
    user_id: int,
    body: UserStatusUpdate,
    client: Dict[str, Any] = Depends(get_client_info),
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Change account status (admin only)

    Disabling an account revokes all of its sessions. Admins cannot
    disable themselves.
    """
    if user_id == current_user.id and body.status == UserStatus.DISABLED:
        raise ValidationError("You cannot disable your own account")

    user = user_service.set_status(db, user_id, body.status)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="user_status_changed",
        target_type="user",
        target_id=str(user_id),
        client=client,
        metadata={"status": user.status, "reason": body.reason},
    )
    return UserResponse.model_validate(user)
