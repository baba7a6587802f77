"""API dependencies - authentication, authorization and rate limiting"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Any, Callable, Dict, Optional

from app.core.database import get_db
from app.core.security import verify_access_token
from app.core.exceptions import (
    AccountDisabledError,
    AuthenticationError,
    InsufficientPermissionsError,
    RateLimitExceededError,
    ResourceNotFoundError,
)
from app.models.user import User, USER_STATUS_ACTIVE, USER_STATUS_DISABLED
from app.services.permission_service import permission_service
from app.services.rate_limiter import SlidingWindowRateLimiter
from app.services.resource_registry import resource_registry
from app.services.user_service import user_service
import logging

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("admin", "super_admin")

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, Any]:
    """
    Verify the bearer access token

    Raises:
        AuthenticationError: If no token was sent
        TokenInvalidError: If the token fails verification
    """
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication token not provided")
    return verify_access_token(credentials.credentials)


def get_current_user(
    payload: Dict[str, Any] = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from JWT token

    The user row is re-read on every request so that disabling an account
    takes effect before outstanding access tokens expire.

    Raises:
        AuthenticationError: If the user no longer exists or is not active
        AccountDisabledError: If the account has been disabled
    """
    user = user_service.get_user_by_id(db, int(payload["userId"]))
    if not user:
        raise AuthenticationError("User not found")

    if user.status == USER_STATUS_DISABLED:
        raise AccountDisabledError()
    if user.status != USER_STATUS_ACTIVE:
        raise AuthenticationError("User account is not active")

    return user


def get_client_info(request: Request) -> Dict[str, Any]:
    """Network metadata recorded on sessions and audit events"""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("User-Agent"),
        "request_id": getattr(request.state, "request_id", None),
    }


def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    return request.app.state.rate_limiter


def enforce_rate_limit(
    limiter: SlidingWindowRateLimiter,
    key: str,
    per_minute: int,
    per_hour: int,
    message: str = "Too many requests. Please try again later.",
) -> None:
    """Apply per-minute and per-hour windows to one caller identity"""
    for scope, limit, window in (("min", per_minute, 60), ("hour", per_hour, 3600)):
        scoped_key = f"{key}:{scope}"
        if not limiter.allow(scoped_key, limit, window):
            logger.warning("Rate limit exceeded for %s", scoped_key)
            raise RateLimitExceededError(message, retry_after=limiter.retry_after(scoped_key, window))


def require_permission(resource: str, action: str) -> Callable[..., User]:
    """
    Dependency factory: the current user must hold ``resource.action``

    Usage:
        current_user: User = Depends(require_permission("users", "read"))
    """
    def _dependency(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        permission_service.authorize(db, current_user.id, resource, action)
        return current_user

    return _dependency


def require_role(*roles: str) -> Callable[..., User]:
    """Dependency factory: the current user must hold at least one of ``roles``"""
    required = list(roles)

    def _dependency(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        if not permission_service.has_any_role(db, current_user.id, required):
            logger.warning("Role check failed user=%s required=%s", current_user.id, required)
            raise InsufficientPermissionsError(roles=required)
        return current_user

    return _dependency


get_current_admin_user = require_role(*ADMIN_ROLES)


def require_ownership(resource: str, id_param: str = "id") -> Callable[..., User]:
    """
    Dependency factory: the current user must own the addressed instance, or be an admin

    The owner is resolved through the resource registry; ``id_param`` names
    the path parameter carrying the instance id.
    """
    if resource not in resource_registry:
        raise ValueError(f"Resource has no registered owner accessor: {resource}")

    def _dependency(
        request: Request,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        resource_id = request.path_params.get(id_param)
        if resource_id is None:
            raise ResourceNotFoundError(resource.rstrip("s").capitalize())

        owner_id = resource_registry.owner_of(db, resource, str(resource_id))
        if owner_id is None:
            raise ResourceNotFoundError(resource.rstrip("s").capitalize())

        if owner_id == current_user.id or permission_service.has_any_role(db, current_user.id, ADMIN_ROLES):
            return current_user

        logger.warning("Ownership check failed user=%s resource=%s id=%s", current_user.id, resource, resource_id)
        raise InsufficientPermissionsError(resource, "access")

    return _dependency
