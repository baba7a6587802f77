"""Authentication routes"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Any, Dict

from app.core.clock import from_timestamp
from app.core.database import get_db
from app.config import settings
from app.schemas.response import APIResponse
from app.schemas.session import RevokeOthersRequest, SessionListResponse, SessionResponse
from app.schemas.user import (
    EmailVerificationRequest,
    ForgotPasswordRequest,
    LoginResponse,
    LogoutRequest,
    ProfileUpdate,
    RefreshTokenRequest,
    ResetPasswordRequest,
    TokenInfo,
    TokenPair,
    UserLogin,
    UserRegister,
    UserResponse,
    VerifyTokenResponse,
)
from app.services.audit_service import audit_service
from app.services.user_service import user_service
from app.services.token_service import token_service
from app.services.rate_limiter import SlidingWindowRateLimiter
from app.api.deps import (
    enforce_rate_limit,
    get_client_info,
    get_current_admin_user,
    get_current_user,
    get_rate_limiter,
    get_token_payload,
    require_ownership,
)
from app.models.user import User

router = APIRouter()


@router.post("/register", response_model=APIResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: UserRegister,
    client: Dict[str, Any] = Depends(get_client_info),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    db: Session = Depends(get_db)
):
    """
    Register a new account; it stays pending until the email is verified
    """
    enforce_rate_limit(
        limiter,
        f"register:{client['ip_address']}",
        settings.LOGIN_RATE_LIMIT_PER_MINUTE,
        settings.LOGIN_RATE_LIMIT_PER_HOUR,
        "Too many registration attempts. Please try again later.",
    )
    user = user_service.create_user(db, body)
    return APIResponse(
        message="Registration successful, please verify your email",
        data=UserResponse.model_validate(user).model_dump(mode="json"),
    )


@router.post("/login", response_model=LoginResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: UserLogin,
    client: Dict[str, Any] = Depends(get_client_info),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    db: Session = Depends(get_db)
):
    """
    Login endpoint - authenticate user and issue a token pair

    Args:
        credentials: Email and password
        db: Database session

    Returns:
        Token pair and user info
    """
    user_key = credentials.email.strip().lower()
    enforce_rate_limit(
        limiter,
        f"login:{client['ip_address']}:{user_key}",
        settings.LOGIN_RATE_LIMIT_PER_MINUTE,
        settings.LOGIN_RATE_LIMIT_PER_HOUR,
        "Too many login attempts. Please try again later.",
    )

    user = user_service.authenticate_user(db, credentials.email, credentials.password)
    session_info = {
        **client,
        "device_info": credentials.device_info or {"platform": client.get("user_agent")},
        "location_info": credentials.location_info or {},
    }
    tokens = token_service.issue_token_pair(db, user, session_info)
    audit_service.log_event(db, user_id=user.id, action="login", client=client)

    return LoginResponse(user=UserResponse.model_validate(user), tokens=TokenPair(**tokens))


@router.post("/verify-email", response_model=APIResponse)
def verify_email(body: EmailVerificationRequest, db: Session = Depends(get_db)):
    """Activate an account from its emailed verification token"""
    user = user_service.verify_email(db, body.token)
    return APIResponse(
        message="Email verified",
        data=UserResponse.model_validate(user).model_dump(mode="json"),
    )


@router.post("/forgot-password", response_model=APIResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    client: Dict[str, Any] = Depends(get_client_info),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    db: Session = Depends(get_db)
):
    """Send a reset link; the response never reveals whether the address exists"""
    enforce_rate_limit(
        limiter,
        f"forgot:{client['ip_address']}",
        settings.LOGIN_RATE_LIMIT_PER_MINUTE,
        settings.LOGIN_RATE_LIMIT_PER_HOUR,
    )
    user_service.request_password_reset(db, body.email)
    return APIResponse(message="If the email is registered, a reset link has been sent")


@router.post("/reset-password", response_model=APIResponse)
def reset_password(
    body: ResetPasswordRequest,
    client: Dict[str, Any] = Depends(get_client_info),
    db: Session = Depends(get_db)
):
    """Set a new password; every existing session is revoked"""
    user = user_service.reset_password(db, body.token, body.new_password)
    audit_service.log_event(db, user_id=user.id, action="password_reset", client=client)
    return APIResponse(message="Password has been reset, please log in with the new password")


@router.post("/refresh", response_model=TokenPair)
def refresh_token(
    req: RefreshTokenRequest,
    client: Dict[str, Any] = Depends(get_client_info),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    db: Session = Depends(get_db),
):
    """
    Exchange a refresh token for a new pair. Each refresh token works once.
    """
    enforce_rate_limit(
        limiter,
        f"refresh:{client['ip_address']}",
        settings.RATE_LIMIT_PER_MINUTE,
        settings.RATE_LIMIT_PER_HOUR,
        "Too many refresh attempts. Slow down.",
    )

    session_info = {
        **client,
        "device_info": req.device_info or {},
        "location_info": req.location_info or {},
    }
    tokens = token_service.refresh(db, req.refresh_token, session_info)
    return TokenPair(**tokens)


@router.post("/logout", status_code=status.HTTP_200_OK)
def logout(
    body: LogoutRequest,
    db: Session = Depends(get_db)
):
    """
    Logout endpoint - revoke the session behind a refresh token

    Logging out an already revoked session is not an error.
    """
    revoked = token_service.revoke_one(db, body.refresh_token)

    return {
        "success": True,
        "message": "Logged out successfully",
        "refresh_token_revoked": revoked
    }


@router.post("/logout-all", response_model=APIResponse)
def logout_all(
    client: Dict[str, Any] = Depends(get_client_info),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Revoke every session of the current user"""
    count = token_service.revoke_all(db, current_user.id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="logout_all",
        client=client,
        metadata={"revoked_sessions": count},
    )
    return APIResponse(message="Logged out from all devices", data={"revoked_sessions": count})


@router.get("/verify-token", response_model=VerifyTokenResponse)
def verify_token(
    payload: Dict[str, Any] = Depends(get_token_payload),
    current_user: User = Depends(get_current_user),
):
    """Report on the presented access token"""
    return VerifyTokenResponse(
        user=UserResponse.model_validate(current_user),
        token=TokenInfo(
            type=payload["type"],
            issued_at=from_timestamp(payload["iat"]) if payload.get("iat") else None,
            expires_at=from_timestamp(payload["exp"]),
        ),
    )


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the current user's active sessions"""
    sessions = [SessionResponse.model_validate(s) for s in token_service.list_sessions(db, current_user.id)]
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.delete("/sessions/{session_id}", response_model=APIResponse)
def revoke_session(
    session_id: str,
    current_user: User = Depends(require_ownership("sessions", "session_id")),
    db: Session = Depends(get_db)
):
    """Revoke one session; owners and admins only"""
    token_service.revoke_session(db, session_id)
    audit_service.log_event(
        db,
        user_id=current_user.id,
        action="session_revoked",
        target_type="session",
        target_id=session_id,
    )
    return APIResponse(message="Session revoked")


@router.post("/sessions/revoke-others", response_model=APIResponse)
def revoke_other_sessions(
    body: RevokeOthersRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Revoke every session except the one holding the given refresh token"""
    count = token_service.revoke_other_sessions(db, current_user.id, body.refresh_token)
    return APIResponse(message="Other sessions revoked", data={"revoked_sessions": count})


@router.post("/cleanup-sessions", response_model=APIResponse)
def cleanup_sessions(
    current_user: User = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """Mark expired sessions (admin only)"""
    count = token_service.cleanup_expired(db)
    return APIResponse(message="Expired sessions cleaned up", data={"cleaned_sessions": count})


@router.get("/me", response_model=UserResponse)
def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """
    Get current user information
    """
    return UserResponse.model_validate(current_user)


@router.put("/me", response_model=UserResponse)
def update_current_user_profile(
    body: ProfileUpdate,
    client: Dict[str, Any] = Depends(get_client_info),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update profile and preferences of the current user

    Only the keys sent are changed; everything else is kept.
    """
    enforce_rate_limit(
        limiter,
        f"profile:{current_user.id}",
        settings.PROFILE_RATE_LIMIT_PER_MINUTE,
        settings.PROFILE_RATE_LIMIT_PER_HOUR,
        "Too many profile updates. Please try again later.",
    )
    user = user_service.update_profile(db, current_user.id, body)
    audit_service.log_event(
        db,
        user_id=user.id,
        action="profile_updated",
        client=client,
        metadata={"fields": sorted(body.model_dump(exclude_unset=True))},
    )
    return UserResponse.model_validate(user)
