"""Custom exception classes for the application"""

from typing import Optional, Dict, Any, List


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(ValueError):
    """Malformed or missing configuration; fatal at startup"""


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=401, details=details)


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password"""
    def __init__(self):
        super().__init__("Invalid email or password")


class TokenInvalidError(AuthenticationError):
    """Access token failed signature, issuer, audience, expiry or type checks"""
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class InvalidOrExpiredTokenError(AuthenticationError):
    """Refresh token is invalid or no longer backed by an active session"""
    def __init__(self):
        super().__init__("Invalid or expired refresh token")


class AccountLockedError(AuthenticationError):
    """Account is locked due to failed login attempts"""
    def __init__(self, locked_until: str):
        super().__init__(
            f"Account is locked until {locked_until}",
            details={"locked_until": locked_until}
        )


# Account state errors
class AccountDisabledError(BaseAPIException):
    """Account has been disabled by an administrator"""
    def __init__(self):
        super().__init__("Account is disabled, please contact an administrator", status_code=403)


class EmailNotVerifiedError(BaseAPIException):
    """Email address has not been verified yet"""
    def __init__(self):
        super().__init__("Please verify your email address first", status_code=403)


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=403, details=details)


class InsufficientPermissionsError(AuthorizationError):
    """Caller lacks the required permission or role"""
    def __init__(
        self,
        resource: Optional[str] = None,
        action: Optional[str] = None,
        roles: Optional[List[str]] = None,
    ):
        if roles is not None:
            super().__init__("Insufficient role", details={"required": roles})
        else:
            super().__init__("Insufficient permissions", details={"required": f"{resource}.{action}"})
        self.resource = resource
        self.action = action


class ProtectedResourceError(AuthorizationError):
    """System-managed resource cannot be modified this way"""
    def __init__(self, message: str):
        super().__init__(message)


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class ResourceAlreadyExistsError(BaseAPIException):
    """Resource already exists"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} already exists", status_code=409)


class ConflictError(BaseAPIException):
    """Operation conflicts with current state"""
    def __init__(self, message: str):
        super().__init__(message, status_code=409)


# Validation Errors
class ValidationError(BaseAPIException):
    """Validation error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, details=details)


# System Errors
class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", retry_after: Optional[int] = None):
        self.retry_after = retry_after
        details = {"retry_after": retry_after} if retry_after is not None else None
        super().__init__(message, status_code=429, details=details)
