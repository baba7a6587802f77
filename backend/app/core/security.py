"""Security utilities - JWT signing and verification, password hashing, token digests"""

import hashlib
import hmac
import logging
import re
import secrets
import uuid
from datetime import timedelta
from typing import Optional, Dict, Any, Union

import bcrypt
from jose import JWTError, jwt

from app.config import settings
from app.core.clock import utcnow
from app.core.exceptions import ConfigurationError, InvalidOrExpiredTokenError, TokenInvalidError

logger = logging.getLogger(__name__)

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

_DURATION_RE = re.compile(r"^(\d+)([smhd])$")
_DURATION_UNITS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}


def parse_duration(value: Union[str, int]) -> timedelta:
    """
    Parse a TTL such as ``"15m"`` or ``"7d"`` into a timedelta.

    Bare integers are taken as seconds.

    Raises:
        ConfigurationError: If the value is not a supported duration
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ConfigurationError(f"Invalid duration: {value!r}")
        return timedelta(seconds=value)
    if not isinstance(value, str):
        raise ConfigurationError(f"Invalid duration: {value!r}")

    match = _DURATION_RE.match(value.strip())
    if not match:
        raise ConfigurationError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _DURATION_UNITS[unit])


def access_token_ttl() -> timedelta:
    return parse_duration(settings.JWT_EXPIRES_IN)


def refresh_token_ttl() -> timedelta:
    return parse_duration(settings.JWT_REFRESH_EXPIRES_IN)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt()
    ).decode('utf-8')


def _encode(data: Dict[str, Any], token_type: str, secret: str, expires_delta: timedelta) -> str:
    now = utcnow()
    to_encode = data.copy()
    to_encode.update({
        "type": token_type,
        "jti": str(uuid.uuid4()),
        "iat": now,
        "exp": now + expires_delta,
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
    })
    return jwt.encode(to_encode, secret, algorithm=settings.JWT_ALGORITHM)


def _decode(token: str, secret: str) -> Dict[str, Any]:
    return jwt.decode(
        token,
        secret,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        issuer=settings.JWT_ISSUER,
    )


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create JWT access token

    Args:
        data: Claims to encode (userId, email, role, username)
        expires_delta: Token lifetime, defaults to JWT_EXPIRES_IN

    Returns:
        str: Encoded JWT signed with the access secret
    """
    return _encode(
        data,
        TOKEN_TYPE_ACCESS,
        settings.JWT_SECRET,
        expires_delta if expires_delta is not None else access_token_ttl(),
    )


def create_refresh_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create JWT refresh token

    Args:
        data: Claims to encode (userId)
        expires_delta: Token lifetime, defaults to JWT_REFRESH_EXPIRES_IN

    Returns:
        str: Encoded JWT signed with the refresh secret
    """
    return _encode(
        data,
        TOKEN_TYPE_REFRESH,
        settings.JWT_REFRESH_SECRET,
        expires_delta if expires_delta is not None else refresh_token_ttl(),
    )


def verify_access_token(token: str) -> Dict[str, Any]:
    """
    Verify an access token.

    Raises:
        TokenInvalidError: On bad signature, issuer, audience, expiry or type
    """
    try:
        payload = _decode(token, settings.JWT_SECRET)
    except JWTError as exc:
        logger.debug("Access token rejected: %s", exc)
        raise TokenInvalidError() from exc
    if payload.get("type") != TOKEN_TYPE_ACCESS:
        logger.debug("Access token rejected: wrong token type")
        raise TokenInvalidError()
    if payload.get("userId") is None:
        logger.debug("Access token rejected: missing subject")
        raise TokenInvalidError()
    return payload


def verify_refresh_token(token: str) -> Dict[str, Any]:
    """
    Verify a refresh token.

    Raises:
        InvalidOrExpiredTokenError: On bad signature, issuer, audience, expiry or type
    """
    try:
        payload = _decode(token, settings.JWT_REFRESH_SECRET)
    except JWTError as exc:
        raise InvalidOrExpiredTokenError() from exc
    if payload.get("type") != TOKEN_TYPE_REFRESH or payload.get("userId") is None:
        raise InvalidOrExpiredTokenError()
    return payload


def hash_refresh_token(token: str) -> str:
    """One-way SHA-256 digest of a refresh token; the raw value is never stored"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def tokens_match(token: str, digest: str) -> bool:
    return hmac.compare_digest(hash_refresh_token(token), digest or "")


def generate_opaque_token() -> str:
    """Random url-safe token for email verification and password reset links"""
    return secrets.token_urlsafe(32)
