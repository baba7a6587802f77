from datetime import timedelta

import pytest
from jose import jwt

from app.config import settings
from app.core.exceptions import ConfigurationError, InvalidOrExpiredTokenError, TokenInvalidError
from app.core.security import (
    create_access_token,
    create_refresh_token,
    hash_refresh_token,
    parse_duration,
    tokens_match,
    verify_access_token,
    verify_refresh_token,
)


def test_access_token_round_trip():
    token = create_access_token({"userId": 7, "username": "alice", "role": "viewer"})
    payload = verify_access_token(token)
    assert payload["userId"] == 7
    assert payload["type"] == "access"
    assert payload["iss"] == settings.JWT_ISSUER
    assert payload["aud"] == settings.JWT_AUDIENCE
    assert payload["jti"]


def test_access_token_rejects_refresh_token():
    refresh = create_refresh_token({"userId": 1})
    with pytest.raises(TokenInvalidError) as exc:
        verify_access_token(refresh)
    assert exc.value.message == "Invalid token"


def test_refresh_token_rejects_access_token():
    access = create_access_token({"userId": 1})
    with pytest.raises(InvalidOrExpiredTokenError):
        verify_refresh_token(access)


def test_expired_access_token_is_rejected():
    token = create_access_token({"userId": 3}, expires_delta=timedelta(seconds=-5))
    with pytest.raises(TokenInvalidError) as exc:
        verify_access_token(token)
    assert exc.value.message == "Invalid token"
    assert "expired" not in exc.value.message.lower()


def test_wrong_audience_is_rejected():
    forged = jwt.encode(
        {"userId": 1, "type": "access", "iss": settings.JWT_ISSUER, "aud": "someone-else"},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    with pytest.raises(TokenInvalidError) as exc:
        verify_access_token(forged)
    assert exc.value.message == "Invalid token"


def test_tokens_issued_together_are_distinct():
    first = create_refresh_token({"userId": 5})
    second = create_refresh_token({"userId": 5})
    assert first != second
    assert hash_refresh_token(first) != hash_refresh_token(second)


def test_tokens_match_uses_digest():
    token = create_refresh_token({"userId": 5})
    digest = hash_refresh_token(token)
    assert len(digest) == 64
    assert tokens_match(token, digest)
    assert not tokens_match(token + "x", digest)
    assert not tokens_match(token, None)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("15m", timedelta(minutes=15)),
        ("7d", timedelta(days=7)),
        ("30s", timedelta(seconds=30)),
        ("2h", timedelta(hours=2)),
        (90, timedelta(seconds=90)),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "15", "m15", "1w", "-5m", "1.5h", -1, True, None])
def test_parse_duration_rejects_malformed(value):
    with pytest.raises(ConfigurationError):
        parse_duration(value)


def test_validate_security_settings_requires_distinct_secrets(monkeypatch):
    monkeypatch.setattr(settings, "JWT_REFRESH_SECRET", settings.JWT_SECRET)
    with pytest.raises(ConfigurationError):
        settings.validate_security_settings()


def test_validate_security_settings_rejects_bad_ttl(monkeypatch):
    monkeypatch.setattr(settings, "JWT_EXPIRES_IN", "fifteen minutes")
    with pytest.raises(ConfigurationError):
        settings.validate_security_settings()


def test_validate_security_settings_rejects_defaults_in_production(monkeypatch):
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    with pytest.raises(ConfigurationError):
        settings.validate_security_settings()
