from datetime import timedelta

import pytest

from app.config import settings
from app.core.clock import utcnow
from app.core.exceptions import (
    AccountDisabledError,
    AccountLockedError,
    AuthenticationError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    ValidationError,
)
from app.models.session import (
    REVOKE_REASON_ACCOUNT_DISABLED,
    REVOKE_REASON_PASSWORD_RESET,
    SESSION_STATUS_ACTIVE,
    UserSession,
)
from app.schemas.user import ProfileUpdate, UserRegister, UserStatus
from app.services import user_service as user_service_module
from app.services.permission_service import permission_service
from app.services.token_service import token_service
from app.services.user_service import user_service
from conftest import DEFAULT_PASSWORD


class RecordingMailSender:
    def __init__(self):
        self.sent = []

    def send_verification_email(self, email, username, token):
        self.sent.append(("verify", email, token))

    def send_password_reset_email(self, email, username, token):
        self.sent.append(("reset", email, token))

    def send_password_reset_confirmation(self, email, username):
        self.sent.append(("reset_done", email, None))


@pytest.fixture
def mailbox(monkeypatch):
    sender = RecordingMailSender()
    monkeypatch.setattr(user_service_module, "mail_sender", sender)
    return sender


def _register(db, email="new@example.com", username="newbie"):
    return user_service.create_user(
        db, UserRegister(email=email, username=username, password=DEFAULT_PASSWORD)
    )


def test_registration_is_pending_until_verified(db, mailbox):
    user = _register(db)

    assert user.status == "pending"
    assert user.email_verified is False
    kind, email, token = mailbox.sent[0]
    assert (kind, email) == ("verify", "new@example.com")

    with pytest.raises(EmailNotVerifiedError):
        user_service.authenticate_user(db, "new@example.com", DEFAULT_PASSWORD)

    verified = user_service.verify_email(db, token)
    assert verified.status == "active"
    assert verified.email_verification_token is None
    assert user_service.authenticate_user(db, "new@example.com", DEFAULT_PASSWORD).id == user.id


def test_registration_grants_default_role(seeded_db, mailbox):
    user = _register(seeded_db)
    assert [r.name for r in permission_service.get_user_roles(seeded_db, user.id)] == [settings.DEFAULT_USER_ROLE]


def test_duplicate_email_or_username_rejected(db, mailbox):
    _register(db)
    with pytest.raises(ResourceAlreadyExistsError):
        _register(db, username="other")
    with pytest.raises(ResourceAlreadyExistsError):
        _register(db, email="other@example.com")


def test_expired_verification_token_rejected(db, mailbox):
    user = _register(db)
    user.email_verification_expires = utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(ValidationError):
        user_service.verify_email(db, user.email_verification_token)


def test_unknown_email_and_wrong_password_fail_identically(db, make_user):
    make_user(email="known@example.com")

    with pytest.raises(InvalidCredentialsError) as unknown:
        user_service.authenticate_user(db, "nobody@example.com", DEFAULT_PASSWORD)
    with pytest.raises(InvalidCredentialsError) as wrong:
        user_service.authenticate_user(db, "known@example.com", "wrong-password")

    assert unknown.value.message == wrong.value.message
    assert unknown.value.status_code == wrong.value.status_code == 401


def test_disabled_account_revealed_only_after_password(db, make_user):
    user = make_user(email="off@example.com")
    user_service.set_status(db, user.id, UserStatus.DISABLED)

    with pytest.raises(InvalidCredentialsError):
        user_service.authenticate_user(db, "off@example.com", "wrong-password")
    with pytest.raises(AccountDisabledError):
        user_service.authenticate_user(db, "off@example.com", DEFAULT_PASSWORD)


def test_pending_account_cannot_log_in_even_when_verified(db, make_user):
    user = make_user(email="limbo@example.com")
    user_service.set_status(db, user.id, UserStatus.PENDING)

    with pytest.raises(AuthenticationError) as exc:
        user_service.authenticate_user(db, "limbo@example.com", DEFAULT_PASSWORD)
    assert exc.value.status_code == 401


def test_lockout_after_repeated_failures(db, make_user, monkeypatch):
    monkeypatch.setattr(settings, "MAX_FAILED_LOGIN_ATTEMPTS", 3)
    make_user(email="lock@example.com")

    for _ in range(2):
        with pytest.raises(InvalidCredentialsError):
            user_service.authenticate_user(db, "lock@example.com", "bad")
    with pytest.raises(AccountLockedError):
        user_service.authenticate_user(db, "lock@example.com", "bad")
    with pytest.raises(AccountLockedError):
        user_service.authenticate_user(db, "lock@example.com", DEFAULT_PASSWORD)


def test_successful_login_updates_counters(db, make_user):
    make_user(email="count@example.com")
    user = user_service.authenticate_user(db, "count@example.com", DEFAULT_PASSWORD)
    assert user.login_count == 1
    assert user.last_login_at is not None
    assert user.failed_login_attempts == 0


def test_password_reset_revokes_sessions(db, make_user, mailbox):
    user = make_user(email="reset@example.com")
    token_service.issue_token_pair(db, user)
    token_service.issue_token_pair(db, user)

    user_service.request_password_reset(db, "reset@example.com")
    kind, _, reset_token = mailbox.sent[-1]
    assert kind == "reset"

    user_service.reset_password(db, reset_token, "An0therStrongOne!")

    sessions = db.query(UserSession).filter(UserSession.user_id == user.id).all()
    assert all(s.status != SESSION_STATUS_ACTIVE for s in sessions)
    assert {s.revoke_reason for s in sessions} == {REVOKE_REASON_PASSWORD_RESET}
    assert user_service.authenticate_user(db, "reset@example.com", "An0therStrongOne!").id == user.id
    with pytest.raises(ValidationError):
        user_service.reset_password(db, reset_token, "YetAn0therOne!")


def test_password_reset_request_is_silent_for_unknown_email(db, mailbox):
    user_service.request_password_reset(db, "ghost@example.com")
    assert mailbox.sent == []


def test_disabling_revokes_sessions(db, make_user):
    user = make_user()
    token_service.issue_token_pair(db, user)

    user_service.set_status(db, user.id, UserStatus.DISABLED)

    sessions = db.query(UserSession).filter(UserSession.user_id == user.id).all()
    assert [s.revoke_reason for s in sessions] == [REVOKE_REASON_ACCOUNT_DISABLED]


def test_list_and_count_users(db, make_user):
    make_user(email="alpha@example.com")
    make_user(email="beta@example.com")
    make_user(email="gamma@example.com", activate=False)

    assert user_service.count_users(db) == 3
    assert user_service.count_users(db, status="pending") == 1
    assert [u.email for u in user_service.list_users(db, search="BETA")] == ["beta@example.com"]
    assert len(user_service.list_users(db, offset=1, limit=1)) == 1


def test_update_profile_merges_shallowly(db, make_user):
    user = make_user()
    user_service.update_profile(
        db,
        user.id,
        ProfileUpdate(
            profile={"display_name": "Ada", "avatar": "https://cdn.example.com/ada.png"},
            preferences={"theme": "dark"},
        ),
    )

    updated = user_service.update_profile(
        db, user.id, ProfileUpdate(profile={"bio": "Counts things"}, preferences={"language": "en-US"})
    )

    assert updated.profile == {
        "display_name": "Ada",
        "avatar": "https://cdn.example.com/ada.png",
        "bio": "Counts things",
    }
    assert updated.preferences == {"theme": "dark", "language": "en-US"}


def test_update_profile_unknown_user(db):
    with pytest.raises(ResourceNotFoundError):
        user_service.update_profile(db, 4242, ProfileUpdate(preferences={"theme": "auto"}))
