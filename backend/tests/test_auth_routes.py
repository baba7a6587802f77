from app.config import settings
from app.models.session import UserSession
from app.models.user import User
from conftest import DEFAULT_PASSWORD

API = "/api/v1/auth"


def _login(client, email, password=DEFAULT_PASSWORD):
    return client.post(f"{API}/login", json={"email": email, "password": password})


def _tokens(client, email):
    response = _login(client, email)
    assert response.status_code == 200, response.text
    return response.json()["tokens"]


def _auth(tokens):
    return {"Authorization": f"Bearer {tokens['access_token']}"}


def test_register_verify_then_login(client, db):
    response = client.post(
        f"{API}/register",
        json={"email": "Fresh@Example.com", "username": "Fresh_User", "password": DEFAULT_PASSWORD},
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["data"]["status"] == "pending"
    assert body["data"]["username"] == "fresh_user"

    blocked = _login(client, "fresh@example.com")
    assert blocked.status_code == 403

    db.expire_all()
    token = db.query(User).filter(User.email == "fresh@example.com").one().email_verification_token
    verified = client.post(f"{API}/verify-email", json={"token": token})
    assert verified.status_code == 200
    assert verified.json()["data"]["status"] == "active"

    login = _login(client, "fresh@example.com")
    assert login.status_code == 200
    assert login.json()["tokens"]["token_type"] == "Bearer"


def test_register_rejects_duplicate_email(client, make_user):
    make_user(email="taken@example.com")
    response = client.post(
        f"{API}/register",
        json={"email": "taken@example.com", "username": "someone", "password": DEFAULT_PASSWORD},
    )
    assert response.status_code == 409


def test_login_failure_is_generic(client, make_user):
    make_user(email="known@example.com")

    unknown = _login(client, "unknown@example.com")
    wrong = _login(client, "known@example.com", "wrong-password")

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json()["error"] == wrong.json()["error"] == "Invalid email or password"


def test_login_records_session_metadata(client, db, make_user):
    user = make_user(email="meta@example.com")
    response = client.post(
        f"{API}/login",
        json={"email": "meta@example.com", "password": DEFAULT_PASSWORD, "device_info": {"platform": "ios"}},
        headers={"User-Agent": "pytest-agent"},
    )
    assert response.status_code == 200

    db.expire_all()
    record = db.query(UserSession).filter(UserSession.user_id == user.id).one()
    assert record.device_info == {"platform": "ios"}
    assert record.user_agent == "pytest-agent"


def test_refresh_rotates_and_rejects_replay(client, make_user):
    make_user(email="rotate@example.com")
    tokens = _tokens(client, "rotate@example.com")

    rotated = client.post(f"{API}/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert rotated.status_code == 200
    assert rotated.json()["refresh_token"] != tokens["refresh_token"]

    replay = client.post(f"{API}/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert replay.status_code == 401

    again = client.post(f"{API}/refresh", json={"refresh_token": rotated.json()["refresh_token"]})
    assert again.status_code == 200


def test_access_token_cannot_be_used_to_refresh(client, make_user):
    make_user(email="mixup@example.com")
    tokens = _tokens(client, "mixup@example.com")

    response = client.post(f"{API}/refresh", json={"refresh_token": tokens["access_token"]})
    assert response.status_code == 401


def test_logout_is_idempotent(client, make_user):
    make_user(email="bye@example.com")
    tokens = _tokens(client, "bye@example.com")

    first = client.post(f"{API}/logout", json={"refresh_token": tokens["refresh_token"]})
    second = client.post(f"{API}/logout", json={"refresh_token": tokens["refresh_token"]})

    assert first.status_code == second.status_code == 200
    assert first.json()["refresh_token_revoked"] is True
    assert second.json()["refresh_token_revoked"] is False
    refresh = client.post(f"{API}/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refresh.status_code == 401


def test_logout_all_revokes_every_session(client, make_user):
    make_user(email="many@example.com")
    first = _tokens(client, "many@example.com")
    second = _tokens(client, "many@example.com")

    assert client.post(f"{API}/logout-all").status_code == 401

    response = client.post(f"{API}/logout-all", headers=_auth(first))
    assert response.status_code == 200
    assert response.json()["data"]["revoked_sessions"] == 2
    for tokens in (first, second):
        assert client.post(f"{API}/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401


def test_verify_token_and_me(client, make_user):
    user = make_user(email="me@example.com")
    tokens = _tokens(client, "me@example.com")

    verify = client.get(f"{API}/verify-token", headers=_auth(tokens))
    assert verify.status_code == 200
    assert verify.json()["user"]["id"] == user.id
    assert verify.json()["token"]["type"] == "access"

    me = client.get(f"{API}/me", headers=_auth(tokens))
    assert me.json()["email"] == "me@example.com"

    assert client.get(f"{API}/me").status_code == 401
    garbage = client.get(f"{API}/me", headers={"Authorization": "Bearer nonsense"})
    assert garbage.status_code == 401
    assert garbage.json()["error"] == "Invalid token"
    refresh_as_access = {"Authorization": f"Bearer {tokens['refresh_token']}"}
    wrong_type = client.get(f"{API}/me", headers=refresh_as_access)
    assert wrong_type.status_code == 401
    assert wrong_type.json()["error"] == "Invalid token"


def test_session_listing_and_revocation(client, seeded_db, make_user):
    make_user(email="owner@example.com", roles=("viewer",))
    make_user(email="intruder@example.com", roles=("viewer",))
    make_user(email="boss@example.com", roles=("admin",))
    owner = _tokens(client, "owner@example.com")
    _tokens(client, "owner@example.com")
    intruder = _tokens(client, "intruder@example.com")
    boss = _tokens(client, "boss@example.com")

    listing = client.get(f"{API}/sessions", headers=_auth(owner))
    assert listing.json()["total"] == 2
    session_ids = [s["id"] for s in listing.json()["sessions"]]

    denied = client.delete(f"{API}/sessions/{session_ids[0]}", headers=_auth(intruder))
    assert denied.status_code == 403

    own = client.delete(f"{API}/sessions/{session_ids[0]}", headers=_auth(owner))
    assert own.status_code == 200

    by_admin = client.delete(f"{API}/sessions/{session_ids[1]}", headers=_auth(boss))
    assert by_admin.status_code == 200

    gone = client.delete(f"{API}/sessions/{session_ids[1]}", headers=_auth(owner))
    assert gone.status_code == 404
    missing = client.delete(f"{API}/sessions/does-not-exist", headers=_auth(owner))
    assert missing.status_code == 404


def test_revoke_other_sessions(client, make_user):
    make_user(email="phone@example.com")
    current = _tokens(client, "phone@example.com")
    _tokens(client, "phone@example.com")
    _tokens(client, "phone@example.com")

    response = client.post(
        f"{API}/sessions/revoke-others",
        json={"refresh_token": current["refresh_token"]},
        headers=_auth(current),
    )
    assert response.json()["data"]["revoked_sessions"] == 2
    assert client.get(f"{API}/sessions", headers=_auth(current)).json()["total"] == 1


def test_cleanup_sessions_requires_admin_role(client, seeded_db, make_user):
    make_user(email="viewer@example.com", roles=("viewer",))
    make_user(email="admin2@example.com", roles=("admin",))

    viewer = _tokens(client, "viewer@example.com")
    denied = client.post(f"{API}/cleanup-sessions", headers=_auth(viewer))
    assert denied.status_code == 403
    assert denied.json()["details"] == {"required": ["admin", "super_admin"]}

    admin = _tokens(client, "admin2@example.com")
    allowed = client.post(f"{API}/cleanup-sessions", headers=_auth(admin))
    assert allowed.status_code == 200
    assert allowed.json()["data"]["cleaned_sessions"] == 0


def test_password_reset_flow_revokes_sessions(client, db, make_user):
    make_user(email="forgetful@example.com")
    tokens = _tokens(client, "forgetful@example.com")

    assert client.post(f"{API}/forgot-password", json={"email": "forgetful@example.com"}).status_code == 200
    assert client.post(f"{API}/forgot-password", json={"email": "ghost@example.com"}).status_code == 200

    db.expire_all()
    reset_token = db.query(User).filter(User.email == "forgetful@example.com").one().password_reset_token
    response = client.post(
        f"{API}/reset-password", json={"token": reset_token, "new_password": "BrandNewPassw0rd!"}
    )
    assert response.status_code == 200

    assert client.post(f"{API}/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401
    assert _login(client, "forgetful@example.com").status_code == 401
    assert _login(client, "forgetful@example.com", "BrandNewPassw0rd!").status_code == 200


def test_login_is_rate_limited(client, make_user, monkeypatch):
    monkeypatch.setattr(settings, "LOGIN_RATE_LIMIT_PER_MINUTE", 2)
    make_user(email="spam@example.com")

    assert _login(client, "spam@example.com", "bad").status_code == 401
    assert _login(client, "spam@example.com", "bad").status_code == 401
    limited = _login(client, "spam@example.com", "bad")

    assert limited.status_code == 429
    assert int(limited.headers["Retry-After"]) > 0
    assert limited.json()["details"]["retry_after"] > 0


def test_update_profile_via_me(client, make_user):
    make_user(email="profile@example.com")
    tokens = _tokens(client, "profile@example.com")

    first = client.put(
        f"{API}/me",
        json={"profile": {"display_name": "Pat"}, "preferences": {"theme": "light"}},
        headers=_auth(tokens),
    )
    assert first.status_code == 200, first.text

    second = client.put(f"{API}/me", json={"preferences": {"language": "zh-CN"}}, headers=_auth(tokens))
    assert second.status_code == 200
    assert second.json()["profile"] == {"display_name": "Pat"}
    assert second.json()["preferences"] == {"theme": "light", "language": "zh-CN"}

    me = client.get(f"{API}/me", headers=_auth(tokens)).json()
    assert me["preferences"] == {"theme": "light", "language": "zh-CN"}


def test_update_profile_validates_input(client, make_user):
    make_user(email="picky@example.com")
    headers = _auth(_tokens(client, "picky@example.com"))

    bad_theme = client.put(f"{API}/me", json={"preferences": {"theme": "neon"}}, headers=headers)
    assert bad_theme.status_code == 422
    assert bad_theme.json()["details"][0]["field"] == "body.preferences.theme"

    assert client.put(f"{API}/me", json={"profile": {"display_name": ""}}, headers=headers).status_code == 422
    assert client.put(f"{API}/me", json={"profile": {"bio": "x" * 501}}, headers=headers).status_code == 422
    assert client.put(f"{API}/me", json={"profile": {"avatar": "not a url"}}, headers=headers).status_code == 422
    assert client.put(f"{API}/me", json={"profile": {"nickname": "x"}}, headers=headers).status_code == 422
    assert client.put(f"{API}/me", json={"preferences": {"theme": "dark"}}).status_code == 401


def test_update_profile_is_rate_limited(client, make_user, monkeypatch):
    monkeypatch.setattr(settings, "PROFILE_RATE_LIMIT_PER_MINUTE", 1)
    make_user(email="busy@example.com")
    headers = _auth(_tokens(client, "busy@example.com"))

    assert client.put(f"{API}/me", json={"preferences": {"theme": "dark"}}, headers=headers).status_code == 200
    assert client.put(f"{API}/me", json={"preferences": {"theme": "auto"}}, headers=headers).status_code == 429
