from datetime import timedelta

from app.core.clock import utcnow
from app.models.session import SESSION_STATUS_EXPIRED, UserSession
from app.services.session_sweeper import SessionSweeper


def test_sweep_once_expires_past_due_sessions(db, session_factory, make_user):
    user = make_user()
    db.add(
        UserSession(
            user_id=user.id,
            refresh_token_hash="0" * 64,
            token_family="fam",
            status="active",
            expires_at=utcnow() - timedelta(minutes=5),
        )
    )
    db.commit()

    sweeper = SessionSweeper(interval_seconds=60, session_factory=session_factory)
    assert sweeper.sweep_once() == 1
    assert sweeper.status()["swept_count"] == 1

    db.expire_all()
    assert db.query(UserSession).one().status == SESSION_STATUS_EXPIRED


def test_start_and_stop(session_factory):
    sweeper = SessionSweeper(interval_seconds=60, session_factory=session_factory)
    sweeper.start()
    try:
        assert sweeper.is_running()
    finally:
        sweeper.stop()
    assert not sweeper.is_running()
