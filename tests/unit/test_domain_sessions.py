"""ABOUTME: Unit tests for the UserSession domain model
ABOUTME: State transitions, expiry, refresh checks and device labelling"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from communityguard.domain.sessions import UserSession, generate_session_id, parse_device_info
from communityguard.domain.value_objects import SessionState

CREATED = datetime(2026, 4, 1, 8, 0, tzinfo=UTC)


@pytest.fixture
def session() -> UserSession:
    return UserSession(user_id=uuid.uuid4(), created_at=CREATED, lifetime=timedelta(days=30))


class TestUserSession:
    def test_new_session_is_active(self, session):
        assert session.state == SessionState.ACTIVE
        assert session.expires_at == CREATED + timedelta(days=30)
        assert session.last_activity == CREATED

    def test_expiry_boundary(self, session):
        assert not session.is_expired(session.expires_at)
        assert session.is_expired(session.expires_at + timedelta(microseconds=1))
        assert not session.is_valid(session.expires_at + timedelta(seconds=1))

    def test_revoke(self, session):
        session.revoke(CREATED + timedelta(hours=1))
        assert session.state == SessionState.REVOKED
        assert session.revoked_at == CREATED + timedelta(hours=1)
        assert not session.is_valid(CREATED)

    def test_expire(self, session):
        session.expire()
        assert session.state == SessionState.EXPIRED
        assert session.revoked_at is None

    @pytest.mark.parametrize("first", ["revoke", "expire"])
    @pytest.mark.parametrize("second", ["revoke", "expire", "touch"])
    def test_terminal_states_cannot_be_left(self, session, first, second):
        getattr(session, first)()
        with pytest.raises(ValueError):
            getattr(session, second)()

    def test_needs_refresh(self, session):
        assert not session.needs_refresh(timedelta(hours=1), CREATED + timedelta(minutes=59))
        assert session.needs_refresh(timedelta(hours=1), CREATED + timedelta(minutes=61))

    def test_touch_updates_last_activity(self, session):
        session.touch(CREATED + timedelta(hours=3))
        assert session.last_activity == CREATED + timedelta(hours=3)

    def test_repr_does_not_leak_full_id(self, session):
        assert session.id not in repr(session)
        assert session.id[:8] in repr(session)

    def test_detached_copy_is_equal_but_independent(self, session):
        copy = session.create_detached_copy()
        assert copy == session
        assert copy is not session
        copy.revoke()
        assert session.is_active


def test_generate_session_id_is_url_safe():
    session_id = generate_session_id()
    assert len(session_id) == 43
    assert all(c.isalnum() or c in "-_" for c in session_id)


@pytest.mark.parametrize(
    "user_agent,label",
    [
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)", "iPhone"),
        ("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)", "iPad"),
        ("Mozilla/5.0 (Linux; Android 14; Pixel 8)", "Android Device"),
        ("SomeBrowser Mobile/1.0", "Mobile Device"),
        ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", "Windows Computer"),
        ("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)", "Mac Computer"),
        ("Mozilla/5.0 (X11; Linux x86_64)", "Linux Computer"),
        ("curl/8.0", "Unknown Device"),
        ("", "Unknown Device"),
    ],
)
def test_parse_device_info(user_agent, label):
    assert parse_device_info(user_agent) == label
