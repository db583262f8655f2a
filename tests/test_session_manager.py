"""
Tests for session state, countdown phases and cookie persistence
"""
import re

import pytest

from constants import SESSION_DURATION_MS, STORAGE_CSRF_KEY, STORAGE_LOGOUT_KEY, STORAGE_SESSION_ID_KEY, STORAGE_USER_KEY
from session_manager import (
    SessionPhase,
    SessionState,
    clear_session_storage,
    generate_session_id,
    persist_session,
)

LOGIN_AT = 1_700_000_000_000
MINUTE = 60 * 1000


@pytest.fixture
def state():
    return SessionState.create('28', 'alana', 'session_1700000000000_abcdefghi', 'csrf', logout_token='logout', now=LOGIN_AT)


class TestSessionId:

    def test_format(self):
        session_id = generate_session_id(now=LOGIN_AT)
        assert re.fullmatch(r'session_1700000000000_[a-z0-9]{9}', session_id)

    def test_unique(self):
        assert generate_session_id(now=LOGIN_AT) != generate_session_id(now=LOGIN_AT)


class TestSessionValidity:

    def test_fresh_session_is_authenticated(self, state):
        assert state.is_valid(LOGIN_AT)
        assert state.phase(LOGIN_AT) == SessionPhase.AUTHENTICATED
        assert state.time_remaining(LOGIN_AT) == SESSION_DURATION_MS

    def test_expires_ten_minutes_after_login_despite_activity(self, state):
        """Activity never extends the login countdown"""
        state.record_activity(LOGIN_AT + 9 * MINUTE)

        assert state.is_valid(LOGIN_AT + 10 * MINUTE - 1)
        assert not state.is_valid(LOGIN_AT + 10 * MINUTE)
        assert state.phase(LOGIN_AT + 10 * MINUTE) == SessionPhase.EXPIRED

    def test_time_remaining_never_negative(self, state):
        assert state.time_remaining(LOGIN_AT + 20 * MINUTE) == 0

    @pytest.mark.parametrize('elapsed, phase', [
        (7 * MINUTE, SessionPhase.AUTHENTICATED),
        (8 * MINUTE, SessionPhase.WARNING),
        (10 * MINUTE - 6000, SessionPhase.WARNING),
        (10 * MINUTE - 5000, SessionPhase.FINAL_WARNING),
        (10 * MINUTE, SessionPhase.EXPIRED),
    ])
    def test_phases(self, state, elapsed, phase):
        state.last_activity = LOGIN_AT + elapsed
        assert state.phase(LOGIN_AT + elapsed) == phase


class TestSessionStatus:

    def test_warning_shown_until_dismissed(self, state):
        now = LOGIN_AT + 9 * MINUTE
        state.last_activity = now

        assert state.status(now)['show_warning'] is True

        state.dismiss(SessionPhase.WARNING)
        status = state.status(now)
        assert status['show_warning'] is False
        assert status['time_remaining_seconds'] == 60
        assert status['valid'] is True

    def test_final_warning_dismissed_independently(self, state):
        now = LOGIN_AT + 10 * MINUTE - 3000
        state.last_activity = now
        state.dismiss(SessionPhase.WARNING)

        status = state.status(now)
        assert status['phase'] == SessionPhase.FINAL_WARNING
        assert status['show_final_warning'] is True

        state.dismiss(SessionPhase.FINAL_WARNING)
        assert state.status(now)['show_final_warning'] is False

    def test_dismissals_reset_above_warning_threshold(self, state):
        state.dismiss(SessionPhase.WARNING)
        state.dismiss(SessionPhase.FINAL_WARNING)

        state.status(LOGIN_AT + MINUTE)

        assert state.warning_dismissed is False
        assert state.final_warning_dismissed is False

    def test_unknown_dismissal_rejected(self, state):
        with pytest.raises(ValueError):
            state.dismiss('banner')


class TestActivity:

    def test_debounced_to_once_per_second(self, state):
        assert state.record_activity(LOGIN_AT + 500) is False
        assert state.last_activity == LOGIN_AT

        assert state.record_activity(LOGIN_AT + 1000) is True
        assert state.last_activity == LOGIN_AT + 1000

        assert state.record_activity(LOGIN_AT + 1500) is False


class TestPersistence:

    def test_round_trip_through_storage(self, state):
        storage = {}
        persist_session(storage, state)

        assert storage[STORAGE_CSRF_KEY] == 'csrf'
        assert storage[STORAGE_SESSION_ID_KEY] == 'session_1700000000000_abcdefghi'
        assert storage[STORAGE_LOGOUT_KEY] == 'logout'
        assert storage[STORAGE_USER_KEY] == {
            'id': '28',
            'name': 'alana',
            'sessionId': 'session_1700000000000_abcdefghi',
            'csrfToken': 'csrf',
            'loginTime': LOGIN_AT,
            'lastActivity': LOGIN_AT,
        }
        assert SessionState.from_storage(storage) == state

    def test_malformed_storage(self):
        assert SessionState.from_storage({}) is None
        assert SessionState.from_storage({STORAGE_USER_KEY: 'alana'}) is None
        assert SessionState.from_storage({STORAGE_USER_KEY: {'id': '28'}}) is None

    def test_clear_removes_every_key(self, state):
        storage = {'unrelated': 1}
        persist_session(storage, state)

        clear_session_storage(storage)

        assert storage == {'unrelated': 1}
