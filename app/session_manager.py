"""
Session Manager
Session state for a logged-in patron: validity, countdown phases, activity
tracking and persistence into the signed Flask session cookie.

A session is valid while both the time since login and the time since the
last recorded activity stay under SESSION_DURATION_MS. The countdown shown to
the user only depends on the login time.
"""

import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, MutableMapping, Optional

from constants import (
    ACTIVITY_DEBOUNCE_MS,
    SESSION_DURATION_MS,
    SESSION_FINAL_WARNING_MS,
    SESSION_WARNING_MS,
    STORAGE_CSRF_KEY,
    STORAGE_KEYS,
    STORAGE_LOGOUT_KEY,
    STORAGE_SESSION_ID_KEY,
    STORAGE_USER_KEY,
)
from utils import now_ms

_SESSION_ID_ALPHABET = string.ascii_lowercase + string.digits


class SessionPhase:
    LOGGED_OUT = "logged_out"
    AUTHENTICATED = "authenticated"
    WARNING = "warning"
    FINAL_WARNING = "final_warning"
    EXPIRED = "expired"


def generate_session_id(now: Optional[int] = None) -> str:
    """session_<epoch ms>_<9 random base36 chars>"""
    now = now_ms() if now is None else now
    suffix = "".join(secrets.choice(_SESSION_ID_ALPHABET) for _ in range(9))
    return f"session_{now}_{suffix}"


@dataclass
class SessionState:
    user_id: str
    name: str
    session_id: str
    csrf_token: str
    login_time: int
    last_activity: int
    logout_token: Optional[str] = None
    warning_dismissed: bool = False
    final_warning_dismissed: bool = False

    @classmethod
    def create(cls, user_id: str, name: str, session_id: str, csrf_token: str,
               logout_token: Optional[str] = None, now: Optional[int] = None) -> "SessionState":
        now = now_ms() if now is None else now
        return cls(
            user_id=user_id,
            name=name,
            session_id=session_id,
            csrf_token=csrf_token,
            logout_token=logout_token,
            login_time=now,
            last_activity=now,
        )

    def is_valid(self, now: Optional[int] = None) -> bool:
        now = now_ms() if now is None else now
        return (now - self.login_time < SESSION_DURATION_MS
                and now - self.last_activity < SESSION_DURATION_MS)

    def time_remaining(self, now: Optional[int] = None) -> int:
        """Milliseconds left on the login countdown, never negative"""
        now = now_ms() if now is None else now
        return max(0, SESSION_DURATION_MS - (now - self.login_time))

    def phase(self, now: Optional[int] = None) -> str:
        now = now_ms() if now is None else now
        if not self.is_valid(now):
            return SessionPhase.EXPIRED
        remaining = self.time_remaining(now)
        if remaining <= SESSION_FINAL_WARNING_MS:
            return SessionPhase.FINAL_WARNING
        if remaining <= SESSION_WARNING_MS:
            return SessionPhase.WARNING
        return SessionPhase.AUTHENTICATED

    def dismiss(self, which: str):
        if which == SessionPhase.WARNING:
            self.warning_dismissed = True
        elif which == SessionPhase.FINAL_WARNING:
            self.final_warning_dismissed = True
        else:
            raise ValueError(f"Unknown warning: {which}")

    def status(self, now: Optional[int] = None) -> Dict[str, Any]:
        """Snapshot polled by the UI countdown once per second"""
        now = now_ms() if now is None else now
        remaining = self.time_remaining(now)
        if remaining > SESSION_WARNING_MS:
            self.warning_dismissed = False
            self.final_warning_dismissed = False

        phase = self.phase(now)
        return {
            "phase": phase,
            "valid": phase != SessionPhase.EXPIRED,
            "time_remaining_ms": remaining,
            "time_remaining_seconds": remaining // 1000,
            "show_warning": phase == SessionPhase.WARNING and not self.warning_dismissed,
            "show_final_warning": phase == SessionPhase.FINAL_WARNING and not self.final_warning_dismissed,
        }

    def record_activity(self, now: Optional[int] = None) -> bool:
        """Refresh last_activity at most once per ACTIVITY_DEBOUNCE_MS. Returns True when updated."""
        now = now_ms() if now is None else now
        if now - self.last_activity < ACTIVITY_DEBOUNCE_MS:
            return False
        self.last_activity = now
        return True

    def user_payload(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "name": self.name,
            "sessionId": self.session_id,
            "csrfToken": self.csrf_token,
            "loginTime": self.login_time,
            "lastActivity": self.last_activity,
        }

    def to_storage(self) -> Dict[str, Any]:
        storage = {
            STORAGE_USER_KEY: self.user_payload(),
            STORAGE_CSRF_KEY: self.csrf_token,
            STORAGE_SESSION_ID_KEY: self.session_id,
        }
        if self.logout_token:
            storage[STORAGE_LOGOUT_KEY] = self.logout_token
        return storage

    @classmethod
    def from_storage(cls, storage: MutableMapping) -> Optional["SessionState"]:
        """Rebuild a session from persisted keys; None when missing or malformed"""
        user = storage.get(STORAGE_USER_KEY)
        if not isinstance(user, dict):
            return None
        try:
            return cls(
                user_id=str(user["id"]),
                name=str(user["name"]),
                session_id=str(user.get("sessionId") or storage[STORAGE_SESSION_ID_KEY]),
                csrf_token=str(user.get("csrfToken") or storage[STORAGE_CSRF_KEY]),
                login_time=int(user["loginTime"]),
                last_activity=int(user["lastActivity"]),
                logout_token=storage.get(STORAGE_LOGOUT_KEY),
            )
        except (KeyError, TypeError, ValueError):
            return None


def persist_session(storage: MutableMapping, state: SessionState):
    storage.update(state.to_storage())


def clear_session_storage(storage: MutableMapping):
    for key in STORAGE_KEYS:
        storage.pop(key, None)
