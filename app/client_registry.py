"""
Client Registry
Maps gateway session ids to their LibraryAPI client and live session state.
Credentials live only here, in memory; nothing sensitive reaches the cookie
beyond the tokens the upstream site handed out at login.
"""

import threading
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from library_api import LibraryAPI
from session_manager import SessionState
from utils import now_ms

logger = logging.getLogger("main")


@dataclass
class SessionEntry:
    client: LibraryAPI
    state: SessionState


class ClientRegistry:
    """Thread-safe session_id -> (LibraryAPI, SessionState) map"""

    def __init__(self, client_factory: Callable[[], LibraryAPI]):
        self._client_factory = client_factory
        self._entries: Dict[str, SessionEntry] = {}
        self._lock = threading.Lock()
        self._logout_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="library-logout")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._entries

    def create_client(self) -> LibraryAPI:
        return self._client_factory()

    def register(self, client: LibraryAPI, state: SessionState):
        with self._lock:
            self._entries[state.session_id] = SessionEntry(client=client, state=state)
        logger.info(f"Session {state.session_id} registered for user {state.user_id}")

    def get(self, session_id: Optional[str]) -> Optional[SessionEntry]:
        if not session_id:
            return None
        with self._lock:
            return self._entries.get(session_id)

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def _logout_client(self, session_id: str, client: LibraryAPI):
        try:
            client.logout()
        except Exception as e:
            logger.warning(f"Background server logout failed for {session_id}: {e}")
        finally:
            client.close()

    def end_session(self, session_id: Optional[str], wait: bool = False) -> bool:
        """
        Forget a session and log its client out upstream in the background.
        Returns False when the session was not registered.
        """
        if not session_id:
            return False
        with self._lock:
            entry = self._entries.pop(session_id, None)
        if entry is None:
            return False

        future = self._logout_executor.submit(self._logout_client, session_id, entry.client)
        if wait:
            future.result()
        logger.info(f"Session {session_id} ended")
        return True

    def reap_expired(self, now: Optional[int] = None) -> List[str]:
        """End every session that is no longer valid; returns their ids"""
        now = now_ms() if now is None else now
        with self._lock:
            expired = [sid for sid, entry in self._entries.items() if not entry.state.is_valid(now)]
        for session_id in expired:
            self.end_session(session_id)
        if expired:
            logger.info(f"Expired {len(expired)} session(s)")
        return expired

    def shutdown(self):
        for session_id in self.session_ids():
            self.end_session(session_id)
        self._logout_executor.shutdown(wait=True)
