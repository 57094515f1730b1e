import secrets
import threading
import time
from typing import Dict, Optional


class Session:
    def __init__(self, id, owner_identity, display_name, token, expires_at, refresh_token=None):
        self.id = id
        self.owner_identity = owner_identity
        self.display_name = display_name
        self.token = token
        self.refresh_token = refresh_token
        self.expires_at = expires_at

    def is_expired(self, now=None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at

    def to_dict(self):
        return {
            'sessionId': self.id,
            'userId': self.owner_identity,
            'userName': self.display_name,
            # Milliseconds, as browser clients compare against Date.now()
            'expiresAt': int(self.expires_at * 1000),
        }


class SessionStore:
    """Authenticated-user sessions, shared by every room.

    Guarded by a single lock. The expiry sweep only removes entries that are
    already expired, so it can interleave with lookups and refreshes.
    """

    def __init__(self, logger, clock=time.time):
        self.logger = logger
        self.clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, owner_identity, display_name, token, expires_in, refresh_token=None) -> Session:
        session = Session(
            id=secrets.token_urlsafe(24),
            owner_identity=owner_identity,
            display_name=display_name,
            token=token,
            refresh_token=refresh_token,
            expires_at=self.clock() + float(expires_in),
        )
        with self._lock:
            self._sessions[session.id] = session
        self.logger.info(f"[session-create] user={owner_identity} expires_in={expires_in}s")
        return session

    def get(self, session_id) -> Optional[Session]:
        if not session_id:
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def verify(self, session_id) -> Optional[Session]:
        """Return the live session for ``session_id``, or None if unknown or expired."""
        session = self.get(session_id)
        if session is None or session.is_expired(self.clock()):
            return None
        return session

    def refresh(self, session_id, token, expires_in, refresh_token=None) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            session.token = token
            session.expires_at = self.clock() + float(expires_in)
            if refresh_token:
                session.refresh_token = refresh_token
        self.logger.info(f"[session-refresh] user={session.owner_identity} expires_in={expires_in}s")
        return session

    def delete(self, session_id) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def sweep_expired(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.is_expired(now)]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            self.logger.info(f"[session-sweep] removed={len(expired)}")
        return len(expired)

    def __len__(self):
        with self._lock:
            return len(self._sessions)


def run_session_sweeper(socketio, store: SessionStore, interval_sec: int) -> None:
    """Background loop started alongside the server."""
    while True:
        socketio.sleep(interval_sec)
        store.sweep_expired()
