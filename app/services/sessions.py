# app/services/sessions.py
from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

from app.services.locks import ReadWriteLock

logger = logging.getLogger(__name__)

TokenFactory = Callable[[str], str]


def username_token(username: str) -> str:
    """
    Token equals the username: one session slot per user, a new login
    replaces the previous one. Predictable; use `random_token` when the
    deployment cannot trust its network.
    """
    return username


def random_token(username: str) -> str:
    return secrets.token_urlsafe(32)


TOKEN_FACTORIES: Dict[str, TokenFactory] = {
    "username": username_token,
    "random": random_token,
}


@dataclass(frozen=True)
class Session:
    token: str
    username: str
    last_activity: float


class SessionStore:
    """
    In-memory token -> session map. Sessions live until removed, cleared
    globally, or (only when `idle_timeout_sec` is set) found idle on lookup.
    There is no background sweep.
    """

    def __init__(
        self,
        *,
        token_factory: TokenFactory = username_token,
        idle_timeout_sec: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._token_factory = token_factory
        self._idle_timeout = idle_timeout_sec
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = ReadWriteLock()

    def create_session(self, username: str) -> str:
        token = self._token_factory(username)
        with self._lock.write():
            self._sessions[token] = Session(token, username, self._clock())
        logger.info("session created for %s", username)
        return token

    def touch(self, token: Optional[str]) -> Optional[Session]:
        """Refresh and return the session for `token`, or None."""
        if not token:
            return None
        with self._lock.write():
            session = self._sessions.get(token)
            if session is None:
                return None
            now = self._clock()
            if self._idle_timeout is not None and now - session.last_activity > self._idle_timeout:
                del self._sessions[token]
                logger.info("session for %s expired after idle timeout", session.username)
                return None
            session = replace(session, last_activity=now)
            self._sessions[token] = session
            return session

    def validate_and_touch(self, token: Optional[str]) -> bool:
        return self.touch(token) is not None

    def get(self, token: str) -> Optional[Session]:
        with self._lock.read():
            return self._sessions.get(token)

    def remove_session(self, token: str) -> bool:
        with self._lock.write():
            return self._sessions.pop(token, None) is not None

    def clear_all_sessions(self) -> None:
        with self._lock.write():
            count = len(self._sessions)
            self._sessions = {}
        logger.warning("all sessions cleared (%d dropped)", count)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._sessions)
