"""Session storage backends."""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .models import Session


class SessionStore(ABC):
    """Abstract key/value store for conversation sessions."""

    @abstractmethod
    def get(self, session_key: str) -> Optional[Session]:
        """Return the stored session or None."""
        pass

    @abstractmethod
    def set(self, session_key: str, session: Session) -> None:
        """Store or replace a session."""
        pass

    @abstractmethod
    def delete(self, session_key: str) -> None:
        """Remove a session if present."""
        pass


class InMemorySessionStore(SessionStore):
    """Process-local session store. Lost on restart."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, session_key: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_key)

    def set(self, session_key: str, session: Session) -> None:
        with self._lock:
            self._sessions[session_key] = session

    def delete(self, session_key: str) -> None:
        with self._lock:
            self._sessions.pop(session_key, None)

    def __len__(self) -> int:
        return len(self._sessions)
