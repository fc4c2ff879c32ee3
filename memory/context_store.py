"""Per-session conversation context with follow-up focus tracking."""

import logging
import time
from typing import Any, Callable, Dict, Optional

from schemas.context import Intent
from schemas.evidence import ResourceResult, to_resource_results
from utils.text import clean_result_title, extract_location_from_query

from .models import (
    FocusContext,
    Session,
    Turn,
    FOCUS_TIMEOUT_SECONDS,
    MAX_HISTORY_TURNS,
    MAX_FOCUS_RESULTS,
)
from .session_store import SessionStore, InMemorySessionStore

logger = logging.getLogger(__name__)


class ConversationContextStore:
    """
    Keeps a bounded history per session and the focus context that
    follow-up questions resolve against.

    The focus context expires lazily: any read after the timeout clears it
    and writes the session back. This store never calls a provider.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        max_history: int = MAX_HISTORY_TURNS,
        focus_timeout: float = FOCUS_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize context store.

        Args:
            store: Session backend (defaults to in-memory)
            max_history: Number of turns kept per session
            focus_timeout: Seconds before a focus context expires
            clock: Time source, injectable for tests
        """
        self.store = store if store is not None else InMemorySessionStore()
        self.max_history = max_history
        self.focus_timeout = focus_timeout
        self.clock = clock

    @staticmethod
    def _valid_key(session_key: Optional[str]) -> bool:
        return isinstance(session_key, str) and bool(session_key.strip())

    def _expire_focus(self, session: Session, now: float) -> bool:
        focus = session.last_query_context
        if focus is not None and focus.is_expired(now, self.focus_timeout):
            logger.debug(
                f"Focus context for {session.session_key} expired "
                f"after {focus.age(now):.0f}s"
            )
            session.last_query_context = None
            return True
        return False

    def get(self, session_key: str) -> Optional[Session]:
        """
        Get a session, clearing its focus context if it is too old.

        Args:
            session_key: Opaque session identifier

        Returns:
            Session, or None for unknown or blank keys
        """
        if not self._valid_key(session_key):
            return None

        session = self.store.get(session_key)
        if session is None:
            return None

        if self._expire_focus(session, self.clock()):
            self.store.set(session_key, session)
        return session

    def update(
        self,
        session_key: str,
        intent: Intent,
        query: str,
        response: Any,
        search_results: Any = None,
        matched_result: Optional[Any] = None,
    ) -> None:
        """
        Record a turn for a session.

        Either builds a fresh focus context from ``search_results`` or, when
        only ``matched_result`` is given, narrows the existing focus context
        to that result without touching its result list.

        Args:
            session_key: Opaque session identifier
            intent: Classified intent of the turn
            query: Caller utterance
            response: Response text or dict of channel texts
            search_results: Optional raw or normalized search results
            matched_result: Optional result a follow-up resolved to
        """
        if not self._valid_key(session_key):
            logger.debug("Ignoring context update without a session key")
            return

        now = self.clock()
        session = self.store.get(session_key) or Session(
            session_key=session_key, created_at=now, updated_at=now
        )
        stored_response = self._normalize_response(response)

        session.history.append(Turn(
            intent=intent,
            query=query,
            response=stored_response,
            created_at=now,
        ))
        if len(session.history) > self.max_history:
            session.history = session.history[-self.max_history:]

        session.last_intent = intent
        session.last_query = query
        session.last_response = stored_response
        session.updated_at = now

        results = to_resource_results(search_results, limit=MAX_FOCUS_RESULTS)
        if results:
            session.last_query_context = FocusContext(
                intent=intent,
                query=query,
                location=extract_location_from_query(query),
                results=results,
                voice_response=stored_response.get("voice"),
                sms_response=stored_response.get("sms"),
                created_at=now,
            )
            logger.debug(f"New focus context for {session_key} with {len(results)} results")
        elif matched_result is not None:
            self._expire_focus(session, now)
            focus = session.last_query_context
            if focus is not None:
                matched = ResourceResult.from_search_hit(matched_result)
                focus.matched_result = matched
                focus.focus_result_title = clean_result_title(matched.title)
                focus.created_at = now

        self.store.set(session_key, session)

    def clear(self, session_key: str) -> None:
        """Forget everything about a session."""
        if not self._valid_key(session_key):
            return
        self.store.delete(session_key)
        logger.debug(f"Cleared context for {session_key}")

    @staticmethod
    def _normalize_response(response: Any) -> Dict[str, Any]:
        if response is None:
            return {}
        if hasattr(response, "as_context_response"):
            return response.as_context_response()
        if isinstance(response, dict):
            return dict(response)
        return {"voice": str(response)}
