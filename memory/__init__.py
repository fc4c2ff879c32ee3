"""Conversation memory and response caching."""

from .models import Session, Turn, FocusContext
from .cache import QueryCache, CacheEntry
from .session_store import SessionStore, InMemorySessionStore
from .context_store import ConversationContextStore

__all__ = [
    "Session",
    "Turn",
    "FocusContext",
    "QueryCache",
    "CacheEntry",
    "SessionStore",
    "InMemorySessionStore",
    "ConversationContextStore",
]
