"""Conversation memory models."""

import time
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field

from schemas.context import Intent
from schemas.evidence import ResourceResult

FOCUS_TIMEOUT_SECONDS = 300.0
MAX_HISTORY_TURNS = 5
MAX_FOCUS_RESULTS = 3


class Turn(BaseModel):
    """A single caller turn. Immutable once appended."""
    model_config = ConfigDict(frozen=True)

    intent: Intent
    query: str
    response: Dict[str, Any] = Field(default_factory=dict)  # Channel texts
    created_at: float = Field(default_factory=time.time)


class FocusContext(BaseModel):
    """Results from the last search turn that follow-ups can refer to."""
    intent: Intent
    query: str = ""
    location: Optional[str] = None
    results: List[ResourceResult] = Field(default_factory=list, max_length=MAX_FOCUS_RESULTS)
    focus_result_title: Optional[str] = None
    matched_result: Optional[ResourceResult] = None
    voice_response: Optional[str] = None
    sms_response: Optional[str] = None
    created_at: float = Field(default_factory=time.time)

    def age(self, now: float) -> float:
        return now - self.created_at

    def is_expired(self, now: float, timeout: float = FOCUS_TIMEOUT_SECONDS) -> bool:
        return self.age(now) > timeout


class Session(BaseModel):
    """Per-caller conversation state."""
    session_key: str
    history: List[Turn] = Field(default_factory=list)
    last_intent: Optional[Intent] = None
    last_query: Optional[str] = None
    last_response: Optional[Dict[str, Any]] = None
    last_query_context: Optional[FocusContext] = None
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    def recent_intents(self, count: int) -> List[Intent]:
        return [turn.intent for turn in self.history[-count:]]
