"""Response schemas returned to the transport layer."""

import time
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from .context import Channel, Intent
from .evidence import ResourceResult


class FollowUpType(str, Enum):
    """Kind of answer produced for a follow-up question."""
    SEND_DETAILS = "send_details"
    LOCATION_INFO = "location_info"
    PHONE_INFO = "phone_info"
    SPECIFIC_RESULT = "specific_result"
    DETAILED_INFO = "detailed_info"
    GENERAL_FOLLOW_UP = "general_follow_up"
    OFF_TOPIC = "off_topic"
    NO_CONTEXT = "no_context"


class FollowUpResponse(BaseModel):
    """Answer to a follow-up about previously returned results."""
    type: FollowUpType
    intent: Intent
    voice_response: str
    sms_response: Optional[str] = None
    results: list[ResourceResult] = Field(default_factory=list)
    matched_result: Optional[ResourceResult] = None


class ResponseSource(str, Enum):
    """Which path produced a response."""
    SEARCH = "search"
    GENERATIVE = "generative"
    SEARCH_FALLBACK = "search_fallback"
    GENERATIVE_FALLBACK = "generative_fallback"
    FALLBACK = "fallback"
    FOLLOW_UP = "follow_up"
    CONVERSATION_FLOW = "conversation_flow"


class FormattedResponse(BaseModel):
    """Channel-formatted response from the response router."""
    success: bool = True
    source: ResponseSource
    channel: Channel = Channel.VOICE
    voice_response: str
    sms_response: Optional[str] = None
    web_response: Optional[str] = None
    summary: Optional[str] = None
    results: list[ResourceResult] = Field(default_factory=list)
    location: Optional[str] = None
    fallback_reason: Optional[str] = None
    created_at: float = Field(default_factory=time.time)

    @property
    def is_degraded(self) -> bool:
        return self.source in (
            ResponseSource.SEARCH_FALLBACK,
            ResponseSource.GENERATIVE_FALLBACK,
            ResponseSource.FALLBACK,
        )

    def text_for(self, channel: Channel) -> str:
        """Pick the best text for a channel."""
        if channel == Channel.SMS and self.sms_response:
            return self.sms_response
        if channel == Channel.WEB and self.web_response:
            return self.web_response
        return self.voice_response

    def as_context_response(self) -> dict:
        """Channel texts stored on a conversation turn."""
        return {
            "voice": self.voice_response,
            "sms": self.sms_response,
            "web": self.web_response,
            "summary": self.summary,
        }


class Priority(str, Enum):
    """Handling priority for a turn."""
    NORMAL = "normal"
    HIGH = "high"


class TurnResult(BaseModel):
    """Everything the transport needs after one utterance."""
    session_key: str
    intent: Intent
    confidence: float = 0.0
    reply: str
    source: ResponseSource = ResponseSource.GENERATIVE
    response: Optional[FormattedResponse] = None
    follow_up: Optional[FollowUpResponse] = None
    should_end_call: bool = False
    priority: Priority = Priority.NORMAL
