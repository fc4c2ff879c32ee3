"""Conversation flow rules: ending calls, off-topic redirection, emergencies."""

import logging
import re
from typing import Optional

from pydantic import BaseModel

from memory.models import Session
from schemas.context import Intent
from schemas.responses import Priority

logger = logging.getLogger(__name__)

GOODBYE_MESSAGE = (
    "Thank you for calling. I hope I was able to help. If you need support in the "
    "future, please don't hesitate to call back. Take care."
)
REENGAGE_MESSAGE = (
    "I'm here to help with domestic violence support and resources. "
    "What specific information or assistance do you need today?"
)
REDIRECT_MESSAGE = (
    "I'm specifically designed to help with domestic violence support and resources. "
    "If you have questions about that, I'd be happy to help. Otherwise, you might want "
    "to try a different service for other topics."
)
REENGAGEMENT_MESSAGES = [
    "I'm here specifically to help with domestic violence support and resources. "
    "Is there anything related to that I can assist you with?",
    "I want to make sure you get the help you need. Do you have questions about domestic "
    "violence resources, shelters, legal help, or counseling services?",
    "I'm designed to help with domestic violence support. If you're experiencing domestic "
    "violence or know someone who is, I can help you find resources and information.",
    "Let me know if you need help finding shelters, legal services, counseling, or other "
    "domestic violence resources. I'm here to help.",
]
EMERGENCY_PREFIX = "If you're in immediate danger, please call 911 right now."

GOODBYE_PATTERN = re.compile(r"\b(goodbye|bye|end call|hang up)\b", re.IGNORECASE)
REENGAGE_PATTERN = re.compile(r"\b(help|support|domestic|violence)\b", re.IGNORECASE)


class FlowDecision(BaseModel):
    """What the conversation should do next."""
    should_continue: bool = True
    should_end_call: bool = False
    should_reengage: bool = False
    redirection_message: Optional[str] = None
    priority: Priority = Priority.NORMAL


class ConversationFlowManager:
    """Applies end-of-call, off-topic and emergency rules to a classified turn."""

    def __init__(self, reengage_window: int = 3, reengage_threshold: int = 2):
        self.reengage_window = reengage_window
        self.reengage_threshold = reengage_threshold

    def should_attempt_reengagement(self, session: Optional[Session]) -> bool:
        """True when the caller has been off topic for most of the recent turns."""
        if session is None or not session.history:
            return False
        recent = session.recent_intents(self.reengage_window)
        return recent.count(Intent.OFF_TOPIC) >= self.reengage_threshold

    def reengagement_message(self, session: Optional[Session]) -> str:
        # Rotate through messages so repeated redirections differ
        off_topic_turns = 0
        if session is not None:
            off_topic_turns = sum(1 for turn in session.history if turn.intent == Intent.OFF_TOPIC)
        return REENGAGEMENT_MESSAGES[off_topic_turns % len(REENGAGEMENT_MESSAGES)]

    def decide(self, intent: Intent, utterance: str, session: Optional[Session] = None) -> FlowDecision:
        """
        Decide how to handle a classified turn.

        Args:
            intent: Classified intent of the current utterance
            utterance: Caller utterance
            session: Session before this turn is recorded

        Returns:
            FlowDecision; a redirection_message means the turn is answered
            without routing to search or generation
        """
        intent = Intent(intent)

        if intent == Intent.END_CONVERSATION:
            return FlowDecision(
                should_continue=False,
                should_end_call=True,
                redirection_message=GOODBYE_MESSAGE,
            )

        if intent == Intent.OFF_TOPIC:
            if GOODBYE_PATTERN.search(utterance or ""):
                return FlowDecision(
                    should_continue=False,
                    should_end_call=True,
                    redirection_message=GOODBYE_MESSAGE,
                )
            if REENGAGE_PATTERN.search(utterance or ""):
                return FlowDecision(should_reengage=True, redirection_message=REENGAGE_MESSAGE)
            if self.should_attempt_reengagement(session):
                logger.info("Caller repeatedly off topic, attempting re-engagement")
                return FlowDecision(
                    should_reengage=True,
                    redirection_message=self.reengagement_message(session),
                )
            return FlowDecision(redirection_message=REDIRECT_MESSAGE)

        if intent == Intent.EMERGENCY_HELP:
            return FlowDecision(priority=Priority.HIGH)

        return FlowDecision()


def with_emergency_prefix(text: str) -> str:
    """Lead with the 911 line unless the reply already mentions 911."""
    if "911" in (text or ""):
        return text
    return f"{EMERGENCY_PREFIX} {text}".strip()
