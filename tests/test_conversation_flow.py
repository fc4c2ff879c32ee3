"""Tests for conversation flow rules."""

from agents.conversation_flow import (
    EMERGENCY_PREFIX,
    GOODBYE_MESSAGE,
    REDIRECT_MESSAGE,
    REENGAGE_MESSAGE,
    REENGAGEMENT_MESSAGES,
    ConversationFlowManager,
    with_emergency_prefix,
)
from memory.models import Session, Turn
from schemas.context import Intent
from schemas.responses import Priority


def session_with(*intents):
    return Session(
        session_key="s1",
        history=[Turn(intent=intent, query="q", created_at=0) for intent in intents],
    )


class TestConversationFlowManager:
    """Test end-of-call, off-topic and emergency handling."""

    def setup_method(self):
        """Set up test fixtures."""
        self.manager = ConversationFlowManager()

    def test_end_conversation(self):
        """Test that goodbyes end the call."""
        decision = self.manager.decide(Intent.END_CONVERSATION, "bye")

        assert decision.should_end_call is True
        assert decision.should_continue is False
        assert decision.redirection_message == GOODBYE_MESSAGE

    def test_off_topic_goodbye(self):
        """Test goodbye wording that was classified off topic."""
        decision = self.manager.decide(Intent.OFF_TOPIC, "ok bye then")

        assert decision.should_end_call is True

    def test_off_topic_with_support_wording(self):
        """Test re-engagement when the caller mentions support."""
        decision = self.manager.decide(Intent.OFF_TOPIC, "can you help me with my taxes")

        assert decision.should_reengage is True
        assert decision.redirection_message == REENGAGE_MESSAGE

    def test_first_off_topic_redirects(self):
        """Test the plain redirect."""
        decision = self.manager.decide(Intent.OFF_TOPIC, "what's the weather", session_with(Intent.FIND_SHELTER))

        assert decision.should_reengage is False
        assert decision.redirection_message == REDIRECT_MESSAGE

    def test_repeated_off_topic_reengages(self):
        """Test re-engagement after repeated off-topic turns."""
        session = session_with(Intent.FIND_SHELTER, Intent.OFF_TOPIC, Intent.OFF_TOPIC)

        decision = self.manager.decide(Intent.OFF_TOPIC, "tell me a joke", session)

        assert decision.should_reengage is True
        assert decision.redirection_message == REENGAGEMENT_MESSAGES[2]

    def test_reengagement_only_counts_recent_turns(self):
        """Test that old off-topic turns fall out of the window."""
        session = session_with(Intent.OFF_TOPIC, Intent.OFF_TOPIC, Intent.FIND_SHELTER, Intent.LEGAL_SERVICES, Intent.OFF_TOPIC)

        assert self.manager.should_attempt_reengagement(session) is False

    def test_reengagement_messages_rotate(self):
        """Test that consecutive re-engagements differ."""
        first = self.manager.reengagement_message(session_with(Intent.OFF_TOPIC, Intent.OFF_TOPIC))
        second = self.manager.reengagement_message(session_with(Intent.OFF_TOPIC, Intent.OFF_TOPIC, Intent.OFF_TOPIC))

        assert first != second

    def test_emergency_priority(self):
        """Test that emergencies are flagged high priority and routed normally."""
        decision = self.manager.decide(Intent.EMERGENCY_HELP, "he has a gun")

        assert decision.priority == Priority.HIGH
        assert decision.redirection_message is None

    def test_resource_intent_passes_through(self):
        """Test that resource questions are not intercepted."""
        decision = self.manager.decide(Intent.FIND_SHELTER, "I need a shelter")

        assert decision.should_continue is True
        assert decision.redirection_message is None
        assert decision.priority == Priority.NORMAL


class TestEmergencyPrefix:
    """Test the 911 prefix."""

    def test_prefix_added(self):
        """Test that replies lead with the 911 line."""
        assert with_emergency_prefix("Stay safe.") == f"{EMERGENCY_PREFIX} Stay safe."

    def test_prefix_not_duplicated(self):
        """Test that replies already mentioning 911 are unchanged."""
        text = "Please call 911 now."
        assert with_emergency_prefix(text) == text
