"""Tests for search query rewriting."""

import asyncio

from agents.query_rewriter import QueryRewriter
from memory.context_store import ConversationContextStore
from retrieval.geocoding import LocationDetector, LocationInfo
from schemas.context import Intent
from fakes import FakeClock, SHELTER_HITS

OPERATORS = QueryRewriter.SHELTER_OPERATORS


class BrokenDetector(LocationDetector):
    async def detect(self, query):
        raise RuntimeError("detector exploded")


class TestQueryRewriter:
    """Test location handling and intent term injection."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.context_store = ConversationContextStore(clock=self.clock)
        self.rewriter = QueryRewriter(
            location_detector=LocationDetector(),
            context_store=self.context_store,
        )

    def rewrite(self, utterance, intent, session_key=None):
        return asyncio.run(self.rewriter.rewrite(utterance, intent, session_key))

    def test_shelter_query_with_us_location(self):
        """Test that US shelter queries get search operators once."""
        query = self.rewrite("I need a shelter near Austin", Intent.FIND_SHELTER)

        assert query == f"I need a shelter near Austin {OPERATORS}"
        assert query.count("site:org") == 1

    def test_shelter_terms_added_when_missing(self):
        """Test that shelter wording is added for a US location."""
        query = self.rewrite("Can you help me find somewhere safe in Dallas", Intent.FIND_SHELTER)

        assert query == f"domestic violence shelter near Dallas {OPERATORS}"

    def test_fillers_removed(self):
        """Test that leading greetings and hedges are dropped."""
        query = self.rewrite("Hi, um, I need a shelter in Denver", Intent.FIND_SHELTER)

        assert query.startswith("I need a shelter in Denver")

    def test_non_us_location_untouched(self):
        """Test that non-US locations get no US-specific rewriting."""
        query = self.rewrite("I need a shelter in Paris, France", Intent.FIND_SHELTER)

        assert query == "I need a shelter in Paris, France"

    def test_state_abbreviation_is_us(self):
        """Test that a two-letter state suffix marks a US location."""
        query = self.rewrite("I need a shelter in Springfield, IL", Intent.FIND_SHELTER)

        assert OPERATORS in query

    def test_legal_terms_injected(self):
        """Test legal-aid term injection."""
        query = self.rewrite("I need a lawyer in Houston", Intent.LEGAL_SERVICES)

        assert query == "I need a lawyer in Houston legal aid"

    def test_counseling_terms_not_duplicated(self):
        """Test that present terms are not added again."""
        query = self.rewrite("I want counseling", Intent.COUNSELING_SERVICES)

        assert query == "I want counseling"

    def test_general_information_terms(self):
        """Test general information term injection."""
        query = self.rewrite("What is domestic violence", Intent.GENERAL_INFORMATION)

        assert query == "What is domestic violence information resources guide"

    def test_other_resources_terms(self):
        """Test other-resources term injection."""
        query = self.rewrite("I need help with money", Intent.OTHER_RESOURCES)

        assert query == "I need help with money support resources assistance"

    def test_location_appended_for_other_intents(self):
        """Test that a remembered US location is appended for non-shelter intents."""
        self.context_store.update(
            "s1", Intent.FIND_SHELTER, "I need a shelter near Austin", "r",
            search_results=SHELTER_HITS[:3],
        )

        query = self.rewrite("I need a lawyer", Intent.LEGAL_SERVICES, session_key="s1")

        assert query == "I need a lawyer in Austin legal aid"

    def test_remembered_location_for_shelter(self):
        """Test that the focus context location is used when none is spoken."""
        self.context_store.update(
            "s1", Intent.FIND_SHELTER, "I need a shelter near Austin", "r",
            search_results=SHELTER_HITS[:3],
        )

        query = self.rewrite("Are there any other shelters?", Intent.FIND_SHELTER, session_key="s1")

        assert "near Austin" in query
        assert query.endswith(OPERATORS)

    def test_current_location_phrase_not_a_location(self):
        """Test that "near me" does not produce a location."""
        query = self.rewrite("I need a shelter near me", Intent.FIND_SHELTER)

        assert query == "I need a shelter near me"

    def test_empty_utterance(self):
        """Test that empty input is returned unchanged."""
        assert self.rewrite("", Intent.FIND_SHELTER) == ""

    def test_error_returns_original(self):
        """Test that internal failures return the original utterance."""
        rewriter = QueryRewriter(location_detector=BrokenDetector())

        query = asyncio.run(rewriter.rewrite("I need a shelter near Austin", Intent.FIND_SHELTER))

        assert query == "I need a shelter near Austin"


class TestLocationInfoDefaults:
    """Test the detector without a geocoder."""

    def test_detect_without_location(self):
        """Test detection when no place is mentioned."""
        info = asyncio.run(LocationDetector().detect("I need help"))

        assert info == LocationInfo()
