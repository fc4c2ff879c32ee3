"""Tests for response routing."""

import asyncio

import pytest

from agents.formatting import GENERATIVE_FALLBACK_MESSAGE, LAST_RESORT_MESSAGE, SMS_LIMIT
from agents.response_router import (
    GenerateFirstPath,
    ResponsePath,
    ResponseRouter,
    SearchFirstPath,
    build_conversation_context,
)
from errors import ProviderUnavailable
from memory.cache import QueryCache
from memory.context_store import ConversationContextStore
from schemas.context import Channel, Intent, ResponseOptions
from schemas.evidence import SearchHit
from schemas.responses import ResponseSource
from fakes import FakeClock, FakeLLMClient, FakeSearchProvider, SHELTER_HITS


GENERATED_TEXT = (
    "Hello, thanks for asking. You can request a protective order at your county courthouse. "
    "A legal advocate can help you fill out the forms."
)


class BrokenPath(ResponsePath):
    async def respond(self, utterance, context, channel, options):
        raise RuntimeError("unexpected")


class TestSearchFirstPath:
    """Test shelter search filtering and formatting."""

    def setup_method(self):
        """Set up test fixtures."""
        self.provider = FakeSearchProvider()
        self.path = SearchFirstPath(self.provider)

    def test_filters_irrelevant_results(self):
        """Test that results without shelter wording or contact info are dropped."""
        hits = [SearchHit(**hit) for hit in SHELTER_HITS]
        results = self.path.filter_results(hits)

        assert [r.title for r in results] == [
            "SafePlace Austin - Emergency Shelter",
            "Hope Alliance Crisis Center | Round Rock",
            "Family Eldercare Housing Help",
        ]

    def test_low_score_filtered(self):
        """Test the relevance floor."""
        hit = SearchHit(**{**SHELTER_HITS[0], "score": 0.1})
        assert self.path.is_relevant_shelter(hit) is False

    def test_contact_url_counts_as_contact(self):
        """Test that an .org URL satisfies the contact requirement."""
        hit = SearchHit(title="Women's Shelter", url="https://shelter.org", content="A safe shelter.", score=0.5)
        assert self.path.is_relevant_shelter(hit) is True

    def test_build_shelter_query(self):
        """Test the query used without a rewriter."""
        query = SearchFirstPath.build_shelter_query("Austin")
        assert query == "domestic violence shelter Austin help resources contact site:org OR site:gov"

    def test_respond_formats_channels(self):
        """Test formatting of search results for every channel."""
        response = asyncio.run(self.path.respond(
            "I need a shelter near Austin", None, Channel.VOICE, ResponseOptions()
        ))

        assert response.source == ResponseSource.SEARCH
        assert response.location == "Austin"
        assert len(response.results) == 3
        assert response.voice_response.startswith("I found 3 shelters in Austin. 1. SafePlace Austin. Phone: 512-267-7233.")
        assert response.voice_response.endswith("Please call these shelters directly to check availability and policies.")
        assert len(response.sms_response) <= SMS_LIMIT
        assert "<strong>" in response.web_response
        assert self.provider.queries == [SearchFirstPath.build_shelter_query("Austin")]

    def test_respond_respects_max_results(self):
        """Test that the caller can ask for fewer results."""
        response = asyncio.run(self.path.respond(
            "I need a shelter near Austin", None, Channel.VOICE, ResponseOptions(max_results=1)
        ))

        assert len(response.results) == 1
        assert response.voice_response.startswith("I found 1 shelter in Austin.")

    def test_respond_uses_prewritten_query(self):
        """Test that an already rewritten query is sent as is."""
        asyncio.run(self.path.respond(
            "I need a shelter near Austin", None, Channel.VOICE,
            ResponseOptions(search_query="rewritten query"),
        ))

        assert self.provider.queries == ["rewritten query"]

    def test_no_results(self):
        """Test the empty result message."""
        path = SearchFirstPath(FakeSearchProvider(hits=[]))
        response = asyncio.run(path.respond("shelter in Austin", None, Channel.VOICE, ResponseOptions()))

        assert response.results == []
        assert "1-800-799-7233" in response.voice_response


class TestGenerateFirstPath:
    """Test generated responses."""

    def test_generates_channel_texts(self):
        """Test that SMS text drops greetings and fits one message."""
        path = GenerateFirstPath(FakeLLMClient(text=GENERATED_TEXT))
        response = asyncio.run(path.respond(
            "How do I get a restraining order?", None, Channel.SMS, ResponseOptions()
        ))

        assert response.source == ResponseSource.GENERATIVE
        assert response.voice_response == GENERATED_TEXT
        assert not response.sms_response.startswith("Hello")
        assert len(response.sms_response) <= SMS_LIMIT

    def test_prompt_includes_channel_and_context(self):
        """Test that channel instructions and session context reach the LLM."""
        clock = FakeClock()
        store = ConversationContextStore(clock=clock)
        store.update("s1", Intent.FIND_SHELTER, "I need a shelter near Austin", "r", search_results=SHELTER_HITS[:3])
        client = FakeLLMClient(text=GENERATED_TEXT)

        asyncio.run(GenerateFirstPath(client).respond(
            "what else can I do", store.get("s1"), Channel.VOICE, ResponseOptions(language="es-US")
        ))

        messages = client.calls[0]["messages"]
        assert "es-US" in messages[0].content
        assert "Location: Austin" in messages[1].content

    def test_no_client_raises(self):
        """Test that a missing LLM is reported as unavailable."""
        path = GenerateFirstPath(None)

        with pytest.raises(ProviderUnavailable) as exc_info:
            asyncio.run(path.respond("hi", None, Channel.VOICE, ResponseOptions()))

        assert exc_info.value.retryable is False

    def test_new_conversation_context(self):
        """Test the context summary for a new caller."""
        assert build_conversation_context(None) == "This is a new conversation."


class TestResponseRouter:
    """Test routing, caching and fallbacks."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.provider = FakeSearchProvider()
        self.llm = FakeLLMClient(text=GENERATED_TEXT)
        self.cache = QueryCache(clock=self.clock)
        self.router = ResponseRouter(
            search_path=SearchFirstPath(self.provider),
            generate_path=GenerateFirstPath(self.llm),
            cache=self.cache,
        )

    def get_response(self, utterance, channel=Channel.VOICE, options=None, router=None):
        router = router or self.router
        return asyncio.run(router.get_response(utterance, None, channel, options))

    def test_is_factual_location_search(self):
        """Test the search-first routing rule."""
        assert ResponseRouter.is_factual_location_search("I need a shelter near Austin")
        assert ResponseRouter.is_factual_location_search("looking for a safe house")
        assert not ResponseRouter.is_factual_location_search("What is a shelter?")
        assert not ResponseRouter.is_factual_location_search("How do I get a restraining order?")
        assert not ResponseRouter.is_factual_location_search("")

    def test_search_route(self):
        """Test that shelter searches use the search path."""
        response = self.get_response("I need a shelter near Austin")

        assert response.source == ResponseSource.SEARCH
        assert self.llm.calls == []

    def test_generate_route(self):
        """Test that other questions use the generate path."""
        response = self.get_response("How do I get a restraining order?")

        assert response.source == ResponseSource.GENERATIVE
        assert self.provider.queries == []

    def test_cache_hit(self):
        """Test that repeated utterances are served from cache."""
        first = self.get_response("I need a shelter near Austin")
        second = self.get_response("  i need a SHELTER near austin ")

        assert second is first
        assert len(self.provider.queries) == 1

    def test_cache_is_per_channel(self):
        """Test that channels do not share cached responses."""
        self.get_response("I need a shelter near Austin", channel=Channel.VOICE)
        self.get_response("I need a shelter near Austin", channel=Channel.SMS)

        assert len(self.provider.queries) == 2

    def test_cache_expires(self):
        """Test that responses are refreshed after the TTL."""
        self.get_response("I need a shelter near Austin")
        self.clock.advance(3600)
        self.get_response("I need a shelter near Austin")

        assert len(self.provider.queries) == 2

    def test_cache_bypass(self):
        """Test the use_cache option."""
        options = ResponseOptions(use_cache=False)
        self.get_response("I need a shelter near Austin", options=options)
        self.get_response("I need a shelter near Austin", options=options)

        assert len(self.provider.queries) == 2
        assert len(self.cache) == 0

    def test_search_failure_falls_back_to_generation(self):
        """Test that search outages are answered by the LLM and not cached."""
        provider = FakeSearchProvider(error=ProviderUnavailable("tavily", "connection refused"))
        router = ResponseRouter(SearchFirstPath(provider), GenerateFirstPath(self.llm), cache=self.cache)

        response = self.get_response("I need a shelter near Austin", router=router)
        self.get_response("I need a shelter near Austin", router=router)

        assert response.source == ResponseSource.SEARCH_FALLBACK
        assert response.success is True
        assert "search unavailable: connection refused" in response.fallback_reason
        assert response.voice_response == GENERATED_TEXT
        assert len(provider.queries) == 2

    def test_generation_failure_uses_hotline(self):
        """Test the hotline message when the LLM fails."""
        router = ResponseRouter(
            SearchFirstPath(self.provider),
            GenerateFirstPath(FakeLLMClient(error=ProviderUnavailable("openai", "timed out"))),
            cache=self.cache,
        )

        response = self.get_response("How do I get a restraining order?", router=router)

        assert response.source == ResponseSource.GENERATIVE_FALLBACK
        assert response.success is True
        assert response.voice_response == GENERATIVE_FALLBACK_MESSAGE
        assert len(self.cache) == 0

    def test_both_paths_down(self):
        """Test search and generation failing together."""
        router = ResponseRouter(
            SearchFirstPath(FakeSearchProvider(error=ProviderUnavailable("tavily", "down"))),
            GenerateFirstPath(None),
            cache=self.cache,
        )

        response = self.get_response("I need a shelter near Austin", router=router)

        assert response.source == ResponseSource.GENERATIVE_FALLBACK
        assert response.fallback_reason.startswith("search unavailable: down;")

    def test_untyped_search_error_falls_back_to_generation(self):
        """Test that any search provider error is answered by the LLM."""
        provider = FakeSearchProvider(error=RuntimeError("boom"))
        router = ResponseRouter(SearchFirstPath(provider), GenerateFirstPath(self.llm), cache=self.cache)

        response = self.get_response("I need a shelter near Austin", router=router)

        assert response.source == ResponseSource.SEARCH_FALLBACK
        assert response.success is True
        assert response.fallback_reason == "search failed: boom"
        assert len(self.cache) == 0

    def test_broken_paths_use_hotline(self):
        """Test that errors from both paths still produce the hotline reply."""
        router = ResponseRouter(BrokenPath(), BrokenPath(), cache=self.cache)

        response = self.get_response("I need a shelter near Austin", router=router)

        assert response.success is True
        assert response.source == ResponseSource.GENERATIVE_FALLBACK
        assert response.voice_response == GENERATIVE_FALLBACK_MESSAGE

    def test_unexpected_error_returns_last_resort(self):
        """Test that unexpected errors never escape."""
        response = self.get_response("I need a shelter near Austin", channel="pager")

        assert response.success is False
        assert response.source == ResponseSource.FALLBACK
        assert response.channel == Channel.VOICE
        assert response.voice_response == LAST_RESORT_MESSAGE

    def test_cache_is_per_language(self):
        """Test that a reply in one language is not served for another."""
        self.get_response("How do I get a restraining order?", options=ResponseOptions(language="en-US"))
        self.get_response("How do I get a restraining order?", options=ResponseOptions(language="es-ES"))

        assert len(self.llm.calls) == 2
        assert "es-ES" in self.llm.calls[1]["messages"][0].content

    def test_cache_is_per_remembered_location(self):
        """Test that callers with different remembered cities get their own results."""
        clock = FakeClock()
        sessions = ConversationContextStore(clock=clock)
        sessions.update("a", Intent.FIND_SHELTER, "I need a shelter near Austin", "r", search_results=SHELTER_HITS)
        sessions.update("b", Intent.FIND_SHELTER, "I need a shelter near Dallas", "r", search_results=SHELTER_HITS)

        first = asyncio.run(self.router.get_response("find a shelter nearby", sessions.get("a")))
        second = asyncio.run(self.router.get_response("find a shelter nearby", sessions.get("b")))

        assert first.location == "Austin"
        assert second.location == "Dallas"
        assert len(self.provider.queries) == 2

    def test_cache_is_per_search_query(self):
        """Test that distinct rewritten queries are not conflated."""
        self.get_response("find a shelter nearby", options=ResponseOptions(search_query="shelter near Austin"))
        self.get_response("find a shelter nearby", options=ResponseOptions(search_query="shelter near Dallas"))

        assert self.provider.queries == ["shelter near Austin", "shelter near Dallas"]

    def test_cache_key_parts(self):
        """Test the cache key layout."""
        key = ResponseRouter.cache_key(
            " I need a SHELTER near Austin ", Channel.SMS, ResponseOptions(language="es-ES")
        )
        assert key == "sms|es-es|3|i need a shelter near austin|austin"
        assert ResponseRouter.cache_key("How do I get a restraining order?", Channel.VOICE) == (
            "voice|en-us|3|how do i get a restraining order?"
        )

    def test_text_for_channel(self):
        """Test channel text selection."""
        response = self.get_response("I need a shelter near Austin", channel=Channel.WEB)

        assert response.text_for(Channel.WEB) == response.web_response
        assert response.text_for(Channel.SMS) == response.sms_response
        assert response.text_for(Channel.VOICE) == response.voice_response
