"""Routes each utterance to a factual search answer or a generated answer."""

import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional

from errors import ProviderUnavailable
from llm.base_client import BaseLLMClient, Message
from memory.cache import QueryCache
from memory.models import Session
from retrieval.search_provider import BaseSearchProvider
from schemas.context import Channel, Intent, ResponseOptions
from schemas.evidence import SearchHit, ResourceResult, to_resource_results
from schemas.responses import FormattedResponse, ResponseSource
from utils.text import PHONE_PATTERN, extract_location_from_query, normalize_text

from .formatting import (
    GENERATIVE_FALLBACK_MESSAGE,
    LAST_RESORT_MESSAGE,
    format_results_summary,
    format_sms_results,
    format_voice_results,
    format_web_results,
    sms_from_text,
    summary_from_text,
)
from .prompts import USER_PROMPT_TEMPLATE, instructions_for
from .query_rewriter import QueryRewriter

logger = logging.getLogger(__name__)

SHELTER_ROUTING_KEYWORDS = [
    "shelter", "safe house", "emergency housing", "crisis center",
    "refuge", "place to stay", "safe place", "emergency shelter",
]
LOCATION_INDICATOR_PATTERN = re.compile(
    r"\b(near me|in|at|around|close to|nearby|find|search for|looking for|need)\b",
    re.IGNORECASE,
)
RELEVANT_SHELTER_KEYWORDS = ["shelter", "safe house", "crisis center", "domestic violence"]
CONTACT_URL_PATTERN = re.compile(r"www\.|\.org\b|\.gov\b", re.IGNORECASE)

RESPONSE_CACHE_TTL = 3600.0


def build_conversation_context(context: Optional[Session]) -> str:
    """Plain-text summary of the session for the generation prompt."""
    if context is None or not context.history:
        return "This is a new conversation."

    lines = ["Previous conversation context:"]
    focus = context.last_query_context
    if focus is not None and focus.location:
        lines.append(f"- Location: {focus.location}")
    if context.last_query:
        lines.append(f"- Last query: \"{context.last_query}\"")
    if context.last_intent:
        lines.append(f"- Last intent: {context.last_intent.value}")
    if focus is not None and focus.results:
        lines.append(f"- Previous results: {len(focus.results)} items found")
    return "\n".join(lines)


class ResponsePath(ABC):
    """One way of producing a response."""

    @abstractmethod
    async def respond(
        self,
        utterance: str,
        context: Optional[Session],
        channel: Channel,
        options: ResponseOptions
    ) -> FormattedResponse:
        """
        Produce a formatted response.

        Raises:
            ProviderUnavailable: If the path's provider cannot answer
        """
        pass


class SearchFirstPath(ResponsePath):
    """Web search for shelters, filtered to contactable, relevant results."""

    def __init__(
        self,
        search_provider: BaseSearchProvider,
        query_rewriter: Optional[QueryRewriter] = None,
        relevance_floor: float = 0.2
    ):
        self.search_provider = search_provider
        self.query_rewriter = query_rewriter
        self.relevance_floor = relevance_floor

    @staticmethod
    def extract_location(utterance: str, context: Optional[Session]) -> Optional[str]:
        location = extract_location_from_query(utterance)
        if location:
            return location
        focus = context.last_query_context if context else None
        return focus.location if focus else None

    @staticmethod
    def build_shelter_query(location: Optional[str]) -> str:
        query = "domestic violence shelter"
        if location:
            query += f" {location}"
        return f"{query} help resources contact site:org OR site:gov"

    def is_relevant_shelter(self, hit: SearchHit) -> bool:
        """Relevant means a shelter keyword plus some way to make contact."""
        if hit.score < self.relevance_floor or not hit.title or not hit.content:
            return False
        text = f"{hit.title} {hit.content}".lower()
        if not any(keyword in text for keyword in RELEVANT_SHELTER_KEYWORDS):
            return False
        return bool(PHONE_PATTERN.search(hit.content) or CONTACT_URL_PATTERN.search(hit.url))

    def filter_results(self, hits: List[SearchHit], limit: int = 3) -> List[ResourceResult]:
        relevant = [hit for hit in hits if self.is_relevant_shelter(hit)]
        logger.info(f"{len(relevant)} of {len(hits)} search results are relevant shelters")
        return to_resource_results(relevant, limit=limit)

    async def _search_query(
        self,
        utterance: str,
        location: Optional[str],
        options: ResponseOptions
    ) -> str:
        if options.search_query:
            return options.search_query
        if self.query_rewriter is not None:
            return await self.query_rewriter.rewrite(
                utterance, Intent.FIND_SHELTER, options.session_key
            )
        return self.build_shelter_query(location)

    async def respond(
        self,
        utterance: str,
        context: Optional[Session],
        channel: Channel,
        options: ResponseOptions
    ) -> FormattedResponse:
        location = self.extract_location(utterance, context)
        query = await self._search_query(utterance, location, options)

        search = await self.search_provider.search(query)
        results = self.filter_results(search.results, limit=options.max_results)

        return FormattedResponse(
            source=ResponseSource.SEARCH,
            channel=channel,
            voice_response=format_voice_results(results, location),
            sms_response=format_sms_results(results, location),
            web_response=format_web_results(results, location),
            summary=format_results_summary(results, location),
            results=results,
            location=location,
        )


class GenerateFirstPath(ResponsePath):
    """LLM-generated conversational answer."""

    def __init__(
        self,
        llm_client: Optional[BaseLLMClient],
        max_tokens: int = 1000,
        temperature: float = 0.7
    ):
        self.llm_client = llm_client
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def respond(
        self,
        utterance: str,
        context: Optional[Session],
        channel: Channel,
        options: ResponseOptions
    ) -> FormattedResponse:
        if self.llm_client is None or not self.llm_client.is_available():
            raise ProviderUnavailable("llm", "no LLM client configured", retryable=False)

        messages = [
            Message(role="system", content=instructions_for(channel, options.language)),
            Message(role="user", content=USER_PROMPT_TEMPLATE.format(
                utterance=utterance,
                conversation_context=build_conversation_context(context),
            )),
        ]
        text = await self.llm_client.generate(
            messages, max_tokens=self.max_tokens, temperature=self.temperature
        )
        if not text:
            raise ProviderUnavailable(self.llm_client.get_provider_name(), "empty response")

        return FormattedResponse(
            source=ResponseSource.GENERATIVE,
            channel=channel,
            voice_response=text,
            sms_response=sms_from_text(text),
            web_response=text,
            summary=summary_from_text(text),
        )


class ResponseRouter:
    """
    Chooses between search-first and generate-first answers.

    Results are cached per channel, language, normalized utterance and
    search scope. Degraded answers are never cached, and get_response
    never raises.
    """

    def __init__(
        self,
        search_path: ResponsePath,
        generate_path: ResponsePath,
        cache: Optional[QueryCache] = None,
        cache_ttl: float = RESPONSE_CACHE_TTL
    ):
        self.search_path = search_path
        self.generate_path = generate_path
        self.cache = cache if cache is not None else QueryCache(
            max_size=500, default_ttl=cache_ttl, namespace="response"
        )
        self.cache_ttl = cache_ttl

    @staticmethod
    def is_factual_location_search(utterance: str) -> bool:
        """Shelter wording plus a place or search indicator."""
        if not utterance:
            return False
        lower = utterance.lower()
        has_shelter_keyword = any(keyword in lower for keyword in SHELTER_ROUTING_KEYWORDS)
        return has_shelter_keyword and bool(LOCATION_INDICATOR_PATTERN.search(lower))

    @staticmethod
    def cache_key(
        utterance: str,
        channel: Channel,
        options: Optional[ResponseOptions] = None,
        context: Optional[Session] = None
    ) -> str:
        """
        Key for a cached response.

        Search answers also depend on the effective query or the caller's
        remembered location, and every answer depends on the language.
        """
        options = options or ResponseOptions()
        parts = [
            Channel(channel).value,
            normalize_text(options.language),
            str(options.max_results),
            normalize_text(utterance),
        ]
        if ResponseRouter.is_factual_location_search(utterance):
            scope = options.search_query or SearchFirstPath.extract_location(utterance, context)
            parts.append(normalize_text(scope or ""))
        return "|".join(parts)

    async def get_response(
        self,
        utterance: str,
        context: Optional[Session] = None,
        channel: Channel = Channel.VOICE,
        options: Optional[ResponseOptions] = None
    ) -> FormattedResponse:
        """
        Produce a response for an utterance.

        Args:
            utterance: Caller utterance
            context: Caller's session, if any
            channel: Delivery channel
            options: Language, result count, cache and query overrides

        Returns:
            FormattedResponse; failures yield a hotline message instead of raising
        """
        options = options or ResponseOptions()
        try:
            channel = Channel(channel)
            key = self.cache_key(utterance, channel, options, context)

            if options.use_cache:
                cached = self.cache.get(key)
                if cached is not None:
                    logger.info("Using cached response")
                    return cached

            if self.is_factual_location_search(utterance):
                logger.info("Routing to search-first path")
                try:
                    response = await self.search_path.respond(utterance, context, channel, options)
                except ProviderUnavailable as e:
                    logger.warning(f"Search unavailable, falling back to generation: {e}")
                    response = await self._generate(
                        utterance, context, channel, options,
                        fallback_reason=f"search unavailable: {e.reason}"
                    )
                except Exception as e:
                    logger.warning(f"Search failed, falling back to generation: {e}")
                    response = await self._generate(
                        utterance, context, channel, options,
                        fallback_reason=f"search failed: {e}"
                    )
            else:
                logger.info("Routing to generate-first path")
                response = await self._generate(utterance, context, channel, options)

            if options.use_cache and response.success and not response.is_degraded:
                self.cache.set(key, response, ttl=self.cache_ttl)
            return response

        except Exception as e:
            logger.error(f"Response routing failed: {e}")
            return self.last_resort(channel, reason=str(e))

    async def _generate(
        self,
        utterance: str,
        context: Optional[Session],
        channel: Channel,
        options: ResponseOptions,
        fallback_reason: Optional[str] = None
    ) -> FormattedResponse:
        try:
            response = await self.generate_path.respond(utterance, context, channel, options)
        except Exception as e:
            logger.warning(f"Generation failed, using hotline message: {e}")
            reason = f"generation unavailable: {e}"
            if fallback_reason:
                reason = f"{fallback_reason}; {reason}"
            return FormattedResponse(
                success=True,
                source=ResponseSource.GENERATIVE_FALLBACK,
                channel=channel,
                voice_response=GENERATIVE_FALLBACK_MESSAGE,
                sms_response=GENERATIVE_FALLBACK_MESSAGE,
                web_response=GENERATIVE_FALLBACK_MESSAGE,
                summary="AI temporarily unavailable. Please call hotline for support.",
                fallback_reason=reason,
            )

        if fallback_reason:
            response = response.model_copy(update={
                "source": ResponseSource.SEARCH_FALLBACK,
                "fallback_reason": fallback_reason,
            })
        return response

    @staticmethod
    def last_resort(channel: Channel = Channel.VOICE, reason: Optional[str] = None) -> FormattedResponse:
        """Fixed hotline response for unexpected failures."""
        try:
            channel = Channel(channel)
        except ValueError:
            channel = Channel.VOICE
        return FormattedResponse(
            success=False,
            source=ResponseSource.FALLBACK,
            channel=channel,
            voice_response=LAST_RESORT_MESSAGE,
            sms_response=LAST_RESORT_MESSAGE,
            web_response=LAST_RESORT_MESSAGE,
            summary="System temporarily unavailable. Please call hotline for support.",
            fallback_reason=reason,
        )
