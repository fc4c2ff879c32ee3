"""Main orchestrator for the Support Assistant conversation engine."""

import logging
import time
from typing import Any, Callable, Optional

from config.settings import Settings

# Schemas
from schemas.context import Channel, Intent, ResponseOptions
from schemas.responses import (
    FollowUpResponse,
    FollowUpType,
    FormattedResponse,
    Priority,
    ResponseSource,
    TurnResult,
)

# LLM components
from llm.base_client import BaseLLMClient
from llm.factory import create_llm_client, LLMProvider
from llm.resilience import RetryPolicy, RateLimiter

# Retrieval
from retrieval.search_provider import BaseSearchProvider, TavilySearchProvider
from retrieval.geocoding import LocationDetector, NominatimGeocoder

# Memory components
from memory.cache import QueryCache
from memory.context_store import ConversationContextStore
from memory.models import FocusContext, Session
from memory.session_store import SessionStore

# Agents
from agents.intent_classifier import IntentClassifier
from agents.query_rewriter import QueryRewriter
from agents.follow_up import FollowUpResolver
from agents.response_router import ResponseRouter, SearchFirstPath, GenerateFirstPath
from agents.conversation_flow import ConversationFlowManager, with_emergency_prefix

logger = logging.getLogger(__name__)


class SupportAssistantOrchestrator:
    """Wires classification, context, follow-ups and response routing together."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm_client: Optional[BaseLLMClient] = None,
        search_provider: Optional[BaseSearchProvider] = None,
        session_store: Optional[SessionStore] = None,
        geocoder: Optional[NominatimGeocoder] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Application settings
            llm_client: Optional LLM client (built from settings when omitted)
            search_provider: Optional search provider (Tavily when omitted)
            session_store: Optional session backend (in-memory when omitted)
            geocoder: Optional geocoder (Nominatim when geocoding is enabled)
            clock: Time source, injectable for tests
        """
        self.settings = settings or Settings()
        self.clock = clock
        self.retry_policy = RetryPolicy(
            attempts=self.settings.retry_attempts,
            backoff_seconds=self.settings.retry_backoff_seconds,
            timeout_seconds=self.settings.provider_timeout_seconds,
        )

        self.llm_client: Optional[BaseLLMClient] = llm_client
        if self.llm_client is None:
            self._init_llm_client()

        self.search_provider = search_provider or TavilySearchProvider(
            api_key=self.settings.tavily_api_key,
            timeout=self.settings.provider_timeout_seconds,
            max_results=self.settings.search_max_results,
            search_depth=self.settings.search_depth,
            policy=self.retry_policy,
            rate_limiter=self._rate_limiter(),
        )

        self._init_memory(session_store)
        self._init_agents(geocoder)

    def _rate_limiter(self) -> RateLimiter:
        return RateLimiter(
            max_calls=self.settings.rate_limit_calls,
            period=self.settings.rate_limit_period_seconds,
        )

    def _init_llm_client(self):
        """Initialize LLM client based on settings."""
        api_key = self.settings.get_llm_api_key()

        if not api_key:
            logger.warning(
                f"No API key for {self.settings.llm_provider}. "
                "LLM features will be disabled, using rule-based fallback."
            )
            return

        try:
            provider = LLMProvider(self.settings.llm_provider)
            self.llm_client = create_llm_client(
                provider=provider,
                api_key=api_key,
                model=self.settings.llm_model,
                policy=self.retry_policy,
                rate_limiter=self._rate_limiter(),
            )
            logger.info(
                f"LLM client initialized: {self.settings.llm_provider} "
                f"({self.llm_client.get_model_name()})"
            )
        except ValueError as e:
            logger.error(f"Failed to initialize LLM client: {e}")
            self.llm_client = None

    def _init_memory(self, session_store: Optional[SessionStore]):
        """Initialize context store and response cache."""
        self.context_store = ConversationContextStore(
            store=session_store,
            max_history=self.settings.max_history_turns,
            focus_timeout=self.settings.focus_timeout_seconds,
            clock=self.clock,
        )
        self.response_cache = QueryCache(
            max_size=self.settings.cache_max_size,
            default_ttl=self.settings.cache_ttl_seconds,
            namespace="response",
            clock=self.clock,
        )

    def _init_agents(self, geocoder: Optional[NominatimGeocoder]):
        """Initialize agents (LLM-backed where a client is available)."""
        if geocoder is None and self.settings.geocoding_enabled:
            geocoder = NominatimGeocoder(user_agent=self.settings.geocoding_user_agent)

        self.location_detector = LocationDetector(geocoder=geocoder)
        self.intent_classifier = IntentClassifier(llm_client=self.llm_client)
        self.query_rewriter = QueryRewriter(
            location_detector=self.location_detector,
            context_store=self.context_store,
        )
        self.follow_up_resolver = FollowUpResolver(
            llm_client=self.llm_client,
            use_ai_detection=self.settings.ai_follow_up_detection,
            focus_timeout=self.settings.focus_timeout_seconds,
            clock=self.clock,
        )
        self.response_router = ResponseRouter(
            search_path=SearchFirstPath(
                self.search_provider,
                query_rewriter=self.query_rewriter,
                relevance_floor=self.settings.relevance_floor,
            ),
            generate_path=GenerateFirstPath(self.llm_client),
            cache=self.response_cache,
            cache_ttl=self.settings.cache_ttl_seconds,
        )
        self.flow_manager = ConversationFlowManager()

        if self.llm_client:
            logger.info("Using LLM-backed classification and generation")
        else:
            logger.info("Using rule-based classification; generation will use hotline fallback")

    async def start(self):
        """Start background cache maintenance on the running loop."""
        self.response_cache.start_cleanup(self.settings.cache_cleanup_interval_seconds)

    async def close(self):
        await self.response_cache.destroy()

    # Component operations

    async def classify_intent(self, utterance: str) -> Intent:
        return await self.intent_classifier.classify(utterance)

    async def rewrite_query(self, utterance: str, intent: Intent, session_key: Optional[str] = None) -> str:
        return await self.query_rewriter.rewrite(utterance, intent, session_key)

    def update_context(
        self,
        session_key: str,
        intent: Intent,
        query: str,
        response: Any,
        search_results: Any = None,
        matched_result: Any = None
    ) -> None:
        self.context_store.update(
            session_key, intent, query, response,
            search_results=search_results,
            matched_result=matched_result,
        )

    def get_context(self, session_key: str) -> Optional[Session]:
        return self.context_store.get(session_key)

    def clear_context(self, session_key: str) -> None:
        self.context_store.clear(session_key)

    async def resolve_follow_up(
        self,
        utterance: str,
        focus_context: Optional[FocusContext]
    ) -> Optional[FollowUpResponse]:
        return await self.follow_up_resolver.resolve(utterance, focus_context)

    async def get_response(
        self,
        utterance: str,
        context: Optional[Session] = None,
        channel: Channel = Channel.VOICE,
        options: Optional[ResponseOptions] = None
    ) -> FormattedResponse:
        return await self.response_router.get_response(utterance, context, channel, options)

    # Full turn

    async def handle_utterance(
        self,
        session_key: str,
        utterance: str,
        channel: Channel = Channel.VOICE,
        options: Optional[ResponseOptions] = None
    ) -> TurnResult:
        """
        Process one caller utterance end to end.

        classify -> read context -> flow rules -> follow-up -> rewrite ->
        route -> record turn. Never raises.

        Args:
            session_key: Opaque session identifier
            utterance: Caller utterance
            channel: Delivery channel
            options: Optional response options

        Returns:
            TurnResult with the reply text for the channel
        """
        options = options or ResponseOptions(language=self.settings.default_language)
        if options.session_key is None:
            options = options.model_copy(update={"session_key": session_key})

        try:
            channel = Channel(channel)
            classification = await self.intent_classifier.classify_with_details(utterance)
            intent = classification.intent
            session = self.get_context(session_key)

            decision = self.flow_manager.decide(intent, utterance, session)
            if decision.redirection_message:
                if decision.should_end_call:
                    self.clear_context(session_key)
                else:
                    self.update_context(
                        session_key, intent, utterance,
                        {"voice": decision.redirection_message, "sms": decision.redirection_message},
                    )
                return TurnResult(
                    session_key=session_key,
                    intent=intent,
                    confidence=classification.confidence,
                    reply=decision.redirection_message,
                    source=ResponseSource.CONVERSATION_FLOW,
                    should_end_call=decision.should_end_call,
                    priority=decision.priority,
                )

            focus = session.last_query_context if session else None
            follow_up = await self.resolve_follow_up(utterance, focus)
            if follow_up is not None:
                return self._follow_up_turn(session_key, utterance, intent, classification.confidence,
                                            follow_up, channel, decision.priority)

            if self.response_router.is_factual_location_search(utterance):
                search_query = await self.rewrite_query(utterance, Intent.FIND_SHELTER, session_key)
                options = options.model_copy(update={"search_query": search_query})

            response = await self.get_response(utterance, session, channel, options)
            self.update_context(
                session_key, intent, utterance, response,
                search_results=response.results or None,
            )

            reply = response.text_for(channel)
            if decision.priority == Priority.HIGH:
                reply = with_emergency_prefix(reply)

            return TurnResult(
                session_key=session_key,
                intent=intent,
                confidence=classification.confidence,
                reply=reply,
                source=response.source,
                response=response,
                priority=decision.priority,
            )

        except Exception as e:
            logger.error(f"Failed to handle utterance for {session_key}: {e}")
            fallback = ResponseRouter.last_resort(channel, reason=str(e))
            return TurnResult(
                session_key=session_key,
                intent=Intent.GENERAL_INFORMATION,
                reply=fallback.voice_response,
                source=ResponseSource.FALLBACK,
                response=fallback,
            )

    def _follow_up_turn(
        self,
        session_key: str,
        utterance: str,
        intent: Intent,
        confidence: float,
        follow_up: FollowUpResponse,
        channel: Channel,
        priority: Priority
    ) -> TurnResult:
        reply = follow_up.voice_response
        if channel == Channel.SMS and follow_up.type == FollowUpType.SEND_DETAILS and follow_up.sms_response:
            reply = follow_up.sms_response
        if priority == Priority.HIGH:
            reply = with_emergency_prefix(reply)

        self.update_context(
            session_key, intent, utterance,
            {"voice": follow_up.voice_response, "sms": follow_up.sms_response},
            matched_result=follow_up.matched_result,
        )
        return TurnResult(
            session_key=session_key,
            intent=intent,
            confidence=confidence,
            reply=reply,
            source=ResponseSource.FOLLOW_UP,
            follow_up=follow_up,
            priority=priority,
        )
