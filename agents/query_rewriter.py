"""Search query rewriting for resource lookups."""

import logging
from typing import Optional

from memory.context_store import ConversationContextStore
from retrieval.geocoding import LocationDetector, LocationInfo
from schemas.context import Intent
from utils.text import clean_conversational_fillers

logger = logging.getLogger(__name__)


class QueryRewriter:
    """
    Turns a caller utterance into a search-engine query.

    US locations get shelter or location terms added. A location remembered
    from the session's focus context is used when the utterance has none.
    Non-US locations are left untouched.
    """

    SHELTER_OPERATORS = "site:org OR site:gov -site:wikipedia.org -filetype:pdf"

    # intent -> (words that make injection unnecessary, terms to append)
    INTENT_TERMS = {
        Intent.GENERAL_INFORMATION: (("information", "resources"), "information resources guide"),
        Intent.OTHER_RESOURCES: (("resources", "support"), "support resources assistance"),
        Intent.LEGAL_SERVICES: (("legal aid",), "legal aid"),
        Intent.COUNSELING_SERVICES: (("counseling", "support"), "counseling support"),
    }

    def __init__(
        self,
        location_detector: Optional[LocationDetector] = None,
        context_store: Optional[ConversationContextStore] = None
    ):
        self.location_detector = location_detector or LocationDetector()
        self.context_store = context_store

    async def rewrite(
        self,
        utterance: str,
        intent: Intent,
        session_key: Optional[str] = None
    ) -> str:
        """
        Rewrite an utterance for search.

        Args:
            utterance: Caller utterance
            intent: Classified intent
            session_key: Optional session used to recall a location

        Returns:
            Rewritten query; the original utterance on any internal error
        """
        if not utterance or not utterance.strip():
            return utterance or ""

        try:
            rewritten = await self._rewrite(utterance, Intent(intent), session_key)
        except Exception as e:
            logger.warning(f"Query rewrite failed, using original utterance: {e}")
            return utterance

        logger.info(f"Rewrote query '{utterance}' -> '{rewritten}'")
        return rewritten or utterance

    async def _remembered_location(self, session_key: Optional[str]) -> LocationInfo:
        if not session_key or self.context_store is None:
            return LocationInfo()
        session = self.context_store.get(session_key)
        focus = session.last_query_context if session else None
        if focus is None or not focus.location:
            return LocationInfo()
        logger.debug(f"Using remembered location: {focus.location}")
        return await self.location_detector.classify(focus.location)

    async def _rewrite(self, utterance: str, intent: Intent, session_key: Optional[str]) -> str:
        query = clean_conversational_fillers(utterance).strip()
        original_lower = query.lower()

        info = await self.location_detector.detect(query)
        if not info.location:
            info = await self._remembered_location(session_key)

        if info.location and info.is_us:
            location = info.location
            if intent == Intent.FIND_SHELTER:
                if "shelter" not in original_lower:
                    query = f"domestic violence shelter near {location}"
                elif location.lower() not in original_lower:
                    query = f"{query} near {location}"
                if self.SHELTER_OPERATORS not in query:
                    query = f"{query} {self.SHELTER_OPERATORS}"
            elif location.lower() not in original_lower:
                query = f"{query} in {location}"

        if intent in self.INTENT_TERMS:
            present, terms = self.INTENT_TERMS[intent]
            if not any(word in original_lower for word in present):
                query = f"{query} {terms}"

        return query
