"""Resolution of follow-up questions against previously returned results."""

import logging
import re
import time
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel

from errors import StaleContext
from llm.base_client import BaseLLMClient
from memory.models import FocusContext, FOCUS_TIMEOUT_SECONDS
from schemas.context import Intent
from schemas.evidence import ResourceResult
from schemas.responses import FollowUpResponse, FollowUpType
from utils.text import clean_result_title, extract_location_from_query

from .formatting import (
    NO_CONTEXT_MESSAGE,
    OFF_TOPIC_REDIRECT,
    CLOSING_QUESTION,
    detailed_recap,
    generic_recap,
    result_summary,
)

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.3
TITLE_WEIGHT = 0.6
CONTENT_WEIGHT = 0.3
URL_WEIGHT = 0.1

FOLLOW_UP_PATTERN = re.compile(
    r"\b(more|details|information|about|tell me|what about|"
    r"first|second|third|fourth|fifth|1st|2nd|3rd|4th|5th|last|"
    r"that one|this one|the one|those|these|it|them|"
    r"send|text|email|where|address|phone|number)\b",
    re.IGNORECASE,
)

ORDINAL_INDEX = {
    "first": 0, "1st": 0,
    "second": 1, "2nd": 1,
    "third": 2, "3rd": 2,
    "fourth": 3, "4th": 3,
    "fifth": 4, "5th": 4,
    "last": -1,
}
CARDINAL_INDEX = {
    "one": 0, "two": 1, "three": 2, "four": 3, "five": 4,
    "1": 0, "2": 1, "3": 2, "4": 3, "5": 4,
}
ORDINAL_PATTERN = re.compile(r"\b(first|second|third|fourth|fifth|1st|2nd|3rd|4th|5th|last)\b", re.IGNORECASE)
NUMBERED_PATTERN = re.compile(r"(?:\bnumber|\boption|#)\s*(one|two|three|four|five|[1-5])\b", re.IGNORECASE)
DEMONSTRATIVE_PATTERN = re.compile(r"\b(that one|this one|the one|that|this|it|them|there|they|their)\b", re.IGNORECASE)
CAPITALIZED_PHRASE = re.compile(r"\b[A-Z][\w'&.-]*(?:\s+[A-Z][\w'&.-]*)*")

SEND_PATTERN = re.compile(r"\b(send|text|email)\b", re.IGNORECASE)
WHERE_PATTERN = re.compile(r"\b(where|address|location)\b", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"\b(number|phone|call)\b", re.IGNORECASE)
MORE_PATTERN = re.compile(r"\b(more|information|about|details)\b", re.IGNORECASE)

SENTENCE_STARTERS = {
    "tell", "what", "whats", "what's", "where", "wheres", "where's", "can", "could",
    "would", "how", "is", "are", "do", "does", "the", "i", "i'm", "please", "give",
    "send", "text", "and", "ok", "okay", "yes", "no", "that", "this", "which", "who",
    "when", "why", "more", "about", "me", "my", "hi", "hello", "hey", "thanks", "thank",
    "number", "option", "first", "second", "third", "last",
}

INTENT_TOPICS = {
    Intent.FIND_SHELTER: "shelter",
    Intent.LEGAL_SERVICES: "legal services",
    Intent.COUNSELING_SERVICES: "counseling",
    Intent.EMERGENCY_HELP: "emergency resource",
    Intent.GENERAL_INFORMATION: "resource",
    Intent.OTHER_RESOURCES: "resource",
}


class FocusKind(str, Enum):
    """How a follow-up refers to a previous result."""
    LOCATION = "location"
    ORDINAL = "ordinal"
    DEMONSTRATIVE = "demonstrative"
    NAME = "name"


class FocusTarget(BaseModel):
    """What the caller is pointing at in a follow-up."""
    kind: FocusKind
    value: str
    index: Optional[int] = None


def calculate_similarity(text1: str, text2: str) -> float:
    """
    Cheap fuzzy similarity between a target phrase and a field.

    0.9 when one contains the other, otherwise the share of overlapping
    words of three or more characters, capped at 0.8.
    """
    a = (text1 or "").lower().strip()
    b = (text2 or "").lower().strip()
    if not a or not b:
        return 0.0
    if a in b or b in a:
        return 0.9

    words1 = a.split()
    words2 = b.split()
    long_words2 = [w for w in words2 if len(w) >= 3]
    matches = 0
    for word1 in words1:
        if len(word1) < 3:
            continue
        if any(word1 in word2 or word2 in word1 for word2 in long_words2):
            matches += 1

    if matches == 0:
        return 0.0
    return min(matches / max(len(words1), len(words2)), 0.8)


class FollowUpResolver:
    """
    Decides whether an utterance refers back to the last results and, if so,
    answers it from those results.

    Detection is pattern-first. Only utterances with no indicator at all are
    escalated to the LLM, and any LLM failure means "not a follow-up".
    """

    def __init__(
        self,
        llm_client: Optional[BaseLLMClient] = None,
        use_ai_detection: bool = True,
        focus_timeout: float = FOCUS_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.llm_client = llm_client
        self.use_ai_detection = use_ai_detection
        self.focus_timeout = focus_timeout
        self.clock = clock

    def _check_recency(self, focus: FocusContext) -> None:
        now = self.clock()
        if focus.is_expired(now, self.focus_timeout):
            raise StaleContext(focus.age(now), self.focus_timeout)

    async def resolve(
        self,
        utterance: str,
        focus_context: Optional[FocusContext]
    ) -> Optional[FollowUpResponse]:
        """
        Resolve a follow-up question.

        Args:
            utterance: Caller utterance
            focus_context: Focus context from the previous result turn

        Returns:
            FollowUpResponse, or None when the utterance is not a follow-up,
            the context is missing or older than the follow-up window
        """
        if focus_context is None or not utterance or not utterance.strip():
            return None

        try:
            self._check_recency(focus_context)
        except StaleContext as e:
            logger.info(f"Follow-up context too old: {e}")
            return None

        if not await self.is_follow_up(utterance, focus_context):
            return None

        response = self.build_response(utterance, focus_context)
        logger.info(
            f"Follow-up resolved as {response.type.value}"
            + (f" -> {clean_result_title(response.matched_result.title)}" if response.matched_result else "")
        )
        return response

    def _mentions_new_location(self, utterance: str, focus: FocusContext) -> bool:
        location = extract_location_from_query(utterance)
        if not location:
            return False
        if ORDINAL_PATTERN.search(utterance) or NUMBERED_PATTERN.search(utterance):
            return False
        if re.search(r"\b(that one|this one|the one)\b", utterance, re.IGNORECASE):
            return False
        if focus.location:
            known = focus.location.lower()
            new = location.lower()
            if new in known or known in new:
                return False
        return not any(location.lower() in r.title.lower() for r in focus.results)

    async def is_follow_up(self, utterance: str, focus: FocusContext) -> bool:
        """Pattern check first, then an optional yes/no question to the LLM."""
        if FOLLOW_UP_PATTERN.search(utterance):
            if self._mentions_new_location(utterance, focus):
                logger.debug("Utterance names a new location, treating as a new search")
                return False
            return True

        if not self.use_ai_detection or self.llm_client is None or not self.llm_client.is_available():
            return False

        prompt = (
            "Given this conversation context:\n"
            f"Previous question: \"{focus.query or 'unknown'}\"\n"
            f"Previous intent: {focus.intent.value}\n"
            f"Previous results: {len(focus.results)} items found\n\n"
            f"Current user query: \"{utterance}\"\n\n"
            "Is the current query a follow-up that refers to the previous results, "
            "for example asking for details about one of them or making a vague "
            "reference that needs the earlier context?"
        )
        try:
            answer = await self.llm_client.classify(prompt, ["yes", "no"], field="is_follow_up")
        except Exception as e:
            logger.warning(f"Follow-up detection by LLM failed, assuming new query: {e}")
            return False
        return answer.strip().lower().startswith("yes")

    def extract_focus_target(self, utterance: str, focus: FocusContext) -> Optional[FocusTarget]:
        """Find what the utterance points at, in priority order."""
        lower = utterance.lower()

        if focus.location and focus.location.lower() in lower:
            return FocusTarget(kind=FocusKind.LOCATION, value=focus.location)

        match = ORDINAL_PATTERN.search(utterance)
        if match:
            word = match.group(1).lower()
            return FocusTarget(kind=FocusKind.ORDINAL, value=word, index=ORDINAL_INDEX[word])

        match = NUMBERED_PATTERN.search(utterance)
        if match:
            word = match.group(1).lower()
            return FocusTarget(kind=FocusKind.ORDINAL, value=word, index=CARDINAL_INDEX[word])

        match = DEMONSTRATIVE_PATTERN.search(utterance)
        if match:
            return FocusTarget(kind=FocusKind.DEMONSTRATIVE, value=match.group(1).lower())

        for result in focus.results:
            title = clean_result_title(result.title)
            if title.lower() in lower:
                return FocusTarget(kind=FocusKind.NAME, value=title)

        for phrase in CAPITALIZED_PHRASE.findall(utterance):
            words = phrase.split()
            while words and words[0].lower().strip(".,?!") in SENTENCE_STARTERS:
                words.pop(0)
            candidate = " ".join(words).strip(".,?!")
            if candidate:
                return FocusTarget(kind=FocusKind.NAME, value=candidate)

        return None

    def find_best_match(
        self,
        target: Optional[FocusTarget],
        focus: FocusContext
    ) -> Optional[ResourceResult]:
        """Map a focus target onto one of the stored results."""
        results = focus.results
        if target is None or not results:
            return None

        if target.kind == FocusKind.ORDINAL:
            index = target.index
            if index == -1:
                return results[-1]
            if index is not None and 0 <= index < len(results):
                return results[index]
            return None

        if target.kind == FocusKind.DEMONSTRATIVE:
            if focus.matched_result is not None:
                return focus.matched_result
            if len(results) == 1:
                return results[0]
            return None

        return self.fuzzy_match(target.value, results)

    def fuzzy_match(self, target: str, results: List[ResourceResult]) -> Optional[ResourceResult]:
        best_match = None
        best_score = 0.0
        for result in results:
            score = (
                calculate_similarity(target, result.title) * TITLE_WEIGHT
                + calculate_similarity(target, result.content) * CONTENT_WEIGHT
                + calculate_similarity(target, result.url) * URL_WEIGHT
            )
            if score > best_score and score > MATCH_THRESHOLD:
                best_score = score
                best_match = result

        logger.debug(
            f"Fuzzy match for '{target}': "
            f"{clean_result_title(best_match.title) if best_match else None} ({best_score:.2f})"
        )
        return best_match

    def build_response(self, utterance: str, focus: FocusContext) -> FollowUpResponse:
        """Pick the response type for a confirmed follow-up."""
        if focus.intent == Intent.OFF_TOPIC:
            return FollowUpResponse(
                type=FollowUpType.OFF_TOPIC,
                intent=Intent.OFF_TOPIC,
                voice_response=OFF_TOPIC_REDIRECT,
                results=focus.results,
            )

        if not focus.results:
            return FollowUpResponse(
                type=FollowUpType.NO_CONTEXT,
                intent=focus.intent,
                voice_response=NO_CONTEXT_MESSAGE,
            )

        matched = self.find_best_match(self.extract_focus_target(utterance, focus), focus)
        count = len(focus.results)
        base = {
            "intent": focus.intent,
            "sms_response": focus.sms_response,
            "results": focus.results,
        }

        if SEND_PATTERN.search(utterance):
            topic = INTENT_TOPICS.get(focus.intent, "resource")
            return FollowUpResponse(
                type=FollowUpType.SEND_DETAILS,
                voice_response=(
                    f"I'll send you the {topic} details via text message. "
                    "You should receive them shortly."
                ),
                matched_result=matched,
                **base,
            )

        if WHERE_PATTERN.search(utterance):
            if matched is not None:
                title = clean_result_title(matched.title)
                if matched.address:
                    voice = f"{title} is located at {matched.address}."
                elif matched.url:
                    voice = f"I don't have a street address for {title}, but you can find it at {matched.url}."
                else:
                    voice = f"I don't have a street address for {title}."
                return FollowUpResponse(
                    type=FollowUpType.LOCATION_INFO,
                    voice_response=f"{voice} Would you like me to send you the complete details?",
                    matched_result=matched,
                    **base,
                )
            return FollowUpResponse(
                type=FollowUpType.LOCATION_INFO,
                voice_response=(
                    f"I found {count} resources in {focus.location or 'that area'}. "
                    f"{CLOSING_QUESTION}"
                ),
                **base,
            )

        if PHONE_PATTERN.search(utterance):
            if matched is not None:
                title = clean_result_title(matched.title)
                if matched.phone:
                    voice = f"For {title}, the phone number is {matched.phone}."
                else:
                    voice = f"I don't have a phone number listed for {title}."
                return FollowUpResponse(
                    type=FollowUpType.PHONE_INFO,
                    voice_response=f"{voice} Would you like me to send you the complete details?",
                    matched_result=matched,
                    **base,
                )
            return FollowUpResponse(
                type=FollowUpType.PHONE_INFO,
                voice_response=(
                    f"I found {count} resources. Would you like me to send you "
                    "the contact information for all of them?"
                ),
                **base,
            )

        if matched is not None:
            title = clean_result_title(matched.title)
            return FollowUpResponse(
                type=FollowUpType.SPECIFIC_RESULT,
                voice_response=(
                    f"Here's what I found about {title}: {result_summary(matched)} "
                    "Would you like me to send you the complete details?"
                ),
                matched_result=matched,
                **base,
            )

        if MORE_PATTERN.search(utterance):
            return FollowUpResponse(
                type=FollowUpType.DETAILED_INFO,
                voice_response=detailed_recap(focus.results, focus.location),
                **base,
            )

        return FollowUpResponse(
            type=FollowUpType.GENERAL_FOLLOW_UP,
            voice_response=generic_recap(focus.results, focus.location),
            **base,
        )
