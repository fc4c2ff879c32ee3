"""Intent classification with a provider-backed primary and a rule-based fallback."""

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import yaml
from rapidfuzz import fuzz, process

from errors import InvalidInput
from llm.base_client import BaseLLMClient
from schemas.context import ClassificationMethod, Intent, IntentClassification

logger = logging.getLogger(__name__)


def _default_patterns_path() -> Path:
    return Path(__file__).parent.parent / "data" / "intent_patterns.yaml"


def load_intent_patterns(path: Optional[Union[str, Path]] = None) -> dict:
    """Load fallback rules and confidence keywords from YAML."""
    with open(path or _default_patterns_path(), 'r') as f:
        return yaml.safe_load(f) or {}


class BaseIntentClassifier(ABC):
    """Common interface for every intent classifier tier."""

    @abstractmethod
    async def classify(self, utterance: str) -> IntentClassification:
        """Classify an utterance into one of the closed intent labels."""
        pass


class PatternIntentClassifier(BaseIntentClassifier):
    """Ordered regex rules. Deterministic and provider-free."""

    def __init__(self, patterns: Optional[dict] = None):
        config = patterns if patterns is not None else load_intent_patterns()
        self.rules = [
            (Intent(rule["intent"]), re.compile(rule["pattern"], re.IGNORECASE))
            for rule in config.get("fallback_rules", [])
        ]
        self.default_intent = Intent(config.get("default_intent", Intent.GENERAL_INFORMATION.value))
        self.confidence_keywords = {
            Intent(label): [kw.lower() for kw in keywords]
            for label, keywords in (config.get("confidence_keywords") or {}).items()
        }

    def match(self, utterance: str) -> Intent:
        """First matching rule wins."""
        for intent, pattern in self.rules:
            if pattern.search(utterance or ""):
                return intent
        return self.default_intent

    def calculate_confidence(self, intent: Union[Intent, str, None], utterance: str) -> float:
        """
        Heuristic confidence for logging.

        Starts at 0.5; keyword hits, length and emergency intent move it.
        Unknown labels score 0.1.
        """
        try:
            intent = Intent(intent)
        except ValueError:
            return 0.1

        text = (utterance or "").lower()
        confidence = 0.5
        if any(kw in text for kw in self.confidence_keywords.get(intent, [])):
            confidence += 0.3
        if len(text) > 20:
            confidence += 0.1
        elif len(text) < 5:
            confidence -= 0.2
        if intent == Intent.EMERGENCY_HELP:
            confidence += 0.2
        return round(min(max(confidence, 0.0), 1.0), 2)

    async def classify(self, utterance: str) -> IntentClassification:
        intent = self.match(utterance)
        return IntentClassification(
            intent=intent,
            confidence=self.calculate_confidence(intent, utterance),
            method=ClassificationMethod.PATTERN,
            raw_label=intent.value,
        )


class LLMIntentClassifier(BaseIntentClassifier):
    """Asks the LLM to pick a label through a schema-constrained tool call."""

    SYSTEM_PROMPT = """You classify messages sent to a domestic violence support line.
Pick exactly one intent:
- find_shelter: looking for a shelter, safe housing or a place to stay
- legal_services: restraining orders, lawyers, custody, divorce, legal rights
- counseling_services: counseling, therapy, support groups, someone to talk to
- emergency_help: immediate danger or an urgent crisis
- general_information: questions about abuse, warning signs, how things work
- other_resources: financial help, jobs, childcare, transportation and similar
- end_conversation: the caller wants to stop or says goodbye
- off_topic: unrelated to domestic violence support"""

    def __init__(self, llm_client: BaseLLMClient, fuzzy_cutoff: float = 90.0):
        """
        Initialize classifier.

        Args:
            llm_client: LLM client used for classification
            fuzzy_cutoff: Minimum rapidfuzz ratio for accepting a near-miss label
        """
        self.llm_client = llm_client
        self.fuzzy_cutoff = fuzzy_cutoff

    def normalize_label(self, raw_label: str) -> Optional[Intent]:
        """Map a provider label onto the closed set, tolerating small variations."""
        label = re.sub(r"[\s-]+", "_", (raw_label or "").strip().strip("\"'.").lower())
        if not label:
            return None
        try:
            return Intent(label)
        except ValueError:
            pass
        match = process.extractOne(
            label, Intent.labels(), scorer=fuzz.ratio, score_cutoff=self.fuzzy_cutoff
        )
        return Intent(match[0]) if match else None

    async def classify(self, utterance: str) -> IntentClassification:
        raw_label = await self.llm_client.classify(
            prompt=f"Message: {utterance}",
            labels=Intent.labels(),
            field="intent",
            system_prompt=self.SYSTEM_PROMPT,
        )
        intent = self.normalize_label(raw_label)
        if intent is None:
            raise InvalidInput(f"Unrecognized intent label from provider: {raw_label!r}")
        return IntentClassification(
            intent=intent,
            method=ClassificationMethod.PROVIDER,
            raw_label=raw_label,
        )


class IntentClassifier:
    """
    Two-tier classifier: LLM first, regex rules on any failure.

    ``classify`` never raises and always returns a label from the closed set.
    """

    def __init__(
        self,
        llm_client: Optional[BaseLLMClient] = None,
        patterns: Optional[dict] = None,
        primary: Optional[BaseIntentClassifier] = None,
        fallback: Optional[PatternIntentClassifier] = None
    ):
        self.fallback = fallback or PatternIntentClassifier(patterns)
        if primary is not None:
            self.primary = primary
        elif llm_client is not None and llm_client.is_available():
            self.primary = LLMIntentClassifier(llm_client)
        else:
            self.primary = None

    def calculate_confidence(self, intent: Union[Intent, str, None], utterance: str) -> float:
        return self.fallback.calculate_confidence(intent, utterance)

    async def classify_with_details(self, utterance: str) -> IntentClassification:
        """Classify and report which tier answered and how confident it is."""
        utterance = utterance or ""

        if self.primary is not None and utterance.strip():
            try:
                result = await self.primary.classify(utterance)
                result = result.model_copy(update={
                    "confidence": self.calculate_confidence(result.intent, utterance)
                })
                logger.info(
                    f"Intent: {result.intent.value} via {result.method.value} "
                    f"({result.confidence_level.value} confidence)"
                )
                return result
            except Exception as e:
                logger.warning(f"Intent provider failed, using pattern fallback: {e}")

        result = await self.fallback.classify(utterance)
        logger.info(
            f"Intent: {result.intent.value} via {result.method.value} "
            f"({result.confidence_level.value} confidence)"
        )
        return result

    async def classify(self, utterance: str) -> Intent:
        """Classify an utterance into an Intent."""
        return (await self.classify_with_details(utterance)).intent


def is_resource_query(intent: Intent) -> bool:
    return Intent(intent).is_resource_query


def needs_factual_info(intent: Intent) -> bool:
    return Intent(intent).needs_factual_info


def is_emergency_query(intent: Intent) -> bool:
    return Intent(intent) == Intent.EMERGENCY_HELP


def is_off_topic_query(intent: Intent) -> bool:
    return Intent(intent) == Intent.OFF_TOPIC
