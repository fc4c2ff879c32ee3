"""Intent, channel and request-option schemas."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class Intent(str, Enum):
    """Classification of what the caller wants."""
    FIND_SHELTER = "find_shelter"
    LEGAL_SERVICES = "legal_services"
    COUNSELING_SERVICES = "counseling_services"
    EMERGENCY_HELP = "emergency_help"
    GENERAL_INFORMATION = "general_information"
    OTHER_RESOURCES = "other_resources"
    END_CONVERSATION = "end_conversation"
    OFF_TOPIC = "off_topic"

    @classmethod
    def labels(cls) -> list[str]:
        return [intent.value for intent in cls]

    @property
    def is_resource_query(self) -> bool:
        """Intents answered with concrete resources."""
        return self in (
            Intent.FIND_SHELTER,
            Intent.LEGAL_SERVICES,
            Intent.COUNSELING_SERVICES,
            Intent.OTHER_RESOURCES,
        )

    @property
    def needs_factual_info(self) -> bool:
        """Intents that benefit from web search results."""
        return self.is_resource_query or self == Intent.GENERAL_INFORMATION

    @property
    def is_emergency(self) -> bool:
        return self == Intent.EMERGENCY_HELP

    @property
    def is_off_topic(self) -> bool:
        return self == Intent.OFF_TOPIC


class Channel(str, Enum):
    """Delivery channel for a response."""
    VOICE = "voice"
    SMS = "sms"
    WEB = "web"


class ConfidenceLevel(str, Enum):
    """Coarse bucket for intent confidence."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ClassificationMethod(str, Enum):
    """Which classifier produced the label."""
    PROVIDER = "provider"
    PATTERN = "pattern"


class IntentClassification(BaseModel):
    """Result of intent classification."""
    intent: Intent
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    method: ClassificationMethod = ClassificationMethod.PATTERN
    raw_label: Optional[str] = None

    @property
    def confidence_level(self) -> ConfidenceLevel:
        if self.confidence >= 0.8:
            return ConfidenceLevel.HIGH
        if self.confidence >= 0.5:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW


class ResponseOptions(BaseModel):
    """Per-request options for response generation."""
    language: str = "en-US"
    max_results: int = Field(3, ge=1, le=3)
    use_cache: bool = True
    session_key: Optional[str] = None
    search_query: Optional[str] = Field(None, description="Pre-rewritten search query")
