"""Pydantic schemas for the Support Assistant."""

from .context import Intent, Channel, IntentClassification, ResponseOptions
from .evidence import SearchHit, SearchResponse, ResourceResult
from .responses import (
    FollowUpType,
    FollowUpResponse,
    ResponseSource,
    FormattedResponse,
    Priority,
    TurnResult,
)

__all__ = [
    "Intent",
    "Channel",
    "IntentClassification",
    "ResponseOptions",
    "SearchHit",
    "SearchResponse",
    "ResourceResult",
    "FollowUpType",
    "FollowUpResponse",
    "ResponseSource",
    "FormattedResponse",
    "Priority",
    "TurnResult",
]
