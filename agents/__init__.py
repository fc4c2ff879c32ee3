"""Agents for the Support Assistant."""

from .intent_classifier import IntentClassifier, PatternIntentClassifier, LLMIntentClassifier
from .query_rewriter import QueryRewriter
from .follow_up import FollowUpResolver
from .response_router import ResponseRouter, SearchFirstPath, GenerateFirstPath
from .conversation_flow import ConversationFlowManager

__all__ = [
    "IntentClassifier",
    "PatternIntentClassifier",
    "LLMIntentClassifier",
    "QueryRewriter",
    "FollowUpResolver",
    "ResponseRouter",
    "SearchFirstPath",
    "GenerateFirstPath",
    "ConversationFlowManager",
]
