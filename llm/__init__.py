"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, Message, LLMResponse, ToolCall
from .factory import create_llm_client, LLMProvider
from .resilience import RetryPolicy, RateLimiter, ResilientLLMClient, call_with_retry

__all__ = [
    "BaseLLMClient",
    "Message",
    "LLMResponse",
    "ToolCall",
    "create_llm_client",
    "LLMProvider",
    "RetryPolicy",
    "RateLimiter",
    "ResilientLLMClient",
    "call_with_retry",
]
