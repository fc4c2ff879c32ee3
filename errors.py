"""Exception types for the Support Assistant."""

from typing import Optional


class AssistantError(Exception):
    """Base class for assistant errors."""


class ProviderUnavailable(AssistantError):
    """An upstream provider (LLM, search, geocoder) failed or timed out."""

    def __init__(self, provider: str, reason: str, retryable: bool = True):
        self.provider = provider
        self.reason = reason
        self.retryable = retryable
        super().__init__(f"{provider} unavailable: {reason}")


class InvalidInput(AssistantError):
    """Malformed session key, utterance or context."""


class StaleContext(AssistantError):
    """Focus context is older than the follow-up window."""

    def __init__(self, age_seconds: float, timeout_seconds: Optional[float] = None):
        self.age_seconds = age_seconds
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Focus context is {age_seconds:.0f}s old")


class CacheCorruption(AssistantError):
    """A cache entry could not be read back."""
