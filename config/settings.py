"""Application settings."""

import os
from typing import Optional
from pydantic import BaseModel


class Settings(BaseModel):
    """Application configuration settings."""

    # LLM Provider settings
    llm_provider: str = "openai"  # "openai" or "anthropic"
    llm_model: Optional[str] = None  # Override default model

    # API Keys
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    tavily_api_key: Optional[str] = None

    # Search settings
    search_max_results: int = 8
    search_depth: str = "basic"  # "basic" or "advanced"
    relevance_floor: float = 0.2

    # Provider resilience
    provider_timeout_seconds: float = 8.0
    retry_attempts: int = 3
    retry_backoff_seconds: float = 0.5
    rate_limit_calls: int = 10
    rate_limit_period_seconds: float = 1.0

    # Response cache
    cache_ttl_seconds: float = 3600.0
    cache_max_size: int = 500
    cache_cleanup_interval_seconds: float = 300.0

    # Conversation context
    focus_timeout_seconds: float = 300.0
    max_history_turns: int = 5
    ai_follow_up_detection: bool = True

    # Geocoding
    geocoding_enabled: bool = True
    geocoding_user_agent: str = "DomesticViolenceSupportAssistant/1.0"

    default_language: str = "en-US"

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load API keys from environment if not provided
        if data.get("openai_api_key") is None:
            data["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

        if data.get("anthropic_api_key") is None:
            data["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

        if data.get("tavily_api_key") is None:
            data["tavily_api_key"] = os.environ.get("TAVILY_API_KEY")

        super().__init__(**data)

    def get_llm_api_key(self) -> Optional[str]:
        """Get the API key for the configured LLM provider."""
        if self.llm_provider == "openai":
            return self.openai_api_key
        elif self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return None
