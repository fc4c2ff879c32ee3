"""Async Anthropic Messages API client."""

import os
import logging
from typing import Any, Optional, List, Dict, Tuple

from errors import ProviderUnavailable
from .base_client import BaseLLMClient, Message, LLMResponse, ToolCall

logger = logging.getLogger(__name__)


class AnthropicClient(BaseLLMClient):
    """
    Messages API over AsyncAnthropic.

    Callers pass OpenAI-style tool definitions; they are translated to
    Anthropic tool specs here so the rest of the code has one format.
    """

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (falls back to ANTHROPIC_API_KEY env var)
            model: Model to use (default: claude-sonnet-4-20250514)
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = None

        if not self.api_key:
            logger.warning("No Anthropic API key provided, Anthropic client disabled")
            return

        import anthropic
        self.client = anthropic.AsyncAnthropic(api_key=self.api_key)
        logger.info(f"Anthropic client ready ({self.model})")

    def is_available(self) -> bool:
        return self.client is not None

    @staticmethod
    def _convert_tools(tools: List[Dict]) -> List[Dict]:
        """OpenAI-style function definitions to Anthropic tool specs."""
        return [
            {
                "name": tool["function"]["name"],
                "description": tool["function"].get("description", ""),
                "input_schema": tool["function"].get("parameters", {"type": "object"}),
            }
            for tool in tools
            if tool.get("type") == "function"
        ]

    @staticmethod
    def _split_system(messages: List[Message]) -> Tuple[str, List[Dict[str, str]]]:
        system = "\n".join(msg.content for msg in messages if msg.role == "system").strip()
        turns = [
            {"role": msg.role, "content": msg.content}
            for msg in messages
            if msg.role in ("user", "assistant")
        ]
        return system, turns

    async def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        tool_choice: Optional[str] = None
    ) -> LLMResponse:
        """Send one Messages API request."""
        if self.client is None:
            raise ProviderUnavailable("anthropic", "no API key configured", retryable=False)

        system, turns = self._split_system(messages)
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": turns,
        }
        if system:
            request["system"] = system

        anthropic_tools = self._convert_tools(tools or [])
        if anthropic_tools:
            request["tools"] = anthropic_tools
            if tool_choice:
                request["tool_choice"] = {"type": "tool", "name": tool_choice}

        reply = await self.client.messages.create(**request)

        text_parts = []
        tool_calls = []
        for block in reply.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=block.input))

        usage = None
        if reply.usage:
            usage = {
                "prompt_tokens": reply.usage.input_tokens,
                "completion_tokens": reply.usage.output_tokens,
                "total_tokens": reply.usage.input_tokens + reply.usage.output_tokens,
            }

        return LLMResponse(
            content="".join(text_parts),
            tool_calls=tool_calls or None,
            usage=usage,
            finish_reason=reply.stop_reason
        )

    def get_provider_name(self) -> str:
        return "anthropic"

    def get_model_name(self) -> str:
        return self.model
