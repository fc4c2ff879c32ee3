"""Async OpenAI chat client."""

import os
import json
import logging
from typing import Any, Optional, List, Dict

from errors import ProviderUnavailable
from .base_client import BaseLLMClient, Message, LLMResponse, ToolCall

logger = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """Chat completions over AsyncOpenAI, with forced tool calls for labelling."""

    DEFAULT_MODEL = "gpt-5.2"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY env var)
            model: Model to use (default: gpt-5.2)
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client = None

        if not self.api_key:
            logger.warning("No OpenAI API key provided, OpenAI client disabled")
            return

        from openai import AsyncOpenAI
        self.client = AsyncOpenAI(api_key=self.api_key)
        logger.info(f"OpenAI client ready ({self.model})")

    def is_available(self) -> bool:
        return self.client is not None

    @staticmethod
    def _wire_message(msg: Message) -> Dict[str, Any]:
        wire: Dict[str, Any] = {"role": msg.role, "content": msg.content}
        if msg.tool_call_id:
            wire["tool_call_id"] = msg.tool_call_id
        if msg.tool_calls:
            wire["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in msg.tool_calls
            ]
        return wire

    @staticmethod
    def _wire_tool_choice(tool_choice: Optional[str]) -> Any:
        if not tool_choice:
            return "auto"
        return {"type": "function", "function": {"name": tool_choice}}

    @staticmethod
    def _parse_tool_calls(raw_calls) -> Optional[List[ToolCall]]:
        if not raw_calls:
            return None
        parsed = []
        for call in raw_calls:
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning(f"Discarding tool call {call.function.name} with malformed arguments")
                continue
            parsed.append(ToolCall(id=call.id, name=call.function.name, arguments=arguments))
        return parsed or None

    async def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        tool_choice: Optional[str] = None
    ) -> LLMResponse:
        """Send one chat completion request."""
        if self.client is None:
            raise ProviderUnavailable("openai", "no API key configured", retryable=False)

        request: Dict[str, Any] = {
            "model": self.model,
            "messages": [self._wire_message(msg) for msg in messages],
            "temperature": temperature,
            "max_completion_tokens": max_tokens,
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = self._wire_tool_choice(tool_choice)

        completion = await self.client.chat.completions.create(**request)
        choice = completion.choices[0]

        usage = None
        if completion.usage:
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens,
            }

        return LLMResponse(
            content=choice.message.content or "",
            tool_calls=self._parse_tool_calls(choice.message.tool_calls),
            usage=usage,
            finish_reason=choice.finish_reason
        )

    def get_provider_name(self) -> str:
        return "openai"

    def get_model_name(self) -> str:
        return self.model
