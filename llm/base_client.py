"""Base LLM client interface."""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any
from pydantic import BaseModel


class ToolCall(BaseModel):
    """Tool call from LLM."""
    id: str
    name: str
    arguments: Dict[str, Any]


class Message(BaseModel):
    """Chat message."""
    role: str  # "system", "user", "assistant", "tool"
    content: str
    tool_call_id: Optional[str] = None  # For tool responses
    tool_calls: Optional[List["ToolCall"]] = None  # For assistant messages with tool calls


class LLMResponse(BaseModel):
    """Response from LLM."""
    content: str
    tool_calls: Optional[List[ToolCall]] = None
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    async def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        tool_choice: Optional[str] = None
    ) -> LLMResponse:
        """
        Send chat completion request.

        Args:
            messages: List of messages in conversation
            tools: Optional list of tool definitions for function calling
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens in response
            tool_choice: Optional name of a tool the model must call

        Returns:
            LLMResponse with content and optional tool calls
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of the LLM provider."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the name of the model being used."""
        pass

    def is_available(self) -> bool:
        """Whether the client can make requests."""
        return True

    async def classify(
        self,
        prompt: str,
        labels: List[str],
        field: str = "label",
        system_prompt: Optional[str] = None
    ) -> str:
        """
        Ask the model to pick one label.

        The choice is constrained by forcing a tool call whose only argument
        is an enum of ``labels``. Providers that answer in plain text anyway
        have their content returned for the caller to validate.

        Returns:
            The raw label string chosen by the model
        """
        tool_name = f"record_{field}"
        tool = {
            "type": "function",
            "function": {
                "name": tool_name,
                "description": f"Record the {field} that best fits the message.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        field: {"type": "string", "enum": labels},
                    },
                    "required": [field],
                },
            },
        }

        messages = []
        if system_prompt:
            messages.append(Message(role="system", content=system_prompt))
        messages.append(Message(role="user", content=prompt))

        response = await self.chat(
            messages=messages,
            tools=[tool],
            temperature=0.0,
            max_tokens=50,
            tool_choice=tool_name
        )

        if response.tool_calls:
            for call in response.tool_calls:
                if call.name == tool_name and field in call.arguments:
                    return str(call.arguments[field])
        return response.content.strip()

    async def generate(
        self,
        messages: List[Message],
        max_tokens: int = 300,
        temperature: float = 0.7
    ) -> str:
        """Generate free text for a conversation."""
        response = await self.chat(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens
        )
        return response.content.strip()
