"""Retry, timeout and rate limiting for provider calls."""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Optional, List, Dict, TypeVar
from pydantic import BaseModel, Field

from errors import ProviderUnavailable
from .base_client import BaseLLMClient, Message, LLMResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

NON_RETRYABLE_STATUS = {400, 401, 403, 404, 422}


class RetryPolicy(BaseModel):
    """Bounded retry with exponential backoff and a per-attempt timeout."""
    attempts: int = Field(3, ge=1)
    backoff_seconds: float = Field(0.5, ge=0.0)
    backoff_multiplier: float = Field(2.0, ge=1.0)
    timeout_seconds: float = Field(8.0, gt=0.0)

    def delay_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return self.backoff_seconds * (self.backoff_multiplier ** (attempt - 1))


class RateLimiter:
    """Sliding-window limiter: at most ``max_calls`` per ``period`` seconds."""

    def __init__(
        self,
        max_calls: int = 10,
        period: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_calls = max_calls
        self.period = period
        self.clock = clock
        self._sleep = sleep
        self._calls: deque = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a call slot is free, then take it."""
        async with self._lock:
            while True:
                now = self.clock()
                while self._calls and now - self._calls[0] >= self.period:
                    self._calls.popleft()
                if len(self._calls) < self.max_calls:
                    self._calls.append(now)
                    return
                await self._sleep(self.period - (now - self._calls[0]))


def is_retryable(error: Exception) -> bool:
    """Auth and request-shape errors are not worth retrying."""
    if isinstance(error, ProviderUnavailable):
        return error.retryable
    if isinstance(error, (RuntimeError, ValueError, TypeError)):
        return False
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(getattr(error, "response", None), "status_code", None)
    return status not in NON_RETRYABLE_STATUS


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    provider: str,
    policy: Optional[RetryPolicy] = None,
    rate_limiter: Optional[RateLimiter] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run an async provider call with timeout, retry and rate limiting.

    Args:
        operation: Zero-argument factory returning a fresh awaitable per attempt
        provider: Provider name used in errors and logs
        policy: Retry policy (defaults to 3 attempts, 8s timeout)
        rate_limiter: Optional limiter acquired before every attempt
        sleep: Backoff sleep, injectable for tests

    Returns:
        The operation's result

    Raises:
        ProviderUnavailable: When attempts are exhausted or the error is not retryable
    """
    policy = policy or RetryPolicy()
    last_error: Optional[ProviderUnavailable] = None

    for attempt in range(1, policy.attempts + 1):
        if rate_limiter is not None:
            await rate_limiter.acquire()

        try:
            return await asyncio.wait_for(operation(), timeout=policy.timeout_seconds)
        except asyncio.TimeoutError:
            last_error = ProviderUnavailable(
                provider, f"timed out after {policy.timeout_seconds}s"
            )
        except ProviderUnavailable as e:
            last_error = e
            if not e.retryable:
                raise
        except Exception as e:
            retryable = is_retryable(e)
            last_error = ProviderUnavailable(provider, str(e) or type(e).__name__, retryable)
            if not retryable:
                raise last_error from e

        if attempt < policy.attempts:
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{provider} attempt {attempt}/{policy.attempts} failed "
                f"({last_error.reason}), retrying in {delay:.2f}s"
            )
            await sleep(delay)

    logger.error(f"{provider} unavailable after {policy.attempts} attempts: {last_error.reason}")
    raise last_error


class ResilientLLMClient(BaseLLMClient):
    """Wraps an LLM client so every chat call is retried and rate limited."""

    def __init__(
        self,
        client: BaseLLMClient,
        policy: Optional[RetryPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.client = client
        self.policy = policy or RetryPolicy()
        self.rate_limiter = rate_limiter

    def is_available(self) -> bool:
        return self.client.is_available()

    async def chat(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        tool_choice: Optional[str] = None
    ) -> LLMResponse:
        if not self.client.is_available():
            raise ProviderUnavailable(
                self.get_provider_name(), "client not configured", retryable=False
            )
        return await call_with_retry(
            lambda: self.client.chat(
                messages,
                tools=tools,
                temperature=temperature,
                max_tokens=max_tokens,
                tool_choice=tool_choice,
            ),
            provider=self.get_provider_name(),
            policy=self.policy,
            rate_limiter=self.rate_limiter,
        )

    def get_provider_name(self) -> str:
        return self.client.get_provider_name()

    def get_model_name(self) -> str:
        return self.client.get_model_name()
