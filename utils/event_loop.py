"""Synchronous entry point onto one long-lived asyncio loop."""

import asyncio
from typing import Any, Awaitable, Optional


class LoopRunner:
    """
    Runs coroutines to completion on the same event loop every time.

    Async SDK clients bind their connection pools to the loop that first
    used them, so a UI that calls into the orchestrator once per request
    must not create a fresh loop per call the way ``asyncio.run`` does.
    """

    def __init__(self):
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        return self._loop

    def run(self, coro: Awaitable[Any]) -> Any:
        return self.loop.run_until_complete(coro)

    def close(self) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.close()
        self._loop = None
