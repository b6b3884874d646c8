"""
"Thinking…" filler for chat transports.

Wraps a message handler and shows rotating filler text while the turn
runs. Purely cosmetic; the agent loop knows nothing about it.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional

from dompetku.formatting.messages import THINKING_TEMPLATES, TOOL_PROGRESS
from dompetku.models.conversation import AgentResult


Handler = Callable[[str, str], Awaitable[AgentResult]]


def random_thinking_message(rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(THINKING_TEMPLATES)


def tool_progress_text(tool_name: str) -> str:
    return TOOL_PROGRESS.format(tool_name=tool_name or "thinking")


class ThinkingIndicator:
    """
    Decorator around a handler such as AgentLoop.handle_message.

    `show` receives every filler line; a transport typically points it
    at a placeholder it later overwrites with the reply.
    """

    def __init__(
        self,
        handler: Handler,
        show: Callable[[str], Any],
        interval_seconds: float = 4.0,
        rng: Optional[random.Random] = None,
    ):
        self._handler = handler
        self._show = show
        self._interval = interval_seconds
        self._rng = rng

    async def _rotate(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self._show(random_thinking_message(self._rng))

    async def __call__(self, user_id: str, text: str) -> AgentResult:
        self._show(random_thinking_message(self._rng))
        rotation = asyncio.create_task(self._rotate())
        try:
            return await self._handler(user_id, text)
        finally:
            rotation.cancel()
            try:
                await rotation
            except asyncio.CancelledError:
                pass
