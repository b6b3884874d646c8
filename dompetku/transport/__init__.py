"""Transport-side helpers."""

from dompetku.transport.runner import BackgroundLoop
from dompetku.transport.thinking import (
    ThinkingIndicator,
    random_thinking_message,
    tool_progress_text,
)

__all__ = [
    "BackgroundLoop",
    "ThinkingIndicator",
    "random_thinking_message",
    "tool_progress_text",
]
