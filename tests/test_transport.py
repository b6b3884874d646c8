"""
Tests for the thinking indicator.
"""

import asyncio
import random

import pytest

from dompetku.formatting import messages
from dompetku.models.conversation import AgentResult, TerminalReason
from dompetku.transport import ThinkingIndicator, random_thinking_message, tool_progress_text


class TestThinkingIndicator:
    """Tests for the transport-side filler text."""

    def test_random_message_comes_from_templates(self):
        assert random_thinking_message(random.Random(1)) in messages.THINKING_TEMPLATES

    def test_tool_progress_text(self):
        assert tool_progress_text("create_expense") == "🛠️ Menjalankan tool: create_expense…"
        assert "thinking" in tool_progress_text("")

    def test_filler_shown_then_reply_returned(self):
        """Test that filler is shown before the handler runs and rotation stops after."""
        shown = []

        async def handler(user_id, text):
            assert shown, "filler should be shown before the handler runs"
            await asyncio.sleep(0.05)
            return AgentResult(reply=f"{user_id}:{text}", terminal_reason=TerminalReason.MODEL_TEXT)

        indicator = ThinkingIndicator(handler, shown.append, interval_seconds=0.01)

        async def scenario():
            result = await indicator("u1", "halo")
            count = len(shown)
            await asyncio.sleep(0.05)
            return result, count

        result, count = asyncio.run(scenario())
        assert result.reply == "u1:halo"
        assert count >= 2
        assert len(shown) == count
        assert all(line in messages.THINKING_TEMPLATES for line in shown)

    def test_handler_error_propagates_and_rotation_stops(self):
        shown = []

        async def handler(user_id, text):
            raise RuntimeError("boom")

        indicator = ThinkingIndicator(handler, shown.append, interval_seconds=0.01)
        with pytest.raises(RuntimeError):
            asyncio.run(indicator("u1", "halo"))
        assert len(shown) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
