"""
Tests for the Gemini request builder (no network).
"""

import pytest

from dompetku.agents.gemini_client import build_contents
from dompetku.models.conversation import ChatEntry, ChatRole, ModelRequest
from dompetku.models.tools import ToolCallRequest


def assistant_calls(*names):
    return ChatEntry(
        role=ChatRole.ASSISTANT,
        tool_calls=[
            ToolCallRequest(name=name, raw_arguments='{"amount": 1000}', call_id=str(i))
            for i, name in enumerate(names)
        ],
    )


def tool_result(name, payload='{"success": true}'):
    return ChatEntry(role=ChatRole.TOOL, content=payload, tool_name=name)


def shape(contents):
    return [(c["role"], len(c["parts"])) for c in contents]


class TestBuildContents:
    """Tests for how a turn is laid out for the Gemini API."""

    def test_batched_calls_answered_by_one_content(self):
        """Test that two function calls get one content with two responses, in order."""
        request = ModelRequest(
            system_prompt="x",
            user_message="beli kopi 25rb dan roti 10rb",
            turn_entries=[
                assistant_calls("create_expense", "create_income"),
                tool_result("create_expense"),
                tool_result("create_income"),
            ],
        )
        contents = build_contents(request)

        assert shape(contents) == [("user", 1), ("model", 2), ("user", 2)]
        names = [p["function_response"]["name"] for p in contents[-1]["parts"]]
        assert names == ["create_expense", "create_income"]

    def test_each_step_keeps_its_own_responses(self):
        request = ModelRequest(
            system_prompt="x",
            user_message="catat",
            turn_entries=[
                assistant_calls("create_expense", "create_expense"),
                tool_result("create_expense"),
                tool_result("create_expense"),
                assistant_calls("check_budget_status"),
                tool_result("check_budget_status"),
            ],
        )
        assert shape(build_contents(request)) == [
            ("user", 1), ("model", 2), ("user", 2), ("model", 1), ("user", 1),
        ]

    def test_history_comes_before_user_message(self):
        request = ModelRequest(
            system_prompt="x",
            user_message="lagi",
            history=[
                ChatEntry(role=ChatRole.USER, content="halo"),
                ChatEntry(role=ChatRole.ASSISTANT, content="hai"),
            ],
        )
        contents = build_contents(request)
        assert shape(contents) == [("user", 1), ("model", 1), ("user", 1)]
        assert contents[-1]["parts"] == ["lagi"]

    def test_non_object_result_is_wrapped(self):
        request = ModelRequest(
            system_prompt="x",
            user_message="m",
            turn_entries=[assistant_calls("help_tool"), tool_result("help_tool", "not json")],
        )
        response = build_contents(request)[-1]["parts"][0]["function_response"]["response"]
        assert response == {"result": "not json"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
