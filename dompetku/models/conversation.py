"""
Conversation Models for Dompetku

Two views of the same chat:
- ConversationTurn is what gets persisted (one row per turn, with usage).
- ChatEntry / AgentState is what the agent loop works on while a single
  user message is being handled. AgentState never outlives that message.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from dompetku.models.tools import ToolCallRequest, ToolSchema


class TurnRole(str, Enum):
    """Role of a persisted conversation turn."""
    USER = "USER"
    ASSISTANT = "ASSISTANT"
    TOOL = "TOOL"


class ConversationTurn(BaseModel):
    """A persisted conversation turn."""

    user_id: str
    role: TurnRole
    content: str
    tool_used: Optional[str] = None
    tokens_in: Optional[int] = Field(default=None, ge=0)
    tokens_out: Optional[int] = Field(default=None, ge=0)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ChatRole(str, Enum):
    """Role of an entry in the model-facing message list."""
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ChatEntry(BaseModel):
    """
    One message in the history sent to the language model.

    Assistant entries may carry tool calls; tool entries carry the
    JSON-encoded result of exactly one call.
    """

    role: ChatRole
    content: str = ""
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    tool_name: Optional[str] = None
    call_id: Optional[str] = None

    @classmethod
    def from_turn(cls, turn: ConversationTurn) -> Optional["ChatEntry"]:
        """Map a stored turn to a chat entry. Tool turns are not replayed."""
        if turn.role == TurnRole.USER:
            return cls(role=ChatRole.USER, content=turn.content)
        if turn.role == TurnRole.ASSISTANT:
            return cls(role=ChatRole.ASSISTANT, content=turn.content)
        return None


class TokenUsage(BaseModel):
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)


class ModelRequest(BaseModel):
    """
    Everything the language-model adapter needs for one call.

    The adapter sends history, then user_message, then turn_entries
    (the assistant tool calls and tool results of the current turn).
    """

    system_prompt: str
    history: list[ChatEntry] = Field(default_factory=list)
    user_message: str
    turn_entries: list[ChatEntry] = Field(default_factory=list)
    tool_catalog: list[ToolSchema] = Field(default_factory=list)


class ModelResponse(BaseModel):
    """What the language-model adapter returns: text, tool calls, or both."""

    content: Optional[str] = None
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    usage: TokenUsage = Field(default_factory=TokenUsage)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class AgentState(BaseModel):
    """
    Loop-local state for one user turn.

    messages is append-only: entries are added through append() and
    never rewritten or removed while the turn is running.
    """

    step_index: int = Field(default=0, ge=0)
    messages: list[ChatEntry] = Field(default_factory=list)
    tokens_in: int = 0
    tokens_out: int = 0
    tools_used: list[str] = Field(default_factory=list)

    def append(self, entry: ChatEntry) -> None:
        self.messages.append(entry)

    def record_usage(self, usage: TokenUsage) -> None:
        self.tokens_in += usage.prompt_tokens
        self.tokens_out += usage.completion_tokens


class TerminalReason(str, Enum):
    """How a turn ended."""
    MODEL_TEXT = "model_text"
    STEP_LIMIT = "step_limit"
    FALLBACK = "fallback"
    GREETING = "greeting"
    MODEL_UNAVAILABLE = "model_unavailable"
    ERROR = "error"


class AgentResult(BaseModel):
    """Summary of a finished turn, returned to the transport."""

    reply: str
    terminal_reason: TerminalReason
    steps: int = 0
    tools_used: list[str] = Field(default_factory=list)
    tokens_in: int = 0
    tokens_out: int = 0
    fallback_tool: Optional[str] = None
    correlation_id: UUID = Field(default_factory=uuid4)
