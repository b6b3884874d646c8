"""
Tool Models for Dompetku

A tool is a named, schema-described action the agent may invoke.
The model never touches an executor directly: it only ever sees
ToolSchema, and the catalog turns its requests into ExecutionResults.

DESIGN DECISION: ExecutionResult is a value, not an exception.
Everything that can go wrong while running a tool (unknown name, bad
arguments, a guard saying no, a domain rule such as "not enough coins")
comes back as success=False with a machine-readable code. The agent loop
and the formatter branch on the code; nothing is thrown past the catalog.
"""

import json
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(str, Enum):
    """Machine-readable failure codes carried by ExecutionResult."""

    # Loop / catalog level
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    INVALID_ARGUMENTS = "INVALID_ARGUMENTS"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    GUARD_DENIED = "GUARD_DENIED"

    # Domain level
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    VOUCHER_INVALID = "VOUCHER_INVALID"
    VOUCHER_ALREADY_USED = "VOUCHER_ALREADY_USED"
    CATEGORY_NOT_FOUND = "CATEGORY_NOT_FOUND"
    EXPENSE_NOT_FOUND = "EXPENSE_NOT_FOUND"
    NO_EXPENSES_FOUND = "NO_EXPENSES_FOUND"
    BUDGET_NOT_FOUND = "BUDGET_NOT_FOUND"
    MEMORY_NOT_FOUND = "MEMORY_NOT_FOUND"


class ArgumentParseError(ValueError):
    """Raw tool arguments from the model are not a JSON object."""
    pass


class ExecutionError(BaseModel):
    """Error half of an ExecutionResult."""

    code: str
    message: str = ""


class ExecutionResult(BaseModel):
    """
    Outcome of one tool execution.

    Produced by executors and by the catalog itself for synthetic
    failures (unknown tool, unparseable arguments, guard denial).
    """

    success: bool
    data: Optional[dict[str, Any]] = None
    error: Optional[ExecutionError] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, data: Optional[dict[str, Any]] = None, **metadata: Any) -> "ExecutionResult":
        return cls(success=True, data=data or {}, metadata=metadata)

    @classmethod
    def failure(
        cls,
        code: "ErrorCode | str",
        message: str = "",
        **metadata: Any,
    ) -> "ExecutionResult":
        code_value = code.value if isinstance(code, ErrorCode) else str(code)
        return cls(
            success=False,
            error=ExecutionError(code=code_value, message=message),
            metadata=metadata,
        )

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    def to_model_payload(self) -> dict[str, Any]:
        """Compact dict fed back to the language model as the tool result."""
        if self.success:
            return {"ok": True, "data": self.data or {}}
        return {
            "ok": False,
            "error": self.error.code if self.error else ErrorCode.EXECUTION_ERROR.value,
            "message": self.error.message if self.error else "",
        }


ToolExecutor = Callable[[dict[str, Any], str], Awaitable[ExecutionResult]]


class ToolSchema(BaseModel):
    """The part of a tool the language model is allowed to see."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ToolDefinition(BaseModel):
    """
    A registered tool.

    Frozen: once a definition is in the catalog it cannot be changed.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, pattern=r"^[a-z][a-z0-9_]*$")
    description: str
    parameter_schema: dict[str, Any] = Field(default_factory=dict)
    executor: ToolExecutor
    creates_money: bool = Field(
        default=False,
        description="Creates a money record (expense, income, balance top-up)"
    )

    def to_schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description=self.description,
            parameters=self.parameter_schema,
        )


class ToolCallRequest(BaseModel):
    """One tool call requested by the model. Arguments stay raw until parsed."""

    name: str
    raw_arguments: str = "{}"
    call_id: Optional[str] = None

    def parse_arguments(self) -> dict[str, Any]:
        """
        Parse raw_arguments into a dict.

        Raises:
            ArgumentParseError: if the text is not JSON or not a JSON object
        """
        text = (self.raw_arguments or "").strip() or "{}"
        try:
            parsed = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            raise ArgumentParseError(f"Arguments for {self.name} are not valid JSON: {e}")
        if not isinstance(parsed, dict):
            raise ArgumentParseError(f"Arguments for {self.name} must be a JSON object")
        return parsed
