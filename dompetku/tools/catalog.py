"""
Tool Catalog

The static registry of actions the agent may invoke, and the single
boundary where executor exceptions are converted into ExecutionResults.

DESIGN DECISION: The model sees schemas, never executors.
get_catalog() hands out ToolSchema copies. Executors stay private to
the catalog, so the only way to run a tool is execute_tool(), which
always returns a value.
"""

from typing import Any, Optional

import structlog
from pydantic import ValidationError

from dompetku.models.tools import ErrorCode, ExecutionResult, ToolDefinition, ToolSchema
from dompetku.services.ledger import LedgerError


logger = structlog.get_logger(__name__)


class ToolCatalog:
    """
    Registry of ToolDefinitions keyed by name.

    RESPONSIBILITIES:
    - Reject duplicate registrations
    - Expose the model-facing schema subset
    - Execute a tool by name and normalize every outcome to ExecutionResult

    BOUNDARIES:
    - NEVER lets an exception escape execute_tool()
    - NEVER decides whether a call should run (that's the guard engine's job)
    """

    def __init__(self):
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def get_catalog(self) -> list[ToolSchema]:
        """Schemas for the model adapter, in registration order."""
        return [tool.to_schema() for tool in self._tools.values()]

    async def execute_tool(
        self,
        name: str,
        args: dict[str, Any],
        user_id: str,
    ) -> ExecutionResult:
        """
        Run a tool and return its result.

        Unknown names, domain errors, argument validation errors and
        unexpected exceptions all come back as success=False.
        """
        tool = self._tools.get(name)
        if tool is None:
            result = ExecutionResult.failure(
                ErrorCode.TOOL_NOT_FOUND, f"Unknown tool: {name}"
            )
            self._log_failure(user_id, name, args, result)
            return result

        logger.debug("tool.execute_start", user_id=user_id, tool_name=name, arguments=args)
        try:
            result = await tool.executor(args, user_id)
        except LedgerError as e:
            result = ExecutionResult.failure(e.code, e.message or str(e))
        except ValidationError as e:
            result = ExecutionResult.failure(
                ErrorCode.VALIDATION_ERROR,
                "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                ),
            )
        except Exception as e:
            logger.exception("tool.execute_failed", user_id=user_id, tool_name=name)
            result = ExecutionResult.failure(ErrorCode.EXECUTION_ERROR, str(e))

        if not isinstance(result, ExecutionResult):
            result = ExecutionResult.failure(
                ErrorCode.EXECUTION_ERROR, f"{name} returned {type(result).__name__}"
            )

        if result.success:
            logger.debug("tool.execute_end", user_id=user_id, tool_name=name, ok=True)
        else:
            self._log_failure(user_id, name, args, result)
        return result

    @staticmethod
    def _log_failure(
        user_id: str,
        tool_name: str,
        args: dict[str, Any],
        result: ExecutionResult,
    ) -> None:
        logger.warning(
            "tool.execute_failed_result",
            user_id=user_id,
            tool_name=tool_name,
            arguments=args,
            error_code=result.error_code,
            error_message=result.error.message if result.error else None,
        )
