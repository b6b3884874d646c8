"""
Gemini Language-Model Client

Adapter between the agent loop's ModelRequest/ModelResponse and the
google-generativeai SDK.

DESIGN DECISION: The loop never sees an SDK object.
Everything the SDK returns is converted here: function calls become
ToolCallRequests with JSON-encoded arguments, usage metadata becomes
TokenUsage. Everything the SDK raises becomes ModelUnavailableError,
so the loop has exactly one failure to handle.
"""

import json
from typing import Any, Optional, Protocol
from uuid import uuid4

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dompetku.config import GeminiSettings, get_settings
from dompetku.models.conversation import (
    ChatEntry,
    ChatRole,
    ModelRequest,
    ModelResponse,
    TokenUsage,
)
from dompetku.models.tools import ToolCallRequest, ToolSchema


logger = structlog.get_logger(__name__)


TRANSIENT_ERRORS = (
    google_exceptions.ResourceExhausted,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
)


class ModelUnavailableError(Exception):
    """The language model could not produce a response."""
    pass


class LanguageModelClient(Protocol):
    """What the agent loop needs from a language model."""

    async def complete(self, request: ModelRequest) -> ModelResponse:
        ...


def _decode_json_object(text: str) -> dict[str, Any]:
    try:
        value = json.loads(text) if text else {}
    except json.JSONDecodeError:
        return {"result": text}
    return value if isinstance(value, dict) else {"result": value}


def entry_to_content(entry: ChatEntry) -> dict[str, Any]:
    """One ChatEntry as a Gemini content dict."""
    if entry.role == ChatRole.USER:
        return {"role": "user", "parts": [entry.content]}

    if entry.role == ChatRole.TOOL:
        return {
            "role": "user",
            "parts": [{
                "function_response": {
                    "name": entry.tool_name or "",
                    "response": _decode_json_object(entry.content),
                }
            }],
        }

    parts: list[Any] = []
    if entry.content:
        parts.append(entry.content)
    for call in entry.tool_calls:
        parts.append({
            "function_call": {
                "name": call.name,
                "args": _decode_json_object(call.raw_arguments),
            }
        })
    return {"role": "model", "parts": parts or [""]}


def _append_entries(contents: list[dict[str, Any]], entries: list[ChatEntry]) -> None:
    previous: Optional[ChatRole] = None
    for entry in entries:
        content = entry_to_content(entry)
        if entry.role == ChatRole.TOOL and previous == ChatRole.TOOL:
            # N function calls are answered by one content with N responses
            contents[-1]["parts"].extend(content["parts"])
        else:
            contents.append(content)
        previous = entry.role


def build_contents(request: ModelRequest) -> list[dict[str, Any]]:
    """History, then the user message, then this turn's calls and results."""
    contents: list[dict[str, Any]] = []
    _append_entries(contents, request.history)
    contents.append({"role": "user", "parts": [request.user_message]})
    _append_entries(contents, request.turn_entries)
    return contents


def build_tools(catalog: list[ToolSchema]) -> Optional[list[dict[str, Any]]]:
    if not catalog:
        return None
    return [{
        "function_declarations": [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            }
            for tool in catalog
        ]
    }]


def parse_response(response: Any) -> ModelResponse:
    """Convert a GenerateContentResponse into a ModelResponse."""
    texts: list[str] = []
    calls: list[ToolCallRequest] = []

    candidates = getattr(response, "candidates", None) or []
    if candidates:
        for part in candidates[0].content.parts:
            function_call = getattr(part, "function_call", None)
            if function_call is not None and function_call.name:
                args = type(function_call).to_dict(function_call).get("args") or {}
                calls.append(
                    ToolCallRequest(
                        name=function_call.name,
                        raw_arguments=json.dumps(args),
                        call_id=uuid4().hex[:8],
                    )
                )
            elif getattr(part, "text", None):
                texts.append(part.text)

    usage = getattr(response, "usage_metadata", None)
    return ModelResponse(
        content="".join(texts).strip() or None,
        tool_calls=calls,
        usage=TokenUsage(
            prompt_tokens=getattr(usage, "prompt_token_count", 0) or 0,
            completion_tokens=getattr(usage, "candidates_token_count", 0) or 0,
        ),
    )


class GeminiClient:
    """
    LanguageModelClient backed by Gemini function calling.

    RESPONSIBILITIES:
    - Translate the message list and tool catalog into SDK content
    - Retry transient API errors
    - Translate the reply back into text and tool calls

    BOUNDARIES:
    - NEVER executes tools
    - NEVER raises anything but ModelUnavailableError
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        genai.configure(api_key=self._settings.api_key)

    def _model(self, request: ModelRequest) -> "genai.GenerativeModel":
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            system_instruction=request.system_prompt,
            tools=build_tools(request.tool_catalog),
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, request: ModelRequest) -> Any:
        return await self._model(request).generate_content_async(build_contents(request))

    async def complete(self, request: ModelRequest) -> ModelResponse:
        try:
            response = await self._generate(request)
            return parse_response(response)
        except Exception as e:
            logger.warning(
                "gemini.request_failed",
                model=self._settings.model_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ModelUnavailableError(str(e)) from e
