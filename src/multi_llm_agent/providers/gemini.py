"""Google Gemini backend adapter (google.genai SDK)"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from google import genai
from google.genai import types

from ..config import get_config, is_config_initialized
from ..messages import ASSISTANT, SYSTEM, TOOL, USER, Message, ToolCall
from ..token_utils import count_context_tokens, get_max_context_length
from ..tools import Tool
from .base import BackendAdapter, ChatRequest
from .stream import StreamEvent, StreamHandle

logger = logging.getLogger(__name__)


def _sanitize_schema_for_gemini(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Remove JSON Schema fields that Gemini API doesn't accept.

    Gemini only accepts: type, properties, required, description, items, enum.
    """
    if not isinstance(schema, dict):
        return schema

    allowed_fields = {"type", "properties", "required", "description", "items", "enum"}

    cleaned = {}
    for key, value in schema.items():
        if key not in allowed_fields:
            continue

        if key == "properties" and isinstance(value, dict):
            cleaned[key] = {
                prop_name: _sanitize_schema_for_gemini(prop_schema)
                for prop_name, prop_schema in value.items()
            }
        elif key == "items" and isinstance(value, dict):
            cleaned[key] = _sanitize_schema_for_gemini(value)
        else:
            cleaned[key] = value

    return cleaned


def tools_to_gemini_format(tools: List[Tool]) -> Optional[List[types.Tool]]:
    """Convert tool definitions to a single Gemini Tool, or None if empty."""
    if not tools:
        return None

    declarations = [
        types.FunctionDeclaration(
            name=tool.name,
            description=tool.description,
            parameters=_sanitize_schema_for_gemini(tool.parameters) if tool.parameters else None,
        )
        for tool in tools
    ]
    return [types.Tool(function_declarations=declarations)]


def messages_to_gemini_format(
    messages: List[Message],
) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Split messages into a system instruction and Gemini ``contents``.

    System messages are joined into the system instruction. Assistant
    messages use the ``model`` role; tool results become ``function_response``
    parts sent with the ``user`` role.
    """
    system_parts = []
    contents = []

    for message in messages:
        if message.role == SYSTEM:
            if message.content:
                system_parts.append(message.content)
        elif message.role == USER:
            contents.append({"role": "user", "parts": [{"text": message.content}]})
        elif message.role == ASSISTANT:
            parts: List[Dict[str, Any]] = []
            if message.content:
                parts.append({"text": message.content})
            for call in message.tool_calls:
                parts.append({"function_call": {"name": call.name, "args": call.args}})
            if parts:
                contents.append({"role": "model", "parts": parts})
        elif message.role == TOOL:
            contents.append(
                {
                    "role": "user",
                    "parts": [
                        {
                            "function_response": {
                                "name": message.name or "",
                                "response": {"result": message.content},
                            }
                        }
                    ],
                }
            )

    system_instruction = "\n\n".join(system_parts) if system_parts else None
    return system_instruction, contents


def _coerce_function_args(raw_args: Any) -> Dict[str, Any]:
    if raw_args is None:
        return {}
    if isinstance(raw_args, dict):
        return raw_args
    try:
        return dict(raw_args)
    except (TypeError, ValueError) as e:
        logger.warning("Failed to convert to dict: %s (type: %s)", e, type(raw_args).__name__)
        return {}


def _iter_parts(chunk):
    for candidate in getattr(chunk, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            yield part


class GeminiAdapter(BackendAdapter):
    """Google Gemini adapter using the async ``google.genai`` client"""

    name = "gemini"

    def __init__(self, model: str, api_key: Optional[str] = None, client=None):
        self.model = model
        if is_config_initialized():
            api_key = api_key or get_config().google_api_key
        self.api_key = api_key
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise ValueError("GOOGLE_API_KEY is not set")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def _build_config(self, request: ChatRequest, system_instruction: Optional[str]):
        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=request.temperature,
            max_output_tokens=request.max_tokens,
            tools=tools_to_gemini_format(request.tools),
        )

    def send(self, request: ChatRequest) -> StreamHandle:
        logger.debug(
            "context tokens: %d / %d (model=%s)",
            count_context_tokens(request.messages, self.model),
            get_max_context_length(self.model),
            self.model,
        )
        return StreamHandle(self._generate(request))

    async def _generate(self, request: ChatRequest):
        system_instruction, contents = messages_to_gemini_format(request.messages)
        config = self._build_config(request, system_instruction)
        models = self.client.aio.models

        if request.streaming:
            chunks = await models.generate_content_stream(
                model=self.model, contents=contents, config=config
            )
        else:
            response = await models.generate_content(
                model=self.model, contents=contents, config=config
            )
            chunks = _single(response)

        accumulated = []
        tool_calls: List[ToolCall] = []

        async for chunk in chunks:
            for part in _iter_parts(chunk):
                text = getattr(part, "text", None)
                if text and not getattr(part, "thought", False):
                    accumulated.append(text)
                    yield StreamEvent.chunk(text)

                function_call = getattr(part, "function_call", None)
                if function_call and function_call.name:
                    call_id = getattr(function_call, "id", None) or (
                        f"{function_call.name}-{len(tool_calls)}"
                    )
                    call = ToolCall(
                        id=call_id,
                        name=function_call.name,
                        args=_coerce_function_args(function_call.args),
                    )
                    tool_calls.append(call)
                    logger.debug("Gemini function_call received: %s", call.name)

        for call in tool_calls:
            yield StreamEvent.tool_call(call)

        yield StreamEvent.complete(
            Message(role=ASSISTANT, content="".join(accumulated), tool_calls=tool_calls)
        )


async def _single(response):
    yield response
