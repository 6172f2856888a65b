"""OpenAI-compatible backend adapter

Works with any endpoint speaking the Chat Completions API (OpenAI itself or
a compatible server selected through ``base_url``).
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

import openai

from ..config import get_config, is_config_initialized
from ..errors import ProviderError
from ..messages import ASSISTANT, TOOL, Message, ToolCall
from ..token_utils import count_context_tokens, get_max_context_length
from ..tools import Tool
from .base import BackendAdapter, ChatRequest
from .stream import StreamEvent, StreamHandle

logger = logging.getLogger(__name__)

_PARAMETER_TAG_RE = re.compile(r"<parameter=([^>]+)>(.*?)</parameter>", re.DOTALL)


def tools_to_openai_format(tools: List[Tool]) -> Optional[List[Dict[str, Any]]]:
    """Convert tool definitions to OpenAI tools format.

    Returns:
        List of ``{"type": "function", "function": {...}}`` dicts,
        or None if no tools are provided.
    """
    if not tools:
        return None

    openai_tools = []
    for tool in tools:
        function = {"name": tool.name, "description": tool.description or ""}
        if tool.parameters:
            function["parameters"] = tool.parameters
        openai_tools.append({"type": "function", "function": function})
    return openai_tools


def messages_to_openai_format(messages: List[Message]) -> List[Dict[str, Any]]:
    """Convert messages to Chat Completions format.

    An assistant message that only carries tool calls gets ``content: None``,
    and tool results are sent with their ``tool_call_id``.
    """
    converted = []
    for message in messages:
        entry: Dict[str, Any] = {"role": message.role, "content": message.content}

        if message.role == ASSISTANT and message.tool_calls:
            entry["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.args)},
                }
                for call in message.tool_calls
            ]
            if not message.content:
                entry["content"] = None

        if message.role == TOOL:
            if not message.tool_call_id:
                logger.warning(
                    "Tool message without tool_call_id (name=%s). "
                    "OpenAI requires tool_call_id for tool role messages.",
                    message.name,
                )
            entry["tool_call_id"] = message.tool_call_id

        converted.append(entry)
    return converted


def parse_tool_call_arguments(arguments: str) -> Dict[str, Any]:
    """Parse a native tool call's argument string.

    Some models emit ``<parameter=x>value</parameter>`` markup instead of
    JSON; that form is accepted as a fallback.

    Raises:
        ValueError: If neither form yields arguments.
    """
    if not arguments or not arguments.strip():
        return {}
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError:
        params = {key: value for key, value in _PARAMETER_TAG_RE.findall(arguments)}
        if params:
            return params
        raise
    if not isinstance(parsed, dict):
        raise ValueError(f"tool arguments must be an object, got {type(parsed).__name__}")
    return parsed


def _arguments_or_empty(name: str, arguments: str) -> Dict[str, Any]:
    """Parse arguments, keeping the call with empty arguments when they are broken."""
    try:
        return parse_tool_call_arguments(arguments)
    except ValueError as e:
        logger.warning("Failed to parse arguments of tool call '%s': %s", name, e)
        return {}


class OpenAIToolCallAssembler:
    """Assembles streamed tool calls.

    The API streams tool calls as partial JSON argument strings spread over
    many chunks. Each call carries an ``index`` identifying it among
    parallel calls; ``id`` and ``name`` usually arrive with the first delta.

    State Management:
        _calls_by_index: Dict[int, Dict]
            Key: tool_call.index
            Value: {"id": str, "name": str, "arguments_json": str}

    Usage:
        ```python
        assembler = OpenAIToolCallAssembler()
        async for chunk in stream:
            for tc_delta in chunk.choices[0].delta.tool_calls or []:
                assembler.process_tool_call(tc_delta)
        calls = assembler.finalize()
        ```
    """

    def __init__(self):
        self._calls_by_index: Dict[int, Dict[str, Any]] = {}

    def reset(self) -> None:
        """Clear all internal state for reuse."""
        self._calls_by_index.clear()

    @property
    def has_calls(self) -> bool:
        return bool(self._calls_by_index)

    def process_tool_call(self, tool_call_delta) -> None:
        """Accumulate one tool_call delta from a streaming response."""
        index = getattr(tool_call_delta, "index", None) or 0
        function = getattr(tool_call_delta, "function", None)

        if index not in self._calls_by_index:
            self._calls_by_index[index] = {"id": None, "name": "", "arguments_json": ""}

        call = self._calls_by_index[index]

        if getattr(tool_call_delta, "id", None):
            call["id"] = tool_call_delta.id

        if function is not None:
            if getattr(function, "name", None):
                call["name"] += function.name
            if getattr(function, "arguments", None):
                call["arguments_json"] += function.arguments

    def finalize(self) -> List[ToolCall]:
        """Parse accumulated arguments and return the complete calls.

        Entries without a name are dropped. Calls whose arguments cannot be
        parsed are kept with empty arguments.
        """
        calls = []
        for index in sorted(self._calls_by_index):
            entry = self._calls_by_index[index]
            if not entry["name"]:
                logger.warning("Dropping streamed tool call without name (index=%s)", index)
                continue
            args = _arguments_or_empty(entry["name"], entry["arguments_json"])

            logger.debug(
                "Finalizing tool_call: index=%s, id=%s, name=%s", index, entry["id"], entry["name"]
            )
            calls.append(
                ToolCall(id=entry["id"] or f"call_{index}", name=entry["name"], args=args)
            )
        return calls


def _extract_delta_text(delta) -> str:
    delta_content = getattr(delta, "content", None)
    if isinstance(delta_content, list):
        return "".join(part.text if hasattr(part, "text") else str(part) for part in delta_content)
    return delta_content or ""


class OpenAIAdapter(BackendAdapter):
    """OpenAI Chat Completions adapter

    The async client is created lazily so adapters can be built before the
    API key is known. A preconfigured client may be injected instead.
    """

    name = "openai"

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client=None,
    ):
        self.model = model
        if is_config_initialized():
            config = get_config()
            api_key = api_key or config.openai_api_key
            base_url = base_url or config.openai_base_url
        self.api_key = api_key
        self.base_url = base_url
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise ValueError("OPENAI_API_KEY is not set")
            self._client = openai.AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def _build_params(self, request: ChatRequest) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": messages_to_openai_format(request.messages),
            "temperature": request.temperature,
            "stream": request.streaming,
        }
        if request.max_tokens is not None:
            params["max_tokens"] = request.max_tokens

        openai_tools = tools_to_openai_format(request.tools)
        if openai_tools:
            params["tools"] = openai_tools
            params["tool_choice"] = "auto"
        return params

    def send(self, request: ChatRequest) -> StreamHandle:
        logger.debug(
            "context tokens: %d / %d (model=%s)",
            count_context_tokens(request.messages, self.model),
            get_max_context_length(self.model),
            self.model,
        )
        if request.streaming:
            return StreamHandle(self._stream(request))
        return StreamHandle(self._complete(request))

    async def _stream(self, request: ChatRequest):
        params = self._build_params(request)
        stream = await self.client.chat.completions.create(**params)

        assembler = OpenAIToolCallAssembler()
        accumulated = []

        async for chunk in stream:
            if not getattr(chunk, "choices", None):
                continue
            delta = chunk.choices[0].delta
            if delta is None:
                continue

            for tool_call_delta in getattr(delta, "tool_calls", None) or []:
                assembler.process_tool_call(tool_call_delta)

            text = _extract_delta_text(delta)
            if text:
                accumulated.append(text)
                yield StreamEvent.chunk(text)

        tool_calls = assembler.finalize()
        for call in tool_calls:
            yield StreamEvent.tool_call(call)

        yield StreamEvent.complete(
            Message(role=ASSISTANT, content="".join(accumulated), tool_calls=tool_calls)
        )

    async def _complete(self, request: ChatRequest):
        params = self._build_params(request)
        response = await self.client.chat.completions.create(**params)

        error = getattr(response, "error", None)
        if error:
            if isinstance(error, dict):
                detail = error.get("message", error)
            else:
                detail = getattr(error, "message", error)
            raise ProviderError(f"Upstream error: {detail}")
        if not response.choices:
            raise ProviderError("Upstream response has no choices")

        reply = response.choices[0].message
        content = reply.content or ""
        reasoning = getattr(reply, "reasoning", None) or getattr(reply, "reasoning_content", None)
        if reasoning:
            content = f"\n<think>\n{reasoning}\n</think>\n{content}"

        tool_calls = []
        for native_call in getattr(reply, "tool_calls", None) or []:
            args = _arguments_or_empty(native_call.function.name, native_call.function.arguments)
            call = ToolCall(id=native_call.id, name=native_call.function.name, args=args)
            tool_calls.append(call)
            yield StreamEvent.tool_call(call)

        yield StreamEvent.complete(Message(role=ASSISTANT, content=content, tool_calls=tool_calls))
