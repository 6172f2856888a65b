"""Text-embedded tool calls for backends without native function calling

``with_text_tool_calls(adapter)`` composes two steps around any adapter:

1. the tool catalog is moved out of the request and into a leading system
   message describing the ``<ToolCall>`` format;
2. the reply stream is scanned so tool-call markup never reaches listeners
   as chunks, and the completed reply is post-processed into ToolCall
   objects with the markup removed from its content.
"""

import logging
from dataclasses import replace

from ..messages import Message
from ..protocol.extractor import split_tool_calls
from ..protocol.prompt import tools_system_message
from ..protocol.tag_scanner import ToolTagScanner
from .base import BackendAdapter, ChatRequest
from .stream import CHUNK, COMPLETE, StreamEvent, StreamHandle

logger = logging.getLogger(__name__)


def inject_tools_prompt(request: ChatRequest) -> ChatRequest:
    """Return a copy of ``request`` with its tools described in a system message."""
    if not request.tools:
        return request
    messages = [tools_system_message(request.tools)] + list(request.messages)
    return replace(request, messages=messages, tools=[])


def extract_reply_tool_calls(message: Message) -> Message:
    """Move tool calls embedded in ``message.content`` into ``message.tool_calls``."""
    content, calls = split_tool_calls(message.content)
    if not calls and content == message.content:
        return message
    if calls:
        logger.debug("Extracted %d tool call(s) from reply text", len(calls))
    return Message(
        role=message.role,
        content=content,
        tool_calls=list(message.tool_calls) + calls,
    )


class TextToolCallAdapter(BackendAdapter):
    """Adapter wrapper that speaks the text tool-call protocol."""

    def __init__(self, inner: BackendAdapter):
        self.inner = inner
        self.name = inner.name
        self.model = inner.model

    def send(self, request: ChatRequest) -> StreamHandle:
        inner_handle = self.inner.send(inject_tools_prompt(request))
        return StreamHandle(self._events(inner_handle))

    async def _events(self, inner_handle: StreamHandle):
        scanner = ToolTagScanner()

        async for event in inner_handle:
            if event.type == CHUNK:
                for text in scanner.feed(event.content):
                    yield StreamEvent.chunk(text)
            elif event.type == COMPLETE:
                for text in scanner.finish():
                    yield StreamEvent.chunk(text)
                native_count = len(event.content.tool_calls)
                message = extract_reply_tool_calls(event.content)
                for call in message.tool_calls[native_count:]:
                    yield StreamEvent.tool_call(call)
                yield StreamEvent.complete(message)
            else:
                yield event

    def __repr__(self):
        return f"with_text_tool_calls({self.inner!r})"


def with_text_tool_calls(adapter: BackendAdapter) -> BackendAdapter:
    """Wrap ``adapter`` so tool calls travel as ``<ToolCall>`` text spans."""
    if isinstance(adapter, TextToolCallAdapter):
        return adapter
    return TextToolCallAdapter(adapter)
