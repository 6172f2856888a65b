"""Conversation session with multi-hop tool dispatch

A session owns one conversation history and one backend adapter. Each
``send()`` runs the tool dispatch loop:

1. request a reply for the current context (system prompt + history)
2. append the reply; if it carries tool calls, run them sequentially in
   call order and append one tool-result message per call
3. repeat from 1 until a reply has no tool calls

The replies of all hops are merged into the single message returned to the
caller. Listeners receive chunk/tool_call/error events of each hop, a
tool_result event after each tool, and one complete event per turn.
"""

import asyncio
import json
import logging
from contextlib import contextmanager
from typing import Callable, List, Optional

from .messages import SYSTEM, Message, ToolCall, merge_replies
from .providers.base import BackendAdapter, ChatRequest
from .providers.stream import COMPLETE, StreamEvent
from .tools import Tool, find_tool

logger = logging.getLogger(__name__)

Listener = Callable[[StreamEvent], None]


def _summarize(value, limit: int) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    return " ".join(text.split())[:limit]


class ConversationSession:
    """Conversation state plus the tool dispatch loop.

    Attributes:
        adapter: Backend used for the next request (may be swapped between
                 turns, e.g. by a failover controller)
        tools: Tools the model may call
        system_prompt: Prepended as a system message when non-empty
        history: Append-only conversation history
        max_hops: Optional bound on requests per turn (None for unbounded)
    """

    def __init__(
        self,
        adapter: BackendAdapter,
        tools: Optional[List[Tool]] = None,
        system_prompt: str = "",
        history: Optional[List[Message]] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        streaming: bool = True,
        max_hops: Optional[int] = None,
    ):
        if max_hops is not None and max_hops < 1:
            raise ValueError(f"max_hops must be >= 1, got {max_hops}")
        self.adapter = adapter
        self.tools: List[Tool] = list(tools or [])
        self.system_prompt = system_prompt
        self.history: List[Message] = list(history or [])
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.streaming = streaming
        self.max_hops = max_hops

        self._listeners: List[Listener] = []
        self._turn: List[Message] = []
        self._lock = asyncio.Lock()

    # Listeners

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @contextmanager
    def listening(self, listener: Listener):
        """Attach ``listener`` for the duration of a ``with`` block."""
        self.add_listener(listener)
        try:
            yield self
        finally:
            self.remove_listener(listener)

    def _emit(self, event: StreamEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def _relay(self, event: StreamEvent) -> None:
        # Per-hop completes are folded into one merged complete per turn
        if event.type != COMPLETE:
            self._emit(event)

    # Turns

    def context(self) -> List[Message]:
        """Messages sent with the next request."""
        if self.system_prompt:
            return [Message(role=SYSTEM, content=self.system_prompt)] + self.history
        return list(self.history)

    async def send(self, message: Optional[Message] = None) -> Message:
        """Run one turn and return the merged reply.

        Args:
            message: New user message (None to request a reply for the
                     current history as is)

        Raises:
            Exception: Whatever the adapter raised; the history keeps every
                       message appended before the failure.
        """
        async with self._lock:
            if message is not None:
                self.history.append(message)
            self._turn = []
            return await self._run_turn()

    async def resume(self) -> Message:
        """Continue the current turn from the history after a failure.

        Replies of hops completed before the failure are kept in the merged
        reply. Without an interrupted turn this behaves like ``send()``.
        """
        async with self._lock:
            return await self._run_turn()

    async def _request(self) -> Message:
        request = ChatRequest(
            messages=self.context(),
            tools=self.tools,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            streaming=self.streaming,
        )
        handle = self.adapter.send(request)
        with handle.subscribe(self._relay):
            return await handle

    async def _run_turn(self) -> Message:
        hops = 0
        while True:
            reply = await self._request()
            hops += 1
            self.history.append(reply)
            self._turn.append(reply)

            if not reply.tool_calls:
                break

            for call in reply.tool_calls:
                await self._dispatch(call)

            if self.max_hops is not None and hops >= self.max_hops:
                logger.warning(
                    "Stopping tool dispatch after %d request(s) (max_hops=%d)", hops, self.max_hops
                )
                break

        merged = merge_replies(self._turn)
        self._turn = []
        self._emit(StreamEvent.complete(merged))
        return merged

    async def _dispatch(self, call: ToolCall) -> None:
        logger.info("[ ToolCall: %s %s ]", call.name, _summarize(call.args, 60))

        tool = find_tool(self.tools, call.name)
        if tool is None:
            result = f'Error: Tool "{call.name}" not found'
        else:
            try:
                result = await tool.call(call.args)
            except Exception as e:
                logger.warning("Tool '%s' failed: %s", call.name, e)
                result = f'Error: "{e}"'

        logger.info("%s", _summarize(result, 80))
        call.resolve(result)
        self.history.append(call.to_message())
        self._emit(StreamEvent.tool_result(call))
