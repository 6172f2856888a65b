"""Event stream returned by backend adapters

A ``StreamHandle`` wraps the async generator produced by an adapter. It is
both an async iterable of ``StreamEvent`` objects and an awaitable resolving
to the final ``Message``. Listeners are attached per request through
``subscribe()``, which detaches them when the ``with`` block exits,
whether the request succeeded or failed.

Usage:
    ```python
    handle = adapter.send(request)
    with handle.subscribe(print_event):
        reply = await handle
    ```
"""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, List, Optional

from ..errors import ProviderError
from ..messages import Message, ToolCall

logger = logging.getLogger(__name__)

CHUNK = "chunk"
TOOL_CALL = "tool_call"
TOOL_RESULT = "tool_result"
ERROR = "error"
COMPLETE = "complete"


@dataclass(frozen=True)
class StreamEvent:
    """One event of a reply stream.

    ``content`` depends on ``type``: text for chunk, a ToolCall for
    tool_call/tool_result, the exception for error, the final Message for
    complete.
    """

    type: str
    content: Any

    @classmethod
    def chunk(cls, text: str) -> "StreamEvent":
        return cls(CHUNK, text)

    @classmethod
    def tool_call(cls, call: ToolCall) -> "StreamEvent":
        return cls(TOOL_CALL, call)

    @classmethod
    def tool_result(cls, call: ToolCall) -> "StreamEvent":
        return cls(TOOL_RESULT, call)

    @classmethod
    def error(cls, cause: BaseException) -> "StreamEvent":
        return cls(ERROR, cause)

    @classmethod
    def complete(cls, message: Message) -> "StreamEvent":
        return cls(COMPLETE, message)


Listener = Callable[[StreamEvent], None]


class Subscription:
    """Context manager returned by ``StreamHandle.subscribe``."""

    def __init__(self, listeners: List[Listener], listener: Listener):
        self._listeners = listeners
        self._listener = listener
        self._listeners.append(listener)

    def close(self) -> None:
        if self._listener in self._listeners:
            self._listeners.remove(self._listener)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class StreamHandle:
    """Single-consumer event channel plus awaitable final reply."""

    def __init__(self, events: AsyncIterator[StreamEvent]):
        self._events = events
        self._listeners: List[Listener] = []
        self._consumed = False
        self._message: Optional[Message] = None

    def subscribe(self, listener: Listener) -> Subscription:
        return Subscription(self._listeners, listener)

    def _dispatch(self, event: StreamEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    async def __aiter__(self):
        if self._consumed:
            raise RuntimeError("StreamHandle can only be consumed once")
        self._consumed = True

        try:
            async for event in self._events:
                if event.type == COMPLETE:
                    self._message = event.content
                self._dispatch(event)
                yield event
        except Exception as e:
            logger.debug("Stream failed: %s", e)
            self._dispatch(StreamEvent.error(e))
            raise

    async def result(self) -> Message:
        """Drain the stream and return the final Message.

        Raises:
            ProviderError: If the stream ended without a complete event.
        """
        if not self._consumed:
            async for _ in self:
                pass
        if self._message is None:
            raise ProviderError("Stream ended without a complete event")
        return self._message

    def __await__(self):
        return self.result().__await__()
