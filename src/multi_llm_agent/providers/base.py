"""Base classes for backend adapters

This module defines the request type and the abstract interface that all
backend adapters must implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from ..messages import Message
from ..tools import Tool
from .stream import StreamHandle


@dataclass
class ChatRequest:
    """Provider-independent chat request

    Attributes:
        messages: Full context (system message first, if any)
        tools: Tool catalog offered to the model
        temperature: Sampling temperature
        max_tokens: Output token limit (None for provider default)
        streaming: Whether to request an incrementally streamed reply
    """

    messages: List[Message]
    tools: List[Tool] = field(default_factory=list)
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    streaming: bool = True


class BackendAdapter(ABC):
    """Abstract base class for backend adapters"""

    name: str = "backend"
    model: str = ""

    @abstractmethod
    def send(self, request: ChatRequest) -> StreamHandle:
        """Start one request.

        Args:
            request: The chat request. MUST NOT be mutated by the
                     implementation.

        Returns:
            StreamHandle yielding chunk/tool_call events and exactly one
            complete event carrying the final Message on success.
        """
        pass

    def __repr__(self):
        return f"{type(self).__name__}(model={self.model!r})"
