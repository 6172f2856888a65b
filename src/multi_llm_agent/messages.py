"""Conversation data model: messages, tool calls and history checks."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

USER = "user"
ASSISTANT = "assistant"
SYSTEM = "system"
TOOL = "tool"
ALL_ROLES = {USER, ASSISTANT, SYSTEM, TOOL}


@dataclass
class ToolCall:
    """A tool invocation requested by the model.

    Attributes:
        id: Call identifier (provided by the LLM or synthesized on extraction)
        name: Tool name
        args: Arguments for the tool invocation
        result: Tool output, set exactly once by the dispatch loop
    """

    id: str
    name: str = ""
    args: Dict[str, Any] = field(default_factory=dict)
    result: Optional[str] = None

    def resolve(self, result: str) -> None:
        """Record the tool output.

        Raises:
            ValueError: If the call was already resolved.
        """
        if self.result is not None:
            raise ValueError(f"Tool call '{self.id}' already has a result")
        self.result = result

    def to_message(self) -> "Message":
        """Build the role=tool message carrying this call's result."""
        return Message(
            role=TOOL,
            content=self.result or "",
            tool_call_id=self.id,
            name=self.name,
        )


@dataclass
class Message:
    """A single conversation entry.

    Tool-result messages (role="tool") also carry the id and name of the
    call they answer.
    """

    role: str
    content: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self):
        if self.role not in ALL_ROLES:
            raise ValueError(f"Invalid role: '{self.role}'. Must be one of {ALL_ROLES}")
        if self.content is None:
            self.content = ""


def merge_replies(replies: List[Message], separator: str = "\n") -> Message:
    """Stitch the assistant replies of one multi-hop turn into a single reply.

    A single reply is returned unchanged.
    """
    if not replies:
        raise ValueError("merge_replies() requires at least one reply")
    if len(replies) == 1:
        return replies[0]

    tool_calls: List[ToolCall] = []
    for reply in replies:
        tool_calls.extend(reply.tool_calls)

    return Message(
        role=ASSISTANT,
        content=separator.join(reply.content for reply in replies),
        tool_calls=tool_calls,
    )


def validate_history(history: List[Message]) -> None:
    """Validate tool-result ordering in a conversation history.

    Every role="tool" message must answer a call of the closest preceding
    assistant message, and results must appear in call-array order.

    Raises:
        ValueError: If the history violates the ordering invariant.
    """
    pending: List[str] = []
    for i, message in enumerate(history):
        if message.role == TOOL:
            if not pending:
                raise ValueError(f"history[{i}]: tool result without a pending tool call")
            expected = pending.pop(0)
            if message.tool_call_id != expected:
                raise ValueError(
                    f"history[{i}]: tool result for '{message.tool_call_id}' "
                    f"out of order (expected '{expected}')"
                )
            continue

        if pending:
            logger.debug("history[%d]: %d tool call(s) left without result", i, len(pending))
        pending = [call.id for call in message.tool_calls] if message.role == ASSISTANT else []
