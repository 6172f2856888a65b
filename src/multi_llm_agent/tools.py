"""Tool definitions exposed to the model."""

import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

ToolCallback = Callable[[Dict[str, Any]], Union[str, Awaitable[str]]]


class Tool:
    """A named capability the model may invoke.

    ``call()`` never raises: faults inside the callback are converted into
    an error string that becomes the tool result.
    """

    type = "function"

    def __init__(
        self,
        name: str,
        description: str,
        callback: ToolCallback,
        parameters: Optional[Dict[str, Dict[str, Any]]] = None,
        required: Optional[List[str]] = None,
    ):
        if not name:
            raise ValueError("Tool name must not be empty")
        self.name = name
        self.description = description
        self.callback = callback
        self.parameters: Optional[Dict[str, Any]] = None

        if parameters:
            self.parameters = {
                "type": "object",
                "properties": parameters,
                "required": list(required or []),
            }

    def __repr__(self):
        return f"Tool(name={self.name!r})"

    async def call(self, args: Dict[str, Any]) -> str:
        try:
            result = self.callback(args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning("Tool '%s' raised: %s", self.name, e)
            return f"Error: {e}"

        if isinstance(result, str):
            return result
        try:
            return json.dumps(result, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(result)


def find_tool(tools: Iterable[Tool], name: str) -> Optional[Tool]:
    """Return the first tool registered under ``name``."""
    for tool in tools:
        if tool.name == name:
            return tool
    return None
