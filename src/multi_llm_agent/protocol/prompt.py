from typing import Iterable

from ..messages import SYSTEM, Message
from ..tools import Tool

TOOL_CALL_INSTRUCTIONS = """To use a tool, respond with the following format:

<ToolCall>
{"tool": "ToolName", "parameters": {"param1": "value1", "param2": "value2"}}
</ToolCall>

CRITICAL: Always use valid JSON in the <ToolCall> tag. Make sure to match brackets! each "{" must have a matching "}"
"""


def build_tools_system_prompt(tools: Iterable[Tool]) -> str:
    """Describe the tool catalog and the tag-delimited JSON call format."""
    lines = ["You have access to the following tools:", ""]

    for tool in tools:
        lines.append(f"Tool: {tool.name}")
        if tool.description:
            lines.append(f"Description: {tool.description}")

        if tool.parameters:
            lines.append("Parameters:")
            properties = tool.parameters.get("properties", {})
            required = tool.parameters.get("required", [])
            for param_name, param_schema in properties.items():
                flag = " (required)" if param_name in required else ""
                line = f"- {param_name}{flag}: {param_schema.get('type', 'any')}"
                if param_schema.get("description"):
                    line += f" - {param_schema['description']}"
                lines.append(line)

        lines.append("")

    return "\n".join(lines) + "\n" + TOOL_CALL_INSTRUCTIONS


def tools_system_message(tools: Iterable[Tool]) -> Message:
    return Message(role=SYSTEM, content=build_tools_system_prompt(tools))
