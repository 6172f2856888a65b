"""Text-embedded tool-call protocol

This package contains the pieces used when a backend has no native function
calling and tool calls travel inside the reply text:

- tag_scanner: hides ``<ToolCall>`` spans from streamed chunks
- extractor: parses spans (JSON or XML-like dialect) into ToolCall objects
- prompt: system prompt describing the tool catalog and the call format
"""

from .extractor import extract_tool_calls, parse_span_body, split_tool_calls, strip_tool_call_markup
from .prompt import build_tools_system_prompt, tools_system_message
from .tag_scanner import ToolTagScanner, is_open_tag_prefix, scan_fragments

__all__ = [
    "ToolTagScanner",
    "build_tools_system_prompt",
    "extract_tool_calls",
    "is_open_tag_prefix",
    "parse_span_body",
    "scan_fragments",
    "split_tool_calls",
    "strip_tool_call_markup",
    "tools_system_message",
]
