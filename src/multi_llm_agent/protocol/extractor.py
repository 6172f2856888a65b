"""Extraction of text-embedded tool calls.

Models without native function calling are instructed to answer with
``<ToolCall> ... </ToolCall>`` spans. Two body dialects are accepted:

- JSON: a single object or an array of objects, e.g.
  ``{"tool": "read_file", "parameters": {"path": "a.txt"}}``.
  ``name``/``tool`` and ``parameters``/``args``/``arguments`` are aliases;
  string arguments are decoded a second time (double-encoded JSON).
- XML-like (fallback): a tool name followed by parameter tags, e.g.
  ``<tool_name>read_file</tool_name><parameter name="path">a.txt</parameter>``.

All parsing is best-effort: a span that fails under both dialects is logged
and skipped, and extraction never raises.
"""

import json
import logging
import re
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from ..messages import ToolCall

logger = logging.getLogger(__name__)

OPEN_TAG_RE = re.compile(r"<tool_?call>", re.IGNORECASE)
CLOSE_TAG_RE = re.compile(r"</tool_?call>", re.IGNORECASE)
SPAN_RE = re.compile(r"<tool_?call>(.*?)</tool_?call>", re.IGNORECASE | re.DOTALL)

_NAME_TAG_RE = re.compile(
    r"^\s*<(?P<tag>(?:tool_?|function_?)?name)>\s*(?P<name>.+?)\s*</(?P=tag)>",
    re.IGNORECASE | re.DOTALL,
)
_BARE_NAME_RE = re.compile(r"^\s*(?P<name>[A-Za-z_][\w.\-]*)\s*(?=<)")
_PARAM_ATTR_RE = re.compile(
    r"<parameter\s+name=[\"'](?P<key>[^\"']+)[\"']\s*>(?P<value>.*?)</parameter>",
    re.IGNORECASE | re.DOTALL,
)
_PARAM_EQ_RE = re.compile(
    r"<parameter=(?P<key>[^>]+)>(?P<value>.*?)</parameter>",
    re.IGNORECASE | re.DOTALL,
)
_KEY_VALUE_RE = re.compile(
    r"<(?P<kp>\w*?)key>(?P<key>.+?)</(?P=kp)key>\s*<(?P<vp>\w*?)value>(?P<value>.*?)</(?P=vp)value>",
    re.IGNORECASE | re.DOTALL,
)
_CHILD_TAG_RE = re.compile(r"<(?P<key>[A-Za-z_][\w\-]*)>(?P<value>.*?)</(?P=key)>", re.DOTALL)
_WRAPPER_TAGS = {"parameters", "params", "args", "arguments"}

_CODE_FENCE_RE = re.compile(r"^```[\w-]*\s*(?P<inner>.*?)\s*```$", re.DOTALL)

_NAME_KEYS = ("name", "tool")
_ARGS_KEYS = ("parameters", "args", "arguments")


def _looks_like_json(body: str) -> bool:
    return body[:1] in ("{", "[")


def _first_present(data: Dict[str, Any], keys) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _normalize_args(raw_args: Any) -> Dict[str, Any]:
    if raw_args is None:
        return {}
    if isinstance(raw_args, str):
        raw_args = json.loads(raw_args) if raw_args.strip() else {}
    if not isinstance(raw_args, dict):
        raise ValueError(f"tool arguments must be an object, got {type(raw_args).__name__}")
    return raw_args


def _parse_json_body(body: str) -> List[Dict[str, Any]]:
    data = json.loads(body)
    entries = data if isinstance(data, list) else [data]

    parsed = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValueError(f"tool call must be an object, got {type(entry).__name__}")
        name = _first_present(entry, _NAME_KEYS)
        if not isinstance(name, str) or not name:
            raise ValueError("tool call has no 'name' or 'tool' field")
        parsed.append(
            {
                "id": entry.get("id"),
                "name": name,
                "args": _normalize_args(_first_present(entry, _ARGS_KEYS)),
            }
        )
    return parsed


def _parse_xml_body(body: str) -> List[Dict[str, Any]]:
    match = _NAME_TAG_RE.match(body) or _BARE_NAME_RE.match(body)
    if not match:
        raise ValueError("no tool name found in XML-like tool call")
    name = match.group("name").strip()
    rest = body[match.end():]

    params: Dict[str, str] = {}
    for pattern in (_PARAM_ATTR_RE, _PARAM_EQ_RE, _KEY_VALUE_RE):
        for param in pattern.finditer(rest):
            params[param.group("key").strip()] = param.group("value").strip()
        if params:
            break

    if not params:
        children = list(_CHILD_TAG_RE.finditer(rest))
        # <parameters><path>a.txt</path></parameters>
        if len(children) == 1 and children[0].group("key").lower() in _WRAPPER_TAGS:
            children = list(_CHILD_TAG_RE.finditer(children[0].group("value")))
        for child in children:
            params[child.group("key")] = child.group("value").strip()

    if not params and rest.strip():
        raise ValueError(f"unrecognized parameter markup for tool '{name}'")

    return [{"id": None, "name": name, "args": params}]


def parse_span_body(body: str) -> List[Dict[str, Any]]:
    """Parse the text between a pair of tool-call tags.

    Returns:
        List of ``{"id", "name", "args"}`` dicts (``id`` may be None).

    Raises:
        ValueError: If the body matches neither dialect
                    (json.JSONDecodeError is a ValueError).
    """
    stripped = body.strip()
    fenced = _CODE_FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group("inner").strip()
    if not stripped:
        raise ValueError("empty tool call")
    if _looks_like_json(stripped):
        return _parse_json_body(stripped)
    if "<" not in stripped:
        raise ValueError("tool call body is neither JSON nor XML-like markup")
    return _parse_xml_body(stripped)


def _unique_id(candidate: str, seen: Set[str]) -> str:
    unique = candidate
    suffix = 1
    while unique in seen:
        suffix += 1
        unique = f"{candidate}-{suffix}"
    seen.add(unique)
    return unique


def _unterminated_tail(text: str, last_end: int) -> Optional[Tuple[int, str]]:
    """Return (start, body) of an open tag after the last complete span."""
    match = OPEN_TAG_RE.search(text, last_end)
    if not match:
        return None
    return match.start(), text[match.end():]


def split_tool_calls(text: str) -> Tuple[str, List[ToolCall]]:
    """Separate prose from embedded tool calls.

    Every complete span is removed from the returned content, whether or not
    it parsed. A trailing unterminated span is removed only when its body
    parses as a tool call.

    Returns:
        (content without tool-call markup, extracted tool calls)
    """
    if not text:
        return "", []

    calls: List[ToolCall] = []
    seen: Set[str] = set()
    stamp = int(time.time() * 1000)
    pieces: List[str] = []
    last_end = 0

    def _collect(body: str, raw: str) -> bool:
        try:
            entries = parse_span_body(body)
        except (ValueError, RecursionError) as e:
            logger.warning("Failed to parse tool call: %s", e)
            logger.debug("Tool call content: %s", raw)
            return False
        for entry in entries:
            index = len(calls)
            call_id = entry["id"] or f"{entry['name']}-{index}-{stamp}"
            calls.append(
                ToolCall(id=_unique_id(str(call_id), seen), name=entry["name"], args=entry["args"])
            )
        return True

    for match in SPAN_RE.finditer(text):
        pieces.append(text[last_end:match.start()])
        _collect(match.group(1), match.group(0))
        last_end = match.end()

    tail = _unterminated_tail(text, last_end)
    if tail is not None:
        start, body = tail
        if _collect(body, text[start:]):
            pieces.append(text[last_end:start])
            last_end = len(text)

    pieces.append(text[last_end:])
    return "".join(pieces), calls


def extract_tool_calls(text: str) -> List[ToolCall]:
    """Extract all tool calls embedded in ``text`` (possibly an empty list)."""
    return split_tool_calls(text)[1]


def strip_tool_call_markup(text: str) -> str:
    """Remove tool-call spans from ``text``."""
    return split_tool_calls(text)[0]
