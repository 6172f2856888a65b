"""Streaming scanner that hides tool-call markup from streamed prose.

Chunk boundaries are arbitrary: an opening tag may be split anywhere, and a
single fragment may contain prose, a whole span and more prose. The scanner
holds back only the smallest suffix that could still turn into markup:

- idle: text passes through, except a trailing suffix that is a prefix of
  ``<ToolCall>`` / ``<Tool_Call>`` (case-insensitive), which is buffered;
- buffering: once an opening tag is complete, everything is held until the
  matching closing tag arrives, then the span is absorbed and any trailing
  text is scanned again.

Usage:
    ```python
    scanner = ToolTagScanner()
    async for fragment in stream:
        for text in scanner.feed(fragment):
            print(text, end="")
    for text in scanner.finish():
        print(text, end="")
    ```
"""

import logging
from typing import Iterable, Iterator, List

from .extractor import CLOSE_TAG_RE, OPEN_TAG_RE, parse_span_body

logger = logging.getLogger(__name__)

_OPEN_TAG_SPELLINGS = ("<toolcall>", "<tool_call>")


def is_open_tag_prefix(text: str) -> bool:
    """Return True if ``text`` could still grow into an opening tag."""
    lowered = text.lower()
    return any(tag.startswith(lowered) for tag in _OPEN_TAG_SPELLINGS)


class ToolTagScanner:
    """Classify streamed fragments as prose or tool-call markup.

    Attributes:
        spans: Raw tool-call spans absorbed so far, in stream order.
    """

    def __init__(self):
        self._buffer = ""
        self._in_span = False
        self._open_tag_end = 0
        self.spans: List[str] = []

    @property
    def buffering(self) -> bool:
        """True while text is held back waiting for more input."""
        return bool(self._buffer)

    def reset(self) -> None:
        """Clear all internal state for reuse."""
        self._buffer = ""
        self._in_span = False
        self._open_tag_end = 0
        self.spans = []

    def feed(self, fragment: str) -> List[str]:
        """Consume one fragment.

        Returns:
            Content fragments that can be surfaced now, in order.
        """
        if not fragment:
            return []

        self._buffer += fragment
        content: List[str] = []

        while self._buffer:
            if self._in_span:
                closing = CLOSE_TAG_RE.search(self._buffer, self._open_tag_end)
                if not closing:
                    break
                self.spans.append(self._buffer[: closing.end()])
                logger.debug("Absorbed tool call span (%d chars)", closing.end())
                self._buffer = self._buffer[closing.end():]
                self._in_span = False
                continue

            opening = OPEN_TAG_RE.search(self._buffer)
            if opening:
                if opening.start():
                    content.append(self._buffer[: opening.start()])
                self._buffer = self._buffer[opening.start():]
                self._open_tag_end = opening.end() - opening.start()
                self._in_span = True
                continue

            cut = self._buffer.rfind("<")
            if cut != -1 and is_open_tag_prefix(self._buffer[cut:]):
                if cut:
                    content.append(self._buffer[:cut])
                self._buffer = self._buffer[cut:]
            else:
                content.append(self._buffer)
                self._buffer = ""
            break

        return content

    def finish(self) -> List[str]:
        """Flush at end of stream.

        A dangling tag prefix is content. An unterminated span is content
        unless its body already parses as a tool call.
        """
        if not self._buffer:
            self._in_span = False
            return []

        pending, self._buffer = self._buffer, ""
        if not self._in_span:
            return [pending]

        self._in_span = False
        try:
            parse_span_body(pending[self._open_tag_end:])
        except (ValueError, RecursionError) as e:
            logger.debug("Unterminated tool call treated as content: %s", e)
            return [pending]

        self.spans.append(pending)
        return []


def scan_fragments(fragments: Iterable[str]) -> Iterator[str]:
    """Yield the prose of a fragment stream with tool-call spans removed."""
    scanner = ToolTagScanner()
    for fragment in fragments:
        yield from scanner.feed(fragment)
    yield from scanner.finish()
