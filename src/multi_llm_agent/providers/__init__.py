"""Backend adapters

Services are named in ``provider:model`` form, e.g. ``openai:gpt-4o`` or
``gemini:gemini-2.5-flash``.
"""

import logging

from .base import BackendAdapter, ChatRequest
from .gemini import GeminiAdapter
from .openai import OpenAIAdapter
from .stream import StreamEvent, StreamHandle
from .text_tools import with_text_tool_calls

logger = logging.getLogger(__name__)

ADAPTER_CLASSES = {
    "openai": OpenAIAdapter,
    "gemini": GeminiAdapter,
}


def create_adapter(service: str, parse_tool_calls: bool = False, **kwargs) -> BackendAdapter:
    """Create an adapter from a ``provider:model`` service name

    Args:
        service: Service name, e.g. ``openai:gpt-4o``
        parse_tool_calls: Use the text tool-call protocol instead of
                          native function calling
        **kwargs: Passed to the adapter constructor (api_key, client, ...)

    Raises:
        ValueError: If the service name is malformed or the provider is unknown
    """
    provider, sep, model = service.partition(":")
    provider = provider.strip().lower()
    model = model.strip()
    if not sep or not provider or not model:
        raise ValueError(f"Invalid service name: {service!r} (expected 'provider:model')")

    adapter_class = ADAPTER_CLASSES.get(provider)
    if adapter_class is None:
        raise ValueError(
            f"Unknown provider: {provider!r}. Available: {', '.join(sorted(ADAPTER_CLASSES))}"
        )

    adapter = adapter_class(model, **kwargs)
    logger.debug("Created adapter %r (parse_tool_calls=%s)", adapter, parse_tool_calls)
    if parse_tool_calls:
        return with_text_tool_calls(adapter)
    return adapter


__all__ = [
    "BackendAdapter",
    "ChatRequest",
    "GeminiAdapter",
    "OpenAIAdapter",
    "StreamEvent",
    "StreamHandle",
    "create_adapter",
    "with_text_tool_calls",
]
