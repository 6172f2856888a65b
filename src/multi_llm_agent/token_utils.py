import logging
import os
from typing import Iterable

import tiktoken

from .messages import Message

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Estimate token count for mixed English/Japanese text

    More accurate estimation that accounts for Japanese characters:
    - ASCII/Latin: ~4 chars = 1 token
    - Japanese (hiragana/katakana/kanji): ~1.5 chars = 1 token

    Args:
        text: Text to estimate

    Returns:
        Estimated token count
    """
    if not text:
        return 0

    japanese_chars = sum(
        1
        for char in text
        if "\u3040" <= char <= "\u309f"  # Hiragana
        or "\u30a0" <= char <= "\u30ff"  # Katakana
        or "\u4e00" <= char <= "\u9fff"  # Kanji
        or "\uff00" <= char <= "\uffef"  # Full-width characters
    )

    ascii_chars = len(text) - japanese_chars

    estimated = (japanese_chars / 1.5) + (ascii_chars / 4.0)

    return int(estimated)


def _encoding_for(model_name: str):
    model_lower = model_name.lower()
    if "gpt-4o" in model_lower or "gpt-4.1" in model_lower or "o1" in model_lower:
        return tiktoken.get_encoding("o200k_base")
    return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str, model_name: str) -> int:
    """Count tokens with tiktoken, falling back to estimation if encoding fails."""
    if not text:
        return 0
    try:
        return len(_encoding_for(model_name).encode(text))
    except Exception as e:
        logger.debug("tiktoken encoding failed for %s, using estimation: %s", model_name, e)
        return estimate_tokens(text)


def count_context_tokens(messages: Iterable[Message], model_name: str) -> int:
    """Count tokens of a request context (3 tokens of overhead per message)."""
    return sum(count_tokens(message.content, model_name) + 3 for message in messages)


def get_max_context_length(model_name: str) -> int:
    """Get maximum context length for the specified model

    Reads DEFAULT_MAX_CONTEXT_LENGTH with fallback to model defaults.
    """
    model_lower = model_name.lower()

    default_max = os.getenv("DEFAULT_MAX_CONTEXT_LENGTH")
    if default_max:
        try:
            return int(default_max)
        except ValueError:
            logger.warning("Invalid DEFAULT_MAX_CONTEXT_LENGTH: %s. Using default.", default_max)

    # Built-in model-specific defaults
    MODEL_DEFAULTS = [
        ("gemini-2.5", 1048576),
        ("gemini-2.0-flash", 1048576),
        ("gemini-1.5-pro", 2097152),
        ("gemini-1.5-flash", 1048576),
        ("gemini", 32760),
        ("gpt-4.1", 1047576),
        ("gpt-4o", 128000),
        ("gpt-4-turbo", 128000),
        ("gpt-4", 8192),
        ("gpt-3.5-turbo", 16385),
        ("kimi-k2", 131072),
        ("qwen3-coder", 262144),
        ("deepseek", 163840),
    ]

    for pattern, context_length in MODEL_DEFAULTS:
        if pattern in model_lower:
            return context_length

    return 4096
