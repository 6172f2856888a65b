from typing import List

import pytest

from multi_llm_agent.messages import ASSISTANT, Message
from multi_llm_agent.providers.base import BackendAdapter, ChatRequest
from multi_llm_agent.providers.stream import StreamEvent, StreamHandle


def pytest_configure(config):
    """Initialize runtime before test collection (pytest plugin hook)."""
    from multi_llm_agent.runtime import init_runtime, is_initialized

    if not is_initialized():
        init_runtime()


@pytest.fixture(autouse=True)
def ensure_config_initialized():
    """Ensure configuration is initialized before each test."""
    from multi_llm_agent.config import (
        is_config_initialized,
        load_config_from_env,
        set_config,
    )

    # If config was reset by a previous test, reinitialize it
    if not is_config_initialized():
        config = load_config_from_env()
        set_config(config)

    yield


async def collect_async_generator(async_gen):
    """Helper to collect async generator results into a list"""
    results = []
    async for item in async_gen:
        results.append(item)
    return results


# ========================================
# Shared test fixtures
# ========================================


class RateLimitError(Exception):
    """Stand-in for a provider error carrying an HTTP status."""

    def __init__(self, message="Too Many Requests", status_code=429):
        super().__init__(message)
        self.status_code = status_code


class ScriptedAdapter(BackendAdapter):
    """Adapter replaying scripted steps, one per request.

    A step is a Message, a (chunks, Message) tuple, or an exception to
    raise. The last step repeats once the script is used up.
    """

    def __init__(self, script, name="scripted", model="fake-model"):
        self.script = list(script)
        self.name = name
        self.model = model
        self.requests: List[ChatRequest] = []

    def send(self, request: ChatRequest) -> StreamHandle:
        self.requests.append(request)
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        return StreamHandle(self._events(step))

    async def _events(self, step):
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, tuple):
            chunks, message = step
        else:
            chunks, message = [step.content] if step.content else [], step
        for chunk in chunks:
            yield StreamEvent.chunk(chunk)
        for call in message.tool_calls:
            yield StreamEvent.tool_call(call)
        yield StreamEvent.complete(message)


def assistant(content="", tool_calls=None) -> Message:
    return Message(role=ASSISTANT, content=content, tool_calls=list(tool_calls or []))


@pytest.fixture
def scripted_adapter():
    return ScriptedAdapter


@pytest.fixture
def rate_limit_error():
    return RateLimitError


@pytest.fixture
def reply():
    return assistant


@pytest.fixture(autouse=True)
def mock_api_keys(monkeypatch):
    """Patch API keys to avoid environment dependency"""
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setenv("GOOGLE_API_KEY", "test-key")
