"""Tests for the OpenAI adapter (client mocked)"""

import logging
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from multi_llm_agent.errors import ProviderError
from multi_llm_agent.messages import ASSISTANT, TOOL, Message, ToolCall
from multi_llm_agent.providers.base import ChatRequest
from multi_llm_agent.providers.openai import (
    OpenAIAdapter,
    OpenAIToolCallAssembler,
    messages_to_openai_format,
    parse_tool_call_arguments,
    tools_to_openai_format,
)
from multi_llm_agent.tools import Tool


def _chunk(content=None, tool_calls=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=None)])


def _tc_delta(index, id=None, name=None, arguments=None):
    return SimpleNamespace(
        index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments)
    )


async def _stream(*chunks):
    for chunk in chunks:
        yield chunk


def _client(result):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=result)
    return client


def _request(**kwargs):
    return ChatRequest(messages=[Message(role="user", content="hi")], **kwargs)


class TestConversion(unittest.TestCase):
    def test_tools_to_openai_format(self):
        tool = Tool(
            name="get_weather",
            description="Get the weather",
            callback=lambda args: "",
            parameters={"location": {"type": "string"}},
            required=["location"],
        )
        converted = tools_to_openai_format([tool])
        self.assertEqual(converted[0]["type"], "function")
        self.assertEqual(converted[0]["function"]["name"], "get_weather")
        self.assertEqual(converted[0]["function"]["parameters"]["required"], ["location"])

    def test_tools_to_openai_format_empty(self):
        self.assertIsNone(tools_to_openai_format([]))

    def test_messages_to_openai_format(self):
        call = ToolCall(id="c1", name="get_weather", args={"location": "Tokyo"})
        converted = messages_to_openai_format(
            [
                Message(role="system", content="be brief"),
                Message(role=ASSISTANT, content="", tool_calls=[call]),
                Message(role=TOOL, content="sunny", tool_call_id="c1", name="get_weather"),
            ]
        )

        self.assertEqual(converted[0], {"role": "system", "content": "be brief"})
        self.assertIsNone(converted[1]["content"])
        self.assertEqual(
            converted[1]["tool_calls"][0]["function"],
            {"name": "get_weather", "arguments": '{"location": "Tokyo"}'},
        )
        self.assertEqual(
            converted[2], {"role": "tool", "content": "sunny", "tool_call_id": "c1"}
        )

    def test_parse_tool_call_arguments(self):
        self.assertEqual(parse_tool_call_arguments('{"a": 1}'), {"a": 1})
        self.assertEqual(parse_tool_call_arguments(""), {})
        self.assertEqual(
            parse_tool_call_arguments("<parameter=path>a.txt</parameter>"), {"path": "a.txt"}
        )
        with self.assertRaises(ValueError):
            parse_tool_call_arguments("{broken")
        with self.assertRaises(ValueError):
            parse_tool_call_arguments("[1]")


class TestToolCallAssembler:
    def test_streamed_arguments_are_assembled(self):
        assembler = OpenAIToolCallAssembler()
        assembler.process_tool_call(_tc_delta(0, id="call_1", name="get_weather", arguments='{"loc'))
        assembler.process_tool_call(_tc_delta(0, arguments='ation": "T'))
        assembler.process_tool_call(_tc_delta(0, arguments='okyo"}'))

        calls = assembler.finalize()

        assert len(calls) == 1
        assert calls[0].id == "call_1"
        assert calls[0].args == {"location": "Tokyo"}

    def test_parallel_calls_sorted_by_index(self):
        assembler = OpenAIToolCallAssembler()
        assembler.process_tool_call(_tc_delta(1, id="b", name="second", arguments="{}"))
        assembler.process_tool_call(_tc_delta(0, id="a", name="first", arguments="{}"))

        assert [call.name for call in assembler.finalize()] == ["first", "second"]

    def test_nameless_entries_dropped(self):
        assembler = OpenAIToolCallAssembler()
        assembler.process_tool_call(_tc_delta(0, id="a", arguments="{}"))
        assert assembler.finalize() == []

    def test_invalid_arguments_keep_call_with_empty_args(self, caplog):
        assembler = OpenAIToolCallAssembler()
        assembler.process_tool_call(_tc_delta(0, id="a", name="x", arguments="{oops"))

        with caplog.at_level(logging.WARNING):
            calls = assembler.finalize()

        assert [(call.id, call.name, call.args) for call in calls] == [("a", "x", {})]
        assert "Failed to parse arguments of tool call 'x'" in caplog.text


class TestOpenAIAdapter:
    @pytest.mark.asyncio
    async def test_streaming_text(self):
        client = _client(_stream(_chunk("Hel"), _chunk("lo"), SimpleNamespace(choices=[])))
        adapter = OpenAIAdapter("gpt-4o", client=client)

        handle = adapter.send(_request())
        events = [event async for event in handle]
        message = await handle

        assert [e.content for e in events if e.type == "chunk"] == ["Hel", "lo"]
        assert message.role == ASSISTANT
        assert message.content == "Hello"
        assert message.tool_calls == []

        params = client.chat.completions.create.call_args.kwargs
        assert params["model"] == "gpt-4o"
        assert params["stream"] is True
        assert "tools" not in params

    @pytest.mark.asyncio
    async def test_streaming_tool_calls(self):
        client = _client(
            _stream(
                _chunk(tool_calls=[_tc_delta(0, id="call_1", name="get_weather", arguments='{"location"')]),
                _chunk(tool_calls=[_tc_delta(0, arguments=': "Tokyo"}')]),
            )
        )
        adapter = OpenAIAdapter("gpt-4o", client=client)
        tool = Tool(name="get_weather", description="", callback=lambda args: "")

        handle = adapter.send(_request(tools=[tool], max_tokens=100))
        events = [event async for event in handle]
        message = await handle

        assert [e.type for e in events] == ["tool_call", "complete"]
        assert message.tool_calls[0].args == {"location": "Tokyo"}

        params = client.chat.completions.create.call_args.kwargs
        assert params["tool_choice"] == "auto"
        assert params["max_tokens"] == 100

    @pytest.mark.asyncio
    async def test_non_streaming_with_reasoning_and_tool_calls(self):
        native = SimpleNamespace(
            id="call_9", function=SimpleNamespace(name="ls", arguments='{"dir": "."}')
        )
        response = SimpleNamespace(
            error=None,
            choices=[
                SimpleNamespace(
                    message=SimpleNamespace(content="Listing.", reasoning="user wants files", tool_calls=[native])
                )
            ],
        )
        adapter = OpenAIAdapter("gpt-4o", client=_client(response))

        message = await adapter.send(_request(streaming=False))

        assert message.content == "\n<think>\nuser wants files\n</think>\nListing."
        assert message.tool_calls[0].id == "call_9"
        assert message.tool_calls[0].args == {"dir": "."}

    @pytest.mark.asyncio
    async def test_streaming_malformed_arguments_keep_prose_and_call(self):
        client = _client(
            _stream(
                _chunk("Listing."),
                _chunk(tool_calls=[_tc_delta(0, id="call_1", name="ls", arguments='{"dir": ')]),
            )
        )
        adapter = OpenAIAdapter("gpt-4o", client=client)

        message = await adapter.send(_request())

        assert message.content == "Listing."
        assert [(call.id, call.name, call.args) for call in message.tool_calls] == [
            ("call_1", "ls", {})
        ]

    @pytest.mark.asyncio
    async def test_non_streaming_malformed_arguments_keep_call(self):
        native = SimpleNamespace(
            id="call_9", function=SimpleNamespace(name="ls", arguments='{"dir": ')
        )
        response = SimpleNamespace(
            error=None,
            choices=[
                SimpleNamespace(
                    message=SimpleNamespace(content="Listing.", reasoning=None, tool_calls=[native])
                )
            ],
        )
        adapter = OpenAIAdapter("gpt-4o", client=_client(response))

        handle = adapter.send(_request(streaming=False))
        events = [event async for event in handle]
        message = await handle

        assert [e.type for e in events] == ["tool_call", "complete"]
        assert message.content == "Listing."
        assert message.tool_calls[0].name == "ls"
        assert message.tool_calls[0].args == {}

    @pytest.mark.asyncio
    async def test_send_logs_context_usage_against_model_limit(self, caplog, monkeypatch):
        monkeypatch.delenv("DEFAULT_MAX_CONTEXT_LENGTH", raising=False)
        adapter = OpenAIAdapter("gpt-4o", client=_client(_stream(_chunk("ok"))))

        with caplog.at_level(logging.DEBUG, logger="multi_llm_agent.providers.openai"):
            await adapter.send(_request())

        assert "/ 128000 (model=gpt-4o)" in caplog.text

    @pytest.mark.asyncio
    async def test_non_streaming_upstream_error(self):
        response = SimpleNamespace(error={"message": "model overloaded"}, choices=[])
        adapter = OpenAIAdapter("gpt-4o", client=_client(response))

        with pytest.raises(ProviderError, match="Upstream error: model overloaded"):
            await adapter.send(_request(streaming=False))

    @pytest.mark.asyncio
    async def test_client_errors_propagate(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=ConnectionError("reset"))
        adapter = OpenAIAdapter("gpt-4o", client=client)

        with pytest.raises(ConnectionError):
            await adapter.send(_request())

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with patch("multi_llm_agent.providers.openai.is_config_initialized", return_value=False):
            adapter = OpenAIAdapter("gpt-4o")

        with pytest.raises(ValueError, match="OPENAI_API_KEY is not set"):
            await adapter.send(_request())

    def test_client_created_lazily(self):
        with patch("multi_llm_agent.providers.openai.openai.AsyncOpenAI") as mock_cls:
            adapter = OpenAIAdapter("gpt-4o", api_key="sk-test", base_url="http://localhost/v1")
            mock_cls.assert_not_called()
            assert adapter.client is mock_cls.return_value
            mock_cls.assert_called_once_with(api_key="sk-test", base_url="http://localhost/v1")
