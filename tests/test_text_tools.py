import pytest

from multi_llm_agent.messages import SYSTEM, Message, ToolCall
from multi_llm_agent.providers.base import ChatRequest
from multi_llm_agent.providers.text_tools import (
    TextToolCallAdapter,
    extract_reply_tool_calls,
    inject_tools_prompt,
    with_text_tool_calls,
)
from multi_llm_agent.tools import Tool


def _tool():
    return Tool(name="read_file", description="Read a file", callback=lambda args: "")


def test_inject_tools_prompt_prepends_system_message():
    request = ChatRequest(messages=[Message(role="user", content="hi")], tools=[_tool()])

    injected = inject_tools_prompt(request)

    assert injected.tools == []
    assert injected.messages[0].role == SYSTEM
    assert "Tool: read_file" in injected.messages[0].content
    assert injected.messages[1].content == "hi"
    # original untouched
    assert len(request.messages) == 1
    assert request.tools


def test_inject_tools_prompt_without_tools_is_noop():
    request = ChatRequest(messages=[Message(role="user", content="hi")])
    assert inject_tools_prompt(request) is request


def test_extract_reply_tool_calls_keeps_native_calls_first():
    native = ToolCall(id="n1", name="native")
    message = Message(
        role="assistant",
        content='ok <ToolCall>{"name": "read_file"}</ToolCall>',
        tool_calls=[native],
    )

    result = extract_reply_tool_calls(message)

    assert result.content == "ok "
    assert [call.name for call in result.tool_calls] == ["native", "read_file"]


def test_extract_reply_tool_calls_plain_message_unchanged():
    message = Message(role="assistant", content="plain")
    assert extract_reply_tool_calls(message) is message


def test_with_text_tool_calls_wraps_once(scripted_adapter, reply):
    inner = scripted_adapter([reply("x")])
    wrapped = with_text_tool_calls(inner)

    assert isinstance(wrapped, TextToolCallAdapter)
    assert with_text_tool_calls(wrapped) is wrapped
    assert wrapped.model == inner.model


@pytest.mark.asyncio
async def test_stream_hides_markup_and_emits_calls(scripted_adapter, reply):
    chunks = ["Let me look. <Tool", 'Call>{"tool": "read_file", ', '"parameters": {"path": "a"}}</ToolCall>']
    inner = scripted_adapter([(chunks, reply("".join(chunks)))])
    adapter = with_text_tool_calls(inner)

    handle = adapter.send(ChatRequest(messages=[Message(role="user", content="go")], tools=[_tool()]))
    events = [event async for event in handle]
    message = await handle

    assert [e.content for e in events if e.type == "chunk"] == ["Let me look. "]
    tool_events = [e.content for e in events if e.type == "tool_call"]
    assert [call.name for call in tool_events] == ["read_file"]
    assert events[-1].type == "complete"
    assert message.content == "Let me look. "
    assert message.tool_calls[0].args == {"path": "a"}

    sent = inner.requests[0]
    assert sent.tools == []
    assert sent.messages[0].role == SYSTEM


@pytest.mark.asyncio
async def test_inner_failure_propagates(scripted_adapter):
    adapter = with_text_tool_calls(scripted_adapter([RuntimeError("down")]))
    seen = []

    handle = adapter.send(ChatRequest(messages=[]))
    with pytest.raises(RuntimeError, match="down"):
        with handle.subscribe(seen.append):
            await handle

    assert [event.type for event in seen] == ["error"]
