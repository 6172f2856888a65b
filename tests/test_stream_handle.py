import pytest

from multi_llm_agent.errors import ProviderError
from multi_llm_agent.messages import ASSISTANT, Message
from multi_llm_agent.providers.stream import StreamEvent, StreamHandle


async def _events(*events, error=None):
    for event in events:
        yield event
    if error is not None:
        raise error


@pytest.mark.asyncio
async def test_await_returns_final_message():
    final = Message(role=ASSISTANT, content="hi")
    handle = StreamHandle(_events(StreamEvent.chunk("h"), StreamEvent.chunk("i"), StreamEvent.complete(final)))

    assert await handle is final


@pytest.mark.asyncio
async def test_iteration_yields_events_in_order():
    final = Message(role=ASSISTANT, content="ab")
    handle = StreamHandle(_events(StreamEvent.chunk("a"), StreamEvent.chunk("b"), StreamEvent.complete(final)))

    types = [event.type async for event in handle]

    assert types == ["chunk", "chunk", "complete"]
    assert await handle.result() is final


@pytest.mark.asyncio
async def test_listeners_receive_events_while_subscribed():
    final = Message(role=ASSISTANT, content="x")
    handle = StreamHandle(_events(StreamEvent.chunk("x"), StreamEvent.complete(final)))
    seen = []

    with handle.subscribe(seen.append):
        await handle

    assert [event.type for event in seen] == ["chunk", "complete"]
    assert handle._listeners == []


@pytest.mark.asyncio
async def test_error_is_dispatched_then_raised():
    boom = RuntimeError("boom")
    handle = StreamHandle(_events(StreamEvent.chunk("partial"), error=boom))
    seen = []

    with pytest.raises(RuntimeError, match="boom"):
        with handle.subscribe(seen.append):
            await handle

    assert [event.type for event in seen] == ["chunk", "error"]
    assert seen[-1].content is boom
    assert handle._listeners == []


@pytest.mark.asyncio
async def test_missing_complete_event_raises():
    handle = StreamHandle(_events(StreamEvent.chunk("dangling")))
    with pytest.raises(ProviderError, match="without a complete event"):
        await handle


@pytest.mark.asyncio
async def test_second_iteration_raises():
    handle = StreamHandle(_events(StreamEvent.complete(Message(role=ASSISTANT, content=""))))
    await handle

    with pytest.raises(RuntimeError, match="only be consumed once"):
        async for _ in handle:
            pass


def test_stream_event_helpers():
    assert StreamEvent.chunk("a") == StreamEvent("chunk", "a")
    assert StreamEvent.error(ValueError("x")).type == "error"
