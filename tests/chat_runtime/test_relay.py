"""Unit tests for the stream relay: event decoding, acquisition retry and turn framing."""

from __future__ import annotations

from collections.abc import AsyncIterator

import anyio
import pytest

from chatrelay.chat_runtime.execution.relay import (
    INTERRUPTED_MESSAGE,
    TurnRelay,
    acquire_event_stream,
    decode_agent_event,
)
from chatrelay.chat_runtime.models.enums import TurnStatus
from chatrelay.chat_runtime.models.events import AgentEvent
from chatrelay.chat_runtime.registry import TurnRegistry
from chatrelay.chat_runtime.store.memory import MemoryMessageStore
from chatrelay.protocol.frames import (
    TERMINAL_FRAMES,
    ConnectedFrame,
    DoneFrame,
    ErrorFrame,
    Frame,
    TokenFrame,
    ToolEndFrame,
    ToolStartFrame,
)
from chatrelay.protocol.messages import ChatMessage, ChatRequestBody, Role

HELLO = [ChatMessage(role=Role.USER, content="hello")]


def _body(chat_id: str = "chat-1") -> ChatRequestBody:
    return ChatRequestBody(messages=[], new_message="hello", chat_id=chat_id)


async def _run(relay: TurnRelay) -> list[Frame]:
    send, receive = anyio.create_memory_object_stream[Frame](max_buffer_size=100)
    await relay.run(send)
    async with receive:
        return [frame async for frame in receive]


# ---------------------------------------------------------------------------
# decode_agent_event
# ---------------------------------------------------------------------------


def test_decode_token() -> None:
    event = AgentEvent(event="on_chat_model_stream", data={"chunk": "Hi"})
    assert decode_agent_event(event) == TokenFrame(token="Hi")


def test_decode_empty_token_is_dropped() -> None:
    assert decode_agent_event(AgentEvent(event="on_chat_model_stream", data={"chunk": ""})) is None
    assert decode_agent_event(AgentEvent(event="on_chat_model_stream")) is None


def test_decode_tool_start() -> None:
    event = AgentEvent(event="on_tool_start", name="search", data={"input": {"q": "x"}})
    assert decode_agent_event(event) == ToolStartFrame(name="search", input={"q": "x"})


def test_decode_tool_start_without_name() -> None:
    frame = decode_agent_event(AgentEvent(event="on_tool_start"))
    assert frame == ToolStartFrame(name="unknown", input=None)


def test_decode_tool_end_name_sources() -> None:
    named = AgentEvent(event="on_tool_end", name="calc", data={"output": 2})
    from_data = AgentEvent(event="on_tool_end", data={"name": "calc", "output": 2})
    anonymous = AgentEvent(event="on_tool_end", data={"output": 2})

    assert decode_agent_event(named) == ToolEndFrame(name="calc", output=2)
    assert decode_agent_event(from_data) == ToolEndFrame(name="calc", output=2)
    assert decode_agent_event(anonymous) == ToolEndFrame(name="unknown", output=2)


def test_decode_unknown_kind_is_dropped() -> None:
    assert decode_agent_event(AgentEvent(event="on_chain_end", data={"output": "x"})) is None


# ---------------------------------------------------------------------------
# acquire_event_stream
# ---------------------------------------------------------------------------


async def test_acquire_retries_until_first_event(engine) -> None:
    engine.fail_times = 2

    events = [e async for e in acquire_event_stream(engine, HELLO, thread_id="t", retries=3, backoff=0)]

    assert [e.data["chunk"] for e in events] == ["Hi", " there"]
    assert len(engine.calls) == 3


async def test_acquire_reraises_after_last_attempt(engine) -> None:
    engine.fail_times = 5
    engine.error = ConnectionError("refused")

    with pytest.raises(ConnectionError, match="refused"):
        async for _ in acquire_event_stream(engine, HELLO, thread_id="t", retries=2, backoff=0):
            pass
    assert len(engine.calls) == 2


async def test_acquire_does_not_retry_after_first_event(engine) -> None:
    engine.fail_after = 1

    received = []
    with pytest.raises(RuntimeError):
        async for event in acquire_event_stream(engine, HELLO, thread_id="t", retries=3, backoff=0):
            received.append(event)
    assert len(received) == 1
    assert len(engine.calls) == 1


async def test_acquire_backoff_is_linear(engine, monkeypatch) -> None:
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    monkeypatch.setattr(anyio, "sleep", fake_sleep)
    engine.fail_times = 2

    async for _ in acquire_event_stream(engine, HELLO, thread_id="t", retries=3, backoff=0.5):
        pass
    assert delays == [0.5, 1.0]


async def test_acquire_empty_stream(engine) -> None:
    engine.events = []
    assert [e async for e in acquire_event_stream(engine, HELLO, thread_id="t")] == []


# ---------------------------------------------------------------------------
# TurnRelay
# ---------------------------------------------------------------------------


async def test_turn_emits_single_done(engine) -> None:
    registry = TurnRegistry()
    relay = TurnRelay(_body(), user_id="u", store=MemoryMessageStore(), engine=engine, registry=registry, backoff=0)

    frames = await _run(relay)

    assert frames == [ConnectedFrame(), TokenFrame(token="Hi"), TokenFrame(token=" there"), DoneFrame()]
    assert sum(isinstance(f, TERMINAL_FRAMES) for f in frames) == 1
    assert relay.turn.status == TurnStatus.COMPLETED
    assert relay.turn.frames_sent == 4
    assert registry.active_count == 0


async def test_store_failure_is_error_frame(engine) -> None:
    class BrokenStore(MemoryMessageStore):
        async def send(self, chat_id: str, content: str):
            raise RuntimeError("store down")

    relay = TurnRelay(_body(), user_id="u", store=BrokenStore(), engine=engine, registry=TurnRegistry())

    frames = await _run(relay)

    assert frames == [ConnectedFrame(), ErrorFrame(error="store down")]
    assert relay.turn.status == TurnStatus.FAILED
    assert engine.calls == []


async def test_error_without_message_uses_fallback(engine) -> None:
    engine.fail_times = 1
    engine.error = RuntimeError()
    relay = TurnRelay(
        _body(), user_id="u", store=MemoryMessageStore(), engine=engine, registry=TurnRegistry(), retries=1
    )

    frames = await _run(relay)

    assert frames[-1] == ErrorFrame(error="Stream processing failed")


class _BlockingEngine:
    """Yields one token, then waits until cancelled."""

    def __init__(self) -> None:
        self.closed = False

    async def stream_events(self, messages, *, thread_id: str) -> AsyncIterator[AgentEvent]:
        try:
            yield AgentEvent(event="on_chat_model_stream", data={"chunk": "Hi"})
            await anyio.sleep_forever()
        finally:
            self.closed = True


async def test_interrupt_ends_turn_with_error() -> None:
    engine = _BlockingEngine()
    registry = TurnRegistry()
    relay = TurnRelay(_body(), user_id="u", store=MemoryMessageStore(), engine=engine, registry=registry)
    send, receive = anyio.create_memory_object_stream[Frame](max_buffer_size=100)

    frames: list[Frame] = []
    async with anyio.create_task_group() as tg:
        tg.start_soon(relay.run, send)
        async with receive:
            async for frame in receive:
                frames.append(frame)
                if isinstance(frame, TokenFrame):
                    assert registry.interrupt_all() == 1

    assert frames == [ConnectedFrame(), TokenFrame(token="Hi"), ErrorFrame(error=INTERRUPTED_MESSAGE)]
    assert relay.turn.status == TurnStatus.INTERRUPTED
    assert engine.closed is True
    assert registry.active_count == 0


async def test_client_disconnect_stops_turn() -> None:
    engine = _BlockingEngine()
    registry = TurnRegistry()
    relay = TurnRelay(_body(), user_id="u", store=MemoryMessageStore(), engine=engine, registry=registry)
    send, receive = anyio.create_memory_object_stream[Frame](max_buffer_size=0)

    async with anyio.create_task_group() as tg:
        tg.start_soon(relay.run, send)
        assert await receive.receive() == ConnectedFrame()
        await receive.aclose()

    assert relay.turn.status == TurnStatus.INTERRUPTED
    assert engine.closed is True
    assert registry.active_count == 0
