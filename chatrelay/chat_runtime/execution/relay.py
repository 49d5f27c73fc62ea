"""Stream relay -- drives one conversation turn from request to closed stream.

The relay is the producer side of the streaming protocol.  For each turn it:

1. Emits ``connected``.
2. Persists the new user message through the message store.
3. Builds the agent input (history + new message).
4. Opens the agent's event stream for the chat (retrying acquisition).
5. Decodes every upstream event into zero or one frame and emits it.
6. Emits exactly one terminal frame: ``done`` after the upstream stream is
   exhausted, or ``error`` on the first failure.
7. Closes the outbound channel on every exit path.

Frames are written to an anyio memory object stream owned by the relay; the
HTTP layer drains the receiving end into the SSE response.  The relay runs
as a task of the response's task group, so a client disconnect cancels it at
its next upstream await or write.
"""

from __future__ import annotations

from contextlib import aclosing
from typing import TYPE_CHECKING

import anyio
from loguru import logger

from chatrelay.chat_runtime.context import RuntimeTurn
from chatrelay.chat_runtime.execution.history import build_agent_messages
from chatrelay.chat_runtime.models.enums import AgentEventKind, TurnStatus
from chatrelay.chat_runtime.registry import ShuttingDownError
from chatrelay.protocol.frames import (
    ConnectedFrame,
    DoneFrame,
    ErrorFrame,
    Frame,
    TokenFrame,
    ToolEndFrame,
    ToolStartFrame,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from anyio.streams.memory import MemoryObjectSendStream

    from chatrelay.chat_runtime.execution.engine import AgentEngine
    from chatrelay.chat_runtime.models.events import AgentEvent
    from chatrelay.chat_runtime.registry import TurnRegistry
    from chatrelay.chat_runtime.store.base import MessageStore
    from chatrelay.protocol.messages import ChatMessage, ChatRequestBody

UNKNOWN_TOOL = "unknown"
STREAM_FAILED_MESSAGE = "Stream processing failed"
INTERRUPTED_MESSAGE = "Turn interrupted"

_DISCONNECTED = (anyio.BrokenResourceError, anyio.ClosedResourceError)


# ---------------------------------------------------------------------------
# Event decoding
# ---------------------------------------------------------------------------


def decode_agent_event(event: AgentEvent) -> Frame | None:
    """Map one upstream event to a frame, or ``None`` to drop it.

    Token events without text are dropped, as are unrecognised kinds.
    """
    if event.event == AgentEventKind.MODEL_TOKEN:
        chunk = event.data.get("chunk")
        if isinstance(chunk, str) and chunk:
            return TokenFrame(token=chunk)
        return None
    if event.event == AgentEventKind.TOOL_START:
        return ToolStartFrame(name=event.name or UNKNOWN_TOOL, input=event.data.get("input"))
    if event.event == AgentEventKind.TOOL_END:
        name = event.name or event.data.get("name") or UNKNOWN_TOOL
        return ToolEndFrame(name=name, output=event.data.get("output"))
    return None


# ---------------------------------------------------------------------------
# Upstream acquisition
# ---------------------------------------------------------------------------


async def acquire_event_stream(
    engine: AgentEngine,
    messages: Sequence[ChatMessage],
    *,
    thread_id: str,
    retries: int = 3,
    backoff: float = 1.0,
) -> AsyncIterator[AgentEvent]:
    """Yield the engine's events, retrying until the first event arrives.

    Only acquisition is retried: attempt *n* failing before producing an
    event waits ``n * backoff`` seconds and starts a fresh stream.  Once an
    event has been yielded, later failures propagate unchanged.  After
    *retries* failed attempts the last error is re-raised.
    """
    for attempt in range(1, retries + 1):
        stream = engine.stream_events(messages, thread_id=thread_id)
        try:
            first = await anext(stream)
        except StopAsyncIteration:
            return
        except Exception as exc:
            await _aclose(stream)
            if attempt == retries:
                logger.error("Agent stream for thread {} failed after {} attempts", thread_id, attempt)
                raise
            delay = attempt * backoff
            logger.warning("Attempt {} to open agent stream failed: {}. Retrying in {}s", attempt, exc, delay)
            await anyio.sleep(delay)
            continue

        try:
            yield first
            async for event in stream:
                yield event
        finally:
            await _aclose(stream)
        return


async def _aclose(stream: AsyncIterator[AgentEvent]) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


# ---------------------------------------------------------------------------
# Relay
# ---------------------------------------------------------------------------


class TurnRelay:
    """Produces the frame sequence for one turn onto an outbound channel."""

    def __init__(
        self,
        body: ChatRequestBody,
        *,
        user_id: str,
        store: MessageStore,
        engine: AgentEngine,
        registry: TurnRegistry,
        retries: int = 3,
        backoff: float = 1.0,
    ) -> None:
        self._body = body
        self._store = store
        self._engine = engine
        self._registry = registry
        self._retries = retries
        self._backoff = backoff
        self.turn = RuntimeTurn(chat_id=body.chat_id, user_id=user_id)

    async def run(self, send_stream: MemoryObjectSendStream[Frame]) -> None:
        """Drive the turn to completion, then close *send_stream*."""
        turn = self.turn
        logger.info(
            "Turn {} started (chat={}, user={}, history={})",
            turn.turn_id,
            turn.chat_id,
            turn.user_id,
            len(self._body.messages),
        )
        try:
            await self._emit(send_stream, ConnectedFrame())
            try:
                self._registry.register(turn)
            except ShuttingDownError as exc:
                turn.status = TurnStatus.FAILED
                await self._emit(send_stream, ErrorFrame(error=str(exc)))
                return

            try:
                with anyio.CancelScope() as scope:
                    turn.cancel_scope = scope
                    await self._relay(send_stream)
                if scope.cancelled_caught:
                    turn.status = TurnStatus.INTERRUPTED
                    await self._emit(send_stream, ErrorFrame(error=INTERRUPTED_MESSAGE))
            finally:
                self._registry.unregister(turn.turn_id)
        except _DISCONNECTED:
            if turn.status == TurnStatus.STREAMING:
                turn.status = TurnStatus.INTERRUPTED
            logger.info("Turn {}: client went away after {} frames", turn.turn_id, turn.frames_sent)
        finally:
            _close_channel(send_stream, turn)
            logger.info(
                "Turn {} finished: status={}, frames={}, duration={}ms",
                turn.turn_id,
                turn.status,
                turn.frames_sent,
                turn.duration_ms,
            )

    async def _relay(self, send_stream: MemoryObjectSendStream[Frame]) -> None:
        body = self._body
        turn = self.turn
        try:
            await self._store.send(body.chat_id, body.new_message)

            messages = build_agent_messages(body.messages, body.new_message)
            events = acquire_event_stream(
                self._engine,
                messages,
                thread_id=body.chat_id,
                retries=self._retries,
                backoff=self._backoff,
            )
            async with aclosing(events):
                async for event in events:
                    frame = decode_agent_event(event)
                    if frame is not None:
                        await self._emit(send_stream, frame)
        except _DISCONNECTED:
            raise
        except Exception as exc:
            logger.exception("Turn {} failed", turn.turn_id)
            turn.status = TurnStatus.FAILED
            await self._emit(send_stream, ErrorFrame(error=str(exc) or STREAM_FAILED_MESSAGE))
        else:
            turn.status = TurnStatus.COMPLETED
            await self._emit(send_stream, DoneFrame())

    async def _emit(self, send_stream: MemoryObjectSendStream[Frame], frame: Frame) -> None:
        await send_stream.send(frame)
        self.turn.frames_sent += 1


def _close_channel(send_stream: MemoryObjectSendStream[Frame], turn: RuntimeTurn) -> None:
    try:
        send_stream.close()
    except Exception:
        logger.exception("Turn {}: error closing stream", turn.turn_id)
