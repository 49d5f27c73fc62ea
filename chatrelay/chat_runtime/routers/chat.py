"""Chat streaming endpoint.

One ``POST /api/chat/stream`` per user turn.  The handler authenticates,
validates the body, and returns an SSE response right away; frames are
produced by a ``TurnRelay`` running as the response's data-sender task.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from functools import partial

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, Response
from loguru import logger
from sse_starlette.sse import EventSourceResponse

from chatrelay.chat_runtime.deps import CurrentUser, Engine, Registry, Settings, Store
from chatrelay.chat_runtime.execution.relay import TurnRelay
from chatrelay.chat_runtime.models.api import ErrorResponse
from chatrelay.protocol.codec import encode_payload
from chatrelay.protocol.frames import Frame
from chatrelay.protocol.messages import ChatRequestBody

router = APIRouter(prefix="/chat", tags=["chat"])

FRAME_BUFFER_SIZE = 1024
"""Frames the relay may run ahead of the client before ``send`` blocks."""

SSE_SEPARATOR = "\n"

PRE_STREAM_ERROR = "Failed to process chat request"


async def _frame_events(receive_stream: MemoryObjectReceiveStream[Frame]) -> AsyncIterator[dict[str, str]]:
    """Drain the relay's channel into sse-starlette event dicts."""
    async with receive_stream:
        async for frame in receive_stream:
            yield {"data": encode_payload(frame)}


@router.post("/stream", response_model=None)
async def handle_chat_stream(
    request: Request,
    user_id: CurrentUser,
    store: Store,
    engine: Engine,
    registry: Registry,
    settings: Settings,
) -> Response:
    try:
        body = ChatRequestBody.model_validate_json(await request.body())

        relay = TurnRelay(
            body,
            user_id=user_id,
            store=store,
            engine=engine,
            registry=registry,
            retries=settings.stream_retries,
            backoff=settings.stream_retry_backoff,
        )
        send_stream, receive_stream = anyio.create_memory_object_stream[Frame](max_buffer_size=FRAME_BUFFER_SIZE)

        return EventSourceResponse(
            _frame_events(receive_stream),
            data_sender_callable=partial(relay.run, send_stream),
            ping=settings.ping_interval,
            sep=SSE_SEPARATOR,
        )
    except Exception:
        logger.exception("Error in chat API")
        return JSONResponse(
            ErrorResponse(error=PRE_STREAM_ERROR).model_dump(),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
