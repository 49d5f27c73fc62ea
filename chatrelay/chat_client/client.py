"""Chat client -- submits turns to the runtime and folds the stream into a transcript.

Usage::

    async with ChatClient("http://localhost:8000", chat_id="c1", token=token) as chat:
        await chat.load()
        state = await chat.submit("hello", on_frame=print)

``submit`` adds the user's message to the transcript optimistically, posts
it together with the prior turns, and feeds the SSE body through an
:class:`SSEParser` into a :class:`TurnReducer`.  Transport failures (the
connection failing, a non-2xx status, or the stream ending without a
terminal frame) roll the optimistic entry back and surface the error on
``transcript.error``, as does a failure to save the assistant reply.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import httpx
from loguru import logger

from chatrelay.chat_client.parser import SSEParser
from chatrelay.chat_client.reducer import Transcript, TurnReducer, TurnState
from chatrelay.chat_client.store import RemoteMessageStore
from chatrelay.chat_runtime.store.base import MessageStore
from chatrelay.protocol.frames import Frame
from chatrelay.protocol.messages import ChatRequestBody, MessageRecord, Role

CHAT_STREAM_PATH = "/api/chat/stream"
DEFAULT_TIMEOUT = httpx.Timeout(300.0, connect=20.0)
INCOMPLETE_STREAM_MESSAGE = "Stream ended without a terminal frame"

FrameCallback = Callable[[Frame], None]


class ChatTransportError(RuntimeError):
    """The chat stream could not be opened or ended prematurely."""


class ChatClient:
    """Client-side view of one chat.

    *http* is either a base URL (the client then owns its ``httpx`` client)
    or an existing ``httpx.AsyncClient``.  *store* defaults to a
    :class:`RemoteMessageStore` over the same connection.
    """

    def __init__(
        self,
        http: httpx.AsyncClient | str,
        *,
        chat_id: str,
        token: str | None = None,
        store: MessageStore | None = None,
    ) -> None:
        if isinstance(http, str):
            self._http = httpx.AsyncClient(base_url=http, timeout=DEFAULT_TIMEOUT)
            self._owns_http = True
        else:
            self._http = http
            self._owns_http = False
        self.chat_id = chat_id
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.store: MessageStore = store if store is not None else RemoteMessageStore(self._http, token=token)
        self.transcript = Transcript()

    async def __aenter__(self) -> ChatClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # -- Operations ------------------------------------------------------------

    async def load(self) -> list[MessageRecord]:
        """Fetch the chat's stored turns into the transcript."""
        records = await self.store.list(self.chat_id)
        self.transcript.reconcile(records)
        return records

    async def submit(self, text: str, on_frame: FrameCallback | None = None) -> TurnState | None:
        """Run one turn.  Returns the final turn state, or ``None`` if rejected.

        Empty input and input submitted while a turn is loading are rejected.
        """
        text = text.strip()
        transcript = self.transcript
        if not text or transcript.loading:
            return None

        history = [entry.as_chat_message() for entry in transcript.entries]
        optimistic = MessageRecord(
            id=f"temp_{int(time.time() * 1000)}",
            chat_id=self.chat_id,
            role=Role.USER,
            content=text,
        )
        transcript.add(optimistic)
        transcript.loading = True
        transcript.error = None
        transcript.live = ""

        reducer = TurnReducer(transcript, chat_id=self.chat_id, store=self.store, optimistic_id=optimistic.id)
        body = ChatRequestBody(messages=history, new_message=text, chat_id=self.chat_id)
        try:
            await self._stream_turn(body, reducer, on_frame)
            if not reducer.finished:
                raise ChatTransportError(INCOMPLETE_STREAM_MESSAGE)
        except (httpx.HTTPError, ChatTransportError) as exc:
            logger.warning("Chat {}: turn failed: {}", self.chat_id, exc)
            reducer.fail(str(exc) or type(exc).__name__)
        finally:
            transcript.loading = False

        if reducer.state == TurnState.COMPLETED:
            await self._reconcile()
        return reducer.state

    # -- Internals -------------------------------------------------------------

    async def _stream_turn(self, body: ChatRequestBody, reducer: TurnReducer, on_frame: FrameCallback | None) -> None:
        payload = body.model_dump(mode="json", by_alias=True)
        async with self._http.stream("POST", CHAT_STREAM_PATH, json=payload, headers=self._headers) as response:
            if not response.is_success:
                detail = (await response.aread()).decode("utf-8", errors="replace")
                raise ChatTransportError(f"Chat request failed with status {response.status_code}: {detail}")

            parser = SSEParser()
            async for chunk in response.aiter_bytes():
                for frame in parser.feed(chunk):
                    await self._dispatch(reducer, frame, on_frame)
            for frame in parser.flush():
                await self._dispatch(reducer, frame, on_frame)

    async def _dispatch(self, reducer: TurnReducer, frame: Frame, on_frame: FrameCallback | None) -> None:
        ignored = reducer.finished
        await reducer.apply(frame)
        if on_frame is not None and not ignored:
            on_frame(frame)

    async def _reconcile(self) -> None:
        # Best effort: the turn already succeeded, so a failed refresh only
        # leaves the optimistic entries in place.
        try:
            records = await self.store.list(self.chat_id)
        except Exception as exc:
            logger.warning("Chat {}: could not refresh transcript: {}", self.chat_id, exc)
            return
        self.transcript.reconcile(records)
