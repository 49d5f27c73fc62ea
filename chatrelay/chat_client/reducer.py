"""Transcript reducer -- folds a turn's frames into visible chat state.

One ``TurnReducer`` handles one turn.  Its lifecycle::

    idle -> streaming -> completed | failed

Assistant text accumulates in a buffer that is exposed as the transcript's
live entry while streaming.  Tool invocations are rendered inline as
delimited blocks; a ``tool_start`` appends a placeholder block and the
matching ``tool_end`` rewrites that block in place with the real output,
keeping any text streamed after it.
Once the turn is terminal every further frame is ignored.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from loguru import logger

from chatrelay.chat_runtime.store.base import MessageStore
from chatrelay.protocol.frames import (
    ConnectedFrame,
    DoneFrame,
    ErrorFrame,
    Frame,
    TokenFrame,
    ToolEndFrame,
    ToolStartFrame,
)
from chatrelay.protocol.messages import MessageRecord, Role

TOOL_START_MARKER = "---START---"
TOOL_END_MARKER = "---END---"
TOOL_PENDING_OUTPUT = "Processing..."


class TurnState(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Transcript:
    """What a chat view shows: permanent entries plus the in-flight turn."""

    entries: list[MessageRecord] = field(default_factory=list)
    live: str = ""
    loading: bool = False
    error: str | None = None

    def add(self, record: MessageRecord) -> None:
        self.entries.append(record)

    def remove(self, record_id: str) -> bool:
        before = len(self.entries)
        self.entries = [entry for entry in self.entries if entry.id != record_id]
        return len(self.entries) != before

    def reconcile(self, records: list[MessageRecord]) -> None:
        """Replace local entries (optimistic ones included) with stored turns."""
        self.entries = list(records)


@dataclass
class _PendingTool:
    name: str
    input: Any
    # Span of the placeholder block inside the buffer.
    start: int
    length: int


def format_tool_block(name: str, tool_input: Any, output: str) -> str:
    return "\n".join(
        [
            TOOL_START_MARKER,
            f"Tool: {name}",
            f"Input: {_to_json(tool_input)}",
            f"Output: {output}",
            TOOL_END_MARKER,
        ]
    )


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


class TurnReducer:
    """Applies the frames of one turn to a :class:`Transcript`.

    *optimistic_id* names the locally added user entry that is removed if
    the turn fails.  Finished assistant turns are persisted through *store*
    before being appended.
    """

    def __init__(
        self,
        transcript: Transcript,
        *,
        chat_id: str,
        store: MessageStore,
        optimistic_id: str | None = None,
    ) -> None:
        self.transcript = transcript
        self._chat_id = chat_id
        self._store = store
        self._optimistic_id = optimistic_id
        self.state = TurnState.IDLE
        self.buffer = ""
        self._pending: _PendingTool | None = None

    @property
    def finished(self) -> bool:
        return self.state in (TurnState.COMPLETED, TurnState.FAILED)

    async def apply(self, frame: Frame) -> None:
        if self.finished:
            logger.debug("Ignoring {} frame after terminal state {}", frame.type, self.state)
            return

        if isinstance(frame, ConnectedFrame):
            self._start()
            return
        if self.state == TurnState.IDLE:
            self._start()

        match frame:
            case TokenFrame(token=token):
                self.buffer += token
                self.transcript.live = self.buffer
            case ToolStartFrame(name=name, input=tool_input):
                self._tool_started(name, tool_input)
            case ToolEndFrame(output=output):
                self._tool_ended(output)
            case ErrorFrame(error=error):
                self.fail(error)
            case DoneFrame():
                await self._complete()

    def fail(self, message: str) -> None:
        """Mark the turn failed and roll back its optimistic user entry."""
        if self.finished:
            return
        self.state = TurnState.FAILED
        if self._optimistic_id is not None:
            self.transcript.remove(self._optimistic_id)
        self.transcript.error = message
        self.transcript.live = ""
        self.transcript.loading = False
        self._pending = None

    # -- Transitions ---------------------------------------------------------

    def _start(self) -> None:
        self.state = TurnState.STREAMING
        self.buffer = ""
        self._pending = None
        self.transcript.live = ""

    def _tool_started(self, name: str, tool_input: Any) -> None:
        # Tool segments do not nest: a second start before the end is dropped.
        if self._pending is not None:
            return
        if self.buffer and not self.buffer.endswith("\n"):
            self.buffer += "\n"
        placeholder = format_tool_block(name, tool_input, TOOL_PENDING_OUTPUT) + "\n"
        self._pending = _PendingTool(name=name, input=tool_input, start=len(self.buffer), length=len(placeholder))
        self.buffer += placeholder
        self.transcript.live = self.buffer

    def _tool_ended(self, output: Any) -> None:
        pending = self._pending
        if pending is None:
            return
        block = format_tool_block(pending.name, pending.input, _to_json(output)) + "\n"
        end = pending.start + pending.length
        self.buffer = self.buffer[: pending.start] + block + self.buffer[end:]
        self._pending = None
        self.transcript.live = self.buffer

    async def _complete(self) -> None:
        # Persist first: if the store rejects the turn it is still failable.
        try:
            record = await self._store.store(self._chat_id, self.buffer, Role.ASSISTANT)
        except Exception as exc:
            logger.warning("Failed to store assistant reply for chat {}: {!r}", self._chat_id, exc)
            self.fail(str(exc) or type(exc).__name__)
            return
        self.state = TurnState.COMPLETED
        self.transcript.add(record)
        self.transcript.live = ""
        self.transcript.loading = False
        self._pending = None
