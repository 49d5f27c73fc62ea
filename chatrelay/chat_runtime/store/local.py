"""Local filesystem message store.

Stores each chat as a JSON array under a data root with optional namespace
prefix::

    {data_root}/{prefix}/chats/{chat_id}/messages.json

When prefix is None, the path collapses to::

    {data_root}/chats/{chat_id}/messages.json

Uses ``anyio.to_thread.run_sync`` for non-blocking file I/O.

Writes are atomic: the updated array is written to a temporary file in the
same directory, then renamed over the target, so a crash mid-write never
leaves a truncated chat behind.  Appends to one chat are serialised with a
per-chat lock.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
import uuid
from collections import defaultdict
from functools import partial
from pathlib import Path

import anyio
from anyio import to_thread
from pydantic import TypeAdapter

from chatrelay.protocol.messages import MessageRecord, Role

_RecordList = TypeAdapter(list[MessageRecord])


class LocalMessageStore:
    """Local filesystem implementation of the MessageStore protocol."""

    def __init__(self, data_root: str | Path, prefix: str | None = None) -> None:
        base = Path(data_root)
        if prefix:
            base = base / prefix
        self._base = base / "chats"
        self._locks: defaultdict[str, anyio.Lock] = defaultdict(anyio.Lock)

    def _messages_path(self, chat_id: str) -> Path:
        if not chat_id or Path(chat_id).name != chat_id or chat_id in (".", ".."):
            msg = f"Invalid chat id: {chat_id!r}"
            raise ValueError(msg)
        return self._base / chat_id / "messages.json"

    # -- Write -----------------------------------------------------------------

    async def send(self, chat_id: str, content: str) -> MessageRecord:
        return await self.store(chat_id, content, Role.USER)

    async def store(self, chat_id: str, content: str, role: Role) -> MessageRecord:
        path = self._messages_path(chat_id)
        record = MessageRecord(id=uuid.uuid4().hex, chat_id=chat_id, role=role, content=content)
        async with self._locks[chat_id]:
            records = await self._read(path)
            records.append(record)
            data = _RecordList.dump_json(records, indent=2).decode("utf-8")
            await to_thread.run_sync(partial(_atomic_write, path, data))
        return record

    # -- Read ------------------------------------------------------------------

    async def list(self, chat_id: str) -> list[MessageRecord]:
        return await self._read(self._messages_path(chat_id))

    async def _read(self, path: Path) -> list[MessageRecord]:
        raw = await to_thread.run_sync(partial(_read_file, path))
        if raw is None:
            return []
        return _RecordList.validate_json(raw)


# -- Sync helpers (run in thread pool) -----------------------------------------


def _atomic_write(path: Path, data: str) -> None:
    """Write data via temp file + rename so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _read_file(path: Path) -> str | None:
    """Read file contents, or None if the chat has no file yet."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
