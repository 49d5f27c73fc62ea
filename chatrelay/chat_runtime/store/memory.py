"""In-process message store.

Keeps every chat in a dict of lists.  Contents are lost on restart; useful
for development and as the default backend.
"""

from __future__ import annotations

import uuid
from collections import defaultdict

from chatrelay.protocol.messages import MessageRecord, Role


class MemoryMessageStore:
    """Dict-backed implementation of the MessageStore protocol."""

    def __init__(self) -> None:
        self._chats: defaultdict[str, list[MessageRecord]] = defaultdict(list)

    async def send(self, chat_id: str, content: str) -> MessageRecord:
        return await self.store(chat_id, content, Role.USER)

    async def store(self, chat_id: str, content: str, role: Role) -> MessageRecord:
        record = MessageRecord(id=uuid.uuid4().hex, chat_id=chat_id, role=role, content=content)
        self._chats[chat_id].append(record)
        return record

    async def list(self, chat_id: str) -> list[MessageRecord]:
        return list(self._chats.get(chat_id, ()))
