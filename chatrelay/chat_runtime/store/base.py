"""Message store interface for chat persistence.

The message store is the document store behind the chat: the relay persists
each incoming user message through it before the agent runs, clients persist
finished assistant turns through it, and page loads list a chat's history
from it.  All calls are remote in spirit (they may fail) and are therefore
async.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from chatrelay.protocol.messages import MessageRecord, Role


@runtime_checkable
class MessageStore(Protocol):
    """Async protocol for reading and writing chat messages.

    Records are keyed by ``chat_id`` and returned in insertion order.
    """

    async def send(self, chat_id: str, content: str) -> MessageRecord:
        """Persist a user message."""
        ...

    async def store(self, chat_id: str, content: str, role: Role) -> MessageRecord:
        """Persist a turn with an explicit role."""
        ...

    async def list(self, chat_id: str) -> list[MessageRecord]:
        """Return all turns of a chat, oldest first.  Empty for unknown chats."""
        ...
