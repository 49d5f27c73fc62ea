"""Message store implementations for chat persistence."""

from chatrelay.chat_runtime.store.base import MessageStore
from chatrelay.chat_runtime.store.local import LocalMessageStore
from chatrelay.chat_runtime.store.memory import MemoryMessageStore

__all__ = ["LocalMessageStore", "MemoryMessageStore", "MessageStore"]
