"""Client side of the chat stream: SSE parsing, transcript reduction and HTTP transport."""

from chatrelay.chat_client.client import ChatClient, ChatTransportError
from chatrelay.chat_client.parser import SSEParser
from chatrelay.chat_client.reducer import Transcript, TurnReducer, TurnState
from chatrelay.chat_client.store import RemoteMessageStore

__all__ = [
    "ChatClient",
    "ChatTransportError",
    "RemoteMessageStore",
    "SSEParser",
    "Transcript",
    "TurnReducer",
    "TurnState",
]
