"""Data models for the chat runtime."""

from chatrelay.chat_runtime.models.api import ErrorResponse, SendMessageRequest, StoreMessageRequest
from chatrelay.chat_runtime.models.enums import AgentEventKind, StoreBackend, TurnStatus
from chatrelay.chat_runtime.models.events import AgentEvent

__all__ = [
    # Events
    "AgentEvent",
    # Enums
    "AgentEventKind",
    # API schemas
    "ErrorResponse",
    "SendMessageRequest",
    "StoreBackend",
    "StoreMessageRequest",
    "TurnStatus",
]
