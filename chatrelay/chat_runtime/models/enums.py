"""Shared enumerations used across the chat runtime."""

from __future__ import annotations

from enum import StrEnum

# -- Turn --------------------------------------------------------------------


class TurnStatus(StrEnum):
    """Lifecycle of one in-flight turn on the server."""

    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


# -- Store -------------------------------------------------------------------


class StoreBackend(StrEnum):
    MEMORY = "memory"
    LOCAL = "local"


# -- Upstream events ---------------------------------------------------------


class AgentEventKind(StrEnum):
    """Event kinds understood by the relay; anything else is dropped."""

    MODEL_TOKEN = "on_chat_model_stream"
    TOOL_START = "on_tool_start"
    TOOL_END = "on_tool_end"
