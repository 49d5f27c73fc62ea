"""Wire contract between the chat runtime and its clients."""

from chatrelay.protocol.codec import (
    SSE_DATA_PREFIX,
    SSE_DONE_MESSAGE,
    SSE_LINE_DELIMITER,
    decode_payload,
    encode_frame,
    encode_payload,
)
from chatrelay.protocol.frames import (
    TERMINAL_FRAMES,
    ConnectedFrame,
    DoneFrame,
    ErrorFrame,
    Frame,
    FrameAdapter,
    TokenFrame,
    ToolEndFrame,
    ToolStartFrame,
)
from chatrelay.protocol.messages import ChatMessage, ChatRequestBody, MessageRecord, Role

__all__ = [
    "SSE_DATA_PREFIX",
    "SSE_DONE_MESSAGE",
    "SSE_LINE_DELIMITER",
    "TERMINAL_FRAMES",
    "ChatMessage",
    "ChatRequestBody",
    "ConnectedFrame",
    "DoneFrame",
    "ErrorFrame",
    "Frame",
    "FrameAdapter",
    "MessageRecord",
    "Role",
    "TokenFrame",
    "ToolEndFrame",
    "ToolStartFrame",
    "decode_payload",
    "encode_frame",
    "encode_payload",
]
