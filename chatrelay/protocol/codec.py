"""SSE wire codec for stream frames.

Each frame travels as a single SSE data line::

    data: {"type": "token", "token": "Hi"}\\n\\n

The literal ``[DONE]`` payload is accepted as an alternate encoding of the
``done`` frame.  Payloads that are not valid JSON, or that do not match any
frame variant, decode to an ``error`` frame instead of being dropped so that
every data line yields exactly one frame.
"""

from __future__ import annotations

import json

from pydantic import ValidationError

from chatrelay.protocol.frames import FRAME_TYPES, DoneFrame, ErrorFrame, Frame, FrameAdapter

SSE_DATA_PREFIX = "data: "
SSE_LINE_DELIMITER = "\n\n"
SSE_DONE_MESSAGE = "[DONE]"

PARSE_ERROR_MESSAGE = "Failed to parse SSE message"


def encode_payload(frame: Frame) -> str:
    """Serialise a frame to its JSON payload (the part after ``data: ``)."""
    return FrameAdapter.dump_json(frame).decode("utf-8")


def encode_frame(frame: Frame) -> bytes:
    """Serialise a frame to a complete SSE record."""
    return f"{SSE_DATA_PREFIX}{encode_payload(frame)}{SSE_LINE_DELIMITER}".encode()


def decode_payload(data: str) -> Frame:
    """Decode the payload of one data line into a frame.

    Never raises: malformed payloads become an :class:`ErrorFrame`.
    """
    data = data.strip()
    if data == SSE_DONE_MESSAGE:
        return DoneFrame()

    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        return ErrorFrame(error=PARSE_ERROR_MESSAGE)

    try:
        return FrameAdapter.validate_python(payload)
    except ValidationError:
        kind = payload.get("type") if isinstance(payload, dict) else None
        if isinstance(kind, str) and kind in FRAME_TYPES:
            return ErrorFrame(error=f"{PARSE_ERROR_MESSAGE}: invalid {kind!r} frame")
        return ErrorFrame(error=f"{PARSE_ERROR_MESSAGE}: unrecognised frame type {kind!r}")
