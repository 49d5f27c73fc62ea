"""Stream frame models.

A frame is one discrete unit of the server -> client streaming protocol.
Every frame carries a ``type`` discriminant; the full union is exposed as
:data:`Frame` and validated through :data:`FrameAdapter`.

Ordering within a turn::

    connected  (token | tool_start | tool_end)*  (done | error)
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _FrameBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class ConnectedFrame(_FrameBase):
    """Stream opened, no data yet."""

    type: Literal["connected"] = "connected"


class TokenFrame(_FrameBase):
    """One incremental chunk of assistant text."""

    type: Literal["token"] = "token"
    token: str


class ToolStartFrame(_FrameBase):
    """The agent began invoking a named tool."""

    type: Literal["tool_start"] = "tool_start"
    name: str
    input: Any = None


class ToolEndFrame(_FrameBase):
    """A tool invocation completed."""

    type: Literal["tool_end"] = "tool_end"
    name: str
    output: Any = None


class ErrorFrame(_FrameBase):
    type: Literal["error"] = "error"
    error: str


class DoneFrame(_FrameBase):
    type: Literal["done"] = "done"


Frame = Annotated[
    ConnectedFrame | TokenFrame | ToolStartFrame | ToolEndFrame | ErrorFrame | DoneFrame,
    Field(discriminator="type"),
]
"""Discriminated union of every frame variant."""

FrameAdapter: TypeAdapter[Frame] = TypeAdapter(Frame)

TERMINAL_FRAMES = (DoneFrame, ErrorFrame)

FRAME_TYPES = frozenset(
    cls.model_fields["type"].default
    for cls in (ConnectedFrame, TokenFrame, ToolStartFrame, ToolEndFrame, ErrorFrame, DoneFrame)
)
