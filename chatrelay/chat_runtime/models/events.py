"""Upstream agent event model.

The agent engine emits loosely typed events: a string discriminant plus an
untyped ``data`` payload.  The relay decodes them into protocol frames at
its boundary (see ``execution.relay.decode_agent_event``); nothing past the
relay handles this shape.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class AgentEvent(BaseModel):
    """One event from the agent's event stream.

    ``event`` values of interest are listed in ``AgentEventKind``; payload
    keys by kind:

    - ``on_chat_model_stream``: ``chunk`` (str)
    - ``on_tool_start``: ``input`` (JSON value)
    - ``on_tool_end``: ``output`` (JSON value), optionally ``name``
    """

    event: str
    name: str | None = None
    run_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
