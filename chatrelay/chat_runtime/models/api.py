"""API request / response schemas for the message RPC endpoints.

The streaming endpoint's body (``ChatRequestBody``) and the stored record
(``MessageRecord``) are part of the wire contract and live in
``chatrelay.protocol``; these schemas cover the remaining endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel

from chatrelay.protocol.messages import Role


class SendMessageRequest(BaseModel):
    """Input for persisting a user message."""

    content: str


class StoreMessageRequest(BaseModel):
    """Input for persisting a turn with an explicit role."""

    content: str
    role: Role


class ErrorResponse(BaseModel):
    """Body of a non-streaming failure on the chat endpoint."""

    error: str
