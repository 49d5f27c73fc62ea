"""Chat message models shared by the server and the client.

``ChatRequestBody`` is the JSON body of ``POST /api/chat/stream``; its field
names on the wire are camelCase (``newMessage``, ``chatId``) while Python code
uses snake_case.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A role-tagged turn without identity, as sent in request history."""

    role: Role
    content: str


class MessageRecord(BaseModel):
    """A stored (or optimistically shown) turn of a chat."""

    id: str
    chat_id: str
    role: Role
    content: str
    created_at: datetime = Field(default_factory=datetime.now)

    def as_chat_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


class ChatRequestBody(BaseModel):
    """Request body for one conversation turn."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(default_factory=list)
    new_message: str = Field(alias="newMessage")
    chat_id: str = Field(alias="chatId", min_length=1)
