"""Message endpoints (RPC-style).

Thin HTTP adapter over the message store, used by clients for the initial
page load and for persisting finished assistant turns.  Writes use POST;
reads use GET.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from chatrelay.chat_runtime.deps import CurrentUser, Store
from chatrelay.chat_runtime.models.api import SendMessageRequest, StoreMessageRequest
from chatrelay.protocol.messages import MessageRecord

router = APIRouter(prefix="/chats", tags=["messages"])


@router.get("/{chat_id}/messages/list", response_model=list[MessageRecord])
async def list_messages(chat_id: str, user_id: CurrentUser, store: Store) -> list[MessageRecord]:
    """List a chat's stored turns, oldest first."""
    try:
        return await store.list(chat_id)
    except ValueError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from None


@router.post("/{chat_id}/messages/send", response_model=MessageRecord, status_code=status.HTTP_201_CREATED)
async def send_message(chat_id: str, body: SendMessageRequest, user_id: CurrentUser, store: Store) -> MessageRecord:
    """Persist a user message."""
    try:
        return await store.send(chat_id, body.content)
    except ValueError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from None


@router.post("/{chat_id}/messages/store", response_model=MessageRecord, status_code=status.HTTP_201_CREATED)
async def store_message(chat_id: str, body: StoreMessageRequest, user_id: CurrentUser, store: Store) -> MessageRecord:
    """Persist a turn with an explicit role."""
    try:
        return await store.store(chat_id, body.content, body.role)
    except ValueError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from None
