"""``MessageStore`` over the runtime's message RPC endpoints."""

from __future__ import annotations

from urllib.parse import quote

import httpx
from pydantic import TypeAdapter

from chatrelay.protocol.messages import MessageRecord, Role

_RecordList = TypeAdapter(list[MessageRecord])


class RemoteMessageStore:
    """Talks to ``/api/chats/{chat_id}/messages/*`` with a shared ``httpx`` client.

    HTTP failures surface as ``httpx.HTTPStatusError`` (or another
    ``httpx.HTTPError`` for transport problems).
    """

    def __init__(self, http: httpx.AsyncClient, *, token: str | None = None) -> None:
        self._http = http
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}

    async def send(self, chat_id: str, content: str) -> MessageRecord:
        response = await self._http.post(_path(chat_id, "send"), json={"content": content}, headers=self._headers)
        response.raise_for_status()
        return MessageRecord.model_validate_json(response.content)

    async def store(self, chat_id: str, content: str, role: Role) -> MessageRecord:
        response = await self._http.post(
            _path(chat_id, "store"),
            json={"content": content, "role": str(role)},
            headers=self._headers,
        )
        response.raise_for_status()
        return MessageRecord.model_validate_json(response.content)

    async def list(self, chat_id: str) -> list[MessageRecord]:
        response = await self._http.get(_path(chat_id, "list"), headers=self._headers)
        response.raise_for_status()
        return _RecordList.validate_json(response.content)


def _path(chat_id: str, action: str) -> str:
    return f"/api/chats/{quote(chat_id, safe='')}/messages/{action}"
