"""FastAPI dependency injection for the runtime's process-wide collaborators.

The message store, agent engine, turn registry and identity provider are
built once in the app lifespan and kept on ``app.state``.  Usage in route
handlers::

    @router.get("/chats/{chat_id}/messages/list")
    async def list_messages(chat_id: str, user_id: CurrentUser, store: Store) -> list[MessageRecord]:
        ...

Dependencies raise HTTP 503 if a collaborator was not initialised, and
``CurrentUser`` raises 401 when the request carries no valid credential.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from chatrelay.chat_runtime.auth import IdentityProvider
from chatrelay.chat_runtime.execution.engine import AgentEngine
from chatrelay.chat_runtime.registry import TurnRegistry
from chatrelay.chat_runtime.settings import RelaySettings, get_settings
from chatrelay.chat_runtime.store.base import MessageStore


def _require(request: Request, name: str, what: str) -> object:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{what} not initialised.",
        )
    return value


def get_identity(request: Request) -> IdentityProvider:
    return _require(request, "identity", "Identity provider")  # type: ignore[return-value]


def get_store(request: Request) -> MessageStore:
    return _require(request, "store", "Message store")  # type: ignore[return-value]


def get_engine(request: Request) -> AgentEngine:
    return _require(request, "engine", "Agent engine")  # type: ignore[return-value]


def get_registry(request: Request) -> TurnRegistry:
    return _require(request, "registry", "Turn registry")  # type: ignore[return-value]


async def get_current_user(
    request: Request,
    identity: Annotated[IdentityProvider, Depends(get_identity)],
) -> str:
    """Return the caller's user id or reject the request with 401."""
    user_id = await identity.identify(request)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


# -- Annotated type aliases for concise route signatures ---------------------

CurrentUser = Annotated[str, Depends(get_current_user)]
"""Annotated dependency: authenticated user id (401 otherwise)."""

Store = Annotated[MessageStore, Depends(get_store)]
Engine = Annotated[AgentEngine, Depends(get_engine)]
Registry = Annotated[TurnRegistry, Depends(get_registry)]
Settings = Annotated[RelaySettings, Depends(get_settings)]
