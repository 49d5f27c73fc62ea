"""Request identity.

The runtime only needs to know *who* is calling, or that nobody valid is.
``IdentityProvider`` is that seam; ``BearerTokenIdentity`` is the built-in
provider that accepts a single shared bearer token.
"""

from __future__ import annotations

import secrets
from typing import Protocol, runtime_checkable

from starlette.requests import Request


@runtime_checkable
class IdentityProvider(Protocol):
    async def identify(self, request: Request) -> str | None:
        """Return the caller's user id, or ``None`` when unauthenticated."""
        ...


class BearerTokenIdentity:
    """Authenticate ``Authorization: Bearer <token>`` against one shared token."""

    def __init__(self, token: str, user_id: str = "local") -> None:
        if not token:
            msg = "Bearer token must not be empty"
            raise ValueError(msg)
        self._token = token
        self._user_id = user_id

    async def identify(self, request: Request) -> str | None:
        header = request.headers.get("authorization")
        if not header:
            return None
        scheme, _, credential = header.partition(" ")
        credential = credential.strip()
        if scheme.lower() != "bearer" or not credential:
            return None
        if not secrets.compare_digest(credential.encode(), self._token.encode()):
            return None
        return self._user_id
