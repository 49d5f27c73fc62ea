"""Service configuration loaded from CHATRELAY_* environment variables."""

from __future__ import annotations

import secrets
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatrelay.chat_runtime.models.enums import StoreBackend


class RelaySettings(BaseSettings):
    """Chat runtime settings.

    All fields are read from environment variables with the ``CHATRELAY_``
    prefix, e.g. ``CHATRELAY_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    Model provider keys (ANTHROPIC_API_KEY, OPENAI_API_KEY, ...) are not
    managed here; pydantic-ai reads them from the environment itself.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHATRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Server ----------------------------------------------------------------
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8000
    graceful_shutdown_timeout: int = 300
    """Seconds to wait for in-flight turns during shutdown before cancelling them."""

    ping_interval: int = 15
    """Seconds between SSE keep-alive comments on an open stream."""

    # -- Auth ------------------------------------------------------------------
    auth_token: str | None = None
    """Bearer token for API access.  Auto-generated at startup if empty."""

    default_user: str = "local"
    """User id reported for requests carrying the bearer token."""

    # -- Message store ---------------------------------------------------------
    message_store: StoreBackend = StoreBackend.MEMORY

    data_root: str = "./data"
    """Root directory of the ``local`` message store."""

    data_prefix: str | None = None
    """Optional namespace inserted as ``{data_root}/{data_prefix}/chats/...``."""

    # -- Agent -----------------------------------------------------------------
    model: str = "anthropic:claude-3-5-sonnet-latest"
    temperature: float | None = 0.7
    max_tokens: int | None = 1500
    system_prompt: str = "You are a helpful assistant. Use the available tools when they help answer the question."

    mcp_url: str | None = None
    """Streamable-HTTP MCP server providing the agent's tools.  No tools when unset."""

    stream_retries: int = Field(default=3, ge=1)
    """Attempts to open the upstream agent stream before failing the turn."""

    stream_retry_backoff: float = Field(default=1.0, ge=0)
    """Linear backoff base in seconds: attempt N waits ``N * backoff``."""

    # -- Helpers ---------------------------------------------------------------

    def resolve_auth_token(self) -> str:
        """Return the configured token or generate a random one."""
        if self.auth_token:
            return self.auth_token
        return secrets.token_urlsafe(32)


@lru_cache(maxsize=1)
def get_settings() -> RelaySettings:
    """Return a cached settings instance.

    Call ``get_settings.cache_clear()`` in tests to force a re-read after
    overriding env vars.
    """
    return RelaySettings()
