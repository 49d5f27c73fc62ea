from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.routing import APIRouter
from loguru import logger
from sse_starlette.sse import AppStatus

from chatrelay.chat_runtime.auth import BearerTokenIdentity
from chatrelay.chat_runtime.execution.engine import PydanticAIEngine
from chatrelay.chat_runtime.log import setup_logging
from chatrelay.chat_runtime.models.enums import StoreBackend
from chatrelay.chat_runtime.registry import TurnRegistry
from chatrelay.chat_runtime.settings import RelaySettings, get_settings
from chatrelay.chat_runtime.store.base import MessageStore
from chatrelay.chat_runtime.store.local import LocalMessageStore
from chatrelay.chat_runtime.store.memory import MemoryMessageStore


def create_message_store(settings: RelaySettings) -> MessageStore:
    """Create the message store backend based on configuration."""
    if settings.message_store == StoreBackend.LOCAL:
        return LocalMessageStore(settings.data_root, prefix=settings.data_prefix)
    return MemoryMessageStore()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # -- Startup ---------------------------------------------------------------
    settings = get_settings()
    setup_logging(settings.log_level)

    auth_token = settings.resolve_auth_token()
    if not settings.auth_token:
        logger.warning("No CHATRELAY_AUTH_TOKEN set -- generated token: {}", auth_token)

    logger.info("Chat runtime starting (host={}, port={})", settings.host, settings.port)

    # -- Collaborators ---------------------------------------------------------
    _app.state.identity = BearerTokenIdentity(auth_token, user_id=settings.default_user)
    _app.state.registry = TurnRegistry()

    _app.state.store = create_message_store(settings)
    prefix_info = f", prefix={settings.data_prefix}" if settings.data_prefix else ""
    logger.info("Message store: {} (data_root={}{})", settings.message_store, settings.data_root, prefix_info)

    # The agent (and its tool connections) is built once per process and
    # shared by every request.
    engine = PydanticAIEngine.from_settings(settings)
    await engine.start()
    _app.state.engine = engine

    # -- SSE -------------------------------------------------------------------
    # Let streams finish on shutdown instead of being cut immediately; the
    # registry drain below decides when they must stop.
    AppStatus.disable_automatic_graceful_drain()

    yield

    # -- Shutdown --------------------------------------------------------------
    registry: TurnRegistry = _app.state.registry
    logger.info("Chat runtime shutting down (active_turns={})", registry.active_count)

    # 1. Stop accepting new turns.
    registry.begin_shutdown()

    # 2. Wait for active turns to complete naturally.
    if registry.active_count > 0:
        timeout = settings.graceful_shutdown_timeout
        logger.info("Waiting for {} active turns to finish (timeout={}s)...", registry.active_count, timeout)
        drained = await registry.wait_until_drained(timeout=timeout)
        if not drained:
            interrupted = registry.interrupt_all()
            logger.warning("Force-interrupted {} turns after timeout", interrupted)
            await registry.wait_until_drained(timeout=5.0)

    # 3. Signal SSE streams to close, after turns had the chance to deliver
    #    their terminal frame.
    AppStatus.should_exit = True
    logger.info("SSE: signalled streams to close")

    # 4. Release the agent's tool connections.
    try:
        await engine.aclose()
    except Exception:
        logger.exception("Error closing agent engine")


app = FastAPI(title="chatrelay", lifespan=lifespan)

# Collaborators are set by the lifespan; tests assign them directly.
app.state.identity = None
app.state.registry = None
app.state.store = None
app.state.engine = None

# ---------------------------------------------------------------------------
# API router -- all endpoints live under /api
# ---------------------------------------------------------------------------
api = APIRouter(prefix="/api")


@api.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


from chatrelay.chat_runtime.routers.chat import router as chat_router  # noqa: E402
from chatrelay.chat_runtime.routers.messages import router as messages_router  # noqa: E402

api.include_router(chat_router)
api.include_router(messages_router)

app.include_router(api)
