"""Shared test fixtures: scripted agent engine and an app wired to in-memory collaborators.

The app lifespan does NOT run under ``ASGITransport``, so the fixtures set
``app.state`` directly and override ``get_settings`` for fast retries.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable, Sequence

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from chatrelay.chat_runtime.app import app as relay_app
from chatrelay.chat_runtime.auth import BearerTokenIdentity
from chatrelay.chat_runtime.models.events import AgentEvent
from chatrelay.chat_runtime.registry import TurnRegistry
from chatrelay.chat_runtime.settings import RelaySettings, get_settings
from chatrelay.chat_runtime.store.memory import MemoryMessageStore
from chatrelay.protocol.messages import ChatMessage, Role

TEST_TOKEN = "test-token"


class ScriptedEngine:
    """``AgentEngine`` that replays a fixed event list.

    The first *fail_times* calls raise *error* before producing any event.
    ``fail_after`` raises *error* after that many events have been yielded.
    """

    def __init__(
        self,
        events: Iterable[AgentEvent] = (),
        *,
        fail_times: int = 0,
        fail_after: int | None = None,
        error: Exception | None = None,
    ) -> None:
        self.events = list(events)
        self.fail_times = fail_times
        self.fail_after = fail_after
        self.error = error or RuntimeError("upstream unavailable")
        self.calls: list[tuple[list[ChatMessage], str]] = []

    async def stream_events(self, messages: Sequence[ChatMessage], *, thread_id: str) -> AsyncIterator[AgentEvent]:
        self.calls.append((list(messages), thread_id))
        if len(self.calls) <= self.fail_times:
            raise self.error
        for index, event in enumerate(self.events):
            if self.fail_after is not None and index == self.fail_after:
                raise self.error
            yield event


class RecordingStore(MemoryMessageStore):
    """Memory store that remembers every ``store`` call."""

    def __init__(self) -> None:
        super().__init__()
        self.stored: list[tuple[str, str, Role]] = []

    async def store(self, chat_id, content, role):
        self.stored.append((chat_id, content, role))
        return await super().store(chat_id, content, role)

    def assistant_writes(self) -> list[tuple[str, str, Role]]:
        return [call for call in self.stored if call[2] == Role.ASSISTANT]


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterable[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_TOKEN}"}


@pytest.fixture
def engine() -> ScriptedEngine:
    return ScriptedEngine(
        [
            AgentEvent(event="on_chat_model_stream", data={"chunk": "Hi"}),
            AgentEvent(event="on_chat_model_stream", data={"chunk": " there"}),
        ]
    )


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def registry() -> TurnRegistry:
    return TurnRegistry()


@pytest.fixture
def app(engine: ScriptedEngine, store: RecordingStore, registry: TurnRegistry) -> Iterable[FastAPI]:
    """The relay app with test collaborators on ``app.state``."""
    relay_app.state.identity = BearerTokenIdentity(TEST_TOKEN, user_id="tester")
    relay_app.state.registry = registry
    relay_app.state.store = store
    relay_app.state.engine = engine
    relay_app.dependency_overrides[get_settings] = lambda: RelaySettings(
        auth_token=TEST_TOKEN,
        stream_retry_backoff=0,
        ping_interval=0,
    )
    yield relay_app

    relay_app.dependency_overrides.clear()
    relay_app.state.identity = None
    relay_app.state.registry = None
    relay_app.state.store = None
    relay_app.state.engine = None


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the app through ``ASGITransport``."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
