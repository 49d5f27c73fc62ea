"""Agent engine adapter -- maps settings to a pydantic-ai ``Agent`` and its
node stream to ``AgentEvent`` objects.

The relay depends only on the ``AgentEngine`` protocol: something that, given
a role-tagged message list and a thread identifier, yields upstream events.
``PydanticAIEngine`` is the production implementation:

- ``RelaySettings.model`` / ``temperature`` / ``max_tokens`` -> ``Agent`` + ``ModelSettings``
- ``RelaySettings.mcp_url`` -> an MCP server toolset (the agent's tools)
- model text parts -> ``on_chat_model_stream`` events
- tool calls / tool returns -> ``on_tool_start`` / ``on_tool_end`` events

The engine is built once in the app lifespan.  ``start`` opens the toolset
connections for the life of the process and ``aclose`` tears them down; a
run started while they are closed reopens them for that run only.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, Protocol

from pydantic_ai import Agent
from pydantic_ai.messages import (
    FunctionToolCallEvent,
    FunctionToolResultEvent,
    PartDeltaEvent,
    PartStartEvent,
    RetryPromptPart,
    TextPart,
    TextPartDelta,
)
from pydantic_ai.settings import ModelSettings
from pydantic_core import to_jsonable_python

from chatrelay.chat_runtime.execution.history import split_prompt
from chatrelay.chat_runtime.models.enums import AgentEventKind
from chatrelay.chat_runtime.models.events import AgentEvent

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pydantic_ai.toolsets import AbstractToolset

    from chatrelay.chat_runtime.settings import RelaySettings
    from chatrelay.protocol.messages import ChatMessage

logger = logging.getLogger(__name__)


class AgentEngine(Protocol):
    """Source of upstream agent events for one conversation turn."""

    def stream_events(self, messages: Sequence[ChatMessage], *, thread_id: str) -> AsyncIterator[AgentEvent]:
        """Run the agent over *messages* and yield its events in order."""
        ...


# ---------------------------------------------------------------------------
# Agent factory
# ---------------------------------------------------------------------------


def resolve_model_settings(settings: RelaySettings) -> ModelSettings:
    """Build ``ModelSettings`` from the explicitly set fields only."""
    model_settings = ModelSettings()
    if settings.temperature is not None:
        model_settings["temperature"] = settings.temperature
    if settings.max_tokens is not None:
        model_settings["max_tokens"] = settings.max_tokens
    return model_settings


def resolve_toolsets(settings: RelaySettings) -> list[AbstractToolset[Any]]:
    """Return the agent's toolsets: one MCP server when ``mcp_url`` is set."""
    if not settings.mcp_url:
        return []
    from pydantic_ai.mcp import MCPToolset

    return [MCPToolset(settings.mcp_url)]


def create_agent(settings: RelaySettings) -> Agent[None, str]:
    toolsets = resolve_toolsets(settings)
    agent = Agent(
        settings.model,
        system_prompt=settings.system_prompt,
        model_settings=resolve_model_settings(settings),
        toolsets=toolsets or None,
        defer_model_check=True,
    )
    logger.info("Created agent: model=%s, toolsets=%d", settings.model, len(toolsets))
    return agent


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class PydanticAIEngine:
    """``AgentEngine`` backed by a pydantic-ai ``Agent``."""

    def __init__(self, agent: Agent[None, str]) -> None:
        self._agent = agent
        self._stack: contextlib.AsyncExitStack | None = None

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> PydanticAIEngine:
        return cls(create_agent(settings))

    @property
    def agent(self) -> Agent[None, str]:
        return self._agent

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Open toolset connections for the life of the process."""
        if self._stack is not None:
            return
        stack = contextlib.AsyncExitStack()
        await stack.enter_async_context(self._agent)
        self._stack = stack
        logger.info("Agent engine started")

    async def aclose(self) -> None:
        if self._stack is None:
            return
        stack, self._stack = self._stack, None
        await stack.aclose()
        logger.info("Agent engine closed")

    # -- Streaming -------------------------------------------------------------

    async def stream_events(self, messages: Sequence[ChatMessage], *, thread_id: str) -> AsyncIterator[AgentEvent]:
        history, prompt = split_prompt(messages)
        logger.debug("Agent run: thread=%s, history=%d", thread_id, len(history))

        async with self._agent.iter(prompt, message_history=history) as run:
            async for node in run:
                if Agent.is_model_request_node(node):
                    async with node.stream(run.ctx) as request_stream:
                        async for event in request_stream:
                            token = _text_of(event)
                            if token:
                                yield AgentEvent(
                                    event=AgentEventKind.MODEL_TOKEN,
                                    run_id=thread_id,
                                    data={"chunk": token},
                                )
                elif Agent.is_call_tools_node(node):
                    async with node.stream(run.ctx) as tool_stream:
                        async for event in tool_stream:
                            mapped = _tool_event(event, thread_id)
                            if mapped is not None:
                                yield mapped


def _text_of(event: object) -> str | None:
    """Return the text carried by a model stream event, if any."""
    if isinstance(event, PartStartEvent) and isinstance(event.part, TextPart):
        return event.part.content
    if isinstance(event, PartDeltaEvent) and isinstance(event.delta, TextPartDelta):
        return event.delta.content_delta
    return None


def _tool_event(event: object, thread_id: str) -> AgentEvent | None:
    if isinstance(event, FunctionToolCallEvent):
        return AgentEvent(
            event=AgentEventKind.TOOL_START,
            name=event.part.tool_name,
            run_id=thread_id,
            data={"input": event.part.args_as_dict()},
        )
    if isinstance(event, FunctionToolResultEvent):
        result = event.part
        output = result.model_response() if isinstance(result, RetryPromptPart) else result.content
        return AgentEvent(
            event=AgentEventKind.TOOL_END,
            name=result.tool_name,
            run_id=thread_id,
            data={"output": to_jsonable_python(output, fallback=str)},
        )
    return None
