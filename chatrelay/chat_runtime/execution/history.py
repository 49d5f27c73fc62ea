"""History mapping -- request turns to agent input.

Two steps:

- ``build_agent_messages`` appends the new user message to the prior turns,
  producing the role-tagged list handed to any ``AgentEngine``.
- ``to_model_messages`` converts that list to pydantic-ai ``ModelMessage``
  objects for the built-in engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic_ai.messages import ModelMessage, ModelRequest, ModelResponse, TextPart, UserPromptPart

from chatrelay.protocol.messages import ChatMessage, Role

if TYPE_CHECKING:
    from collections.abc import Sequence


def build_agent_messages(history: Sequence[ChatMessage], new_message: str) -> list[ChatMessage]:
    """Return *history* followed by *new_message* as a user turn."""
    return [*history, ChatMessage(role=Role.USER, content=new_message)]


def to_model_messages(messages: Sequence[ChatMessage]) -> list[ModelMessage]:
    """Map role-tagged turns to pydantic-ai requests (user) and responses (assistant)."""
    result: list[ModelMessage] = []
    for message in messages:
        if message.role == Role.USER:
            result.append(ModelRequest(parts=[UserPromptPart(content=message.content)]))
        else:
            result.append(ModelResponse(parts=[TextPart(content=message.content)]))
    return result


def split_prompt(messages: Sequence[ChatMessage]) -> tuple[list[ModelMessage], str]:
    """Split a turn list into (model history, prompt of the final user turn).

    Raises ``ValueError`` if the list is empty or does not end with a user turn.
    """
    if not messages or messages[-1].role != Role.USER:
        msg = "Agent input must end with a user message"
        raise ValueError(msg)
    return to_model_messages(messages[:-1]), messages[-1].content
