"""Unit tests for history mapping (request turns -> agent input)."""

from __future__ import annotations

import pytest
from pydantic_ai.messages import ModelRequest, ModelResponse, TextPart, UserPromptPart

from chatrelay.chat_runtime.execution.history import build_agent_messages, split_prompt, to_model_messages
from chatrelay.protocol.messages import ChatMessage, Role


def test_build_agent_messages_appends_user_turn() -> None:
    history = [ChatMessage(role=Role.USER, content="hi"), ChatMessage(role=Role.ASSISTANT, content="hello")]

    messages = build_agent_messages(history, "how are you?")

    assert messages[:2] == history
    assert messages[-1] == ChatMessage(role=Role.USER, content="how are you?")
    assert len(history) == 2


def test_build_agent_messages_empty_history() -> None:
    assert build_agent_messages([], "hi") == [ChatMessage(role=Role.USER, content="hi")]


def test_to_model_messages() -> None:
    result = to_model_messages(
        [ChatMessage(role=Role.USER, content="hi"), ChatMessage(role=Role.ASSISTANT, content="hello")]
    )

    assert isinstance(result[0], ModelRequest)
    assert isinstance(result[0].parts[0], UserPromptPart)
    assert result[0].parts[0].content == "hi"
    assert isinstance(result[1], ModelResponse)
    assert isinstance(result[1].parts[0], TextPart)
    assert result[1].parts[0].content == "hello"


def test_split_prompt() -> None:
    history, prompt = split_prompt(build_agent_messages([ChatMessage(role=Role.USER, content="hi")], "again"))

    assert prompt == "again"
    assert len(history) == 1


@pytest.mark.parametrize(
    "messages",
    [[], [ChatMessage(role=Role.USER, content="hi"), ChatMessage(role=Role.ASSISTANT, content="hello")]],
)
def test_split_prompt_requires_trailing_user_turn(messages) -> None:
    with pytest.raises(ValueError):
        split_prompt(messages)
