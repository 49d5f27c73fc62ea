"""Unit tests for TurnRegistry (in-memory turn tracking)."""

from __future__ import annotations

import anyio
import pytest

from chatrelay.chat_runtime.context import RuntimeTurn
from chatrelay.chat_runtime.models.enums import TurnStatus
from chatrelay.chat_runtime.registry import ShuttingDownError, TurnRegistry


def _turn(chat_id: str = "chat-1") -> RuntimeTurn:
    return RuntimeTurn(chat_id=chat_id, user_id="u")


def test_register_counts_active_turns() -> None:
    registry = TurnRegistry()

    registry.register(_turn("a"))
    registry.register(_turn("a"))

    assert registry.active_count == 2


def test_unregister() -> None:
    registry = TurnRegistry()
    turn = _turn()
    registry.register(turn)

    assert registry.unregister(turn.turn_id) is turn
    assert registry.unregister(turn.turn_id) is None
    assert registry.active_count == 0


def test_register_refused_during_shutdown() -> None:
    registry = TurnRegistry()
    registry.begin_shutdown()

    assert registry.is_shutting_down
    with pytest.raises(ShuttingDownError):
        registry.register(_turn())


async def test_interrupt_all_cancels_streaming_turns() -> None:
    registry = TurnRegistry()
    streaming, finished, unscoped = _turn(), _turn(), _turn()
    streaming.cancel_scope = anyio.CancelScope()
    finished.cancel_scope = anyio.CancelScope()
    finished.status = TurnStatus.COMPLETED
    for turn in (streaming, finished, unscoped):
        registry.register(turn)

    assert registry.interrupt_all() == 1
    assert streaming.cancel_scope.cancel_called
    assert not finished.cancel_scope.cancel_called


async def test_wait_until_drained_when_empty() -> None:
    assert await TurnRegistry().wait_until_drained(timeout=0.1) is True


async def test_wait_until_drained_times_out() -> None:
    registry = TurnRegistry()
    registry.register(_turn())

    assert await registry.wait_until_drained(timeout=0.05) is False


async def test_wait_until_drained_after_unregister() -> None:
    registry = TurnRegistry()
    turn = _turn()
    registry.register(turn)

    async def finish_later() -> None:
        await anyio.sleep(0.01)
        registry.unregister(turn.turn_id)

    async with anyio.create_task_group() as tg:
        tg.start_soon(finish_later)
        assert await registry.wait_until_drained(timeout=5) is True
