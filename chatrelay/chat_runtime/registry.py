"""In-process turn registry.

Tracks turns whose streams are currently open, with live references for
interruption.  Ephemeral -- empty on process restart.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from chatrelay.chat_runtime.context import RuntimeTurn


class ShuttingDownError(RuntimeError):
    """Raised when attempting to register a turn during shutdown."""


class TurnRegistry:
    """Registry of currently streaming turns.

    Provides a drain mechanism for graceful shutdown: ``wait_until_drained``
    blocks until every turn has been unregistered.
    """

    def __init__(self) -> None:
        self._turns: dict[str, RuntimeTurn] = {}
        self._drained = asyncio.Event()
        self._drained.set()  # Starts drained (no turns).
        self._shutting_down = False

    # -- Mutation --------------------------------------------------------------

    def register(self, turn: RuntimeTurn) -> None:
        """Register a turn.  Raises ``ShuttingDownError`` if shutting down."""
        if self._shutting_down:
            raise ShuttingDownError("Server is shutting down")
        logger.debug("Registry: register turn {} (chat={})", turn.turn_id, turn.chat_id)
        self._turns[turn.turn_id] = turn
        self._drained.clear()

    def unregister(self, turn_id: str) -> RuntimeTurn | None:
        turn = self._turns.pop(turn_id, None)
        if turn:
            logger.debug("Registry: unregister turn {}", turn_id)
        if not self._turns:
            self._drained.set()
        return turn

    # -- Query -----------------------------------------------------------------

    @property
    def active_count(self) -> int:
        return len(self._turns)

    # -- Lifecycle -------------------------------------------------------------

    def begin_shutdown(self) -> None:
        """Mark the registry as shutting down.  New registrations are refused."""
        self._shutting_down = True
        logger.info("Registry: shutdown initiated, refusing new turns")

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    # -- Control ---------------------------------------------------------------

    def interrupt_all(self) -> int:
        """Cancel every active turn.  Returns how many were interrupted."""
        count = 0
        for turn in list(self._turns.values()):
            if turn.interrupt():
                count += 1
                logger.info("Registry: interrupted turn {}", turn.turn_id)
        return count

    async def wait_until_drained(self, timeout: float | None = None) -> bool:
        """Wait until all turns have been unregistered.

        Returns ``True`` if the registry is empty, ``False`` if *timeout*
        expired with turns still active.
        """
        if not self._turns:
            return True
        try:
            await asyncio.wait_for(self._drained.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Registry: drain timed out after {}s with {} turns still active",
                timeout,
                len(self._turns),
            )
            return False
        return True
