"""Runtime turn context.

One ``RuntimeTurn`` exists per streaming request.  It is created by the relay
when the stream task starts, registered in the ``TurnRegistry`` so shutdown
can wait for (or cancel) it, and discarded when the stream closes.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field

import anyio

from chatrelay.chat_runtime.models.enums import TurnStatus


@dataclass
class RuntimeTurn:
    """In-flight state for a single conversation turn."""

    # -- Identity --------------------------------------------------------------
    chat_id: str
    user_id: str
    turn_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    # -- Progress --------------------------------------------------------------
    status: TurnStatus = TurnStatus.STREAMING
    frames_sent: int = 0
    started_at: float = field(default_factory=time.monotonic)

    # -- Live references -------------------------------------------------------
    cancel_scope: anyio.CancelScope | None = None
    """Scope wrapping the upstream loop; cancelling it interrupts the turn."""

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def interrupt(self) -> bool:
        """Cancel the turn's upstream loop.  Returns False if it is not running."""
        if self.cancel_scope is None or self.status != TurnStatus.STREAMING:
            return False
        self.cancel_scope.cancel()
        return True
