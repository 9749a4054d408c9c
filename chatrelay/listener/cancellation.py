"""One-shot cancellation signal shared by a listener's run function and its coordination task."""

from __future__ import annotations

import asyncio
from typing import Callable

from chatrelay.config.logging import get_logger

logger = get_logger("listener.cancellation")

CancelCallback = Callable[[str | None], None]


class CancellationSignal:
    """Cooperative, write-once cancellation token.

    Firing the signal never interrupts anyone: observers either poll
    `cancelled`, await `wait()`, or register a callback. Only the first
    `cancel()` has any effect; later calls return False.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._callbacks: list[CancelCallback] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """What fired the signal, e.g. the id of the listener that evicted us."""
        return self._reason

    def cancel(self, reason: str | None = None) -> bool:
        """Fire the signal.

        Returns:
            True if this call fired it, False if it was already cancelled
        """
        # No await between check and set, so this is atomic on the event loop
        if self._event.is_set():
            return False

        self._reason = reason
        self._event.set()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(reason)
            except Exception as e:
                logger.exception(f"Cancellation callback failed: {e}")
        return True

    async def wait(self) -> None:
        """Block until the signal fires."""
        await self._event.wait()

    def add_callback(self, callback: CancelCallback) -> Callable[[], None]:
        """Call `callback(reason)` once when the signal fires.

        If it already fired, the callback runs immediately.

        Returns:
            A function that removes the callback
        """
        if self._event.is_set():
            callback(self._reason)
            return lambda: None

        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def __repr__(self) -> str:
        state = f"cancelled by {self._reason}" if self.cancelled else "active"
        return f"CancellationSignal({state})"
