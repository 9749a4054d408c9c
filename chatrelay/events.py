"""Event system for forwarded platform events.

Gateway events arrive at the webhook route and are emitted here; handlers
subscribe by event type (or "*" for everything).
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Coroutine

from chatrelay.config.logging import get_logger

logger = get_logger("events")


class EventType(str, Enum):
    """Forwarded Discord Gateway event types handlers commonly listen for."""

    MESSAGE_CREATE = "GATEWAY_MESSAGE_CREATE"
    MESSAGE_UPDATE = "GATEWAY_MESSAGE_UPDATE"
    MESSAGE_DELETE = "GATEWAY_MESSAGE_DELETE"
    REACTION_ADD = "GATEWAY_MESSAGE_REACTION_ADD"
    REACTION_REMOVE = "GATEWAY_MESSAGE_REACTION_REMOVE"
    INTERACTION_CREATE = "GATEWAY_INTERACTION_CREATE"
    THREAD_CREATE = "GATEWAY_THREAD_CREATE"
    READY = "GATEWAY_READY"


def _key(event_type: EventType | str) -> str:
    return event_type.value if isinstance(event_type, EventType) else event_type


@dataclass
class Event:
    """An event received from a platform."""

    type: str
    timestamp: datetime = field(default_factory=datetime.now)
    data: Any = None
    platform: str | None = None

    @classmethod
    def from_forwarded(cls, payload: dict[str, Any], platform: str) -> Event:
        """Build an event from a forwarded gateway body ({type, timestamp, data}).

        Raises:
            ValueError: if the body has no event type
        """
        event_type = payload.get("type")
        if not isinstance(event_type, str) or not event_type:
            raise ValueError("Forwarded event is missing 'type'")

        raw_ts = payload.get("timestamp")
        timestamp = datetime.fromtimestamp(raw_ts / 1000) if isinstance(raw_ts, (int, float)) else datetime.now()
        return cls(type=event_type, timestamp=timestamp, data=payload.get("data"), platform=platform)

    def __repr__(self) -> str:
        return f"Event({self.type}, platform={self.platform})"


EventHandler = Callable[[Event], Coroutine[Any, Any, None]]


class EventEmitter:
    """Async event emitter.

    Supports:
    - Multiple handlers per event type
    - Wildcard handlers (receive all events)
    - Handler priority ordering
    - Error isolation (one handler failure doesn't stop others)
    """

    def __init__(self, history_limit: int = 100) -> None:
        self._handlers: dict[str, list[tuple[int, EventHandler]]] = defaultdict(list)
        self._wildcard_handlers: list[tuple[int, EventHandler]] = []
        self._event_history: list[Event] = []
        self._history_limit = history_limit

    def on(self, event_type: EventType | str, handler: EventHandler, priority: int = 0) -> None:
        """Register an event handler.

        Args:
            event_type: The event type to handle, or "*" for all events
            handler: Async function to call when event fires
            priority: Higher priority handlers run first (default: 0)
        """
        if event_type == "*":
            handlers = self._wildcard_handlers
        else:
            handlers = self._handlers[_key(event_type)]
        handlers.append((priority, handler))
        handlers.sort(key=lambda x: -x[0])

        logger.debug(f"Registered handler for {_key(event_type)} (priority={priority})")

    def off(self, event_type: EventType | str, handler: EventHandler) -> bool:
        """Remove an event handler. Returns True if it was registered."""
        handlers = self._wildcard_handlers if event_type == "*" else self._handlers.get(_key(event_type), [])
        for i, (_, h) in enumerate(handlers):
            if h == handler:
                handlers.pop(i)
                return True
        return False

    async def emit(self, event: Event) -> None:
        """Emit an event to all registered handlers."""
        self._event_history.append(event)
        if len(self._event_history) > self._history_limit:
            self._event_history.pop(0)

        handlers = list(self._handlers.get(event.type, [])) + self._wildcard_handlers
        handlers.sort(key=lambda x: -x[0])

        if not handlers:
            logger.debug(f"No handlers for event {event.type}")
            return

        # Start in priority order, then run concurrently
        await asyncio.gather(*(self._run_handler(h, event) for _, h in handlers))

    async def _run_handler(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.exception(f"Handler error for {event.type}: {e}")

    def get_history(self, limit: int = 50) -> list[Event]:
        """Recent events, newest first."""
        return list(reversed(self._event_history[-limit:]))

    def get_stats(self) -> dict[str, Any]:
        return {
            "handler_counts": {k: len(v) for k, v in self._handlers.items() if v},
            "wildcard_handlers": len(self._wildcard_handlers),
            "history_size": len(self._event_history),
        }


_emitter: EventEmitter | None = None


def get_event_emitter() -> EventEmitter:
    """Get the global event emitter instance."""
    global _emitter
    if _emitter is None:
        _emitter = EventEmitter()
    return _emitter


def reset_event_emitter() -> None:
    """Reset the global event emitter (for testing)."""
    global _emitter
    _emitter = None


async def emit(event: Event) -> None:
    """Emit an event using the global emitter."""
    await get_event_emitter().emit(event)


def on(event_type: EventType | str, handler: EventHandler, priority: int = 0) -> None:
    """Register a handler on the global emitter."""
    get_event_emitter().on(event_type, handler, priority)


def off(event_type: EventType | str, handler: EventHandler) -> bool:
    """Remove a handler from the global emitter."""
    return get_event_emitter().off(event_type, handler)
