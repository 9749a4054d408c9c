"""Listener configuration and per-invocation session state."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from chatrelay.config.settings import DEFAULT_GRACE_PERIOD_MS
from chatrelay.listener.cancellation import CancellationSignal


class ListenerState(str, Enum):
    """Lifecycle of one invocation. Linear; no state is revisited."""

    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ListenerState.COMPLETED, ListenerState.CANCELLED, ListenerState.FAILED)


@dataclass(frozen=True)
class ListenerConfig:
    """Process-wide settings for one named listener."""

    name: str
    default_duration_ms: int
    max_duration_ms: int
    redis_url: str | None = None
    grace_period_ms: int = DEFAULT_GRACE_PERIOD_MS

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Listener name must not be empty")
        if min(self.default_duration_ms, self.max_duration_ms, self.grace_period_ms) < 0:
            raise ValueError("Listener durations must not be negative")
        if self.max_duration_ms < self.default_duration_ms:
            raise ValueError(
                f"max_duration_ms ({self.max_duration_ms}) is below "
                f"default_duration_ms ({self.default_duration_ms})"
            )

    @property
    def channel_name(self) -> str:
        """Pub/sub channel the listeners of this name coordinate on."""
        return f"persistent-listener:{self.name}:control"

    def resolve_duration(self, requested_ms: int | None) -> int:
        """Effective run budget: the request (or default), clamped to [0, max]."""
        duration = self.default_duration_ms if requested_ms is None else requested_ms
        return max(0, min(duration, self.max_duration_ms))


def generate_listener_id(name: str) -> str:
    """Unique-enough id: epoch milliseconds plus a random suffix."""
    return f"{name}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def parse_duration(value: str | None) -> int | None:
    """Parse a `duration` query value in milliseconds; None if absent or not an integer."""
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


@dataclass
class ListenerSession:
    """One invocation's listener. Owned by the invocation that created it."""

    listener_id: str
    duration_ms: int
    cancellation: CancellationSignal = field(default_factory=CancellationSignal)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    state: ListenerState = ListenerState.STARTING
    finished_at: datetime | None = None

    @classmethod
    def create(cls, config: ListenerConfig, requested_ms: int | None = None) -> ListenerSession:
        return cls(
            listener_id=generate_listener_id(config.name),
            duration_ms=config.resolve_duration(requested_ms),
        )

    @property
    def cancelled(self) -> bool:
        return self.cancellation.cancelled

    def transition(self, state: ListenerState) -> None:
        """Move to the next lifecycle state.

        Raises:
            RuntimeError: if the session already reached a terminal state
        """
        if self.state.terminal:
            raise RuntimeError(f"Listener {self.listener_id} already {self.state.value}")
        self.state = state
        if state.terminal:
            self.finished_at = datetime.now(UTC)

    @property
    def elapsed_ms(self) -> int:
        end = self.finished_at or datetime.now(UTC)
        return int((end - self.started_at).total_seconds() * 1000)
