"""Persistent listeners for serverless-style deployments.

Submodules:
- listener.cancellation: One-shot cancellation signal
- listener.session: ListenerConfig, ListenerSession and lifecycle states
- listener.channel: Pub/sub coordination backends (Redis, in-process)
- listener.tasks: Supervisor for work that outlives a response
- listener.coordinator: PersistentListener and the eviction protocol
"""

from chatrelay.listener.cancellation import CancellationSignal
from chatrelay.listener.channel import (
    CoordinationChannel,
    InProcessBroker,
    InProcessCoordinationChannel,
    RedisCoordinationChannel,
)
from chatrelay.listener.coordinator import PersistentListener, create_persistent_listener
from chatrelay.listener.session import ListenerConfig, ListenerSession, ListenerState
from chatrelay.listener.tasks import BackgroundTaskSupervisor, get_background_supervisor

__all__ = [
    "BackgroundTaskSupervisor",
    "CancellationSignal",
    "CoordinationChannel",
    "InProcessBroker",
    "InProcessCoordinationChannel",
    "ListenerConfig",
    "ListenerSession",
    "ListenerState",
    "PersistentListener",
    "RedisCoordinationChannel",
    "create_persistent_listener",
    "get_background_supervisor",
]
