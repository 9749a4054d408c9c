"""Coordination channel: pub/sub broadcast between listener instances.

Carries only listener ids. Delivery is best-effort with no durability; a
subscriber that is not connected when a message is published never sees it.

Two backends:
- RedisCoordinationChannel: cross-process, via redis.asyncio
- InProcessCoordinationChannel: one process only (single-worker deployments, tests)
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import TYPE_CHECKING, Callable, Protocol

from chatrelay.config.logging import get_logger

if TYPE_CHECKING:
    from redis.asyncio import ConnectionPool, Redis
    from redis.asyncio.client import PubSub

logger = get_logger("listener.channel")

MessageHandler = Callable[[str], None]

# Seconds a subscriber read waits before checking again
READ_TIMEOUT = 1.0


class CoordinationChannel(Protocol):
    """What the coordinator needs from a pub/sub backend."""

    async def connect(self) -> None: ...

    async def publish(self, channel: str, message: str) -> int: ...

    async def subscribe(self, channel: str, on_message: MessageHandler) -> None: ...

    async def unsubscribe(self, channel: str) -> None: ...

    async def close(self) -> None: ...


def _deliver(on_message: MessageHandler, message: str, channel: str) -> None:
    try:
        on_message(message)
    except Exception as e:
        logger.exception(f"Handler for {channel} failed: {e}")


# ---------- Redis ----------

_pools: dict[str, ConnectionPool] = {}


def get_connection_pool(redis_url: str) -> ConnectionPool:
    """Process-wide connection pool for a Redis URL, created on first use."""
    pool = _pools.get(redis_url)
    if pool is None:
        from redis.asyncio import ConnectionPool

        pool = ConnectionPool.from_url(redis_url, decode_responses=True)
        _pools[redis_url] = pool
        logger.debug("Created Redis connection pool")
    return pool


async def close_connection_pools() -> None:
    """Disconnect and forget every memoized pool (shutdown and tests)."""
    pools = list(_pools.values())
    _pools.clear()
    for pool in pools:
        try:
            await pool.disconnect()
        except Exception as e:
            logger.debug(f"Error disconnecting Redis pool: {e}")


class RedisCoordinationChannel:
    """Redis pub/sub channel using two clients: one publishes, one subscribes.

    A connection in subscribe mode cannot issue other commands, so the
    subscription never shares a client with publishing.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        publisher: Redis | None = None,
        subscriber: Redis | None = None,
    ) -> None:
        """Initialize channel.

        Args:
            redis_url: Redis URL; clients are drawn from the shared pool for it
            publisher: Explicit publishing client (overrides redis_url)
            subscriber: Explicit subscribing client (overrides redis_url)
        """
        if redis_url is None and (publisher is None or subscriber is None):
            raise ValueError("Either redis_url or both clients are required")
        self._redis_url = redis_url
        self._publisher = publisher
        self._subscriber = subscriber
        self._pubsubs: dict[str, PubSub] = {}
        self._readers: dict[str, asyncio.Task[None]] = {}

    async def connect(self) -> None:
        """Open both clients and check they can reach the server."""
        if self._publisher is None or self._subscriber is None:
            from redis.asyncio import Redis

            pool = get_connection_pool(self._redis_url)
            self._publisher = self._publisher or Redis(connection_pool=pool)
            self._subscriber = self._subscriber or Redis(connection_pool=pool)

        await asyncio.gather(self._publisher.ping(), self._subscriber.ping())

    async def publish(self, channel: str, message: str) -> int:
        """Broadcast a message; returns how many subscribers received it."""
        if self._publisher is None:
            raise RuntimeError("Channel is not connected")
        return await self._publisher.publish(channel, message)

    async def subscribe(self, channel: str, on_message: MessageHandler) -> None:
        """Subscribe and call `on_message` for every message until unsubscribed.

        Returns once the subscription is confirmed by the server.
        """
        if self._subscriber is None:
            raise RuntimeError("Channel is not connected")
        if channel in self._pubsubs:
            raise RuntimeError(f"Already subscribed to {channel}")

        pubsub = self._subscriber.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(channel)
        self._pubsubs[channel] = pubsub
        self._readers[channel] = asyncio.create_task(
            self._read(channel, pubsub, on_message),
            name=f"coordination-reader:{channel}",
        )

    async def _read(self, channel: str, pubsub: PubSub, on_message: MessageHandler) -> None:
        """Pump messages from the subscription into the handler."""
        try:
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=READ_TIMEOUT)
                if message is None or message.get("type") != "message":
                    continue
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode()
                _deliver(on_message, data, channel)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Subscription to {channel} lost: {e}")

    async def unsubscribe(self, channel: str) -> None:
        reader = self._readers.pop(channel, None)
        if reader is not None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        pubsub = self._pubsubs.pop(channel, None)
        if pubsub is not None:
            try:
                await pubsub.unsubscribe(channel)
            finally:
                await pubsub.aclose()

    async def close(self) -> None:
        """Drop any remaining subscriptions and release both clients."""
        for channel in list(self._pubsubs):
            try:
                await self.unsubscribe(channel)
            except Exception as e:
                logger.debug(f"Error unsubscribing from {channel}: {e}")

        clients = [c for c in (self._publisher, self._subscriber) if c is not None]
        self._publisher = self._subscriber = None
        results = await asyncio.gather(*(c.aclose() for c in clients), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.debug(f"Error closing Redis client: {result}")


# ---------- In-process ----------


class InProcessBroker:
    """Fan-out hub shared by InProcessCoordinationChannel instances.

    Delivery is scheduled on the event loop rather than made inline, so a
    publisher never runs subscriber code inside its own publish call.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[MessageHandler]] = defaultdict(list)

    def add(self, channel: str, handler: MessageHandler) -> None:
        self._subscribers[channel].append(handler)

    def remove(self, channel: str, handler: MessageHandler) -> None:
        handlers = self._subscribers.get(channel, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._subscribers.pop(channel, None)

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))

    def publish(self, channel: str, message: str) -> int:
        handlers = list(self._subscribers.get(channel, []))
        loop = asyncio.get_running_loop()
        for handler in handlers:
            loop.call_soon(_deliver, handler, message, channel)
        return len(handlers)


_broker: InProcessBroker | None = None


def get_in_process_broker() -> InProcessBroker:
    """Get the process-wide broker."""
    global _broker
    if _broker is None:
        _broker = InProcessBroker()
    return _broker


def reset_in_process_broker() -> None:
    """Reset the process-wide broker (for testing)."""
    global _broker
    _broker = None


class InProcessCoordinationChannel:
    """Coordination within a single process, same contract as the Redis channel."""

    def __init__(self, broker: InProcessBroker | None = None) -> None:
        self._broker = broker or get_in_process_broker()
        self._handlers: dict[str, MessageHandler] = {}
        self._connected = False

    async def connect(self) -> None:
        self._connected = True

    async def publish(self, channel: str, message: str) -> int:
        if not self._connected:
            raise RuntimeError("Channel is not connected")
        return self._broker.publish(channel, message)

    async def subscribe(self, channel: str, on_message: MessageHandler) -> None:
        if not self._connected:
            raise RuntimeError("Channel is not connected")
        if channel in self._handlers:
            raise RuntimeError(f"Already subscribed to {channel}")
        self._handlers[channel] = on_message
        self._broker.add(channel, on_message)

    async def unsubscribe(self, channel: str) -> None:
        handler = self._handlers.pop(channel, None)
        if handler is not None:
            self._broker.remove(channel, handler)

    async def close(self) -> None:
        for channel in list(self._handlers):
            await self.unsubscribe(channel)
        self._connected = False
