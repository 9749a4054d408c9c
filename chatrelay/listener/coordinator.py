"""Persistent listener coordinator.

Keeps a single long-lived upstream connection alive from short-lived
invocations. Each invocation runs the caller's listener for a bounded
duration; a scheduler starts a new one before the previous one ends.

Cross-instance coordination is an eviction protocol over pub/sub: every new
listener subscribes to the control channel, then announces its id there.
Any other listener that hears the announcement fires its cancellation
signal and winds down, so the newest listener wins.

Usage:
    listener = create_persistent_listener(
        "discord-gateway",
        redis_url=settings.redis_url,
        default_duration_ms=600_000,
        max_duration_ms=600_000,
    )

    @router.get("/api/discord/gateway")
    async def gateway(request: Request) -> Response:
        async def run(session: ListenerSession) -> Response:
            ...  # long-running work that honors session.cancellation
            return JSONResponse({"ok": True})

        return await listener.start(request, run=run)
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from chatrelay.config.logging import get_logger
from chatrelay.listener.channel import CoordinationChannel, RedisCoordinationChannel
from chatrelay.listener.session import ListenerConfig, ListenerSession, ListenerState, parse_duration
from chatrelay.listener.tasks import get_background_supervisor

logger = get_logger("listener")

RunFunction = Callable[[ListenerSession], Awaitable[Response]]
AfterTask = Callable[[Awaitable[Any]], Any]
DurationGetter = Callable[[Request], "int | None"]
ChannelFactory = Callable[[], "CoordinationChannel | None"]


def _duration_from_query(request: Request) -> int | None:
    return parse_duration(request.query_params.get("duration"))


class PersistentListener:
    """Runs one named listener per invocation and coordinates across instances."""

    def __init__(self, config: ListenerConfig, channel_factory: ChannelFactory | None = None) -> None:
        """Initialize the listener.

        Args:
            config: Listener name and duration limits
            channel_factory: Builds a fresh coordination channel per session.
                Defaults to Redis when config.redis_url is set; without either,
                sessions run uncoordinated.
        """
        self.config = config
        self._channel_factory = channel_factory

    @property
    def name(self) -> str:
        return self.config.name

    def _new_channel(self) -> CoordinationChannel | None:
        if self._channel_factory is not None:
            return self._channel_factory()
        if self.config.redis_url:
            return RedisCoordinationChannel(self.config.redis_url)
        return None

    async def start(
        self,
        request: Request,
        *,
        run: RunFunction,
        after_task: AfterTask | None = None,
        get_duration: DurationGetter | None = None,
    ) -> Response:
        """Run the listener for this invocation and return its response.

        Args:
            request: The inbound trigger request
            run: The listener body. Receives the session and must stop
                promptly once session.cancellation fires.
            after_task: Schedules work that may outlive the response.
                Defaults to the process background supervisor.
            get_duration: Reads the requested duration (ms) from the request.
                Defaults to the `duration` query parameter.

        Returns:
            The run function's response, or a 500 JSON response if it raised
        """
        requested = (get_duration or _duration_from_query)(request)
        session = ListenerSession.create(self.config, requested)
        log_extra = {"listener_id": session.listener_id, "duration_ms": session.duration_ms}

        logger.info(f"[{self.name}] Starting listener: {session.listener_id}", extra=log_extra)

        try:
            channel = self._new_channel()
        except Exception as e:
            logger.error(f"[{self.name}] Could not create coordination channel: {e}", extra=log_extra)
            channel = None

        if channel is not None:
            schedule = after_task or get_background_supervisor().spawn
            schedule(self.coordinate(session, channel))
        else:
            logger.debug(f"[{self.name}] No coordination channel configured", extra=log_extra)

        session.transition(ListenerState.RUNNING)
        try:
            response = await run(session)
        except Exception as e:
            session.transition(ListenerState.FAILED)
            logger.exception(f"[{self.name}] Error in listener: {e}", extra=log_extra)
            return JSONResponse(
                {"error": f"Failed to run {self.name} listener", "message": str(e)},
                status_code=500,
            )

        if session.cancelled:
            session.transition(ListenerState.CANCELLED)
            logger.info(
                f"[{self.name}] Listener {session.listener_id} cancelled by {session.cancellation.reason}",
                extra=log_extra,
            )
        else:
            session.transition(ListenerState.COMPLETED)
            logger.info(f"[{self.name}] Listener {session.listener_id} completed", extra=log_extra)
        return response

    async def coordinate(self, session: ListenerSession, channel: CoordinationChannel) -> None:
        """Announce this session and yield to any newer one until it ends.

        Errors reaching the store are logged and end coordination for this
        session; they never affect the run itself.
        """
        channel_name = self.config.channel_name
        listener_id = session.listener_id
        log_extra = {"listener_id": listener_id}

        def on_message(message: str) -> None:
            # The announcement we published comes back to our own subscription
            if message == listener_id:
                return
            if session.cancellation.cancel(reason=message):
                logger.info(f"[{self.name}] {listener_id} received shutdown signal from {message}", extra=log_extra)

        subscribed = False
        try:
            await channel.connect()

            # Subscribe before announcing so no later announcement is missed
            await channel.subscribe(channel_name, on_message)
            subscribed = True

            receivers = await channel.publish(channel_name, listener_id)
            logger.info(f"[{self.name}] Published startup signal: {listener_id} ({receivers} receivers)", extra=log_extra)

            timeout = (session.duration_ms + self.config.grace_period_ms) / 1000
            try:
                await asyncio.wait_for(session.cancellation.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass
        except Exception as e:
            logger.error(f"[{self.name}] Coordination error: {e}", extra=log_extra)
        finally:
            if subscribed:
                try:
                    await channel.unsubscribe(channel_name)
                except Exception as e:
                    logger.debug(f"[{self.name}] Unsubscribe failed: {e}", extra=log_extra)
            try:
                await channel.close()
            except Exception as e:
                logger.debug(f"[{self.name}] Channel close failed: {e}", extra=log_extra)
            logger.info(f"[{self.name}] {listener_id} pub/sub cleanup complete", extra=log_extra)


def create_persistent_listener(
    name: str,
    *,
    default_duration_ms: int,
    max_duration_ms: int,
    redis_url: str | None = None,
    grace_period_ms: int | None = None,
    channel_factory: ChannelFactory | None = None,
) -> PersistentListener:
    """Build a PersistentListener from keyword settings."""
    config_kwargs: dict[str, Any] = {
        "name": name,
        "default_duration_ms": default_duration_ms,
        "max_duration_ms": max_duration_ms,
        "redis_url": redis_url,
    }
    if grace_period_ms is not None:
        config_kwargs["grace_period_ms"] = grace_period_ms
    return PersistentListener(ListenerConfig(**config_kwargs), channel_factory=channel_factory)
