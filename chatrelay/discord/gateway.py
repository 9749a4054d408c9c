"""Discord Gateway listener.

Holds a Gateway WebSocket connection open for a bounded time and forwards
every dispatch event as a webhook call. Meant to be driven by the
persistent listener coordinator, which supplies the duration and the
cancellation signal.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

import discord

from chatrelay.config.logging import get_logger
from chatrelay.discord.forwarding import GatewayEventForwarder, parse_dispatch
from chatrelay.listener.cancellation import CancellationSignal

logger = get_logger("gateway")

DispatchHandler = Callable[[str, Any], Awaitable[None]]

# Seconds to let the client task finish after close() before cancelling it
CLOSE_TIMEOUT = 5.0


class GatewayStatus(str, Enum):
    """How a gateway run ended."""

    COMPLETED = "completed"  # ran for the full duration
    CANCELLED = "cancelled"  # a newer listener took over
    DISCONNECTED = "disconnected"  # the connection ended on its own


@dataclass
class GatewayRunResult:
    """Outcome of one gateway run, returned to the trigger as JSON."""

    listener_id: str | None
    status: GatewayStatus
    duration_ms: int
    elapsed_ms: int
    events_received: int = 0
    events_forwarded: int = 0
    forwarding: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "listenerId": self.listener_id,
            "status": self.status.value,
            "durationMs": self.duration_ms,
            "elapsedMs": self.elapsed_ms,
            "eventsReceived": self.events_received,
            "eventsForwarded": self.events_forwarded,
            "webhookConfigured": self.forwarding,
        }


class GatewayClient(Protocol):
    """The parts of discord.Client the listener drives."""

    async def start(self, token: str) -> None: ...

    async def close(self) -> None: ...

    def is_closed(self) -> bool: ...


def default_intents() -> discord.Intents:
    """Intents for mentions, messages, DMs and reactions."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.messages = True
    intents.guilds = True
    intents.reactions = True
    intents.dm_messages = True
    return intents


class GatewayForwardingClient(discord.Client):
    """Discord client that hands every raw dispatch event to a callback.

    Raw frames are only delivered with debug events enabled; no higher-level
    event handlers are used.
    """

    def __init__(self, on_dispatch: DispatchHandler, intents: discord.Intents | None = None) -> None:
        super().__init__(intents=intents or default_intents(), enable_debug_events=True)
        self._on_dispatch = on_dispatch

    async def on_ready(self) -> None:
        logger.info(f"Gateway connected as {self.user} ({len(self.guilds)} guilds)")

    async def on_socket_raw_receive(self, msg: str) -> None:
        parsed = parse_dispatch(msg)
        if parsed is None:
            return
        event_name, data = parsed
        await self._on_dispatch(event_name, data)


ClientFactory = Callable[[DispatchHandler], GatewayClient]


class DiscordAdapter:
    """Discord platform adapter: credentials plus the gateway listener."""

    name = "discord"

    def __init__(
        self,
        bot_token: str,
        public_key: str = "",
        application_id: str = "",
        *,
        client_factory: ClientFactory | None = None,
        forward_timeout: float = 10.0,
    ) -> None:
        if not bot_token:
            raise ValueError("Discord bot token is required")
        self.bot_token = bot_token
        self.public_key = public_key
        self.application_id = application_id
        self._client_factory = client_factory or GatewayForwardingClient
        self._forward_timeout = forward_timeout

    async def start_gateway_listener(
        self,
        duration_ms: int,
        cancellation: CancellationSignal,
        webhook_url: str | None = None,
        *,
        listener_id: str | None = None,
    ) -> GatewayRunResult:
        """Hold the gateway open until the duration elapses or the signal fires.

        Args:
            duration_ms: How long to keep the connection
            cancellation: Fires when a newer listener takes over
            webhook_url: Where to forward events; None disables forwarding
            listener_id: Echoed in the result for the trigger's logs

        Returns:
            The run result

        Raises:
            Whatever the client raised if the connection failed (e.g. bad token)
        """
        forwarder = (
            GatewayEventForwarder(webhook_url, self.bot_token, timeout=self._forward_timeout)
            if webhook_url
            else None
        )
        received = 0

        async def on_dispatch(event_name: str, data: Any) -> None:
            nonlocal received
            received += 1
            if forwarder is not None:
                await forwarder.forward(event_name, data)

        client = self._client_factory(on_dispatch)
        started = time.monotonic()

        connection = asyncio.create_task(client.start(self.bot_token), name=f"discord-gateway:{listener_id}")
        stop = asyncio.create_task(cancellation.wait())
        try:
            done, _ = await asyncio.wait(
                {connection, stop},
                timeout=duration_ms / 1000,
                return_when=asyncio.FIRST_COMPLETED,
            )

            if connection in done:
                exc = None if connection.cancelled() else connection.exception()
                if exc is not None:
                    raise exc
                status = GatewayStatus.DISCONNECTED
                logger.warning(f"Gateway connection for {listener_id} ended early")
            elif cancellation.cancelled:
                status = GatewayStatus.CANCELLED
            else:
                status = GatewayStatus.COMPLETED
        finally:
            stop.cancel()
            await self._shutdown(client, connection)
            if forwarder is not None:
                await forwarder.aclose()

        return GatewayRunResult(
            listener_id=listener_id,
            status=status,
            duration_ms=duration_ms,
            elapsed_ms=int((time.monotonic() - started) * 1000),
            events_received=received,
            events_forwarded=forwarder.forwarded if forwarder else 0,
            forwarding=forwarder is not None,
        )

    async def _shutdown(self, client: GatewayClient, connection: asyncio.Task[None]) -> None:
        """Close the client and make sure its task is finished."""
        try:
            if not client.is_closed():
                await client.close()
        except Exception as e:
            logger.debug(f"Error closing gateway client: {e}")

        if not connection.done():
            await asyncio.wait({connection}, timeout=CLOSE_TIMEOUT)
        if not connection.done():
            connection.cancel()
        await asyncio.gather(connection, return_exceptions=True)
