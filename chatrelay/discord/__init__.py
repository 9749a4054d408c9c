"""Discord platform support: the Gateway listener and event forwarding."""

from chatrelay.discord.forwarding import GATEWAY_TOKEN_HEADER, GatewayEventForwarder
from chatrelay.discord.gateway import DiscordAdapter, GatewayRunResult, GatewayStatus

__all__ = [
    "GATEWAY_TOKEN_HEADER",
    "DiscordAdapter",
    "GatewayEventForwarder",
    "GatewayRunResult",
    "GatewayStatus",
]
