"""Re-delivery of Discord Gateway events as webhook calls.

The gateway connection only reads events; processing happens wherever the
forwarding URL points (normally this same deployment's webhook route).
"""

from __future__ import annotations

import json
import time
from typing import Any

import httpx

from chatrelay.config.logging import get_logger

logger = get_logger("gateway.forward")

# Header the webhook route checks to accept a forwarded gateway event
GATEWAY_TOKEN_HEADER = "x-discord-gateway-token"

# Gateway opcode for dispatch (event) payloads
DISPATCH_OPCODE = 0

EVENT_TYPE_PREFIX = "GATEWAY_"


def parse_dispatch(raw: str | bytes | dict[str, Any]) -> tuple[str, Any] | None:
    """Extract (event name, data) from a raw gateway frame.

    Returns None for anything that is not a named dispatch event
    (heartbeats, hello, acks, malformed frames).
    """
    if isinstance(raw, (str, bytes)):
        try:
            payload = json.loads(raw)
        except ValueError:
            return None
    else:
        payload = raw

    if not isinstance(payload, dict) or payload.get("op") != DISPATCH_OPCODE:
        return None
    event_name = payload.get("t")
    if not event_name:
        return None
    return event_name, payload.get("d")


def build_forward_payload(event_name: str, data: Any, timestamp_ms: int | None = None) -> dict[str, Any]:
    """Body POSTed for one gateway event."""
    return {
        "type": f"{EVENT_TYPE_PREFIX}{event_name}",
        "timestamp": timestamp_ms if timestamp_ms is not None else int(time.time() * 1000),
        "data": data,
    }


class GatewayEventForwarder:
    """POSTs gateway events to a webhook URL.

    Failures are counted and logged; a bad forward never breaks the
    gateway connection.
    """

    def __init__(
        self,
        webhook_url: str,
        bot_token: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self._headers = {GATEWAY_TOKEN_HEADER: bot_token, "Content-Type": "application/json"}
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self.forwarded = 0
        self.failed = 0

    async def forward(self, event_name: str, data: Any) -> bool:
        """Forward one event. Returns True if the webhook accepted it."""
        payload = build_forward_payload(event_name, data)
        try:
            response = await self._client.post(self.webhook_url, json=payload, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self.failed += 1
            logger.warning(f"Webhook rejected {payload['type']}: HTTP {e.response.status_code}")
            return False
        except httpx.HTTPError as e:
            self.failed += 1
            logger.warning(f"Failed to forward {payload['type']}: {e}")
            return False

        self.forwarded += 1
        logger.debug(f"Forwarded {payload['type']}")
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
