"""Discord Gateway keep-alive endpoint.

A scheduler calls this more often than the listener duration (e.g. every
9 minutes for a 10 minute listener). Each call holds the Gateway connection
for its duration; the persistent listener makes sure the previous call's
connection shuts down once the new one announces itself.

Usage: GET /api/discord/gateway
Optional query param: ?duration=600000 (milliseconds, clamped to the max)
Requires: Authorization: Bearer $CRON_SECRET
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

from chatrelay.config.logging import get_logger
from chatrelay.config.settings import Settings
from chatrelay.listener import ListenerSession, PersistentListener, create_persistent_listener
from chatrelay.web.auth import bearer_matches

logger = get_logger("web.gateway")

router = APIRouter()

GATEWAY_LISTENER_NAME = "discord-gateway"


def build_gateway_listener(settings: Settings) -> PersistentListener:
    """The process-wide persistent listener for the Discord Gateway."""
    return create_persistent_listener(
        GATEWAY_LISTENER_NAME,
        redis_url=settings.redis_url,
        default_duration_ms=settings.gateway_default_duration_ms,
        max_duration_ms=settings.gateway_max_duration_ms,
        grace_period_ms=settings.listener_grace_period_ms,
    )


@router.get("/api/discord/gateway")
async def discord_gateway(request: Request) -> Response:
    """Start the Discord Gateway listener for this invocation."""
    state = request.app.state
    settings: Settings = state.settings

    if not settings.cron_secret:
        logger.error("[discord-gateway] CRON_SECRET not configured")
        return PlainTextResponse("CRON_SECRET not configured", status_code=500)

    if not bearer_matches(request.headers.get("authorization"), settings.cron_secret):
        logger.warning("[discord-gateway] Unauthorized: invalid CRON_SECRET")
        return PlainTextResponse("Unauthorized", status_code=401)

    await state.adapters.initialize()
    discord = state.adapters.get_adapter("discord")
    if discord is None:
        logger.info("[discord-gateway] Discord adapter not configured")
        return PlainTextResponse("Discord adapter not configured", status_code=404)

    webhook_url = settings.webhook_url()
    if webhook_url is None:
        logger.warning("[discord-gateway] No deployment URL; gateway events will not be forwarded")

    async def run(session: ListenerSession) -> Response:
        logger.info(
            f"[discord-gateway] Starting Gateway listener: {session.listener_id} "
            f"(webhook {'configured' if webhook_url else 'not configured'})",
            extra={"listener_id": session.listener_id, "duration_ms": session.duration_ms},
        )

        result = await discord.start_gateway_listener(
            session.duration_ms,
            session.cancellation,
            webhook_url,
            listener_id=session.listener_id,
        )

        logger.info(
            f"[discord-gateway] Gateway listener {session.listener_id} completed with status: {result.status.value}",
            extra={"listener_id": session.listener_id},
        )
        return JSONResponse(result.to_dict())

    listener: PersistentListener = state.gateway_listener
    return await listener.start(request, run=run, after_task=state.background.spawn)
