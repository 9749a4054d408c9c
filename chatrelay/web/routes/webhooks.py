"""Webhook endpoint that receives forwarded gateway events.

Events are acknowledged immediately and handed to the event emitter in the
background.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

from chatrelay.config.logging import get_logger
from chatrelay.discord.forwarding import GATEWAY_TOKEN_HEADER
from chatrelay.events import Event, EventEmitter
from chatrelay.web.auth import token_matches

logger = get_logger("web.webhooks")

router = APIRouter()


@router.post("/api/webhooks/{platform}")
async def platform_webhook(platform: str, request: Request) -> Response:
    """Accept a forwarded gateway event for a configured platform."""
    state = request.app.state
    await state.adapters.initialize()

    adapter = state.adapters.get_adapter(platform)
    if adapter is None:
        return PlainTextResponse(f"Unknown platform: {platform}", status_code=404)

    if not token_matches(request.headers.get(GATEWAY_TOKEN_HEADER), getattr(adapter, "bot_token", "")):
        logger.warning(f"Rejected {platform} webhook: missing or invalid gateway token")
        return PlainTextResponse("Unauthorized", status_code=401)

    try:
        payload = await request.json()
    except ValueError:
        return PlainTextResponse("Invalid JSON body", status_code=400)
    if not isinstance(payload, dict):
        return PlainTextResponse("Expected a JSON object", status_code=400)

    try:
        event = Event.from_forwarded(payload, platform=platform)
    except ValueError as e:
        return PlainTextResponse(str(e), status_code=400)

    emitter: EventEmitter = state.events
    state.background.spawn(emitter.emit(event), name=f"emit:{event.type}")
    logger.debug(f"Accepted {event.type} from {platform}", extra={"platform": platform})
    return JSONResponse({"ok": True})


@router.get("/api/webhooks/{platform}")
async def platform_webhook_health(platform: str, request: Request) -> Response:
    """Report whether a platform's webhook endpoint is active."""
    state = request.app.state
    await state.adapters.initialize()

    if state.adapters.get_adapter(platform) is not None:
        return PlainTextResponse(f"{platform} webhook endpoint is active")
    return PlainTextResponse(f"{platform} adapter not configured", status_code=404)
