"""Tests for the forwarded-event webhook endpoint."""

import pytest
from fastapi.testclient import TestClient

from chatrelay.discord.forwarding import GATEWAY_TOKEN_HEADER
from chatrelay.events import EventType
from chatrelay.web.app import create_app

TOKEN = {GATEWAY_TOKEN_HEADER: "bot-token"}

MESSAGE_EVENT = {
    "type": "GATEWAY_MESSAGE_CREATE",
    "timestamp": 1700000000000,
    "data": {"id": "123", "content": "hello"},
}


@pytest.fixture
def app(make_settings):
    """App with a real Discord adapter built from settings."""
    return create_app(make_settings(discord_bot_token="bot-token"))


class TestForwardedEvents:
    def test_event_reaches_handlers(self, app):
        received = []

        async def handler(event):
            received.append(event)

        app.state.events.on(EventType.MESSAGE_CREATE, handler)

        with TestClient(app) as client:
            resp = client.post("/api/webhooks/discord", json=MESSAGE_EVENT, headers=TOKEN)

        # Leaving the client drains background emits
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        assert len(received) == 1
        assert received[0].platform == "discord"
        assert received[0].data["content"] == "hello"

    def test_missing_token(self, app):
        with TestClient(app) as client:
            resp = client.post("/api/webhooks/discord", json=MESSAGE_EVENT)

        assert resp.status_code == 401

    def test_wrong_token(self, app):
        with TestClient(app) as client:
            resp = client.post("/api/webhooks/discord", json=MESSAGE_EVENT, headers={GATEWAY_TOKEN_HEADER: "nope"})

        assert resp.status_code == 401

    def test_unknown_platform(self, app):
        with TestClient(app) as client:
            resp = client.post("/api/webhooks/slack", json=MESSAGE_EVENT, headers=TOKEN)

        assert resp.status_code == 404
        assert "Unknown platform: slack" in resp.text

    def test_invalid_json(self, app):
        with TestClient(app) as client:
            resp = client.post(
                "/api/webhooks/discord",
                content=b"{not json",
                headers={**TOKEN, "Content-Type": "application/json"},
            )

        assert resp.status_code == 400

    def test_missing_type(self, app):
        with TestClient(app) as client:
            resp = client.post("/api/webhooks/discord", json={"data": {}}, headers=TOKEN)

        assert resp.status_code == 400

    def test_non_object_body(self, app):
        with TestClient(app) as client:
            resp = client.post("/api/webhooks/discord", json=[1, 2], headers=TOKEN)

        assert resp.status_code == 400


class TestWebhookHealth:
    def test_configured_platform(self, app):
        with TestClient(app) as client:
            resp = client.get("/api/webhooks/discord")

        assert resp.status_code == 200
        assert resp.text == "discord webhook endpoint is active"

    def test_unconfigured_platform(self, app):
        with TestClient(app) as client:
            resp = client.get("/api/webhooks/teams")

        assert resp.status_code == 404
        assert resp.text == "teams adapter not configured"
