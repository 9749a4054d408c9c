"""Tests for the Discord Gateway keep-alive endpoint."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from chatrelay.discord.gateway import GatewayRunResult, GatewayStatus
from chatrelay.web.app import create_app

AUTH = {"Authorization": "Bearer s3cret"}


class FakeDiscordAdapter:
    """Records gateway runs instead of connecting to Discord."""

    bot_token = "bot-token"

    def __init__(self, fail: Exception | None = None) -> None:
        self.fail = fail
        self.calls: list[dict] = []

    async def start_gateway_listener(self, duration_ms, cancellation, webhook_url=None, *, listener_id=None):
        self.calls.append(
            {
                "duration_ms": duration_ms,
                "cancellation": cancellation,
                "webhook_url": webhook_url,
                "listener_id": listener_id,
            }
        )
        if self.fail is not None:
            raise self.fail
        return GatewayRunResult(
            listener_id=listener_id,
            status=GatewayStatus.COMPLETED,
            duration_ms=duration_ms,
            elapsed_ms=0,
            forwarding=webhook_url is not None,
        )


@pytest.fixture
def adapter():
    return FakeDiscordAdapter()


@pytest.fixture
def make_client(make_settings):
    """TestClient factory; registers `adapter` as the Discord adapter when given."""

    def _make(adapter=None, **settings):
        app = create_app(make_settings(**settings))
        if adapter is not None:
            app.state.adapters.register("discord", adapter)
        return TestClient(app)

    return _make


class TestAuthentication:
    def test_missing_secret_configuration(self, make_client, adapter):
        with make_client(adapter) as client:
            resp = client.get("/api/discord/gateway", headers=AUTH)

        assert resp.status_code == 500
        assert "CRON_SECRET not configured" in resp.text
        assert adapter.calls == []

    def test_missing_authorization(self, make_client, adapter):
        with make_client(adapter, cron_secret="s3cret") as client:
            resp = client.get("/api/discord/gateway")

        assert resp.status_code == 401
        assert resp.text == "Unauthorized"

    def test_wrong_secret(self, make_client, adapter):
        with make_client(adapter, cron_secret="s3cret") as client:
            resp = client.get("/api/discord/gateway", headers={"Authorization": "Bearer nope"})

        assert resp.status_code == 401
        assert adapter.calls == []

    def test_secret_without_bearer_prefix(self, make_client, adapter):
        with make_client(adapter, cron_secret="s3cret") as client:
            resp = client.get("/api/discord/gateway", headers={"Authorization": "s3cret"})

        assert resp.status_code == 401


class TestAdapter:
    def test_unconfigured_discord(self, make_client):
        with make_client(cron_secret="s3cret") as client:
            resp = client.get("/api/discord/gateway", headers=AUTH)

        assert resp.status_code == 404
        assert "Discord adapter not configured" in resp.text


class TestGatewayRun:
    def test_default_duration(self, make_client, adapter):
        with make_client(adapter, cron_secret="s3cret") as client:
            resp = client.get("/api/discord/gateway", headers=AUTH)

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["durationMs"] == 600_000
        assert data["listenerId"].startswith("discord-gateway-")
        assert adapter.calls[0]["listener_id"] == data["listenerId"]

    def test_requested_duration(self, make_client, adapter):
        with make_client(adapter, cron_secret="s3cret") as client:
            resp = client.get("/api/discord/gateway?duration=100000", headers=AUTH)

        assert resp.json()["durationMs"] == 100_000
        assert adapter.calls[0]["duration_ms"] == 100_000

    def test_duration_clamped_to_max(self, make_client, adapter):
        with make_client(adapter, cron_secret="s3cret") as client:
            resp = client.get("/api/discord/gateway?duration=999999999", headers=AUTH)

        assert resp.json()["durationMs"] == 600_000

    def test_no_deployment_url_disables_forwarding(self, make_client, adapter):
        with make_client(adapter, cron_secret="s3cret") as client:
            resp = client.get("/api/discord/gateway", headers=AUTH)

        assert resp.status_code == 200
        assert adapter.calls[0]["webhook_url"] is None
        assert resp.json()["webhookConfigured"] is False

    def test_webhook_url_with_bypass(self, make_client, adapter):
        settings = {
            "cron_secret": "s3cret",
            "public_base_url": "bot.example.com",
            "deployment_bypass_secret": "bypass",
        }
        with make_client(adapter, **settings) as client:
            client.get("/api/discord/gateway", headers=AUTH)

        assert adapter.calls[0]["webhook_url"] == (
            "https://bot.example.com/api/webhooks/discord?x-vercel-protection-bypass=bypass"
        )

    def test_gateway_error(self, make_client):
        adapter = FakeDiscordAdapter(fail=RuntimeError("gateway exploded"))
        with make_client(adapter, cron_secret="s3cret") as client:
            resp = client.get("/api/discord/gateway", headers=AUTH)

        assert resp.status_code == 500
        assert resp.json() == {
            "error": "Failed to run discord-gateway listener",
            "message": "gateway exploded",
        }

    def test_signal_passed_to_adapter(self, make_client, adapter):
        with make_client(adapter, cron_secret="s3cret") as client:
            client.get("/api/discord/gateway", headers=AUTH)

        assert adapter.calls[0]["cancellation"].cancelled is False


class TestHealth:
    def test_health(self, make_client, adapter):
        with make_client(adapter) as client:
            resp = client.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["platforms"] == ["discord"]
        assert data["redis_configured"] is False
