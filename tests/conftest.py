"""Pytest configuration and fixtures for chatrelay tests."""

import pytest
from starlette.requests import Request

from chatrelay.config.settings import Settings
from chatrelay.events import reset_event_emitter
from chatrelay.listener.channel import reset_in_process_broker
from chatrelay.listener.tasks import reset_background_supervisor

# Environment variables Settings reads; cleared so the host environment can't leak in
SETTINGS_ENV = [
    "CRON_SECRET",
    "REDIS_URL",
    "DISCORD_BOT_TOKEN",
    "DISCORD_PUBLIC_KEY",
    "DISCORD_APPLICATION_ID",
    "GATEWAY_DEFAULT_DURATION_MS",
    "GATEWAY_MAX_DURATION_MS",
    "LISTENER_GRACE_PERIOD_MS",
    "GATEWAY_FORWARD_TIMEOUT",
    "DEPLOYMENT_PRODUCTION_HOST",
    "DEPLOYMENT_HOST",
    "PUBLIC_BASE_URL",
    "DEPLOYMENT_BYPASS_SECRET",
    "DEPLOYMENT_BYPASS_PARAM",
    "WEB_HOST",
    "WEB_PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Run every test without settings from the host environment."""
    for key in SETTINGS_ENV:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset process-wide singletons between tests."""
    yield
    reset_event_emitter()
    reset_background_supervisor()
    reset_in_process_broker()


@pytest.fixture
def make_settings():
    """Build Settings without reading a .env file."""

    def _make(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make


@pytest.fixture
def make_request():
    """Build a bare GET request with an optional query string."""

    def _make(query: str = "", headers: dict[str, str] | None = None) -> Request:
        scope = {
            "type": "http",
            "method": "GET",
            "path": "/api/discord/gateway",
            "query_string": query.encode(),
            "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        }
        return Request(scope)

    return _make
