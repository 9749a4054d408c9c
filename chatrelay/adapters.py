"""Platform adapter registry.

Adapters are only created when their credentials are present in the
environment; asking for an unconfigured platform returns None.
"""

from __future__ import annotations

from typing import Any

from chatrelay.config.logging import get_logger
from chatrelay.config.settings import Settings, get_settings
from chatrelay.discord.gateway import DiscordAdapter

logger = get_logger("adapters")


def build_adapters(settings: Settings) -> dict[str, Any]:
    """Create every adapter whose credentials are configured."""
    adapters: dict[str, Any] = {}

    # Discord: DISCORD_BOT_TOKEN (+ DISCORD_PUBLIC_KEY, DISCORD_APPLICATION_ID)
    if settings.discord_configured:
        adapters["discord"] = DiscordAdapter(
            bot_token=settings.discord_bot_token,
            public_key=settings.discord_public_key,
            application_id=settings.discord_application_id,
            forward_timeout=settings.gateway_forward_timeout,
        )

    return adapters


class AdapterRegistry:
    """Lazily built set of platform adapters."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings
        self._adapters: dict[str, Any] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Build adapters once; later calls are no-ops."""
        if self._initialized:
            return

        settings = self._settings or get_settings()
        self._adapters = build_adapters(settings)
        self._initialized = True
        logger.info(f"Adapters ready: {', '.join(sorted(self._adapters)) or 'none'}")

    def register(self, name: str, adapter: Any) -> None:
        """Add or replace an adapter (used by tests and custom setups)."""
        self._adapters[name] = adapter
        self._initialized = True

    def get_adapter(self, name: str) -> Any | None:
        return self._adapters.get(name)

    @property
    def platforms(self) -> list[str]:
        return sorted(self._adapters)
