"""
Application settings from environment variables.

Uses pydantic-settings for type-safe configuration.
"""

from typing import Optional
from urllib.parse import urlencode

from pydantic_settings import BaseSettings, SettingsConfigDict

# Ten minutes; the scheduler triggers the gateway endpoint more often than this
DEFAULT_GATEWAY_DURATION_MS = 600_000

# Extra time the coordination subscription stays open past the run duration
DEFAULT_GRACE_PERIOD_MS = 5_000

DISCORD_WEBHOOK_PATH = "/api/webhooks/discord"


class Settings(BaseSettings):
    """Application settings from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra env vars
    )

    # Trigger authentication (shared with the scheduler)
    cron_secret: Optional[str] = None

    # Cross-instance coordination
    redis_url: Optional[str] = None

    # Discord
    discord_bot_token: str = ""
    discord_public_key: str = ""
    discord_application_id: str = ""

    # Gateway listener timing
    gateway_default_duration_ms: int = DEFAULT_GATEWAY_DURATION_MS
    gateway_max_duration_ms: int = DEFAULT_GATEWAY_DURATION_MS
    listener_grace_period_ms: int = DEFAULT_GRACE_PERIOD_MS
    gateway_forward_timeout: float = 10.0  # seconds per forwarded event

    # Deployment URL used to re-deliver gateway events as webhooks
    deployment_production_host: Optional[str] = None
    deployment_host: Optional[str] = None
    public_base_url: Optional[str] = None
    deployment_bypass_secret: Optional[str] = None
    deployment_bypass_param: str = "x-vercel-protection-bypass"

    # Server
    web_host: str = "0.0.0.0"
    web_port: int = 8000

    @property
    def discord_configured(self) -> bool:
        """The bot token alone is enough to open a gateway connection."""
        return bool(self.discord_bot_token)

    @property
    def base_url(self) -> Optional[str]:
        """First configured deployment host, in priority order."""
        for candidate in (self.deployment_production_host, self.deployment_host, self.public_base_url):
            if candidate:
                return candidate
        return None

    def webhook_url(self, path: str = DISCORD_WEBHOOK_PATH) -> Optional[str]:
        """Build the forwarding URL for gateway events, or None if no host is known.

        Hosts without a scheme are treated as https. When a bypass secret is
        configured it is appended so protected preview deployments accept
        the forwarded calls.
        """
        base = self.base_url
        if not base:
            return None

        if not base.startswith(("http://", "https://")):
            base = f"https://{base}"

        url = f"{base.rstrip('/')}{path}"
        if self.deployment_bypass_secret:
            url += "?" + urlencode({self.deployment_bypass_param: self.deployment_bypass_secret})
        return url


def get_settings() -> Settings:
    """Load settings from the current environment."""
    return Settings()
