"""Entry point for the chatrelay web service.

Usage:
    python -m chatrelay.web
"""

import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from chatrelay.config.settings import get_settings  # noqa: E402


def main():
    settings = get_settings()
    reload = os.getenv("WEB_RELOAD", "").lower() in ("1", "true", "yes")
    uvicorn.run(
        "chatrelay.web.app:create_app",
        factory=True,
        host=settings.web_host,
        port=settings.web_port,
        reload=reload,
        log_config=None,  # keep our console formatter
    )


if __name__ == "__main__":
    main()
