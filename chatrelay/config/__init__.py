"""Configuration modules for chatrelay.

Submodules:
- config.settings: Environment-driven settings (pydantic-settings)
- config.logging: Console logging setup

Import directly from submodules as needed:
    from chatrelay.config.settings import get_settings
    from chatrelay.config.logging import init_logging, get_logger
"""
