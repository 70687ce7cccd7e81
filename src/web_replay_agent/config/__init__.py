"""
Configuration module - Centralized settings management.

Usage:
    from web_replay_agent.config import get_settings, load_config

    # Get global settings (loaded once)
    settings = get_settings()

    # Or load fresh settings with overrides
    settings = load_config(browser={"headless": False})

Environment Variables:
    WEB_REPLAY_AGENT__BROWSER__HEADLESS=false
    WEB_REPLAY_AGENT__CAPTURE__CAPTURE_FREQUENCY=1000
    WEB_REPLAY_AGENT__REPLAY__RETRY_ATTEMPTS=5
"""

from web_replay_agent.config.settings import (
    Settings,
    BrowserSettings,
    CaptureConfig,
    ReplayConfig,
    LoginConfig,
    DomainScopeConfig,
    LoggingSettings,
)
from web_replay_agent.config.loader import ConfigLoader, load_config

# Global settings singleton
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    Call reset_settings() to reload.
    """
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def reset_settings() -> None:
    """Reset the global settings (forces reload on next get_settings())."""
    global _settings
    _settings = None


__all__ = [
    "Settings",
    "BrowserSettings",
    "CaptureConfig",
    "ReplayConfig",
    "LoginConfig",
    "DomainScopeConfig",
    "LoggingSettings",
    "ConfigLoader",
    "load_config",
    "get_settings",
    "reset_settings",
]
