"""
Settings - Pydantic models for type-safe configuration.

This module defines the process-wide settings and the per-call configuration
objects handed to the capture and replay managers. Per-call models accept both
snake_case field names and the camelCase keys used by collaborators
(``captureFrequency``, ``retryAttempts``, ...).

Example:
    >>> from web_replay_agent.config import load_config
    >>> settings = load_config()  # Loads from env, yaml, and defaults
    >>> settings.capture.capture_frequency
    1500
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


SelectorStrategyName = Literal["css", "xpath", "text", "hybrid"]


class _CamelModel(BaseModel):
    """Base for models exchanged with collaborators using camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class BrowserSettings(BaseModel):
    """
    Browser automation settings.

    Attributes:
        headless: Run browser in headless mode
        browser_type: Playwright browser engine to launch
        channel: Optional branded channel (chrome, msedge)
        timeout_ms: Default timeout for browser operations
        viewport_width: Browser viewport width in pixels
        viewport_height: Browser viewport height in pixels
        user_agent: Custom user agent string
        slow_mo: Slow down operations by this amount (ms) - useful for debugging
        cdp_url: Attach to an already running browser over the DevTools protocol
    """
    headless: bool = True
    browser_type: Literal["chromium", "firefox", "webkit"] = "chromium"
    channel: Optional[str] = None
    timeout_ms: int = Field(default=30000, ge=1000, le=300000)
    viewport_width: int = Field(default=1280, ge=320, le=3840)
    viewport_height: int = Field(default=720, ge=240, le=2160)
    user_agent: Optional[str] = None
    slow_mo: int = Field(default=0, ge=0, le=5000)
    cdp_url: Optional[str] = None


class LoginConfig(_CamelModel):
    """
    Credentials and target for an automated login.

    Attributes:
        username: Account identifier (email or username)
        password: Account secret
        url: Login page URL
        tenant: Optional tenant/organization hint
        options: Free-form options for collaborators
    """
    username: str = Field(min_length=1)
    password: SecretStr
    url: str = Field(min_length=1)
    tenant: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)


class DomainScopeConfig(_CamelModel):
    """
    Which hosts a capture session may record on.

    Attributes:
        base_domain: The target system's domain; it and its subdomains are in scope
        allowed_domains: Extra hosts or ``*.suffix`` wildcards that stay in scope
        sso_providers: Identity provider hosts tolerated during login redirects
        metadata: Free-form metadata echoed in scope results
    """
    base_domain: str = Field(min_length=1)
    allowed_domains: List[str] = Field(default_factory=list)
    sso_providers: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CaptureConfig(_CamelModel):
    """
    Capture session configuration.

    Attributes:
        include_screenshots: Attach opportunistic screenshots to actions
        capture_frequency: Poll interval for the in-page action buffer (ms)
        screenshot_interval: Take a screenshot every Nth recorded action
        max_screenshots: Upper bound of screenshots per session
        selector_strategy: Which selector families to generate
        timeout: Navigation timeout (ms)
        retry_attempts: Attempts recorded on each action for replay
        requires_login: Authenticate before capturing
        login_config: Credentials used when ``requires_login`` is set
        domain_scope: Restrict recording to the target system
        buffer_limit: Maximum buffered raw events per drain
    """
    include_screenshots: bool = True
    capture_frequency: int = Field(default=1500, ge=10, le=60000)
    screenshot_interval: int = Field(default=1, ge=1)
    max_screenshots: int = Field(default=50, ge=0)
    selector_strategy: SelectorStrategyName = "css"
    timeout: int = Field(default=30000, gt=0)
    retry_attempts: int = Field(default=3, ge=0, le=10)
    requires_login: bool = False
    login_config: Optional[LoginConfig] = None
    domain_scope: Optional[DomainScopeConfig] = None
    buffer_limit: int = Field(default=500, ge=1)


class ReplayConfig(_CamelModel):
    """
    Replay session configuration.

    Attributes:
        timeout: Per-action timeout (ms)
        retry_attempts: Element lookup attempts per action
        retry_delay_ms: Fixed delay between lookup attempts
        wait_for_navigation: Wait for network idle after every action
        wait_for_clickable: Wait until a target is clickable before clicking
        screenshot_on_error: Attach a screenshot to failed results
        debug_mode: Log every primitive executed
        requires_login: Authenticate before replaying
        login_config: Credentials used when ``requires_login`` is set
    """
    timeout: int = Field(default=30000, gt=0)
    retry_attempts: int = Field(default=3, ge=1, le=10)
    retry_delay_ms: int = Field(default=1000, ge=0)
    wait_for_navigation: bool = False
    wait_for_clickable: bool = False
    screenshot_on_error: bool = True
    debug_mode: bool = False
    requires_login: bool = False
    login_config: Optional[LoginConfig] = None


class LoggingSettings(BaseModel):
    """
    Logging configuration.

    Attributes:
        level: Log level
        file: Log file path (None for console only)
        json_format: Use JSON format for file logs
    """
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file: Optional[str] = None
    json_format: bool = False


class Settings(BaseSettings):
    """
    Root settings container - single source of truth for all configuration.

    Settings are loaded in this priority order (highest to lowest):
    1. Explicit values passed to constructor
    2. Environment variables (prefixed with WEB_REPLAY_AGENT__)
    3. Config file (YAML)
    4. Default values

    Example:
        >>> settings = Settings()  # Load from env vars
        >>> settings = Settings(browser=BrowserSettings(headless=False))  # Override
    """

    model_config = SettingsConfigDict(
        env_prefix="WEB_REPLAY_AGENT__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    replay: ReplayConfig = Field(default_factory=ReplayConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    debug: bool = False

    def merge_with(self, overrides: dict) -> "Settings":
        """
        Create a new Settings instance with overrides applied.

        Args:
            overrides: Dictionary of values to override

        Returns:
            New Settings instance with overrides applied
        """
        current = self.model_dump()

        def deep_merge(base: dict, updates: dict) -> dict:
            for key, value in updates.items():
                if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                    deep_merge(base[key], value)
                else:
                    base[key] = value
            return base

        merged = deep_merge(current, overrides)
        return Settings(**merged)
