"""
Playwright Browser - Launch or attach to a browser for capture and replay.

Capture and replay managers work directly on Playwright ``Page`` objects;
this module only owns the browser lifecycle.
"""

import logging
from typing import TYPE_CHECKING, Any, Optional

from web_replay_agent.config.settings import BrowserSettings
from web_replay_agent.exceptions.browser import BrowserConnectionError, BrowserLaunchError

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = logging.getLogger(__name__)


class PlaywrightBrowser:
    """
    Playwright browser lifecycle.

    Example:
        >>> browser = PlaywrightBrowser(BrowserSettings(headless=False))
        >>> await browser.launch()
        >>> page = await browser.new_page()
        >>> await page.goto("https://example.com")
        >>> await browser.close()
    """

    def __init__(self, settings: Optional[BrowserSettings] = None):
        self.settings = settings or BrowserSettings()
        self._playwright: Optional["Playwright"] = None
        self._browser: Optional["Browser"] = None
        self._context: Optional["BrowserContext"] = None
        self._attached = False

    @property
    def is_connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def launch(self, **options: Any) -> None:
        """
        Launch a new browser.

        Args:
            **options: Extra Playwright launch options
        """
        try:
            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()
            launchers = {
                "chromium": self._playwright.chromium,
                "firefox": self._playwright.firefox,
                "webkit": self._playwright.webkit,
            }
            launcher = launchers.get(self.settings.browser_type, self._playwright.chromium)

            if self.settings.channel:
                options.setdefault("channel", self.settings.channel)
            self._browser = await launcher.launch(
                headless=self.settings.headless,
                slow_mo=self.settings.slow_mo,
                **options,
            )
            logger.info(
                f"Launched {self.settings.browser_type} browser (headless={self.settings.headless})"
            )
        except Exception as e:
            await self._stop_driver()
            raise BrowserLaunchError(f"Failed to launch browser: {e}")

    async def connect(self, cdp_url: Optional[str] = None) -> None:
        """
        Attach to a running Chromium over the DevTools protocol.

        The remote browser is left running on :meth:`close`.
        """
        endpoint = cdp_url or self.settings.cdp_url
        if not endpoint:
            raise BrowserConnectionError("No DevTools endpoint configured")
        try:
            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.connect_over_cdp(endpoint)
            self._attached = True
            if self._browser.contexts:
                self._context = self._browser.contexts[0]
            logger.info(f"Attached to browser at {endpoint}")
        except Exception as e:
            await self._stop_driver()
            raise BrowserConnectionError(f"Failed to connect to {endpoint}: {e}", {"endpoint": endpoint})

    async def start(self) -> None:
        """Connect when a DevTools endpoint is configured, otherwise launch."""
        if self.settings.cdp_url:
            await self.connect()
        else:
            await self.launch()

    async def new_page(self, **context_options: Any) -> "Page":
        if not self._browser:
            raise BrowserConnectionError("Browser not launched. Call launch() first.")

        if not self._context:
            context_options.setdefault(
                "viewport",
                {"width": self.settings.viewport_width, "height": self.settings.viewport_height},
            )
            if self.settings.user_agent:
                context_options.setdefault("user_agent", self.settings.user_agent)
            self._context = await self._browser.new_context(**context_options)

        page = await self._context.new_page()
        page.set_default_timeout(self.settings.timeout_ms)
        return page

    async def close(self) -> None:
        """Close the browser (or detach from it) and stop the driver."""
        if self._context and not self._attached:
            try:
                await self._context.close()
            except Exception as e:
                logger.debug(f"Context already closed: {e}")
        self._context = None

        if self._browser:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug(f"Browser already closed: {e}")
            self._browser = None

        await self._stop_driver()
        logger.info("Browser closed")

    async def _stop_driver(self) -> None:
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> "PlaywrightBrowser":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
