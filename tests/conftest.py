"""
Pytest configuration and fixtures.
"""

import pytest
import pytest_asyncio


@pytest.fixture
def settings():
    """Provide test settings."""
    from web_replay_agent.config import Settings, BrowserSettings, CaptureConfig, ReplayConfig

    return Settings(
        browser=BrowserSettings(headless=True),
        capture=CaptureConfig(capture_frequency=50, include_screenshots=False),
        replay=ReplayConfig(retry_attempts=2, retry_delay_ms=0, screenshot_on_error=False),
    )


@pytest.fixture
def login_config():
    """Credentials for a fake login page."""
    from web_replay_agent.config import LoginConfig

    return LoginConfig(
        username="operator@example.com",
        password="hunter2",
        url="https://app.example.com/login",
    )


@pytest_asyncio.fixture
async def browser():
    """Provide a browser instance for integration tests."""
    from web_replay_agent.browsers import PlaywrightBrowser
    from web_replay_agent.exceptions import BrowserLaunchError

    browser = PlaywrightBrowser()
    try:
        await browser.launch()
    except BrowserLaunchError as e:
        pytest.skip(f"Playwright browser unavailable: {e}")

    yield browser

    await browser.close()


@pytest_asyncio.fixture
async def page(browser):
    """Provide a page instance for integration tests."""
    page = await browser.new_page()
    yield page
    await page.close()
