"""
Browser Sessions.

Session factory that gives each workflow execution its own headless
Chromium browser and page, driven through Playwright.
"""

from dataclasses import dataclass
import logging

from playwright.async_api import Browser, Page, Playwright, async_playwright

from app.config import settings


logger = logging.getLogger(__name__)


@dataclass
class BrowserSession:
    """A running browser and the page the tools act on."""
    playwright: Playwright
    browser: Browser
    page: Page


class PlaywrightBrowserFactory:
    """Creates and destroys BrowserSessions."""

    def __init__(self, headless: bool = True, slow_mo: int = 50):
        self.headless = headless
        self.slow_mo = slow_mo

    async def create(self) -> BrowserSession:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                headless=self.headless,
                slow_mo=self.slow_mo,
            )
            page = await browser.new_page()
        except Exception:
            await playwright.stop()
            raise
        logger.info("Browser session started")
        return BrowserSession(playwright=playwright, browser=browser, page=page)

    async def destroy(self, session: BrowserSession) -> None:
        try:
            await session.browser.close()
        finally:
            await session.playwright.stop()


def create_browser_factory() -> PlaywrightBrowserFactory:
    return PlaywrightBrowserFactory(
        headless=settings.BROWSER_HEADLESS,
        slow_mo=settings.BROWSER_SLOW_MO,
    )
