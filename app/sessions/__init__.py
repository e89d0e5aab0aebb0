"""
Sessions package - Factories for per-execution external resources.
"""

from app.sessions.browser import BrowserSession, PlaywrightBrowserFactory, create_browser_factory

__all__ = ["BrowserSession", "PlaywrightBrowserFactory", "create_browser_factory"]
