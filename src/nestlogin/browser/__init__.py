"""Browser ownership: executable lookup and the single-page Chromium session."""

from nestlogin.browser.locator import LocatedExecutable, find_browser_executable
from nestlogin.browser.session import BrowserSession, SessionStop

__all__ = [
    "BrowserSession",
    "LocatedExecutable",
    "SessionStop",
    "find_browser_executable",
]
