"""Browser session ownership and the session stop token.

:class:`BrowserSession` owns exactly one Chromium process, one context and
one page for the lifetime of a login attempt. It is the only object that
closes the browser; everything else requests a stop through
:class:`SessionStop`, which the orchestrator in
:mod:`nestlogin.auto_login` turns into a single :meth:`BrowserSession.stop`
call.

Google refuses sign-in from browsers that advertise automation, so every
page gets an init script that removes ``navigator.webdriver`` before any
site script runs.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from nestlogin.exceptions import BrowserLaunchError, NestLoginError, SessionStoppedError

logger = logging.getLogger(__name__)

# Runs in every frame before page scripts; deleting from the prototype makes
# `'webdriver' in navigator` false as well.
HIDE_WEBDRIVER_SCRIPT = """
(() => {
  const proto = Object.getPrototypeOf(navigator);
  delete proto.webdriver;
  Object.setPrototypeOf(navigator, proto);
})();
"""

ROOT_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class SessionStop:
    """One-shot cancellation token shared by the observer and the form driver.

    The first :meth:`request` wins; later requests are ignored, so both
    flows may call it freely. The form driver calls :meth:`check` before
    every suspend point and stops touching the page once it raises.

    Attributes:
        reason: Why the session was stopped.
        succeeded: Whether the stop marks a successful outcome.
        error: The error that caused a failed stop, if any.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None
        self.succeeded = False
        self.error: Optional[NestLoginError] = None

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def request(
        self,
        reason: str,
        succeeded: bool = False,
        error: Optional[NestLoginError] = None,
    ) -> bool:
        """Request a stop. Returns False when a stop was already requested."""
        if self._event.is_set():
            logger.debug("Ignoring stop request (%s); already stopped: %s", reason, self.reason)
            return False
        self.reason = reason
        self.succeeded = succeeded
        self.error = error
        self._event.set()
        logger.debug("Session stop requested: %s", reason)
        return True

    def check(self) -> None:
        """Raise :class:`SessionStoppedError` if a stop was requested."""
        if self._event.is_set():
            raise SessionStoppedError(f"Session stopped: {self.reason}")

    async def wait(self) -> None:
        await self._event.wait()


def _running_as_root() -> bool:
    getuid = getattr(os, "getuid", None)
    return getuid is not None and getuid() == 0


class BrowserSession:
    """Launch and tear down a single Chromium instance with one page.

    Example::

        session = BrowserSession()
        page = await session.start(None, headless=True)
        try:
            await page.goto("https://home.nest.com")
        finally:
            await session.stop()
    """

    def __init__(self) -> None:
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._page: Optional[Page] = None
        self.running = False

    @property
    def page(self) -> Optional[Page]:
        return self._page

    async def start(
        self,
        executable_path: Optional[str],
        headless: bool = True,
        extra_args: Optional[list[str]] = None,
    ) -> Page:
        """Launch Chromium and return its only page.

        Args:
            executable_path: Browser binary, or ``None`` for Playwright's
                bundled Chromium.
            headless: Run without a visible window.
            extra_args: Additional Chromium command-line switches.

        Returns:
            The page with the webdriver patch installed.

        Raises:
            BrowserLaunchError: If Chromium cannot be started. Anything
                already started is torn down first.
        """
        args = list(extra_args or [])
        if _running_as_root():
            args.extend(a for a in ROOT_ARGS if a not in args)

        self.running = True
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                executable_path=executable_path,
                headless=headless,
                args=args,
            )
            context = await self._browser.new_context()
            await context.add_init_script(HIDE_WEBDRIVER_SCRIPT)
            page = await context.new_page()
            for other in list(context.pages):
                if other is not page:
                    await other.close()
        except PlaywrightError as exc:
            await self.stop()
            location = executable_path or "the bundled Chromium"
            raise BrowserLaunchError(
                f"Unable to open chromium browser at path: {location}. "
                "You may need to install chromium manually and try again."
            ) from exc

        logger.debug("Browser started (headless=%s, args=%s)", headless, args)
        self._page = page
        return page

    async def stop(self) -> None:
        """Close the browser and stop Playwright.

        Idempotent and never raises: safe from either flow, after a failed
        start, or when the browser already died.
        """
        self.running = False
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        self._page = None

        if browser is not None:
            try:
                await browser.close()
            except Exception as exc:  # browser may already be gone
                logger.debug("Ignoring error while closing browser: %s", exc)
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as exc:
                logger.debug("Ignoring error while stopping playwright: %s", exc)

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
