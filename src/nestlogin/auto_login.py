"""Run a complete login session: browser, observers, form driver, teardown.

:class:`AutoLogin` wires the pieces of one session together:

* a :class:`~nestlogin.browser.session.BrowserSession` that owns the page;
* a :class:`~nestlogin.browser.session.SessionStop` token shared by every
  flow on that page;
* for the refresh-token flow, an
  :class:`~nestlogin.login.machine.ApprovalObserver` plus, when headless, a
  :class:`~nestlogin.login.machine.LoginStateMachine` that fills the form;
* for the descriptor flow, an
  :class:`~nestlogin.interception.InterceptionEngine`.

The form driver runs as a task next to the passive observers. The
supervisor waits until the stop token is set (by the observer, by a driver
failure, by the window closing, or by the optional session timeout),
cancels the driver if it is still running, and closes the browser exactly
once. Errors never escape :meth:`AutoLogin.login` or
:meth:`AutoLogin.capture_descriptor`; they are reported through the
:class:`~nestlogin.login.prompts.Reporter` and kept in :attr:`AutoLogin.error`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional

from playwright.async_api import Error as PlaywrightError

from nestlogin.browser.locator import LocatedExecutable, find_browser_executable
from nestlogin.browser.session import BrowserSession, SessionStop
from nestlogin.exceptions import (
    BrowserLaunchError,
    NestLoginError,
    SessionStoppedError,
)
from nestlogin.interception import InterceptionEngine
from nestlogin.login.machine import ApprovalObserver, LoginStateMachine
from nestlogin.login.prompts import InputSource, LoginUI, Reporter, TerminalPrompter
from nestlogin.models import LoginSettings, OAuthDescriptor
from nestlogin.oauth import TokenExchanger, new_pkce_pair

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "An error occurred while trying to generate a token."
WINDOW_CLOSED_MESSAGE = "The browser was closed before sign-in completed."


class AutoLogin:
    """Orchestrate one browser session for either flow.

    Args:
        settings: Effective settings (after config file, env and CLI flags).
        ui: Optional host UI; otherwise the terminal is used.
        prompter: Terminal prompter override.
        session: Browser session override.
        exchanger: Token exchanger override.
        locator: Executable lookup override.
    """

    def __init__(
        self,
        settings: LoginSettings,
        ui: Optional[LoginUI] = None,
        prompter: Optional[TerminalPrompter] = None,
        session: Optional[BrowserSession] = None,
        exchanger: Optional[TokenExchanger] = None,
        locator: Callable[[Optional[str]], LocatedExecutable] = find_browser_executable,
    ) -> None:
        self._settings = settings
        self._ui = ui
        self._prompter = prompter
        self._session = session or BrowserSession()
        self._exchanger = exchanger or TokenExchanger(settings)
        self._locator = locator
        self._reporter = Reporter(ui)
        self.machine: Optional[LoginStateMachine] = None
        self.stop_token: Optional[SessionStop] = None
        self.error: Optional[NestLoginError] = None

    @property
    def running(self) -> bool:
        return self._session.running

    async def stop(self) -> None:
        """Close the browser. Idempotent and never raises."""
        await self._session.stop()

    # ------------------------------------------------------------------
    # Refresh-token flow
    # ------------------------------------------------------------------

    async def login(
        self, username: Optional[str] = None, password: Optional[str] = None
    ) -> Optional[str]:
        """Sign in and exchange the authorization code for a refresh token.

        With ``settings.headless`` the form is filled automatically using
        *username*/*password* (or prompts); otherwise the window is shown
        and the human signs in while the approval response is awaited.

        Returns:
            The refresh token, or ``None`` on failure (see :attr:`error`).
        """
        stop = SessionStop()
        self.stop_token = stop
        self.error = None
        self.machine = None
        pkce = new_pkce_pair(self._settings)

        page = await self._start(stop)
        if page is None:
            return None

        observer = ApprovalObserver(stop, self._exchanger, pkce.code_verifier, self._reporter)
        try:
            observer.attach(page)
            self._reporter.startup()
            await page.goto(pkce.url, wait_until="networkidle")

            driver: Optional[Coroutine[Any, Any, Any]] = None
            if self._settings.headless:
                self.machine = LoginStateMachine(
                    page,
                    stop,
                    self._settings,
                    InputSource(self._ui, self._prompter),
                    self._reporter,
                )
                driver = self.machine.run(username, password)
            else:
                self._reporter.info("Please sign into your google account.")
            await self._supervise(stop, driver)
        except PlaywrightError as exc:
            self._fail(stop, exc)
        finally:
            await self.stop()

        if self.machine is not None:
            self.machine.finish(stop.succeeded)
        if not stop.succeeded:
            self.error = self.error or stop.error
        return observer.refresh_token

    # ------------------------------------------------------------------
    # Descriptor flow
    # ------------------------------------------------------------------

    async def capture_descriptor(self) -> Optional[OAuthDescriptor]:
        """Observe a manual sign-in on home.nest.com and build the descriptor.

        Returns:
            The descriptor, or ``None`` on failure (see :attr:`error`).
        """
        stop = SessionStop()
        self.stop_token = stop
        self.error = None

        page = await self._start(stop)
        if page is None:
            return None

        engine = InterceptionEngine(
            self._settings,
            stop,
            on_descriptor=self._reporter.descriptor,
            on_failure=lambda exc: self._reporter.error(str(exc)),
        )
        try:
            engine.attach(page)
            self._reporter.startup()
            await page.goto(self._settings.home_url, wait_until="networkidle")
            self._reporter.info("Please sign into your google account.")
            await self._supervise(stop)
        except PlaywrightError as exc:
            self._fail(stop, exc)
        finally:
            await self.stop()

        if engine.descriptor is None:
            self.error = self.error or engine.failure or stop.error
        return engine.descriptor

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------

    async def _start(self, stop: SessionStop) -> Any:
        """Locate and launch the browser; report and record failures."""
        try:
            located = self._locator(self._settings.executable_path)
            logger.debug("Using browser: %s", located.describe())
            page = await self._session.start(
                located.path,
                headless=self._settings.headless,
                extra_args=self._settings.extra_args,
            )
        except BrowserLaunchError as exc:
            self._reporter.error(str(exc))
            self.error = exc
            stop.request(str(exc), error=exc)
            await self.stop()
            return None

        page.on("close", lambda _page: self._on_page_closed(stop))
        return page

    def _on_page_closed(self, stop: SessionStop) -> None:
        error = SessionStoppedError(WINDOW_CLOSED_MESSAGE)
        if stop.request(str(error), error=error):
            self._reporter.error(str(error))

    def _fail(self, stop: SessionStop, exc: Exception) -> None:
        if stop.is_set:
            return
        logger.debug("Unexpected browser error", exc_info=exc)
        error = NestLoginError(f"{GENERIC_FAILURE_MESSAGE} ({exc})")
        self._reporter.error(str(error))
        self.error = error
        stop.request(str(error), error=error)

    async def _supervise(
        self,
        stop: SessionStop,
        driver: Optional[Coroutine[Any, Any, Any]] = None,
    ) -> None:
        """Wait for the stop token while the optional form driver runs.

        The driver finishing successfully does not end the session: the
        approval response still has to arrive. A driver failure requests the
        stop. ``settings.session_timeout`` bounds the whole wait.
        """
        loop = asyncio.get_running_loop()
        timeout = self._settings.session_timeout
        deadline = None if timeout is None else loop.time() + timeout

        task: Optional[asyncio.Task[Any]] = (
            asyncio.ensure_future(driver) if driver is not None else None
        )
        waiter = asyncio.ensure_future(stop.wait())
        pending: set[asyncio.Future[Any]] = {waiter}
        if task is not None:
            pending.add(task)

        try:
            while not stop.is_set:
                remaining = None if deadline is None else max(0.0, deadline - loop.time())
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                if not done:
                    error = NestLoginError(
                        f"Sign-in did not complete within {timeout:g} seconds."
                    )
                    self._reporter.error(str(error))
                    stop.request(str(error), error=error)
                    break
                if task is not None and task in done:
                    self._driver_finished(task, stop)
                    task = None
        finally:
            leftovers = [f for f in (task, waiter) if f is not None]
            for future in leftovers:
                if not future.done():
                    future.cancel()
            await asyncio.gather(*leftovers, return_exceptions=True)

    def _driver_finished(self, task: "asyncio.Task[Any]", stop: SessionStop) -> None:
        exc = task.exception()
        if exc is None or stop.is_set or isinstance(exc, SessionStoppedError):
            return
        if isinstance(exc, NestLoginError):
            error = exc
        else:
            logger.debug("Form driver crashed", exc_info=exc)
            error = NestLoginError(f"{GENERIC_FAILURE_MESSAGE} ({exc})")
        self._reporter.error(str(error))
        stop.request(str(error), error=error)
