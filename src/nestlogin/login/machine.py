"""Drive the Google sign-in form and watch for the approval response.

:class:`LoginStateMachine` is the active half of a refresh-token login. It
fills the form one step at a time (username, password, optional second
factor, consent) through a single primitive, :meth:`~LoginStateMachine.input_step`,
which waits for the field, types a value, submits it and retries while
Google marks the field ``aria-invalid``.

:class:`ApprovalObserver` is the passive half. It watches every response on
the same page and either picks up the authorization code from the approval
page or notices that Google bounced the flow to ``www.google.*``. Whichever
half reaches a terminal state first requests the session stop; the state
machine checks the stop token before and after every wait, so it never
touches a page that is being closed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from nestlogin.browser.session import SessionStop
from nestlogin.exceptions import (
    EmptyInputError,
    NestLoginError,
    ProviderRejectedError,
    RateLimitedError,
    RetriesExhaustedError,
    SelectorNotFoundError,
    TokenExchangeError,
)
from nestlogin.login.prompts import InputSource, Reporter
from nestlogin.models import LoginSettings, LoginState, MfaKind
from nestlogin.oauth import INVALID_REQUEST_URL, TokenExchanger, parse_authorization_code

logger = logging.getLogger(__name__)

USERNAME_SELECTOR = "#identifierId"
PASSWORD_SELECTOR = 'input[type="password"]'
TOTP_SELECTOR = 'input[name="totpPin"],input[name="idvPin"]'
PUSH_SELECTOR = (
    'figure[data-illustration="authzenGmailApp"],'
    'figure[data-illustration="authzenHiddenPin"]'
)
PUSH_NUMBER_SELECTOR = "div[data-form-action-uri] samp"
RATE_LIMIT_SELECTOR = "#assistiveActionOutOfQuota"
ALLOW_SELECTOR = 'div[data-primary-action-label="Allow"] button'

RATE_LIMIT_MESSAGE = "Unavailable because of too many failed attempts. Try again in a few hours."
PUSH_MESSAGE = "Open the Gmail app and tap Yes on the prompt to sign in."
PUSH_NUMBER_MESSAGE = (
    "Open the Gmail app, tap Yes on the prompt to sign in, and select '{number}'."
)
PROVIDER_REJECTED_MESSAGE = "Could not generate refresh token"

APPROVAL_MARKER = "approval?authuser=0"
PROVIDER_MARKER = "www.google."


def invalid_selector(selector: str) -> str:
    """Return *selector* restricted to elements flagged ``aria-invalid="true"``."""
    return ",".join(f'{part.strip()}[aria-invalid="true"]' for part in selector.split(","))


class LoginStateMachine:
    """Fill the sign-in form step by step.

    Args:
        page: The Playwright page (only ``wait_for_selector``, ``fill``,
            ``press``, ``click`` and ``text_content`` are used).
        stop: The session's cancellation token.
        settings: Timeouts and the retry cap.
        source: Where values come from when none was supplied.
        reporter: Where diagnostics go.
    """

    def __init__(
        self,
        page: Any,
        stop: SessionStop,
        settings: LoginSettings,
        source: InputSource,
        reporter: Reporter,
    ) -> None:
        self._page = page
        self._stop = stop
        self._settings = settings
        self._source = source
        self._reporter = reporter
        self.state = LoginState.INIT
        self.mfa: Optional[MfaKind] = None
        self.submissions: dict[str, int] = {}

    async def _wait_for(self, selector: str, timeout: float) -> bool:
        """Wait up to *timeout* seconds for *selector*; False on timeout.

        Raises:
            SessionStoppedError: If the session was stopped before or
                during the wait.
        """
        self._stop.check()
        try:
            await self._page.wait_for_selector(selector, timeout=timeout * 1000)
        except PlaywrightTimeoutError:
            self._stop.check()
            return False
        except PlaywrightError:
            # The page was most likely closed underneath us.
            self._stop.check()
            raise
        self._stop.check()
        return True

    async def input_step(
        self,
        selector: str,
        alias: str,
        message: str,
        value: Optional[str] = None,
    ) -> int:
        """Fill one field, retrying while Google rejects the value.

        A supplied *value* is used for the first submission only; after a
        rejection the next value is sourced from the UI or the terminal.

        Args:
            selector: CSS selector of the input field.
            alias: Step name used in messages and for the UI getter.
            message: Terminal prompt text.
            value: Programmatically supplied value, if any.

        Returns:
            The number of submissions made.

        Raises:
            SelectorNotFoundError: The field never appeared.
            EmptyInputError: An empty value was sourced.
            RetriesExhaustedError: ``max_attempts`` submissions were rejected.
            SessionStoppedError: The session was stopped meanwhile.
        """
        if not await self._wait_for(selector, self._settings.element_timeout):
            raise SelectorNotFoundError(f"Unable to find input field for {alias}.")

        attempts = 0
        while True:
            if not value:
                value = await self._source.obtain(alias, message, hidden=alias != "username")
                self._stop.check()
                if not value:
                    raise EmptyInputError(f"No {alias} entered.")

            attempts += 1
            self.submissions[alias] = attempts
            await self._page.fill(selector, value)
            await self._page.press(selector, "Enter")

            rejected = await self._wait_for(
                invalid_selector(selector), self._settings.rejection_timeout
            )
            if not rejected:
                logger.debug("%s accepted after %d submission(s)", alias, attempts)
                return attempts

            value = None
            self._reporter.error(f"Incorrect {alias}. Please try again.")
            max_attempts = self._settings.max_attempts
            if max_attempts and attempts >= max_attempts:
                raise RetriesExhaustedError(alias, attempts)
            self._stop.check()
            await self._page.fill(selector, "")

    async def detect_mfa(self) -> MfaKind:
        """Probe, in order, for a code field, a phone prompt and the lockout notice."""
        if await self._wait_for(TOTP_SELECTOR, self._settings.element_timeout):
            return MfaKind.TOTP
        if await self._wait_for(PUSH_SELECTOR, self._settings.mfa_probe_timeout):
            return MfaKind.PUSH
        if await self._wait_for(RATE_LIMIT_SELECTOR, self._settings.mfa_probe_timeout):
            return MfaKind.RATE_LIMITED
        return MfaKind.NONE

    async def _announce_push(self) -> None:
        number = None
        if await self._wait_for(PUSH_NUMBER_SELECTOR, self._settings.mfa_probe_timeout):
            number = await self._page.text_content(PUSH_NUMBER_SELECTOR)
        if number and number.strip():
            self._reporter.notice(PUSH_NUMBER_MESSAGE.format(number=number.strip()))
        else:
            self._reporter.notice(PUSH_MESSAGE)

    async def consent(self) -> None:
        """Click "Allow" on the consent screen."""
        if not await self._wait_for(ALLOW_SELECTOR, self._settings.consent_timeout):
            raise SelectorNotFoundError("Unable to find login button.")
        await self._page.click(ALLOW_SELECTOR)

    async def run(
        self, username: Optional[str] = None, password: Optional[str] = None
    ) -> MfaKind:
        """Drive the whole form: username, password, second factor, consent.

        Returns:
            The second-factor branch that was taken.

        Raises:
            NestLoginError: Any step failure; :attr:`state` is then
                ``FAILED``.
        """
        try:
            self.state = LoginState.AWAITING_USERNAME
            await self.input_step(USERNAME_SELECTOR, "username", "Email or phone: ", username)
            self._stop.check()
            await asyncio.sleep(self._settings.step_pause)

            self.state = LoginState.AWAITING_PASSWORD
            await self.input_step(PASSWORD_SELECTOR, "password", "Password: ", password)
            self._reporter.info("Finishing up...")

            self.state = LoginState.AWAITING_MFA
            self.mfa = await self.detect_mfa()
            if self.mfa is MfaKind.TOTP:
                self._reporter.info("2-step Verification Required")
                await self.input_step(
                    TOTP_SELECTOR,
                    "totp",
                    "Please enter the verification code from the Google Authenticator app or SMS: ",
                )
            elif self.mfa is MfaKind.PUSH:
                await self._announce_push()
            elif self.mfa is MfaKind.RATE_LIMITED:
                raise RateLimitedError(RATE_LIMIT_MESSAGE)

            self.state = LoginState.AWAITING_CONSENT
            await self.consent()
        except NestLoginError:
            self.state = LoginState.FAILED
            raise

        self.state = LoginState.SUCCEEDED
        return self.mfa

    def finish(self, succeeded: bool) -> None:
        """Record an outcome decided outside the form (by the observer)."""
        self.state = LoginState.SUCCEEDED if succeeded else LoginState.FAILED


class ApprovalObserver:
    """Turn the approval response into a refresh token, or detect rejection.

    Args:
        stop: The session's cancellation token.
        exchanger: Exchanges the parsed code for a refresh token.
        code_verifier: The PKCE verifier of this session.
        reporter: Receives the refresh token or the error message.
    """

    def __init__(
        self,
        stop: SessionStop,
        exchanger: TokenExchanger,
        code_verifier: str,
        reporter: Reporter,
    ) -> None:
        self._stop = stop
        self._exchanger = exchanger
        self._code_verifier = code_verifier
        self._reporter = reporter
        self._exchanging = False
        self.refresh_token: Optional[str] = None

    def attach(self, page: Any) -> None:
        page.on("response", self._on_response)

    async def _on_response(self, response: Any) -> None:
        await self.handle(response.url, response.request.url, response.text)

    async def handle(
        self,
        url: str,
        request_url: str,
        read_body: Callable[[], Awaitable[str]],
    ) -> None:
        """Inspect one response.

        Args:
            url: The response URL.
            request_url: URL of the request that produced it.
            read_body: Coroutine function returning the response body.
        """
        if self._stop.is_set or self._exchanging:
            return

        if APPROVAL_MARKER in url:
            self._exchanging = True
            await self._complete(read_body)
            return

        if PROVIDER_MARKER in request_url:
            error = ProviderRejectedError(PROVIDER_REJECTED_MESSAGE)
            self._reporter.error(str(error))
            self._stop.request(str(error), error=error)

    async def _complete(self, read_body: Callable[[], Awaitable[str]]) -> None:
        try:
            try:
                body = await read_body()
            except PlaywrightError as exc:
                raise TokenExchangeError(INVALID_REQUEST_URL) from exc
            code = parse_authorization_code(body)
            token = await self._exchanger.exchange(code, self._code_verifier)
        except (TokenExchangeError, RateLimitedError) as exc:
            self._reporter.error(str(exc))
            self._stop.request(str(exc), error=exc)
            return

        self.refresh_token = token
        self._reporter.refresh_token(token)
        self._stop.request("refresh token obtained", succeeded=True)
