"""Where sign-in values come from and where diagnostics go.

A login runs either in a terminal or under a host UI (for example a plugin
settings page) that collects credentials itself. The host implements
:class:`LoginUI`; when none is given, values are read with
:class:`TerminalPrompter` and messages go to :mod:`nestlogin.output`.

:class:`InputSource` and :class:`Reporter` hide that choice from the state
machine and the observers.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional, Protocol, runtime_checkable

import typer

from nestlogin import output
from nestlogin.models import OAuthDescriptor

logger = logging.getLogger(__name__)


@runtime_checkable
class LoginUI(Protocol):
    """Interface of an interactive host that drives the login.

    The ``get_*`` reads suspend until the human has answered. The other
    methods are fire-and-forget notifications.
    """

    async def get_username(self) -> str: ...

    async def get_password(self) -> str: ...

    async def get_totp(self) -> str: ...

    def show_error(self, message: str) -> None: ...

    def show_notice(self, message: str) -> None: ...

    def send_startup_success(self) -> None: ...

    def set_credentials(self, refresh_token: str) -> None: ...


class TerminalPrompter:
    """Read a value from the terminal without blocking the event loop.

    Passwords and verification codes are read without echo. The read runs
    on a daemon thread: when the session stops while a prompt is pending,
    the awaiting task is cancelled and the thread is abandoned, so neither
    ``asyncio.run`` nor interpreter exit waits for the user to press Enter.
    """

    async def ask(self, message: str, hidden: bool = False) -> str:
        loop = asyncio.get_running_loop()
        answer: asyncio.Future[str] = loop.create_future()

        def read() -> None:
            try:
                value = self._prompt(message, hidden)
            except Exception as exc:
                self._deliver(loop, answer, error=exc)
            else:
                self._deliver(loop, answer, value=value)

        threading.Thread(target=read, name="nestlogin-prompt", daemon=True).start()
        return await answer

    @staticmethod
    def _deliver(
        loop: asyncio.AbstractEventLoop,
        answer: "asyncio.Future[str]",
        value: str = "",
        error: Optional[Exception] = None,
    ) -> None:
        def settle() -> None:
            if answer.done():
                return
            if error is not None:
                answer.set_exception(error)
            else:
                answer.set_result(value)

        try:
            loop.call_soon_threadsafe(settle)
        except RuntimeError:
            # Loop already closed: the session ended without this answer.
            logger.debug("Discarding terminal answer received after shutdown")

    @staticmethod
    def _prompt(message: str, hidden: bool) -> str:
        try:
            value = typer.prompt(
                message.rstrip().rstrip(":"),
                default="",
                show_default=False,
                hide_input=hidden,
            )
        except typer.Abort:
            return ""
        return str(value).strip()


class InputSource:
    """Obtain a value for an input step from the UI or the terminal.

    Args:
        ui: Host UI; takes precedence over the terminal.
        prompter: Terminal prompter used when there is no UI.
    """

    def __init__(
        self,
        ui: Optional[LoginUI] = None,
        prompter: Optional[TerminalPrompter] = None,
    ) -> None:
        self._ui = ui
        self._prompter = prompter or TerminalPrompter()

    async def obtain(self, alias: str, message: str, hidden: bool = False) -> str:
        """Return the user's answer for *alias* (``username``, ``password`` or ``totp``).

        Raises:
            ValueError: If *alias* is not one of the known prompt keys.
        """
        if self._ui is not None:
            if alias == "username":
                return await self._ui.get_username() or ""
            if alias == "password":
                return await self._ui.get_password() or ""
            if alias == "totp":
                return await self._ui.get_totp() or ""
            raise ValueError(f"Unhandled prompt key: {alias}")
        return await self._prompter.ask(message, hidden=hidden)


class Reporter:
    """Route user-facing messages and deliverables to the UI or the console."""

    def __init__(self, ui: Optional[LoginUI] = None) -> None:
        self._ui = ui

    @property
    def has_ui(self) -> bool:
        return self._ui is not None

    def error(self, message: str) -> None:
        logger.debug("error: %s", message)
        if self._ui is not None:
            self._ui.show_error(message)
        else:
            output.error(message)

    def notice(self, message: str) -> None:
        if self._ui is not None:
            self._ui.show_notice(message)
        else:
            output.notice(message)

    def info(self, message: str) -> None:
        """Console-only progress; a host UI shows its own."""
        if self._ui is None:
            output.info(message)

    def startup(self) -> None:
        if self._ui is not None:
            self._ui.send_startup_success()
        else:
            output.info("Opening chromium browser...")

    def refresh_token(self, token: str) -> None:
        if self._ui is not None:
            self._ui.set_credentials(token)
        else:
            output.success("Refresh token obtained.")
            output.format_result(token)

    def descriptor(self, descriptor: OAuthDescriptor) -> None:
        output.info("Add the following to your config.json as \"googleAuth\":")
        output.format_result(descriptor.model_dump(by_alias=True))
