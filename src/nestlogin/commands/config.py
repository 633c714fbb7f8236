"""Config command -- capture the ``googleAuth`` descriptor.

Implements ``nestlogin config``. A browser window opens on home.nest.com;
while the user signs in, the session's network traffic is observed and,
once the cookies, client id, login hint and API key have been seen, the
descriptor is printed as JSON ready to paste into a plugin configuration.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from nestlogin.auto_login import AutoLogin
from nestlogin.commands import settings_from_context
from nestlogin.exit_codes import EXIT_GENERIC_FAILURE


def config_command(
    ctx: typer.Context,
    executable: Optional[str] = typer.Option(
        None,
        "--executable",
        "-p",
        help="Path to a Chromium or Chrome binary.",
    ),
    headless: bool = typer.Option(
        False,
        "--headless",
        help="Hide the browser window.",
    ),
) -> None:
    """Sign in on home.nest.com and print the googleAuth descriptor.

    Raises:
        typer.Exit: With the exit code of the error that ended the session.

    Example::

        nestlogin config
        nestlogin --json config -p /usr/bin/chromium
    """
    settings = settings_from_context(ctx, headless=headless, executable_path=executable)

    auto = AutoLogin(settings)
    descriptor = asyncio.run(auto.capture_descriptor())
    if descriptor is None:
        raise typer.Exit(code=auto.error.exit_code if auto.error else EXIT_GENERIC_FAILURE)
