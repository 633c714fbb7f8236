"""Token command -- sign in and print a Google refresh token.

Implements ``nestlogin token``. By default the browser runs headless and
the sign-in form is filled automatically: the username and password come
from the options (literal values or ``env:``/``file:``/``prompt`` sources)
or from terminal prompts, and a verification code is prompted for when
Google asks for one. With ``--show-browser`` the window is shown and the
user signs in by hand.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from nestlogin.auto_login import AutoLogin
from nestlogin.commands import settings_from_context
from nestlogin.config import resolve_credential
from nestlogin.exit_codes import EXIT_GENERIC_FAILURE
from nestlogin.output import debug, warning


def token_command(
    ctx: typer.Context,
    username: Optional[str] = typer.Option(
        None,
        "--username",
        "-u",
        help="Google account, or a source: 'env:VAR', 'file:/path', 'prompt'.",
    ),
    password: Optional[str] = typer.Option(
        None,
        "--password",
        help="Password, or a source: 'env:VAR', 'file:/path', 'prompt'.",
    ),
    show_browser: bool = typer.Option(
        False,
        "--show-browser",
        help="Show the browser window and sign in manually.",
    ),
    field_test: Optional[bool] = typer.Option(
        None,
        "--field-test/--no-field-test",
        help="Use the field-test OAuth client.",
    ),
    executable: Optional[str] = typer.Option(
        None,
        "--executable",
        "-p",
        help="Path to a Chromium or Chrome binary.",
    ),
    max_attempts: Optional[int] = typer.Option(
        None,
        "--max-attempts",
        min=0,
        help="Rejected submissions allowed per step (0 for unlimited).",
    ),
) -> None:
    """Sign in to Google and print a refresh token.

    Raises:
        typer.Exit: With the exit code of the error that ended the session.

    Example::

        nestlogin token --username me@example.com --password env:NEST_PASSWORD
        nestlogin token --show-browser
    """
    settings = settings_from_context(
        ctx,
        headless=False if show_browser else None,
        field_test=field_test,
        executable_path=executable,
        max_attempts=max_attempts,
    )

    user = resolve_credential(username, prompt="Email or phone: ") if username else None
    secret = resolve_credential(password, prompt="Password: ") if password else None
    if not settings.headless and (user or secret):
        warning("Credentials are ignored when the browser window is shown.")
    debug(f"Using client id {settings.active_client_id}")

    auto = AutoLogin(settings)
    refresh_token = asyncio.run(auto.login(user, secret))
    if refresh_token is None:
        raise typer.Exit(code=auto.error.exit_code if auto.error else EXIT_GENERIC_FAILURE)
