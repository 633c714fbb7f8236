"""Built-in CLI commands for nestlogin.

* :mod:`~nestlogin.commands.token` -- the refresh-token flow.
* :mod:`~nestlogin.commands.config` -- the ``googleAuth`` descriptor flow.

Both are plain callbacks registered on the root app by
:func:`nestlogin.app.register_commands`. Shared plumbing lives here.
"""

from __future__ import annotations

from typing import Any

import typer

from nestlogin.config import load_settings
from nestlogin.exceptions import ConfigError, InvalidUsageError
from nestlogin.models import LoginSettings
from nestlogin.output import OutputFormat, OutputManager, set_output


def settings_from_context(ctx: typer.Context, **overrides: Any) -> LoginSettings:
    """Load settings for a command and apply its CLI flag overrides.

    Flags left at ``None`` keep the value from the settings file or the
    environment. When neither ``--json`` nor ``--plain`` was given, the
    stored ``output.format`` preference replaces the auto-detected one.

    Raises:
        ConfigError: If the settings cannot be loaded.
        InvalidUsageError: If a flag value fails validation.
    """
    obj = ctx.ensure_object(dict)
    settings = load_settings(obj.get("config_path"))
    updates = {key: value for key, value in overrides.items() if value is not None}
    if updates:
        try:
            settings = LoginSettings.model_validate({**settings.model_dump(), **updates})
        except ValueError as exc:
            raise InvalidUsageError(f"Invalid option value: {exc}") from exc

    try:
        stored_format = OutputFormat(settings.output.format)
    except ValueError as exc:
        raise ConfigError(f"Unknown output format: {settings.output.format!r}") from exc
    if not obj.get("format_forced") and stored_format != OutputFormat.AUTO:
        set_output(
            OutputManager(
                format=stored_format,
                no_color=obj.get("no_color", False),
                quiet=obj.get("quiet", False),
                verbose=obj.get("verbose", False),
            )
        )
    return settings
