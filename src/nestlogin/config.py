"""Settings management with XDG paths and precedence resolution.

This module handles all persistent configuration for nestlogin:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.nestlogin/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Settings** -- A single :class:`~nestlogin.models.LoginSettings` JSON
  file storing timeouts, OAuth client ids and browser options.
* **Precedence resolution** -- :func:`load_settings` layers environment
  variables over the settings file over the defaults. CLI flags are applied
  last by :mod:`nestlogin.app`.
* **Credential resolution** -- :func:`resolve_credential` reads a username
  or password from env vars, files, or an interactive prompt.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
from pathlib import Path
from typing import Any, Optional

from nestlogin.exceptions import ConfigError
from nestlogin.models import LoginSettings

_APP_NAME = "nestlogin"
_CONFIG_FILENAME = "config.json"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/nestlogin/`` (default ``~/.config/nestlogin/``).
    On macOS/Windows: ``~/.nestlogin/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/nestlogin/`` (default ``~/.local/share/nestlogin/``).
    On macOS/Windows: ``~/.nestlogin/logs/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Settings ---


def settings_path() -> Path:
    """Path to the default settings file."""
    return get_config_dir() / _CONFIG_FILENAME


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigError(f"Environment variable {name} must be a boolean, got {raw!r}")


def _env_overrides() -> dict[str, Any]:
    """Collect ``NESTLOGIN_*`` environment overrides as settings fields."""
    overrides: dict[str, Any] = {}

    headless = os.environ.get("NESTLOGIN_HEADLESS")
    if headless is not None:
        overrides["headless"] = _parse_bool("NESTLOGIN_HEADLESS", headless)

    field_test = os.environ.get("NESTLOGIN_FIELD_TEST")
    if field_test is not None:
        overrides["field_test"] = _parse_bool("NESTLOGIN_FIELD_TEST", field_test)

    executable = os.environ.get("NESTLOGIN_EXECUTABLE")
    if executable:
        overrides["executable_path"] = executable

    max_attempts = os.environ.get("NESTLOGIN_MAX_ATTEMPTS")
    if max_attempts is not None:
        try:
            overrides["max_attempts"] = int(max_attempts)
        except ValueError as exc:
            raise ConfigError(
                f"Environment variable NESTLOGIN_MAX_ATTEMPTS must be an integer, "
                f"got {max_attempts!r}"
            ) from exc

    return overrides


def load_settings(path: Optional[Path] = None) -> LoginSettings:
    """Load settings with environment overrides applied.

    Precedence (high to low):
        1. Environment variables (``NESTLOGIN_HEADLESS``,
           ``NESTLOGIN_FIELD_TEST``, ``NESTLOGIN_EXECUTABLE``,
           ``NESTLOGIN_MAX_ATTEMPTS``)
        2. Settings file (*path*, or ``~/.config/nestlogin/config.json``)
        3. Defaults

    Args:
        path: Explicit settings file. When given it must exist.

    Returns:
        The validated :class:`~nestlogin.models.LoginSettings`.

    Raises:
        ConfigError: If the file is missing (explicit path only), contains
            invalid JSON, or fails Pydantic validation, or if an
            environment override is malformed.
    """
    data: dict[str, Any] = {}
    target = path if path is not None else settings_path()
    if path is not None and not target.is_file():
        raise ConfigError(f"Settings file not found: {target}")
    if target.is_file():
        try:
            data = json.loads(target.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValueError) as exc:
            raise ConfigError(f"Invalid settings at {target}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid settings at {target}: expected a JSON object")

    data.update(_env_overrides())
    try:
        return LoginSettings.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid settings at {target}: {exc}") from exc


# --- Credential source resolution ---


def resolve_credential(source: str, prompt: str = "Enter credential: ") -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively without echo (requires a TTY)

    Any other string is taken as the literal value, so ``--username
    me@example.com`` works without a source prefix.

    Args:
        source: The source descriptor string.
        prompt: Text shown when *source* is ``"prompt"``.

    Returns:
        The resolved credential string.

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        file_path = source[5:]
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass(prompt)

    return source
