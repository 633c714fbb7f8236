"""Shared test fixtures for nestlogin.

Provides isolated config environments, output state management, fast
settings and a CLI runner. The browser and host UI fakes live in
``fakes.py``.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from nestlogin.models import LoginSettings
from nestlogin.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    Resetting forces a fresh manager to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    so that tests never touch real user config, and clears all
    NESTLOGIN_* environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("nestlogin.config._is_xdg_platform", lambda: True)
    for var in [
        "NESTLOGIN_HEADLESS",
        "NESTLOGIN_FIELD_TEST",
        "NESTLOGIN_EXECUTABLE",
        "NESTLOGIN_MAX_ATTEMPTS",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def plain_output() -> OutputManager:
    """Install a PLAIN, colourless OutputManager so capsys sees plain text."""
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def json_output() -> OutputManager:
    """Install a JSON, colourless OutputManager."""
    output = OutputManager(format=OutputFormat.JSON, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Settings and runner fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fast_settings() -> LoginSettings:
    """Settings with every wait shortened so the fakes resolve immediately."""
    return LoginSettings(
        element_timeout=0.01,
        rejection_timeout=0.01,
        mfa_probe_timeout=0.01,
        consent_timeout=0.01,
        step_pause=0,
    )


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
