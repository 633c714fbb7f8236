"""Tests for nestlogin.config -- XDG paths, settings, credentials."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from nestlogin.config import (
    get_config_dir,
    get_data_dir,
    load_settings,
    resolve_credential,
    settings_path,
)
from nestlogin.exceptions import ConfigError
from nestlogin.models import LoginSettings


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: object) -> None:
    """Write *data* as JSON to *path*, creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPaths:
    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("nestlogin.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".config" / "nestlogin"
        assert result.is_dir()

    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_config"
        monkeypatch.setattr("nestlogin.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(custom))

        assert get_config_dir() == custom / "nestlogin"

    def test_data_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("nestlogin.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_data_dir()
        assert result == tmp_path / ".local" / "share" / "nestlogin"
        assert result.is_dir()

    def test_fallback_paths(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("nestlogin.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_config_dir() == tmp_path / ".nestlogin"
        assert get_data_dir() == tmp_path / ".nestlogin" / "logs"

    def test_settings_path_inside_config_dir(self, isolated_config: Path) -> None:
        assert settings_path() == isolated_config / "config" / "nestlogin" / "config.json"


# ---------------------------------------------------------------------------
# Settings load
# ---------------------------------------------------------------------------


class TestLoadSettings:
    def test_defaults_when_no_file(self, isolated_config: Path) -> None:
        settings = load_settings()
        assert settings == LoginSettings()
        assert settings.max_attempts == 5
        assert settings.session_timeout is None
        assert settings.headless is True

    def test_file_values_applied(self, isolated_config: Path) -> None:
        _write_json(settings_path(), {"max_attempts": 2, "element_timeout": 9})
        settings = load_settings()
        assert settings.max_attempts == 2
        assert settings.element_timeout == 9.0

    def test_explicit_path(self, isolated_config: Path) -> None:
        path = isolated_config / "custom.json"
        _write_json(path, {"field_test": True})
        settings = load_settings(path)
        assert settings.field_test is True
        assert settings.active_client_id == settings.field_test_client_id

    def test_explicit_missing_path_raises(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_settings(isolated_config / "missing.json")

    def test_invalid_json_raises(self, isolated_config: Path) -> None:
        path = settings_path()
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid settings"):
            load_settings()

    def test_non_object_raises(self, isolated_config: Path) -> None:
        _write_json(settings_path(), ["a", "b"])
        with pytest.raises(ConfigError, match="JSON object"):
            load_settings()

    def test_validation_error_raises(self, isolated_config: Path) -> None:
        _write_json(settings_path(), {"max_attempts": -1})
        with pytest.raises(ConfigError):
            load_settings()

    def test_env_overrides_file(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_json(settings_path(), {"headless": True, "max_attempts": 2})
        monkeypatch.setenv("NESTLOGIN_HEADLESS", "false")
        monkeypatch.setenv("NESTLOGIN_MAX_ATTEMPTS", "0")
        monkeypatch.setenv("NESTLOGIN_EXECUTABLE", "/opt/chromium")
        monkeypatch.setenv("NESTLOGIN_FIELD_TEST", "yes")

        settings = load_settings()
        assert settings.headless is False
        assert settings.max_attempts == 0
        assert settings.executable_path == "/opt/chromium"
        assert settings.field_test is True

    def test_bad_env_boolean_raises(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("NESTLOGIN_HEADLESS", "maybe")
        with pytest.raises(ConfigError, match="NESTLOGIN_HEADLESS"):
            load_settings()

    def test_bad_env_integer_raises(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("NESTLOGIN_MAX_ATTEMPTS", "five")
        with pytest.raises(ConfigError, match="integer"):
            load_settings()


# ---------------------------------------------------------------------------
# Credential resolution
# ---------------------------------------------------------------------------


class TestResolveCredential:
    def test_literal_value(self) -> None:
        assert resolve_credential("me@example.com") == "me@example.com"

    def test_env_source(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NEST_PASSWORD", "secret123")
        assert resolve_credential("env:NEST_PASSWORD") == "secret123"

    def test_env_source_missing_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR", raising=False)
        with pytest.raises(ConfigError, match="not set"):
            resolve_credential("env:NONEXISTENT_VAR")

    def test_file_source(self, tmp_path: Path) -> None:
        cred_file = tmp_path / "password.txt"
        cred_file.write_text("  hunter2  \n", encoding="utf-8")
        assert resolve_credential(f"file:{cred_file}") == "hunter2"

    def test_file_source_missing_raises(self) -> None:
        with pytest.raises(ConfigError, match="not found"):
            resolve_credential("file:/nonexistent/path/password.txt")

    def test_prompt_source_with_tty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin.isatty", lambda: True)
        monkeypatch.setattr("getpass.getpass", lambda prompt: "user-typed-secret")
        assert resolve_credential("prompt") == "user-typed-secret"

    def test_prompt_source_non_tty_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin.isatty", lambda: False)
        with pytest.raises(ConfigError, match="not a TTY"):
            resolve_credential("prompt")
