"""Tests for the configuration system."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from minima.config import (
    ApiConfig,
    MinimaConfig,
    RetryConfig,
    SessionConfig,
    UIConfig,
    format_config_for_display,
    get_config,
    get_config_path,
    load_config,
    reload_config,
    reset_config,
    save_config,
)


@pytest.fixture(autouse=True)
def clean_env():
    """Run every test without MINIMA_* variables and a fresh singleton."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("MINIMA_")}
    with patch.dict(os.environ, env, clear=True):
        reset_config()
        yield
        reset_config()


# =============================================================================
# Section Tests
# =============================================================================


class TestSections:
    """Tests for config sections."""

    def test_defaults(self):
        """Defaults match the documented values."""
        config = MinimaConfig()
        assert config.api.timeout == 10.0
        assert config.retry.max_retries == 3
        assert config.retry.max_delay == 10.0
        assert config.session.renewal_threshold == 300.0
        assert config.session.max_retry_delay == 8.0
        assert config.session.keys == ("currentUser", "auth_token", "refresh_token", "token_expiry")
        assert config.session.login_path == "/login?reason=session_expired"
        assert config.ui.log_level == "info"

    def test_from_dict_partial(self):
        """Missing keys fall back to defaults."""
        api = ApiConfig.from_dict({"timeout": "2.5"})
        assert api.timeout == 2.5
        assert api.base_url == "/api"

        session = SessionConfig.from_dict({"token_key": "access_token"})
        assert session.token_key == "access_token"
        assert session.user_key == "currentUser"

    @pytest.mark.parametrize("section", [ApiConfig, RetryConfig, SessionConfig, UIConfig])
    def test_to_dict_from_dict(self, section):
        """to_dict output is accepted by from_dict."""
        original = section()
        assert section.from_dict(original.to_dict()) == original


# =============================================================================
# MinimaConfig Tests
# =============================================================================


class TestMinimaConfig:
    """Tests for the main config container."""

    def test_get_dotted(self):
        """Values are read by dotted key."""
        config = MinimaConfig()
        assert config.get("session.renewal_threshold") == 300.0
        assert config.get("session.missing", "x") == "x"

    def test_set_dotted(self):
        """Values are set by dotted key."""
        config = MinimaConfig()
        assert config.set("api.timeout", 3.0) is True
        assert config.api.timeout == 3.0
        assert config.set("api", 1) is False
        assert config.set("nope.key", 1) is False

    def test_env_overrides(self):
        """Environment variables win over file values."""
        env = {
            "MINIMA_API_URL": "https://hotel.example/api",
            "MINIMA_API_TIMEOUT": "4",
            "MINIMA_RETRY_MAX": "5",
            "MINIMA_SESSION_RENEWAL_THRESHOLD": "60",
            "MINIMA_LOG_LEVEL": "DEBUG",
            "MINIMA_DEBUG": "1",
        }
        with patch.dict(os.environ, env):
            config = MinimaConfig()
            config.apply_env_overrides()

        assert config.api.base_url == "https://hotel.example/api"
        assert config.api.timeout == 4.0
        assert config.retry.max_retries == 5
        assert config.session.renewal_threshold == 60.0
        assert config.ui.log_level == "debug"
        assert config.ui.debug is True


# =============================================================================
# Loading / Saving Tests
# =============================================================================


class TestLoadSave:
    """Tests for TOML loading and saving."""

    def test_missing_file(self, tmp_path):
        """A missing file gives defaults."""
        config = load_config(tmp_path / "config.toml")
        assert config.api == ApiConfig()
        assert config.config_path == tmp_path / "config.toml"

    def test_load_file(self, tmp_path):
        """Sections are read from TOML."""
        path = tmp_path / "config.toml"
        path.write_text(
            '[api]\nbase_url = "https://hotel.example/api"\n\n'
            "[session]\nrenewal_threshold = 120\n"
        )
        config = load_config(path)
        assert config.api.base_url == "https://hotel.example/api"
        assert config.session.renewal_threshold == 120.0
        assert config.last_modified is not None

    def test_invalid_file(self, tmp_path):
        """An unparseable file falls back to defaults."""
        path = tmp_path / "config.toml"
        path.write_text("[api\nbroken")
        assert load_config(path).api == ApiConfig()

    def test_save_and_reload(self, tmp_path):
        """Saved config loads back."""
        path = tmp_path / "nested" / "config.toml"
        config = MinimaConfig()
        config.session.renewal_threshold = 90.0
        config.ui.debug = True

        assert save_config(config, path) is True
        loaded = load_config(path)
        assert loaded.session.renewal_threshold == 90.0
        assert loaded.ui.debug is True

    def test_config_path_env(self, tmp_path):
        """MINIMA_CONFIG points at another file."""
        with patch.dict(os.environ, {"MINIMA_CONFIG": str(tmp_path / "alt.toml")}):
            assert get_config_path() == tmp_path / "alt.toml"

    def test_default_config_path(self):
        """The default lives under ~/.minima."""
        assert get_config_path() == Path.home() / ".minima" / "config.toml"

    def test_singleton(self, tmp_path):
        """get_config caches until reloaded."""
        with patch.dict(os.environ, {"MINIMA_CONFIG": str(tmp_path / "config.toml")}):
            first = get_config()
            assert get_config() is first
            assert reload_config() is not first


class TestFormatConfig:
    """Tests for display formatting."""

    def test_sections_listed(self):
        """Every section is shown."""
        output = format_config_for_display(MinimaConfig())
        for section in ("[api]", "[retry]", "[session]", "[ui]"):
            assert section in output
        assert "renewal_threshold = 300.0" in output
