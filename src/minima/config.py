"""Unified configuration for the Minima client.

Configuration is stored at ~/.minima/config.toml and organized into sections.

Configuration loading priority:
1. Environment variables (highest)
2. Config file (~/.minima/config.toml)
3. Defaults (lowest)

Sections:
    [api]      - Request pipeline (base URL, timeout, caching, conflicts)
    [retry]    - Backoff policy for API requests
    [session]  - Session storage keys and renewal settings
    [ui]       - Logging and error display

Example:
    from minima.config import get_config

    config = get_config()
    print(config.api.base_url)
    print(config.session.renewal_threshold)
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import tomli_w

logger = logging.getLogger(__name__)

# Default config location
DEFAULT_CONFIG_DIR = Path.home() / ".minima"
DEFAULT_CONFIG_FILE = "config.toml"

# Singleton instance
_config: MinimaConfig | None = None


# =============================================================================
# Configuration Sections
# =============================================================================


@dataclass
class ApiConfig:
    """Request pipeline settings.

    Attributes:
        base_url: Prefix for every endpoint path.
        timeout: Per-request timeout in seconds.
        enable_optimistic_updates: Apply tentative state before writes land.
        enable_conflict_resolution: Resolve stock conflicts automatically.
        cache_ttl: Seconds a cached read stays usable as a fallback.
    """

    base_url: str = "/api"
    timeout: float = 10.0
    enable_optimistic_updates: bool = True
    enable_conflict_resolution: bool = True
    cache_ttl: float = 300.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApiConfig:
        """Create from dictionary."""
        return cls(
            base_url=data.get("base_url", "/api"),
            timeout=float(data.get("timeout", 10.0)),
            enable_optimistic_updates=data.get("enable_optimistic_updates", True),
            enable_conflict_resolution=data.get("enable_conflict_resolution", True),
            cache_ttl=float(data.get("cache_ttl", 300.0)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "base_url": self.base_url,
            "timeout": self.timeout,
            "enable_optimistic_updates": self.enable_optimistic_updates,
            "enable_conflict_resolution": self.enable_conflict_resolution,
            "cache_ttl": self.cache_ttl,
        }


@dataclass
class RetryConfig:
    """Backoff policy for API requests.

    Attributes:
        max_retries: Retries after the first attempt.
        base_delay: Delay before the first retry, in seconds.
        max_delay: Cap on a single delay, in seconds.
        jitter: Upper bound of the random term added to each delay.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryConfig:
        """Create from dictionary."""
        return cls(
            max_retries=int(data.get("max_retries", 3)),
            base_delay=float(data.get("base_delay", 1.0)),
            max_delay=float(data.get("max_delay", 10.0)),
            jitter=float(data.get("jitter", 1.0)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "max_retries": self.max_retries,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "jitter": self.jitter,
        }


@dataclass
class SessionConfig:
    """Session lifecycle settings.

    Attributes:
        user_key: Storage key for the serialized user record.
        token_key: Storage key for the access token.
        refresh_key: Storage key for the refresh token.
        expiry_key: Storage key for the expiry (epoch milliseconds).
        renewal_threshold: Seconds before expiry at which renewal fires.
        max_retries: Retries for the renewal request.
        retry_delay: Base backoff delay for renewal retries, in seconds.
        max_retry_delay: Cap on a renewal backoff delay, in seconds.
        default_expires_in: Lifetime used when the server omits one.
        login_path: Where the redirect recovery path sends the user.
    """

    user_key: str = "currentUser"
    token_key: str = "auth_token"
    refresh_key: str = "refresh_token"
    expiry_key: str = "token_expiry"
    renewal_threshold: float = 300.0
    max_retries: int = 3
    retry_delay: float = 1.0
    max_retry_delay: float = 8.0
    default_expires_in: int = 3600
    login_path: str = "/login?reason=session_expired"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionConfig:
        """Create from dictionary."""
        return cls(
            user_key=data.get("user_key", "currentUser"),
            token_key=data.get("token_key", "auth_token"),
            refresh_key=data.get("refresh_key", "refresh_token"),
            expiry_key=data.get("expiry_key", "token_expiry"),
            renewal_threshold=float(data.get("renewal_threshold", 300.0)),
            max_retries=int(data.get("max_retries", 3)),
            retry_delay=float(data.get("retry_delay", 1.0)),
            max_retry_delay=float(data.get("max_retry_delay", 8.0)),
            default_expires_in=int(data.get("default_expires_in", 3600)),
            login_path=data.get("login_path", "/login?reason=session_expired"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_key": self.user_key,
            "token_key": self.token_key,
            "refresh_key": self.refresh_key,
            "expiry_key": self.expiry_key,
            "renewal_threshold": self.renewal_threshold,
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "max_retry_delay": self.max_retry_delay,
            "default_expires_in": self.default_expires_in,
            "login_path": self.login_path,
        }

    @property
    def keys(self) -> tuple[str, str, str, str]:
        """All four storage keys, in a fixed order."""
        return (self.user_key, self.token_key, self.refresh_key, self.expiry_key)


@dataclass
class UIConfig:
    """Logging and error display settings.

    Attributes:
        log_level: Logging level (debug, info, warning, error).
        debug: Show technical error details and stack traces.
    """

    log_level: str = "info"
    debug: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UIConfig:
        """Create from dictionary."""
        return cls(
            log_level=data.get("log_level", "info"),
            debug=data.get("debug", False),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "log_level": self.log_level,
            "debug": self.debug,
        }


# =============================================================================
# Main Configuration Class
# =============================================================================


@dataclass
class MinimaConfig:
    """Main configuration container.

    Use get_config() to get the singleton instance.
    """

    api: ApiConfig = field(default_factory=ApiConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    ui: UIConfig = field(default_factory=UIConfig)

    # Metadata
    config_version: str = "1.0"
    config_path: Path | None = None
    last_modified: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MinimaConfig:
        """Create configuration from dictionary."""
        return cls(
            api=ApiConfig.from_dict(data.get("api", {})),
            retry=RetryConfig.from_dict(data.get("retry", {})),
            session=SessionConfig.from_dict(data.get("session", {})),
            ui=UIConfig.from_dict(data.get("ui", {})),
            config_version=data.get("config", {}).get("version", "1.0"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "config": {
                "version": self.config_version,
            },
            "api": self.api.to_dict(),
            "retry": self.retry.to_dict(),
            "session": self.session.to_dict(),
            "ui": self.ui.to_dict(),
        }

    def apply_env_overrides(self) -> None:
        """Apply environment variable overrides to configuration."""
        if url := os.environ.get("MINIMA_API_URL"):
            self.api.base_url = url
        if timeout := os.environ.get("MINIMA_API_TIMEOUT"):
            self.api.timeout = float(timeout)
        if retries := os.environ.get("MINIMA_RETRY_MAX"):
            self.retry.max_retries = int(retries)
        if threshold := os.environ.get("MINIMA_SESSION_RENEWAL_THRESHOLD"):
            self.session.renewal_threshold = float(threshold)
        if level := os.environ.get("MINIMA_LOG_LEVEL"):
            self.ui.log_level = level.lower()
        if os.environ.get("MINIMA_DEBUG") == "1":
            self.ui.debug = True

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key path.

        Example:
            config.get('api.timeout')  # Returns 10.0
        """
        obj: Any = self
        for part in key.split("."):
            if not hasattr(obj, part):
                return default
            obj = getattr(obj, part)
        return obj

    def set(self, key: str, value: Any) -> bool:
        """Set a configuration value by dotted key path.

        Returns:
            True if set successfully, False otherwise.
        """
        parts = key.split(".")
        if len(parts) != 2:
            return False

        section = getattr(self, parts[0], None)
        if section is None or not hasattr(section, parts[1]):
            return False

        setattr(section, parts[1], value)
        return True


# =============================================================================
# Configuration Loading/Saving
# =============================================================================


def get_config_path() -> Path:
    """Get the path to the configuration file."""
    if custom_path := os.environ.get("MINIMA_CONFIG"):
        return Path(custom_path)
    return DEFAULT_CONFIG_DIR / DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> MinimaConfig:
    """Load configuration from TOML file.

    Args:
        config_path: Path to config file. Uses default if not specified.

    Returns:
        MinimaConfig with settings from file and environment.
    """
    path = config_path or get_config_path()

    config = MinimaConfig()
    config.config_path = path

    if path.exists():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            config = MinimaConfig.from_dict(data)
            config.config_path = path
            config.last_modified = datetime.fromtimestamp(path.stat().st_mtime)

        except (OSError, tomllib.TOMLDecodeError, ValueError) as e:
            logger.error(f"Failed to load config from {path}: {e}")
            config = MinimaConfig()
            config.config_path = path

    config.apply_env_overrides()

    return config


def save_config(config: MinimaConfig, config_path: Path | None = None) -> bool:
    """Save configuration to TOML file.

    Returns:
        True if saved successfully, False otherwise.
    """
    path = config_path or config.config_path or get_config_path()

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            tomli_w.dump(config.to_dict(), f)
    except OSError as e:
        logger.error(f"Failed to save config: {e}")
        return False

    config.config_path = path
    config.last_modified = datetime.now()
    logger.info(f"Saved config to {path}")
    return True


def get_config() -> MinimaConfig:
    """Get the singleton configuration instance.

    Loads from file on first call, returns cached instance after.
    Use reload_config() to force reload.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> MinimaConfig:
    """Force reload configuration from file."""
    global _config
    _config = load_config()
    return _config


def reset_config() -> None:
    """Reset singleton to force reload on next access."""
    global _config
    _config = None


def format_config_for_display(config: MinimaConfig) -> str:
    """Format configuration for CLI display."""
    lines = ["Minima Configuration", "=" * 50, ""]

    if config.config_path:
        lines.append(f"Config file: {config.config_path}")
        if config.last_modified:
            lines.append(f"Last modified: {config.last_modified.strftime('%Y-%m-%d %H:%M:%S')}")
        lines.append("")

    for section, values in config.to_dict().items():
        if section == "config":
            continue
        lines.append(f"[{section}]")
        for key, value in values.items():
            lines.append(f"  {key} = {value}")
        lines.append("")

    return "\n".join(lines)
