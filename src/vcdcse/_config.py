"""Configuration management for VCD CSE SDK.

Supports:
- Environment variables (VCD_URL, VCD_ORG, VCD_API_TOKEN, etc.)
- Config file (~/.vcdcse/config.toml)
- Programmatic configuration
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


DEFAULT_BASE_URL = "https://localhost"
DEFAULT_API_VERSION = "37.2"
DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_POLL_INTERVAL = 10.0

CONFIG_DIR = Path.home() / ".vcdcse"
CONFIG_FILE = CONFIG_DIR / "config.toml"


@dataclass
class CseConfig:
    """SDK configuration."""

    base_url: str = DEFAULT_BASE_URL
    org: str | None = None
    api_token: str | None = None
    access_token: str | None = None
    api_version: str = DEFAULT_API_VERSION
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES

    # Seconds between two polls of a cluster that is being created or deleted
    poll_interval: float = DEFAULT_POLL_INTERVAL

    debug: bool = False
    verify_ssl: bool = True

    @classmethod
    def from_env(cls) -> CseConfig:
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("VCD_URL", DEFAULT_BASE_URL),
            org=os.getenv("VCD_ORG"),
            api_token=os.getenv("VCD_API_TOKEN"),
            access_token=os.getenv("VCD_ACCESS_TOKEN"),
            api_version=os.getenv("VCD_API_VERSION", DEFAULT_API_VERSION),
            timeout=float(os.getenv("VCD_TIMEOUT", DEFAULT_TIMEOUT)),
            max_retries=int(os.getenv("VCD_MAX_RETRIES", DEFAULT_MAX_RETRIES)),
            poll_interval=float(os.getenv("VCD_POLL_INTERVAL", DEFAULT_POLL_INTERVAL)),
            debug=os.getenv("VCD_DEBUG", "").lower() in ("1", "true", "yes"),
            verify_ssl=os.getenv("VCD_VERIFY_SSL", "true").lower() not in ("0", "false", "no"),
        )

    @classmethod
    def from_file(cls, path: Path | None = None) -> CseConfig:
        """Load configuration from TOML file."""
        config_path = path or CONFIG_FILE

        if not config_path.exists():
            return cls()

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        return cls(
            base_url=data.get("url", DEFAULT_BASE_URL),
            org=data.get("org"),
            api_token=data.get("api_token"),
            access_token=data.get("access_token"),
            api_version=str(data.get("api_version", DEFAULT_API_VERSION)),
            timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
            max_retries=int(data.get("max_retries", DEFAULT_MAX_RETRIES)),
            poll_interval=float(data.get("poll_interval", DEFAULT_POLL_INTERVAL)),
            debug=data.get("debug", False),
            verify_ssl=data.get("verify_ssl", True),
        )

    @classmethod
    def load(cls) -> CseConfig:
        """Load configuration with precedence: env > file > defaults."""
        config = cls.from_file()
        env_config = cls.from_env()

        if os.getenv("VCD_URL"):
            config.base_url = env_config.base_url
        if env_config.org:
            config.org = env_config.org
        if env_config.api_token:
            config.api_token = env_config.api_token
        if env_config.access_token:
            config.access_token = env_config.access_token
        if os.getenv("VCD_API_VERSION"):
            config.api_version = env_config.api_version
        if os.getenv("VCD_TIMEOUT"):
            config.timeout = env_config.timeout
        if os.getenv("VCD_MAX_RETRIES"):
            config.max_retries = env_config.max_retries
        if os.getenv("VCD_POLL_INTERVAL"):
            config.poll_interval = env_config.poll_interval
        if os.getenv("VCD_DEBUG"):
            config.debug = env_config.debug
        if os.getenv("VCD_VERIFY_SSL"):
            config.verify_ssl = env_config.verify_ssl

        return config


def get_config_dir() -> Path:
    """Get or create the config directory."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return CONFIG_DIR


def save_config(config: dict[str, Any], path: Path | None = None) -> None:
    """Save configuration to TOML file.

    Sets restrictive file permissions (0o600) since config may contain
    API tokens.
    """
    import tomli_w

    config_path = path or CONFIG_FILE
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "wb") as f:
        tomli_w.dump(config, f)

    config_path.chmod(0o600)


def get_config_value(key: str) -> Any:
    """Get a single config value."""
    config = CseConfig.load()
    key_mapping = {
        "url": "base_url",
    }
    attr_name = key_mapping.get(key, key)
    return getattr(config, attr_name, None)


def set_config_value(key: str, value: Any) -> None:
    """Set a single config value in the config file."""
    config_path = CONFIG_FILE

    if config_path.exists():
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    else:
        data = {}

    data[key] = value
    save_config(data, config_path)
