"""
Configuration loading.

Settings come from defaults, then a YAML file, then environment variables
(highest precedence).

YAML format:
```yaml
token_secret: "change-me"
base_url: "https://shop.example.com"
token_ttl_hours: 24
store_path: ".asset-entitlements/store.json"
key_max_attempts: 5
policy:
  basic:
    download_limit: 10
    validity_days: 365
```
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from asset_entitlements.core.errors import ConfigError
from asset_entitlements.core.licensing.models import LicenseType
from asset_entitlements.core.licensing.policy import (
    DEFAULT_TIER_POLICIES,
    TierPolicy,
    parse_tier_policies,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "asset-entitlements.yaml"
ENV_PREFIX = "ASSET_ENTITLEMENTS_"
ENV_CONFIG_PATH = ENV_PREFIX + "CONFIG"

# Development-only signing secret, used when none is configured
DEV_TOKEN_SECRET = "asset-entitlements-dev-secret"

# Environment variable -> settings field
_ENV_FIELDS = {
    ENV_PREFIX + "TOKEN_SECRET": "token_secret",
    ENV_PREFIX + "BASE_URL": "base_url",
    ENV_PREFIX + "STORE_PATH": "store_path",
    ENV_PREFIX + "TOKEN_TTL_HOURS": "token_ttl_hours",
}


class Settings(BaseModel):
    """Runtime settings."""

    token_secret: str = Field(default=DEV_TOKEN_SECRET, min_length=1, description="HMAC key for download tokens")
    base_url: str = Field(default="http://localhost:3000", description="Origin for secure download links")
    token_ttl_hours: int = Field(default=24, ge=1)
    store_path: Path = Field(default=Path(".asset-entitlements/store.json"))
    key_max_attempts: int = Field(default=5, ge=1)
    policy: dict[LicenseType, TierPolicy] = Field(default_factory=lambda: dict(DEFAULT_TIER_POLICIES))

    model_config = {"frozen": True}

    @property
    def uses_dev_secret(self) -> bool:
        return self.token_secret == DEV_TOKEN_SECRET


def find_config_file(env: Mapping[str, str] | None = None) -> Path | None:
    """
    Find the config file.

    The path in ASSET_ENTITLEMENTS_CONFIG wins over asset-entitlements.yaml
    in the current directory.

    Raises:
        ConfigError: If ASSET_ENTITLEMENTS_CONFIG points at a missing file
    """
    env = os.environ if env is None else env

    env_path = env.get(ENV_CONFIG_PATH)
    if env_path:
        path = Path(env_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        return path

    local = Path.cwd() / CONFIG_FILE_NAME
    return local if local.exists() else None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_settings(path: Path | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """
    Load settings.

    Args:
        path: Explicit config file, or None to search
        env: Environment mapping (defaults to os.environ)

    Returns:
        Settings

    Raises:
        ConfigError: On unreadable files or invalid values
    """
    env = os.environ if env is None else env

    if path is None:
        path = find_config_file(env)

    values: dict[str, Any] = {}
    if path is not None:
        values = _read_yaml(path)
        logger.debug("Loaded config from %s", path)

    for env_name, field_name in _ENV_FIELDS.items():
        if env.get(env_name):
            values[field_name] = env[env_name]

    if "policy" in values:
        try:
            values["policy"] = parse_tier_policies(values["policy"])
        except (ValueError, AttributeError, TypeError) as e:
            raise ConfigError(f"Invalid tier policy: {e}") from e

    try:
        settings = Settings(**values)
    except (ValidationError, TypeError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    if settings.uses_dev_secret:
        logger.warning(
            "No token secret configured; using the development secret. Set %sTOKEN_SECRET in production.",
            ENV_PREFIX,
        )

    return settings


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings_cache() -> None:
    """Reset the settings cache (for testing)."""
    global _settings
    _settings = None
