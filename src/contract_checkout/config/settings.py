"""Checkout settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``CHECKOUT_``, nested via ``__``)
2. YAML config file (``config_path`` or ``CHECKOUT_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class StoreEngine(enum.StrEnum):
    """Supported wizard snapshot backends."""

    MEMORY = "memory"
    FILE = "file"
    REDIS = "redis"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class BackendConfig(BaseSettings):
    """Transaction backend (REST API) settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHECKOUT_BACKEND__",
        case_sensitive=False,
    )

    url: str = "http://localhost:3000/api"
    token: str = ""
    timeout: float = 30.0
    return_url: str = Field(
        default="",
        description="URL the payment gateway sends the browser back to",
    )


class PollerConfig(BaseSettings):
    """Payment reconciliation polling settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHECKOUT_POLLER__",
        case_sensitive=False,
    )

    max_attempts: int = Field(default=10, ge=1)
    interval_seconds: float = Field(default=3.0, ge=0)


class StoreConfig(BaseSettings):
    """Wizard snapshot store settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHECKOUT_STORE__",
        case_sensitive=False,
    )

    engine: StoreEngine = Field(
        default=StoreEngine.MEMORY,
        description="Snapshot backend: memory, file or redis",
    )
    path: str = "./.checkout_state"
    url: str = "redis://localhost:6379/0"
    max_connections: int = 10
    key_prefix: str = "checkout"
    stale_after_seconds: int = Field(default=24 * 60 * 60, ge=1)


class SigningConfig(BaseSettings):
    """Visual signature stamp settings (PDF points)."""

    model_config = SettingsConfigDict(
        env_prefix="CHECKOUT_SIGNING__",
        case_sensitive=False,
    )

    stamp_width: float = 150.0
    stamp_height: float = 50.0
    code_length: int = 6


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHECKOUT_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level checkout configuration.

    Loads settings from environment variables (``CHECKOUT_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHECKOUT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    log_level: str = "INFO"
    config_path: str = ""

    backend: BackendConfig = Field(default_factory=BackendConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    signing: SigningConfig = Field(default_factory=SigningConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
