"""Tests for the configuration system."""

from __future__ import annotations

import textwrap
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from contract_checkout.config.settings import (
    AppConfig,
    BackendConfig,
    MetricsConfig,
    PollerConfig,
    SigningConfig,
    StoreConfig,
    StoreEngine,
    _load_yaml,
)

if TYPE_CHECKING:
    from pathlib import Path

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    """Verify all default values are correct."""

    def test_backend_defaults(self) -> None:
        cfg = BackendConfig()
        assert cfg.url == "http://localhost:3000/api"
        assert cfg.token == ""
        assert cfg.timeout == 30.0
        assert cfg.return_url == ""

    def test_poller_defaults(self) -> None:
        cfg = PollerConfig()
        assert cfg.max_attempts == 10
        assert cfg.interval_seconds == 3.0

    def test_store_defaults(self) -> None:
        cfg = StoreConfig()
        assert cfg.engine == StoreEngine.MEMORY
        assert cfg.key_prefix == "checkout"
        assert cfg.stale_after_seconds == 86400

    def test_signing_defaults(self) -> None:
        cfg = SigningConfig()
        assert cfg.stamp_width == 150.0
        assert cfg.stamp_height == 50.0
        assert cfg.code_length == 6

    def test_metrics_defaults(self) -> None:
        assert MetricsConfig().enabled is True

    def test_app_config_defaults(self) -> None:
        cfg = AppConfig()
        assert cfg.debug is False
        assert cfg.log_level == "INFO"
        assert isinstance(cfg.backend, BackendConfig)
        assert isinstance(cfg.poller, PollerConfig)
        assert isinstance(cfg.store, StoreConfig)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_store_engine_file(self) -> None:
        cfg = StoreConfig(engine="file")
        assert cfg.engine == StoreEngine.FILE

    def test_store_engine_invalid(self) -> None:
        with pytest.raises(ValidationError):
            StoreConfig(engine="sqlite")

    def test_poller_needs_one_attempt(self) -> None:
        with pytest.raises(ValidationError):
            PollerConfig(max_attempts=0)

    def test_poller_negative_interval(self) -> None:
        with pytest.raises(ValidationError):
            PollerConfig(interval_seconds=-1)


# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------


class TestEnvironment:
    def test_top_level_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHECKOUT_DEBUG", "true")
        monkeypatch.setenv("CHECKOUT_LOG_LEVEL", "DEBUG")
        cfg = AppConfig()
        assert cfg.debug is True
        assert cfg.log_level == "DEBUG"

    def test_nested_env_via_delimiter(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHECKOUT_POLLER__MAX_ATTEMPTS", "4")
        cfg = AppConfig()
        assert cfg.poller.max_attempts == 4

    def test_nested_backend_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHECKOUT_BACKEND__URL", "https://api.example.com")
        monkeypatch.setenv("CHECKOUT_BACKEND__TOKEN", "jwt")
        cfg = AppConfig()
        assert cfg.backend.url == "https://api.example.com"
        assert cfg.backend.token == "jwt"


# ---------------------------------------------------------------------------
# YAML
# ---------------------------------------------------------------------------


class TestYaml:
    def test_load_yaml_nonexistent(self, tmp_path: Path) -> None:
        assert _load_yaml(tmp_path / "nonexistent.yaml") == {}

    def test_load_yaml_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        assert _load_yaml(path) == {}

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "checkout.yaml"
        path.write_text(
            textwrap.dedent(
                """\
                debug: true
                poller:
                  max_attempts: 5
                  interval_seconds: 1.5
                store:
                  engine: file
                  path: /tmp/checkout
                """
            )
        )
        cfg = AppConfig.from_yaml(path)
        assert cfg.debug is True
        assert cfg.poller.max_attempts == 5
        assert cfg.poller.interval_seconds == 1.5
        assert cfg.store.engine == StoreEngine.FILE

    def test_env_overrides_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "checkout.yaml"
        path.write_text("log_level: WARNING\n")
        monkeypatch.setenv("CHECKOUT_LOG_LEVEL", "ERROR")
        cfg = AppConfig.from_yaml(path)
        assert cfg.log_level == "ERROR"
