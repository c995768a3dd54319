"""Configuration loading for dbsync."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .validation import SYNC_SCHEMA, DISCOVERY_SCHEMA, validate_section

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:8080/sync-record"


class ConfigError(ValueError):
    """Raised when a configuration file cannot be used."""


@dataclass
class SyncConfig:
    """Settings for the outbound sync client."""

    enabled: bool = False
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = 5
    tables: list[str] = field(default_factory=list)  # empty = all tables
    skip_tables: list[str] = field(
        default_factory=lambda: [
            "migrations",
            "password_resets",
            "failed_jobs",
            "sync_queue",
            "sessions",
            "cache",
            "jobs",
        ]
    )
    skip_fields: list[str] = field(
        default_factory=lambda: [
            "password",
            "remember_token",
            "api_token",
            "email_verified_at",
        ]
    )
    respect_should_sync: bool = False


@dataclass
class DiscoveryConfig:
    """Where to look for model classes."""

    model_paths: list[str] = field(default_factory=lambda: ["app/models"])
    """Directories scanned recursively for model modules"""

    models: list[str] = field(default_factory=list)
    """Dotted class names registered regardless of location"""

    base_model: str | None = None
    """Dotted path of the declarative base models must inherit from"""


@dataclass
class Config:
    sync: SyncConfig = field(default_factory=SyncConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with DBSYNC_ prefix."""
    return os.environ.get(f"DBSYNC_{key}", default)


def _as_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _as_list(value: str, sep: str = ",") -> list[str]:
    return [item.strip() for item in value.split(sep) if item.strip()]


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Sync overrides
    if enabled := _get_env("ENABLED"):
        config.sync.enabled = _as_bool(enabled)
    if endpoint := _get_env("ENDPOINT"):
        config.sync.endpoint = endpoint
    if timeout := _get_env("TIMEOUT"):
        config.sync.timeout = float(timeout)
    if tables := _get_env("TABLES"):
        config.sync.tables = _as_list(tables)
    if skip_tables := _get_env("SKIP_TABLES"):
        config.sync.skip_tables = _as_list(skip_tables)
    if skip_fields := _get_env("SKIP_FIELDS"):
        config.sync.skip_fields = _as_list(skip_fields)

    # Discovery overrides
    if model_paths := _get_env("MODEL_PATHS"):
        config.discovery.model_paths = _as_list(model_paths, os.pathsep)
    if base_model := _get_env("BASE_MODEL"):
        config.discovery.base_model = base_model

    return config


def _parse_sync(data: dict, defaults: SyncConfig) -> SyncConfig:
    """Parse the sync section."""
    return SyncConfig(
        enabled=data.get("enabled", defaults.enabled),
        endpoint=data.get("endpoint", defaults.endpoint),
        timeout=data.get("timeout", defaults.timeout),
        tables=list(data.get("tables") or []),
        skip_tables=list(data.get("skip_tables", defaults.skip_tables) or []),
        skip_fields=list(data.get("skip_fields", defaults.skip_fields) or []),
        respect_should_sync=data.get(
            "respect_should_sync", defaults.respect_should_sync
        ),
    )


def _parse_discovery(data: dict, defaults: DiscoveryConfig) -> DiscoveryConfig:
    """Parse the discovery section."""
    return DiscoveryConfig(
        model_paths=list(data.get("model_paths", defaults.model_paths) or []),
        models=list(data.get("models") or []),
        base_model=data.get("base_model", defaults.base_model),
    )


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.

    Raises:
        ConfigError: If the file is not a mapping or a section is invalid.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if not isinstance(data, dict):
                raise ConfigError(f"Config file {path} must contain a mapping")

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"] or {}
                valid, error = validate_section("sync", sync_data, SYNC_SCHEMA)
                if not valid:
                    raise ConfigError(error)
                config.sync = _parse_sync(sync_data, config.sync)

            # Parse discovery config
            if "discovery" in data:
                disc_data = data["discovery"] or {}
                valid, error = validate_section(
                    "discovery", disc_data, DISCOVERY_SCHEMA
                )
                if not valid:
                    raise ConfigError(error)
                config.discovery = _parse_discovery(disc_data, config.discovery)
        else:
            logger.warning(f"Config file not found, using defaults: {path}")

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return config
