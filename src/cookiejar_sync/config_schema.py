"""Unified configuration schema for cookiejar_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the remote API, local storage, sync triggers, and logging.

Usage:
    from cookiejar_sync.config_schema import build_config, yaml_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=yaml_fallbacks(unified))
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Gist API connection settings."""

    api_url: str | None = Field(default=None, description="API base URL")
    timeout: float = Field(
        default=60.0,
        ge=1,
        le=600,
        description="HTTP read timeout in seconds",
    )

    model_config = {"frozen": True}


class StorageConfig(BaseModel):
    """Where local state lives."""

    state_dir: str | None = Field(
        default=None,
        description="Directory for settings, secrets and the retry queue",
    )
    cookie_jar: str | None = Field(
        default=None, description="Path of the JSON cookie jar"
    )

    model_config = {"frozen": True}


class TriggerConfig(BaseModel):
    """Automatic sync trigger tuning."""

    debounce_seconds: float = Field(
        default=60.0,
        ge=1,
        le=3600,
        description="Quiet window after the last cookie change before pushing",
    )
    granted_origins: list[str] = Field(
        default_factory=list,
        description="Origins pre-approved for cookie writes during pull",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    triggers: TriggerConfig = Field(default_factory=TriggerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def yaml_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into the fallback dict ``load_config`` takes.

    ``None`` values are dropped so they never shadow built-in defaults.
    """
    flat: dict[str, Any] = {
        "api_url": unified.remote.api_url,
        "timeout": unified.remote.timeout,
        "state_dir": unified.storage.state_dir,
        "cookie_jar": unified.storage.cookie_jar,
        "debounce_seconds": unified.triggers.debounce_seconds,
        "granted_origins": list(unified.triggers.granted_origins),
        "debug": unified.logging.debug,
    }
    return {k: v for k, v in flat.items() if v is not None}
