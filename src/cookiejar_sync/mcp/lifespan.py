"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config, yaml_fallbacks
from ..runtime import SyncRuntime, build_runtime

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Build the sync runtime, load settings, program the triggers and
      resume queued writes

    On shutdown:
    - Cancel every timer and wait for running timer callbacks

    Args:
        config_overrides: Optional dict with config values from CLI
            (api_url, state_dir, cookie_jar, debug)

    Yields:
        Dict with 'runtime' key containing the started SyncRuntime

    Raises:
        RuntimeError: If configuration is invalid or the state cannot be loaded.
    """
    logger.info("MCP server starting...")
    _stderr_print("Cookie sync server starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            raw = load_hierarchical_config()
            fallbacks = yaml_fallbacks(build_config(raw))
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            api_url=overrides.get("api_url"),
            state_dir=overrides.get("state_dir"),
            cookie_jar_path=overrides.get("cookie_jar"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        _stderr_print(f"  API URL: {config.api_url}")
        _stderr_print(f"  State directory: {config.state_dir}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    try:
        runtime: SyncRuntime = build_runtime(config)
        await runtime.start()
    except OSError as e:
        logger.error("Failed to load sync state: %s", e)
        _stderr_print(f"ERROR: Could not load sync state: {e}")
        raise RuntimeError(f"Could not load sync state: {e}") from e

    pending = len(await runtime.repository.pending_jobs())
    if pending:
        _stderr_print(f"  Resumed {pending} queued sync job(s)")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"runtime": runtime}
    finally:
        logger.info("MCP server shutting down")
        await runtime.stop()
        _stderr_print("Cookie sync server shutting down.")
