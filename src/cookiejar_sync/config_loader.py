"""
Hierarchical YAML configuration loader for cookiejar_sync.

Provides convention-based config file discovery, env var interpolation,
a shallow merge with "project wins" semantics, and a starter file for
first-time setup.

Usage:
    from cookiejar_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` is replaced with ``os.environ.get(VAR, "")``.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``COOKIEJAR_CONFIG`` env var (explicit single path)
        2. ``.cookiejar/config.yml`` in CWD (project-level)
        3. ``.cookiejar/config.yaml`` in CWD
        4. ``~/.config/cookiejar/config.yml`` (XDG global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get("COOKIEJAR_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd()
    candidates.append(cwd / ".cookiejar" / "config.yml")
    candidates.append(cwd / ".cookiejar" / "config.yaml")
    candidates.append(Path.home() / ".config" / "cookiejar" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# cookiejar-sync configuration
#
# Every value can also come from the environment:
#   COOKIEJAR_API_URL, COOKIEJAR_STATE_DIR, COOKIEJAR_COOKIE_JAR,
#   COOKIEJAR_TIMEOUT, COOKIEJAR_DEBOUNCE_SECONDS, COOKIEJAR_GRANTED_ORIGINS
# The GitHub token and passphrase are never read from this file; store
# them with the sync_secrets_set tool.
#
# remote:
#   api_url: https://api.github.com
#   timeout: 60
#
# storage:
#   state_dir: ~/.cookiejar
#   cookie_jar: ~/.cookiejar/cookies.json
#
# triggers:
#   debounce_seconds: 60
#   granted_origins:
#     - https://example.com/*
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(target: Path | None = None) -> tuple[Path, bool]:
    """Make sure a config file exists, writing a commented starter if not.

    An already discovered config file is returned untouched.  Otherwise the
    starter is written to *target*, or ``.cookiejar/config.yml`` in CWD.

    Returns:
        ``(path, created)``
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0], False

    config_path = target or Path.cwd() / ".cookiejar" / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path, True


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are loaded from lowest precedence to highest.  Each file's
    top-level keys **replace** (not deep-merge) those from earlier files.
    Env var interpolation is applied after the merge.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files()

    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            with open(path, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
