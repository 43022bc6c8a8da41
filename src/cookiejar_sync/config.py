"""Runtime configuration for the cookie sync server.

Reads settings from CLI args, environment variables, .env files, and
YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    COOKIEJAR_API_URL: Gist API base URL (default: https://api.github.com)
    COOKIEJAR_STATE_DIR: Directory holding settings, secrets and the job queue
        (default: ~/.cookiejar)
    COOKIEJAR_COOKIE_JAR: Path of the JSON cookie jar (default: <state_dir>/cookies.json)
    COOKIEJAR_TIMEOUT: HTTP read timeout in seconds (default: 60)
    COOKIEJAR_DEBOUNCE_SECONDS: Quiet window before a change-triggered push (default: 60)
    COOKIEJAR_DEBUG: Enable debug logging (optional, default: false)
    COOKIEJAR_GRANTED_ORIGINS: Comma-separated origins pre-approved for cookie writes

The Gist token and passphrase are not configuration: they are stored by
the ``sync_secrets_set`` tool.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_STATE_DIR = "~/.cookiejar"


@dataclass
class Config:
    api_url: str = DEFAULT_API_URL
    state_dir: str = DEFAULT_STATE_DIR
    cookie_jar_path: str = ""
    request_timeout: float = 60.0
    debounce_seconds: float = 60.0
    debug: bool = False
    granted_origins: list[str] = field(default_factory=list)


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Normalizes the API URL and expands ``~`` in paths.  An empty
    ``cookie_jar_path`` is resolved to ``<state_dir>/cookies.json``.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the URL is malformed or a numeric field is out of range.
    """
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )
    config.api_url = config.api_url.removesuffix("/")

    if not config.state_dir.strip():
        raise ValueError("State directory cannot be empty.")
    config.state_dir = str(Path(config.state_dir).expanduser())

    if not config.cookie_jar_path:
        config.cookie_jar_path = str(Path(config.state_dir) / "cookies.json")
    config.cookie_jar_path = str(Path(config.cookie_jar_path).expanduser())

    if not (1 <= config.request_timeout <= 600):
        raise ValueError(
            f"Invalid request timeout {config.request_timeout}: must be between 1 and 600 seconds"
        )
    if not (1 <= config.debounce_seconds <= 3600):
        raise ValueError(
            f"Invalid debounce window {config.debounce_seconds}: must be between 1 and 3600 seconds"
        )

    if config.api_url.startswith("http://"):
        logger.warning(
            "WARNING: API URL is not HTTPS (%s). Use only for development.",
            config.api_url,
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_float_env(key: str) -> float | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Invalid {key} '{raw}': must be a number") from None


def load_config(
    api_url: str | None = None,
    state_dir: str | None = None,
    cookie_jar_path: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        api_url: Override API base URL.
        state_dir: Override state directory.
        cookie_jar_path: Override cookie jar file path.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values taken from the YAML config
            (see ``config_schema.yaml_fallbacks``).

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value from any source is invalid.
    """
    fb = yaml_fallbacks or {}

    final_api_url = (
        api_url or os.getenv("COOKIEJAR_API_URL") or fb.get("api_url") or DEFAULT_API_URL
    )
    final_state_dir = (
        state_dir
        or os.getenv("COOKIEJAR_STATE_DIR")
        or fb.get("state_dir")
        or DEFAULT_STATE_DIR
    )
    final_cookie_jar = (
        cookie_jar_path
        or os.getenv("COOKIEJAR_COOKIE_JAR")
        or fb.get("cookie_jar")
        or ""
    )

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("COOKIEJAR_DEBUG")
        final_debug = (
            env_debug if env_debug is not None else bool(fb.get("debug", False))
        )

    env_timeout = _get_float_env("COOKIEJAR_TIMEOUT")
    final_timeout = (
        env_timeout if env_timeout is not None else float(fb.get("timeout", 60.0))
    )

    env_debounce = _get_float_env("COOKIEJAR_DEBOUNCE_SECONDS")
    final_debounce = (
        env_debounce
        if env_debounce is not None
        else float(fb.get("debounce_seconds", 60.0))
    )

    env_origins = os.getenv("COOKIEJAR_GRANTED_ORIGINS")
    if env_origins is not None:
        granted = [o.strip() for o in env_origins.split(",") if o.strip()]
    else:
        granted = list(fb.get("granted_origins", []))

    config = Config(
        api_url=final_api_url,
        state_dir=final_state_dir,
        cookie_jar_path=final_cookie_jar,
        request_timeout=final_timeout,
        debounce_seconds=final_debounce,
        debug=final_debug,
        granted_origins=granted,
    )

    validate_config(config)

    return config
