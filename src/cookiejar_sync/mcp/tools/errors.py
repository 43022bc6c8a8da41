"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

from __future__ import annotations

import mcp.types as types

from ...errors import (
    ConfigurationError,
    CookieJarError,
    CryptoError,
    HttpError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    TransportError,
)
from ...sync.reporter import format_duration


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, rate_limited,
            configuration_error, validation_error, server_error, ...)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_sync_error(
    error: CookieJarError, now: float
) -> types.CallToolResult:
    """Translate an engine exception into a structured error response."""
    match error:
        case ConfigurationError():
            return build_error_response(
                "configuration_error",
                str(error),
                "Store the GitHub token and passphrase with sync_secrets_set, "
                "then add at least one origin with sync_url_add.",
            )
        case CryptoError():
            return build_error_response(
                "crypto_error",
                str(error),
                "Check the passphrase matches the one used on the pushing "
                "device, then store it again with sync_secrets_set.",
            )
        case RateLimitError():
            wait = format_duration(error.reset_at - now)
            return build_error_response(
                "rate_limited",
                str(error),
                f"Retry in {wait}. Queued writes are retried automatically; "
                "check sync_queue_status.",
            )
        case NotFoundError():
            return build_error_response(
                "not_found",
                str(error),
                "Clear remote_document_id with sync_settings_update and pull "
                "again to resolve the latest Gist.",
            )
        case PermissionDeniedError():
            return build_error_response(
                "permission_denied",
                str(error),
                "Grant the origin in COOKIEJAR_GRANTED_ORIGINS or the config "
                "file, then apply again.",
            )
        case HttpError() | TransportError():
            return build_error_response(
                "remote_error",
                str(error),
                "Check network access to the GitHub API and the token scopes "
                "(gist), then retry.",
            )
        case _:
            return build_error_response(
                "server_error", str(error), "Retry later."
            )
