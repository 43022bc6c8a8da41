"""MCP tool handlers for sync settings and secrets.

Defines these tools:

- ``sync_settings_get`` -- show the current settings.
- ``sync_settings_update`` -- change one or more settings.
- ``sync_url_add`` / ``sync_url_remove`` -- edit the sync URL set.
- ``sync_secrets_set`` -- store the GitHub token and the passphrase.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import mcp.types as types

from ...sync.reporter import format_settings, settings_to_json
from .errors import build_error_response
from .registry import SECRETS_WRITE, SETTINGS_WRITE, SYNC_READ, ToolSpec

if TYPE_CHECKING:
    from ...runtime import SyncRuntime

_UPDATABLE = (
    "remote_document_id",
    "auto_sync_enabled",
    "sync_interval_minutes",
    "sync_on_change",
    "sync_urls",
)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SETTINGS_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync_settings_get",
        description="Show the cookie sync settings.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={"type": "object", "properties": {}, "required": []},
    ),
    types.Tool(
        name="sync_settings_update",
        description=(
            "Change sync settings. Omitted fields keep their value; "
            "remote_document_id null forgets the Gist."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "remote_document_id": {
                    "type": ["string", "null"],
                    "description": "Gist id to sync with, or null to resolve it on next pull",
                },
                "auto_sync_enabled": {
                    "type": "boolean",
                    "description": "Enable interval and change-triggered pushes",
                },
                "sync_interval_minutes": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Minutes between interval pushes",
                },
                "sync_on_change": {
                    "type": "boolean",
                    "description": "Push after cookie changes settle",
                },
                "sync_urls": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Full replacement list of origin patterns",
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="sync_url_add",
        description=(
            "Add an origin pattern such as https://example.com/* or "
            "https://*.example.com to the synced set."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "Origin pattern"},
            },
            "required": ["url"],
        },
    ),
    types.Tool(
        name="sync_url_remove",
        description="Remove an origin pattern from the synced set.",
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "Origin pattern"},
            },
            "required": ["url"],
        },
    ),
    types.Tool(
        name="sync_secrets_set",
        description=(
            "Store the GitHub token (gist scope) and the encryption "
            "passphrase. Both are required; neither is ever echoed back."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "token": {"type": "string", "description": "GitHub token"},
                "passphrase": {
                    "type": "string",
                    "description": "Passphrase shared by every synced device",
                },
            },
            "required": ["token", "passphrase"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _settings_response(settings) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_settings(settings))],
        structuredContent={"settings": settings_to_json(settings)},
    )


async def _handle_get(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    return _settings_response(runtime.reconciler.settings)


async def _handle_update(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    """Handle sync_settings_update."""
    unknown = set(args) - set(_UPDATABLE)
    if unknown:
        raise ValueError(
            f"Unknown setting(s): {', '.join(sorted(unknown))}. "
            f"Updatable: {', '.join(_UPDATABLE)}"
        )
    if not args:
        return build_error_response(
            "validation_error",
            "No settings given",
            f"Provide at least one of: {', '.join(_UPDATABLE)}.",
        )
    settings = await runtime.reconciler.update(**args)
    return _settings_response(settings)


def _require_url(args: dict) -> str:
    url = args.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ValueError("url is required")
    return url.strip()


async def _handle_url_add(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    settings = await runtime.reconciler.add_sync_url(_require_url(args))
    return _settings_response(settings)


async def _handle_url_remove(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    settings = await runtime.reconciler.remove_sync_url(_require_url(args))
    return _settings_response(settings)


async def _handle_secrets_set(
    runtime: SyncRuntime, args: dict
) -> types.CallToolResult:
    """Handle sync_secrets_set.  The response never contains the secrets."""
    token = args.get("token")
    passphrase = args.get("passphrase")
    if not isinstance(token, str) or not isinstance(passphrase, str):
        raise ValueError("token and passphrase are required strings")
    await runtime.secrets.save(token, passphrase)
    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text", text="GitHub token and passphrase saved."
            )
        ],
        structuredContent={"saved": True},
    )


# ToolSpec list for registry-based dispatch
SETTINGS_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=SETTINGS_TOOLS[0],
        permissions=frozenset({SYNC_READ}),
        handler=_handle_get,
    ),
    ToolSpec(
        tool=SETTINGS_TOOLS[1],
        permissions=frozenset({SETTINGS_WRITE}),
        handler=_handle_update,
    ),
    ToolSpec(
        tool=SETTINGS_TOOLS[2],
        permissions=frozenset({SETTINGS_WRITE}),
        handler=_handle_url_add,
    ),
    ToolSpec(
        tool=SETTINGS_TOOLS[3],
        permissions=frozenset({SETTINGS_WRITE}),
        handler=_handle_url_remove,
    ),
    ToolSpec(
        tool=SETTINGS_TOOLS[4],
        permissions=frozenset({SECRETS_WRITE}),
        handler=_handle_secrets_set,
    ),
]
