"""MCP tool handlers for the cookie sync engine.

This package contains MCP tool implementations that wrap the sync runtime
with async handlers and structured error responses.
"""

from .errors import build_error_response, translate_sync_error
from .registry import ToolRegistry, ToolSpec, load_permissions_file
from .settings import SETTINGS_SPECS, SETTINGS_TOOLS
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = SYNC_SPECS + SETTINGS_SPECS

__all__ = [
    "build_error_response",
    "translate_sync_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    "load_permissions_file",
    # Spec lists
    "ALL_SPECS",
    "SETTINGS_SPECS",
    "SYNC_SPECS",
    "SETTINGS_TOOLS",
    "SYNC_TOOLS",
]
